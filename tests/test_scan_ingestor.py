from __future__ import annotations

import json
import threading

import pytest

from backend.domain.constraints import ScanConfig
from backend.domain.models import Person
from terminal.scan_ingestor import (
    CameraScanner,
    HardwareScannerListener,
    ListenerState,
    ScanFormatError,
    ScanIngestor,
)


def _build_ingestor() -> ScanIngestor:
    return ScanIngestor(
        ScanConfig(
            bare_id_min_length=5,
            bare_id_max_length=20,
            camera_fps=1000,
            unknown_name="Unknown",
            unknown_email="unknown",
        )
    )


def _badge(name="Asha Rao", mi_no="MI-abc-0001", email="asha@example.com") -> str:
    return json.dumps({"name": name, "miNo": mi_no, "email": email})


class Recorder:
    def __init__(self) -> None:
        self.people: list[Person] = []
        self.errors: list[str] = []

    def success(self, person: Person) -> None:
        self.people.append(person)

    def error(self, message: str) -> None:
        self.errors.append(message)


# --- parse ---

def test_json_badge_produces_person_with_same_fields():
    person = _build_ingestor().parse(_badge())
    assert person == Person(name="Asha Rao", mi_no="MI-abc-0001", email="asha@example.com")


@pytest.mark.parametrize("missing", ["name", "miNo", "email"])
def test_json_badge_missing_field_is_rejected(missing):
    data = {"name": "Asha", "miNo": "MI-abc-0001", "email": "a@example.com"}
    data.pop(missing)
    with pytest.raises(ScanFormatError):
        _build_ingestor().parse(json.dumps(data))


def test_json_badge_with_blank_field_is_rejected():
    with pytest.raises(ScanFormatError):
        _build_ingestor().parse(_badge(email="   "))


def test_bare_identifier_gets_sentinel_name_and_email():
    person = _build_ingestor().parse("  MI-abc-0042 \n")
    assert person == Person(name="Unknown", mi_no="MI-abc-0042", email="unknown")


def test_bare_identifier_bounds_are_exclusive():
    ingestor = _build_ingestor()
    with pytest.raises(ScanFormatError):
        ingestor.parse("abcde")
    with pytest.raises(ScanFormatError):
        ingestor.parse("x" * 20)
    assert ingestor.parse("abcdef").mi_no == "abcdef"
    assert ingestor.parse("x" * 19).mi_no == "x" * 19


@pytest.mark.parametrize("payload", ['"MI-abc-0001"', "123456789", "[1,2,3,4]", "true"])
def test_valid_json_that_is_not_an_object_is_rejected(payload):
    with pytest.raises(ScanFormatError, match="Invalid QR format"):
        _build_ingestor().parse(payload)


def test_numeric_mi_number_in_json_badge_is_accepted_as_text():
    payload = json.dumps({"name": "Asha", "miNo": 20240017, "email": "a@example.com"})
    assert _build_ingestor().parse(payload).mi_no == "20240017"


def test_boolean_or_nested_fields_are_rejected():
    ingestor = _build_ingestor()
    with pytest.raises(ScanFormatError):
        ingestor.parse(json.dumps({"name": "Asha", "miNo": True, "email": "a@example.com"}))
    with pytest.raises(ScanFormatError):
        ingestor.parse(json.dumps({"name": ["Asha"], "miNo": "MI-1", "email": "a@example.com"}))


def test_empty_payload_is_rejected():
    with pytest.raises(ScanFormatError):
        _build_ingestor().parse("   ")


def test_ingest_reports_errors_through_callback():
    recorder = Recorder()
    result = _build_ingestor().ingest("{}", recorder.success, recorder.error)
    assert result is None
    assert recorder.people == []
    assert recorder.errors == ["Invalid QR format. Expected: name, miNo, email"]


# --- hardware listener ---

def test_idle_listener_ignores_keys():
    recorder = Recorder()
    listener = HardwareScannerListener(_build_ingestor(), recorder.success, recorder.error)
    assert listener.handle_key("a") is False
    assert listener.handle_key("Enter") is False
    assert listener.buffer == ""
    assert recorder.people == []


def test_scanner_burst_dispatches_and_returns_to_idle():
    recorder = Recorder()
    listener = HardwareScannerListener(_build_ingestor(), recorder.success, recorder.error)
    listener.start()
    for character in _badge():
        assert listener.handle_key(character) is False
    assert listener.handle_key("Enter") is True

    assert recorder.people == [
        Person(name="Asha Rao", mi_no="MI-abc-0001", email="asha@example.com")
    ]
    assert listener.state is ListenerState.IDLE
    assert listener.buffer == ""


def test_failed_decode_keeps_listening_with_empty_buffer():
    recorder = Recorder()
    listener = HardwareScannerListener(_build_ingestor(), recorder.success, recorder.error)
    listener.start()
    listener.feed("bad")
    assert recorder.errors
    assert listener.is_listening
    assert listener.buffer == ""


def test_keys_aimed_at_text_inputs_are_not_captured():
    recorder = Recorder()
    listener = HardwareScannerListener(_build_ingestor(), recorder.success, recorder.error)
    listener.start()
    listener.handle_key("a", targets_text_input=True)
    assert listener.handle_key("Enter", targets_text_input=True) is False
    assert listener.buffer == ""


def test_non_printable_keys_are_ignored():
    listener = HardwareScannerListener(_build_ingestor(), Recorder().success)
    listener.start()
    for key in ("Shift", "Tab", "\t", "ArrowDown"):
        listener.handle_key(key)
    assert listener.buffer == ""


def test_start_and_stop_clear_the_buffer():
    listener = HardwareScannerListener(_build_ingestor(), Recorder().success)
    listener.start()
    for character in "MI-abc":
        listener.handle_key(character)
    listener.start()
    assert listener.buffer == ""

    listener.handle_key("x")
    listener.stop()
    assert listener.buffer == ""
    assert listener.state is ListenerState.IDLE


# --- camera ---

def test_camera_dispatches_first_valid_frame_once():
    frames = iter(["frame-1", None, "frame-2", "frame-3"])
    payloads = {"frame-1": ["no"], "frame-2": [_badge()], "frame-3": [_badge(mi_no="MI-abc-0009")]}
    calls = []

    def frame_source():
        frame = next(frames, None)
        calls.append(frame)
        return frame

    recorder = Recorder()
    scanner = CameraScanner(_build_ingestor(), frame_source, decoder=lambda frame: payloads[frame])
    person = scanner.run(recorder.success, recorder.error)

    assert person is not None and person.mi_no == "MI-abc-0001"
    assert recorder.people == [person]
    assert len(recorder.errors) == 1
    assert calls == ["frame-1", None, "frame-2"]


def test_camera_stops_when_cancelled():
    stop_event = threading.Event()
    stop_event.set()
    calls = []
    scanner = CameraScanner(
        _build_ingestor(),
        lambda: calls.append(1),
        decoder=lambda frame: [],
    )
    assert scanner.run(Recorder().success, stop_event=stop_event) is None
    assert calls == []
