"""Turn camera frames, keyboard-wedge scanner bursts or pasted text into a Person."""

from __future__ import annotations

import json
import threading
from enum import Enum
from typing import Any, Callable, Iterable, Optional

try:
    from pyzbar import pyzbar
except ImportError:  # pragma: no cover - zbar shared library missing
    pyzbar = None  # type: ignore[assignment]

from backend.domain.constraints import ScanConfig, validate_scan_config
from backend.domain.models import Person
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)

REQUIRED_FIELDS = ("name", "miNo", "email")
ENTER_KEY = "Enter"
INVALID_FORMAT_MESSAGE = "Invalid QR format. Expected: name, miNo, email"

SuccessCallback = Callable[[Person], None]
ErrorCallback = Callable[[str], None]


class ScanFormatError(Exception):
    """Raised when a scanned payload cannot be turned into a Person."""


class ScannerDependencyError(Exception):
    """Raised when pyzbar/zbar is unavailable for camera decoding."""


def scan_config_from_settings(settings: Settings) -> ScanConfig:
    return ScanConfig(
        bare_id_min_length=settings.scan_bare_id_min_length,
        bare_id_max_length=settings.scan_bare_id_max_length,
        camera_fps=settings.scan_camera_fps,
        unknown_name=settings.scan_unknown_name,
        unknown_email=settings.scan_unknown_email,
    )


class ScanIngestor:
    """Stateless payload parser shared by every scan mode."""

    def __init__(self, config: Optional[ScanConfig] = None) -> None:
        self._config = config or scan_config_from_settings(get_settings())
        validate_scan_config(self._config)

    @property
    def config(self) -> ScanConfig:
        return self._config

    def parse(self, text: str) -> Person:
        """Parse a decoded payload.

        Valid JSON must be an object carrying non-empty ``name``, ``miNo`` and
        ``email``. Text that is not valid JSON at all is accepted as a bare
        badge id when its length lies strictly between the configured bounds.
        """
        payload = (text or "").strip()
        if not payload:
            raise ScanFormatError("Scan payload is empty")

        try:
            decoded: Any = json.loads(payload)
        except ValueError:
            return self._person_from_bare_id(payload)

        if not isinstance(decoded, dict):
            raise ScanFormatError(INVALID_FORMAT_MESSAGE)
        return self._person_from_object(decoded)

    def _person_from_bare_id(self, payload: str) -> Person:
        if self._config.bare_id_min_length < len(payload) < self._config.bare_id_max_length:
            return Person(
                name=self._config.unknown_name,
                mi_no=payload,
                email=self._config.unknown_email,
            )

        raise ScanFormatError(
            'QR code must contain JSON: {"name":"...","miNo":"...","email":"..."}'
        )

    def ingest(
        self,
        text: str,
        on_success: SuccessCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Optional[Person]:
        """Parse and dispatch to callbacks; returns the Person or None."""
        try:
            person = self.parse(text)
        except ScanFormatError as exc:
            logger.info("Rejected scan payload: %s", exc)
            if on_error is not None:
                on_error(str(exc))
            return None
        on_success(person)
        return person

    @staticmethod
    def _person_from_object(data: dict[str, Any]) -> Person:
        values = {}
        for field_name in REQUIRED_FIELDS:
            value = data.get(field_name)
            # badge printers emit numeric MI numbers unquoted
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                value = str(value)
            if not isinstance(value, str) or not value.strip():
                raise ScanFormatError(INVALID_FORMAT_MESSAGE)
            values[field_name] = value.strip()
        return Person(name=values["name"], mi_no=values["miNo"], email=values["email"])


class ListenerState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"


class HardwareScannerListener:
    """State machine for keyboard-emulating scanners.

    Scanners type the payload followed by Enter. While listening, printable
    keys accumulate in a buffer and Enter parses it; the caller must suppress
    the key's default action whenever ``handle_key`` returns True.
    """

    def __init__(
        self,
        ingestor: ScanIngestor,
        on_success: SuccessCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self._ingestor = ingestor
        self._on_success = on_success
        self._on_error = on_error
        self._state = ListenerState.IDLE
        self._buffer: list[str] = []

    @property
    def state(self) -> ListenerState:
        return self._state

    @property
    def is_listening(self) -> bool:
        return self._state is ListenerState.LISTENING

    @property
    def buffer(self) -> str:
        return "".join(self._buffer)

    def start(self) -> None:
        self._buffer.clear()
        self._state = ListenerState.LISTENING
        logger.info("Hardware scanner listening")

    def stop(self) -> None:
        if self._state is ListenerState.LISTENING:
            logger.info("Hardware scanner stopped")
        self._buffer.clear()
        self._state = ListenerState.IDLE

    def handle_key(self, key: str, targets_text_input: bool = False) -> bool:
        """Process one keystroke; returns True when its default action must be suppressed."""
        if self._state is not ListenerState.LISTENING or targets_text_input:
            return False

        if key == ENTER_KEY:
            payload = self.buffer
            self._buffer.clear()
            if payload.strip():
                person = self._ingestor.ingest(payload, self._on_success, self._on_error)
                if person is not None:
                    self._state = ListenerState.IDLE
            return True

        if len(key) == 1 and key.isprintable():
            self._buffer.append(key)
        return False

    def feed(self, burst: str) -> None:
        """Replay a scanner burst: every character, then Enter."""
        for character in burst:
            self.handle_key(character)
        self.handle_key(ENTER_KEY)


def decode_image(image: Any) -> list[str]:
    """Decode every QR/barcode found in a PIL image."""
    if pyzbar is None:
        raise ScannerDependencyError(
            "pyzbar/zbar is not installed. Install 'pyzbar' and the zbar library to scan with a camera."
        )
    return [symbol.data.decode("utf-8", errors="replace") for symbol in pyzbar.decode(image)]


class CameraScanner:
    """Polls a frame source at a fixed rate until one frame yields a valid Person."""

    def __init__(
        self,
        ingestor: ScanIngestor,
        frame_source: Callable[[], Any],
        decoder: Optional[Callable[[Any], Iterable[str]]] = None,
        fps: Optional[int] = None,
    ) -> None:
        self._ingestor = ingestor
        self._frame_source = frame_source
        self._decoder = decoder or decode_image
        self._fps = fps or ingestor.config.camera_fps
        if self._fps <= 0:
            raise ValueError("fps must be > 0")

    def run(
        self,
        on_success: SuccessCallback,
        on_error: Optional[ErrorCallback] = None,
        stop_event: Optional[threading.Event] = None,
    ) -> Optional[Person]:
        """Scan until the first valid payload or until ``stop_event`` is set."""
        stop_event = stop_event or threading.Event()
        interval = 1.0 / self._fps
        while not stop_event.is_set():
            frame = self._frame_source()
            if frame is not None:
                for text in self._decoder(frame):
                    person = self._ingestor.ingest(text, on_success, on_error)
                    if person is not None:
                        # camera mode stops on the first successful decode
                        return person
            stop_event.wait(interval)
        return None
