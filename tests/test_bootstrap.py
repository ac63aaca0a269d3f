from __future__ import annotations

from dataclasses import replace

from backend.domain.models import ConfirmedAllocation, Person, Room
from backend.utils.config import get_settings
from terminal.api_client import SaveResult, SyncTransportError
from terminal.bootstrap import build_terminal_services
from terminal.ledger import InMemoryStorage
from terminal.orchestrator import AllocationSuspendedError


def _build_test_settings(tmp_path):
    get_settings.cache_clear()
    return replace(
        get_settings(),
        ledger_directory=tmp_path / "ledger",
        report_directory=tmp_path / "reports",
        sync_backoff_seconds=0.0,
        sync_max_attempts=2,
    )


class FakeBackend:
    def __init__(self) -> None:
        self.rooms = [Room(hostel="H1", room_no="101", capacity=2, password="p101")]
        self.confirmed: list[ConfirmedAllocation] = []
        self.rooms_down = False
        self.saved = []
        self.during_save = None
        self.base_url = "http://backend.test/api"

    def fetch_rooms(self, hostel: str = "all"):
        if self.rooms_down:
            raise SyncTransportError("refused")
        return list(self.rooms)

    def load_confirmed_allocations(self):
        return list(self.confirmed)

    def save_allocations(self, allocations):
        if self.during_save is not None:
            self.during_save()
        self.saved.extend(allocations)
        return SaveResult(count=len(allocations))


def test_refresh_loads_rooms_and_confirmed_set(tmp_path):
    backend = FakeBackend()
    backend.confirmed = [
        ConfirmedAllocation(
            name="A",
            mi_no="MI-A",
            email="a@example.com",
            hostel="H1",
            room_no="101",
            room_password="p101",
            allocated_at="2026-01-01T10:00:00+00:00",
        )
    ]
    services = build_terminal_services(
        settings=_build_test_settings(tmp_path),
        storage=InMemoryStorage(),
        client=backend,
    )

    assert services.refresh() == []
    room = services.capacity_view.find_room("H1", "101")
    assert services.capacity_view.occupancy_label(room) == "1/2"


def test_refresh_keeps_cached_rooms_when_backend_is_down(tmp_path):
    backend = FakeBackend()
    services = build_terminal_services(
        settings=_build_test_settings(tmp_path),
        storage=InMemoryStorage(),
        client=backend,
    )
    services.refresh()

    backend.rooms_down = True
    errors = services.refresh()

    assert len(errors) == 1
    assert errors[0].startswith("Failed to load rooms")
    assert services.capacity_view.find_room("H1", "101") is not None


def test_sync_suspends_orchestrator_and_writes_report(tmp_path):
    settings = _build_test_settings(tmp_path)
    backend = FakeBackend()
    services = build_terminal_services(settings=settings, storage=InMemoryStorage(), client=backend)
    services.refresh()
    room = services.capacity_view.find_room("H1", "101")

    services.orchestrator.allocate(Person(name="A", mi_no="MI-A", email="a@example.com"), room)

    refused = []

    def allocate_during_save():
        try:
            services.orchestrator.allocate(
                Person(name="B", mi_no="MI-B", email="b@example.com"), room
            )
        except AllocationSuspendedError:
            refused.append(True)

    backend.during_save = allocate_during_save
    outcome = services.sync_service.sync_all()

    assert outcome.succeeded
    assert refused == [True]
    assert [item.mi_no for item in backend.saved] == ["MI-A"]
    assert len(services.ledger) == 0
    assert outcome.report_path is not None
    assert outcome.report_path.parent == settings.report_directory
    assert not services.orchestrator.suspended
