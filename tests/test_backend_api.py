from __future__ import annotations

from dataclasses import replace

from fastapi.testclient import TestClient

from app import create_app
from backend.domain.models import Person, Room
from backend.utils.config import get_settings
from terminal.api_client import (
    SaveResult,
    allocation_to_wire,
    confirmed_from_wire,
    conflict_from_wire,
    room_from_wire,
)
from terminal.capacity_view import RoomCapacityView
from terminal.ledger import InMemoryStorage, LocalAllocationLedger
from terminal.orchestrator import AllocationOrchestrator
from terminal.sync_service import RetryPolicy, SyncReconciliationService


ROOM_ROWS = [
    {"hostel name": "H1", "available room no.": "101", "room capacity": "2", "room password": "p101"},
    {"hostel name": "H1", "available room no.": "102", "room capacity": "1", "room password": "p102"},
    {"hostel name": "Tansa", "available room no.": "7", "room capacity": "3", "room password": ""},
]


def _build_test_settings(tmp_path, filename: str):
    get_settings.cache_clear()
    return replace(
        get_settings(),
        database_path=tmp_path / filename,
        ledger_directory=tmp_path / "ledger",
        report_directory=tmp_path / "reports",
        sync_backoff_seconds=0.0,
    )


def _wire(mi_no: str, hostel: str = "H1", room_no: str = "101", timestamp: str = "") -> dict:
    return {
        "name": f"Person {mi_no}",
        "miNo": mi_no,
        "email": f"{mi_no.lower()}@example.com",
        "hostel": hostel,
        "roomNo": room_no,
        "roomPassword": "p101",
        "timestamp": timestamp or "2026-01-01T10:00:00+00:00",
    }


class InProcessUploader:
    """Posts batches through the ASGI app the way BackendClient does over HTTP."""

    def __init__(self, client: TestClient) -> None:
        self._client = client

    def save_allocations(self, allocations):
        response = self._client.post(
            "/api/allocation/save",
            json={"allocations": [allocation_to_wire(item) for item in allocations]},
        )
        body = response.json()
        assert response.status_code == 200, body
        return SaveResult(
            count=body["count"],
            conflicts=[conflict_from_wire(row) for row in body["conflicts"]],
        )


def test_room_upload_merges_by_hostel_and_room(tmp_path):
    app = create_app(_build_test_settings(tmp_path, "rooms.db"))
    with TestClient(app) as client:
        first = client.post("/api/dashboard/upload", json={"csvData": ROOM_ROWS})
        assert first.status_code == 200
        assert first.json()["data"]["recordCount"] == 3

        override = [
            {"Hostel Name": " h1 ", "Available Room No.": "101", "Room Capacity": "4", "Room Password": "new"}
        ]
        second = client.post("/api/dashboard/upload", json={"csvData": override})
        assert second.status_code == 200
        assert second.json()["data"]["recordCount"] == 3

        data = client.get("/api/dashboard/data", params={"hostel": "all"}).json()
        room_101 = next(row for row in data["data"] if row["available room no."] == "101")
        assert room_101["room capacity"] == 4
        assert room_101["room password"] == "new"
        assert [row["id"] for row in data["data"]] == [1, 2, 3]


def test_room_upload_reports_missing_columns(tmp_path):
    app = create_app(_build_test_settings(tmp_path, "rooms_missing.db"))
    with TestClient(app) as client:
        response = client.post(
            "/api/dashboard/upload",
            json={"csvData": [{"hostel name": "H1", "room capacity": "2"}]},
        )
        body = response.json()
        assert response.status_code == 400
        assert body["success"] is False
        assert body["error"] == "Missing required columns"
        assert body["missingColumns"] == ["available room no.", "room password"]

        empty = client.post("/api/dashboard/upload", json={"csvData": []})
        assert empty.status_code == 400
        assert empty.json()["success"] is False


def test_room_data_filter_and_hostel_summary(tmp_path):
    app = create_app(_build_test_settings(tmp_path, "hostels.db"))
    with TestClient(app) as client:
        client.post("/api/dashboard/upload", json={"csvData": ROOM_ROWS})

        filtered = client.get("/api/dashboard/data", params={"hostel": "Tansa"}).json()
        assert filtered["recordCount"] == 1
        assert filtered["data"][0]["available room no."] == "7"

        summary = client.get("/api/dashboard/hostels").json()
        assert summary["hostels"] == [
            {"name": "H1", "roomCount": 2},
            {"name": "Tansa", "roomCount": 1},
        ]
        assert summary["totalHostels"] == 2
        assert summary["totalRooms"] == 3


def test_save_is_idempotent_and_reports_room_moves(tmp_path):
    app = create_app(_build_test_settings(tmp_path, "save.db"))
    with TestClient(app) as client:
        batch = {"allocations": [_wire("MI-1"), _wire("MI-2")]}
        first = client.post("/api/allocation/save", json=batch)
        retry = client.post("/api/allocation/save", json=batch)

        assert first.json()["count"] == 2
        assert retry.json()["conflicts"] == []
        assert client.get("/api/allocation/list").json()["count"] == 2

        moved = client.post(
            "/api/allocation/save",
            json={"allocations": [_wire("MI-1", room_no="102")]},
        ).json()
        assert moved["conflicts"] == [
            {
                "miNo": "MI-1",
                "previousHostel": "H1",
                "previousRoomNo": "101",
                "hostel": "H1",
                "roomNo": "102",
            }
        ]
        assert client.get("/api/allocation/list").json()["count"] == 2


def test_list_is_newest_first_and_by_room_filters(tmp_path):
    app = create_app(_build_test_settings(tmp_path, "list.db"))
    with TestClient(app) as client:
        client.post(
            "/api/allocation/save",
            json={
                "allocations": [
                    _wire("MI-old", timestamp="2026-01-01T09:00:00+00:00"),
                    _wire("MI-new", room_no="102", timestamp="2026-01-01T11:00:00+00:00"),
                ]
            },
        )
        listing = client.get("/api/allocation/list").json()
        assert [row["mi_no"] for row in listing["allocations"]] == ["MI-new", "MI-old"]

        room = client.get("/api/allocation/by-room/H1/101").json()
        assert [row["mi_no"] for row in room["allocations"]] == ["MI-old"]

        stats = client.get("/api/allocation/stats").json()["stats"]
        assert stats["totalAllocations"] == 2
        assert stats["roomsUsed"] == 2
        assert stats["rooms"][0] == {"hostel": "H1", "room_no": "101", "count": 1}


def test_invalid_save_payloads_return_400(tmp_path):
    app = create_app(_build_test_settings(tmp_path, "invalid.db"))
    with TestClient(app) as client:
        empty = client.post("/api/allocation/save", json={"allocations": []})
        assert empty.status_code == 400
        assert empty.json()["success"] is False
        assert empty.json()["error"].startswith("Invalid request data")

        incomplete = _wire("MI-1")
        incomplete.pop("roomNo")
        missing = client.post("/api/allocation/save", json={"allocations": [incomplete]})
        assert missing.status_code == 400
        assert missing.json()["success"] is False

        assert client.get("/api/allocation/list").json()["count"] == 0


def test_terminal_flow_allocates_syncs_and_sees_confirmed_set(tmp_path):
    settings = _build_test_settings(tmp_path, "flow.db")
    app = create_app(settings)
    with TestClient(app) as client:
        client.post("/api/dashboard/upload", json={"csvData": ROOM_ROWS})

        ledger = LocalAllocationLedger(InMemoryStorage(), settings=settings)
        rooms = [
            room_from_wire(row)
            for row in client.get("/api/dashboard/data", params={"hostel": "all"}).json()["data"]
        ]
        view = RoomCapacityView(ledger, rooms=rooms)
        orchestrator = AllocationOrchestrator(ledger, view)
        service = SyncReconciliationService(
            ledger=ledger,
            uploader=InProcessUploader(client),
            retry_policy=RetryPolicy(backoff_seconds=0.0, max_attempts=1),
            settings=settings,
        )

        room_102 = view.find_room("H1", "102")
        orchestrator.allocate(Person(name="A", mi_no="MI-A", email="a@example.com"), room_102)
        outcome = service.sync_all()
        assert outcome.succeeded
        assert outcome.count == 1
        assert len(ledger) == 0

        confirmed = [
            confirmed_from_wire(row)
            for row in client.get("/api/allocation/list").json()["allocations"]
        ]
        view.update_confirmed(confirmed)
        assert view.is_full(room_102)
        assert view.confirmed_for("MI-A").room_password == "p102"
        assert view.find_room("H1", "101") == Room(
            hostel="H1", room_no="101", capacity=2, password="p101"
        )
