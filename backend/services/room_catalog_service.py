"""Room reference data: upload merging, filtering and hostel summaries."""

from __future__ import annotations

from collections import Counter
from typing import Any, Mapping, Optional, Sequence

from backend.repository.data_repository import DataRepository, RoomRecord
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


HOSTEL_COLUMN = "hostel name"
ROOM_COLUMN = "available room no."
CAPACITY_COLUMN = "room capacity"
PASSWORD_COLUMN = "room password"

REQUIRED_COLUMNS = (HOSTEL_COLUMN, ROOM_COLUMN, CAPACITY_COLUMN, PASSWORD_COLUMN)


class RoomCatalogValidationError(Exception):
    """Raised when uploaded room rows are malformed."""

    def __init__(self, message: str, missing_columns: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.missing_columns = list(missing_columns)


def find_missing_columns(headers: Sequence[str]) -> list[str]:
    normalized = {header.strip().lower() for header in headers}
    return [column for column in REQUIRED_COLUMNS if column not in normalized]


def _pick(row: Mapping[str, Any], column: str) -> str:
    """Read a column regardless of header casing or padding."""
    for key, value in row.items():
        if str(key).strip().lower() == column:
            return "" if value is None else str(value).strip()
    return ""


def parse_capacity(raw: str) -> int:
    try:
        return int(float(raw))
    except (TypeError, ValueError):
        return 0


def room_to_wire(record: RoomRecord, display_id: int) -> dict[str, Any]:
    return {
        "id": display_id,
        HOSTEL_COLUMN: record.hostel,
        ROOM_COLUMN: record.room_no,
        CAPACITY_COLUMN: record.capacity,
        PASSWORD_COLUMN: record.password,
    }


class RoomCatalogService:
    def __init__(
        self,
        repository: DataRepository,
        settings: Optional[Settings] = None,
    ) -> None:
        self._repository = repository
        self._settings = settings or get_settings()

    def upload(self, rows: Sequence[Mapping[str, Any]]) -> tuple[int, list[dict[str, Any]]]:
        """Merge uploaded rows into the catalog; returns (uploaded count, all records)."""
        if not rows:
            raise RoomCatalogValidationError("Invalid CSV data format or empty file")

        headers = [str(key) for key in rows[0].keys() if str(key) != "id"]
        missing = find_missing_columns(headers)
        if missing:
            raise RoomCatalogValidationError("Missing required columns", missing)

        parsed: list[tuple[str, str, int, str]] = []
        for index, row in enumerate(rows, start=1):
            hostel = _pick(row, HOSTEL_COLUMN)
            room_no = _pick(row, ROOM_COLUMN)
            if not hostel or not room_no:
                raise RoomCatalogValidationError(
                    f"Row {index} must include hostel name and room number"
                )
            capacity_raw = _pick(row, CAPACITY_COLUMN)
            capacity = parse_capacity(capacity_raw)
            if capacity <= 0:
                logger.warning(
                    "Room %s/%s has non-positive capacity %r; it will always show as full",
                    hostel,
                    room_no,
                    capacity_raw,
                )
                capacity = 0
            parsed.append((hostel, room_no, capacity, _pick(row, PASSWORD_COLUMN)))

        self._repository.upsert_rooms(parsed)
        records = self.list_rooms()
        logger.info(
            "Uploaded %s room rows, catalog now holds %s unique rooms",
            len(parsed),
            len(records),
        )
        return len(parsed), records

    def list_rooms(self, hostel: Optional[str] = None) -> list[dict[str, Any]]:
        selected = None if hostel in (None, "", "all") else hostel
        records = self._repository.list_rooms(selected)
        return [room_to_wire(record, index) for index, record in enumerate(records, start=1)]

    def hostels(self) -> dict[str, Any]:
        records = self._repository.list_rooms()
        counts = Counter(record.hostel for record in records if record.hostel)
        hostels = [{"name": name, "roomCount": counts[name]} for name in sorted(counts)]
        return {
            "hostels": hostels,
            "totalHostels": len(hostels),
            "totalRooms": len(records),
        }
