"""Durable client-side ledger of allocations awaiting sync."""

from __future__ import annotations

import json
import os
import tempfile
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Protocol

from backend.domain.models import Allocation
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)

# Blob keys mirror the sync wire format so a ledger file can be posted as-is.
_STORAGE_FIELDS = {
    "id": "id",
    "name": "name",
    "mi_no": "miNo",
    "email": "email",
    "hostel": "hostel",
    "room_no": "roomNo",
    "room_password": "roomPassword",
    "timestamp": "timestamp",
}


class StorageError(Exception):
    """Raised when the ledger cannot be persisted."""


class KeyValueStorage(Protocol):
    def read(self, key: str) -> Optional[str]: ...

    def write(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryStorage:
    """Volatile storage used by tests and throwaway sessions."""

    def __init__(self, initial: Optional[Mapping[str, str]] = None) -> None:
        self._values: dict[str, str] = dict(initial or {})

    def read(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def write(self, key: str, value: str) -> None:
        self._values[key] = value

    def delete(self, key: str) -> None:
        self._values.pop(key, None)


class FileStorage:
    """One JSON blob per key, replaced atomically so a crash never leaves half a file."""

    def __init__(self, directory: Path) -> None:
        self._directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self._directory / f"{key}.json"

    def read(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageError(f"Failed to read {path}: {exc}") from exc

    def write(self, key: str, value: str) -> None:
        path = self._path(key)
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            fd, temp_name = tempfile.mkstemp(dir=self._directory, prefix=f".{key}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(value)
                    handle.flush()
                    os.fsync(handle.fileno())
                os.replace(temp_name, path)
            except BaseException:
                if os.path.exists(temp_name):
                    os.unlink(temp_name)
                raise
        except OSError as exc:
            raise StorageError(f"Failed to write {path}: {exc}") from exc

    def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"Failed to delete {path}: {exc}") from exc


@dataclass
class RoomGroup:
    hostel: str
    room_no: str
    count: int = 0
    allocations: list[Allocation] = field(default_factory=list)


@dataclass
class LedgerStats:
    total_allocations: int
    rooms: list[RoomGroup]


def allocation_to_record(allocation: Allocation) -> dict[str, str]:
    values = asdict(allocation)
    return {wire: values[attr] for attr, wire in _STORAGE_FIELDS.items()}


def allocation_from_record(record: Mapping[str, Any]) -> Allocation:
    return Allocation(
        **{attr: str(record.get(wire) or "") for attr, wire in _STORAGE_FIELDS.items()}
    )


def new_allocation_id() -> str:
    millis = int(datetime.now(timezone.utc).timestamp() * 1000)
    return f"alloc_{millis}_{uuid.uuid4().hex[:9]}"


class LocalAllocationLedger:
    """Append-only store of pending allocations.

    Every read goes back to storage, so two ledgers over the same storage never
    disagree and a page reload sees exactly what was persisted.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        storage_key: Optional[str] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._storage = storage
        self._key = storage_key or self._settings.ledger_storage_key

    @property
    def storage_key(self) -> str:
        return self._key

    def _load_records(self) -> list[dict[str, Any]]:
        raw = self._storage.read(self._key)
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("Ledger blob %s is corrupt; treating as empty", self._key)
            return []
        if not isinstance(data, list):
            logger.warning("Ledger blob %s is not a list; treating as empty", self._key)
            return []
        return [item for item in data if isinstance(item, dict)]

    def _persist(self, records: list[dict[str, Any]]) -> None:
        self._storage.write(self._key, json.dumps(records))

    def all(self) -> list[Allocation]:
        return [allocation_from_record(record) for record in self._load_records()]

    def append(self, fields: Mapping[str, str]) -> Allocation:
        """Store a new pending allocation with a generated id and timestamp."""
        allocation = Allocation(
            id=new_allocation_id(),
            name=fields["name"],
            mi_no=fields["mi_no"],
            email=fields["email"],
            hostel=fields["hostel"],
            room_no=fields["room_no"],
            room_password=fields.get("room_password") or "",
            timestamp=datetime.now(timezone.utc).isoformat(),
        )
        records = self._load_records()
        records.append(allocation_to_record(allocation))
        try:
            self._persist(records)
        except (OSError, TypeError, ValueError) as exc:
            raise StorageError(f"Failed to save allocation: {exc}") from exc
        logger.debug("Ledger append %s (%s)", allocation.id, allocation.mi_no)
        return allocation

    def find_by_mi_no(self, mi_no: str) -> Optional[Allocation]:
        for allocation in self.all():
            if allocation.mi_no == mi_no:
                return allocation
        return None

    def for_room(self, hostel: str, room_no: str) -> list[Allocation]:
        return [
            allocation
            for allocation in self.all()
            if allocation.hostel == hostel and allocation.room_no == room_no
        ]

    def count_for_room(self, hostel: str, room_no: str) -> int:
        return len(self.for_room(hostel, room_no))

    def remove_by_id(self, allocation_id: str) -> bool:
        return self.remove_many([allocation_id]) > 0

    def remove_many(self, allocation_ids: Iterable[str]) -> int:
        """Drop the given ids; returns how many records were removed."""
        targets = set(allocation_ids)
        records = self._load_records()
        kept = [record for record in records if record.get("id") not in targets]
        removed = len(records) - len(kept)
        if removed:
            try:
                self._persist(kept)
            except (OSError, TypeError, ValueError) as exc:
                raise StorageError(f"Failed to remove allocation: {exc}") from exc
        return removed

    def clear(self) -> None:
        """Drop every pending record; only the sync service calls this after a confirmed upload."""
        try:
            self._storage.delete(self._key)
        except OSError as exc:
            raise StorageError(f"Failed to clear allocations: {exc}") from exc

    def __len__(self) -> int:
        return len(self._load_records())

    def stats(self) -> LedgerStats:
        groups: dict[tuple[str, str], RoomGroup] = {}
        allocations = self.all()
        for allocation in allocations:
            group = groups.setdefault(
                allocation.room_key,
                RoomGroup(hostel=allocation.hostel, room_no=allocation.room_no),
            )
            group.count += 1
            group.allocations.append(allocation)
        return LedgerStats(total_allocations=len(allocations), rooms=list(groups.values()))
