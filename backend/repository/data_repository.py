"""Repository layer responsible for all database access."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from backend.domain.models import AllocationConflict, ConfirmedAllocation
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


@dataclass(frozen=True)
class RoomRecord:
    """Room reference row with its display id."""

    room_id: int
    hostel: str
    room_no: str
    capacity: int
    password: str


@dataclass(frozen=True)
class RoomUsage:
    hostel: str
    room_no: str
    count: int


@dataclass(frozen=True)
class UpsertResult:
    count: int
    conflicts: list[AllocationConflict]


def normalize_key(value: object) -> str:
    """Case- and whitespace-insensitive identity used to deduplicate rooms."""
    return str(value if value is not None else "").strip().lower()


class DataRepository:
    """Encapsulates SQLite access so business logic stays storage-agnostic."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def database_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._db_path)
        connection.row_factory = sqlite3.Row
        return connection

    def initialize_database(self) -> None:
        """Create all persistence artifacts before API startup."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS allocations (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        name TEXT NOT NULL,
                        mi_no TEXT UNIQUE NOT NULL,
                        email TEXT NOT NULL,
                        hostel TEXT NOT NULL,
                        room_no TEXT NOT NULL,
                        room_password TEXT,
                        allocated_at TEXT,
                        created_at TEXT DEFAULT CURRENT_TIMESTAMP
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS rooms (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        hostel_name TEXT NOT NULL,
                        room_no TEXT NOT NULL,
                        capacity INTEGER NOT NULL,
                        password TEXT NOT NULL DEFAULT '',
                        hostel_key TEXT NOT NULL,
                        room_key TEXT NOT NULL,
                        UNIQUE (hostel_key, room_key)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_allocations_hostel_room
                    ON allocations(hostel, room_no);
                    """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_allocations_mi_no
                    ON allocations(mi_no);
                    """
                )
                conn.commit()
            logger.info("Database initialized at %s", self._db_path)
        except sqlite3.Error as exc:
            raise RuntimeError(f"Database initialization failed: {exc}") from exc

    # --- Allocations ---

    def upsert_allocations(self, allocations: Sequence[ConfirmedAllocation]) -> UpsertResult:
        """Persist a batch in one transaction, last write wins per mi_no."""
        if not allocations:
            return UpsertResult(count=0, conflicts=[])

        conflicts: list[AllocationConflict] = []
        conn = self._connect()
        try:
            with conn:
                cursor = conn.cursor()
                for allocation in allocations:
                    cursor.execute(
                        "SELECT hostel, room_no FROM allocations WHERE mi_no = ?;",
                        (allocation.mi_no,),
                    )
                    existing = cursor.fetchone()
                    if existing is not None and (
                        str(existing["hostel"]) != allocation.hostel
                        or str(existing["room_no"]) != allocation.room_no
                    ):
                        conflicts.append(
                            AllocationConflict(
                                mi_no=allocation.mi_no,
                                previous_hostel=str(existing["hostel"]),
                                previous_room_no=str(existing["room_no"]),
                                hostel=allocation.hostel,
                                room_no=allocation.room_no,
                            )
                        )
                    cursor.execute(
                        """
                        INSERT INTO allocations (
                            name, mi_no, email, hostel, room_no, room_password, allocated_at
                        )
                        VALUES (?, ?, ?, ?, ?, ?, ?)
                        ON CONFLICT(mi_no) DO UPDATE SET
                            name = excluded.name,
                            email = excluded.email,
                            hostel = excluded.hostel,
                            room_no = excluded.room_no,
                            room_password = excluded.room_password,
                            allocated_at = excluded.allocated_at;
                        """,
                        (
                            allocation.name,
                            allocation.mi_no,
                            allocation.email,
                            allocation.hostel,
                            allocation.room_no,
                            allocation.room_password or None,
                            allocation.allocated_at
                            or datetime.now(timezone.utc).isoformat(),
                        ),
                    )
        finally:
            conn.close()

        if conflicts:
            logger.warning(
                "Upsert moved %s already stored allocation(s) to a new room",
                len(conflicts),
            )
        return UpsertResult(count=len(allocations), conflicts=conflicts)

    def list_allocations(self) -> List[ConfirmedAllocation]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT name, mi_no, email, hostel, room_no, room_password, allocated_at
                FROM allocations
                ORDER BY allocated_at DESC, id DESC;
                """
            )
            return [self._to_allocation(row) for row in cursor.fetchall()]

    def list_allocations_by_room(self, hostel: str, room_no: str) -> List[ConfirmedAllocation]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT name, mi_no, email, hostel, room_no, room_password, allocated_at
                FROM allocations
                WHERE hostel = ? AND room_no = ?
                ORDER BY allocated_at DESC, id DESC;
                """,
                (hostel, room_no),
            )
            return [self._to_allocation(row) for row in cursor.fetchall()]

    def count_allocations(self) -> int:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) AS count FROM allocations;")
            return int(cursor.fetchone()["count"])

    def room_usage(self) -> List[RoomUsage]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT hostel, room_no, COUNT(*) AS count
                FROM allocations
                GROUP BY hostel, room_no
                ORDER BY hostel ASC, room_no ASC;
                """
            )
            return [
                RoomUsage(
                    hostel=str(row["hostel"]),
                    room_no=str(row["room_no"]),
                    count=int(row["count"]),
                )
                for row in cursor.fetchall()
            ]

    def clear_allocations(self) -> int:
        """Delete every stored allocation and return the number removed."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM allocations;")
            conn.commit()
            return int(cursor.rowcount)

    @staticmethod
    def _to_allocation(row: sqlite3.Row) -> ConfirmedAllocation:
        return ConfirmedAllocation(
            name=str(row["name"]),
            mi_no=str(row["mi_no"]),
            email=str(row["email"]),
            hostel=str(row["hostel"]),
            room_no=str(row["room_no"]),
            room_password=str(row["room_password"] or ""),
            allocated_at=str(row["allocated_at"] or ""),
        )

    # --- Room reference data ---

    def upsert_rooms(self, rooms: Iterable[tuple[str, str, int, str]]) -> None:
        """Insert or override rooms keyed by normalized (hostel, room_no)."""
        rows = [
            (hostel, room_no, capacity, password, normalize_key(hostel), normalize_key(room_no))
            for hostel, room_no, capacity, password in rooms
        ]
        if not rows:
            return
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.executemany(
                """
                INSERT INTO rooms (hostel_name, room_no, capacity, password, hostel_key, room_key)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(hostel_key, room_key) DO UPDATE SET
                    hostel_name = excluded.hostel_name,
                    room_no = excluded.room_no,
                    capacity = excluded.capacity,
                    password = excluded.password;
                """,
                rows,
            )
            conn.commit()

    def list_rooms(self, hostel: Optional[str] = None) -> List[RoomRecord]:
        """Return rooms in upload order, optionally for a single hostel."""
        with self._connect() as conn:
            cursor = conn.cursor()
            if hostel is None:
                cursor.execute(
                    """
                    SELECT id, hostel_name, room_no, capacity, password
                    FROM rooms
                    ORDER BY id ASC;
                    """
                )
            else:
                cursor.execute(
                    """
                    SELECT id, hostel_name, room_no, capacity, password
                    FROM rooms
                    WHERE hostel_name = ?
                    ORDER BY id ASC;
                    """,
                    (hostel,),
                )
            return [
                RoomRecord(
                    room_id=int(row["id"]),
                    hostel=str(row["hostel_name"]),
                    room_no=str(row["room_no"]),
                    capacity=int(row["capacity"]),
                    password=str(row["password"] or ""),
                )
                for row in cursor.fetchall()
            ]
