"""The single entry point allowed to create allocations."""

from __future__ import annotations

import threading
from typing import Callable, Optional

from backend.domain.models import Allocation, Person, Room
from backend.utils.logger import get_logger
from terminal.capacity_view import RoomCapacityView
from terminal.ledger import LocalAllocationLedger


logger = get_logger(__name__)


class AllocationError(Exception):
    """Base class for allocation refusals; nothing is written when raised."""


class MissingInputError(AllocationError):
    """Raised when no person was scanned or no room was selected."""


class AlreadyAllocatedError(AllocationError):
    """Raised when the MI number already holds a confirmed or pending allocation."""

    def __init__(self, mi_no: str, hostel: str, room_no: str, pending: bool) -> None:
        message = f"Person already allocated to {hostel} - Room {room_no}"
        if pending:
            message += " (pending sync)"
        super().__init__(message)
        self.mi_no = mi_no
        self.hostel = hostel
        self.room_no = room_no
        self.pending = pending


class RoomFullError(AllocationError):
    """Raised when the chosen room has no place left."""


class AllocationSuspendedError(AllocationError):
    """Raised while a sync is uploading the ledger."""


class AllocationOrchestrator:
    """Checks both allocation invariants and appends to the ledger.

    Check-then-append runs under a lock, so two callers in this process can
    never both pass the checks for the same person or the last free place.
    """

    def __init__(
        self,
        ledger: LocalAllocationLedger,
        capacity_view: RoomCapacityView,
        notifier: Optional[Callable[[Allocation], None]] = None,
    ) -> None:
        self._ledger = ledger
        self._capacity_view = capacity_view
        self._notifier = notifier
        self._lock = threading.Lock()
        self._suspended = False

    @property
    def suspended(self) -> bool:
        return self._suspended

    def suspend(self) -> None:
        with self._lock:
            self._suspended = True

    def resume(self) -> None:
        with self._lock:
            self._suspended = False

    def allocate(self, person: Optional[Person], room: Optional[Room]) -> Allocation:
        with self._lock:
            if self._suspended:
                raise AllocationSuspendedError("Sync in progress. Try again once it finishes.")

            if person is None or room is None:
                raise MissingInputError("Please scan a QR code and select a room")

            confirmed = self._capacity_view.confirmed_for(person.mi_no)
            if confirmed is not None:
                raise AlreadyAllocatedError(
                    person.mi_no, confirmed.hostel, confirmed.room_no, pending=False
                )

            pending = self._ledger.find_by_mi_no(person.mi_no)
            if pending is not None:
                raise AlreadyAllocatedError(
                    person.mi_no, pending.hostel, pending.room_no, pending=True
                )

            if self._capacity_view.available(room) <= 0:
                raise RoomFullError("Room is full! Cannot allocate more people.")

            allocation = self._ledger.append(
                {
                    "name": person.name,
                    "mi_no": person.mi_no,
                    "email": person.email,
                    "hostel": room.hostel,
                    "room_no": room.room_no,
                    "room_password": room.password,
                }
            )

        logger.info(
            "Allocated %s - Room %s to %s (%s)",
            allocation.hostel,
            allocation.room_no,
            allocation.name,
            allocation.mi_no,
        )
        if self._notifier is not None:
            self._notifier(allocation)
        return allocation
