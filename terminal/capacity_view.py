"""Live room occupancy over confirmed allocations plus the pending ledger."""

from __future__ import annotations

from typing import Iterable, Optional

from backend.domain.models import ConfirmedAllocation, Room, RoomOccupancy
from terminal.ledger import LocalAllocationLedger


class RoomCapacityView:
    """Pure computation over the latest fetched inputs.

    The pending side is read from the ledger on every call, and the room and
    confirmed lists are replaced wholesale on refresh, so nothing computed
    here can outlive the inputs it came from.
    """

    def __init__(
        self,
        ledger: LocalAllocationLedger,
        rooms: Iterable[Room] = (),
        confirmed: Iterable[ConfirmedAllocation] = (),
    ) -> None:
        self._ledger = ledger
        self._rooms: tuple[Room, ...] = tuple(rooms)
        self._confirmed: tuple[ConfirmedAllocation, ...] = tuple(confirmed)

    @property
    def rooms(self) -> tuple[Room, ...]:
        return self._rooms

    @property
    def confirmed(self) -> tuple[ConfirmedAllocation, ...]:
        return self._confirmed

    def update_rooms(self, rooms: Iterable[Room]) -> None:
        self._rooms = tuple(rooms)

    def update_confirmed(self, confirmed: Iterable[ConfirmedAllocation]) -> None:
        self._confirmed = tuple(confirmed)

    def occupied(self, hostel: str, room_no: str) -> int:
        key = (hostel, room_no)
        confirmed = sum(1 for allocation in self._confirmed if allocation.room_key == key)
        pending = sum(1 for allocation in self._ledger.all() if allocation.room_key == key)
        return confirmed + pending

    def available(self, room: Room) -> int:
        """Remaining places; zero or negative once a room is full or over-allocated."""
        return room.capacity - self.occupied(room.hostel, room.room_no)

    def is_full(self, room: Room) -> bool:
        return self.available(room) <= 0

    def occupancy_label(self, room: Room) -> str:
        return f"{self.occupied(room.hostel, room.room_no)}/{room.capacity}"

    def hostels(self) -> list[str]:
        return sorted({room.hostel for room in self._rooms if room.hostel})

    def rooms_in(self, hostel: str) -> list[Room]:
        return [room for room in self._rooms if room.hostel == hostel]

    def find_room(self, hostel: str, room_no: str) -> Optional[Room]:
        for room in self._rooms:
            if room.hostel == hostel and room.room_no == room_no:
                return room
        return None

    def confirmed_for(self, mi_no: str) -> Optional[ConfirmedAllocation]:
        for allocation in self._confirmed:
            if allocation.mi_no == mi_no:
                return allocation
        return None

    def snapshot(self, hostel: Optional[str] = None) -> list[RoomOccupancy]:
        """Occupancy rows for every room (or one hostel) from a single ledger read."""
        pending = self._ledger.all()
        counts: dict[tuple[str, str], int] = {}
        for allocation in (*self._confirmed, *pending):
            counts[allocation.room_key] = counts.get(allocation.room_key, 0) + 1

        rooms = self._rooms if hostel is None else self.rooms_in(hostel)
        rows = []
        for room in rooms:
            occupied = counts.get(room.key, 0)
            rows.append(
                RoomOccupancy(
                    hostel=room.hostel,
                    room_no=room.room_no,
                    capacity=room.capacity,
                    occupied=occupied,
                    available=room.capacity - occupied,
                )
            )
        return rows
