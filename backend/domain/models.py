"""Domain models shared by the backend-of-record and the operator terminal."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Person:
    name: str
    mi_no: str
    email: str


@dataclass(frozen=True)
class Room:
    hostel: str
    room_no: str
    capacity: int
    password: str = ""

    @property
    def key(self) -> tuple[str, str]:
        return (self.hostel, self.room_no)


@dataclass(frozen=True)
class Allocation:
    """Pending allocation recorded on an operator terminal."""

    id: str
    name: str
    mi_no: str
    email: str
    hostel: str
    room_no: str
    room_password: str
    timestamp: str

    @property
    def person(self) -> Person:
        return Person(name=self.name, mi_no=self.mi_no, email=self.email)

    @property
    def room_key(self) -> tuple[str, str]:
        return (self.hostel, self.room_no)


@dataclass(frozen=True)
class ConfirmedAllocation:
    """Allocation persisted by the backend-of-record."""

    name: str
    mi_no: str
    email: str
    hostel: str
    room_no: str
    room_password: str
    allocated_at: str

    @property
    def room_key(self) -> tuple[str, str]:
        return (self.hostel, self.room_no)


@dataclass(frozen=True)
class AllocationConflict:
    """An upsert that moved an already stored person to a different room."""

    mi_no: str
    previous_hostel: str
    previous_room_no: str
    hostel: str
    room_no: str


@dataclass(frozen=True)
class RoomOccupancy:
    hostel: str
    room_no: str
    capacity: int
    occupied: int
    available: int
