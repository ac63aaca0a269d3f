"""HTTP client for the backend-of-record plus the wire <-> domain mapping layer."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence

import requests

from backend.domain.models import Allocation, AllocationConflict, ConfirmedAllocation, Room
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


class SyncError(Exception):
    """Base class for backend communication failures; all are retryable."""

    kind = "error"


class SyncTimeoutError(SyncError):
    kind = "timeout"


class SyncTransportError(SyncError):
    kind = "network"


class SyncServerError(SyncError):
    kind = "server"

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class SaveResult:
    count: int
    conflicts: list[AllocationConflict] = field(default_factory=list)


# --- Mapping layer ---

def _text(row: Mapping[str, Any], key: str) -> str:
    value = row.get(key)
    return "" if value is None else str(value).strip()


def parse_capacity(raw: Any) -> int:
    """Integer capacity; anything unparseable counts as zero places."""
    try:
        return int(float(str(raw).strip()))
    except (TypeError, ValueError):
        return 0


def room_from_wire(row: Mapping[str, Any]) -> Room:
    return Room(
        hostel=_text(row, "hostel name"),
        room_no=_text(row, "available room no."),
        capacity=parse_capacity(row.get("room capacity")),
        password=_text(row, "room password"),
    )


def confirmed_from_wire(row: Mapping[str, Any]) -> ConfirmedAllocation:
    return ConfirmedAllocation(
        name=_text(row, "name"),
        mi_no=_text(row, "mi_no"),
        email=_text(row, "email"),
        hostel=_text(row, "hostel"),
        room_no=_text(row, "room_no"),
        room_password=_text(row, "room_password"),
        allocated_at=_text(row, "allocated_at"),
    )


def allocation_to_wire(allocation: Allocation) -> dict[str, str]:
    return {
        "name": allocation.name,
        "miNo": allocation.mi_no,
        "email": allocation.email,
        "hostel": allocation.hostel,
        "roomNo": allocation.room_no,
        "roomPassword": allocation.room_password,
        "timestamp": allocation.timestamp,
    }


def conflict_from_wire(row: Mapping[str, Any]) -> AllocationConflict:
    return AllocationConflict(
        mi_no=_text(row, "miNo"),
        previous_hostel=_text(row, "previousHostel"),
        previous_room_no=_text(row, "previousRoomNo"),
        hostel=_text(row, "hostel"),
        room_no=_text(row, "roomNo"),
    )


class BackendClient:
    """Thin requests wrapper; every call carries an explicit timeout."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        settings: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._base_url = (base_url or self._settings.backend_base_url).rstrip("/")
        self._session = session or requests.Session()

    @property
    def base_url(self) -> str:
        return self._base_url

    def _request(
        self,
        method: str,
        path: str,
        timeout: float,
        **kwargs: Any,
    ) -> dict[str, Any]:
        url = f"{self._base_url}{path}"
        try:
            response = self._session.request(method, url, timeout=timeout, **kwargs)
        except requests.exceptions.Timeout as exc:
            raise SyncTimeoutError(f"Request to {path} timed out after {timeout:g}s") from exc
        except requests.exceptions.ConnectionError as exc:
            raise SyncTransportError(f"Network error contacting {url}: {exc}") from exc
        except requests.exceptions.RequestException as exc:
            raise SyncTransportError(f"Request to {url} failed: {exc}") from exc

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

        if not response.ok:
            message = payload.get("error") or f"Server error: {response.status_code}"
            raise SyncServerError(str(message), status_code=response.status_code)
        if not payload.get("success"):
            message = payload.get("error") or "Backend reported failure"
            raise SyncServerError(str(message), status_code=response.status_code)
        return payload

    def fetch_rooms(self, hostel: str = "all") -> list[Room]:
        payload = self._request(
            "GET",
            "/dashboard/data",
            timeout=self._settings.rooms_timeout_seconds,
            params={"hostel": hostel},
        )
        rooms = [room_from_wire(row) for row in payload.get("data") or []]
        logger.info("Fetched %s rooms (hostel=%s)", len(rooms), hostel)
        return rooms

    def fetch_confirmed_allocations(self) -> list[ConfirmedAllocation]:
        payload = self._request(
            "GET",
            "/allocation/list",
            timeout=self._settings.list_timeout_seconds,
        )
        return [confirmed_from_wire(row) for row in payload.get("allocations") or []]

    def load_confirmed_allocations(self) -> list[ConfirmedAllocation]:
        """Fetch the confirmed set, retrying a few times as a page load does."""
        attempts = max(1, self._settings.confirmed_fetch_attempts)
        attempt = 1
        while True:
            try:
                return self.fetch_confirmed_allocations()
            except SyncError as exc:
                if attempt >= attempts:
                    raise
                attempt += 1
                logger.warning(
                    "Loading allocations failed (%s); attempt %s/%s",
                    exc,
                    attempt,
                    attempts,
                )
                time.sleep(self._settings.confirmed_fetch_retry_seconds)

    def save_allocations(self, allocations: Sequence[Allocation]) -> SaveResult:
        payload = self._request(
            "POST",
            "/allocation/save",
            timeout=self._settings.sync_timeout_seconds,
            json={"allocations": [allocation_to_wire(item) for item in allocations]},
        )
        raw_count = payload.get("count", len(allocations))
        try:
            count = int(raw_count)
        except (TypeError, ValueError) as exc:
            raise SyncServerError(f"Backend returned an invalid count: {raw_count!r}") from exc
        conflicts = [conflict_from_wire(row) for row in payload.get("conflicts") or []]
        return SaveResult(count=count, conflicts=conflicts)
