"""Backend-of-record service for confirmed room allocations."""

from __future__ import annotations

from typing import Any, Optional, Sequence

from backend.domain.models import ConfirmedAllocation
from backend.repository.data_repository import DataRepository, UpsertResult
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


class AllocationRecordValidationError(Exception):
    """Raised when a submitted allocation batch is unusable."""


class AllocationRecordService:
    """Persists synced batches and answers confirmed-set queries."""

    def __init__(
        self,
        repository: DataRepository,
        settings: Optional[Settings] = None,
    ) -> None:
        self._repository = repository
        self._settings = settings or get_settings()

    def save_batch(self, allocations: Sequence[ConfirmedAllocation]) -> UpsertResult:
        """Upsert a terminal's pending batch; retries of the same batch are idempotent."""
        if not allocations:
            raise AllocationRecordValidationError("Invalid allocations data")
        for allocation in allocations:
            missing = [
                field_name
                for field_name in ("name", "mi_no", "email", "hostel", "room_no")
                if not str(getattr(allocation, field_name)).strip()
            ]
            if missing:
                raise AllocationRecordValidationError(
                    f"Allocation for '{allocation.mi_no or '?'}' is missing: {', '.join(missing)}"
                )

        result = self._repository.upsert_allocations(allocations)
        logger.info(
            "Saved %s allocations (%s room change conflicts)",
            result.count,
            len(result.conflicts),
        )
        return result

    def list_allocations(self) -> list[ConfirmedAllocation]:
        return self._repository.list_allocations()

    def list_room_allocations(self, hostel: str, room_no: str) -> list[ConfirmedAllocation]:
        return self._repository.list_allocations_by_room(hostel, room_no)

    def statistics(self) -> dict[str, Any]:
        usage = self._repository.room_usage()
        return {
            "totalAllocations": self._repository.count_allocations(),
            "roomsUsed": len(usage),
            "rooms": [
                {"hostel": item.hostel, "room_no": item.room_no, "count": item.count}
                for item in usage
            ],
        }
