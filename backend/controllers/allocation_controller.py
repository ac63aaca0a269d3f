"""HTTP controller layer for the confirmed allocation store."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field

from backend.controllers.dependencies import get_allocation_service
from backend.domain.models import AllocationConflict, ConfirmedAllocation
from backend.services.allocation_service import (
    AllocationRecordService,
    AllocationRecordValidationError,
)
from backend.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(prefix="/api/allocation", tags=["allocation"])


class AllocationPayload(BaseModel):
    """One pending allocation as sent by an operator terminal."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    mi_no: str = Field(alias="miNo", min_length=1)
    email: str = Field(min_length=1)
    hostel: str = Field(min_length=1)
    room_no: str = Field(alias="roomNo", min_length=1)
    room_password: Optional[str] = Field(default=None, alias="roomPassword")
    timestamp: Optional[str] = None
    id: Optional[str] = None


class SaveAllocationsRequest(BaseModel):
    allocations: list[AllocationPayload] = Field(min_length=1)


class ConflictResponse(BaseModel):
    miNo: str
    previousHostel: str
    previousRoomNo: str
    hostel: str
    roomNo: str


class SaveAllocationsResponse(BaseModel):
    success: bool = True
    message: str
    count: int = Field(ge=0)
    conflicts: list[ConflictResponse] = Field(default_factory=list)


class AllocationRow(BaseModel):
    name: str
    mi_no: str
    email: str
    hostel: str
    room_no: str
    room_password: Optional[str] = None
    allocated_at: Optional[str] = None


class AllocationListResponse(BaseModel):
    success: bool = True
    allocations: list[AllocationRow]
    count: int = Field(ge=0)


class RoomUsageRow(BaseModel):
    hostel: str
    room_no: str
    count: int = Field(ge=0)


class AllocationStats(BaseModel):
    totalAllocations: int = Field(ge=0)
    roomsUsed: int = Field(ge=0)
    rooms: list[RoomUsageRow]


class AllocationStatsResponse(BaseModel):
    success: bool = True
    stats: AllocationStats


def _to_row(allocation: ConfirmedAllocation) -> AllocationRow:
    return AllocationRow(
        name=allocation.name,
        mi_no=allocation.mi_no,
        email=allocation.email,
        hostel=allocation.hostel,
        room_no=allocation.room_no,
        room_password=allocation.room_password or None,
        allocated_at=allocation.allocated_at or None,
    )


def _to_conflict(conflict: AllocationConflict) -> ConflictResponse:
    return ConflictResponse(
        miNo=conflict.mi_no,
        previousHostel=conflict.previous_hostel,
        previousRoomNo=conflict.previous_room_no,
        hostel=conflict.hostel,
        roomNo=conflict.room_no,
    )


@router.post(
    "/save",
    response_model=SaveAllocationsResponse,
    status_code=status.HTTP_200_OK,
)
async def save_allocations(
    payload: SaveAllocationsRequest,
    service: AllocationRecordService = Depends(get_allocation_service),
) -> SaveAllocationsResponse:
    """Persist a terminal batch; upserts by MI number so retries never duplicate."""
    try:
        result = service.save_batch(
            [
                ConfirmedAllocation(
                    name=item.name,
                    mi_no=item.mi_no,
                    email=item.email,
                    hostel=item.hostel,
                    room_no=item.room_no,
                    room_password=item.room_password or "",
                    allocated_at=item.timestamp or "",
                )
                for item in payload.allocations
            ]
        )
        return SaveAllocationsResponse(
            message=f"Successfully saved {result.count} allocations",
            count=result.count,
            conflicts=[_to_conflict(conflict) for conflict in result.conflicts],
        )
    except AllocationRecordValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected failure while saving allocations")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save allocations to database",
        ) from exc


@router.get(
    "/list",
    response_model=AllocationListResponse,
    status_code=status.HTTP_200_OK,
)
async def list_allocations(
    service: AllocationRecordService = Depends(get_allocation_service),
) -> AllocationListResponse:
    try:
        rows = [_to_row(item) for item in service.list_allocations()]
        return AllocationListResponse(allocations=rows, count=len(rows))
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected failure while listing allocations")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch allocations",
        ) from exc


@router.get(
    "/by-room/{hostel}/{room_no}",
    response_model=AllocationListResponse,
    status_code=status.HTTP_200_OK,
)
async def list_room_allocations(
    hostel: str,
    room_no: str,
    service: AllocationRecordService = Depends(get_allocation_service),
) -> AllocationListResponse:
    try:
        rows = [_to_row(item) for item in service.list_room_allocations(hostel, room_no)]
        return AllocationListResponse(allocations=rows, count=len(rows))
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected failure while listing room allocations")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch room allocations",
        ) from exc


@router.get(
    "/stats",
    response_model=AllocationStatsResponse,
    status_code=status.HTTP_200_OK,
)
async def allocation_stats(
    service: AllocationRecordService = Depends(get_allocation_service),
) -> AllocationStatsResponse:
    try:
        return AllocationStatsResponse(stats=AllocationStats(**service.statistics()))
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected failure while computing allocation statistics")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch statistics",
        ) from exc
