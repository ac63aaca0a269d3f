"""Controller layer for room reference data used by operator terminals."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field

from backend.controllers.dependencies import get_room_catalog_service
from backend.services.room_catalog_service import (
    REQUIRED_COLUMNS,
    RoomCatalogService,
    RoomCatalogValidationError,
)
from backend.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


class UploadRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    csv_data: list[dict[str, Any]] = Field(alias="csvData")


class UploadData(BaseModel):
    recordCount: int = Field(ge=0)
    records: list[dict[str, Any]]


class UploadResponse(BaseModel):
    success: bool = True
    message: str
    data: UploadData


class RoomDataResponse(BaseModel):
    success: bool = True
    data: list[dict[str, Any]]
    recordCount: int = Field(ge=0)
    message: str = "Data retrieved successfully"


class HostelRow(BaseModel):
    name: str
    roomCount: int = Field(ge=0)


class HostelsResponse(BaseModel):
    success: bool = True
    hostels: list[HostelRow]
    totalHostels: int = Field(ge=0)
    totalRooms: int = Field(ge=0)


@router.post(
    "/upload",
    response_model=UploadResponse,
    status_code=status.HTTP_200_OK,
)
async def upload_rooms(
    payload: UploadRequest,
    service: RoomCatalogService = Depends(get_room_catalog_service),
) -> UploadResponse:
    """Merge uploaded rows into the room catalog, newer rows overriding older ones."""
    try:
        uploaded, records = service.upload(payload.csv_data)
        return UploadResponse(
            message=(
                f"Successfully uploaded {uploaded} records, total unique: {len(records)}"
            ),
            data=UploadData(recordCount=len(records), records=records),
        )
    except RoomCatalogValidationError as exc:
        detail: Any = str(exc)
        if exc.missing_columns:
            detail = {
                "error": str(exc),
                "missingColumns": exc.missing_columns,
                "requiredColumns": list(REQUIRED_COLUMNS),
            }
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected room upload failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to upload CSV data",
        ) from exc


@router.get(
    "/data",
    response_model=RoomDataResponse,
    status_code=status.HTTP_200_OK,
)
async def room_data(
    hostel: Optional[str] = Query(default=None),
    service: RoomCatalogService = Depends(get_room_catalog_service),
) -> RoomDataResponse:
    try:
        rows = service.list_rooms(hostel)
        return RoomDataResponse(data=rows, recordCount=len(rows))
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected failure while reading room data")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch data",
        ) from exc


@router.get(
    "/hostels",
    response_model=HostelsResponse,
    status_code=status.HTTP_200_OK,
)
async def hostels(
    service: RoomCatalogService = Depends(get_room_catalog_service),
) -> HostelsResponse:
    try:
        return HostelsResponse(**service.hostels())
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected failure while listing hostels")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch hostel list",
        ) from exc
