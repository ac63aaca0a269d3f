"""Shared FastAPI dependency providers for controller layer."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from backend.repository.data_repository import DataRepository
from backend.services.allocation_service import AllocationRecordService
from backend.services.room_catalog_service import RoomCatalogService
from backend.utils.config import get_settings


def _get_repository(request: Request) -> DataRepository | None:
    return getattr(request.app.state, "repository", None)


def get_allocation_service(request: Request) -> AllocationRecordService:
    service = getattr(request.app.state, "allocation_service", None)
    if service is None:
        repository = _get_repository(request)
        if repository is not None:
            service = AllocationRecordService(repository=repository, settings=get_settings())
            request.app.state.allocation_service = service
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Allocation service is not initialized",
        )
    return service


def get_room_catalog_service(request: Request) -> RoomCatalogService:
    service = getattr(request.app.state, "room_catalog_service", None)
    if service is None:
        repository = _get_repository(request)
        if repository is not None:
            service = RoomCatalogService(repository=repository, settings=get_settings())
            request.app.state.room_catalog_service = service
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Room catalog service is not initialized",
        )
    return service
