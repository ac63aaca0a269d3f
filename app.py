"""
app.py: FastAPI application factory and startup lifecycle.

This is the ASGI application object imported by uvicorn. It serves the
backend-of-record for operator terminals: room reference data and the
confirmed allocation store.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from backend.controllers.allocation_controller import router as allocation_router
from backend.controllers.dashboard_controller import router as dashboard_router
from backend.repository.data_repository import DataRepository
from backend.services.allocation_service import AllocationRecordService
from backend.services.room_catalog_service import RoomCatalogService
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


def _error_body(detail: object) -> dict:
    """Every failure reaches terminals as {success: false, error: <text>}."""
    if isinstance(detail, dict):
        body = {"success": False}
        body.update(detail)
        body.setdefault("error", "Request failed")
        return body
    return {"success": False, "error": str(detail)}


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = first.get("msg", "Invalid request")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=_error_body(f"Invalid request data: {location} {message}".strip()),
        )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build and wire the FastAPI application.

    Services are attached to app.state so controllers resolve them through
    dependency providers; nothing is held in module globals.
    """
    settings = settings or get_settings()

    repository = DataRepository(settings)
    allocation_service = AllocationRecordService(repository=repository, settings=settings)
    room_catalog_service = RoomCatalogService(repository=repository, settings=settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Run startup initialization before accepting requests."""
        _startup(app)
        yield

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    app.include_router(allocation_router)
    app.include_router(dashboard_router)
    _register_error_handlers(app)

    app.state.repository = repository
    app.state.allocation_service = allocation_service
    app.state.room_catalog_service = room_catalog_service

    return app


def _startup(app: FastAPI) -> None:
    """Idempotent startup sequence. Safe to re-run on server restarts."""
    repository: DataRepository = app.state.repository

    logger.info("Startup: initializing database schema")
    repository.initialize_database()

    logger.info("Startup complete, backend ready")


# Module-level app object for uvicorn
app = create_app()
