"""Environment-driven application settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional


PROJECT_ROOT = Path(__file__).resolve().parents[2]


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


def _env_optional_int(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    value = int(raw)
    # 0 means "retry until cancelled"
    return value or None


@dataclass(frozen=True)
class Settings:
    app_name: str
    app_version: str
    log_level: str

    # Backend-of-record
    database_path: Path
    api_host: str
    api_port: int

    # Operator terminal
    backend_base_url: str
    rooms_timeout_seconds: float
    list_timeout_seconds: float
    sync_timeout_seconds: float
    sync_backoff_seconds: float
    sync_max_attempts: Optional[int]
    confirmed_fetch_attempts: int
    confirmed_fetch_retry_seconds: float

    ledger_directory: Path
    ledger_storage_key: str

    scan_bare_id_min_length: int
    scan_bare_id_max_length: int
    scan_camera_fps: int
    scan_unknown_name: str
    scan_unknown_email: str

    report_directory: Path
    report_title: str


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings once per process from environment variables."""
    return Settings(
        app_name=os.getenv("APP_NAME", "Room Allocation Backend"),
        app_version=os.getenv("APP_VERSION", "1.0.0"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        database_path=Path(
            os.getenv("DATABASE_PATH", str(PROJECT_ROOT / "data" / "allocations.db"))
        ),
        api_host=os.getenv("API_HOST", "127.0.0.1"),
        api_port=_env_int("API_PORT", 5000),
        backend_base_url=os.getenv("BACKEND_BASE_URL", "http://127.0.0.1:5000/api"),
        rooms_timeout_seconds=_env_float("ROOMS_TIMEOUT_SECONDS", 10.0),
        list_timeout_seconds=_env_float("LIST_TIMEOUT_SECONDS", 15.0),
        sync_timeout_seconds=_env_float("SYNC_TIMEOUT_SECONDS", 10.0),
        sync_backoff_seconds=_env_float("SYNC_BACKOFF_SECONDS", 0.5),
        sync_max_attempts=_env_optional_int("SYNC_MAX_ATTEMPTS"),
        confirmed_fetch_attempts=_env_int("CONFIRMED_FETCH_ATTEMPTS", 3),
        confirmed_fetch_retry_seconds=_env_float("CONFIRMED_FETCH_RETRY_SECONDS", 2.0),
        ledger_directory=Path(
            os.getenv("LEDGER_DIRECTORY", str(PROJECT_ROOT / "data" / "ledger"))
        ),
        ledger_storage_key=os.getenv("LEDGER_STORAGE_KEY", "friday_allocations"),
        scan_bare_id_min_length=_env_int("SCAN_BARE_ID_MIN_LENGTH", 5),
        scan_bare_id_max_length=_env_int("SCAN_BARE_ID_MAX_LENGTH", 64),
        scan_camera_fps=_env_int("SCAN_CAMERA_FPS", 10),
        scan_unknown_name=os.getenv("SCAN_UNKNOWN_NAME", "Unknown"),
        scan_unknown_email=os.getenv("SCAN_UNKNOWN_EMAIL", "unknown"),
        report_directory=Path(
            os.getenv("REPORT_DIRECTORY", str(PROJECT_ROOT / "data" / "reports"))
        ),
        report_title=os.getenv("REPORT_TITLE", "Room Allocations"),
    )
