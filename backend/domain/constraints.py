"""Domain-level validation rules for scanning and sync retry settings."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ScanConfig:
    bare_id_min_length: int
    bare_id_max_length: int
    camera_fps: int
    unknown_name: str
    unknown_email: str


@dataclass(frozen=True)
class RetryConfig:
    backoff_seconds: float
    max_attempts: Optional[int]
    request_timeout_seconds: float


def validate_scan_config(config: ScanConfig) -> None:
    if config.bare_id_min_length < 0:
        raise ValueError("bare_id_min_length must be >= 0")
    # Both bounds are exclusive, so at least one length must fit between them.
    if config.bare_id_max_length - config.bare_id_min_length < 2:
        raise ValueError("bare_id_max_length must exceed bare_id_min_length by at least 2")
    if config.camera_fps <= 0:
        raise ValueError("camera_fps must be > 0")
    if not config.unknown_name.strip():
        raise ValueError("unknown_name must be non-empty")


def validate_retry_config(config: RetryConfig) -> None:
    if config.backoff_seconds < 0:
        raise ValueError("backoff_seconds must be >= 0")
    if config.max_attempts is not None and config.max_attempts <= 0:
        raise ValueError("max_attempts must be > 0 when provided")
    if config.request_timeout_seconds <= 0:
        raise ValueError("request_timeout_seconds must be > 0")
