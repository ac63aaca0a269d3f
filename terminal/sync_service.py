"""Upload the pending ledger to the backend-of-record and clear it on confirmation."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Protocol, Sequence

from backend.domain.constraints import RetryConfig, validate_retry_config
from backend.domain.models import Allocation, AllocationConflict
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger
from terminal.api_client import (
    SaveResult,
    SyncError,
    SyncServerError,
    SyncTimeoutError,
    SyncTransportError,
)
from terminal.ledger import LocalAllocationLedger


logger = get_logger(__name__)

StatusCallback = Callable[[str], None]


class AllocationUploader(Protocol):
    def save_allocations(self, allocations: Sequence[Allocation]) -> SaveResult: ...


class CancellationToken(threading.Event):
    """Set from the UI to stop a retry loop; waits on it wake up immediately."""

    def cancel(self) -> None:
        self.set()

    @property
    def cancelled(self) -> bool:
        return self.is_set()


@dataclass(frozen=True)
class RetryPolicy:
    backoff_seconds: float = 0.5
    max_attempts: Optional[int] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        validate_retry_config(
            RetryConfig(
                backoff_seconds=settings.sync_backoff_seconds,
                max_attempts=settings.sync_max_attempts,
                request_timeout_seconds=settings.sync_timeout_seconds,
            )
        )
        return cls(
            backoff_seconds=settings.sync_backoff_seconds,
            max_attempts=settings.sync_max_attempts,
        )

    def allows(self, attempt: int) -> bool:
        return self.max_attempts is None or attempt <= self.max_attempts


class SyncStatus(str, Enum):
    NOTHING_TO_SYNC = "nothing_to_sync"
    SYNCED = "synced"
    CANCELLED = "cancelled"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class SyncOutcome:
    status: SyncStatus
    count: int = 0
    attempts: int = 0
    message: str = ""
    conflicts: list[AllocationConflict] = field(default_factory=list)
    report_path: Optional[Path] = None

    @property
    def succeeded(self) -> bool:
        return self.status is SyncStatus.SYNCED


def describe_failure(error: Exception, attempt: int) -> str:
    if isinstance(error, SyncTimeoutError):
        return f"Request timed out. Retrying... (Attempt {attempt})"
    if isinstance(error, SyncTransportError):
        return f"Network error. Retrying... (Attempt {attempt})"
    if isinstance(error, SyncServerError):
        return f"Server error ({error}). Retrying... (Attempt {attempt})"
    return f"Sync failed. Retrying... (Attempt {attempt})"


class SyncReconciliationService:
    """Sends the whole ledger as one batch and retries until confirmed or cancelled.

    The ledger is only touched after the backend confirms the batch, and then
    only the synced records are removed.
    """

    def __init__(
        self,
        ledger: LocalAllocationLedger,
        uploader: AllocationUploader,
        retry_policy: Optional[RetryPolicy] = None,
        report_builder: Optional[Callable[[Sequence[Allocation]], Path]] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._ledger = ledger
        self._uploader = uploader
        self._retry_policy = retry_policy or RetryPolicy.from_settings(self._settings)
        self._report_builder = report_builder
        self._start_hooks: list[Callable[[], None]] = []
        self._finish_hooks: list[Callable[[], None]] = []
        self._in_progress = threading.Lock()

    @property
    def in_progress(self) -> bool:
        return self._in_progress.locked()

    def on_sync_start(self, hook: Callable[[], None]) -> None:
        self._start_hooks.append(hook)

    def on_sync_finish(self, hook: Callable[[], None]) -> None:
        self._finish_hooks.append(hook)

    def sync_all(
        self,
        cancel_token: Optional[CancellationToken] = None,
        on_status: Optional[StatusCallback] = None,
    ) -> SyncOutcome:
        batch = self._ledger.all()
        if not batch:
            message = "No allocations to sync"
            self._publish(on_status, message)
            return SyncOutcome(status=SyncStatus.NOTHING_TO_SYNC, message=message)

        if not self._in_progress.acquire(blocking=False):
            raise RuntimeError("A sync is already in progress")
        try:
            for hook in self._start_hooks:
                hook()
            return self._run(batch, cancel_token or CancellationToken(), on_status)
        finally:
            for hook in self._finish_hooks:
                hook()
            self._in_progress.release()

    def _run(
        self,
        batch: list[Allocation],
        cancel_token: CancellationToken,
        on_status: Optional[StatusCallback],
    ) -> SyncOutcome:
        attempt = 0
        while not cancel_token.cancelled:
            attempt += 1
            if not self._retry_policy.allows(attempt):
                message = f"Sync gave up after {attempt - 1} attempts; allocations kept locally"
                self._publish(on_status, message)
                return SyncOutcome(
                    status=SyncStatus.EXHAUSTED,
                    attempts=attempt - 1,
                    message=message,
                )

            try:
                result = self._uploader.save_allocations(batch)
            except SyncError as exc:
                logger.warning("Sync attempt %s failed: %s", attempt, exc)
                self._publish(on_status, describe_failure(exc, attempt))
                cancel_token.wait(self._retry_policy.backoff_seconds)
                continue

            return self._confirm(batch, result, attempt, on_status)

        message = "Sync cancelled; allocations kept locally"
        self._publish(on_status, message)
        return SyncOutcome(status=SyncStatus.CANCELLED, attempts=attempt, message=message)

    def _confirm(
        self,
        batch: list[Allocation],
        result: SaveResult,
        attempt: int,
        on_status: Optional[StatusCallback],
    ) -> SyncOutcome:
        # Persistence is the durability boundary; the report is best effort.
        report_path: Optional[Path] = None
        if self._report_builder is not None:
            try:
                report_path = self._report_builder(batch)
            except Exception:
                logger.exception("Report generation failed after a confirmed sync")

        batch_ids = {allocation.id for allocation in batch}
        current_ids = {allocation.id for allocation in self._ledger.all()}
        if current_ids == batch_ids:
            self._ledger.clear()
        else:
            self._ledger.remove_many(batch_ids)
            logger.warning(
                "Ledger changed during sync; kept %s allocation(s) for the next sync",
                len(current_ids - batch_ids),
            )

        for conflict in result.conflicts:
            logger.warning(
                "%s moved from %s - Room %s to %s - Room %s by this sync",
                conflict.mi_no,
                conflict.previous_hostel,
                conflict.previous_room_no,
                conflict.hostel,
                conflict.room_no,
            )

        message = f"Successfully synced {len(batch)} allocations to database"
        if report_path is not None:
            message += " and generated PDF"
        self._publish(on_status, message)
        logger.info("Sync confirmed after %s attempt(s): %s allocations", attempt, len(batch))
        return SyncOutcome(
            status=SyncStatus.SYNCED,
            count=len(batch),
            attempts=attempt,
            message=message,
            conflicts=list(result.conflicts),
            report_path=report_path,
        )

    @staticmethod
    def _publish(on_status: Optional[StatusCallback], message: str) -> None:
        if on_status is not None:
            on_status(message)


class BackgroundSync:
    """Runs ``sync_all`` on a worker thread so a UI can poll status and cancel.

    One instance is shared by every console session of a terminal; whichever
    session renders next sees the latest status and can cancel the run.
    """

    def __init__(self, service: SyncReconciliationService) -> None:
        self._service = service
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._token: Optional[CancellationToken] = None
        self._messages: list[str] = []
        self._outcome: Optional[SyncOutcome] = None
        self._error: Optional[str] = None

    @property
    def running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    @property
    def latest_status(self) -> Optional[str]:
        with self._lock:
            return self._messages[-1] if self._messages else None

    def start(self) -> bool:
        """Start a sync; returns False when one is already running."""
        with self._lock:
            if self.running:
                return False
            self._token = CancellationToken()
            self._messages = []
            self._outcome = None
            self._error = None
            self._thread = threading.Thread(
                target=self._run,
                args=(self._token,),
                name="allocation-sync",
                daemon=True,
            )
            self._thread.start()
        return True

    def cancel(self) -> None:
        token = self._token
        if token is not None:
            token.cancel()

    def join(self, timeout: Optional[float] = None) -> None:
        thread = self._thread
        if thread is not None:
            thread.join(timeout)

    def take_outcome(self) -> Optional[SyncOutcome]:
        """Hand the finished outcome to exactly one caller."""
        with self._lock:
            outcome, self._outcome = self._outcome, None
            return outcome

    def take_error(self) -> Optional[str]:
        with self._lock:
            error, self._error = self._error, None
            return error

    def _record(self, message: str) -> None:
        with self._lock:
            self._messages.append(message)

    def _run(self, token: CancellationToken) -> None:
        try:
            outcome = self._service.sync_all(cancel_token=token, on_status=self._record)
        except Exception as exc:
            # the worker thread has no caller; the error is surfaced through take_error
            logger.exception("Background sync failed")
            with self._lock:
                self._error = str(exc)
            return
        with self._lock:
            self._outcome = outcome
