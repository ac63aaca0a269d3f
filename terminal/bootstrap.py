"""Explicit wiring of one operator terminal's collaborators."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger
from terminal.api_client import BackendClient, SyncError
from terminal.capacity_view import RoomCapacityView
from terminal.ledger import FileStorage, KeyValueStorage, LocalAllocationLedger
from terminal.orchestrator import AllocationOrchestrator
from terminal.report import AllocationReportBuilder
from terminal.scan_ingestor import ScanIngestor, scan_config_from_settings
from terminal.sync_service import BackgroundSync, RetryPolicy, SyncReconciliationService


logger = get_logger(__name__)


@dataclass
class TerminalServices:
    settings: Settings
    ledger: LocalAllocationLedger
    client: BackendClient
    capacity_view: RoomCapacityView
    orchestrator: AllocationOrchestrator
    sync_service: SyncReconciliationService
    sync_job: BackgroundSync
    ingestor: ScanIngestor

    def refresh(self) -> list[str]:
        """Reload rooms and the confirmed set; returns error messages, if any."""
        errors: list[str] = []
        try:
            self.capacity_view.update_rooms(self.client.fetch_rooms())
        except SyncError as exc:
            logger.warning("Failed to load rooms: %s", exc)
            errors.append(f"Failed to load rooms. Using cached data. ({exc})")
        try:
            self.capacity_view.update_confirmed(self.client.load_confirmed_allocations())
        except SyncError as exc:
            logger.warning("Failed to load allocations: %s", exc)
            errors.append(f"Failed to load allocations. Please refresh or check connection. ({exc})")
        return errors


def build_terminal_services(
    settings: Optional[Settings] = None,
    storage: Optional[KeyValueStorage] = None,
    client: Optional[BackendClient] = None,
) -> TerminalServices:
    """Build the ledger once and inject it into every component that needs it."""
    settings = settings or get_settings()
    ledger = LocalAllocationLedger(
        storage or FileStorage(settings.ledger_directory),
        settings=settings,
    )
    client = client or BackendClient(settings=settings)
    capacity_view = RoomCapacityView(ledger)
    orchestrator = AllocationOrchestrator(ledger, capacity_view)
    report_builder = AllocationReportBuilder(settings=settings)
    sync_service = SyncReconciliationService(
        ledger=ledger,
        uploader=client,
        retry_policy=RetryPolicy.from_settings(settings),
        report_builder=report_builder.build,
        settings=settings,
    )
    # No allocation may land in the ledger while its batch is in flight.
    sync_service.on_sync_start(orchestrator.suspend)
    sync_service.on_sync_finish(orchestrator.resume)

    return TerminalServices(
        settings=settings,
        ledger=ledger,
        client=client,
        capacity_view=capacity_view,
        orchestrator=orchestrator,
        sync_service=sync_service,
        sync_job=BackgroundSync(sync_service),
        ingestor=ScanIngestor(scan_config_from_settings(settings)),
    )
