#!/usr/bin/env python3
"""Validate local backend and operator-terminal readiness."""

from __future__ import annotations

import importlib
import shutil
import sys
import tempfile
from dataclasses import replace
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from backend.domain.models import ConfirmedAllocation
from backend.repository.data_repository import DataRepository
from backend.utils.config import get_settings
from terminal.ledger import FileStorage, LocalAllocationLedger
from terminal.report import AllocationReportBuilder

SEPARATOR_LINE = "=" * 44


def _print_result(name: str, success: bool, detail: str = "") -> tuple[bool, str]:
    if success:
        return True, f"[PASS] {name}{detail}"
    return False, f"[FAIL] {name}: {detail}"


def main() -> int:
    results: list[str] = []
    all_passed = True
    temp_dir = tempfile.mkdtemp(prefix="allocation-env-")

    # CHECK 1: Python version >= 3.10
    if sys.version_info >= (3, 10):
        ok, line = _print_result("Python " + sys.version.split()[0], True)
    else:
        ok, line = _print_result(
            "Python version >= 3.10",
            False,
            f"found {sys.version.split()[0]}",
        )
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 2: Required packages importable
    required_packages = [
        "fastapi",
        "uvicorn",
        "pydantic",
        "requests",
        "pandas",
        "streamlit",
        "reportlab",
        "PIL",
        "httpx",
        "pytest",
    ]
    import_errors: list[str] = []
    for module_name in required_packages:
        try:
            importlib.import_module(module_name)
        except Exception as exc:  # pragma: no cover - runtime guard
            import_errors.append(f"{module_name} ({exc})")
    if import_errors:
        ok, line = _print_result(
            "Required packages",
            False,
            "missing/unimportable -> " + "; ".join(import_errors),
        )
    else:
        ok, line = _print_result("Required packages: all importable", True)
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 3: zbar for camera scanning (optional)
    try:
        from pyzbar import pyzbar  # noqa: F401

        results.append("[PASS] Camera decoding: pyzbar/zbar available")
    except Exception as exc:  # pragma: no cover - runtime guard
        results.append(f"[WARN] Camera decoding unavailable ({exc}); hardware/manual scan still work")

    try:
        settings = replace(
            get_settings(),
            database_path=Path(temp_dir) / "validation.db",
            ledger_directory=Path(temp_dir) / "ledger",
            report_directory=Path(temp_dir) / "reports",
        )

        # CHECK 4: Database round trip
        try:
            repository = DataRepository(settings)
            repository.initialize_database()
            sample = ConfirmedAllocation(
                name="Env Check",
                mi_no="MI-env-0001",
                email="env@example.com",
                hostel="H1",
                room_no="101",
                room_password="",
                allocated_at="2026-01-01T00:00:00+00:00",
            )
            repository.upsert_allocations([sample])
            repository.upsert_allocations([sample])
            if repository.count_allocations() != 1:
                raise RuntimeError("upsert by MI number produced duplicates")
            ok, line = _print_result("Database upsert", True)
        except Exception as exc:
            ok, line = _print_result("Database upsert", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 5: Ledger persistence and report rendering
        try:
            ledger = LocalAllocationLedger(FileStorage(settings.ledger_directory), settings=settings)
            allocation = ledger.append(
                {
                    "name": "Env Check",
                    "mi_no": "MI-env-0002",
                    "email": "env@example.com",
                    "hostel": "H1",
                    "room_no": "101",
                }
            )
            report = AllocationReportBuilder(settings=settings).build(ledger.all())
            ledger.clear()
            ok, line = _print_result(
                "Ledger + report",
                True,
                f": {allocation.id} -> {report.name}",
            )
        except Exception as exc:
            ok, line = _print_result("Ledger + report", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok
    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)

    print(SEPARATOR_LINE)
    print(" Room Allocation Environment Validation")
    print(SEPARATOR_LINE)
    for line in results:
        print(f" {line}")
    print(SEPARATOR_LINE)
    if all_passed:
        print(" All checks passed. Environment is ready.")
        print(SEPARATOR_LINE)
        return 0
    print(" One or more checks failed.")
    print(SEPARATOR_LINE)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
