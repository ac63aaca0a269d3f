#!/usr/bin/env python3
"""Delete every confirmed allocation from the backend database."""

from __future__ import annotations

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from backend.repository.data_repository import DataRepository


def main() -> int:
    repository = DataRepository()
    print(f"DB Path: {repository.database_path}")
    try:
        repository.initialize_database()
        before = repository.count_allocations()
        print(f"Rows before: {before}")
        deleted = repository.clear_allocations()
        print(f"Deleted rows: {deleted}")
        print(f"Rows after : {repository.count_allocations()}")
    except Exception as exc:
        print(f"Error: {exc}")
        return 2
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
