#!/usr/bin/env python
"""Load an inventory directory CSV for a tenant.

Usage:
    python scripts/load_inventory_directory.py <tenant_id> <csv_path>
"""

import argparse
import sys
from pathlib import Path

from core.config import SourceSettings
from core.observability.logging import configure_logging
from inventory_directory.csv_parse import DirectoryFormatError
from inventory_directory.directory import InventoryDirectory
from sync_engine.store import SQLiteSyncStore


def main():
    parser = argparse.ArgumentParser(description="Load an inventory directory CSV")
    parser.add_argument("tenant_id", help="Local tenant id")
    parser.add_argument("csv_path", type=Path, help="Semicolon-delimited CSV file")
    args = parser.parse_args()

    configure_logging()
    if not args.csv_path.exists():
        print(f"File not found: {args.csv_path}")
        sys.exit(1)

    settings = SourceSettings.from_env()
    directory = InventoryDirectory(SQLiteSyncStore(settings.db_path))
    try:
        result = directory.load_csv(args.tenant_id, args.csv_path.read_bytes())
    except DirectoryFormatError as e:
        print(f"Invalid directory CSV: {e}")
        sys.exit(1)

    print(f"Rows read:        {result.rows_received}")
    print(f"References saved: {result.count}")
    print(f"Duplicate rows:   {result.duplicate_refs}")


if __name__ == "__main__":
    main()
