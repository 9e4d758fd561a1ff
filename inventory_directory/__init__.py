"""Inventory/Brand Directory Module.

Product reference -> brand/class lookup data, loaded from CSV and consumed by
invoice assembly.
"""

from inventory_directory.csv_parse import (
    DirectoryFormatError,
    DirectoryRow,
    find_column_index,
    parse_directory_csv,
)
from inventory_directory.directory import (
    DirectoryMaps,
    DirectoryPage,
    DirectoryUpsertResult,
    InventoryDirectory,
)

__all__ = [
    "DirectoryFormatError",
    "DirectoryRow",
    "find_column_index",
    "parse_directory_csv",
    "DirectoryMaps",
    "DirectoryPage",
    "DirectoryUpsertResult",
    "InventoryDirectory",
]
