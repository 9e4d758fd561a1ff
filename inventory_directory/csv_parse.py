"""Inventory directory CSV parsing.

Format: `;`-delimited, UTF-8 with optional BOM, header row required. Columns
are matched by name, case-insensitively and ignoring extra spaces:

    REFERENCIA;Nombre MARCA;Código CLASE;Nombre CLASE
    "REF 001";ACME;C01;"Herramientas
    manuales"

Quoted fields may contain delimiters and newlines. Blank rows are skipped.
"""

import csv
import io
import re
from typing import List, Optional, Sequence, Union

from pydantic import BaseModel

from customer_resolver.normalize import normalize_refer

DELIMITER = ";"

REFERENCE_COLUMNS = ["REFERENCIA", "REFER", "REFERENCE", "REF"]
BRAND_NAME_COLUMNS = ["Nombre MARCA", "MARCA", "NOMMAR", "BRAND"]
BRAND_CODE_COLUMNS = ["Código MARCA", "Codigo MARCA", "CODMAR", "COD MARCA"]
CLASS_CODE_COLUMNS = ["Código CLASE", "Codigo CLASE", "CODCLASE", "COD CLASE", "CLASE"]
CLASS_NAME_COLUMNS = ["Nombre CLASE", "NOMCLA", "NOMCLASE"]

_SPACES = re.compile(r"\s+")


class DirectoryFormatError(ValueError):
    """The CSV has no recognizable reference column."""


class DirectoryRow(BaseModel):
    """One parsed directory line, reference already normalized."""
    reference: str
    brand: Optional[str] = None
    brand_code: Optional[str] = None
    class_code: Optional[str] = None
    class_name: Optional[str] = None


def _normalize_header(value: str) -> str:
    return _SPACES.sub(" ", value.strip().lower())


def find_column_index(headers: Sequence[str], names: Sequence[str]) -> int:
    """Index of the first candidate column present in headers, else -1.

    Candidates are checked in priority order; a header matches when equal
    ignoring case, or equal once all spaces are removed.
    """
    normalized = [_normalize_header(h) for h in headers]
    compact = [h.replace(" ", "") for h in normalized]
    for name in names:
        wanted = _normalize_header(name)
        for i, header in enumerate(normalized):
            if header == wanted or compact[i] == wanted.replace(" ", ""):
                return i
    return -1


def _cell(row: Sequence[str], index: int) -> Optional[str]:
    if index < 0 or index >= len(row):
        return None
    value = row[index].strip()
    return value or None


def parse_directory_csv(content: Union[str, bytes]) -> List[DirectoryRow]:
    """Parse an inventory directory upload.

    Args:
        content: CSV text or raw bytes (UTF-8, BOM allowed)

    Returns:
        Parsed rows in file order (duplicates kept; last one wins on upsert)

    Raises:
        DirectoryFormatError: If no reference column is found in the header
    """
    if isinstance(content, bytes):
        content = content.decode("utf-8-sig")
    text = content.lstrip("\ufeff")

    reader = csv.reader(io.StringIO(text, newline=""), delimiter=DELIMITER)
    rows = [[cell.strip() for cell in row] for row in reader]
    rows = [row for row in rows if any(row)]
    if not rows:
        return []

    headers = rows[0]
    ref_idx = find_column_index(headers, REFERENCE_COLUMNS)
    if ref_idx < 0:
        raise DirectoryFormatError(
            f"Missing reference column (expected one of {', '.join(REFERENCE_COLUMNS)})"
        )
    brand_idx = find_column_index(headers, BRAND_NAME_COLUMNS)
    brand_code_idx = find_column_index(headers, BRAND_CODE_COLUMNS)
    class_name_idx = find_column_index(headers, CLASS_NAME_COLUMNS)
    class_code_idx = find_column_index(headers, CLASS_CODE_COLUMNS)

    parsed: List[DirectoryRow] = []
    for row in rows[1:]:
        reference = normalize_refer(_cell(row, ref_idx))
        if not reference:
            continue
        parsed.append(DirectoryRow(
            reference=reference,
            brand=_cell(row, brand_idx),
            brand_code=_cell(row, brand_code_idx),
            class_code=_cell(row, class_code_idx),
            class_name=_cell(row, class_name_idx),
        ))
    return parsed
