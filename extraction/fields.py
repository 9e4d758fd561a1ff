"""Field Resolver and scalar coercion helpers.

The ERP exposes the same logical field under different names depending on the
endpoint (the customer tax ID is `cedula`, `nit`, `documentocliente`, ...).
`RecordView.pick` resolves a field from an ordered alias list against a
case-insensitive index of the record.
"""

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Mapping, Optional

_NUMERIC_JUNK = re.compile(r"[^\d,.\-]")
_EXPONENT = re.compile(r"[+-]?\d+(\.\d+)?[eE][+-]?\d+")

_DATE_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M:%S.%f",
    "%m/%d/%Y %I:%M:%S %p",
    "%d/%m/%Y %H:%M:%S",
    "%d/%m/%Y",
    "%Y/%m/%d",
    "%Y%m%d",
)


def _render(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class RecordView:
    """Case-insensitive, read-only view over one flat record.

    The lowercase index is built once; `None` values are dropped.
    """

    __slots__ = ("record", "_index")

    def __init__(self, record: Mapping[str, Any]):
        self.record = record
        self._index: Dict[str, str] = {}
        for key, value in record.items():
            rendered = _render(value)
            if rendered is not None:
                self._index[str(key).lower()] = rendered

    def pick(self, names: Iterable[str]) -> Optional[str]:
        """Return the first candidate with a non-empty value, in priority order."""
        for name in names:
            value = self._index.get(name.lower())
            if value is not None and value != "":
                return value
        return None

    def decimal(self, names: Iterable[str]) -> Optional[Decimal]:
        return to_decimal(self.pick(names))

    def date(self, names: Iterable[str]) -> Optional[str]:
        return normalize_date(self.pick(names))

    def __contains__(self, name: str) -> bool:
        return name.lower() in self._index


def pick(record: Mapping[str, Any], names: Iterable[str]) -> Optional[str]:
    """Resolve one field of `record` from an ordered alias list."""
    return RecordView(record).pick(names)


# =============================================================================
# Scalar coercion
# =============================================================================

def to_decimal(value: Any) -> Optional[Decimal]:
    """Lenient number parsing for ERP amounts.

    Keeps digits, `,`, `.` and `-`; the first comma becomes the decimal point.
    Exponent notation ("1e+20") is parsed as-is. Returns None for empty or
    invalid input.
    """
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, bool):
        return Decimal(int(value))
    text = str(value).strip()
    if _EXPONENT.fullmatch(text):
        cleaned = text
    else:
        cleaned = _NUMERIC_JUNK.sub("", text).replace(",", ".", 1)
    if not cleaned:
        return None
    try:
        parsed = Decimal(cleaned)
    except InvalidOperation:
        return None
    return parsed if parsed.is_finite() else None


def normalize_date(value: Any) -> Optional[str]:
    """Return an ISO `YYYY-MM-DD` date, or None when unparseable."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    s = str(value).strip()
    if not s:
        return None
    try:
        return datetime.fromisoformat(s.replace("Z", "+00:00")).date().isoformat()
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(s, fmt).date().isoformat()
        except ValueError:
            continue
    return None


def split_csv_setting(value: Optional[str]) -> List[str]:
    """Split a comma-separated setting into trimmed, non-empty parts."""
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]
