"""Identity Normalization Utilities.

Canonical join keys shared by every feed (customer listing, receivables,
sales) and by the inventory directory:

- Customer tax IDs (NIT / cédula):
    "900.123.456-7" → "9001234567"
    "123456k"       → "123456K"   (trailing K check digit kept)
    "ABC123XYZ"     → "123"
- Product references (REFER):
    "  ref  001 "   → "REF 001"

Both functions are pure, total and idempotent.
"""

import re
from typing import Any, Optional

NO_NAME_PLACEHOLDER = "Cliente sin nombre"
UNMAPPED_BRAND = "(SIN MAPEO)"
UNMAPPED_CLASS = "(SIN MAPEO)"
NO_BRAND = "Sin marca"
NO_CATEGORY = "Sin categoría"

_ID_SEPARATORS = re.compile(r"[\s.\-]")
_NIT_SHAPE = re.compile(r"^([0-9]+)(K?)$", re.IGNORECASE)
_NON_DIGITS = re.compile(r"[^0-9]")
_WHITESPACE = re.compile(r"\s+")
_FILLER_NAME = re.compile(r"^cliente\s+\d+", re.IGNORECASE)
_ONLY_DIGITS = re.compile(r"^\d+$")


def normalize_customer_id(raw: Any) -> str:
    """Canonicalize a customer tax ID.

    Args:
        raw: Tax ID as received from any feed

    Returns:
        Digits plus an optional trailing "K"; "" for empty or non-string input
    """
    if raw is None or not isinstance(raw, str):
        return ""
    s = _ID_SEPARATORS.sub("", raw.strip())
    if not s:
        return ""
    match = _NIT_SHAPE.match(s)
    if match:
        return match.group(1) + match.group(2).upper()
    trailing_k = "K" if s[-1] in ("k", "K") else ""
    return _NON_DIGITS.sub("", s) + trailing_k


def normalize_refer(raw: Any) -> str:
    """Canonicalize a product reference for directory lookups."""
    if raw is None or not isinstance(raw, str):
        return ""
    s = raw.replace("\u00a0", " ").strip()
    return _WHITESPACE.sub(" ", s).upper()


def is_invalid_customer_name(name: Optional[str], nit: Optional[str] = None) -> bool:
    """True for the ERP's auto-generated filler names.

    Empty names, names equal to the NIT, purely numeric names and
    "Cliente 123..." patterns are all invalid.
    """
    if not name:
        return True
    trimmed = name.strip()
    if not trimmed:
        return True
    if nit and trimmed == nit:
        return True
    if _ONLY_DIGITS.match(trimmed):
        return True
    if _FILLER_NAME.match(trimmed):
        return True
    return False


def sanitize_customer_name(name: Optional[str], nit: Optional[str] = None) -> str:
    """Return the trimmed name, or the no-name placeholder when it is filler."""
    if is_invalid_customer_name(name, nit):
        return NO_NAME_PLACEHOLDER
    return name.strip()
