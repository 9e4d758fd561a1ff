"""Payload extraction: raw Source API bodies -> flat records -> resolved fields."""

from extraction.records import ExtractionError, FlatRecord, extract_records
from extraction.fields import RecordView, normalize_date, pick, split_csv_setting, to_decimal

__all__ = [
    "ExtractionError",
    "FlatRecord",
    "extract_records",
    "RecordView",
    "pick",
    "to_decimal",
    "normalize_date",
    "split_csv_setting",
]
