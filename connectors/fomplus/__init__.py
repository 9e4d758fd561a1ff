"""Fomplus ERP Source API client package."""

from connectors.fomplus.client import (
    FomplusSourceApiClient,
    build_soap_envelope,
    format_date_only,
    format_date_time,
    split_date_range,
)

__all__ = [
    "FomplusSourceApiClient",
    "build_soap_envelope",
    "format_date_only",
    "format_date_time",
    "split_date_range",
]
