"""Configurable field lists for invoice assembly."""

from typing import List

from pydantic import BaseModel, Field

from core.config import (
    DEFAULT_BRAND_FIELDS,
    DEFAULT_CITY_FIELDS,
    DEFAULT_CLASS_FIELDS,
    DEFAULT_DISCOUNT_FIELDS,
    DEFAULT_DOCUMENT_TOTAL_FIELDS,
    DEFAULT_TIPOMOV_FIELDS,
    SourceSettings,
)
from extraction.fields import split_csv_setting


class AssemblyOptions(BaseModel):
    """Which record fields carry movement type, brand, class, discount, city and document total."""
    tipomov_fields: List[str] = Field(default_factory=lambda: split_csv_setting(DEFAULT_TIPOMOV_FIELDS))
    credit_note_codes: List[str] = Field(default_factory=lambda: ["04", "06", "15"])
    brand_fields: List[str] = Field(default_factory=lambda: split_csv_setting(DEFAULT_BRAND_FIELDS))
    class_fields: List[str] = Field(default_factory=lambda: split_csv_setting(DEFAULT_CLASS_FIELDS))
    discount_fields: List[str] = Field(default_factory=lambda: split_csv_setting(DEFAULT_DISCOUNT_FIELDS))
    city_fields: List[str] = Field(default_factory=lambda: split_csv_setting(DEFAULT_CITY_FIELDS))
    document_total_fields: List[str] = Field(
        default_factory=lambda: split_csv_setting(DEFAULT_DOCUMENT_TOTAL_FIELDS)
    )

    @classmethod
    def from_settings(cls, settings: SourceSettings) -> "AssemblyOptions":
        return cls(
            tipomov_fields=settings.tipomov_fields,
            credit_note_codes=settings.tipomov_resta_codes,
            brand_fields=settings.brand_fields,
            class_fields=settings.class_fields,
            discount_fields=settings.discount_fields,
            city_fields=settings.city_fields,
            document_total_fields=settings.document_total_fields,
        )

    def sale_sign(self, document_type: str) -> int:
        """-1 for credit notes/returns, +1 otherwise."""
        if not document_type or not document_type.strip():
            return 1
        return -1 if document_type.strip() in self.credit_note_codes else 1
