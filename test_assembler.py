"""
Invoice assembly tests.

Sales lines are grouped into invoices; brand/class come from the inventory
directory; credit notes are flagged through the movement code; receivables
and customer-listing records map to canonical payments and customers.
"""

from decimal import Decimal

import pytest

from assembler import AssemblyOptions, is_active_customer, map_customers, map_invoices, map_payments
from customer_resolver.normalize import NO_BRAND, NO_CATEGORY, UNMAPPED_BRAND, UNMAPPED_CLASS
from extraction.records import extract_records
from inventory_directory.directory import DirectoryMaps


def sale_line(**overrides):
    record = {
        "cedula": "900.1-K",
        "nomced": "ACME",
        "prefijo": "FV",
        "numdoc": "100",
        "fecha": "2024-01-05",
        "refer": "ref 1",
        "nomref": "Widget",
        "cantid": "2",
        "valtot": "1000",
        "valuti": "200",
    }
    record.update(overrides)
    return {k: v for k, v in record.items() if v is not None}


class TestGrouping:
    """Lines -> invoices."""

    def test_lines_of_one_document_form_one_invoice(self):
        result = map_invoices(
            [sale_line(), sale_line(refer="ref 2", cantid="1", valtot="500", valuti="50")],
            "2024-01-31",
        )
        assert len(result.invoices) == 1
        invoice = result.invoices[0]
        assert invoice.external_id == "FV100"
        assert invoice.customer_nit == "9001K"
        assert invoice.customer_name == "ACME"
        assert invoice.issued_at == "2024-01-05"
        assert invoice.total == Decimal("1500")
        assert invoice.units == Decimal("3")
        assert invoice.margin == Decimal("250")
        assert [item.product_name for item in invoice.items] == ["REF 1", "REF 2"]

    def test_different_documents_stay_apart(self):
        result = map_invoices([sale_line(), sale_line(numdoc="101")], "2024-01-31")
        assert [i.external_id for i in result.invoices] == ["FV100", "FV101"]

    def test_synthetic_key_without_document_number(self):
        record = {"cedula": "1", "fecha": "2024-01-05", "valtot": "100.50"}
        result = map_invoices([record], "2024-01-31")
        assert result.invoices[0].external_id == "1-2024-01-05-100.5"

    def test_fallback_date(self):
        result = map_invoices([sale_line(fecha=None)], "2024-01-31")
        assert result.invoices[0].issued_at == "2024-01-31"

    def test_records_without_customer_are_dropped(self):
        result = map_invoices([sale_line(cedula=None), sale_line(numdoc="7")], "2024-01-31")
        assert [i.external_id for i in result.invoices] == ["FV7"]

    def test_empty_input(self):
        result = map_invoices([], "2024-01-31")
        assert result.invoices == []
        assert result.unmapped_refs_count == 0


class TestTotals:
    """Header vs. line totals."""

    def test_nonzero_document_total_wins(self):
        lines = [sale_line(totalfactura="5000"), sale_line(refer="ref 2", totalfactura="5000")]
        invoice = map_invoices(lines, "2024-01-31").invoices[0]
        assert invoice.total == Decimal("5000")
        assert invoice.units == Decimal("4")

    def test_zero_document_total_is_ignored(self):
        invoice = map_invoices([sale_line(totalfactura="0")], "2024-01-31").invoices[0]
        assert invoice.total == Decimal("1000")

    def test_discount_is_subtracted_from_line(self):
        invoice = map_invoices([sale_line(valdes="100")], "2024-01-31").invoices[0]
        item = invoice.items[0]
        assert item.total == Decimal("900")
        assert item.unit_price == Decimal("450")
        assert invoice.total == Decimal("900")

    def test_explicit_unit_price_is_kept(self):
        item = map_invoices([sale_line(valund="480")], "2024-01-31").invoices[0].items[0]
        assert item.unit_price == Decimal("480")

    def test_zero_quantity_gives_zero_unit_price(self):
        item = map_invoices([sale_line(cantid="0")], "2024-01-31").invoices[0].items[0]
        assert item.unit_price == Decimal("0")


class TestCreditNotes:
    """Movement codes."""

    @pytest.mark.parametrize("code, sign", [("04", -1), ("06", -1), ("15", -1), ("01", 1)])
    def test_sale_sign(self, code, sign):
        invoice = map_invoices([sale_line(tipmov=code)], "2024-01-31").invoices[0]
        assert invoice.sale_sign == sign
        assert invoice.document_type == code
        assert invoice.total == Decimal("1000")

    def test_no_movement_code_is_a_sale(self):
        invoice = map_invoices([sale_line()], "2024-01-31").invoices[0]
        assert invoice.sale_sign == 1
        assert invoice.document_type is None

    def test_configured_codes(self):
        options = AssemblyOptions(credit_note_codes=["99"])
        assert options.sale_sign(" 99 ") == -1
        assert options.sale_sign("04") == 1
        assert options.sale_sign("") == 1


class TestBrandAndClass:
    """Directory lookups."""

    def test_directory_brand_and_class(self):
        maps = DirectoryMaps(
            brand_by_ref={"REF 1": "Acme Tools"},
            class_code_by_ref={"REF 1": "C01"},
            class_name_by_ref={"REF 1": "Herramientas"},
        )
        result = map_invoices([sale_line()], "2024-01-31", maps)
        item = result.invoices[0].items[0]
        assert item.brand == "Acme Tools"
        assert item.class_code == "C01"
        assert item.class_name == "Herramientas"
        assert result.unmapped_refs_count == 0

    def test_unmapped_reference(self):
        result = map_invoices([sale_line(), sale_line(refer="ref 2")], "2024-01-31")
        item = result.invoices[0].items[0]
        assert item.brand == UNMAPPED_BRAND
        assert item.class_code == UNMAPPED_CLASS
        assert item.category == NO_CATEGORY
        assert result.unmapped_refs_count == 2

    def test_erp_brand_text_is_the_fallback(self):
        result = map_invoices([sale_line(marca=" Generic ")], "2024-01-31")
        assert result.invoices[0].items[0].brand == "Generic"
        assert result.unmapped_refs_count == 1

    def test_erp_class_code_wins(self):
        maps = DirectoryMaps(class_code_by_ref={"REF 1": "C01"})
        item = map_invoices([sale_line(clase="C09")], "2024-01-31", maps).invoices[0].items[0]
        assert item.class_code == "C09"

    def test_line_without_reference(self):
        record = sale_line(refer=None)
        result = map_invoices([record], "2024-01-31")
        item = result.invoices[0].items[0]
        assert item.product_name == "Widget"
        assert item.brand == NO_BRAND
        assert item.class_code is None
        assert result.unmapped_refs_count == 0

    def test_city_is_taken_from_the_first_line_with_one(self):
        lines = [sale_line(), sale_line(refer="ref 2", ciudad="Bogotá"), sale_line(refer="ref 3", ciudad="Cali")]
        invoice = map_invoices(lines, "2024-01-31").invoices[0]
        assert invoice.city == "Bogotá"


class TestFromPayload:
    """Extraction and assembly together."""

    def test_xml_sales_feed(self):
        payload = """<?xml version="1.0" encoding="utf-8"?>
        <DataSet xmlns="http://tempuri.org/">
          <Table><cedula>9001k</cedula><prefijo>FV</prefijo><numdoc>1</numdoc>
                 <fecha>2024-01-05</fecha><refer>X</refer><cantid>2</cantid><valtot>1000</valtot></Table>
        </DataSet>"""
        result = map_invoices(extract_records(payload), "2024-01-05")
        assert len(result.invoices) == 1
        assert result.invoices[0].customer_nit == "9001K"
        assert result.invoices[0].total == Decimal("1000")
        assert result.invoices[0].items[0].total == Decimal("1000")


class TestPayments:
    """Receivables records."""

    def test_full_record(self):
        record = {
            "cedula": "9001k",
            "nomced": "ACME",
            "valor": "200",
            "fecha": "2024-01-05",
            "saldo": "50",
            "prefij": "FV",
            "numdoc": "100",
            "fecven": "2024-01-01",
            "daiaven": "4",
            "cupcre": "1000",
        }
        payment = map_payments([record], "2024-01-31")[0]
        assert payment.customer_nit == "9001K"
        assert payment.invoice_external_id == "FV100"
        assert payment.paid_at == "2024-01-05"
        assert payment.amount == Decimal("200")
        assert payment.balance == Decimal("50")
        assert payment.due_at == "2024-01-01"
        assert payment.overdue_days == 4
        assert payment.credit_limit == Decimal("1000")

    def test_prefix_is_not_doubled(self):
        record = {"cedula": "1", "valor": "1", "prefij": "FV", "numdoc": "FV100"}
        assert map_payments([record], "2024-01-31")[0].invoice_external_id == "FV100"

    def test_defaults(self):
        payment = map_payments([{"cedula": "1", "saldo": "10"}], "2024-01-31")[0]
        assert payment.paid_at == "2024-01-31"
        assert payment.amount == Decimal("0")
        assert payment.overdue_days is None
        assert payment.due_at is None
        assert payment.external_id == "1-2024-01-31-10"

    def test_missing_customer_is_skipped(self):
        assert map_payments([{"valor": "5"}], "2024-01-31") == []


class TestCustomers:
    """Customer-listing records."""

    def test_active_customer(self):
        record = {
            "cli_cedula": "900.1-K",
            "cli_nombre": "ACME",
            "cli_activo": "false",
            "cli_nomciu": "Bogotá",
            "cli_nomven": "Ana",
            "cli_cupcre": "5000",
        }
        customer = map_customers([record])[0]
        assert customer.nit == "9001K"
        assert customer.name == "ACME"
        assert customer.external_id == "9001K"
        assert customer.city == "Bogotá"
        assert customer.vendor == "Ana"
        assert customer.credit_limit == Decimal("5000")

    def test_inactive_and_incomplete_are_skipped(self):
        records = [
            {"cli_cedula": "1", "cli_nombre": "A", "cli_activo": "true"},
            {"cli_cedula": "2"},
            {"cli_nombre": "C"},
            {"cli_cedula": "4", "cli_nombre": "D"},
        ]
        assert [c.nit for c in map_customers(records)] == ["4"]

    @pytest.mark.parametrize("raw, active", [
        (None, True), ("", True), ("false", True), ("0", True),
        ("true", False), ("1", False), ("Sí", False), ("maybe", True),
    ])
    def test_is_active_customer(self, raw, active):
        assert is_active_customer(raw) is active
