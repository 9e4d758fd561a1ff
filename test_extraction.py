"""
Record extraction and field resolution tests.

Payloads come from the ERP as JSON, SOAP/XML, or XML wrapping a JSON
document; all of them must flatten to plain field -> scalar records.
"""

from decimal import Decimal

import pytest

from extraction.fields import RecordView, normalize_date, pick, split_csv_setting, to_decimal
from extraction.records import ExtractionError, extract_records


SOAP_ROWS = """<?xml version="1.0" encoding="utf-8"?>
<soap:Envelope xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/">
  <soap:Body>
    <GenerarInfoVentasResponse xmlns="http://tempuri.org/">
      <GenerarInfoVentasResult>
        <Row><cedula>900.1-K</cedula><valtot>1000</valtot></Row>
        <Row><cedula>800</cedula><valtot>250,5</valtot></Row>
      </GenerarInfoVentasResult>
    </GenerarInfoVentasResponse>
  </soap:Body>
</soap:Envelope>"""


class TestJsonExtraction:
    """JSON payloads."""

    def test_flat_list(self):
        records = extract_records('[{"a": 1, "b": "x"}, {"a": 2, "b": null}]')
        assert records == [{"a": 1, "b": "x"}, {"a": 2, "b": None}]

    def test_nested_containers_are_walked(self):
        payload = '{"data": {"rows": [{"a": 1}, {"wrapper": {"c": "deep"}}]}, "meta": {"page": 1}}'
        records = extract_records(payload)
        assert {"a": 1} in records
        assert {"c": "deep"} in records
        assert {"page": 1} in records

    def test_empty_objects_are_not_records(self):
        assert extract_records('[{}, {"a": 1}]') == [{"a": 1}]

    def test_json_embedded_in_text(self):
        assert extract_records('Result: [{"a": 1}] end') == [{"a": 1}]

    def test_bytes_with_bom(self):
        assert extract_records('\ufeff[{"a": "1"}]'.encode("utf-8")) == [{"a": "1"}]


class TestXmlExtraction:
    """XML and SOAP payloads."""

    def test_soap_rows(self):
        records = extract_records(SOAP_ROWS)
        assert records == [
            {"cedula": "900.1-K", "valtot": "1000"},
            {"cedula": "800", "valtot": "250,5"},
        ]

    def test_json_inside_string_element(self):
        payload = '<?xml version="1.0" encoding="utf-8"?><string xmlns="http://tempuri.org/">[{"nit": "9001k", "total": 5}]</string>'
        assert extract_records(payload) == [{"nit": "9001k", "total": 5}]

    def test_attributes_are_kept(self):
        records = extract_records('<root><item id="7"><name>X</name></item></root>')
        assert records == [{"id": "7", "name": "X"}]

    def test_repeated_leaf_names_are_not_a_record(self):
        records = extract_records("<root><list><v>1</v><v>2</v></list></root>")
        assert records == []

    def test_empty_root(self):
        assert extract_records("<string xmlns='http://tempuri.org/'></string>") == []


class TestExtractionEdges:
    """Empty and invalid input."""

    @pytest.mark.parametrize("payload", [None, "", "   ", b""])
    def test_empty_payload(self, payload):
        assert extract_records(payload) == []

    def test_garbage_raises(self):
        with pytest.raises(ExtractionError):
            extract_records("this is not data")

    def test_broken_xml_raises(self):
        with pytest.raises(ExtractionError):
            extract_records("<root><a>1</root>")

    def test_broken_json_raises(self):
        with pytest.raises(ExtractionError) as exc:
            extract_records('{"a": ')
        assert exc.value.payload_preview.startswith('{"a"')


class TestFieldResolver:
    """Alias lookup."""

    def test_first_alias_in_priority_order(self):
        record = {"nit": "2", "cedula": "1"}
        assert pick(record, ["cedula", "nit"]) == "1"

    def test_case_insensitive(self):
        assert pick({"CEDULA": "1"}, ["cedula"]) == "1"

    def test_alias_order_beats_record_order(self):
        assert pick({"CEDULA": "1", "Nit": "2"}, ["nit", "cedula"]) == "2"

    def test_empty_values_are_skipped(self):
        record = {"cedula": "", "nit": None, "documentocliente": "3"}
        assert pick(record, ["cedula", "nit", "documentocliente"]) == "3"

    def test_missing(self):
        assert pick({"a": 1}, ["b"]) is None

    def test_numbers_are_rendered(self):
        view = RecordView({"cantid": 2.0, "flag": True})
        assert view.pick(["cantid"]) == "2"
        assert view.pick(["flag"]) == "true"
        assert "CANTID" in view


class TestCoercion:
    """Scalar helpers."""

    @pytest.mark.parametrize("raw, expected", [
        ("1000", Decimal("1000")),
        ("250,5", Decimal("250.5")),
        ("$ 1.5", Decimal("1.5")),
        (-3, Decimal("-3")),
        (2.5, Decimal("2.5")),
        ("1e+20", Decimal("1E+20")),
        ("2.5E-3", Decimal("0.0025")),
        (1e20, Decimal("1E+20")),
    ])
    def test_to_decimal(self, raw, expected):
        assert to_decimal(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "abc", "1.2.3"])
    def test_to_decimal_invalid(self, raw):
        assert to_decimal(raw) is None

    @pytest.mark.parametrize("raw, expected", [
        ("2024-01-05", "2024-01-05"),
        ("2024-01-05T10:00:00", "2024-01-05"),
        ("2024-01-05 10:00:00", "2024-01-05"),
        ("05/01/2024", "2024-01-05"),
        ("20240105", "2024-01-05"),
    ])
    def test_normalize_date(self, raw, expected):
        assert normalize_date(raw) == expected

    def test_normalize_date_invalid(self):
        assert normalize_date("not a date") is None
        assert normalize_date("") is None

    def test_split_csv_setting(self):
        assert split_csv_setting(" a, b ,,c ") == ["a", "b", "c"]
        assert split_csv_setting(None) == []
