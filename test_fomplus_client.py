"""
Fomplus client tests.

The HTTP transport is replaced by an AsyncMock so the GET-then-SOAP
fallback, date windowing, the error marker and directory enrichment can be
checked without a network.
"""

import asyncio
import json
import sqlite3
from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from lxml import etree

from connectors import ERROR_MARKER, SourceBusinessError, SourceHttpError
from connectors.fomplus import (
    FomplusSourceApiClient,
    build_soap_envelope,
    format_date_only,
    format_date_time,
    split_date_range,
)
from core.config import SourceSettings
from core.models.source import FetchOptions
from inventory_directory.directory import DirectoryMaps


CUSTOMERS_SOAP = """<?xml version="1.0" encoding="utf-8"?>
<soap:Envelope xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/">
  <soap:Body>
    <ListadoClientesResponse xmlns="http://tempuri.org/">
      <ListadoClientesResult>
        <Row><cli_cedula>900.1-K</cli_cedula><cli_nombre>ACME</cli_nombre></Row>
      </ListadoClientesResult>
    </ListadoClientesResponse>
  </soap:Body>
</soap:Envelope>"""


def make_transport(get_body="[]", post_body="[]"):
    transport = MagicMock()
    if isinstance(get_body, Exception):
        transport.get_text = AsyncMock(side_effect=get_body)
    else:
        transport.get_text = AsyncMock(return_value=get_body)
    transport.post_text = AsyncMock(return_value=post_body)
    transport.close = AsyncMock()
    return transport


def make_client(transport, directory=None, **settings):
    values = {
        "provider": "fomplus",
        "api_token": "secret",
        "database": "EMPRESA1",
        "cartera_base_url": "https://cartera.test/",
        "ventas_base_url": "https://ventas.test",
    }
    values.update(settings)
    return FomplusSourceApiClient(SourceSettings(**values), directory=directory, transport=transport)


def sales_body(*lines):
    return json.dumps([
        {"cedula": "900.1-K", "prefijo": "FV", "numdoc": numdoc, "fecha": day,
         "refer": "ref 1", "cantid": "1", "valtot": "100"}
        for numdoc, day in lines
    ])


class TestDateHelpers:
    """Windowing and formatting."""

    def test_split_into_weeks(self):
        assert split_date_range("2024-01-01", "2024-01-15", 7) == [
            (date(2024, 1, 1), date(2024, 1, 7)),
            (date(2024, 1, 8), date(2024, 1, 14)),
            (date(2024, 1, 15), date(2024, 1, 15)),
        ]

    def test_single_day(self):
        assert split_date_range("2024-01-01", "2024-01-01") == [(date(2024, 1, 1), date(2024, 1, 1))]

    def test_unparseable_bound(self):
        assert split_date_range("garbage", "2024-01-01") == []

    def test_chunk_days_floor(self):
        assert len(split_date_range("2024-01-01", "2024-01-03", 0)) == 3

    def test_timestamp_formats(self):
        assert format_date_only("2024-01-05T10:30:00Z") == "2024-01-05"
        assert format_date_time("2024-01-05") == "2024-01-05 00:00:00"
        assert format_date_time("2024-01-05T10:30:00") == "2024-01-05 10:30:00"


class TestSoapEnvelope:
    """SOAP request bodies."""

    def test_envelope_carries_parameters(self):
        body = build_soap_envelope("ListadoClientes", {"strPar_Token": "t", "intPar_Pagina": 2, "strPar_Vended": ""})
        root = etree.fromstring(body.encode("utf-8"))
        call = root[0][0]
        assert etree.QName(root).localname == "Envelope"
        assert etree.QName(call).localname == "ListadoClientes"
        assert etree.QName(call).namespace == "http://tempuri.org/"
        values = {etree.QName(el).localname: el.text for el in call}
        assert values == {"strPar_Token": "t", "intPar_Pagina": "2"}


class TestTransportFallback:
    """GET first, SOAP when GET fails."""

    def test_get_success(self):
        transport = make_transport(get_body='[{"cli_cedula": "1", "cli_nombre": "A"}]')
        client = make_client(transport)
        customers = asyncio.run(client.fetch_customers("ignored", 2, 50, vendor="V1"))

        assert [c.nit for c in customers] == ["1"]
        url = transport.get_text.call_args.args[0]
        params = transport.get_text.call_args.kwargs["params"]
        assert url == "https://cartera.test/srvCxcPed.asmx/ListadoClientes"
        assert params["strPar_Basedatos"] == "EMPRESA1"
        assert params["intPar_Pagina"] == 2
        assert params["intPar_Filas"] == 50
        assert params["strPar_Vended"] == "V1"
        transport.post_text.assert_not_called()

    def test_soap_fallback(self):
        transport = make_transport(get_body=SourceHttpError("HTTP 500", 500), post_body=CUSTOMERS_SOAP)
        client = make_client(transport)
        customers = asyncio.run(client.fetch_customers("EMP", 1, 10))

        assert [c.nit for c in customers] == ["9001K"]
        url, body = transport.post_text.call_args.args
        headers = transport.post_text.call_args.kwargs["headers"]
        assert url == "https://cartera.test/srvCxcPed.asmx"
        assert "ListadoClientes" in body
        assert headers["SOAPAction"] == '"http://tempuri.org/ListadoClientes"'

    def test_error_marker_triggers_fallback(self):
        transport = make_transport(get_body=f"{ERROR_MARKER}: boom", post_body="[]")
        client = make_client(transport)
        assert asyncio.run(client.fetch_customers("EMP", 1, 10)) == []
        transport.post_text.assert_awaited_once()

    def test_error_marker_on_soap_raises(self):
        transport = make_transport(get_body=SourceHttpError("down"), post_body=f"<x>{ERROR_MARKER}</x>")
        client = make_client(transport)
        with pytest.raises(SourceBusinessError):
            asyncio.run(client.fetch_customers("EMP", 1, 10))

    def test_tenant_external_id_without_database(self):
        transport = make_transport()
        client = make_client(transport, database="")
        asyncio.run(client.fetch_customers("EMP7", 1, 10))
        assert transport.get_text.call_args.kwargs["params"]["strPar_Basedatos"] == "EMP7"


class TestSales:
    """Sales feed windows and assembly."""

    def test_one_request_per_window(self):
        transport = make_transport(get_body=sales_body(("1", "2024-01-03")))
        client = make_client(transport, ventas_chunk_days=7, ventas_range_concurrency=2)
        result = asyncio.run(client.fetch_invoices("EMP", "2024-01-01", "2024-01-15"))

        windows = sorted(
            (call.kwargs["params"]["datPar_FecIni"], call.kwargs["params"]["datPar_FecFin"])
            for call in transport.get_text.call_args_list
        )
        assert windows == [
            ("2024-01-01", "2024-01-07"),
            ("2024-01-08", "2024-01-14"),
            ("2024-01-15", "2024-01-15"),
        ]
        assert transport.get_text.call_args.args[0] == "https://ventas.test/srvAPI.asmx/GenerarInfoVentas"
        # the same line comes back for every window and folds into one invoice
        assert [i.external_id for i in result.invoices] == ["FV1"]
        assert result.invoices[0].total == Decimal("300")

    def test_customer_filter(self):
        transport = make_transport(get_body=sales_body(("1", "2024-01-03")))
        client = make_client(transport)
        asyncio.run(client.fetch_invoices("EMP", "2024-01-03", "2024-01-03", FetchOptions(cedula="900.1-k")))
        params = transport.get_text.call_args.kwargs["params"]
        assert params["strPar_Nit"] == "9001K"
        assert params["strPar_Cedula"] == "9001K"

    def test_directory_maps_are_cached(self):
        directory = MagicMock()
        directory.get_maps.return_value = DirectoryMaps(brand_by_ref={"REF 1": "Acme Tools"})
        transport = make_transport(get_body=sales_body(("1", "2024-01-03")))
        client = make_client(transport, directory=directory)
        options = FetchOptions(tenant_id="t1")

        first = asyncio.run(client.fetch_invoices("EMP", "2024-01-03", "2024-01-03", options))
        asyncio.run(client.fetch_invoices("EMP", "2024-01-03", "2024-01-03", options))

        assert first.invoices[0].items[0].brand == "Acme Tools"
        assert first.unmapped_refs_count == 0
        directory.get_maps.assert_called_once_with("t1")

    def test_directory_failure_assembles_without_it(self):
        directory = MagicMock()
        directory.get_maps.side_effect = sqlite3.OperationalError("locked")
        transport = make_transport(get_body=sales_body(("1", "2024-01-03")))
        client = make_client(transport, directory=directory)
        result = asyncio.run(client.fetch_invoices("EMP", "2024-01-03", "2024-01-03", FetchOptions(tenant_id="t1")))
        assert len(result.invoices) == 1
        assert result.unmapped_refs_count == 1


class TestReceivables:
    """Receivables requests."""

    def test_parameters(self):
        body = json.dumps([{"cedula": "1", "valor": "50", "fecha": "2024-01-05"}])
        transport = make_transport(get_body=body)
        client = make_client(transport, vendor="V9")
        payments = asyncio.run(client.fetch_payments("EMP", "2024-01-01", "2024-01-31"))

        params = transport.get_text.call_args.kwargs["params"]
        assert transport.get_text.call_args.args[0] == "https://cartera.test/srvCxcPed.asmx/EstadoDeCuentaCartera"
        assert params["datPar_Fecha"] == "2024-01-31 00:00:00"
        assert params["strPar_Vended"] == "V9"
        assert params["strPar_Cedula"] == ""
        assert [p.amount for p in payments] == [Decimal("50")]


class TestBrandNames:
    """Distinct directory brands."""

    def test_sorted_without_blanks(self):
        directory = MagicMock()
        directory.get_maps.return_value = DirectoryMaps(
            brand_by_ref={"A": "zeta", "B": "Alpha", "C": " ", "D": "Alpha"}
        )
        client = make_client(make_transport(), directory=directory)
        assert asyncio.run(client.inventory_brand_names("EMP", "t1")) == ["Alpha", "zeta"]

    def test_close_closes_transport(self):
        transport = make_transport()
        asyncio.run(make_client(transport).close())
        transport.close.assert_awaited_once()
