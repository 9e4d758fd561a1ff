"""Record Extractor.

Turns a raw Source API payload (JSON or XML, arbitrarily nested) into a flat
list of field-name -> scalar records without any schema knowledge.

JSON: every non-empty object whose values are all scalars is a record; lists
and nested objects are walked.

XML: namespaces are reduced to local names. An element whose children are all
leaves with distinct tag names is a record (`{tag: text}` plus its plain
attributes); any other element is walked. ASMX services often wrap a JSON
document in a single `<string>` element; that text is re-extracted as JSON.
"""

import json
import re
from typing import Any, Dict, List, Optional, Union

from lxml import etree

Scalar = Optional[Union[str, int, float, bool]]
FlatRecord = Dict[str, Scalar]

_SCALAR_TYPES = (str, int, float, bool)
_XML_DECLARATION = re.compile(r"^<\?xml[^>]*\?>")
_XSD_NS = "http://www.w3.org/2001/XMLSchema"
_XSI_NIL = "{http://www.w3.org/2001/XMLSchema-instance}nil"


class ExtractionError(Exception):
    """The payload is neither parseable JSON nor parseable XML."""

    def __init__(self, message: str, payload_preview: str = ""):
        super().__init__(message)
        self.payload_preview = payload_preview


def _preview(text: str, limit: int = 200) -> str:
    return text[:limit]


# =============================================================================
# Entry point
# =============================================================================

def extract_records(payload: Union[str, bytes, None]) -> List[FlatRecord]:
    """Extract flat records from a raw payload.

    Args:
        payload: Response body as text or bytes

    Returns:
        List of flat records (possibly empty)

    Raises:
        ExtractionError: If the payload cannot be parsed as JSON or XML
    """
    if payload is None:
        return []
    if isinstance(payload, bytes):
        text = payload.decode("utf-8-sig", errors="replace")
    else:
        text = payload
    text = text.lstrip("\ufeff").strip()
    if not text:
        return []

    if text[0] in "{[":
        return _records_from_json(_parse_json(text))
    if text[0] == "<":
        return _records_from_xml(text)

    # Free text around a JSON document, e.g. "Result: [...]"
    sliced = _slice_json(text)
    if sliced is not None:
        try:
            return _records_from_json(json.loads(sliced))
        except ValueError:
            pass
    raise ExtractionError("Payload is neither JSON nor XML", _preview(text))


# =============================================================================
# JSON
# =============================================================================

def _parse_json(text: str) -> Any:
    try:
        return json.loads(text)
    except ValueError:
        sliced = _slice_json(text)
        if sliced is None:
            raise ExtractionError("Unparseable JSON payload", _preview(text))
        try:
            return json.loads(sliced)
        except ValueError as e:
            raise ExtractionError(f"Unparseable JSON payload: {e}", _preview(text)) from e


def _slice_json(text: str) -> Optional[str]:
    """Return the outermost [...] (else {...}) substring, if any."""
    start, end = text.find("["), text.rfind("]")
    if start != -1 and end > start:
        return text[start:end + 1]
    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        return text[start:end + 1]
    return None


def _is_flat(node: Dict[str, Any]) -> bool:
    return bool(node) and all(v is None or isinstance(v, _SCALAR_TYPES) for v in node.values())


def _records_from_json(parsed: Any) -> List[FlatRecord]:
    records: List[FlatRecord] = []

    def visit(node: Any) -> None:
        if isinstance(node, list):
            for item in node:
                visit(item)
        elif isinstance(node, dict):
            if _is_flat(node):
                records.append(dict(node))
                return
            for value in node.values():
                visit(value)

    visit(parsed)
    return records


# =============================================================================
# XML
# =============================================================================

def _make_parser() -> etree.XMLParser:
    return etree.XMLParser(
        resolve_entities=False,
        no_network=True,
        remove_comments=True,
        remove_pis=True,
        huge_tree=True,
    )


def _local_name(el) -> str:
    return etree.QName(el).localname


def _elements(el) -> list:
    return [child for child in el if isinstance(child.tag, str)]


def _leaf_value(el) -> Scalar:
    if el.get(_XSI_NIL) == "true":
        return None
    return (el.text or "").strip()


def _records_from_xml(text: str) -> List[FlatRecord]:
    try:
        root = etree.fromstring(_XML_DECLARATION.sub("", text, count=1), _make_parser())
    except etree.XMLSyntaxError as e:
        raise ExtractionError(f"Unparseable XML payload: {e}", _preview(text)) from e

    if not _elements(root):
        inner = (root.text or "").strip()
        if inner[:1] in ("{", "["):
            return _records_from_json(_parse_json(inner))
        return []

    records: List[FlatRecord] = []

    def visit(el) -> None:
        if etree.QName(el).namespace == _XSD_NS:
            return
        children = _elements(el)
        if not children:
            return
        if all(not _elements(child) for child in children):
            names = [_local_name(child) for child in children]
            if len(set(names)) == len(names):
                record: FlatRecord = {
                    key: value for key, value in el.attrib.items() if not key.startswith("{")
                }
                for name, child in zip(names, children):
                    record[name] = _leaf_value(child)
                records.append(record)
                return
        for child in children:
            visit(child)

    visit(root)
    return records
