"""
Upstream payload handling - XML to records.

The upstream API answers list endpoints with an `ArrayOf<Entry>` document whose
entry element can appear many times, once, or not at all:

    <ArrayOfWrapErogazioni><WrapErogazioni>..</WrapErogazioni><WrapErogazioni>..</WrapErogazioni></ArrayOfWrapErogazioni>
    <ArrayOfWrapErogazioni><WrapErogazioni>..</WrapErogazioni></ArrayOfWrapErogazioni>
    <ArrayOfWrapErogazioni />

Once converted to a tree these become a list, a mapping, or "". The three
shapes are resolved here, once, into MultipleEntries / SingleEntry / NoEntries,
and every consumer works on that variant.
"""

from dataclasses import dataclass
from datetime import datetime, tzinfo
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Optional, Union
from xml.etree import ElementTree as ET

from utils.errors import RecordFormatError, UpstreamFormatError
from utils.schemas import DispensingRecord, Partition

TIMESTAMP_FORMAT = "%d/%m/%Y %H:%M:%S"

DISPENSING_ROOT = "ArrayOfWrapErogazioni"
DISPENSING_ENTRY = "WrapErogazioni"
STORES_ROOT = "ArrayOfWrapImpianti"
STORES_ENTRY = "WrapImpianti"


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def check_well_formed(body: Union[str, bytes]) -> ET.Element:
    """
    Validate that a response body is well-formed XML.

    Args:
        body: Raw response body; bytes are decoded per the XML declaration

    Returns:
        Root element of the document

    Raises:
        UpstreamFormatError: If the body is empty or not well-formed
    """
    if not body or not body.strip():
        raise UpstreamFormatError("Empty response body")

    try:
        return ET.fromstring(body)
    except ET.ParseError as e:
        raise UpstreamFormatError(f"Malformed XML response: {e}") from e


def element_to_tree(element: ET.Element) -> Any:
    """
    Convert an element into plain Python values.

    Leaves become trimmed text ("" when empty), repeated child tags become
    lists, a single child stays a mapping. Namespaces and attributes are dropped.
    """
    children = list(element)
    if not children:
        return (element.text or "").strip()

    tree: dict[str, Any] = {}
    for child in children:
        key = _local_name(child.tag)
        value = element_to_tree(child)
        if key not in tree:
            tree[key] = value
        elif isinstance(tree[key], list):
            tree[key].append(value)
        else:
            tree[key] = [tree[key], value]
    return tree


def parse_document(body: Union[str, bytes]) -> dict[str, Any]:
    """Check well-formedness, then convert the whole document to a tree."""
    root = check_well_formed(body)
    return {_local_name(root.tag): element_to_tree(root)}


@dataclass(frozen=True)
class MultipleEntries:
    items: tuple[dict[str, Any], ...]

    def entries(self) -> tuple[dict[str, Any], ...]:
        return self.items


@dataclass(frozen=True)
class SingleEntry:
    item: dict[str, Any]

    def entries(self) -> tuple[dict[str, Any], ...]:
        return (self.item,)


@dataclass(frozen=True)
class NoEntries:
    def entries(self) -> tuple[dict[str, Any], ...]:
        return ()


RawPage = Union[MultipleEntries, SingleEntry, NoEntries]


def classify_entries(document: dict[str, Any], root_tag: str, entry_tag: str) -> RawPage:
    """
    Resolve the shape of an `ArrayOf...` document.

    Args:
        document: Tree returned by parse_document
        root_tag: Expected root element name
        entry_tag: Name of the repeated entry element

    Returns:
        MultipleEntries, SingleEntry or NoEntries

    Raises:
        UpstreamFormatError: If the document matches none of the three shapes
    """
    if root_tag not in document:
        raise UpstreamFormatError(
            f"Unexpected root element, expected {root_tag}",
            details={"root": next(iter(document), None)},
        )

    body = document[root_tag]
    if body == "":
        return NoEntries()

    if not isinstance(body, dict) or entry_tag not in body:
        raise UpstreamFormatError(f"{root_tag} does not contain {entry_tag} entries")

    entries = body[entry_tag]
    if isinstance(entries, list):
        if not all(isinstance(entry, dict) for entry in entries):
            raise UpstreamFormatError(f"{entry_tag} list contains non-structured entries")
        return MultipleEntries(tuple(entries))

    if isinstance(entries, dict):
        return SingleEntry(entries)

    if entries == "":
        return NoEntries()

    raise UpstreamFormatError(f"{entry_tag} entry is not structured: {entries!r}")


def _lookup(entry: dict[str, Any], path: str) -> Any:
    value: Any = entry
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            raise RecordFormatError(path, None, "missing field")
        value = value[part]
    return value


def to_text(value: Any, path: str) -> str:
    if isinstance(value, (dict, list)):
        raise RecordFormatError(path, value, "expected text, got nested structure")
    return str(value)


def to_decimal(value: Any, path: str) -> Decimal:
    text = to_text(value, path).strip().replace(",", ".")
    try:
        number = Decimal(text)
    except InvalidOperation:
        raise RecordFormatError(path, value, "not a number") from None
    if not number.is_finite():
        raise RecordFormatError(path, value, "not a finite number")
    return number


def to_integer(value: Any, path: str) -> int:
    number = to_decimal(value, path)
    if number != number.to_integral_value():
        raise RecordFormatError(path, value, "not an integer")
    return int(number)


def to_timestamp(value: Any, path: str, zone: tzinfo) -> datetime:
    text = to_text(value, path).strip()
    try:
        parsed = datetime.strptime(text, TIMESTAMP_FORMAT)
    except ValueError:
        raise RecordFormatError(path, value, f"expected {TIMESTAMP_FORMAT}") from None
    return parsed.replace(tzinfo=zone)


def start_of_day(moment: datetime) -> datetime:
    """Midnight of the calendar day of `moment`, in the same zone."""
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


Coercer = Callable[[Any, str], Any]

# record attribute -> (upstream path, coercion)
RECORD_FIELDS: dict[str, tuple[str, Coercer]] = {
    "store_code": ("IMPIANTO.codice", to_text),
    "store_link": ("IMPIANTO.link", to_text),
    "store_name": ("IMPIANTO.nome", to_text),
    "store_id": ("IMPIANTO.storeID", to_text),
    "device_type": ("DEVICETYPE", to_text),
    "amount": ("IMPORTOTOT", to_decimal),
    "volume": ("LITRI", to_decimal),
    "card_id": ("LOCALCARD", to_text),
    "lot_number": ("LOTTO", to_integer),
    "movement_number": ("NUMMOV", to_integer),
    "operation_mode": ("OPMODE", to_text),
    "payment_mode": ("PAYMODE", to_text),
    "nozzle_number": ("POMPA.npistola", to_integer),
    "pump_number": ("POMPA.npompa", to_integer),
    "unit_price": ("PREZZO", to_decimal),
    "product_code": ("PRODOTTO.codice", to_text),
    "product_name": ("PRODOTTO.nome", to_text),
    "card_type": ("TIPOCARTA", to_text),
    "price_type": ("TIPOPREZZO", to_text),
    "totalizer_electronic": ("TOTAL_EL", to_integer),
    "totalizer_mechanical": ("TOTAL_MEC", to_integer),
    "transaction_number": ("TRANSACTIONNUMBER", to_integer),
    "source_id": ("ID", to_integer),
}


def normalize_record(entry: dict[str, Any], zone: tzinfo) -> DispensingRecord:
    """
    Convert one raw dispensing entry into a DispensingRecord.

    Args:
        entry: One WrapErogazioni mapping
        zone: Fixed zone used to interpret DATETIME

    Raises:
        RecordFormatError: If any field is missing or fails coercion
    """
    values: dict[str, Any] = {
        attribute: coerce(_lookup(entry, path), path)
        for attribute, (path, coerce) in RECORD_FIELDS.items()
    }

    occurred_at = to_timestamp(_lookup(entry, "DATETIME"), "DATETIME", zone)
    values["occurred_at"] = occurred_at
    values["accounting_day"] = start_of_day(occurred_at)

    return DispensingRecord(**values)


@dataclass(frozen=True)
class Page:
    """One normalized page. `next_cursor` is None exactly when exhausted."""

    records: tuple[DispensingRecord, ...]
    next_cursor: Optional[int]
    exhausted: bool


def normalize_page(raw_page: RawPage, zone: tzinfo) -> Page:
    """Normalize every entry of a classified page and compute the next cursor."""
    if isinstance(raw_page, NoEntries):
        return Page(records=(), next_cursor=None, exhausted=True)

    records = tuple(normalize_record(entry, zone) for entry in raw_page.entries())
    return Page(
        records=records,
        next_cursor=max(record.source_id for record in records),
        exhausted=False,
    )


def parse_dispensing_page(body: Union[str, bytes], zone: tzinfo) -> Page:
    """Full pipeline for an erogazioniIDfilter response body."""
    document = parse_document(body)
    return normalize_page(classify_entries(document, DISPENSING_ROOT, DISPENSING_ENTRY), zone)


def parse_partitions(body: Union[str, bytes]) -> list[Partition]:
    """
    Read the store list from an impiantiInfo response body, in upstream order.

    Raises:
        UpstreamFormatError: If the body is malformed or an entry has no STOREID
    """
    document = parse_document(body)
    raw_page = classify_entries(document, STORES_ROOT, STORES_ENTRY)

    partitions = []
    for entry in raw_page.entries():
        store_id = entry.get("STOREID")
        if not isinstance(store_id, str) or not store_id:
            raise UpstreamFormatError("Store entry without STOREID", details={"entry": entry})

        code = entry.get("CODICE")
        partitions.append(
            Partition(
                store_id=store_id,
                code=int(code) if isinstance(code, str) and code.isdigit() else None,
            )
        )
    return partitions
