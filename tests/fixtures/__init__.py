"""
Builders for upstream payloads and normalized records.

- raw_entry / entry_xml: one dispensing entry, as tree or as XML
- dispensing_xml / stores_xml: complete response bodies
- make_record / page_of: already-normalized values
- FakeSource: scripted in-memory upstream for sync loop tests
"""

from typing import Any, Optional
from zoneinfo import ZoneInfo

from utils.payload import MultipleEntries, NoEntries, Page, normalize_page, normalize_record
from utils.schemas import DispensingRecord, Partition

ZONE = ZoneInfo("Europe/Rome")
RETAILER_ID = "10006"
SECRET = "test-secret"
API_ROOT = "https://icad.test/api"
TABLE = "dispensing_events"

NAMESPACES = 'xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance" xmlns="http://icad.test/"'


def raw_entry(
    source_id: int,
    store_id: str = "S1",
    when: str = "15/03/2024 10:15:30",
    amount: str = "50,00",
) -> dict[str, Any]:
    """Dispensing entry as it comes out of the XML tree conversion."""
    return {
        "DATETIME": when,
        "DEVICETYPE": "OPT",
        "IMPIANTO": {"codice": "1234", "link": "L1", "nome": "Stazione Uno", "storeID": store_id},
        "IMPORTOTOT": amount,
        "LITRI": "27,174",
        "LOCALCARD": "0001234",
        "LOTTO": "12",
        "NUMMOV": "345",
        "OPMODE": "SELF",
        "PAYMODE": "CARD",
        "POMPA": {"npistola": "2", "npompa": "3"},
        "PREZZO": "1,840",
        "PRODOTTO": {"codice": "GAS", "nome": "Gasolio"},
        "TIPOCARTA": "FLEET",
        "TIPOPREZZO": "1",
        "TOTAL_EL": "1002003",
        "TOTAL_MEC": "1002000",
        "TRANSACTIONNUMBER": "9876543210",
        "ID": str(source_id),
    }


def entry_xml(source_id: int, store_id: str = "S1", when: str = "15/03/2024 10:15:30") -> str:
    return f"""
  <WrapErogazioni>
    <DATETIME>{when}</DATETIME>
    <DEVICETYPE>OPT</DEVICETYPE>
    <IMPIANTO><codice>1234</codice><link>L1</link><nome>Stazione Uno</nome><storeID>{store_id}</storeID></IMPIANTO>
    <IMPORTOTOT>50,00</IMPORTOTOT>
    <LITRI>27,174</LITRI>
    <LOCALCARD>0001234</LOCALCARD>
    <LOTTO>12</LOTTO>
    <NUMMOV>345</NUMMOV>
    <OPMODE>SELF</OPMODE>
    <PAYMODE>CARD</PAYMODE>
    <POMPA><npistola>2</npistola><npompa>3</npompa></POMPA>
    <PREZZO>1,840</PREZZO>
    <PRODOTTO><codice>GAS</codice><nome>Gasolio</nome></PRODOTTO>
    <TIPOCARTA>FLEET</TIPOCARTA>
    <TIPOPREZZO>1</TIPOPREZZO>
    <TOTAL_EL>1002003</TOTAL_EL>
    <TOTAL_MEC>1002000</TOTAL_MEC>
    <TRANSACTIONNUMBER>9876543210</TRANSACTIONNUMBER>
    <ID>{source_id}</ID>
  </WrapErogazioni>"""


def dispensing_xml(*source_ids: int, store_id: str = "S1") -> str:
    """erogazioniIDfilter response body; no IDs gives the empty marker."""
    if not source_ids:
        return f'<?xml version="1.0" encoding="utf-8"?>\n<ArrayOfWrapErogazioni {NAMESPACES} />'
    entries = "".join(entry_xml(source_id, store_id) for source_id in source_ids)
    return (
        f'<?xml version="1.0" encoding="utf-8"?>\n'
        f"<ArrayOfWrapErogazioni {NAMESPACES}>{entries}\n</ArrayOfWrapErogazioni>"
    )


def stores_xml(*store_ids: str) -> str:
    """impiantiInfo response body."""
    entries = "".join(
        f"<WrapImpianti><CODICE>{i}</CODICE><STOREID>{store_id}</STOREID></WrapImpianti>"
        for i, store_id in enumerate(store_ids, 1)
    )
    return (
        f'<?xml version="1.0" encoding="utf-8"?>\n'
        f"<ArrayOfWrapImpianti {NAMESPACES}>{entries}</ArrayOfWrapImpianti>"
    )


def make_record(source_id: int, store_id: str = "S1") -> DispensingRecord:
    return normalize_record(raw_entry(source_id, store_id), ZONE)


def page_of(*source_ids: int, store_id: str = "S1") -> Page:
    """Normalized page; no IDs gives the exhausted page."""
    if not source_ids:
        return normalize_page(NoEntries(), ZONE)
    return normalize_page(MultipleEntries(tuple(raw_entry(i, store_id) for i in source_ids)), ZONE)


class FakeSource:
    """In-memory upstream: scripted pages (or exceptions) per store."""

    def __init__(self, store_ids: list[str], pages: Optional[dict[str, list[Any]]] = None) -> None:
        self.partitions = [Partition(store_id=store_id) for store_id in store_ids]
        self.pages = pages or {}
        self.calls: list[tuple[str, int]] = []

    async def list_partitions(self, code: int = 0) -> list[Partition]:
        return self.partitions

    async def fetch_page(self, store_id: str, after_id: int) -> Page:
        self.calls.append((store_id, after_id))
        item = self.pages[store_id].pop(0)
        if isinstance(item, BaseException):
            raise item
        return item
