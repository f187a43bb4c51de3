"""
Upstream API client - ICAD XML endpoints.

Two read-only endpoints are used, both authenticated by the `H` token:

    GET {root}/impiantiInfo.xml?retista=..&impianto={code}&H=..
    GET {root}/erogazioniIDfilter.xml?retista=..&impianto={storeId}&ID={afterId}&H=..

Network failures and non-success statuses raise UpstreamTransportError;
structural problems in the body raise UpstreamFormatError. Calls are never
retried here.

Usage:
    async with IcadClient.from_settings(settings) as client:
        partitions = await client.list_partitions()
        page = await client.fetch_page(partitions[0].store_id, after_id=100)
"""

import logging
from datetime import tzinfo
from typing import Optional

import httpx

from utils.config import Settings
from utils.errors import UpstreamTransportError
from utils.payload import Page, parse_dispensing_page, parse_partitions
from utils.schemas import Partition
from utils.signer import RequestSigner

logger = logging.getLogger(__name__)

STORES_ENDPOINT = "impiantiInfo.xml"
DISPENSING_ENDPOINT = "erogazioniIDfilter.xml"


class IcadClient:
    """Async client for the partition list and paginated dispensing endpoints."""

    def __init__(
        self,
        api_root: str,
        retailer_id: str,
        signer: RequestSigner,
        zone: tzinfo,
        *,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            api_root: Base URL of the upstream API
            retailer_id: Retailer identifier sent as `retista`
            signer: Signer used for the `H` token
            zone: Fixed zone used to interpret record timestamps
            timeout: Per-request timeout in seconds
            http_client: Pre-built httpx client (tests inject a MockTransport)
        """
        self.api_root = api_root.rstrip("/")
        self.retailer_id = retailer_id
        self.signer = signer
        self.zone = zone
        self._client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> "IcadClient":
        return cls(
            settings.API_ROOT,
            settings.API_RETAILER_ID,
            RequestSigner(settings.API_CRYPTO_KEY),
            settings.zone(),
            timeout=settings.API_TIMEOUT,
            http_client=http_client,
        )

    async def __aenter__(self) -> "IcadClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def _get(self, endpoint: str, params: dict[str, str]) -> bytes:
        url = f"{self.api_root}/{endpoint}"
        try:
            response = await self._client.get(url, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise UpstreamTransportError(
                f"Upstream returned HTTP {e.response.status_code} for {endpoint}",
                url=url,
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise UpstreamTransportError(f"Request to {endpoint} failed: {e}", url=url) from e

        return response.content

    async def list_partitions(self, code: int = 0) -> list[Partition]:
        """
        Enumerate stores known upstream, in upstream order.

        Args:
            code: Store code to look up, 0 for every store

        Raises:
            UpstreamTransportError: On network/HTTP failure
            UpstreamFormatError: If the response is not a valid store list
        """
        params = {
            "retista": self.retailer_id,
            "impianto": str(code),
            "H": self.signer.sign(f"{self.retailer_id}{code}"),
        }
        body = await self._get(STORES_ENDPOINT, params)
        partitions = parse_partitions(body)

        logger.info("Stores listed", extra={"code": code, "count": len(partitions)})
        return partitions

    async def fetch_page(self, store_id: str, after_id: int) -> Page:
        """
        Fetch and normalize the page of dispensing events following `after_id`.

        Raises:
            UpstreamTransportError: On network/HTTP failure
            UpstreamFormatError: If the response is not a valid dispensing list
            RecordFormatError: If an entry cannot be normalized
        """
        params = {
            "retista": self.retailer_id,
            "impianto": store_id,
            "ID": str(after_id),
            "H": self.signer.sign(f"{self.retailer_id}{store_id}{after_id}"),
        }
        body = await self._get(DISPENSING_ENDPOINT, params)
        page = parse_dispensing_page(body, self.zone)

        logger.debug(
            "Page fetched",
            extra={
                "store_id": store_id,
                "after_id": after_id,
                "records": len(page.records),
                "next_cursor": page.next_cursor,
            },
        )
        return page
