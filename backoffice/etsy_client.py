import logging
from typing import Any, Dict, Optional

import httpx

from backoffice.errors import UpstreamAuthError, UpstreamTransientError, upstream_error_for_status
from backoffice.settings import settings

logger = logging.getLogger(__name__)

PLATFORM = "etsy"


class EtsyClient:
    """
    Etsy Open API v3 client.
    https://developers.etsy.com/documentation/
    """
    def __init__(
        self,
        api_key: str | None,
        access_token: str | None = None,
        base_url: str | None = None,
        timeout: httpx.Timeout | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not api_key and not access_token:
            raise UpstreamAuthError(PLATFORM, "Etsy API key or OAuth token is required")
        self.api_key = api_key
        self.access_token = access_token
        self.base_url = (base_url or settings.etsy_api_base_url).rstrip("/")
        self.timeout = timeout or httpx.Timeout(
            settings.upstream_timeout_seconds, connect=settings.upstream_connect_timeout_seconds
        )
        self._transport = transport

    def _get_headers(self) -> Dict[str, str]:
        headers = {
            "x-api-key": self.api_key or settings.etsy_api_key,
            "Content-Type": "application/json",
        }
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    async def _request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None,
                       json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(method, url, params=params, json=json, headers=self._get_headers())
        except httpx.TimeoutException as e:
            raise UpstreamTransientError(PLATFORM, f"timeout calling {path}: {e}") from e
        except httpx.TransportError as e:
            raise UpstreamTransientError(PLATFORM, f"connection error calling {path}: {e}") from e

        if response.status_code >= 400:
            body = response.text
            try:
                data = response.json()
                if isinstance(data, dict) and data.get("error"):
                    body = str(data.get("error"))
            except ValueError:
                pass
            raise upstream_error_for_status(PLATFORM, response.status_code, body)

        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError:
            return {"_raw_text": response.text}
        return data if isinstance(data, dict) else {"results": data}

    async def get_shop(self, shop_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/application/shops/{shop_id}")

    async def get_shop_receipts(self, shop_id: str, min_created: int, limit: int = 100, offset: int = 0) -> Dict[str, Any]:
        """Paid receipts created at or after ``min_created`` (unix seconds), regardless of ship status."""
        params = {
            "limit": limit,
            "offset": offset,
            "was_paid": "true",
            "min_created": min_created,
        }
        return await self._request("GET", f"/application/shops/{shop_id}/receipts", params=params)

    async def get_receipt(self, shop_id: str, receipt_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/application/shops/{shop_id}/receipts/{receipt_id}")

    async def get_receipt_transactions(self, shop_id: str, receipt_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/application/shops/{shop_id}/receipts/{receipt_id}/transactions")

    async def get_receipt_shipments(self, shop_id: str, receipt_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/application/shops/{shop_id}/receipts/{receipt_id}/shipments")

    async def update_receipt_tracking(self, shop_id: str, receipt_id: str, tracking_code: str,
                                      carrier_name: str | None) -> Dict[str, Any]:
        payload = {"tracking_code": tracking_code, "carrier_name": carrier_name or "other"}
        logger.info(f"[ETSY] Pushing tracking {tracking_code} for receipt {receipt_id}")
        return await self._request(
            "POST", f"/application/shops/{shop_id}/receipts/{receipt_id}/tracking", json=payload
        )
