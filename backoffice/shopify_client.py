import logging
from typing import Any, Dict, Optional

import httpx

from backoffice.errors import UpstreamAuthError, UpstreamTransientError, upstream_error_for_status
from backoffice.settings import settings

logger = logging.getLogger(__name__)

PLATFORM = "shopify"


class ShopifyClient:
    """
    Shopify Admin REST API client.
    """
    def __init__(
        self,
        shop_domain: str | None,
        access_token: str | None,
        api_version: str | None = None,
        timeout: httpx.Timeout | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not shop_domain or not access_token:
            raise UpstreamAuthError(PLATFORM, "Store credentials incomplete")
        domain = shop_domain.replace("https://", "").replace("http://", "").strip("/")
        self.base_url = f"https://{domain}/admin/api/{api_version or settings.shopify_api_version}"
        self.access_token = access_token
        self.timeout = timeout or httpx.Timeout(
            settings.upstream_timeout_seconds, connect=settings.upstream_connect_timeout_seconds
        )
        self._transport = transport

    def _get_headers(self) -> Dict[str, str]:
        return {
            "X-Shopify-Access-Token": self.access_token,
            "Content-Type": "application/json",
        }

    async def _send(self, method: str, url: str, params: Optional[Dict[str, Any]] = None,
                    json: Optional[Dict[str, Any]] = None) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(method, url, params=params, json=json, headers=self._get_headers())
        except httpx.TimeoutException as e:
            raise UpstreamTransientError(PLATFORM, f"timeout calling {url}: {e}") from e
        except httpx.TransportError as e:
            raise UpstreamTransientError(PLATFORM, f"connection error calling {url}: {e}") from e

        if response.status_code >= 400:
            raise upstream_error_for_status(PLATFORM, response.status_code, response.text)
        return response

    @staticmethod
    def _json(response: httpx.Response) -> Dict[str, Any]:
        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError:
            return {"_raw_text": response.text}
        return data if isinstance(data, dict) else {}

    async def get_orders_page(self, created_at_min: str | None = None, limit: int = 50,
                              page_url: str | None = None) -> tuple[list[Dict[str, Any]], str | None]:
        """
        One page of orders. Returns (orders, next_page_url).

        Shopify uses cursor paging through the Link header; once a page_info
        cursor is in play no other filter may be sent.
        """
        if page_url:
            response = await self._send("GET", page_url)
        else:
            params: Dict[str, Any] = {"status": "any", "limit": limit}
            if created_at_min:
                params["created_at_min"] = created_at_min
            response = await self._send("GET", f"{self.base_url}/orders.json", params=params)

        orders = self._json(response).get("orders") or []
        next_link = response.links.get("next", {}).get("url")
        return orders, next_link

    async def get_order(self, order_id: str) -> Dict[str, Any]:
        response = await self._send("GET", f"{self.base_url}/orders/{order_id}.json")
        return self._json(response).get("order") or {}

    async def get_fulfillments(self, order_id: str) -> list[Dict[str, Any]]:
        response = await self._send("GET", f"{self.base_url}/orders/{order_id}/fulfillments.json")
        return self._json(response).get("fulfillments") or []

    async def get_fulfillment_orders(self, order_id: str) -> list[Dict[str, Any]]:
        response = await self._send("GET", f"{self.base_url}/orders/{order_id}/fulfillment_orders.json")
        return self._json(response).get("fulfillment_orders") or []

    async def create_fulfillment(self, fulfillment_order_ids: list[int | str], tracking_number: str,
                                 tracking_company: str | None) -> Dict[str, Any]:
        """Fulfill whole fulfillment orders with one tracking number."""
        tracking_info: Dict[str, Any] = {"number": tracking_number}
        if tracking_company:
            tracking_info["company"] = tracking_company
        payload = {
            "fulfillment": {
                "line_items_by_fulfillment_order": [{"fulfillment_order_id": fo_id} for fo_id in fulfillment_order_ids],
                "tracking_info": tracking_info,
                "notify_customer": True,
            }
        }
        response = await self._send("POST", f"{self.base_url}/fulfillments.json", json=payload)
        return self._json(response)
