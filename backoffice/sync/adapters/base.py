from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import datetime

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from backoffice.errors import UpstreamTransientError
from backoffice.models import Platform
from backoffice.schemas.order import ExternalOrderSnapshot, FulfillmentRecord, StoreCredentials
from backoffice.settings import settings

logger = logging.getLogger(__name__)


@dataclass
class OrderPage:
    snapshots: list[ExternalOrderSnapshot] = field(default_factory=list)
    next_cursor: str | None = None


# Per-order detail calls may be retried in-process; the listing call never is.
detail_retry = retry(
    stop=stop_after_attempt(settings.upstream_detail_retry_count),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type(UpstreamTransientError),
    reraise=True,
    before_sleep=lambda retry_state: logger.warning(
        f"[ADAPTER] Retrying detail call ({retry_state.attempt_number}): {retry_state.outcome.exception()}"
    ),
)


class MarketplaceAdapter(ABC):
    """
    Translates normalized requests into one platform's HTTP calls.

    Adapters own auth, paging and rate-limit conventions for their platform and
    reshape responses into ExternalOrderSnapshot / FulfillmentRecord. They never
    decide anything about order status.
    """

    platform: Platform

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None):
        self._transport = transport

    @abstractmethod
    async def list_orders_page(
        self,
        credentials: StoreCredentials,
        since: datetime,
        page_size: int,
        cursor: str | None = None,
    ) -> OrderPage:
        """One page of orders created at or after ``since``. Pass ``next_cursor`` back for the next page."""

    async def list_orders_since(
        self,
        credentials: StoreCredentials,
        since: datetime,
        page_size: int,
        max_pages: int | None = None,
    ) -> AsyncIterator[list[ExternalOrderSnapshot]]:
        """Yield pages until the platform reports no more, or ``max_pages`` is reached."""
        cursor = None
        pages = 0
        while True:
            page = await self.list_orders_page(credentials, since, page_size, cursor)
            pages += 1
            yield page.snapshots
            cursor = page.next_cursor
            if not cursor:
                return
            if max_pages is not None and pages >= max_pages:
                logger.warning(f"[ADAPTER] {self.platform.value}: stopped paging after {pages} pages")
                return

    async def hydrate(self, credentials: StoreCredentials, snapshot: ExternalOrderSnapshot) -> ExternalOrderSnapshot:
        """Fill per-order detail the listing call does not return. Default: nothing to add."""
        return snapshot

    @abstractmethod
    async def get_fulfillments(self, credentials: StoreCredentials, external_order_id: str) -> list[FulfillmentRecord]:
        ...

    @abstractmethod
    async def push_tracking(
        self,
        credentials: StoreCredentials,
        external_order_id: str,
        tracking_number: str,
        carrier: str | None,
    ) -> bool:
        ...


def get_adapter(platform: Platform | str, transport: httpx.AsyncBaseTransport | None = None) -> MarketplaceAdapter:
    from backoffice.sync.adapters.etsy import EtsyAdapter
    from backoffice.sync.adapters.shopify import ShopifyAdapter

    platform = Platform(platform)
    if platform == Platform.ETSY:
        return EtsyAdapter(transport=transport)
    if platform == Platform.SHOPIFY:
        return ShopifyAdapter(transport=transport)
    raise ValueError(f"Unsupported platform: {platform}")
