from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from backoffice.errors import UpstreamError
from backoffice.models import Platform
from backoffice.schemas.order import (
    Address,
    ExternalOrderSnapshot,
    FulfillmentRecord,
    LineItem,
    StoreCredentials,
    Variation,
)
from backoffice.shopify_client import ShopifyClient
from backoffice.sync.adapters.base import MarketplaceAdapter, OrderPage, detail_retry

logger = logging.getLogger(__name__)

_FULFILLMENT_STATES = {"success", "cancelled", "pending", "open", "error", "failure"}
# Fulfillment orders that still accept a fulfillment.
FULFILLABLE_ORDER_STATUSES = frozenset({"open", "in_progress"})


class ShopifyAddress(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    address1: str | None = None
    address2: str | None = None
    city: str | None = None
    province: str | None = None
    province_code: str | None = None
    zip: str | None = None
    country: str | None = None
    country_code: str | None = None

    def to_address(self) -> Address:
        name = self.name or f"{self.first_name or ''} {self.last_name or ''}".strip() or None
        return Address(
            name=name,
            line1=self.address1,
            line2=self.address2,
            city=self.city,
            state=self.province_code or self.province,
            zip=self.zip,
            country=self.country_code or self.country,
        )


class ShopifyProperty(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str = ""
    value: Any = None


class ShopifyLineItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int | str | None = None
    sku: str | None = None
    name: str | None = None
    title: str | None = None
    quantity: int = 1
    properties: list[ShopifyProperty] = Field(default_factory=list)


class ShopifyFulfillment(BaseModel):
    model_config = ConfigDict(extra="allow")

    status: str | None = None
    tracking_number: str | None = None
    tracking_company: str | None = None
    tracking_url: str | None = None


class ShopifyCustomer(BaseModel):
    model_config = ConfigDict(extra="allow")

    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None


class ShopifyOrder(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int | str
    order_number: int | str | None = None
    name: str | None = None
    email: str | None = None
    created_at: datetime | None = None
    fulfillment_status: str | None = None
    cancelled_at: datetime | None = None
    customer: ShopifyCustomer | None = None
    billing_address: ShopifyAddress | None = None
    shipping_address: ShopifyAddress | None = None
    line_items: list[ShopifyLineItem] = Field(default_factory=list)
    fulfillments: list[ShopifyFulfillment] = Field(default_factory=list)


def _to_fulfillment(f: ShopifyFulfillment) -> FulfillmentRecord:
    status = (f.status or "success").lower()
    return FulfillmentRecord(
        status=status if status in _FULFILLMENT_STATES else "pending",
        tracking_number=f.tracking_number or None,
        tracking_company=f.tracking_company or None,
    )


def _to_line_item(item: ShopifyLineItem) -> LineItem:
    # Properties prefixed with "_" are app-internal and never shown to the buyer.
    variations = [
        Variation(name=p.name, value="" if p.value is None else str(p.value))
        for p in item.properties
        if p.name and not p.name.startswith("_")
    ]
    return LineItem(
        external_line_id=str(item.id) if item.id is not None else None,
        sku=item.sku or None,
        title=item.name or item.title,
        quantity=item.quantity or 1,
        variations=variations,
    )


def normalize_order(raw: dict[str, Any]) -> ExternalOrderSnapshot:
    order = ShopifyOrder.model_validate(raw)
    customer = order.customer or ShopifyCustomer()
    customer_name = f"{customer.first_name or ''} {customer.last_name or ''}".strip() or None

    return ExternalOrderSnapshot(
        platform=Platform.SHOPIFY,
        external_order_id=str(order.id),
        external_receipt_id=str(order.order_number) if order.order_number is not None else None,
        order_number=str(order.order_number) if order.order_number is not None else order.name,
        order_date=order.created_at,
        customer_name=customer_name,
        customer_email=order.email or customer.email,
        receipt_address=order.billing_address.to_address() if order.billing_address else Address(),
        shipment_address=order.shipping_address.to_address() if order.shipping_address else None,
        line_items=[_to_line_item(item) for item in order.line_items],
        is_fulfilled=(order.fulfillment_status or "").lower() == "fulfilled" and order.cancelled_at is None,
        fulfillments=[_to_fulfillment(f) for f in order.fulfillments],
        raw=raw,
    )


class ShopifyAdapter(MarketplaceAdapter):
    platform = Platform.SHOPIFY

    def _client(self, credentials: StoreCredentials) -> ShopifyClient:
        return ShopifyClient(
            shop_domain=credentials.shop_domain,
            access_token=credentials.access_token,
            transport=self._transport,
        )

    async def list_orders_page(self, credentials, since, page_size, cursor=None) -> OrderPage:
        client = self._client(credentials)
        orders, next_url = await client.get_orders_page(
            created_at_min=since.isoformat(),
            limit=page_size,
            page_url=cursor,
        )
        return OrderPage(snapshots=[normalize_order(o) for o in orders], next_cursor=next_url)

    @detail_retry
    async def get_fulfillments(self, credentials, external_order_id):
        client = self._client(credentials)
        raw = await client.get_fulfillments(external_order_id)
        return [_to_fulfillment(ShopifyFulfillment.model_validate(f)) for f in raw]

    async def push_tracking(self, credentials, external_order_id, tracking_number, carrier) -> bool:
        client = self._client(credentials)
        try:
            fulfillment_orders = await client.get_fulfillment_orders(external_order_id)
            open_ids = [fo["id"] for fo in fulfillment_orders if fo.get("status") in FULFILLABLE_ORDER_STATUSES]
            if not open_ids:
                logger.warning(f"[SHOPIFY] Order {external_order_id} has no open fulfillment orders, tracking not pushed")
                return False
            logger.info(f"[SHOPIFY] Pushing tracking {tracking_number} for order {external_order_id}")
            await client.create_fulfillment(open_ids, tracking_number, carrier)
            return True
        except UpstreamError as e:
            logger.error(f"[SHOPIFY] Tracking push failed for order {external_order_id}: {e}")
            return False
