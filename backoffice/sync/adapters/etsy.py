from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from backoffice.errors import UpstreamAuthError, UpstreamError
from backoffice.etsy_client import EtsyClient
from backoffice.models import Platform
from backoffice.schemas.order import (
    Address,
    ExternalOrderSnapshot,
    FulfillmentRecord,
    LineItem,
    StoreCredentials,
    Variation,
)
from backoffice.sync.adapters.base import MarketplaceAdapter, OrderPage, detail_retry

logger = logging.getLogger(__name__)


class EtsyVariation(BaseModel):
    model_config = ConfigDict(extra="allow")

    formatted_name: str | None = None
    formatted_value: str | None = None


class EtsyTransaction(BaseModel):
    model_config = ConfigDict(extra="allow")

    transaction_id: int | str | None = None
    sku: str | None = None
    title: str | None = None
    quantity: int = 1
    variations: list[EtsyVariation] = Field(default_factory=list)


class EtsyShipment(BaseModel):
    model_config = ConfigDict(extra="allow")

    tracking_code: str | None = None
    carrier_name: str | None = None
    to_name: str | None = None
    to_address_1: str | None = None
    to_address_2: str | None = None
    to_city: str | None = None
    to_state: str | None = None
    to_zip: str | None = None
    to_country_iso: str | None = None


class EtsyReceipt(BaseModel):
    model_config = ConfigDict(extra="allow")

    receipt_id: int | str
    name: str | None = None
    first_line: str | None = None
    second_line: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None
    country_iso: str | None = None
    buyer_email: str | None = None
    created_timestamp: int | None = None
    is_shipped: bool = False
    status: str | None = None
    transactions: list[EtsyTransaction] = Field(default_factory=list)
    shipments: list[EtsyShipment] = Field(default_factory=list)


def enhance_sku_with_dimensions(base_sku: str | None, variations: list[EtsyVariation]) -> str:
    """
    Append the digits of a size/dimension variation to the listing sku.

    BLKT-KPOP-001 + "30x40" -> BLKT-KPOP-001-30-40
    """
    if not base_sku:
        return ""
    size_variation = next(
        (
            v for v in variations
            if "size" in (v.formatted_name or "").lower() or "dimension" in (v.formatted_name or "").lower()
        ),
        None,
    )
    if not size_variation:
        return base_sku
    numerals = re.findall(r"\d+", size_variation.formatted_value or "")
    if not numerals:
        return base_sku
    return f"{base_sku}-{'-'.join(numerals)}"


def _to_line_item(txn: EtsyTransaction) -> LineItem:
    return LineItem(
        external_line_id=str(txn.transaction_id) if txn.transaction_id is not None else None,
        sku=enhance_sku_with_dimensions(txn.sku, txn.variations) or None,
        title=txn.title,
        quantity=txn.quantity or 1,
        variations=[Variation(name=v.formatted_name or "", value=v.formatted_value or "") for v in txn.variations],
    )


def _to_fulfillment(shipment: EtsyShipment) -> FulfillmentRecord:
    return FulfillmentRecord(
        status="success",
        tracking_number=shipment.tracking_code or None,
        tracking_company=shipment.carrier_name or None,
    )


def normalize_receipt(raw: dict[str, Any], shipment: dict[str, Any] | None = None) -> ExternalOrderSnapshot:
    receipt = EtsyReceipt.model_validate(raw)
    receipt_id = str(receipt.receipt_id)

    shipment_address = None
    if shipment:
        parsed = EtsyShipment.model_validate(shipment)
        shipment_address = Address(
            name=parsed.to_name,
            line1=parsed.to_address_1,
            line2=parsed.to_address_2,
            city=parsed.to_city,
            state=parsed.to_state,
            zip=parsed.to_zip,
            country=parsed.to_country_iso,
        )

    order_date = None
    if receipt.created_timestamp:
        order_date = datetime.fromtimestamp(receipt.created_timestamp, tz=timezone.utc)

    cancelled = (receipt.status or "").lower() in ("canceled", "cancelled")
    return ExternalOrderSnapshot(
        platform=Platform.ETSY,
        external_order_id=receipt_id,
        external_receipt_id=receipt_id,
        order_number=receipt_id,
        order_date=order_date,
        customer_name=receipt.name,
        customer_email=receipt.buyer_email,
        receipt_address=Address(
            name=receipt.name,
            line1=receipt.first_line,
            line2=receipt.second_line,
            city=receipt.city,
            state=receipt.state,
            zip=receipt.zip,
            country=receipt.country_iso,
        ),
        shipment_address=shipment_address,
        line_items=[_to_line_item(txn) for txn in receipt.transactions],
        is_fulfilled=receipt.is_shipped and not cancelled,
        fulfillments=[
            _to_fulfillment(s).model_copy(update={"status": "cancelled"}) if cancelled else _to_fulfillment(s)
            for s in receipt.shipments
        ],
        raw=raw,
    )


class EtsyAdapter(MarketplaceAdapter):
    platform = Platform.ETSY

    def _client(self, credentials: StoreCredentials) -> EtsyClient:
        if not credentials.shop_id:
            raise UpstreamAuthError(Platform.ETSY.value, "Etsy shop id is missing from store credentials")
        return EtsyClient(
            api_key=credentials.api_key,
            access_token=credentials.access_token,
            transport=self._transport,
        )

    async def list_orders_page(self, credentials, since, page_size, cursor=None) -> OrderPage:
        client = self._client(credentials)
        offset = int(cursor or 0)
        data = await client.get_shop_receipts(
            credentials.shop_id,
            min_created=int(since.timestamp()),
            limit=page_size,
            offset=offset,
        )
        receipts = data.get("results") or []
        snapshots = [normalize_receipt(r) for r in receipts]

        next_offset = offset + len(receipts)
        total = data.get("count")
        has_more = len(receipts) >= page_size and (total is None or next_offset < int(total))
        return OrderPage(snapshots=snapshots, next_cursor=str(next_offset) if has_more else None)

    @detail_retry
    async def hydrate(self, credentials, snapshot):
        client = self._client(credentials)
        receipt = dict(snapshot.raw)

        if not receipt.get("transactions"):
            txn_data = await client.get_receipt_transactions(credentials.shop_id, snapshot.external_order_id)
            receipt["transactions"] = txn_data.get("results") or []

        # Unshipped receipts have no shipments yet; Etsy answers 404.
        shipment = None
        try:
            shipment_data = await client.get_receipt_shipments(credentials.shop_id, snapshot.external_order_id)
            shipments = shipment_data.get("results") or []
            shipment = shipments[0] if shipments else None
        except UpstreamError as e:
            if e.status_code != 404:
                raise

        if shipment and not receipt.get("shipments"):
            receipt["shipments"] = [shipment]
        return normalize_receipt(receipt, shipment=shipment)

    @detail_retry
    async def get_fulfillments(self, credentials, external_order_id):
        client = self._client(credentials)
        receipt = await client.get_receipt(credentials.shop_id, external_order_id)
        return normalize_receipt(receipt).fulfillments or []

    async def push_tracking(self, credentials, external_order_id, tracking_number, carrier) -> bool:
        client = self._client(credentials)
        try:
            await client.update_receipt_tracking(credentials.shop_id, external_order_id, tracking_number, carrier)
            return True
        except UpstreamError as e:
            logger.error(f"[ETSY] Tracking push failed for receipt {external_order_id}: {e}")
            return False
