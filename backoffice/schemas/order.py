"""
Normalized marketplace order shapes.

Every adapter converts its platform payload into these models before anything
else sees it. Nothing Etsy- or Shopify-specific is allowed past this boundary
except inside ``raw``, which is kept verbatim for audit.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from backoffice.models import Platform, Store


class StoreCredentials(BaseModel):
    """Explicit credentials passed to every adapter call."""

    model_config = ConfigDict(frozen=True)

    platform: Platform
    shop_id: str | None = None
    api_key: str | None = None
    access_token: str | None = None
    shop_domain: str | None = None

    @classmethod
    def from_store(cls, store: Store) -> "StoreCredentials":
        creds = store.credentials if isinstance(store.credentials, dict) else {}
        return cls(
            platform=Platform(store.platform),
            shop_id=str(creds.get("shop_id") or store.external_shop_id or "").strip() or None,
            api_key=str(creds.get("api_key") or "").strip() or None,
            access_token=str(creds.get("access_token") or "").strip() or None,
            shop_domain=str(creds.get("shop_domain") or store.external_shop_id or "").strip() or None,
        )


class Variation(BaseModel):
    name: str
    value: str = ""


class LineItem(BaseModel):
    external_line_id: str | None = None
    sku: str | None = None
    title: str | None = None
    quantity: int = 1
    variations: list[Variation] = Field(default_factory=list)


class Address(BaseModel):
    name: str | None = None
    line1: str | None = None
    line2: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None
    country: str | None = None


FulfillmentState = Literal["success", "cancelled", "pending", "open", "error", "failure"]


class FulfillmentRecord(BaseModel):
    status: FulfillmentState = "success"
    tracking_number: str | None = None
    tracking_company: str | None = None
    label_url: str | None = None


class ExternalOrderSnapshot(BaseModel):
    platform: Platform
    external_order_id: str
    external_receipt_id: str | None = None
    order_number: str | None = None
    order_date: datetime | None = None

    customer_name: str | None = None
    customer_email: str | None = None
    receipt_address: Address = Field(default_factory=Address)
    shipment_address: Address | None = None

    line_items: list[LineItem] = Field(default_factory=list)
    is_fulfilled: bool = False
    fulfillments: list[FulfillmentRecord] | None = None

    raw: dict[str, Any] = Field(default_factory=dict)

    @property
    def first_line_item(self) -> LineItem | None:
        return self.line_items[0] if self.line_items else None

    def personalization_variations(self) -> list[Variation]:
        first = self.first_line_item
        return list(first.variations) if first else []


class TrackingInfo(BaseModel):
    tracking_number: str
    label_url: str | None = None
    carrier: str | None = None
