"""
Patch policy: the non-destructive field merge applied when an already-known
order is seen again upstream.

Rules
- an empty incoming value (None, "", whitespace, empty list/dict) never
  overwrites anything
- address fields merge one by one, so a partial address update is allowed
- when the previous snapshot is known, a field whose upstream value has not
  changed since then is left alone, so an operator's manual correction
  survives re-delivery of the same upstream data
- sku is backfilled only; an existing sku is never replaced
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
import uuid

from backoffice.schemas.order import Address, ExternalOrderSnapshot

ADDRESS_FIELDS: dict[str, str] = {
    "shipping_address_line1": "line1",
    "shipping_address_line2": "line2",
    "shipping_city": "city",
    "shipping_state": "state",
    "shipping_zip": "zip",
    "shipping_country": "country",
}

MERGEABLE_FIELDS: tuple[str, ...] = (
    "order_number",
    "external_receipt_id",
    "order_date",
    "customer_name",
    "customer_email",
    *ADDRESS_FIELDS.keys(),
    "product_name",
    "quantity",
)

BACKFILL_ONLY_FIELDS: tuple[str, ...] = ("product_sku",)


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, dict, tuple, set)):
        return len(value) == 0
    return False


def _clean(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


def _as_utc(value: Any) -> Any:
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def values_equal(a: Any, b: Any) -> bool:
    return _as_utc(_clean(a)) == _as_utc(_clean(b))


def merge_address(receipt: Address, shipment: Address | None) -> Address:
    """
    Shipment-level address wins over the receipt-level one, field by field.
    It is captured closer to fulfillment and is the one buyers correct.
    """
    if shipment is None:
        return receipt
    merged = {}
    for key in Address.model_fields:
        preferred = getattr(shipment, key)
        merged[key] = preferred if not is_empty(preferred) else getattr(receipt, key)
    return Address(**merged)


def snapshot_to_fields(snapshot: ExternalOrderSnapshot) -> dict[str, Any]:
    """Ledger field values an upstream snapshot asserts. Status is not included."""
    address = merge_address(snapshot.receipt_address, snapshot.shipment_address)
    first = snapshot.first_line_item

    fields: dict[str, Any] = {
        "order_number": snapshot.order_number,
        "external_receipt_id": snapshot.external_receipt_id,
        "order_date": snapshot.order_date,
        "customer_name": snapshot.customer_name or address.name,
        "customer_email": snapshot.customer_email,
        "product_sku": first.sku if first else None,
        "product_name": first.title if first else None,
        "quantity": first.quantity if first else None,
    }
    for field_name, address_key in ADDRESS_FIELDS.items():
        fields[field_name] = getattr(address, address_key)
    return {k: _clean(v) for k, v in fields.items()}


def build_new_order_fields(snapshot: ExternalOrderSnapshot, store_id: uuid.UUID | None) -> dict[str, Any]:
    fields = snapshot_to_fields(snapshot)
    fields["quantity"] = fields.get("quantity") or 1
    fields.update(
        {
            "store_id": store_id,
            "platform": snapshot.platform.value,
            "external_order_id": snapshot.external_order_id,
            "raw_external_snapshot": snapshot.model_dump(mode="json"),
        }
    )
    return fields


def previous_snapshot_fields(raw_external_snapshot: dict | None) -> dict[str, Any] | None:
    """Rebuild what the last stored snapshot asserted, or None if it cannot be read."""
    if not isinstance(raw_external_snapshot, dict):
        return None
    try:
        previous = ExternalOrderSnapshot.model_validate(raw_external_snapshot)
    except ValueError:
        return None
    return snapshot_to_fields(previous)


def compute_patch(
    existing: dict[str, Any],
    incoming: dict[str, Any],
    previous: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Field-level patch turning ``existing`` into the merged record.

    ``existing`` holds the current ledger values, ``incoming`` the values from
    the fresh snapshot and ``previous`` the values from the snapshot stored at
    the last merge (if any).
    """
    patch: dict[str, Any] = {}

    for field_name in MERGEABLE_FIELDS:
        new_value = incoming.get(field_name)
        if is_empty(new_value):
            continue
        current = existing.get(field_name)
        if values_equal(current, new_value):
            continue
        if previous is not None and not is_empty(current) and values_equal(previous.get(field_name), new_value):
            # upstream unchanged since last merge: keep the local edit
            continue
        patch[field_name] = new_value

    for field_name in BACKFILL_ONLY_FIELDS:
        new_value = incoming.get(field_name)
        if is_empty(existing.get(field_name)) and not is_empty(new_value):
            patch[field_name] = new_value

    return patch


def fill_missing(existing: dict[str, Any], candidates: dict[str, Any], allowed: tuple[str, ...] | None = None) -> dict[str, Any]:
    """Patch that only populates fields which are empty today."""
    patch = {}
    for field_name, value in candidates.items():
        if allowed is not None and field_name not in allowed:
            continue
        if is_empty(value) or not is_empty(existing.get(field_name)):
            continue
        patch[field_name] = _clean(value)
    return patch
