"""
Shipment/tracking state derived from marketplace fulfillment records.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from backoffice.models import Order, OrderStatus
from backoffice.schemas.order import FulfillmentRecord, TrackingInfo
from backoffice.services import order_lifecycle
from backoffice.services.merge_policy import fill_missing, is_empty
from backoffice.services.order_lifecycle import Trigger

logger = logging.getLogger(__name__)

# "In production" in the forward chain; anything later already has a label.
LATEST_STATUS_FOR_MARKETPLACE_ADVANCE = OrderStatus.PENDING_FULFILLMENT


def _field(record: Any, name: str) -> Any:
    if isinstance(record, dict):
        return record.get(name)
    return getattr(record, name, None)


def extract_tracking(records: Iterable[FulfillmentRecord | dict] | None) -> TrackingInfo | None:
    """
    First non-cancelled record, in listed order, that carries a tracking number.

    Multi-fulfillment orders are rare and later records are usually manual
    corrections the seller already reconciled, so the first one wins.
    """
    for record in records or []:
        if (_field(record, "status") or "").lower() == "cancelled":
            continue
        tracking_number = _field(record, "tracking_number")
        if is_empty(tracking_number):
            continue
        return TrackingInfo(
            tracking_number=str(tracking_number).strip(),
            label_url=_field(record, "label_url"),
            carrier=_field(record, "tracking_company") or _field(record, "carrier"),
        )
    return None


def should_advance_to_labels(status: OrderStatus | str, upstream_fulfilled: bool) -> bool:
    return upstream_fulfilled and order_lifecycle.is_at_or_before(status, LATEST_STATUS_FOR_MARKETPLACE_ADVANCE)


def fulfillment_patch(order: Order, tracking: TrackingInfo | None, upstream_fulfilled: bool) -> dict[str, Any]:
    """
    Fields to merge when the marketplace reports the order fulfilled.

    Tracking fields only fill blanks. The status moves to labels_generated when
    the label was bought directly on the marketplace while the order was still
    at or before production here.
    """
    patch: dict[str, Any] = {}
    if tracking is not None:
        patch.update(
            fill_missing(
                {"tracking_number": order.tracking_number, "label_url": order.label_url, "carrier": order.carrier},
                {"tracking_number": tracking.tracking_number, "label_url": tracking.label_url, "carrier": tracking.carrier},
            )
        )

    if should_advance_to_labels(order.status, upstream_fulfilled) and order_lifecycle.can_transition(
        order.status, OrderStatus.LABELS_GENERATED, Trigger.MARKETPLACE_FULFILLMENT
    ):
        patch["status"] = OrderStatus.LABELS_GENERATED.value
        patch["labels_generated_at"] = datetime.now(timezone.utc)
        logger.info(
            f"[TRACKING] Order {order.order_number or order.external_order_id} fulfilled upstream, "
            f"advancing {order.status} -> labels_generated"
        )
    return patch


def advance_from_marketplace_fulfillment(session: Session, order: Order, records: Iterable[FulfillmentRecord | dict] | None,
                                         upstream_fulfilled: bool) -> bool:
    """
    Apply the marketplace's fulfillment state to a local order: fill blank
    tracking fields and move to labels_generated when the label was bought
    upstream. Returns True if anything changed.
    """
    patch = fulfillment_patch(order, extract_tracking(records), upstream_fulfilled)
    if not patch:
        return False

    new_status = patch.pop("status", None)
    for name, value in patch.items():
        setattr(order, name, value)
    if new_status is not None:
        order_lifecycle.transition(session, order, order_lifecycle.as_status(new_status),
                                   Trigger.MARKETPLACE_FULFILLMENT, note=order.tracking_number)
    else:
        session.flush()
    return True
