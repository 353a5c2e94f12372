"""
Order lifecycle state machine.

Forward chain

    pending_enrichment -> ready_for_design -> design_complete
        -> pending_fulfillment -> labels_generated -> loaded_for_shipment
        -> in_transit -> delivered

plus a ``needs_review`` hold that any non-terminal state can enter and that
returns to any forward state by operator action, and the revision loop
(design_complete / pending_fulfillment -> ready_for_design) that clears the
production lock. Entering pending_fulfillment by any trigger sets the lock.

Every edge lists the triggers allowed to take it. A status change that is not
in TRANSITIONS is rejected with InvalidTransitionError, whoever asks for it.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice.errors import (
    IntakeValidationError,
    InvalidTransitionError,
    OrderNotFoundError,
    ProductionLockedError,
)
from backoffice.models import Order, OrderStatus, OrderStatusHistory
from backoffice.settings import settings

logger = logging.getLogger(__name__)

S = OrderStatus


class Trigger(str, Enum):
    SYNC = "sync"                      # status resolver at ingestion / sku backfill
    CATALOG = "catalog"                # batch re-resolution after catalog changes
    INTAKE = "intake"                  # customer personalization submission
    DESIGN_UPLOAD = "design_upload"    # every line item has a design
    PRODUCTION = "production"          # operator confirms production
    REVISION = "revision"              # operator requests design rework
    LABEL = "label"                    # label purchased, tracking attached
    MARKETPLACE_FULFILLMENT = "marketplace_fulfillment"  # label bought on the marketplace
    SCAN = "scan"                      # physical load scan
    CARRIER = "carrier"                # carrier movement events
    REVIEW = "review"                  # flag / resolve review hold
    OPERATOR = "operator"              # manual status change


FORWARD_CHAIN: tuple[OrderStatus, ...] = (
    S.PENDING_ENRICHMENT,
    S.READY_FOR_DESIGN,
    S.DESIGN_COMPLETE,
    S.PENDING_FULFILLMENT,
    S.LABELS_GENERATED,
    S.LOADED_FOR_SHIPMENT,
    S.IN_TRANSIT,
    S.DELIVERED,
)

TERMINAL_STATES = frozenset({S.DELIVERED})

_T = Trigger
_to_ready = frozenset({_T.SYNC, _T.CATALOG, _T.INTAKE, _T.OPERATOR})
_marketplace_label = frozenset({_T.MARKETPLACE_FULFILLMENT})

TRANSITIONS: dict[OrderStatus, dict[OrderStatus, frozenset[Trigger]]] = {
    S.PENDING_ENRICHMENT: {
        S.READY_FOR_DESIGN: _to_ready,
        S.LABELS_GENERATED: _marketplace_label,
    },
    S.READY_FOR_DESIGN: {
        S.DESIGN_COMPLETE: frozenset({_T.DESIGN_UPLOAD, _T.OPERATOR}),
        S.LABELS_GENERATED: _marketplace_label,
    },
    S.DESIGN_COMPLETE: {
        S.PENDING_FULFILLMENT: frozenset({_T.PRODUCTION, _T.OPERATOR}),
        S.READY_FOR_DESIGN: frozenset({_T.REVISION}),
        S.LABELS_GENERATED: frozenset({_T.LABEL, _T.MARKETPLACE_FULFILLMENT}),
    },
    S.PENDING_FULFILLMENT: {
        S.LABELS_GENERATED: frozenset({_T.LABEL, _T.MARKETPLACE_FULFILLMENT, _T.OPERATOR}),
        S.READY_FOR_DESIGN: frozenset({_T.REVISION}),
    },
    S.LABELS_GENERATED: {
        S.LOADED_FOR_SHIPMENT: frozenset({_T.SCAN, _T.OPERATOR}),
        S.IN_TRANSIT: frozenset({_T.CARRIER}),
        S.DELIVERED: frozenset({_T.CARRIER}),
    },
    S.LOADED_FOR_SHIPMENT: {
        S.IN_TRANSIT: frozenset({_T.CARRIER, _T.OPERATOR}),
        S.DELIVERED: frozenset({_T.CARRIER}),
    },
    S.IN_TRANSIT: {
        S.DELIVERED: frozenset({_T.CARRIER, _T.OPERATOR}),
    },
    S.DELIVERED: {},
    # Leaving the hold is always an explicit operator decision.
    S.NEEDS_REVIEW: {status: frozenset({_T.REVIEW, _T.OPERATOR}) for status in FORWARD_CHAIN},
}

for _status in FORWARD_CHAIN:
    if _status not in TERMINAL_STATES:
        TRANSITIONS[_status][S.NEEDS_REVIEW] = frozenset({_T.REVIEW, _T.OPERATOR})

# Carrier tracking statuses that mean the parcel is moving.
CARRIER_IN_TRANSIT_STATUSES = frozenset(
    {"in_transit", "out_for_delivery", "available_for_pickup", "accepted", "picked_up"}
)
CARRIER_DELIVERED_STATUSES = frozenset({"delivered"})

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def as_status(value: OrderStatus | str) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError as e:
        raise InvalidTransitionError(str(value), str(value), "unknown status") from e


def chain_position(status: OrderStatus | str) -> int | None:
    """Index in the forward chain, None for needs_review."""
    status = as_status(status)
    return FORWARD_CHAIN.index(status) if status in FORWARD_CHAIN else None


def is_at_or_before(status: OrderStatus | str, limit: OrderStatus) -> bool:
    position = chain_position(status)
    return position is not None and position <= FORWARD_CHAIN.index(limit)


def can_transition(from_status: OrderStatus | str, to_status: OrderStatus | str, trigger: Trigger) -> bool:
    allowed = TRANSITIONS.get(as_status(from_status), {}).get(as_status(to_status))
    return bool(allowed) and trigger in allowed


def check_transition(from_status: OrderStatus | str, to_status: OrderStatus | str, trigger: Trigger) -> None:
    if not can_transition(from_status, to_status, trigger):
        raise InvalidTransitionError(as_status(from_status).value, as_status(to_status).value,
                                     f"not allowed via {trigger.value}")


def record_history(session: Session, order: Order, from_status: str | None, to_status: str,
                   trigger: Trigger, note: str | None = None) -> None:
    session.add(
        OrderStatusHistory(
            order_id=order.id,
            from_status=from_status,
            to_status=to_status,
            source=trigger.value,
            note=note,
        )
    )


def transition(session: Session, order: Order, to_status: OrderStatus, trigger: Trigger,
               note: str | None = None) -> Order:
    from_status = order.status
    check_transition(from_status, to_status, trigger)
    # Every way into production stamps the design lock.
    if to_status == S.PENDING_FULFILLMENT and order.production_started_at is None:
        order.production_started_at = _now()
    order.status = to_status.value
    order.updated_at = _now()
    record_history(session, order, from_status, to_status.value, trigger, note)
    session.flush()
    logger.info(f"[LIFECYCLE] Order {order.order_number or order.id}: {from_status} -> {to_status.value} ({trigger.value})")
    return order


def get_order(session: Session, order_id: Any) -> Order:
    order = session.get(Order, order_id)
    if order is None:
        raise OrderNotFoundError(f"Order not found: {order_id}")
    return order


# --------------------------------------------------------------------------
# Design & production
# --------------------------------------------------------------------------

def line_item_ids(order: Order) -> list[str]:
    snapshot = order.raw_external_snapshot or {}
    ids = [str(item.get("external_line_id")) for item in snapshot.get("line_items") or []
           if item.get("external_line_id") is not None]
    return ids or [str(order.external_order_id)]


def is_production_locked(order: Order) -> bool:
    return order.production_started_at is not None


def design_files(order: Order) -> list[dict]:
    """Uploaded design files with the current lock state attached."""
    locked = is_production_locked(order)
    return [{**f, "locked": locked} for f in (order.design_files or [])]


def upload_design(session: Session, order: Order, line_id: str, file_path: str) -> Order:
    """
    Attach a design file to one line item. Advances to design_complete once
    every line item has a design.
    """
    if is_production_locked(order):
        raise ProductionLockedError(
            f"Order {order.order_number or order.id} is in production; request a revision before replacing designs"
        )

    line_id = str(line_id)
    files = [f for f in (order.design_files or []) if str(f.get("line_id")) != line_id]
    files.append({"line_id": line_id, "file_path": file_path, "uploaded_at": _now().isoformat()})
    order.design_files = files
    session.flush()

    designed = {str(f.get("line_id")) for f in files}
    if order.status == S.READY_FOR_DESIGN.value and all(lid in designed for lid in line_item_ids(order)):
        transition(session, order, S.DESIGN_COMPLETE, Trigger.DESIGN_UPLOAD, note="all line items have designs")
    return order


def start_production(session: Session, order: Order) -> Order:
    check_transition(order.status, S.PENDING_FULFILLMENT, Trigger.PRODUCTION)
    order.needs_design_revision = False
    order.design_revision_notes = None
    return transition(session, order, S.PENDING_FULFILLMENT, Trigger.PRODUCTION)


def request_revision(session: Session, order: Order, revision_notes: str | None = None) -> Order:
    """Send an order back to the design queue and lift the production lock."""
    transition(session, order, S.READY_FOR_DESIGN, Trigger.REVISION, note=revision_notes)
    order.production_started_at = None
    order.needs_design_revision = True
    order.design_revision_notes = revision_notes or None
    session.flush()
    return order


# --------------------------------------------------------------------------
# Review hold
# --------------------------------------------------------------------------

def flag_for_review(session: Session, order: Order, reason: str) -> Order:
    if not reason or not reason.strip():
        raise InvalidTransitionError(order.status, S.NEEDS_REVIEW.value, "a review reason is required")
    order.review_reason = reason.strip()
    return transition(session, order, S.NEEDS_REVIEW, Trigger.REVIEW, note=order.review_reason)


def resolve_review(session: Session, order: Order, to_status: OrderStatus | str) -> Order:
    to_status = as_status(to_status)
    transition(session, order, to_status, Trigger.REVIEW)
    order.review_reason = None
    session.flush()
    return order


def set_status(session: Session, order: Order, to_status: OrderStatus | str, review_reason: str | None = None) -> Order:
    """Manual status change from the order screen."""
    to_status = as_status(to_status)
    if to_status == S.NEEDS_REVIEW:
        return flag_for_review(session, order, review_reason or "")
    transition(session, order, to_status, Trigger.OPERATOR)
    order.review_reason = None
    session.flush()
    return order


# --------------------------------------------------------------------------
# Customer intake
# --------------------------------------------------------------------------

def _validate_intake_items(items: list[dict]) -> None:
    for item in items:
        for f in item.get("uploaded_files") or []:
            file_type = (f.get("file_type") or "").lower()
            if file_type not in settings.intake_allowed_file_types:
                raise IntakeValidationError(f"File {f.get('file_name')} must be PNG or JPEG format")
            if int(f.get("file_size") or 0) > settings.intake_max_file_bytes:
                raise IntakeValidationError(f"File {f.get('file_name')} exceeds the upload size limit")


def submit_intake(session: Session, order: Order, email: str, items: list[dict] | None = None,
                  customer_notes: str | None = None) -> Order:
    """Record the buyer's personalization submission and release the order to design."""
    if not email or not _EMAIL_RE.match(email.strip()):
        raise IntakeValidationError("Valid email is required")
    if order.status != S.PENDING_ENRICHMENT.value:
        raise InvalidTransitionError(order.status, S.READY_FOR_DESIGN.value, "this order has already been processed")

    items = items or []
    _validate_intake_items(items)

    order.enrichment_email = email.strip()
    order.enrichment_submitted_at = _now()
    if customer_notes and customer_notes.strip():
        order.customer_notes = customer_notes.strip()
    order.customer_enrichment = items

    return transition(session, order, S.READY_FOR_DESIGN, Trigger.INTAKE)


# --------------------------------------------------------------------------
# Shipping
# --------------------------------------------------------------------------

def attach_label(session: Session, order: Order, tracking_number: str, label_url: str | None,
                 carrier: str | None = None) -> Order:
    if not tracking_number:
        raise InvalidTransitionError(order.status, S.LABELS_GENERATED.value, "tracking number is required")
    check_transition(order.status, S.LABELS_GENERATED, Trigger.LABEL)
    order.tracking_number = tracking_number
    order.label_url = label_url
    order.carrier = carrier or order.carrier
    order.labels_generated_at = _now()
    return transition(session, order, S.LABELS_GENERATED, Trigger.LABEL)


def load_for_shipment(session: Session, tracking_number: str) -> Order:
    if not tracking_number:
        raise OrderNotFoundError("Tracking number is required")
    order = session.scalars(select(Order).where(Order.tracking_number == tracking_number)).first()
    if order is None:
        raise OrderNotFoundError(f"No order found with tracking number {tracking_number}")
    if not order.label_url:
        raise InvalidTransitionError(order.status, S.LOADED_FOR_SHIPMENT.value, "this order does not have a shipping label yet")
    order.loaded_for_shipment_at = _now()
    return transition(session, order, S.LOADED_FOR_SHIPMENT, Trigger.SCAN)


def record_carrier_status(session: Session, order: Order, carrier_status: str) -> bool:
    """Advance a shipped order from a carrier tracking status. Returns True if the status changed."""
    carrier_status = (carrier_status or "").lower()
    if carrier_status in CARRIER_DELIVERED_STATUSES:
        target = S.DELIVERED
    elif carrier_status in CARRIER_IN_TRANSIT_STATUSES:
        target = S.IN_TRANSIT
    else:
        return False

    if order.status == target.value or not can_transition(order.status, target, Trigger.CARRIER):
        return False

    if target == S.IN_TRANSIT:
        order.shipped_at = order.shipped_at or _now()
    else:
        order.delivered_at = _now()
    transition(session, order, target, Trigger.CARRIER, note=carrier_status)
    return True
