"""
Batch carrier tracking refresh.

Polls the carrier for every shipped-but-not-delivered order that has a
tracking number and moves it forward through record_carrier_status. Carriers
plug in through CarrierTrackingSource; one order's failure is recorded and the
batch continues.
"""

import logging
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice.models import Order, OrderStatus
from backoffice.services import order_lifecycle
from backoffice.usps_client import UspsClient

logger = logging.getLogger(__name__)

REFRESHABLE_STATUSES = (
    OrderStatus.LABELS_GENERATED.value,
    OrderStatus.LOADED_FOR_SHIPMENT.value,
    OrderStatus.IN_TRANSIT.value,
)


class CarrierTrackingSource(Protocol):
    name: str

    async def get_status(self, tracking_number: str, carrier: str | None) -> str | None:
        """Normalized carrier status (in_transit, delivered, ...), or None if this source can't tell."""
        ...


def map_usps_status(payload: dict[str, Any]) -> str:
    status = (payload.get("status") or "").lower()
    category = (payload.get("statusCategory") or "").lower()

    if "delivered" in status or category == "delivered":
        return "delivered"
    if "out for delivery" in status:
        return "out_for_delivery"
    if "in transit" in status or "arriving" in status or category == "in_transit":
        return "in_transit"
    if "accepted" in status or "picked up" in status or "usps in possession" in status or category == "accepted":
        return "accepted"
    if "pre-shipment" in status or "shipping label created" in status or category == "pre_shipment":
        return "pre_transit"
    return "unknown"


class UspsTrackingSource:
    name = "usps"

    def __init__(self, client: UspsClient | None = None):
        self.client = client or UspsClient()

    async def get_status(self, tracking_number: str, carrier: str | None) -> str | None:
        if carrier and "usps" not in carrier.lower():
            return None
        return map_usps_status(await self.client.get_tracking(tracking_number))


async def refresh_carrier_statuses(session: Session, source: CarrierTrackingSource) -> dict[str, Any]:
    orders = session.scalars(
        select(Order)
        .where(Order.tracking_number.is_not(None), Order.status.in_(REFRESHABLE_STATUSES))
        .order_by(Order.created_at.desc())
    ).all()
    logger.info(f"[TRACKING] Checking {len(orders)} orders with tracking numbers via {source.name}")

    updated = 0
    unchanged = 0
    failures: list[dict[str, str]] = []
    for order in orders:
        label = order.order_number or str(order.id)
        tracking_number = order.tracking_number
        try:
            carrier_status = await source.get_status(tracking_number, order.carrier)
            changed = order_lifecycle.record_carrier_status(session, order, carrier_status or "")
            if changed:
                session.commit()
                updated += 1
            else:
                unchanged += 1
        except Exception as e:
            logger.exception(f"[TRACKING] Failed to refresh order {label}")
            session.rollback()
            failures.append({"order_number": label, "tracking_number": tracking_number, "message": str(e)})

    logger.info(f"[TRACKING] Refresh done. Updated: {updated}, unchanged: {unchanged}, errors: {len(failures)}")
    return {
        "total": len(orders),
        "updated": updated,
        "unchanged": unchanged,
        "errors": len(failures),
        "failures": failures,
    }
