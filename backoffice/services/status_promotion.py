"""
Retroactive status promotion.

After products are configured in the catalog, orders that were ingested as
pending_enrichment may no longer need customer input. This re-runs the status
resolver over every such order and applies forward moves only.
"""

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice.models import Order, OrderStatus, PersonalizationType
from backoffice.schemas.order import ExternalOrderSnapshot
from backoffice.services import order_lifecycle
from backoffice.services.order_ledger import ProductCatalog
from backoffice.services.order_lifecycle import Trigger
from backoffice.services.status_resolver import resolve_status

logger = logging.getLogger(__name__)


def _stored_variations(order: Order) -> list:
    try:
        return ExternalOrderSnapshot.model_validate(order.raw_external_snapshot or {}).personalization_variations()
    except ValueError:
        return []


def promote_eligible_orders(session: Session) -> dict[str, Any]:
    orders = session.scalars(
        select(Order).where(Order.status == OrderStatus.PENDING_ENRICHMENT.value).order_by(Order.created_at)
    ).all()
    logger.info(f"[PROMOTE] Found {len(orders)} orders to check")

    catalog = ProductCatalog(session)
    updated = 0
    skipped = 0
    updates: list[dict[str, Any]] = []

    for order in orders:
        configuration = catalog.get_configuration(order.product_sku) if order.product_sku else None
        if configuration is None:
            skipped += 1
            continue

        if resolve_status(configuration, _stored_variations(order)) != OrderStatus.READY_FOR_DESIGN:
            skipped += 1
            continue

        if configuration.personalization_type == PersonalizationType.NONE.value:
            reason = "Product requires no personalization"
        else:
            reason = "Product requires notes only and order has personalization data"

        order_lifecycle.transition(session, order, OrderStatus.READY_FOR_DESIGN, Trigger.CATALOG, note=reason)
        updated += 1
        updates.append(
            {
                "order_id": str(order.id),
                "sku": order.product_sku,
                "old_status": OrderStatus.PENDING_ENRICHMENT.value,
                "new_status": OrderStatus.READY_FOR_DESIGN.value,
                "reason": reason,
            }
        )

    session.commit()
    logger.info(f"[PROMOTE] Complete: {updated} updated, {skipped} skipped")
    return {"updated": updated, "skipped": skipped, "total_checked": len(orders), "updates": updates}
