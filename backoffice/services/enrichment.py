"""
Best-effort enrichment.

Secondary sources (document importers, manual spreadsheets) may know fields
the marketplace sync could not fill. They plug in through EnrichmentSource and
are applied with fill_missing: a field already populated by the sync path is
never overwritten.
"""

import logging
from typing import Any, Protocol

from sqlalchemy.orm import Session

from backoffice.models import Order
from backoffice.services.merge_policy import ADDRESS_FIELDS, fill_missing

logger = logging.getLogger(__name__)

ENRICHABLE_FIELDS: tuple[str, ...] = (
    "customer_name",
    "customer_email",
    *ADDRESS_FIELDS.keys(),
    "product_sku",
    "product_name",
    "customer_notes",
    "tracking_number",
    "carrier",
)


class EnrichmentSource(Protocol):
    name: str

    def lookup(self, order: Order) -> dict[str, Any] | None:
        """Candidate field values for this order, or None if the source knows nothing about it."""
        ...


def apply_enrichment(session: Session, order: Order, source: EnrichmentSource) -> dict[str, Any]:
    """Fill blank order fields from ``source``. Returns the applied patch; a failing source is logged and skipped."""
    try:
        candidates = source.lookup(order) or {}
    except Exception as e:
        logger.warning(f"[ENRICH] Source '{source.name}' failed for order {order.order_number or order.id}: {e}")
        return {}

    current = {name: getattr(order, name) for name in ENRICHABLE_FIELDS}
    patch = fill_missing(current, candidates, allowed=ENRICHABLE_FIELDS)
    if not patch:
        return {}

    for name, value in patch.items():
        setattr(order, name, value)
    session.commit()
    logger.info(f"[ENRICH] Order {order.order_number or order.id} enriched from '{source.name}': {sorted(patch)}")
    return patch
