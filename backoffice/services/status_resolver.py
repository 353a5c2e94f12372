"""
Initial status resolution for freshly ingested orders.

Given the product configuration for an order's sku and the buyer-entered
personalization variations, decide whether the order can skip the intake step
and go straight to the design queue.

Resolution never raises: a missing sku, a missing configuration, or a failing
catalog lookup all fall back to ``pending_enrichment``.
"""

import logging
from collections.abc import Callable, Iterable
from typing import Any

from backoffice.models import OrderStatus, PersonalizationType, ProductConfiguration

logger = logging.getLogger(__name__)

PERSONALIZATION_VARIATION_NAME = "Personalization"
# Marketplaces emit this placeholder when the buyer left the field blank,
# e.g. "Not requested on this item."
NOT_REQUESTED_PHRASE = "not requested"

ConfigurationLookup = Callable[[str], ProductConfiguration | None]


def _variation_fields(variation: Any) -> tuple[str, str]:
    if isinstance(variation, dict):
        name = variation.get("name", variation.get("formatted_name"))
        value = variation.get("value", variation.get("formatted_value"))
    else:
        name = getattr(variation, "name", None)
        value = getattr(variation, "value", None)
    return str(name or ""), "" if value is None else str(value)


def has_personalization(variations: Iterable[Any] | None) -> bool:
    for variation in variations or []:
        name, value = _variation_fields(variation)
        if name != PERSONALIZATION_VARIATION_NAME:
            continue
        value = value.strip()
        if value and NOT_REQUESTED_PHRASE not in value.lower():
            return True
    return False


def resolve_status(configuration: ProductConfiguration | None, variations: Iterable[Any] | None) -> OrderStatus:
    if configuration is None:
        return OrderStatus.PENDING_ENRICHMENT

    personalization_type = (configuration.personalization_type or "").lower()
    if personalization_type == PersonalizationType.NONE.value:
        return OrderStatus.READY_FOR_DESIGN

    if personalization_type == PersonalizationType.NOTES.value and has_personalization(variations):
        return OrderStatus.READY_FOR_DESIGN

    # image, both, notes without text, or an unknown type
    return OrderStatus.PENDING_ENRICHMENT


def resolve_initial_status(
    sku: str | None,
    variations: Iterable[Any] | None,
    lookup: ConfigurationLookup,
) -> OrderStatus:
    if not sku:
        return OrderStatus.PENDING_ENRICHMENT

    try:
        configuration = lookup(sku)
    except Exception as e:
        logger.warning(f"[RESOLVER] Catalog lookup failed for sku {sku}, defaulting to pending_enrichment: {e}")
        return OrderStatus.PENDING_ENRICHMENT

    if configuration is None:
        logger.info(f"[RESOLVER] No product configuration for sku {sku}, status: pending_enrichment")
    return resolve_status(configuration, variations)
