from __future__ import annotations

import logging
import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backoffice.errors import DataIntegrityError, OrderNotFoundError
from backoffice.models import Order, OrderStatus, ProductConfiguration
from backoffice.services import order_lifecycle
from backoffice.services.order_lifecycle import Trigger

logger = logging.getLogger(__name__)


class ProductCatalog:
    def __init__(self, session: Session):
        self.session = session

    def get_configuration(self, sku: str) -> ProductConfiguration | None:
        if not sku:
            return None
        return self.session.scalars(select(ProductConfiguration).where(ProductConfiguration.sku == sku)).first()


class OrderLedger:
    """
    Read/write access to orders for the sync path.

    Status changes made through ``patch`` are checked against the lifecycle
    transition table and recorded in the status history like any other
    transition.
    """
    def __init__(self, session: Session):
        self.session = session

    def find(self, platform: str, external_order_id: str) -> Order | None:
        stmt = select(Order).where(Order.platform == platform, Order.external_order_id == external_order_id)
        return self.session.scalars(stmt).first()

    def get(self, order_id: uuid.UUID) -> Order:
        order = self.session.get(Order, order_id)
        if order is None:
            raise OrderNotFoundError(f"Order not found: {order_id}")
        return order

    def insert(self, fields: dict[str, Any], trigger: Trigger = Trigger.SYNC) -> uuid.UUID:
        """
        Insert and commit one order. A unique-key collision on
        (platform, external_order_id) is reported as DataIntegrityError and the
        session is left clean for the caller's lookup-then-decide retry.
        """
        order = Order(**fields)
        order.status = order.status or OrderStatus.PENDING_ENRICHMENT.value
        self.session.add(order)
        try:
            self.session.flush()
        except IntegrityError as e:
            self.session.rollback()
            logger.warning(f"[LEDGER] Duplicate insert for {fields.get('platform')}:{fields.get('external_order_id')}: {e.orig}")
            raise DataIntegrityError(str(fields.get("platform")), str(fields.get("external_order_id"))) from e

        order_lifecycle.record_history(self.session, order, None, order.status, trigger, note="ingested")
        self.session.commit()
        return order.id

    def patch(self, order_id: uuid.UUID, fields: dict[str, Any], trigger: Trigger = Trigger.SYNC) -> None:
        if not fields:
            return
        order = self.get(order_id)
        for immutable in ("id", "platform", "external_order_id"):
            if immutable in fields:
                raise ValueError(f"{immutable} cannot be patched")

        new_status = fields.get("status")
        from_status = order.status
        if new_status is not None and new_status != from_status:
            order_lifecycle.check_transition(from_status, new_status, trigger)

        for name, value in fields.items():
            setattr(order, name, value)

        if new_status is not None and new_status != from_status:
            order_lifecycle.record_history(self.session, order, from_status, new_status, trigger)
        self.session.commit()
