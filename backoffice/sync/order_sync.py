from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

from backoffice.errors import DataIntegrityError
from backoffice.models import Order, OrderStatus, Store
from backoffice.schemas.order import ExternalOrderSnapshot, FulfillmentRecord, StoreCredentials
from backoffice.schemas.sync import SyncResult
from backoffice.services.merge_policy import (
    BACKFILL_ONLY_FIELDS,
    MERGEABLE_FIELDS,
    build_new_order_fields,
    compute_patch,
    previous_snapshot_fields,
    snapshot_to_fields,
)
from backoffice.services.order_ledger import OrderLedger, ProductCatalog
from backoffice.services.order_lifecycle import Trigger
from backoffice.services.status_resolver import resolve_initial_status
from backoffice.services.sync_runner import SyncRunner
from backoffice.services.tracking_extractor import extract_tracking, fulfillment_patch, should_advance_to_labels
from backoffice.settings import settings
from backoffice.sync.adapters.base import MarketplaceAdapter, get_adapter

logger = logging.getLogger(__name__)

INSERTED = "inserted"
UPDATED = "updated"
SKIPPED = "skipped"


class OrderSync:
    """
    Incremental order sync for one store.

    One pass lists every order created since the store's watermark, inserts
    the ones the ledger has never seen and merges the rest under the patch
    policy. Per-order failures are collected; a listing failure fails the pass.
    SyncRunner writes the audit record and moves the watermark.
    """
    def __init__(self, session: Session, store: Store, adapter: MarketplaceAdapter | None = None):
        self.session = session
        self.store = store
        self.adapter = adapter or get_adapter(store.platform)
        self.credentials = StoreCredentials.from_store(store)
        self.ledger = OrderLedger(session)
        self.catalog = ProductCatalog(session)
        self.runner = SyncRunner(session, store)
        self._tag = f"[SYNC:{str(store.platform).upper()}]"

    async def synchronize(self) -> SyncResult:
        started_at = datetime.now(timezone.utc)
        return await self.runner.run(lambda result: self._sync_logic(result, started_at), started_at=started_at)

    def window_start(self, now: datetime) -> datetime:
        watermark = self.store.last_sync_timestamp
        if watermark is None:
            return now - timedelta(days=settings.initial_sync_lookback_days)
        if watermark.tzinfo is None:
            watermark = watermark.replace(tzinfo=timezone.utc)
        return watermark

    async def _sync_logic(self, result: SyncResult, started_at: datetime) -> None:
        since = self.window_start(started_at)
        logger.info(f"{self._tag} Starting order sync for '{self.store.name}' from {since.isoformat()}")

        pages = self.adapter.list_orders_since(
            self.credentials, since, settings.sync_page_size, max_pages=settings.sync_max_pages
        )
        async for snapshots in pages:
            result.api_calls += 1
            result.fetched += len(snapshots)
            for snapshot in snapshots:
                await self._process(result, snapshot)

        # Watermark is the pass start, not the end: orders created while the pass
        # was running are picked up next time.
        result.watermark_after = started_at
        logger.info(
            f"{self._tag} Finished order sync for '{self.store.name}'. "
            f"Fetched: {result.fetched}, new: {result.inserted}, updated: {result.updated}, skipped: {result.skipped}"
        )

    async def _process(self, result: SyncResult, snapshot: ExternalOrderSnapshot) -> None:
        try:
            outcome = await self.reconcile(snapshot)
        except Exception as e:
            logger.exception(f"{self._tag} Failed to process order {snapshot.external_order_id}")
            self.session.rollback()
            result.record_error(snapshot.external_order_id, str(e))
            return

        if outcome == INSERTED:
            result.inserted += 1
        elif outcome == UPDATED:
            result.updated += 1
        else:
            result.skipped += 1

    async def reconcile(self, snapshot: ExternalOrderSnapshot) -> str:
        """Insert or merge one upstream order. Returns inserted / updated / skipped."""
        snapshot = await self.adapter.hydrate(self.credentials, snapshot)
        platform = snapshot.platform.value

        existing = self.ledger.find(platform, snapshot.external_order_id)
        if existing is None:
            try:
                return await self._insert(snapshot)
            except DataIntegrityError:
                # Someone else inserted it between our lookup and insert.
                existing = self.ledger.find(platform, snapshot.external_order_id)
                if existing is None:
                    raise
                logger.info(f"{self._tag} Order {snapshot.external_order_id} appeared concurrently, merging instead")

        return await self._update(existing, snapshot)

    async def _fulfillment_records(self, snapshot: ExternalOrderSnapshot) -> list[FulfillmentRecord]:
        if snapshot.fulfillments is not None:
            return snapshot.fulfillments
        return await self.adapter.get_fulfillments(self.credentials, snapshot.external_order_id)

    def _resolve(self, sku: str | None, snapshot: ExternalOrderSnapshot) -> OrderStatus:
        return resolve_initial_status(sku, snapshot.personalization_variations(), self.catalog.get_configuration)

    async def _insert(self, snapshot: ExternalOrderSnapshot) -> str:
        fields = build_new_order_fields(snapshot, self.store.id)
        status = self._resolve(fields.get("product_sku"), snapshot)
        fields["status"] = status.value
        trigger = Trigger.SYNC

        if snapshot.is_fulfilled:
            tracking = extract_tracking(await self._fulfillment_records(snapshot))
            if tracking is not None:
                fields["tracking_number"] = tracking.tracking_number
                fields["label_url"] = tracking.label_url
                fields["carrier"] = tracking.carrier
            if should_advance_to_labels(status, True):
                fields["status"] = OrderStatus.LABELS_GENERATED.value
                fields["labels_generated_at"] = datetime.now(timezone.utc)
                trigger = Trigger.MARKETPLACE_FULFILLMENT

        self.ledger.insert(fields, trigger=trigger)
        logger.info(f"{self._tag} Imported order {snapshot.order_number or snapshot.external_order_id} as {fields['status']}")
        return INSERTED

    async def _update(self, order: Order, snapshot: ExternalOrderSnapshot) -> str:
        current = {name: getattr(order, name) for name in (*MERGEABLE_FIELDS, *BACKFILL_ONLY_FIELDS)}
        patch = compute_patch(
            current,
            snapshot_to_fields(snapshot),
            previous_snapshot_fields(order.raw_external_snapshot),
        )
        trigger = Trigger.SYNC

        # A late sku may release the order from intake; only forward moves apply.
        if "product_sku" in patch and order.status == OrderStatus.PENDING_ENRICHMENT.value:
            resolved = self._resolve(patch["product_sku"], snapshot)
            if resolved == OrderStatus.READY_FOR_DESIGN:
                patch["status"] = resolved.value

        if snapshot.is_fulfilled:
            tracking = extract_tracking(await self._fulfillment_records(snapshot))
            f_patch = fulfillment_patch(order, tracking, upstream_fulfilled=True)
            if "status" in f_patch:
                trigger = Trigger.MARKETPLACE_FULFILLMENT
            patch.update(f_patch)

        if not patch:
            return SKIPPED

        patch["raw_external_snapshot"] = snapshot.model_dump(mode="json")
        patch["updated_at"] = datetime.now(timezone.utc)
        self.ledger.patch(order.id, patch, trigger=trigger)
        logger.info(
            f"{self._tag} Updated order {order.order_number or order.external_order_id}: "
            f"{sorted(k for k in patch if k not in ('raw_external_snapshot', 'updated_at'))}"
        )
        return UPDATED


async def push_tracking_for_order(session: Session, order: Order, adapter: MarketplaceAdapter | None = None) -> bool:
    """
    Send a locally attached label's tracking number back to the marketplace.
    Failures are logged and reported as False; the local label stays.
    """
    if not order.tracking_number:
        return False
    store = order.store or (session.get(Store, order.store_id) if order.store_id else None)
    if store is None:
        logger.warning(f"[TRACKING] Order {order.id} has no store, tracking not pushed")
        return False

    adapter = adapter or get_adapter(store.platform)
    try:
        pushed = await adapter.push_tracking(
            StoreCredentials.from_store(store),
            order.external_order_id,
            order.tracking_number,
            order.carrier,
        )
    except Exception as e:
        logger.error(f"[TRACKING] Failed to push tracking for order {order.order_number or order.id}: {e}")
        return False

    if pushed:
        logger.info(f"[TRACKING] Pushed tracking {order.tracking_number} for order {order.order_number or order.id}")
    return bool(pushed)
