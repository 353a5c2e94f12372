from __future__ import annotations

import logging
import uuid
from collections.abc import Callable

from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice.models import Store
from backoffice.schemas.sync import StoreSyncOut, SyncResult, SyncSummaryOut
from backoffice.sync.adapters.base import MarketplaceAdapter, get_adapter
from backoffice.sync.order_sync import OrderSync

logger = logging.getLogger(__name__)

NO_ACTIVE_STORES = "No active stores found"


class SyncOrchestrator:
    """
    Runs one sync pass per active store, one store at a time. A failing store
    is reported in the summary and never stops the others.
    """
    def __init__(self, session: Session, adapter_factory: Callable[[str], MarketplaceAdapter] = get_adapter):
        self.session = session
        self.adapter_factory = adapter_factory

    def active_stores(self, store_id: uuid.UUID | None = None) -> list[Store]:
        stmt = select(Store).where(Store.is_active.is_(True)).order_by(Store.created_at, Store.name)
        if store_id is not None:
            stmt = stmt.where(Store.id == store_id)
        return list(self.session.scalars(stmt).all())

    async def synchronize_all(self, store_id: uuid.UUID | None = None) -> SyncSummaryOut:
        stores = self.active_stores(store_id)
        if not stores:
            logger.warning(f"[SYNC] {NO_ACTIVE_STORES} (store_id={store_id})")
            return SyncSummaryOut(success=False, error=NO_ACTIVE_STORES)

        results: list[SyncResult] = []
        failed: list[str] = []
        for store in stores:
            store_name = store.name
            try:
                adapter = self.adapter_factory(store.platform)
                result = await OrderSync(self.session, store, adapter).synchronize()
            except Exception as e:
                # Setup failed before the pass could write its own audit record.
                logger.exception(f"[SYNC] Could not start sync for store '{store_name}'")
                self.session.rollback()
                result = SyncResult(store_id=store.id, store_name=store_name, status="failed", error=str(e))

            results.append(result)
            if not result.success:
                failed.append(f"{store_name} (reconnect required)" if result.auth_error else f"{store_name} ({result.error})")

        summary = SyncSummaryOut(
            success=not failed,
            results=[StoreSyncOut.from_result(r) for r in results],
            total_imported=sum(r.imported for r in results),
            total_skipped=sum(r.skipped for r in results),
        )
        if failed:
            summary.error = f"Failed to sync: {', '.join(failed)}. Check Settings > Stores."
            logger.error(f"[SYNC] {summary.error}")
        return summary
