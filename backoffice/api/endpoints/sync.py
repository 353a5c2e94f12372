import logging
import uuid
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice.db import get_session
from backoffice.models import SyncLog
from backoffice.schemas.sync import SyncSummaryOut
from backoffice.settings import settings
from backoffice.sync.orchestrator import NO_ACTIVE_STORES, SyncOrchestrator

router = APIRouter()
logger = logging.getLogger(__name__)


class SyncRequest(BaseModel):
    store_id: Optional[uuid.UUID] = None


class SyncLogOut(BaseModel):
    id: uuid.UUID
    store_id: uuid.UUID
    status: str
    sync_started_at: datetime
    sync_completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    orders_fetched: int = 0
    orders_imported: int = 0
    orders_skipped: int = 0
    orders_inserted: int = 0
    orders_updated: int = 0
    error_count: int = 0
    error_message: Optional[str] = None

    model_config = {"from_attributes": True}


def _check_cron_secret(authorization: str | None) -> None:
    if not settings.cron_secret:
        return
    if authorization != f"Bearer {settings.cron_secret}":
        raise HTTPException(status_code=401, detail="Unauthorized")


@router.post("", response_model=SyncSummaryOut)
async def trigger_sync(
    payload: Optional[SyncRequest] = None,
    authorization: Optional[str] = Header(default=None),
    session: Session = Depends(get_session),
):
    """
    Sync every active store, or only ``store_id``.
    Store failures are reported in the body; the request itself still succeeds.
    """
    _check_cron_secret(authorization)
    store_id = payload.store_id if payload else None

    summary = await SyncOrchestrator(session).synchronize_all(store_id=store_id)
    if summary.error == NO_ACTIVE_STORES:
        raise HTTPException(status_code=404, detail=NO_ACTIVE_STORES)
    return summary


@router.get("/logs", response_model=List[SyncLogOut])
def list_sync_logs(
    store_id: Optional[uuid.UUID] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    session: Session = Depends(get_session),
):
    stmt = select(SyncLog).order_by(SyncLog.sync_started_at.desc()).limit(limit)
    if store_id is not None:
        stmt = stmt.where(SyncLog.store_id == store_id)
    return session.scalars(stmt).all()
