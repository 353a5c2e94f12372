from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.orm import Session
import logging

from backoffice.db import get_session
from backoffice.models import Store

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
async def get_health(session: Session = Depends(get_session)):
    """Database reachability plus the number of active stores."""
    db_ok = False
    active_stores = None
    try:
        active_stores = session.scalar(select(func.count()).select_from(Store).where(Store.is_active.is_(True)))
        db_ok = True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")

    return {
        "status": "healthy" if db_ok else "unhealthy",
        "database": "ok" if db_ok else "error",
        "active_stores": active_stores,
    }
