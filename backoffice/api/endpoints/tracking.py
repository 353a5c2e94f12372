import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from backoffice.api.endpoints.sync import _check_cron_secret
from backoffice.db import get_session
from backoffice.errors import UpstreamAuthError
from backoffice.services.carrier_tracking import CarrierTrackingSource, UspsTrackingSource, refresh_carrier_statuses

router = APIRouter()
logger = logging.getLogger(__name__)


def get_carrier_source() -> CarrierTrackingSource:
    try:
        return UspsTrackingSource()
    except UpstreamAuthError as e:
        logger.warning(f"[TRACKING] {e}")
        raise HTTPException(status_code=503, detail="Carrier tracking is not configured")


@router.post("/update-all")
async def update_all_tracking(
    authorization: Optional[str] = Header(default=None),
    session: Session = Depends(get_session),
    source: CarrierTrackingSource = Depends(get_carrier_source),
):
    """Poll the carrier for every shipped order and move each one forward."""
    _check_cron_secret(authorization)
    return {"success": True, **(await refresh_carrier_statuses(session, source))}
