import logging
import uuid
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from backoffice.db import get_session
from backoffice.errors import (
    BackofficeError,
    IntakeValidationError,
    InvalidTransitionError,
    OrderNotFoundError,
    ProductionLockedError,
)
from backoffice.models import OrderStatus
from backoffice.services import order_lifecycle
from backoffice.services.status_promotion import promote_eligible_orders
from backoffice.sync.order_sync import push_tracking_for_order

router = APIRouter()
logger = logging.getLogger(__name__)


# ==================== Request/Response Models ====================

class OrderOut(BaseModel):
    id: uuid.UUID
    platform: str
    external_order_id: str
    order_number: Optional[str] = None
    status: str
    customer_name: Optional[str] = None
    product_sku: Optional[str] = None
    quantity: int = 1
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    label_url: Optional[str] = None
    needs_design_revision: bool = False
    design_revision_notes: Optional[str] = None
    review_reason: Optional[str] = None
    customer_enrichment: Optional[list] = None
    production_started_at: Optional[datetime] = None
    loaded_for_shipment_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class RevisionRequest(BaseModel):
    revision_notes: Optional[str] = None


class StatusUpdateRequest(BaseModel):
    status: OrderStatus
    review_reason: Optional[str] = None


class DesignUploadRequest(BaseModel):
    line_id: str
    file_path: str


class IntakeFile(BaseModel):
    file_name: str
    file_type: str
    file_size: int = Field(ge=0)
    file_path: Optional[str] = None


class IntakeItem(BaseModel):
    line_id: Optional[str] = None
    notes: Optional[str] = None
    uploaded_files: List[IntakeFile] = Field(default_factory=list)


class IntakeRequest(BaseModel):
    email: str
    items: List[IntakeItem] = Field(default_factory=list)
    customer_notes: Optional[str] = None


class LabelRequest(BaseModel):
    tracking_number: str
    label_url: Optional[str] = None
    carrier: Optional[str] = None
    push_to_marketplace: bool = True


class LoadForShipmentRequest(BaseModel):
    tracking_number: str


class CarrierStatusRequest(BaseModel):
    carrier_status: str


def _http_error(e: BackofficeError) -> HTTPException:
    if isinstance(e, OrderNotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, (InvalidTransitionError, ProductionLockedError)):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, IntakeValidationError):
        return HTTPException(status_code=400, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


# ==================== Endpoints ====================

@router.post("/promote")
def promote_orders(session: Session = Depends(get_session)):
    """Re-resolve pending_enrichment orders against the current catalog."""
    return {"success": True, **promote_eligible_orders(session)}


@router.post("/load-for-shipment", response_model=OrderOut)
def load_order_for_shipment(payload: LoadForShipmentRequest, session: Session = Depends(get_session)):
    try:
        order = order_lifecycle.load_for_shipment(session, payload.tracking_number.strip())
    except BackofficeError as e:
        session.rollback()
        raise _http_error(e)
    session.commit()
    return order


@router.get("/{order_id}", response_model=OrderOut)
def get_order(order_id: uuid.UUID, session: Session = Depends(get_session)):
    try:
        return order_lifecycle.get_order(session, order_id)
    except OrderNotFoundError as e:
        raise _http_error(e)


@router.post("/{order_id}/production", response_model=OrderOut)
def start_production(order_id: uuid.UUID, session: Session = Depends(get_session)):
    try:
        order = order_lifecycle.start_production(session, order_lifecycle.get_order(session, order_id))
    except BackofficeError as e:
        session.rollback()
        raise _http_error(e)
    session.commit()
    return order


@router.delete("/{order_id}/production", response_model=OrderOut)
def request_revision(order_id: uuid.UUID, payload: Optional[RevisionRequest] = None,
                     session: Session = Depends(get_session)):
    """Send the order back to the design queue and unlock its design files."""
    notes = payload.revision_notes if payload else None
    try:
        order = order_lifecycle.request_revision(session, order_lifecycle.get_order(session, order_id), notes)
    except BackofficeError as e:
        session.rollback()
        raise _http_error(e)
    session.commit()
    return order


@router.patch("/{order_id}/status", response_model=OrderOut)
def update_status(order_id: uuid.UUID, payload: StatusUpdateRequest, session: Session = Depends(get_session)):
    try:
        order = order_lifecycle.set_status(
            session, order_lifecycle.get_order(session, order_id), payload.status, payload.review_reason
        )
    except BackofficeError as e:
        session.rollback()
        raise _http_error(e)
    session.commit()
    return order


@router.get("/{order_id}/designs")
def list_designs(order_id: uuid.UUID, session: Session = Depends(get_session)):
    try:
        order = order_lifecycle.get_order(session, order_id)
    except OrderNotFoundError as e:
        raise _http_error(e)
    return {"order_id": str(order.id), "locked": order_lifecycle.is_production_locked(order),
            "designs": order_lifecycle.design_files(order)}


@router.post("/{order_id}/designs", response_model=OrderOut)
def upload_design(order_id: uuid.UUID, payload: DesignUploadRequest, session: Session = Depends(get_session)):
    try:
        order = order_lifecycle.upload_design(
            session, order_lifecycle.get_order(session, order_id), payload.line_id, payload.file_path
        )
    except BackofficeError as e:
        session.rollback()
        raise _http_error(e)
    session.commit()
    return order


@router.post("/{order_id}/intake", response_model=OrderOut)
def submit_intake(order_id: uuid.UUID, payload: IntakeRequest, session: Session = Depends(get_session)):
    try:
        order = order_lifecycle.submit_intake(
            session,
            order_lifecycle.get_order(session, order_id),
            payload.email,
            [item.model_dump() for item in payload.items],
            payload.customer_notes,
        )
    except BackofficeError as e:
        session.rollback()
        raise _http_error(e)
    session.commit()
    return order


@router.post("/{order_id}/label")
async def attach_label(order_id: uuid.UUID, payload: LabelRequest, session: Session = Depends(get_session)):
    try:
        order = order_lifecycle.attach_label(
            session,
            order_lifecycle.get_order(session, order_id),
            payload.tracking_number.strip(),
            payload.label_url,
            payload.carrier,
        )
    except BackofficeError as e:
        session.rollback()
        raise _http_error(e)
    session.commit()

    pushed = False
    if payload.push_to_marketplace:
        pushed = await push_tracking_for_order(session, order)
    return {"order": OrderOut.model_validate(order), "tracking_pushed": pushed}


@router.post("/{order_id}/carrier-status")
def record_carrier_status(order_id: uuid.UUID, payload: CarrierStatusRequest, session: Session = Depends(get_session)):
    try:
        order = order_lifecycle.get_order(session, order_id)
        changed = order_lifecycle.record_carrier_status(session, order, payload.carrier_status)
    except BackofficeError as e:
        session.rollback()
        raise _http_error(e)
    session.commit()
    return {"order": OrderOut.model_validate(order), "updated": changed}
