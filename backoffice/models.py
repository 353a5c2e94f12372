from datetime import datetime
from enum import Enum
import uuid

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    pass


class Platform(str, Enum):
    ETSY = "etsy"
    SHOPIFY = "shopify"


class PersonalizationType(str, Enum):
    NONE = "none"
    NOTES = "notes"
    IMAGE = "image"
    BOTH = "both"


class OrderStatus(str, Enum):
    PENDING_ENRICHMENT = "pending_enrichment"
    READY_FOR_DESIGN = "ready_for_design"
    DESIGN_COMPLETE = "design_complete"
    PENDING_FULFILLMENT = "pending_fulfillment"
    LABELS_GENERATED = "labels_generated"
    LOADED_FOR_SHIPMENT = "loaded_for_shipment"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    NEEDS_REVIEW = "needs_review"


class SyncStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


# --------------------------------------------------------------------------
# Stores & Catalog
# --------------------------------------------------------------------------

class Store(Base):
    __tablename__ = "stores"
    __table_args__ = (UniqueConstraint("platform", "name", name="uq_stores_platform_name"),)

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    platform: Mapped[str] = mapped_column(Text, nullable=False)  # etsy, shopify
    name: Mapped[str] = mapped_column(Text, nullable=False)
    external_shop_id: Mapped[str | None] = mapped_column(Text, nullable=True)  # Etsy shop_id / Shopify domain
    credentials: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_sync_timestamp: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    orders: Mapped[list["Order"]] = relationship(back_populates="store")


class ProductConfiguration(Base):
    __tablename__ = "product_configurations"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    sku: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    name: Mapped[str | None] = mapped_column(Text, nullable=True)
    personalization_type: Mapped[str] = mapped_column(Text, nullable=False, default=PersonalizationType.NONE.value)

    # shipping defaults
    package_weight_oz: Mapped[float | None] = mapped_column(Float, nullable=True)
    package_length_in: Mapped[float | None] = mapped_column(Float, nullable=True)
    package_width_in: Mapped[float | None] = mapped_column(Float, nullable=True)
    package_height_in: Mapped[float | None] = mapped_column(Float, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


# --------------------------------------------------------------------------
# Order Ledger
# --------------------------------------------------------------------------

class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("platform", "external_order_id", name="uq_orders_platform_external_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    store_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), ForeignKey("stores.id"), nullable=True)

    platform: Mapped[str] = mapped_column(Text, nullable=False)
    external_order_id: Mapped[str] = mapped_column(Text, nullable=False)
    external_receipt_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    order_number: Mapped[str | None] = mapped_column(Text, nullable=True)
    order_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    customer_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    customer_email: Mapped[str | None] = mapped_column(Text, nullable=True)
    shipping_address_line1: Mapped[str | None] = mapped_column(Text, nullable=True)
    shipping_address_line2: Mapped[str | None] = mapped_column(Text, nullable=True)
    shipping_city: Mapped[str | None] = mapped_column(Text, nullable=True)
    shipping_state: Mapped[str | None] = mapped_column(Text, nullable=True)
    shipping_zip: Mapped[str | None] = mapped_column(Text, nullable=True)
    shipping_country: Mapped[str | None] = mapped_column(Text, nullable=True)

    product_sku: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    product_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    status: Mapped[str] = mapped_column(Text, nullable=False, default=OrderStatus.PENDING_ENRICHMENT.value, index=True)
    raw_external_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)

    tracking_number: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    carrier: Mapped[str | None] = mapped_column(Text, nullable=True)
    label_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    design_files: Mapped[list | None] = mapped_column(JSONB, nullable=True)  # [{line_id, file_path, uploaded_at}]
    needs_design_revision: Mapped[bool] = mapped_column(Boolean, default=False)
    design_revision_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    customer_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    internal_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    review_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    enrichment_email: Mapped[str | None] = mapped_column(Text, nullable=True)
    enrichment_submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    customer_enrichment: Mapped[list | None] = mapped_column(JSONB, nullable=True)  # [{line_id, notes, uploaded_files}]

    production_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    labels_generated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    loaded_for_shipment_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    shipped_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    store: Mapped[Store | None] = relationship(back_populates="orders")


class OrderStatusHistory(Base):
    __tablename__ = "order_status_history"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("orders.id"), nullable=False, index=True)
    from_status: Mapped[str | None] = mapped_column(Text, nullable=True)
    to_status: Mapped[str] = mapped_column(Text, nullable=False)
    source: Mapped[str | None] = mapped_column(Text, nullable=True)  # sync, operator, intake, tracking, catalog
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


# --------------------------------------------------------------------------
# Sync Monitoring
# --------------------------------------------------------------------------

class SyncLog(Base):
    __tablename__ = "sync_logs"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    store_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("stores.id"), nullable=False, index=True)
    status: Mapped[str] = mapped_column(Text, nullable=False)  # success, partial, failed

    sync_started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    sync_completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)

    orders_fetched: Mapped[int] = mapped_column(Integer, default=0)
    orders_imported: Mapped[int] = mapped_column(Integer, default=0)  # inserts + updates
    orders_skipped: Mapped[int] = mapped_column(Integer, default=0)
    orders_inserted: Mapped[int] = mapped_column(Integer, default=0)
    orders_updated: Mapped[int] = mapped_column(Integer, default=0)
    error_count: Mapped[int] = mapped_column(Integer, default=0)

    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
