"""Pytest configuration and fixtures."""

import os

# backoffice.db builds its engine at import time; point it at SQLite first.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("CRON_SECRET", "")

import uuid
from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine, JSON
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from backoffice.models import Base, Order, Platform, ProductConfiguration, Store
from backoffice.schemas.order import Address, ExternalOrderSnapshot, LineItem, Variation
from backoffice.sync.adapters.base import MarketplaceAdapter, OrderPage


# In-memory SQLite on one shared connection, so API worker threads see the same data
TEST_DATABASE_URL = "sqlite://"

test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    echo=False,
)

TestSessionLocal = sessionmaker(
    bind=test_engine,
    autoflush=False,
    expire_on_commit=False,
)


def _patch_jsonb_to_json(base):
    """SQLite has no JSONB; compile those columns as JSON in tests."""
    from sqlalchemy.dialects.postgresql import JSONB

    for table in base.metadata.sorted_tables:
        for column in table.columns:
            if isinstance(column.type, JSONB):
                column.type = JSON()


@pytest.fixture(scope="function")
def db_session() -> Session:
    """Fresh in-memory database per test."""
    _patch_jsonb_to_json(Base)
    Base.metadata.create_all(bind=test_engine)

    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def etsy_store(db_session: Session) -> Store:
    store = Store(
        id=uuid.uuid4(),
        platform="etsy",
        name="Kpop Blanket Shop",
        external_shop_id="12345678",
        credentials={"shop_id": "12345678", "api_key": "key", "access_token": "token"},
        is_active=True,
        last_sync_timestamp=datetime(2026, 10, 1, tzinfo=timezone.utc),
    )
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture
def shopify_store(db_session: Session) -> Store:
    store = Store(
        id=uuid.uuid4(),
        platform="shopify",
        name="Custom Pillow Co",
        external_shop_id="custom-pillow.myshopify.com",
        credentials={"shop_domain": "custom-pillow.myshopify.com", "access_token": "shpat_test"},
        is_active=True,
    )
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture
def add_product(db_session: Session):
    def _add(sku: str, personalization_type: str = "none") -> ProductConfiguration:
        product = ProductConfiguration(sku=sku, name=sku, personalization_type=personalization_type)
        db_session.add(product)
        db_session.commit()
        return product
    return _add


# Test markers
def pytest_configure(config):
    config.addinivalue_line("markers", "unit: pure logic tests (no database)")
    config.addinivalue_line("markers", "integration: tests against the in-memory database")
    config.addinivalue_line("markers", "slow: slow tests (> 1 min)")


# --------------------------------------------------------------------------
# Marketplace fakes
# --------------------------------------------------------------------------

class FakeAdapter(MarketplaceAdapter):
    """In-memory marketplace: pages of snapshots, optional per-order failures."""

    platform = Platform.ETSY

    def __init__(self, pages=None, listing_error=None, hydrate_errors=None, fulfillments=None, push_result=True):
        super().__init__()
        self.pages = pages if pages is not None else [[]]
        self.listing_error = listing_error
        self.hydrate_errors = hydrate_errors or {}
        self.fulfillments = fulfillments or {}
        self.push_result = push_result
        self.list_calls = []
        self.pushed = []

    async def list_orders_page(self, credentials, since, page_size, cursor=None):
        self.list_calls.append({"since": since, "page_size": page_size, "cursor": cursor})
        if self.listing_error is not None:
            raise self.listing_error
        index = int(cursor or 0)
        next_cursor = str(index + 1) if index + 1 < len(self.pages) else None
        return OrderPage(snapshots=list(self.pages[index]), next_cursor=next_cursor)

    async def hydrate(self, credentials, snapshot):
        error = self.hydrate_errors.get(snapshot.external_order_id)
        if error is not None:
            raise error
        return snapshot

    async def get_fulfillments(self, credentials, external_order_id):
        return self.fulfillments.get(external_order_id, [])

    async def push_tracking(self, credentials, external_order_id, tracking_number, carrier):
        self.pushed.append((external_order_id, tracking_number, carrier))
        return self.push_result


@pytest.fixture
def fake_adapter():
    return FakeAdapter


@pytest.fixture
def make_snapshot():
    def _make(external_order_id: str = "3001", sku: str | None = "BLANKET-10", personalization: str | None = None,
              platform: Platform = Platform.ETSY, **overrides) -> ExternalOrderSnapshot:
        variations = [Variation(name="Personalization", value=personalization)] if personalization is not None else []
        data = dict(
            platform=platform,
            external_order_id=external_order_id,
            external_receipt_id=external_order_id,
            order_number=external_order_id,
            order_date=datetime(2026, 10, 2, 12, 0, tzinfo=timezone.utc),
            customer_name="Jane Doe",
            customer_email="jane@example.com",
            receipt_address=Address(name="Jane Doe", line1="1 Main St", city="Austin", state="TX", zip="78701", country="US"),
            line_items=[LineItem(external_line_id=f"{external_order_id}-1", sku=sku, title="Blanket", quantity=1,
                                 variations=variations)],
        )
        data.update(overrides)
        return ExternalOrderSnapshot(**data)
    return _make


@pytest.fixture
def make_order(db_session: Session, make_snapshot):
    def _make(status: str = "ready_for_design", external_order_id: str = "5001", **fields) -> Order:
        snapshot = make_snapshot(external_order_id)
        order = Order(
            platform="etsy",
            external_order_id=external_order_id,
            order_number=external_order_id,
            status=status,
            quantity=1,
            raw_external_snapshot=snapshot.model_dump(mode="json"),
            **fields,
        )
        db_session.add(order)
        db_session.commit()
        return order
    return _make

