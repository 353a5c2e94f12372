import asyncio
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from backoffice.api.endpoints.tracking import get_carrier_source
from backoffice.db import get_session
from backoffice.main import app
from backoffice.schemas.sync import SyncSummaryOut
from backoffice.sync.orchestrator import NO_ACTIVE_STORES, SyncOrchestrator
from backoffice.sync.order_sync import OrderSync


@pytest.fixture
def client(db_session):
    def _override():
        yield db_session

    app.dependency_overrides[get_session] = _override
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.mark.integration
class TestOrderEndpoints:
    def test_health(self, client, etsy_store):
        body = client.get("/health").json()
        assert body["status"] == "healthy"
        assert body["active_stores"] == 1

    def test_production_and_revision(self, client, make_order):
        order = make_order(status="design_complete")

        started = client.post(f"/api/orders/{order.id}/production")
        assert started.status_code == 200
        assert started.json()["status"] == "pending_fulfillment"

        locked = client.post(f"/api/orders/{order.id}/designs", json={"line_id": "5001-1", "file_path": "d.png"})
        assert locked.status_code == 409

        revised = client.request("DELETE", f"/api/orders/{order.id}/production", json={"revision_notes": "Fix the name"})
        assert revised.status_code == 200
        assert revised.json()["status"] == "ready_for_design"
        assert revised.json()["production_started_at"] is None
        assert revised.json()["needs_design_revision"] is True

        uploaded = client.post(f"/api/orders/{order.id}/designs", json={"line_id": "5001-1", "file_path": "d2.png"})
        assert uploaded.json()["status"] == "design_complete"

    def test_status_patch_and_review(self, client, make_order):
        order = make_order(status="labels_generated")

        missing_reason = client.patch(f"/api/orders/{order.id}/status", json={"status": "needs_review"})
        assert missing_reason.status_code == 409

        flagged = client.patch(f"/api/orders/{order.id}/status", json={"status": "needs_review", "review_reason": "Bad address"})
        assert flagged.json()["review_reason"] == "Bad address"

        cleared = client.patch(f"/api/orders/{order.id}/status", json={"status": "labels_generated"})
        assert cleared.json()["status"] == "labels_generated"
        assert cleared.json()["review_reason"] is None

    def test_operator_move_into_production_locks_designs(self, client, make_order):
        order = make_order(status="design_complete")

        moved = client.patch(f"/api/orders/{order.id}/status", json={"status": "pending_fulfillment"})
        assert moved.status_code == 200
        assert moved.json()["production_started_at"] is not None

        locked = client.post(f"/api/orders/{order.id}/designs", json={"line_id": "5001-1", "file_path": "late.png"})
        assert locked.status_code == 409

    def test_invalid_status_value(self, client, make_order):
        order = make_order(status="labels_generated")
        assert client.patch(f"/api/orders/{order.id}/status", json={"status": "shipped"}).status_code == 422

    def test_unknown_order(self, client, db_session):
        assert client.get("/api/orders/00000000-0000-0000-0000-000000000000").status_code == 404

    def test_intake(self, client, make_order):
        order = make_order(status="pending_enrichment")

        bad = client.post(f"/api/orders/{order.id}/intake", json={"email": "nope"})
        assert bad.status_code == 400

        ok = client.post(f"/api/orders/{order.id}/intake", json={
            "email": "jane@example.com",
            "items": [{"line_id": "5001-1", "uploaded_files": [{"file_name": "a.png", "file_type": "image/png", "file_size": 100}]}],
        })
        assert ok.status_code == 200
        assert ok.json()["status"] == "ready_for_design"

        again = client.post(f"/api/orders/{order.id}/intake", json={"email": "jane@example.com"})
        assert again.status_code == 409

    def test_label_and_load(self, client, make_order):
        order = make_order(status="pending_fulfillment")

        with patch("backoffice.api.endpoints.orders.push_tracking_for_order", new_callable=AsyncMock) as push:
            push.return_value = True
            labelled = client.post(f"/api/orders/{order.id}/label",
                                   json={"tracking_number": "9400111", "label_url": "https://labels/9400111.pdf"})
        assert labelled.status_code == 200
        assert labelled.json()["tracking_pushed"] is True
        assert labelled.json()["order"]["status"] == "labels_generated"

        loaded = client.post("/api/orders/load-for-shipment", json={"tracking_number": "9400111"})
        assert loaded.status_code == 200
        assert loaded.json()["status"] == "loaded_for_shipment"

        assert client.post("/api/orders/load-for-shipment", json={"tracking_number": "unknown"}).status_code == 404

    def test_carrier_status(self, client, make_order):
        order = make_order(status="loaded_for_shipment", tracking_number="9400", label_url="l.pdf")
        body = client.post(f"/api/orders/{order.id}/carrier-status", json={"carrier_status": "delivered"}).json()
        assert body["updated"] is True
        assert body["order"]["status"] == "delivered"

    def test_promote(self, client, make_order, add_product):
        add_product("BLKT-KPOP-001", "none")
        make_order(status="pending_enrichment", product_sku="BLKT-KPOP-001")
        body = client.post("/api/orders/promote").json()
        assert body["success"] is True
        assert body["updated"] == 1


@pytest.mark.integration
class TestSyncEndpoints:
    def test_sync_reports_store_failures_in_body(self, client, etsy_store):
        summary = SyncSummaryOut(success=False, error="Failed to sync: Kpop Blanket Shop (reconnect required). Check Settings > Stores.")
        with patch.object(SyncOrchestrator, "synchronize_all", new_callable=AsyncMock, return_value=summary) as run:
            response = client.post("/api/sync", json={"store_id": str(etsy_store.id)})

        assert response.status_code == 200
        assert response.json()["success"] is False
        assert run.await_args.kwargs["store_id"] == etsy_store.id

    def test_no_active_stores(self, client):
        response = client.post("/api/sync")
        assert response.status_code == 404
        assert response.json()["detail"] == NO_ACTIVE_STORES

    def test_cron_secret(self, client, etsy_store):
        with patch("backoffice.api.endpoints.sync.settings.cron_secret", "s3cret"):
            assert client.post("/api/sync").status_code == 401

    def test_logs(self, client, etsy_store, fake_adapter, make_snapshot, db_session):
        asyncio.run(OrderSync(db_session, etsy_store, fake_adapter(pages=[[make_snapshot("3001")]])).synchronize())

        logs = client.get("/api/sync/logs", params={"store_id": str(etsy_store.id)}).json()
        assert len(logs) == 1
        assert logs[0]["status"] == "success"
        assert logs[0]["orders_inserted"] == 1


class _FakeCarrier:
    name = "fake"

    async def get_status(self, tracking_number, carrier):
        return "in_transit"


@pytest.mark.integration
class TestTrackingEndpoints:
    def test_update_all(self, client, make_order):
        order = make_order(status="labels_generated", tracking_number="9400111", label_url="l.pdf")
        app.dependency_overrides[get_carrier_source] = lambda: _FakeCarrier()

        body = client.post("/api/tracking/update-all").json()

        assert body["success"] is True
        assert (body["total"], body["updated"], body["errors"]) == (1, 1, 0)
        assert client.get(f"/api/orders/{order.id}").json()["status"] == "in_transit"

    def test_carrier_not_configured(self, client):
        assert client.post("/api/tracking/update-all").status_code == 503

    def test_cron_secret(self, client):
        app.dependency_overrides[get_carrier_source] = lambda: _FakeCarrier()
        with patch("backoffice.api.endpoints.sync.settings.cron_secret", "s3cret"):
            assert client.post("/api/tracking/update-all").status_code == 401
            ok = client.post("/api/tracking/update-all", headers={"Authorization": "Bearer s3cret"})
            assert ok.status_code == 200
