import asyncio

import pytest
from sqlalchemy import select

from backoffice.errors import UpstreamTransientError
from backoffice.models import OrderStatusHistory
from backoffice.services.carrier_tracking import refresh_carrier_statuses


class FakeCarrier:
    name = "fake"

    def __init__(self, statuses: dict, failing: set | None = None):
        self.statuses = statuses
        self.failing = failing or set()
        self.calls = []

    async def get_status(self, tracking_number, carrier):
        self.calls.append(tracking_number)
        if tracking_number in self.failing:
            raise UpstreamTransientError("usps", "timeout", 504)
        return self.statuses.get(tracking_number)


@pytest.mark.integration
class TestRefreshCarrierStatuses:
    def test_moves_shipped_orders_forward(self, db_session, make_order):
        labeled = make_order(status="labels_generated", external_order_id="7001", tracking_number="T1", label_url="l1.pdf")
        loaded = make_order(status="loaded_for_shipment", external_order_id="7002", tracking_number="T2", label_url="l2.pdf")
        moving = make_order(status="in_transit", external_order_id="7003", tracking_number="T3", label_url="l3.pdf")
        waiting = make_order(status="labels_generated", external_order_id="7004", tracking_number="T4", label_url="l4.pdf")
        make_order(status="pending_fulfillment", external_order_id="7005", tracking_number="T5")
        make_order(status="delivered", external_order_id="7006", tracking_number="T6")

        source = FakeCarrier({"T1": "accepted", "T2": "out_for_delivery", "T3": "delivered", "T4": "pre_transit"})
        result = asyncio.run(refresh_carrier_statuses(db_session, source))

        assert sorted(source.calls) == ["T1", "T2", "T3", "T4"]
        assert (result["total"], result["updated"], result["unchanged"], result["errors"]) == (4, 3, 1, 0)
        assert labeled.status == "in_transit"
        assert loaded.status == "in_transit"
        assert moving.status == "delivered"
        assert moving.delivered_at is not None
        assert waiting.status == "labels_generated"

        sources = {h.source for h in db_session.scalars(select(OrderStatusHistory)).all()}
        assert sources == {"carrier"}

    def test_one_failure_does_not_stop_the_batch(self, db_session, make_order):
        broken = make_order(status="labels_generated", external_order_id="7001", tracking_number="T1", label_url="l1.pdf")
        fine = make_order(status="labels_generated", external_order_id="7002", tracking_number="T2", label_url="l2.pdf")

        result = asyncio.run(refresh_carrier_statuses(db_session, FakeCarrier({"T2": "in_transit"}, failing={"T1"})))

        assert (result["total"], result["updated"], result["errors"]) == (2, 1, 1)
        assert result["failures"][0]["order_number"] == "7001"
        assert result["failures"][0]["tracking_number"] == "T1"
        assert broken.status == "labels_generated"
        assert fine.status == "in_transit"

    def test_nothing_to_refresh(self, db_session):
        result = asyncio.run(refresh_carrier_statuses(db_session, FakeCarrier({})))
        assert result == {"total": 0, "updated": 0, "unchanged": 0, "errors": 0, "failures": []}
