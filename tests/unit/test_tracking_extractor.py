from datetime import datetime, timezone

import pytest

from backoffice.models import Order, OrderStatus
from backoffice.schemas.order import FulfillmentRecord
from backoffice.services.tracking_extractor import extract_tracking, fulfillment_patch, should_advance_to_labels


@pytest.mark.unit
class TestExtractTracking:
    def test_skips_cancelled_records(self):
        records = [
            FulfillmentRecord(status="cancelled", tracking_number="A"),
            FulfillmentRecord(status="success", tracking_number="B"),
        ]
        assert extract_tracking(records).tracking_number == "B"

    def test_first_record_with_a_number_wins(self):
        records = [
            FulfillmentRecord(status="success", tracking_number=None),
            FulfillmentRecord(status="success", tracking_number="C"),
            FulfillmentRecord(status="success", tracking_number="D"),
        ]
        assert extract_tracking(records).tracking_number == "C"

    def test_plain_dicts_and_carrier(self):
        info = extract_tracking([{"status": "success", "tracking_number": " 9400 ", "tracking_company": "USPS"}])
        assert info.tracking_number == "9400"
        assert info.carrier == "USPS"

    def test_nothing_usable(self):
        assert extract_tracking(None) is None
        assert extract_tracking([]) is None
        assert extract_tracking([FulfillmentRecord(status="cancelled", tracking_number="A")]) is None


@pytest.mark.unit
class TestShouldAdvance:
    @pytest.mark.parametrize("status", [
        OrderStatus.PENDING_ENRICHMENT,
        OrderStatus.READY_FOR_DESIGN,
        OrderStatus.DESIGN_COMPLETE,
        OrderStatus.PENDING_FULFILLMENT,
    ])
    def test_at_or_before_production(self, status):
        assert should_advance_to_labels(status, True)

    @pytest.mark.parametrize("status", [
        OrderStatus.LABELS_GENERATED,
        OrderStatus.IN_TRANSIT,
        OrderStatus.DELIVERED,
        OrderStatus.NEEDS_REVIEW,
    ])
    def test_later_or_held(self, status):
        assert not should_advance_to_labels(status, True)

    def test_not_fulfilled_upstream(self):
        assert not should_advance_to_labels(OrderStatus.READY_FOR_DESIGN, False)


@pytest.mark.unit
class TestFulfillmentPatch:
    def test_fills_tracking_and_advances(self):
        order = Order(status=OrderStatus.PENDING_FULFILLMENT.value, external_order_id="1")
        info = extract_tracking([FulfillmentRecord(tracking_number="9400", tracking_company="USPS")])
        patch = fulfillment_patch(order, info, upstream_fulfilled=True)
        assert patch["tracking_number"] == "9400"
        assert patch["carrier"] == "USPS"
        assert patch["status"] == OrderStatus.LABELS_GENERATED.value
        assert patch["labels_generated_at"] is not None

    def test_existing_tracking_is_kept(self):
        order = Order(
            status=OrderStatus.LABELS_GENERATED.value,
            external_order_id="1",
            tracking_number="LOCAL-1",
            labels_generated_at=datetime(2026, 10, 3, tzinfo=timezone.utc),
        )
        info = extract_tracking([FulfillmentRecord(tracking_number="9400")])
        assert fulfillment_patch(order, info, upstream_fulfilled=True) == {}
