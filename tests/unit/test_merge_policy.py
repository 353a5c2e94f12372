from datetime import datetime, timezone

import pytest

from backoffice.models import Platform
from backoffice.schemas.order import Address, ExternalOrderSnapshot, LineItem
from backoffice.services.merge_policy import (
    build_new_order_fields,
    compute_patch,
    fill_missing,
    merge_address,
    previous_snapshot_fields,
    snapshot_to_fields,
)


def _snapshot(**overrides) -> ExternalOrderSnapshot:
    data = dict(
        platform=Platform.ETSY,
        external_order_id="3001",
        external_receipt_id="3001",
        order_number="3001",
        order_date=datetime(2026, 10, 2, 12, 0, tzinfo=timezone.utc),
        customer_name="Jane Doe",
        customer_email="jane@example.com",
        receipt_address=Address(name="Jane Doe", line1="1 Main St", city="Austin", state="TX", zip="78701", country="US"),
        line_items=[LineItem(external_line_id="9", sku="BLKT-KPOP-001", title="Kpop Blanket", quantity=2)],
    )
    data.update(overrides)
    return ExternalOrderSnapshot(**data)


@pytest.mark.unit
class TestMergeAddress:
    def test_shipment_address_wins_field_by_field(self):
        receipt = Address(line1="1 Main St", line2="Apt 2", city="Austin", zip="78701")
        shipment = Address(line1="99 Oak Ave", line2="", city=None, zip="78702")
        merged = merge_address(receipt, shipment)
        assert merged.line1 == "99 Oak Ave"
        assert merged.line2 == "Apt 2"
        assert merged.city == "Austin"
        assert merged.zip == "78702"

    def test_no_shipment(self):
        receipt = Address(line1="1 Main St")
        assert merge_address(receipt, None) is receipt


@pytest.mark.unit
class TestNewOrderFields:
    def test_product_comes_from_first_line_item(self):
        fields = build_new_order_fields(_snapshot(), store_id=None)
        assert fields["product_sku"] == "BLKT-KPOP-001"
        assert fields["product_name"] == "Kpop Blanket"
        assert fields["quantity"] == 2
        assert fields["platform"] == "etsy"
        assert fields["raw_external_snapshot"]["external_order_id"] == "3001"

    def test_quantity_defaults_to_one_without_line_items(self):
        fields = build_new_order_fields(_snapshot(line_items=[]), store_id=None)
        assert fields["quantity"] == 1
        assert fields["product_sku"] is None


@pytest.mark.unit
class TestComputePatch:
    def test_empty_incoming_never_overwrites(self):
        existing = {"customer_email": "jane@example.com", "shipping_city": "Austin"}
        patch = compute_patch(existing, {"customer_email": None, "shipping_city": "  "})
        assert patch == {}

    def test_changed_upstream_value_is_applied(self):
        existing = {"shipping_address_line1": "1 Main St", "shipping_city": "Austin"}
        patch = compute_patch(existing, {"shipping_address_line1": "99 Oak Ave", "shipping_city": "Austin"})
        assert patch == {"shipping_address_line1": "99 Oak Ave"}

    def test_local_edit_survives_unchanged_upstream(self):
        previous = snapshot_to_fields(_snapshot())
        existing = dict(previous, customer_name="Jane D. (gift for Mom)")
        patch = compute_patch(existing, snapshot_to_fields(_snapshot()), previous)
        assert patch == {}

    def test_sku_is_backfill_only(self):
        assert compute_patch({"product_sku": "OLD"}, {"product_sku": "NEW"}) == {}
        assert compute_patch({"product_sku": None}, {"product_sku": "NEW"}) == {"product_sku": "NEW"}

    def test_naive_and_aware_dates_compare_equal(self):
        existing = {"order_date": datetime(2026, 10, 2, 12, 0)}
        incoming = {"order_date": datetime(2026, 10, 2, 12, 0, tzinfo=timezone.utc)}
        assert compute_patch(existing, incoming) == {}

    def test_same_snapshot_twice_is_empty(self):
        fields = snapshot_to_fields(_snapshot(shipment_address=Address(line1="99 Oak Ave")))
        assert compute_patch(dict(fields), fields, fields) == {}


@pytest.mark.unit
class TestHelpers:
    def test_fill_missing_only_fills_blanks(self):
        patch = fill_missing({"tracking_number": "9400", "carrier": None}, {"tracking_number": "9500", "carrier": " USPS "})
        assert patch == {"carrier": "USPS"}

    def test_fill_missing_respects_allowed(self):
        assert fill_missing({}, {"status": "delivered"}, allowed=("carrier",)) == {}

    def test_previous_snapshot_fields_tolerates_garbage(self):
        assert previous_snapshot_fields(None) is None
        assert previous_snapshot_fields({"unexpected": True}) is None
        stored = _snapshot().model_dump(mode="json")
        assert previous_snapshot_fields(stored)["product_sku"] == "BLKT-KPOP-001"
