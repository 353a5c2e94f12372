import pytest

from backoffice.models import OrderStatus, ProductConfiguration
from backoffice.schemas.order import Variation
from backoffice.services.status_resolver import has_personalization, resolve_initial_status, resolve_status


def _config(personalization_type: str) -> ProductConfiguration:
    return ProductConfiguration(sku="BLKT-KPOP-001", personalization_type=personalization_type)


def _personalization(value: str) -> list[Variation]:
    return [Variation(name="Personalization", value=value)]


@pytest.mark.unit
class TestResolveStatus:
    def test_no_sku_is_pending_enrichment(self):
        lookup = lambda sku: pytest.fail("catalog must not be consulted without a sku")
        assert resolve_initial_status(None, [], lookup) == OrderStatus.PENDING_ENRICHMENT
        assert resolve_initial_status("", [], lookup) == OrderStatus.PENDING_ENRICHMENT

    def test_unknown_sku_is_pending_enrichment(self):
        assert resolve_initial_status("BLANKET-10", [], lambda sku: None) == OrderStatus.PENDING_ENRICHMENT

    def test_type_none_is_ready_for_design(self):
        assert resolve_status(_config("none"), []) == OrderStatus.READY_FOR_DESIGN

    def test_notes_with_value_is_ready_for_design(self):
        assert resolve_status(_config("notes"), _personalization("Tom")) == OrderStatus.READY_FOR_DESIGN

    def test_notes_with_not_requested_placeholder(self):
        variations = _personalization("Not requested on this item.")
        assert resolve_status(_config("notes"), variations) == OrderStatus.PENDING_ENRICHMENT

    def test_notes_with_blank_value(self):
        assert resolve_status(_config("notes"), _personalization("   ")) == OrderStatus.PENDING_ENRICHMENT

    def test_image_always_needs_enrichment(self):
        assert resolve_status(_config("image"), _personalization("Tom")) == OrderStatus.PENDING_ENRICHMENT
        assert resolve_status(_config("image"), []) == OrderStatus.PENDING_ENRICHMENT

    def test_both_with_value_still_needs_enrichment(self):
        assert resolve_status(_config("both"), _personalization("Tom")) == OrderStatus.PENDING_ENRICHMENT

    def test_catalog_failure_falls_back(self):
        def broken_lookup(sku):
            raise RuntimeError("catalog unavailable")

        assert resolve_initial_status("BLKT-KPOP-001", [], broken_lookup) == OrderStatus.PENDING_ENRICHMENT

    def test_uses_catalog_lookup(self):
        configs = {"PILLOW-1": _config("notes")}
        status = resolve_initial_status("PILLOW-1", _personalization("Happy birthday"), configs.get)
        assert status == OrderStatus.READY_FOR_DESIGN


@pytest.mark.unit
class TestHasPersonalization:
    def test_only_the_personalization_variation_counts(self):
        assert not has_personalization([Variation(name="Size", value="30x40")])

    def test_raw_etsy_variation_dicts(self):
        assert has_personalization([{"formatted_name": "Personalization", "formatted_value": "Jimin"}])
        assert not has_personalization([{"formatted_name": "Personalization", "formatted_value": "NOT REQUESTED"}])

    def test_empty(self):
        assert not has_personalization(None)
        assert not has_personalization([])
