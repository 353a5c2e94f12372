import pytest

from backoffice.schemas.sync import SyncError, SyncResult
from backoffice.services.sync_runner import summarize_errors


@pytest.mark.unit
class TestSummarizeErrors:
    def test_no_errors(self):
        assert summarize_errors([]) is None

    def test_lines_carry_order_ids(self):
        summary = summarize_errors([SyncError("3001", "etsy API error (HTTP 500): boom"), SyncError(None, "listing failed")])
        assert summary.splitlines() == ["3001: etsy API error (HTTP 500): boom", "listing failed"]

    def test_limit_and_truncation(self):
        errors = [SyncError(str(i), "x" * 50) for i in range(5)]
        lines = summarize_errors(errors, limit=2, max_length=10).splitlines()
        assert lines == ["0: xxxxxxx...", "1: xxxxxxx...", "... and 3 more"]


@pytest.mark.unit
def test_imported_counts_inserts_and_updates():
    result = SyncResult(store_id=None, inserted=2, updated=3, skipped=4)
    assert result.imported == 5
    assert result.success
