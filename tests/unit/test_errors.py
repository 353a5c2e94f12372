import pytest

from backoffice.errors import (
    UpstreamAuthError,
    UpstreamError,
    UpstreamTransientError,
    upstream_error_for_status,
)


@pytest.mark.unit
@pytest.mark.parametrize("status_code, body, expected", [
    (401, "", UpstreamAuthError),
    (403, "forbidden", UpstreamAuthError),
    (400, "invalid_token", UpstreamAuthError),
    (400, "Invalid OAuth token", UpstreamAuthError),
    (429, "slow down", UpstreamTransientError),
    (500, "", UpstreamTransientError),
    (503, "maintenance", UpstreamTransientError),
    (404, "not found", UpstreamError),
    (422, "bad field", UpstreamError),
])
def test_status_mapping(status_code, body, expected):
    error = upstream_error_for_status("etsy", status_code, body)
    assert type(error) is expected
    assert error.status_code == status_code


@pytest.mark.unit
def test_retryable_flags_and_messages():
    auth = upstream_error_for_status("shopify", 401, "Invalid API key or access token")
    assert not auth.retryable
    assert "Reconnect the store" in str(auth)

    transient = upstream_error_for_status("etsy", 502, "")
    assert transient.retryable
    assert str(transient) == "etsy API error (HTTP 502): HTTP 502"
