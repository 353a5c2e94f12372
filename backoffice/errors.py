"""
Error types shared by the marketplace adapters, the reconciliation engine and
the order lifecycle entry points.
"""

from __future__ import annotations


class BackofficeError(Exception):
    pass


class UpstreamError(BackofficeError):
    """A marketplace API call failed. Raised only by the adapter layer."""

    retryable = False

    def __init__(self, platform: str, message: str, status_code: int | None = None):
        super().__init__(message)
        self.platform = platform
        self.status_code = status_code
        self.message = message

    def __str__(self) -> str:
        code = f"HTTP {self.status_code}" if self.status_code else "no response"
        return f"{self.platform} API error ({code}): {self.message}"


class UpstreamAuthError(UpstreamError):
    """Expired or revoked credentials. Needs the operator to reconnect the store."""

    def __str__(self) -> str:
        return f"{self.platform} authorization failed: {self.message}. Reconnect the store."


class UpstreamTransientError(UpstreamError):
    """Rate limit, timeout, connection failure or 5xx."""

    retryable = True


class DataIntegrityError(BackofficeError):
    """Ledger insert hit the (platform, external_order_id) unique key."""

    def __init__(self, platform: str, external_order_id: str):
        super().__init__(f"order {platform}:{external_order_id} already exists")
        self.platform = platform
        self.external_order_id = external_order_id


class OrderNotFoundError(BackofficeError):
    pass


class InvalidTransitionError(BackofficeError):
    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        message = f"transition {from_status} -> {to_status} is not allowed"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.from_status = from_status
        self.to_status = to_status


class ProductionLockedError(BackofficeError):
    """Design files are immutable while production_started_at is set."""


class IntakeValidationError(BackofficeError):
    pass


_AUTH_MARKERS = ("invalid_token", "invalid oauth", "expired token", "invalid api key")


def upstream_error_for_status(platform: str, status_code: int, body: str = "") -> UpstreamError:
    """Map an HTTP failure onto the upstream error hierarchy."""
    message = (body or "").strip()[:500] or f"HTTP {status_code}"
    lowered = message.lower()
    if status_code in (401, 403) or any(marker in lowered for marker in _AUTH_MARKERS):
        return UpstreamAuthError(platform, message, status_code)
    if status_code == 429 or status_code >= 500:
        return UpstreamTransientError(platform, message, status_code)
    return UpstreamError(platform, message, status_code)
