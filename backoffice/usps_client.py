import logging
from typing import Any, Dict, Optional

import httpx

from backoffice.errors import UpstreamAuthError, UpstreamTransientError, upstream_error_for_status
from backoffice.settings import settings

logger = logging.getLogger(__name__)

PLATFORM = "usps"


class UspsClient:
    """
    USPS Developer API client (OAuth client credentials + Tracking v3).
    https://developers.usps.com/trackingv3r2
    """
    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        base_url: str | None = None,
        timeout: httpx.Timeout | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.client_id = client_id or settings.usps_client_id
        self.client_secret = client_secret or settings.usps_client_secret
        if not self.client_id or not self.client_secret:
            raise UpstreamAuthError(PLATFORM, "USPS API credentials are not configured")
        self.base_url = (base_url or settings.usps_api_base_url).rstrip("/")
        self.timeout = timeout or httpx.Timeout(
            settings.upstream_timeout_seconds, connect=settings.upstream_connect_timeout_seconds
        )
        self._transport = transport
        self._access_token: str | None = None

    async def _send(self, method: str, path: str, headers: Dict[str, str],
                    params: Optional[Dict[str, Any]] = None, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(method, url, params=params, data=data, headers=headers)
        except httpx.TimeoutException as e:
            raise UpstreamTransientError(PLATFORM, f"timeout calling {path}: {e}") from e
        except httpx.TransportError as e:
            raise UpstreamTransientError(PLATFORM, f"connection error calling {path}: {e}") from e

        if response.status_code >= 400:
            raise upstream_error_for_status(PLATFORM, response.status_code, response.text)
        try:
            payload = response.json()
        except ValueError:
            return {}
        return payload if isinstance(payload, dict) else {}

    async def get_access_token(self) -> str:
        """Client-credentials token, cached for the lifetime of this client."""
        if self._access_token:
            return self._access_token
        data = await self._send(
            "POST",
            "/oauth2/v3/token",
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            data={"grant_type": "client_credentials", "client_id": self.client_id, "client_secret": self.client_secret},
        )
        token = data.get("access_token")
        if not token:
            raise UpstreamAuthError(PLATFORM, "token response did not include an access_token")
        self._access_token = token
        return token

    async def get_tracking(self, tracking_number: str) -> Dict[str, Any]:
        token = await self.get_access_token()
        return await self._send(
            "GET",
            f"/tracking/v3/tracking/{tracking_number}",
            headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
            params={"expand": "DETAIL"},
        )
