"""Client for the backend that issues sessions and role data.

The gateway only reads from the backend (session lookup, role catalog) and
asks it to end a session; it never writes role or session data.

When bound to a ``SignalBus``, every response is inspected:
- an expiration header publishes EXPIRATION_UPDATED with the new deadline
- a 401 publishes SESSION_EXPIRED
"""

import logging
from typing import Any, Optional

import httpx

from backoffice.core.rbac.roles import RoleCatalog, RoleCatalogError
from backoffice.core.session.models import Session
from backoffice.core.session.signals import (
    SignalBus,
    emit_session_expiration_update,
    emit_session_expired,
)

logger = logging.getLogger(__name__)


class BackendError(Exception):
    """Raised when the backend rejects or fails a request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class BackendClient:
    """Async client for the ``/admin`` API of the backend."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        cookie_header: Optional[str] = None,
        bus: Optional[SignalBus] = None,
        expiration_header: str = "X-Session-Expires-At",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: Backend origin, e.g. ``http://127.0.0.1:8080``
            timeout: Per-request timeout in seconds
            cookie_header: Cookie header sent when a call does not pass one
            bus: Signal channel fed from responses (client side only)
            expiration_header: Response header carrying the moving deadline
            transport: Custom httpx transport (tests)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.cookie_header = cookie_header
        self.bus = bus
        self.expiration_header = expiration_header
        self._transport = transport

    async def _request(
        self,
        method: str,
        path: str,
        *,
        cookie_header: Optional[str] = None,
        json: Any = None,
    ) -> httpx.Response:
        headers = {"accept": "application/json"}
        cookie = cookie_header or self.cookie_header
        if cookie:
            headers["cookie"] = cookie

        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            response = await client.request(method, path, headers=headers, json=json)

        self._observe(response)
        return response

    def _observe(self, response: httpx.Response) -> None:
        if self.bus is None:
            return
        expiration = response.headers.get(self.expiration_header)
        if expiration:
            emit_session_expiration_update(self.bus, expiration)
        if response.status_code == 401:
            emit_session_expired(self.bus)

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return None

    async def fetch_session(self, cookie_header: Optional[str] = None) -> Optional[Session]:
        """Resolve the session behind a cookie header; any failure is no session."""
        if not (cookie_header or self.cookie_header):
            return None
        try:
            response = await self._request("GET", "/admin/me", cookie_header=cookie_header)
        except httpx.HTTPError as e:
            logger.error(f"fetchSession error: {e}")
            return None

        if not response.is_success:
            return None
        data = self._json(response)
        if not isinstance(data, dict) or data.get("success") is not True:
            return None
        return Session.from_payload(data.get("session"))

    async def logout(self, cookie_header: Optional[str] = None) -> None:
        """End the session on the backend."""
        response = await self._request("POST", "/admin/logout", cookie_header=cookie_header, json={})
        if not response.is_success:
            raise BackendError(f"Logout failed: HTTP {response.status_code}", response.status_code)

    async def set_active_restaurant(self, restaurant_id: int, cookie_header: Optional[str] = None) -> int:
        """Switch the active tenant; returns the tenant id the backend confirmed."""
        response = await self._request(
            "POST",
            "/admin/active-restaurant",
            cookie_header=cookie_header,
            json={"restaurantId": restaurant_id},
        )
        data = self._json(response)
        if not response.is_success or not isinstance(data, dict) or data.get("success") is not True:
            message = data.get("message") if isinstance(data, dict) else None
            raise BackendError(message or f"HTTP {response.status_code}", response.status_code)
        return int(data.get("activeRestaurantId", restaurant_id))

    async def fetch_role_catalog(self, cookie_header: Optional[str] = None) -> RoleCatalog:
        """
        Load the role catalog served by the backend.

        Raises:
            RoleCatalogError: If the catalog cannot be fetched or parsed
        """
        try:
            response = await self._request("GET", "/admin/roles", cookie_header=cookie_header)
        except httpx.HTTPError as e:
            raise RoleCatalogError(f"Cannot fetch role catalog: {e}") from e
        if not response.is_success:
            raise RoleCatalogError(f"Cannot fetch role catalog: HTTP {response.status_code}")

        data = self._json(response)
        if isinstance(data, dict) and "roles" in data:
            data = data["roles"]
        if data is None:
            raise RoleCatalogError("Role catalog response is not JSON")
        return RoleCatalog.from_mapping(data)
