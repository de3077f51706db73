"""
Identity providers for EcoReport

SessionIdentityProvider holds the signed-in identity in process (apps, tests).
RemoteIdentityProvider asks the data service's auth endpoint on every call so
an expired session is noticed at the moment an action is invoked.
"""

import logging
from typing import Callable, List, Optional

import httpx

from ecoreport.backend.base import (
    Identity,
    IdentityCallback,
    IdentityError,
    IdentityProvider,
)

logger = logging.getLogger(__name__)


class _ListenerRegistry:
    """Transition listeners shared by both providers."""

    def __init__(self):
        self._listeners: List[IdentityCallback] = []

    def add(self, callback: IdentityCallback) -> Callable[[], None]:
        self._listeners.append(callback)

        def remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return remove

    def notify(self, identity: Optional[Identity]) -> None:
        for callback in list(self._listeners):
            try:
                callback(identity)
            except Exception as e:
                logger.error(f"Identity listener failed: {e}")

    def __len__(self) -> int:
        return len(self._listeners)


class SessionIdentityProvider(IdentityProvider):
    """
    In-process session.

    Listeners are called synchronously on every transition (sign in,
    sign out, or switch to another identity).
    """

    def __init__(self, identity: Optional[Identity] = None):
        self._identity = identity
        self._listeners = _ListenerRegistry()

    async def current_identity(self) -> Optional[Identity]:
        return self._identity

    def on_identity_change(self, callback: IdentityCallback) -> Callable[[], None]:
        return self._listeners.add(callback)

    def sign_in(self, identity: Identity) -> None:
        self._transition(identity)

    def sign_out(self) -> None:
        self._transition(None)

    def _transition(self, identity: Optional[Identity]) -> None:
        if identity == self._identity:
            return
        previous = self._identity
        self._identity = identity
        logger.info(
            f"Identity changed: {previous.id if previous else None} -> "
            f"{identity.id if identity else None}"
        )
        self._listeners.notify(identity)


class RemoteIdentityProvider(IdentityProvider):
    """
    Identity read from a Supabase-compatible auth endpoint.

    Usage:
        async with RemoteIdentityProvider(url, key, access_token=token) as auth:
            identity = await auth.current_identity()

    Every ``current_identity`` call performs ``GET /auth/v1/user``. A 401 or
    403 means the session is gone and yields None; transport failures raise
    IdentityError.
    """

    USER_PATH = "/auth/v1/user"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        access_token: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize identity provider.

        Args:
            base_url: Data service base URL
            api_key: Data service API key
            access_token: Bearer token of the session to check
            timeout: HTTP request timeout in seconds
            transport: Optional httpx transport (tests)
        """
        if not base_url or not api_key:
            raise ValueError("Auth base URL and API key are required")

        self.base_url = base_url.rstrip("/")
        self.access_token = access_token
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers={"apikey": api_key},
            transport=transport,
        )
        self._listeners = _ListenerRegistry()
        self._last: Optional[Identity] = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def on_identity_change(self, callback: IdentityCallback) -> Callable[[], None]:
        return self._listeners.add(callback)

    async def current_identity(self) -> Optional[Identity]:
        identity = await self._fetch_identity()
        if identity != self._last:
            self._last = identity
            self._listeners.notify(identity)
        return identity

    async def _fetch_identity(self) -> Optional[Identity]:
        if not self.access_token:
            return None

        try:
            response = await self._client.get(
                self.USER_PATH,
                headers={"Authorization": f"Bearer {self.access_token}"},
            )
        except httpx.HTTPError as e:
            logger.error(f"Identity lookup failed: {e}")
            raise IdentityError(f"Identity lookup failed: {e}") from e

        if response.status_code in (401, 403):
            logger.info("Session rejected by auth service")
            return None

        if response.status_code >= 400:
            raise IdentityError(f"Identity lookup failed with HTTP {response.status_code}")

        return self._parse_user(response.json())

    def _parse_user(self, payload: dict) -> Optional[Identity]:
        """Map an auth user payload to an Identity."""
        user_id = payload.get("id")
        if not user_id:
            return None

        metadata = payload.get("user_metadata") or {}
        return Identity(
            id=str(user_id),
            display_name=metadata.get("username"),
            email=payload.get("email"),
        )
