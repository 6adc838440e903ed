from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable

from core.config import settings
from helpers import utcnow


@dataclass(frozen=True)
class SyncPrincipal:
    tenant_id: str   # our TIN
    username: str
    secret: str


@dataclass
class SessionToken:
    tenant_id: str
    token: str
    expires_at: datetime


LoginFn = Callable[[SyncPrincipal], Awaitable[str]]


class TokenStore:
    """
    Process-wide cache of tax service session tokens, keyed by tenant (TIN).

    Constructed once per process and handed to every client instance.
    Lifetime is assumed client-side: the login response carries no expiry.
    """

    def __init__(self, lifetime_seconds: int | None = None, clock: Callable[[], datetime] = utcnow) -> None:
        if lifetime_seconds is None:
            lifetime_seconds = settings.TOKEN_LIFETIME_SECONDS
        self.lifetime = timedelta(seconds=lifetime_seconds)
        self._clock = clock
        self._tokens: dict[str, SessionToken] = {}

    def get(self, tenant_id: str) -> SessionToken | None:
        hit = self._tokens.get(tenant_id)
        if hit is None:
            return None
        if self._clock() >= hit.expires_at:
            self._tokens.pop(tenant_id, None)
            return None
        return hit

    def set(self, tenant_id: str, token: str) -> SessionToken:
        entry = SessionToken(tenant_id=tenant_id, token=token, expires_at=self._clock() + self.lifetime)
        self._tokens[tenant_id] = entry
        return entry

    def invalidate(self, tenant_id: str) -> None:
        self._tokens.pop(tenant_id, None)

    async def get_token(self, principal: SyncPrincipal, login: LoginFn) -> str:
        """
        Cached token if still valid, else run the login handshake and cache it.
        Login errors propagate (no retry at this layer).
        """
        hit = self.get(principal.tenant_id)
        if hit is not None:
            return hit.token

        token = await login(principal)
        return self.set(principal.tenant_id, token).token
