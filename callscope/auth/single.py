"""Self-hosted auth provider with one configured administrator."""

from __future__ import annotations

import hmac
import secrets
import time

import structlog

from callscope.auth.provider import AuthIdentity, AuthProviderBase
from callscope.config.settings import SINGLE_USER_ID
from callscope.exceptions import (
    InvalidCredentialsError,
    SessionExpiredError,
    StaleRefreshTokenError,
)
from callscope.models.domain import AuthSession

logger = structlog.get_logger(__name__)


class SingleUserAuthProvider(AuthProviderBase):
    """Accepts only the configured admin credentials.

    Tokens are opaque random strings held in memory; refresh tokens rotate
    on every use.
    """

    def __init__(self, email: str, password: str, session_ttl: int = 3600) -> None:
        self._email = email
        self._password = password
        self._ttl = session_ttl
        self._access: dict[str, float] = {}  # access token -> expires_at
        self._refresh: set[str] = set()

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        email_ok = hmac.compare_digest(
            email.strip().lower().encode(), self._email.strip().lower().encode()
        )
        password_ok = hmac.compare_digest(password.encode(), self._password.encode())
        # unconfigured credentials accept nobody
        if not (self._email and self._password and email_ok and password_ok):
            logger.info("single_user_sign_in_rejected")
            raise InvalidCredentialsError("Invalid login credentials")
        return self._issue()

    async def refresh(self, refresh_token: str) -> AuthSession:
        if refresh_token not in self._refresh:
            raise StaleRefreshTokenError("Invalid Refresh Token: Refresh Token Not Found")
        self._refresh.discard(refresh_token)
        return self._issue()

    async def sign_out(self, access_token: str) -> None:
        self._access.pop(access_token, None)

    async def get_user(self, access_token: str) -> AuthIdentity:
        expires_at = self._access.get(access_token)
        if expires_at is None or expires_at <= time.time():
            raise SessionExpiredError("invalid or expired token")
        return AuthIdentity(id=SINGLE_USER_ID, email=self._email)

    def _issue(self) -> AuthSession:
        access_token = secrets.token_urlsafe(32)
        refresh_token = secrets.token_urlsafe(32)
        expires_at = time.time() + self._ttl
        self._access[access_token] = expires_at
        self._refresh.add(refresh_token)
        return AuthSession(
            user_id=SINGLE_USER_ID,
            email=self._email,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expires_at,
        )
