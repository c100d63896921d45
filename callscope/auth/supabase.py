"""Supabase Auth (GoTrue) provider over its REST API."""

from __future__ import annotations

import time
from typing import Any

import httpx
import structlog

from callscope.auth.provider import AuthIdentity, AuthProviderBase
from callscope.exceptions import (
    AuthError,
    AuthUnavailableError,
    EmailUnconfirmedError,
    InvalidCredentialsError,
    RateLimitedError,
    SessionExpiredError,
    StaleRefreshTokenError,
)
from callscope.models.domain import AuthSession

logger = structlog.get_logger(__name__)

_TIMEOUT = 10.0


def _error_text(body: dict[str, Any]) -> str:
    for key in ("error_description", "msg", "message", "error"):
        value = body.get(key)
        if isinstance(value, str) and value:
            return value
    return ""


def map_auth_error(status: int, body: dict[str, Any]) -> AuthError:
    """Translate a GoTrue error response into the auth error taxonomy."""
    text = _error_text(body)
    lowered = text.lower()
    error_code = str(body.get("error_code") or "")

    if status == 429 or "too many requests" in lowered or "rate limit" in lowered:
        return RateLimitedError(text)
    if "email not confirmed" in lowered or error_code == "email_not_confirmed":
        return EmailUnconfirmedError(text)
    if "refresh token" in lowered or error_code.startswith("refresh_token"):
        return StaleRefreshTokenError(text)
    if "invalid login credentials" in lowered or error_code == "invalid_credentials":
        return InvalidCredentialsError(text)
    if status >= 500:
        return AuthUnavailableError(text or f"auth provider returned {status}")
    if status in (401, 403):
        return SessionExpiredError(text)
    return AuthError(text or f"auth provider returned {status}")


class SupabaseAuthProvider(AuthProviderBase):
    def __init__(
        self,
        url: str,
        anon_key: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = url.rstrip("/") + "/auth/v1"
        self._anon_key = anon_key
        self._transport = transport

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        data = await self._request(
            "POST",
            "/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        session = self._to_session(data)
        logger.info("supabase_sign_in", user_id=session.user_id)
        return session

    async def refresh(self, refresh_token: str) -> AuthSession:
        data = await self._request(
            "POST",
            "/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": refresh_token},
        )
        session = self._to_session(data)
        logger.debug("supabase_refresh", user_id=session.user_id)
        return session

    async def sign_out(self, access_token: str) -> None:
        await self._request("POST", "/logout", access_token=access_token)

    async def get_user(self, access_token: str) -> AuthIdentity:
        data = await self._request("GET", "/user", access_token=access_token)
        return AuthIdentity(id=str(data["id"]), email=str(data.get("email") or ""))

    async def _request(
        self,
        method: str,
        path: str,
        access_token: str | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        headers = {"apikey": self._anon_key}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url, timeout=_TIMEOUT, transport=self._transport
            ) as client:
                resp = await client.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("supabase_unreachable", path=path, error=str(exc))
            raise AuthUnavailableError(str(exc)) from exc

        if resp.status_code >= 400:
            try:
                body = resp.json()
            except ValueError:
                body = {}
            error = map_auth_error(resp.status_code, body if isinstance(body, dict) else {})
            logger.info(
                "supabase_auth_rejected",
                path=path,
                status=resp.status_code,
                code=error.code,
            )
            raise error

        if not resp.content:
            return {}
        try:
            payload: dict[str, Any] = resp.json()
        except ValueError as exc:
            raise AuthUnavailableError("malformed response from auth provider") from exc
        return payload

    @staticmethod
    def _to_session(data: dict[str, Any]) -> AuthSession:
        try:
            user = data["user"]
            expires_at = data.get("expires_at") or time.time() + float(data["expires_in"])
            return AuthSession(
                user_id=str(user["id"]),
                email=str(user.get("email") or ""),
                access_token=data["access_token"],
                refresh_token=data["refresh_token"],
                expires_at=float(expires_at),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise AuthUnavailableError("incomplete session from auth provider") from exc
