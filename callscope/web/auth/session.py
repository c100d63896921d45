"""Signed client cookie and per-client context lookup."""

from __future__ import annotations

import hashlib
import hmac
import secrets
import time
from collections.abc import Callable
from dataclasses import dataclass

import structlog
from fastapi import Depends, HTTPException, Request, Response

from callscope.exceptions import SessionExpiredError
from callscope.messages import translate
from callscope.web.client_context import ClientContext

logger = structlog.get_logger(__name__)

CLIENT_COOKIE = "client"


@dataclass
class _Entry:
    context: ClientContext
    last_seen: float


class ClientRegistry:
    """Issues signed client tokens and keeps one context per token."""

    def __init__(
        self,
        secret_key: str,
        factory: Callable[[str], ClientContext],
        max_age: int = 7 * 86400,
        max_clients: int = 10_000,
    ) -> None:
        self._secret = secret_key.encode()
        self._factory = factory
        self._max_age = max_age
        self._max_clients = max_clients
        self._clients: dict[str, _Entry] = {}

    @property
    def max_age(self) -> int:
        return self._max_age

    def create(self) -> tuple[str, ClientContext]:
        """Create a new client and return its signed token."""
        self._evict(time.time())
        token = secrets.token_urlsafe(32)
        signed_token = f"{token}.{self._sign(token)}"
        context = self._factory(token[:8])
        self._clients[signed_token] = _Entry(context=context, last_seen=time.time())
        logger.info("client_created", client_id=context.client_id)
        return signed_token, context

    def get(self, token: str | None) -> ClientContext | None:
        """Validate a token and return its context."""
        if not token or "." not in token:
            return None

        raw_token, signature = token.rsplit(".", 1)
        if not hmac.compare_digest(signature, self._sign(raw_token)):
            return None

        entry = self._clients.get(token)
        if entry is None:
            return None

        now = time.time()
        if now - entry.last_seen > self._max_age:
            self.destroy(token)
            return None
        entry.last_seen = now
        # keep entries ordered by last use so eviction starts from the front
        self._clients[token] = self._clients.pop(token)
        return entry.context

    def destroy(self, token: str) -> None:
        entry = self._clients.pop(token, None)
        if entry is not None:
            entry.context.close()
            logger.info("client_destroyed", client_id=entry.context.client_id)

    def _evict(self, now: float) -> None:
        """Drop idle clients, then the least recently used ones over the cap."""
        for token, entry in list(self._clients.items()):
            if now - entry.last_seen <= self._max_age:
                break
            self.destroy(token)
        while len(self._clients) >= self._max_clients:
            self.destroy(next(iter(self._clients)))

    def close_all(self) -> None:
        for token in list(self._clients):
            self.destroy(token)

    def __len__(self) -> int:
        return len(self._clients)

    def _sign(self, data: str) -> str:
        """Create HMAC signature for a token."""
        return hmac.new(self._secret, data.encode(), hashlib.sha256).hexdigest()[:32]


async def get_client(request: Request, response: Response) -> ClientContext:
    """Return this browser's context, issuing a client cookie if needed."""
    services = request.app.state.services
    registry = services.clients
    client = registry.get(request.cookies.get(CLIENT_COOKIE))
    if client is None:
        token, client = registry.create()
        response.set_cookie(
            key=CLIENT_COOKIE,
            value=token,
            httponly=True,
            secure=not services.settings.debug,
            samesite="lax",
            max_age=registry.max_age,
        )
    request.state.language = client.language
    return client


async def find_client(request: Request) -> ClientContext | None:
    """Return this browser's context without issuing a cookie."""
    client = request.app.state.services.clients.get(request.cookies.get(CLIENT_COOKIE))
    if client is not None:
        request.state.language = client.language
    return client


async def require_session(
    request: Request,
    client: ClientContext | None = Depends(find_client),
) -> ClientContext:
    """Require a signed-in client; a lost session is reported once."""
    if client is None:
        language = request.app.state.services.settings.default_language
        raise HTTPException(status_code=401, detail=translate("session_expired", language))
    try:
        await client.session.ensure_valid()
    except SessionExpiredError as exc:
        client.session.expire(reason="request_unauthenticated")
        raise HTTPException(
            status_code=401, detail=translate("session_expired", client.language)
        ) from exc
    client.watchdog.record_activity()
    return client


async def require_scope(
    request: Request,
    client: ClientContext = Depends(require_session),
) -> ClientContext:
    """Require a session whose scope is re-resolved against current assignments."""
    await client.load_scope(request.app.state.services)
    return client
