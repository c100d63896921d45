"""Authentication routes: sign-in page bootstrap, login, logout, refresh."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, Field

from callscope.auth.session_store import LAST_PATH_KEY
from callscope.web.auth.session import find_client, get_client, require_scope, require_session
from callscope.web.client_context import ClientContext
from callscope.web.dependencies import Services, get_services
from callscope.web.schemas import scope_payload, user_payload

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["auth"])


@router.get("/", response_model=None)
async def landing(
    client: ClientContext | None = Depends(find_client),
    services: Services = Depends(get_services),
) -> RedirectResponse:
    if client is not None and client.session.is_authenticated:
        return RedirectResponse(url=services.guard.default_landing, status_code=302)
    return RedirectResponse(url="/login", status_code=302)


@router.get("/login", response_model=None)
async def login_page(
    next: str | None = None,  # noqa: A002
    client: ClientContext = Depends(get_client),
    services: Services = Depends(get_services),
) -> RedirectResponse | dict[str, Any]:
    """Bootstrap data for the sign-in page; signed-in clients move on."""
    target = services.guard.restore_target(next or client.storage.get(LAST_PATH_KEY))
    if client.session.is_authenticated:
        return RedirectResponse(url=target, status_code=302)
    return {
        "page": "login",
        "auth_mode": services.settings.auth_mode,
        "next": target,
        "notifications": [n.message for n in client.notifier.drain()],
    }


class LoginRequest(BaseModel):
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)
    next: str | None = None


@router.post("/api/auth/login")
async def login(
    body: LoginRequest,
    client: ClientContext = Depends(get_client),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Sign in; concurrent submissions from one client share the attempt."""
    # read before sign-in, which clears the saved path with the old session
    target = services.guard.restore_target(body.next or client.storage.get(LAST_PATH_KEY))
    await client.session.sign_in(body.email.strip(), body.password)
    user = client.user
    await client.load_scope(services, reload_user=False)
    client.watchdog.record_activity()
    logger.info("user_logged_in", user_id=user.id, client_id=client.client_id)
    return {
        "status": "ok",
        "user": user_payload(user),
        "redirect": target,
        "scope": scope_payload(client.scope, client.language),
    }


@router.post("/api/auth/logout")
async def logout(client: ClientContext | None = Depends(find_client)) -> dict[str, str]:
    if client is not None:
        await client.session.sign_out()
    return {"status": "ok"}


@router.post("/api/auth/refresh")
async def refresh(client: ClientContext = Depends(require_session)) -> dict[str, Any]:
    session = await client.session.refresh_session()
    return {"status": "ok", "expires_at": session.expires_at}


@router.get("/api/auth/me")
async def me(client: ClientContext = Depends(require_scope)) -> dict[str, Any]:
    user = client.user
    return {
        "user": user_payload(user),
        "state": str(client.session.state),
        "scope": scope_payload(client.scope, client.language),
    }
