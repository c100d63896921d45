"""Selected account scope API."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from callscope.web.auth.session import require_scope
from callscope.web.client_context import ClientContext
from callscope.web.schemas import scope_payload

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/scope", tags=["scope"])


class SelectScopeRequest(BaseModel):
    account_id: str | None = None


@router.get("")
async def get_scope(client: ClientContext = Depends(require_scope)) -> dict[str, Any]:
    return scope_payload(client.scope, client.language)


@router.put("")
async def select_scope(
    body: SelectScopeRequest,
    client: ClientContext = Depends(require_scope),
) -> dict[str, Any]:
    """Select an account (or ``"all"``); illegal requests are downgraded."""
    resolution = client.scope.select(body.account_id)
    logger.info(
        "scope_selected",
        user_id=client.user.id,
        requested=body.account_id,
        scope=str(resolution.scope),
        downgraded=resolution.downgraded,
    )
    return scope_payload(client.scope, client.language)
