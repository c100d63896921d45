"""Scoped feedback API."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query

from callscope.web.auth.session import require_scope
from callscope.web.client_context import ClientContext
from callscope.web.dependencies import Services, get_services
from callscope.web.schemas import dump_rows

router = APIRouter(prefix="/api/feedback", tags=["feedback"])


@router.get("")
async def list_feedback(
    limit: int = Query(default=10, ge=1, le=200),
    client: ClientContext = Depends(require_scope),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    rows = await client.scope.run(lambda scope: services.feedback.list_recent(scope, limit=limit))
    return {"scope": str(rows.scope), "feedback": dump_rows(rows)}
