"""Scoped call API."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from pydantic import BaseModel, Field

from callscope.models.domain import ChatTurn
from callscope.scope.resolver import EffectiveScope
from callscope.web.auth.session import require_scope
from callscope.web.client_context import ClientContext
from callscope.web.dependencies import Services, get_services
from callscope.web.schemas import dump_rows

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/calls", tags=["calls"])


class DeleteCallsRequest(BaseModel):
    ids: list[str] = Field(min_length=1)


class CallChatRequest(BaseModel):
    message: str
    history: list[ChatTurn] | None = None


@router.get("")
async def list_calls(
    limit: int = Query(default=50, ge=1, le=500),
    client: ClientContext = Depends(require_scope),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    rows = await client.scope.run(lambda scope: services.calls.list_recent(scope, limit=limit))
    return {"scope": str(rows.scope), "calls": dump_rows(rows)}


@router.delete("/{call_id}", status_code=204)
async def delete_call(
    call_id: str,
    client: ClientContext = Depends(require_scope),
    services: Services = Depends(get_services),
) -> Response:
    await client.scope.run(lambda scope: services.calls.delete(scope, call_id))
    return Response(status_code=204)


@router.post("/delete")
async def delete_calls(
    body: DeleteCallsRequest,
    client: ClientContext = Depends(require_scope),
    services: Services = Depends(get_services),
) -> dict[str, int]:
    removed = await client.scope.run(lambda scope: services.calls.delete_many(scope, body.ids))
    return {"deleted": removed}


@router.get("/{call_id}/feedback")
async def call_feedback(
    call_id: str,
    client: ClientContext = Depends(require_scope),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    async def operation(scope: EffectiveScope) -> list[dict[str, Any]]:
        await services.calls.get(scope, call_id)
        return dump_rows(await services.feedback.for_call(scope, call_id))

    return {"call_id": call_id, "feedback": await client.scope.run(operation)}


@router.post("/{call_id}/chat")
async def call_chat(
    call_id: str,
    body: CallChatRequest,
    client: ClientContext = Depends(require_scope),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    answer = await services.chat_service().ask_about_call(
        client.scope, client.user, call_id, body.message, history=body.history
    )
    return {"response": answer.content, "model": answer.model, "scope": str(answer.scope)}
