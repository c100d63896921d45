"""General analytics chat API."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from callscope.models.domain import ChatTurn
from callscope.web.auth.session import require_scope
from callscope.web.client_context import ClientContext
from callscope.web.dependencies import Services, get_services
from callscope.web.schemas import dump_rows

router = APIRouter(prefix="/api/chat", tags=["chat"])


class ChatRequest(BaseModel):
    message: str
    history: list[ChatTurn] | None = None


@router.get("")
async def chat_history(
    client: ClientContext = Depends(require_scope),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    user_id = client.user.id
    rows = await client.scope.run(
        lambda scope: services.chat_messages.history(scope, user_id)
    )
    return {"scope": str(rows.scope), "messages": dump_rows(rows)}


@router.post("")
async def ask(
    body: ChatRequest,
    client: ClientContext = Depends(require_scope),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    answer = await services.chat_service().ask(
        client.scope, client.user, body.message, history=body.history
    )
    return {"response": answer.content, "model": answer.model, "scope": str(answer.scope)}
