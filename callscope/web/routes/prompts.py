"""Scoped prompt API."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from callscope.types import PromptType
from callscope.web.auth.session import require_scope
from callscope.web.client_context import ClientContext
from callscope.web.dependencies import Services, get_services
from callscope.web.schemas import dump, dump_rows

router = APIRouter(prefix="/api/prompts", tags=["prompts"])


class CreatePromptRequest(BaseModel):
    name: str
    content: str
    type: PromptType
    account_id: str | None = None


@router.get("")
async def list_prompts(
    type: PromptType | None = None,  # noqa: A002
    client: ClientContext = Depends(require_scope),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    rows = await client.scope.run(lambda scope: services.prompts.list_all(scope, type))
    return {"scope": str(rows.scope), "prompts": dump_rows(rows)}


@router.post("", status_code=201)
async def create_prompt(
    body: CreatePromptRequest,
    client: ClientContext = Depends(require_scope),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    prompt = await client.scope.run(
        lambda scope: services.prompts.create(
            scope, body.name, body.content, body.type, account_id=body.account_id
        )
    )
    return dump(prompt)


@router.post("/{prompt_id}/activate")
async def activate_prompt(
    prompt_id: str,
    client: ClientContext = Depends(require_scope),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    prompt = await client.scope.run(lambda scope: services.prompts.activate(scope, prompt_id))
    return dump(prompt)
