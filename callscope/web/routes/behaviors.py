"""Scoped behavior API."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from pydantic import BaseModel

from callscope.web.auth.session import require_scope
from callscope.web.client_context import ClientContext
from callscope.web.dependencies import Services, get_services
from callscope.web.schemas import dump, dump_rows

router = APIRouter(prefix="/api/behaviors", tags=["behaviors"])


class CreateBehaviorRequest(BaseModel):
    name: str
    prompt: str
    description: str | None = None
    is_active: bool = True
    account_id: str | None = None


class UpdateBehaviorRequest(BaseModel):
    name: str | None = None
    prompt: str | None = None
    description: str | None = None
    is_active: bool | None = None


@router.get("")
async def list_behaviors(
    client: ClientContext = Depends(require_scope),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    rows = await client.scope.run(services.behaviors.list_all)
    return {"scope": str(rows.scope), "behaviors": dump_rows(rows)}


@router.post("", status_code=201)
async def create_behavior(
    body: CreateBehaviorRequest,
    client: ClientContext = Depends(require_scope),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    behavior = await client.scope.run(
        lambda scope: services.behaviors.create(
            scope,
            name=body.name,
            prompt=body.prompt,
            description=body.description,
            is_active=body.is_active,
            account_id=body.account_id,
        )
    )
    return dump(behavior)


@router.patch("/{behavior_id}")
async def update_behavior(
    behavior_id: str,
    body: UpdateBehaviorRequest,
    client: ClientContext = Depends(require_scope),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    fields = body.model_dump(exclude_none=True)
    behavior = await client.scope.run(
        lambda scope: services.behaviors.update(scope, behavior_id, **fields)
    )
    return dump(behavior)


@router.delete("/{behavior_id}", status_code=204)
async def delete_behavior(
    behavior_id: str,
    client: ClientContext = Depends(require_scope),
    services: Services = Depends(get_services),
) -> Response:
    await client.scope.run(lambda scope: services.behaviors.delete(scope, behavior_id))
    return Response(status_code=204)
