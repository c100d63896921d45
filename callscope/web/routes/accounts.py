"""Account administration API."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from callscope.types import AccountStatus
from callscope.web.auth.rbac import require_super_admin
from callscope.web.auth.session import require_scope
from callscope.web.client_context import ClientContext
from callscope.web.dependencies import Services, get_services
from callscope.web.schemas import dump, dump_rows

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/accounts", tags=["accounts"])


class CreateAccountRequest(BaseModel):
    name: str


class BulkCreateRequest(BaseModel):
    names: str = Field(description="One account name per line")


class StatusRequest(BaseModel):
    status: AccountStatus


class BulkAssignRequest(BaseModel):
    user_ids: list[str] = Field(min_length=1)
    account_ids: list[str] = Field(min_length=1)


@router.get("")
async def list_accounts(
    _client: ClientContext = Depends(require_super_admin),
    services: Services = Depends(get_services),
) -> list[dict[str, Any]]:
    return dump_rows(await services.directory.list_all_accounts())


@router.get("/mine")
async def my_accounts(
    client: ClientContext = Depends(require_scope),
    services: Services = Depends(get_services),
) -> list[dict[str, Any]]:
    return dump_rows(await services.directory.accounts_for(client.user))


@router.post("", status_code=201)
async def create_account(
    body: CreateAccountRequest,
    client: ClientContext = Depends(require_super_admin),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    account = await services.directory.create_account(body.name)
    await client.load_scope(services)
    return dump(account)


@router.post("/bulk", status_code=201)
async def create_accounts(
    body: BulkCreateRequest,
    client: ClientContext = Depends(require_super_admin),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    outcome = await services.directory.create_accounts(body.names)
    await client.load_scope(services)
    return {"created": dump_rows(outcome.created), "failed": outcome.failed}


@router.patch("/{account_id}/status")
async def set_status(
    account_id: str,
    body: StatusRequest,
    client: ClientContext = Depends(require_super_admin),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    account = await services.directory.set_account_status(account_id, body.status)
    await client.load_scope(services)
    return dump(account)


@router.put("/{account_id}/users/{user_id}")
async def assign_user(
    account_id: str,
    user_id: str,
    _client: ClientContext = Depends(require_super_admin),
    services: Services = Depends(get_services),
) -> dict[str, bool]:
    return {"assigned": await services.directory.assign_user(user_id, account_id)}


@router.delete("/{account_id}/users/{user_id}")
async def unassign_user(
    account_id: str,
    user_id: str,
    _client: ClientContext = Depends(require_super_admin),
    services: Services = Depends(get_services),
) -> dict[str, bool]:
    return {"removed": await services.directory.unassign_user(user_id, account_id)}


@router.post("/assignments/bulk")
async def bulk_assign(
    body: BulkAssignRequest,
    _client: ClientContext = Depends(require_super_admin),
    services: Services = Depends(get_services),
) -> dict[str, int]:
    return {"added": await services.directory.bulk_assign(body.user_ids, body.account_ids)}
