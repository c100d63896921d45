"""Scoped queries over evaluated agent behaviors."""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy import update
from sqlmodel import col, delete, select

from callscope.exceptions import NotFoundError, ValidationError
from callscope.models.database import Behavior, _utc_now
from callscope.scope.query import ScopedQueryRunner, ScopedRows, with_scope
from callscope.scope.resolver import EffectiveScope

logger = structlog.get_logger(__name__)

_EDITABLE = frozenset({"name", "description", "prompt", "is_active"})


class BehaviorQueries:
    def __init__(self, runner: ScopedQueryRunner) -> None:
        self._runner = runner

    async def list_all(self, scope: EffectiveScope) -> ScopedRows[Behavior]:
        stmt = select(Behavior).order_by(col(Behavior.name))
        return await self._runner.fetch(with_scope(stmt, Behavior, scope))

    async def create(
        self,
        scope: EffectiveScope,
        name: str,
        prompt: str,
        description: str | None = None,
        is_active: bool = True,
        account_id: str | None = None,
    ) -> Behavior:
        if not name.strip():
            raise ValidationError("name", "behavior name is required")
        if not prompt.strip():
            raise ValidationError("prompt", "behavior prompt is required")
        behavior = Behavior(
            account_id=account_id,
            name=name.strip(),
            prompt=prompt,
            description=description,
            is_active=is_active,
        )
        created = await self._runner.insert(scope, behavior)
        logger.info("behavior_created", behavior_id=created.id, account_id=created.account_id)
        return created

    async def update(self, scope: EffectiveScope, behavior_id: str, **fields: Any) -> Behavior:
        unknown = set(fields) - _EDITABLE
        if unknown:
            raise ValidationError(sorted(unknown)[0], "field cannot be changed")
        if "name" in fields and not str(fields["name"]).strip():
            raise ValidationError("name", "behavior name is required")
        stmt = (
            update(Behavior)
            .where(col(Behavior.id) == behavior_id)
            .values(**fields, updated_at=_utc_now())
        )
        changed = await self._runner.execute(with_scope(stmt, Behavior, scope))
        if not changed:
            raise NotFoundError(f"behavior {behavior_id} not found in {scope}")
        refreshed = await self._runner.first(
            with_scope(select(Behavior).where(col(Behavior.id) == behavior_id), Behavior, scope)
        )
        if refreshed is None:
            raise NotFoundError(f"behavior {behavior_id} not found in {scope}")
        return refreshed

    async def delete(self, scope: EffectiveScope, behavior_id: str) -> None:
        stmt = delete(Behavior).where(col(Behavior.id) == behavior_id)
        if not await self._runner.execute(with_scope(stmt, Behavior, scope)):
            raise NotFoundError(f"behavior {behavior_id} not found in {scope}")
        logger.info("behavior_deleted", behavior_id=behavior_id)
