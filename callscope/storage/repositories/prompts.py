"""Scoped queries over analysis prompts."""

from __future__ import annotations

import structlog
from sqlalchemy import update
from sqlmodel import col, select

from callscope.exceptions import NotFoundError, ValidationError
from callscope.models.database import Prompt, _utc_now
from callscope.scope.query import ScopedQueryRunner, ScopedRows, with_scope
from callscope.scope.resolver import EffectiveScope
from callscope.types import PromptType

logger = structlog.get_logger(__name__)


def _prompt_type(value: PromptType | str) -> PromptType:
    try:
        return PromptType(value)
    except ValueError as exc:
        raise ValidationError("type", f"unknown prompt type {value!r}") from exc


class PromptQueries:
    def __init__(self, runner: ScopedQueryRunner) -> None:
        self._runner = runner

    async def list_all(
        self, scope: EffectiveScope, prompt_type: PromptType | str | None = None
    ) -> ScopedRows[Prompt]:
        stmt = select(Prompt).order_by(col(Prompt.updated_at).desc())
        if prompt_type is not None:
            stmt = stmt.where(col(Prompt.type) == str(_prompt_type(prompt_type)))
        return await self._runner.fetch(with_scope(stmt, Prompt, scope))

    async def create(
        self,
        scope: EffectiveScope,
        name: str,
        content: str,
        prompt_type: PromptType | str,
        account_id: str | None = None,
    ) -> Prompt:
        if not name.strip():
            raise ValidationError("name", "prompt name is required")
        if not content.strip():
            raise ValidationError("content", "prompt content is required")
        prompt = Prompt(
            account_id=account_id,
            name=name.strip(),
            content=content,
            type=str(_prompt_type(prompt_type)),
            active=False,
        )
        created = await self._runner.insert(scope, prompt)
        logger.info("prompt_created", prompt_id=created.id, type=created.type)
        return created

    async def activate(self, scope: EffectiveScope, prompt_id: str) -> Prompt:
        """Make ``prompt_id`` the only active prompt of its type in its account."""
        target = await self._runner.first(
            with_scope(select(Prompt).where(col(Prompt.id) == prompt_id), Prompt, scope)
        )
        if target is None:
            raise NotFoundError(f"prompt {prompt_id} not found in {scope}")

        now = _utc_now()
        siblings = (
            update(Prompt)
            .where(
                col(Prompt.type) == target.type,
                col(Prompt.account_id) == target.account_id,
                col(Prompt.id) != prompt_id,
            )
            .values(active=False, updated_at=now)
        )
        await self._runner.execute(with_scope(siblings, Prompt, scope))
        chosen = (
            update(Prompt)
            .where(col(Prompt.id) == prompt_id)
            .values(active=True, updated_at=now)
        )
        await self._runner.execute(with_scope(chosen, Prompt, scope))
        logger.info(
            "prompt_activated",
            prompt_id=prompt_id,
            type=target.type,
            account_id=target.account_id,
        )
        target.active = True
        target.updated_at = now
        return target
