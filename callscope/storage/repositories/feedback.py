"""Scoped queries over call feedback."""

from __future__ import annotations

from sqlmodel import col, select

from callscope.models.database import Feedback
from callscope.scope.query import ScopedQueryRunner, ScopedRows, with_scope
from callscope.scope.resolver import EffectiveScope


class FeedbackQueries:
    def __init__(self, runner: ScopedQueryRunner) -> None:
        self._runner = runner

    async def list_recent(self, scope: EffectiveScope, limit: int = 10) -> ScopedRows[Feedback]:
        stmt = select(Feedback).order_by(col(Feedback.created_at).desc()).limit(limit)
        return await self._runner.fetch(with_scope(stmt, Feedback, scope))

    async def for_call(self, scope: EffectiveScope, call_id: str) -> ScopedRows[Feedback]:
        stmt = (
            select(Feedback)
            .where(col(Feedback.call_id) == call_id)
            .order_by(col(Feedback.created_at).desc())
        )
        return await self._runner.fetch(with_scope(stmt, Feedback, scope))
