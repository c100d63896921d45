"""Scoped queries over calls."""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence

import structlog
from sqlmodel import col, delete, select

from callscope.exceptions import NotFoundError
from callscope.models.database import Call, ChatMessage, Feedback
from callscope.scope.query import ScopedQueryRunner, ScopedRows, with_scope
from callscope.scope.resolver import EffectiveScope

logger = structlog.get_logger(__name__)


class CallQueries:
    def __init__(self, runner: ScopedQueryRunner) -> None:
        self._runner = runner

    async def list_recent(self, scope: EffectiveScope, limit: int = 50) -> ScopedRows[Call]:
        stmt = select(Call).order_by(col(Call.date).desc()).limit(limit)
        return await self._runner.fetch(with_scope(stmt, Call, scope))

    async def result_counts(self, scope: EffectiveScope) -> tuple[int, Counter[str]]:
        """Total calls in scope and how many ended with each result."""
        stmt = select(col(Call.result))
        rows = await self._runner.fetch(with_scope(stmt, Call, scope))
        counts: Counter[str] = Counter(str(r) for r in rows if r)
        return len(rows), counts

    async def get(self, scope: EffectiveScope, call_id: str) -> Call:
        stmt = select(Call).where(col(Call.id) == call_id)
        call = await self._runner.first(with_scope(stmt, Call, scope))
        if call is None:
            raise NotFoundError(f"call {call_id} not found in {scope}")
        return call

    async def delete(self, scope: EffectiveScope, call_id: str) -> None:
        removed = await self.delete_many(scope, [call_id])
        if not removed:
            raise NotFoundError(f"call {call_id} not found in {scope}")

    async def delete_many(self, scope: EffectiveScope, call_ids: Sequence[str]) -> int:
        """Delete calls (and their feedback and chat) visible in ``scope``."""
        if not call_ids:
            return 0
        ids = list(call_ids)
        # children first: feedback and chat rows reference the call
        await self._runner.execute(
            with_scope(delete(Feedback).where(col(Feedback.call_id).in_(ids)), Feedback, scope)
        )
        await self._runner.execute(
            with_scope(
                delete(ChatMessage).where(col(ChatMessage.call_id).in_(ids)), ChatMessage, scope
            )
        )
        removed = await self._runner.execute(
            with_scope(delete(Call).where(col(Call.id).in_(ids)), Call, scope)
        )
        logger.info("calls_deleted", requested=len(ids), removed=removed, scope=str(scope))
        return removed
