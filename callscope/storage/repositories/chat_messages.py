"""Scoped chat history."""

from __future__ import annotations

from sqlmodel import col, select

from callscope.models.database import ChatMessage
from callscope.scope.query import ScopedQueryRunner, ScopedRows, with_scope
from callscope.scope.resolver import EffectiveScope
from callscope.types import ChatRole


class ChatMessageQueries:
    def __init__(self, runner: ScopedQueryRunner) -> None:
        self._runner = runner

    async def history(
        self,
        scope: EffectiveScope,
        user_id: str,
        call_id: str | None = None,
        limit: int = 50,
    ) -> ScopedRows[ChatMessage]:
        """Oldest-first messages of one conversation (general or per call)."""
        stmt = select(ChatMessage).where(col(ChatMessage.user_id) == user_id)
        if call_id is None:
            stmt = stmt.where(col(ChatMessage.call_id).is_(None))
        else:
            stmt = stmt.where(col(ChatMessage.call_id) == call_id)
        stmt = stmt.order_by(col(ChatMessage.timestamp).desc()).limit(limit)
        rows = await self._runner.fetch(with_scope(stmt, ChatMessage, scope))
        return ScopedRows(scope=rows.scope, rows=list(reversed(rows.rows)))

    async def append(
        self,
        scope: EffectiveScope,
        user_id: str,
        role: ChatRole,
        content: str,
        call_id: str | None = None,
        account_id: str | None = None,
    ) -> ChatMessage:
        message = ChatMessage(
            account_id=account_id,
            user_id=user_id,
            call_id=call_id,
            role=str(role),
            content=content,
        )
        # general chat under "all accounts" belongs to no single account
        return await self._runner.insert(scope, message, require_account=call_id is not None)
