"""Scoped chat with the analytics assistant."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import structlog

from callscope.ai.context import CallStats, build_call_context, build_context
from callscope.config.settings import Settings
from callscope.exceptions import ValidationError
from callscope.llm.provider import LLMProviderBase, LLMResponse
from callscope.messages import translate
from callscope.models.domain import ChatTurn, User
from callscope.scope.resolver import EffectiveScope
from callscope.scope.store import ScopeStore
from callscope.storage.repositories.calls import CallQueries
from callscope.storage.repositories.chat_messages import ChatMessageQueries
from callscope.storage.repositories.feedback import FeedbackQueries
from callscope.types import ChatRole

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ChatAnswer:
    content: str
    model: str
    scope: EffectiveScope
    tokens_used: int = 0


def _clean_history(history: Sequence[ChatTurn]) -> list[ChatTurn]:
    """Keep prior turns, coercing unknown roles to ``user``."""
    allowed = {str(ChatRole.USER), str(ChatRole.ASSISTANT)}
    return [
        ChatTurn(role=t.role if t.role in allowed else str(ChatRole.USER), content=t.content)
        for t in history
    ]


class ChatService:
    def __init__(
        self,
        llm: LLMProviderBase,
        calls: CallQueries,
        feedback: FeedbackQueries,
        chat: ChatMessageQueries,
        settings: Settings,
    ) -> None:
        self._llm = llm
        self._calls = calls
        self._feedback = feedback
        self._chat = chat
        self._settings = settings

    async def ask(
        self,
        scope_store: ScopeStore,
        user: User,
        question: str,
        history: Sequence[ChatTurn] | None = None,
    ) -> ChatAnswer:
        """Answer a question about all calls visible in the active scope."""
        question = _require_question(question)
        label = scope_store.describe(user.language)

        async def operation(scope: EffectiveScope) -> ChatAnswer:
            recent = await self._calls.list_recent(scope, limit=self._settings.context_recent_calls)
            total, counts = await self._calls.result_counts(scope)
            feedback = await self._feedback.list_recent(
                scope, limit=self._settings.context_recent_feedback
            )
            system = build_context(
                scope,
                label,
                recent,
                feedback,
                stats=CallStats(total=total, results=dict(counts)),
                max_chars=self._settings.context_field_max_chars,
                language=user.language,
            )
            turns = await self._history(scope, user, None, history)
            response = await self._complete(system, turns, question)
            return await self._answer(
                scope, user, question, response, call_id=None, account_id=None
            )

        # persisted inside the run; a scope switch discards the answer
        return await scope_store.run(operation)

    async def ask_about_call(
        self,
        scope_store: ScopeStore,
        user: User,
        call_id: str,
        question: str,
        history: Sequence[ChatTurn] | None = None,
    ) -> ChatAnswer:
        """Answer a question about one call in the active scope."""
        question = _require_question(question)
        label = scope_store.describe(user.language)

        async def operation(scope: EffectiveScope) -> ChatAnswer:
            call = await self._calls.get(scope, call_id)
            feedback = await self._feedback.for_call(scope, call_id)
            system = build_call_context(scope, label, call, feedback, language=user.language)
            turns = await self._history(scope, user, call_id, history)
            response = await self._complete(system, turns, question)
            return await self._answer(
                scope, user, question, response, call_id=call_id, account_id=call.account_id
            )

        return await scope_store.run(operation)

    async def _history(
        self,
        scope: EffectiveScope,
        user: User,
        call_id: str | None,
        history: Sequence[ChatTurn] | None,
    ) -> list[ChatTurn]:
        if history is not None:
            return _clean_history(history)
        stored = await self._chat.history(scope, user.id, call_id=call_id)
        return _clean_history([ChatTurn(role=m.role, content=m.content) for m in stored])

    async def _complete(self, system: str, turns: list[ChatTurn], question: str) -> LLMResponse:
        messages = [ChatTurn(role="system", content=system), *turns]
        messages.append(ChatTurn(role=str(ChatRole.USER), content=question))
        return await self._llm.complete(
            messages,
            temperature=self._settings.llm_temperature,
            max_tokens=self._settings.llm_max_tokens,
        )

    async def _answer(
        self,
        scope: EffectiveScope,
        user: User,
        question: str,
        response: LLMResponse,
        call_id: str | None,
        account_id: str | None,
    ) -> ChatAnswer:
        content = response.content.strip() or translate("llm_empty_response", user.language)
        if scope.is_empty:
            logger.info("chat_not_persisted", user_id=user.id, reason="no_accounts")
        else:
            await self._chat.append(
                scope, user.id, ChatRole.USER, question, call_id=call_id, account_id=account_id
            )
            await self._chat.append(
                scope, user.id, ChatRole.ASSISTANT, content, call_id=call_id, account_id=account_id
            )
        logger.info(
            "chat_answered",
            user_id=user.id,
            scope=str(scope),
            call_id=call_id,
            tokens_used=response.tokens_used,
        )
        return ChatAnswer(
            content=content,
            model=response.model,
            scope=scope,
            tokens_used=response.tokens_used,
        )


def _require_question(question: str) -> str:
    question = (question or "").strip()
    if not question:
        raise ValidationError("message", "a question is required")
    return question
