"""OpenAI LLM provider implementation."""

from __future__ import annotations

from typing import Any

import structlog
from openai import AsyncOpenAI, OpenAIError

from callscope.exceptions import LLMProviderError
from callscope.llm.provider import LLMProviderBase, LLMResponse
from callscope.models.domain import ChatTurn

logger = structlog.get_logger(__name__)


class OpenAIProvider(LLMProviderBase):
    """OpenAI chat completions provider."""

    def __init__(self, api_key: str, model: str = "gpt-4o-mini") -> None:
        self._client = AsyncOpenAI(api_key=api_key)
        self._model = model

    async def complete(
        self,
        messages: list[ChatTurn],
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> LLMResponse:
        payload: list[dict[str, Any]] = [
            {"role": turn.role, "content": turn.content} for turn in messages
        ]
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=payload,  # type: ignore[arg-type]
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except OpenAIError as exc:
            logger.error("openai_request_failed", model=self._model, error=str(exc))
            raise LLMProviderError(str(exc)) from exc

        choice = response.choices[0]
        usage = response.usage
        tokens = (usage.prompt_tokens + usage.completion_tokens) if usage else 0
        logger.info("openai_completion", model=response.model, tokens_used=tokens)
        return LLMResponse(
            content=choice.message.content or "",
            model=response.model,
            tokens_used=tokens,
        )
