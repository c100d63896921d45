"""Abstract LLM provider interface."""

from abc import ABC, abstractmethod

from pydantic import BaseModel

from callscope.models.domain import ChatTurn


class LLMResponse(BaseModel):
    content: str
    model: str
    tokens_used: int


class LLMProviderBase(ABC):
    """Abstract base for chat-completion providers."""

    @abstractmethod
    async def complete(
        self,
        messages: list[ChatTurn],
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> LLMResponse:
        """Return the assistant reply to ``messages``."""
