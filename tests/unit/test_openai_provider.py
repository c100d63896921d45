"""Unit tests for OpenAIProvider in callscope/llm/openai_provider.py."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from openai import OpenAIError

from callscope.exceptions import LLMProviderError
from callscope.llm.openai_provider import OpenAIProvider
from callscope.llm.provider import LLMResponse
from callscope.models.domain import ChatTurn

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_mock_response(
    content: str | None = "Hola desde GPT",
    model: str = "gpt-4o-mini",
    prompt_tokens: int = 10,
    completion_tokens: int = 5,
) -> MagicMock:
    """Build a MagicMock that mimics an OpenAI ChatCompletion response object."""
    choice = MagicMock()
    choice.message.content = content

    usage = MagicMock()
    usage.prompt_tokens = prompt_tokens
    usage.completion_tokens = completion_tokens

    response = MagicMock()
    response.choices = [choice]
    response.model = model
    response.usage = usage
    return response


def _turns(*pairs: tuple[str, str]) -> list[ChatTurn]:
    return [ChatTurn(role=role, content=content) for role, content in pairs]


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestOpenAIProviderComplete:
    async def test_complete_returns_llm_response(self) -> None:
        with patch("callscope.llm.openai_provider.AsyncOpenAI") as mock_cls:
            mock_client = AsyncMock()
            mock_client.chat.completions.create = AsyncMock(return_value=_make_mock_response())
            mock_cls.return_value = mock_client

            provider = OpenAIProvider(api_key="sk-test")
            result = await provider.complete(_turns(("user", "Hola")))

        assert isinstance(result, LLMResponse)
        assert result.content == "Hola desde GPT"
        assert result.model == "gpt-4o-mini"

    async def test_tokens_used_is_sum_of_prompt_and_completion(self) -> None:
        mock_response = _make_mock_response(prompt_tokens=20, completion_tokens=8)

        with patch("callscope.llm.openai_provider.AsyncOpenAI") as mock_cls:
            mock_client = AsyncMock()
            mock_client.chat.completions.create = AsyncMock(return_value=mock_response)
            mock_cls.return_value = mock_client

            provider = OpenAIProvider(api_key="sk-test")
            result = await provider.complete(_turns(("user", "Prompt")))

        assert result.tokens_used == 28

    async def test_without_usage_returns_zero_tokens(self) -> None:
        mock_response = _make_mock_response()
        mock_response.usage = None

        with patch("callscope.llm.openai_provider.AsyncOpenAI") as mock_cls:
            mock_client = AsyncMock()
            mock_client.chat.completions.create = AsyncMock(return_value=mock_response)
            mock_cls.return_value = mock_client

            provider = OpenAIProvider(api_key="sk-test")
            result = await provider.complete(_turns(("user", "Prompt")))

        assert result.tokens_used == 0

    async def test_messages_sent_in_order(self) -> None:
        with patch("callscope.llm.openai_provider.AsyncOpenAI") as mock_cls:
            mock_client = AsyncMock()
            mock_client.chat.completions.create = AsyncMock(return_value=_make_mock_response())
            mock_cls.return_value = mock_client

            provider = OpenAIProvider(api_key="sk-test")
            await provider.complete(
                _turns(("system", "Contexto"), ("assistant", "Antes"), ("user", "Ahora"))
            )

            messages = mock_client.chat.completions.create.call_args.kwargs["messages"]
            assert messages == [
                {"role": "system", "content": "Contexto"},
                {"role": "assistant", "content": "Antes"},
                {"role": "user", "content": "Ahora"},
            ]

    async def test_passes_model_and_sampling_to_api(self) -> None:
        with patch("callscope.llm.openai_provider.AsyncOpenAI") as mock_cls:
            mock_client = AsyncMock()
            mock_client.chat.completions.create = AsyncMock(return_value=_make_mock_response())
            mock_cls.return_value = mock_client

            provider = OpenAIProvider(api_key="sk-test", model="gpt-4o")
            await provider.complete(_turns(("user", "Test")), temperature=0.2, max_tokens=256)

            call_kwargs = mock_client.chat.completions.create.call_args.kwargs
            assert call_kwargs["model"] == "gpt-4o"
            assert call_kwargs["temperature"] == 0.2
            assert call_kwargs["max_tokens"] == 256

    async def test_empty_content_returns_empty_string(self) -> None:
        mock_response = _make_mock_response(content=None)  # API can return None

        with patch("callscope.llm.openai_provider.AsyncOpenAI") as mock_cls:
            mock_client = AsyncMock()
            mock_client.chat.completions.create = AsyncMock(return_value=mock_response)
            mock_cls.return_value = mock_client

            provider = OpenAIProvider(api_key="sk-test")
            result = await provider.complete(_turns(("user", "Test")))

        assert result.content == ""

    async def test_sdk_errors_are_wrapped(self) -> None:
        with patch("callscope.llm.openai_provider.AsyncOpenAI") as mock_cls:
            mock_client = AsyncMock()
            mock_client.chat.completions.create = AsyncMock(side_effect=OpenAIError("quota"))
            mock_cls.return_value = mock_client

            provider = OpenAIProvider(api_key="sk-test")
            with pytest.raises(LLMProviderError, match="quota"):
                await provider.complete(_turns(("user", "Test")))

    def test_client_initialised_with_api_key(self) -> None:
        with patch("callscope.llm.openai_provider.AsyncOpenAI") as mock_cls:
            OpenAIProvider(api_key="sk-secret-key")

        mock_cls.assert_called_once_with(api_key="sk-secret-key")
