"""Factory for creating the configured LLM provider."""

from callscope.config.settings import Settings
from callscope.exceptions import LLMProviderError
from callscope.llm.openai_provider import OpenAIProvider
from callscope.llm.provider import LLMProviderBase


def create_llm_provider(settings: Settings) -> LLMProviderBase:
    """Create an LLM provider instance."""
    if not settings.openai_api_key:
        raise LLMProviderError("API key required for OpenAI provider")
    return OpenAIProvider(api_key=settings.openai_api_key, model=settings.openai_model)
