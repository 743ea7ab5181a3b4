"""LLM provider factory.

Supports any OpenAI-compatible backend through ``langchain_openai``:
- OpenAI (default)
- OpenRouter, Together, Groq
- Ollama (local, no API key)
- Any other OpenAI-compatible API: set LLM_PROVIDER=custom and LLM_BASE_URL

Environment variables:
- LLM_PROVIDER: openai (default), openrouter, together, groq, ollama, custom
- LLM_MODEL: Model name (e.g., gpt-4o-mini, anthropic/claude-sonnet-4)
- LLM_API_KEY: API key for the provider
- LLM_BASE_URL: Custom base URL for OpenAI-compatible APIs
- LLM_TEMPERATURE: Generation temperature (0.0-2.0)
"""

from functools import lru_cache
from typing import Any

from langchain_core.language_models import BaseChatModel

from src.exceptions import ConfigurationError
from src.settings import get_settings

# Provider base URLs
PROVIDER_BASE_URLS = {
    "openrouter": "https://openrouter.ai/api/v1",
    "openai": "https://api.openai.com/v1",
    "together": "https://api.together.xyz/v1",
    "groq": "https://api.groq.com/openai/v1",
    "ollama": "http://localhost:11434/v1",
}


def get_llm(
    temperature: float | None = None,
    model: str | None = None,
    provider: str | None = None,
    **kwargs: Any,
) -> BaseChatModel:
    """Get LLM instance based on configured provider.

    Args:
        temperature: Override default temperature
        model: Override default model name
        provider: Override default provider
        **kwargs: Additional provider-specific arguments

    Returns:
        Configured LLM instance

    Raises:
        ConfigurationError: If provider is not supported or API key is missing
    """
    from langchain_openai import ChatOpenAI

    settings = get_settings()
    provider = provider or settings.llm_provider
    model_name = model or settings.llm_model
    temp = temperature if temperature is not None else settings.llm_temperature

    api_key = settings.llm_api_key.get_secret_value()
    if not api_key and provider != "ollama":
        raise ConfigurationError(f"LLM_API_KEY is required when using {provider} provider")

    base_url = settings.llm_base_url or PROVIDER_BASE_URLS.get(provider)
    if base_url is None:
        raise ConfigurationError(
            f"Unknown provider '{provider}'. Set LLM_BASE_URL for custom providers."
        )

    llm_kwargs: dict[str, Any] = {
        "model": model_name,
        "temperature": temp,
        "max_tokens": settings.llm_max_tokens,
        "base_url": base_url,
        "api_key": api_key or "ollama",
        **kwargs,
    }

    # Add headers for OpenRouter
    if provider == "openrouter":
        llm_kwargs.setdefault("default_headers", {})
        llm_kwargs["default_headers"]["HTTP-Referer"] = "https://github.com/tappha"
        llm_kwargs["default_headers"]["X-Title"] = "TappHA"

    return ChatOpenAI(**llm_kwargs)


@lru_cache
def get_default_llm() -> BaseChatModel:
    """Get cached default LLM instance."""
    return get_llm()
