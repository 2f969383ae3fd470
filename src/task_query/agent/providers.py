"""Chat model construction for the supported LLM providers."""

from __future__ import annotations

import logging
from typing import Any

from task_query.agent.errors import ConfigurationError
from task_query.config import ProviderSettings

logger = logging.getLogger(__name__)


def create_chat_model(settings: ProviderSettings) -> Any:
    """Build a LangChain chat model for the configured provider.

    OpenRouter, Anthropic and Ollama are reached through their OpenAI-compatible
    endpoints, so one client class covers all four providers.

    Raises:
        ConfigurationError: the provider needs an API key and none is set.
    """
    api_key = settings.resolved_api_key
    if settings.requires_api_key and not api_key:
        raise ConfigurationError(
            f"API key missing for provider '{settings.provider}'. "
            "Set TASK_QUERY_API_KEY (or OPENAI_API_KEY for OpenAI)."
        )

    from langchain_openai import ChatOpenAI

    kwargs: dict[str, Any] = {
        "model": settings.resolved_model,
        "temperature": settings.temperature,
        "timeout": settings.timeout_seconds,
        "max_retries": 0,
        # Ollama ignores the key but the client requires a value.
        "api_key": api_key or "ollama",
    }
    base_url = settings.resolved_base_url
    if base_url:
        kwargs["base_url"] = base_url

    logger.info(f"Using chat model {settings.model_label}")
    return ChatOpenAI(**kwargs)


def create_optional_chat_model(settings: ProviderSettings | None = None) -> Any:
    """Like `create_chat_model` but returns None when credentials are absent."""
    settings = settings or ProviderSettings()
    if settings.requires_api_key and not settings.resolved_api_key:
        logger.info("No LLM credentials configured; using deterministic parsing only")
        return None
    return create_chat_model(settings)
