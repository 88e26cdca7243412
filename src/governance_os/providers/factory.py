"""Factory for LangChain chat models backing hosted (tier 2) inference.

Uses LangChain's ``init_chat_model`` abstraction for unified provider
instantiation. API keys are resolved from kwargs or the environment before
the unified call.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Any

from governance_os.observability.logging import get_logger
from governance_os.providers.base import ProviderError

if TYPE_CHECKING:
    from langchain_core.language_models import BaseChatModel

log = get_logger(__name__)

# Providers reachable through init_chat_model, with the env var holding their key
_API_KEY_ENV: dict[str, str] = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
}


def create_chat_model(provider_name: str, model: str, **kwargs: Any) -> BaseChatModel:
    """Create a LangChain BaseChatModel for a hosted provider.

    Args:
        provider_name: Provider identifier (anthropic, openai).
        model: Model name/identifier.
        **kwargs: Additional options (temperature, max_tokens, api_key).

    Returns:
        Configured BaseChatModel.

    Raises:
        ProviderError: If the provider is unknown, misconfigured or its
            integration package is not installed.
    """
    provider = provider_name.lower().strip()
    env_var = _API_KEY_ENV.get(provider)
    if env_var is None:
        log.error("provider_unknown", provider=provider)
        raise ProviderError(provider, f"Unknown hosted provider: {provider}")

    kwargs = {k: v for k, v in kwargs.items() if v is not None}
    api_key = kwargs.get("api_key") or os.getenv(env_var)
    if not api_key:
        log.error("provider_config_error", provider=provider, missing=env_var)
        raise ProviderError(provider, f"API key required. Set {env_var} environment variable.")
    kwargs["api_key"] = api_key

    try:
        chat_model = _init_chat_model(provider, model, **kwargs)
    except ImportError as e:
        package = f"langchain-{provider}"
        log.error("provider_import_error", provider=provider, package=package)
        raise ProviderError(provider, f"{package} not installed. Run: pip install {package}") from e

    log.info("chat_model_created", provider=provider, model=model)
    return chat_model


def _init_chat_model(provider: str, model: str, **kwargs: Any) -> BaseChatModel:
    """Call init_chat_model; raises ImportError when the integration is missing."""
    from langchain.chat_models import init_chat_model

    # init_chat_model returns Any, but we know it returns BaseChatModel
    result: BaseChatModel = init_chat_model(model=model, model_provider=provider, **kwargs)
    return result
