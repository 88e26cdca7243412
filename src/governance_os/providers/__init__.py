"""Inference providers: Ollama over HTTP, hosted models via LangChain, test doubles."""

from governance_os.providers.base import (
    HealthCheckProvider,
    InferenceProvider,
    ProviderConnectionError,
    ProviderError,
    ProviderModelError,
    ProviderRateLimitError,
    ProviderResponseError,
)
from governance_os.providers.composite import CompositeProvider
from governance_os.providers.factory import create_chat_model
from governance_os.providers.health import (
    CompositeHealthCheckProvider,
    OllamaHealthCheckProvider,
    StaticHealthCheckProvider,
)
from governance_os.providers.langchain_provider import LangChainProvider
from governance_os.providers.mock import MockCall, MockProvider, hash_embedding
from governance_os.providers.ollama import OllamaProvider

__all__ = [
    "CompositeHealthCheckProvider",
    "CompositeProvider",
    "HealthCheckProvider",
    "InferenceProvider",
    "LangChainProvider",
    "MockCall",
    "MockProvider",
    "OllamaHealthCheckProvider",
    "OllamaProvider",
    "ProviderConnectionError",
    "ProviderError",
    "ProviderModelError",
    "ProviderRateLimitError",
    "ProviderResponseError",
    "StaticHealthCheckProvider",
    "create_chat_model",
    "hash_embedding",
]
