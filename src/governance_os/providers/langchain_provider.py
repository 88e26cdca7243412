"""Hosted inference through LangChain chat models."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from langchain_core.messages import HumanMessage, SystemMessage

from governance_os.models import EmbeddingBatch, GenerationResult, TokenUsage
from governance_os.observability.logging import get_logger
from governance_os.providers.base import (
    ProviderConnectionError,
    ProviderError,
    ProviderModelError,
    ProviderRateLimitError,
)
from governance_os.providers.factory import create_chat_model

if TYPE_CHECKING:
    from langchain_core.language_models import BaseChatModel
    from langchain_core.messages import BaseMessage

log = get_logger(__name__)

ChatModelFactory = Callable[..., "BaseChatModel"]


class LangChainProvider:
    """Inference provider for one hosted backend (anthropic or openai).

    Chat models are created lazily through :func:`create_chat_model` and
    cached per (model, temperature, max_tokens).

    Attributes:
        name: Provider name reported on results.
    """

    def __init__(
        self,
        provider_name: str,
        *,
        cost_per_1k_tokens: dict[str, float] | None = None,
        model_factory: ChatModelFactory | None = None,
        **model_kwargs: Any,
    ) -> None:
        """Initialize the provider.

        Args:
            provider_name: Hosted provider (anthropic, openai).
            cost_per_1k_tokens: Optional price table used to fill ``cost_usd``.
            model_factory: Override for :func:`create_chat_model` (tests).
            **model_kwargs: Extra kwargs forwarded to the chat model.
        """
        self.name = provider_name
        self._prices = dict(cost_per_1k_tokens or {})
        self._factory = model_factory or create_chat_model
        self._model_kwargs = model_kwargs
        self._models: dict[tuple[str, float | None, int | None], BaseChatModel] = {}

    def _chat_model(
        self, model: str, temperature: float | None, max_tokens: int | None
    ) -> BaseChatModel:
        key = (model, temperature, max_tokens)
        if key not in self._models:
            self._models[key] = self._factory(
                self.name,
                model,
                temperature=temperature,
                max_tokens=max_tokens,
                **self._model_kwargs,
            )
        return self._models[key]

    async def generate(
        self,
        model: str,
        prompt: str,
        *,
        system_prompt: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> GenerationResult:
        """Generate a completion through the hosted chat model.

        Raises:
            ProviderError: If the model cannot be created or the call fails.
        """
        chat_model = self._chat_model(model, temperature, max_tokens)
        messages: list[BaseMessage] = []
        if system_prompt:
            messages.append(SystemMessage(content=system_prompt))
        messages.append(HumanMessage(content=prompt))

        start = time.perf_counter()
        try:
            response = await chat_model.ainvoke(messages)
        except ProviderError:
            raise
        except Exception as e:
            raise _wrap_exception(self.name, e) from e
        latency_ms = (time.perf_counter() - start) * 1000

        usage_metadata = getattr(response, "usage_metadata", None) or {}
        usage = TokenUsage(
            prompt_tokens=usage_metadata.get("input_tokens", 0),
            completion_tokens=usage_metadata.get("output_tokens", 0),
            total_tokens=usage_metadata.get("total_tokens", 0),
        )
        response_metadata = getattr(response, "response_metadata", None) or {}
        finish_reason = (
            response_metadata.get("finish_reason") or response_metadata.get("stop_reason") or "stop"
        )
        cost = self._prices.get(model, 0.0) * usage.total_tokens / 1000

        content = response.content if isinstance(response.content, str) else str(response.content)
        return GenerationResult(
            content=content,
            model=model,
            provider=self.name,
            usage=usage,
            latency_ms=latency_ms,
            cost_usd=cost,
            finish_reason=finish_reason,
        )

    async def embed(self, model: str, texts: list[str]) -> EmbeddingBatch:
        """Hosted embeddings are not routed through this provider."""
        raise ProviderModelError(self.name, f"Embeddings not supported for model '{model}'")

    async def close(self) -> None:
        """Drop cached chat models."""
        self._models.clear()


def _wrap_exception(provider: str, error: Exception) -> ProviderError:
    """Map an SDK exception onto the provider error hierarchy by its message."""
    message = str(error)
    lowered = message.lower()
    if "rate limit" in lowered or "429" in lowered:
        return ProviderRateLimitError(provider, message)
    if "connect" in lowered or "timeout" in lowered or "timed out" in lowered:
        return ProviderConnectionError(provider, message)
    if "not found" in lowered or "404" in lowered:
        return ProviderModelError(provider, message)
    log.debug("provider_call_failed", provider=provider, error=message)
    return ProviderError(provider, message)
