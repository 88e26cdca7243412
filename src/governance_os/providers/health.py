"""Health-check providers for the model registry."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from governance_os.models import HealthCheckResult, ModelStatus
from governance_os.providers.base import ProviderError

if TYPE_CHECKING:
    from collections.abc import Callable

    from governance_os.providers.base import HealthCheckProvider
    from governance_os.providers.ollama import OllamaProvider


class StaticHealthCheckProvider:
    """Reports a fixed status per model (available unless overridden)."""

    def __init__(self, statuses: dict[str, ModelStatus] | None = None) -> None:
        self.statuses = dict(statuses or {})

    async def check(self, model_id: str) -> HealthCheckResult:
        status = self.statuses.get(model_id, ModelStatus.AVAILABLE)
        return HealthCheckResult(
            model_id=model_id,
            status=status,
            latency_ms=0.0,
            error=None if status == ModelStatus.AVAILABLE else f"Status pinned to {status}",
        )


class OllamaHealthCheckProvider:
    """A model is available when the Ollama server lists it in ``/api/tags``."""

    def __init__(self, ollama: OllamaProvider) -> None:
        self._ollama = ollama

    async def check(self, model_id: str) -> HealthCheckResult:
        start = time.perf_counter()
        try:
            names = await self._ollama.list_models()
        except ProviderError as e:
            return HealthCheckResult(model_id=model_id, status=ModelStatus.UNAVAILABLE, error=str(e))
        latency_ms = (time.perf_counter() - start) * 1000

        listed = {name for name in names} | {name.removesuffix(":latest") for name in names}
        if model_id in listed:
            return HealthCheckResult(
                model_id=model_id, status=ModelStatus.AVAILABLE, latency_ms=latency_ms
            )
        return HealthCheckResult(
            model_id=model_id,
            status=ModelStatus.UNAVAILABLE,
            latency_ms=latency_ms,
            error=f"Model '{model_id}' not pulled on {self._ollama.host}",
        )


class CompositeHealthCheckProvider:
    """Dispatch each check to the health provider of the model's backend.

    Args:
        providers: Health providers keyed by provider name.
        resolve: Maps a model id to its provider name, or None if unknown.
        fallback: Used for models whose backend has no dedicated provider.
    """

    def __init__(
        self,
        providers: dict[str, HealthCheckProvider],
        resolve: Callable[[str], str | None],
        fallback: HealthCheckProvider | None = None,
    ) -> None:
        self._providers = dict(providers)
        self._resolve = resolve
        self._fallback = fallback if fallback is not None else StaticHealthCheckProvider()

    async def check(self, model_id: str) -> HealthCheckResult:
        name = self._resolve(model_id)
        provider = self._providers.get(name, self._fallback) if name else self._fallback
        return await provider.check(model_id)
