"""Provider that dispatches each call to the backend serving the model."""

from __future__ import annotations

from typing import TYPE_CHECKING

from governance_os.providers.base import ProviderModelError

if TYPE_CHECKING:
    from collections.abc import Callable

    from governance_os.models import EmbeddingBatch, GenerationResult
    from governance_os.providers.base import InferenceProvider


class CompositeProvider:
    """Route generate/embed calls by provider name.

    Args:
        providers: Backends keyed by provider name (ollama, anthropic, ...).
        resolve: Maps a model id to its provider name, or None if unknown.
        default: Provider name used when ``resolve`` returns None.
    """

    name = "composite"

    def __init__(
        self,
        providers: dict[str, InferenceProvider],
        resolve: Callable[[str], str | None],
        default: str | None = None,
    ) -> None:
        self._providers = dict(providers)
        self._resolve = resolve
        self._default = default

    def provider_for(self, model: str) -> InferenceProvider:
        """Backend responsible for a model.

        Raises:
            ProviderModelError: If no backend serves the model.
        """
        name = self._resolve(model) or self._default
        if name is None or name not in self._providers:
            raise ProviderModelError(name or "unknown", f"No provider configured for '{model}'")
        return self._providers[name]

    async def generate(
        self,
        model: str,
        prompt: str,
        *,
        system_prompt: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> GenerationResult:
        return await self.provider_for(model).generate(
            model,
            prompt,
            system_prompt=system_prompt,
            max_tokens=max_tokens,
            temperature=temperature,
        )

    async def embed(self, model: str, texts: list[str]) -> EmbeddingBatch:
        return await self.provider_for(model).embed(model, texts)

    async def close(self) -> None:
        for provider in self._providers.values():
            await provider.close()
