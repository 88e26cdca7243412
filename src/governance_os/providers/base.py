"""Base protocol and errors for inference providers."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from governance_os.models import EmbeddingBatch, GenerationResult, HealthCheckResult


@runtime_checkable
class InferenceProvider(Protocol):
    """Uniform generate/embed contract every inference backend satisfies.

    A deterministic test double and a live HTTP-backed client are
    interchangeable behind this protocol.
    """

    async def generate(
        self,
        model: str,
        prompt: str,
        *,
        system_prompt: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> GenerationResult:
        """Generate a completion for a prompt.

        Args:
            model: Model identifier.
            prompt: User prompt.
            system_prompt: Optional system prompt.
            max_tokens: Maximum tokens to generate.
            temperature: Sampling temperature.

        Returns:
            GenerationResult with content, usage, latency and cost.

        Raises:
            ProviderError: If the request fails.
        """
        ...

    async def embed(self, model: str, texts: list[str]) -> EmbeddingBatch:
        """Embed a batch of texts.

        Raises:
            ProviderError: If the request fails.
        """
        ...

    async def close(self) -> None:
        """Release any held resources."""
        ...


class HealthCheckProvider(Protocol):
    """Reports whether a model is currently servable."""

    async def check(self, model_id: str) -> HealthCheckResult:
        """Check one model."""
        ...


class ProviderError(Exception):
    """Base exception for provider errors."""

    def __init__(self, provider: str, message: str) -> None:
        self.provider = provider
        super().__init__(f"[{provider}] {message}")


class ProviderConnectionError(ProviderError):
    """Raised when connection to the provider fails."""

    pass


class ProviderRateLimitError(ProviderError):
    """Raised when rate limit is exceeded."""

    pass


class ProviderModelError(ProviderError):
    """Raised when the requested model is unavailable."""

    pass


class ProviderResponseError(ProviderError):
    """Raised when the provider returns a malformed response."""

    pass
