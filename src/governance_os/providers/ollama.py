"""Ollama inference provider implementation."""

from __future__ import annotations

import asyncio
import os
import time
from typing import Any

import httpx

from governance_os.models import EmbeddingBatch, GenerationResult, TokenUsage
from governance_os.observability.logging import get_logger
from governance_os.providers.base import (
    ProviderConnectionError,
    ProviderError,
    ProviderModelError,
    ProviderRateLimitError,
    ProviderResponseError,
)

log = get_logger(__name__)

DEFAULT_HOST = "http://localhost:11434"

# Generation defaults sent as Ollama "options"
DEFAULT_OPTIONS: dict[str, Any] = {
    "num_predict": 2048,
    "temperature": 0.7,
    "top_p": 0.9,
    "top_k": 40,
}
DEFAULT_KEEP_ALIVE = "5m"


class OllamaProvider:
    """Ollama inference provider.

    Uses the Ollama HTTP API for generation and embeddings. The server must
    be running locally or at the configured host. Connection failures are
    retried with exponential backoff before surfacing as
    :class:`ProviderConnectionError`.

    Attributes:
        host: Ollama server URL.
        max_retries: Attempts per request on connection errors.
    """

    name = "ollama"

    def __init__(
        self,
        host: str | None = None,
        timeout: float = 300.0,
        max_retries: int = 3,
        retry_base_seconds: float = 1.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the Ollama provider.

        Args:
            host: Ollama server URL. Defaults to OLLAMA_HOST env var
                or http://localhost:11434.
            timeout: Request timeout in seconds.
            max_retries: Attempts per request on connection errors.
            retry_base_seconds: Backoff base; delay is min(base * 2^attempt, 10).
            client: Optional preconfigured client (tests pass a MockTransport).
        """
        self.host = (host or os.getenv("OLLAMA_HOST") or DEFAULT_HOST).rstrip("/")
        self.max_retries = max_retries
        self._retry_base = retry_base_seconds
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def generate(
        self,
        model: str,
        prompt: str,
        *,
        system_prompt: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> GenerationResult:
        """Generate a completion.

        Uses ``/api/chat`` when a system prompt is given, ``/api/generate``
        otherwise.

        Raises:
            ProviderConnectionError: If connection to Ollama fails.
            ProviderModelError: If the model is not pulled.
            ProviderResponseError: If the response is not valid JSON.
            ProviderError: For other API errors.
        """
        options = dict(DEFAULT_OPTIONS)
        if max_tokens is not None:
            options["num_predict"] = max_tokens
        if temperature is not None:
            options["temperature"] = temperature

        payload: dict[str, Any] = {
            "model": model,
            "stream": False,
            "options": options,
            "keep_alive": DEFAULT_KEEP_ALIVE,
        }
        if system_prompt:
            path = "/api/chat"
            payload["messages"] = [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": prompt},
            ]
        else:
            path = "/api/generate"
            payload["prompt"] = prompt

        start = time.perf_counter()
        data = await self._post(path, payload, model)
        latency_ms = (time.perf_counter() - start) * 1000

        if path == "/api/chat":
            content = data.get("message", {}).get("content", "")
        else:
            content = data.get("response", "")

        prompt_tokens = data.get("prompt_eval_count", 0)
        completion_tokens = data.get("eval_count", 0)
        done_reason = data.get("done_reason", "unknown")
        finish_reason = "stop" if done_reason == "stop" or data.get("done", False) else done_reason

        return GenerationResult(
            content=content,
            model=model,
            provider=self.name,
            usage=TokenUsage(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens),
            latency_ms=latency_ms,
            cost_usd=0.0,
            finish_reason=finish_reason,
        )

    async def embed(self, model: str, texts: list[str]) -> EmbeddingBatch:
        """Embed texts through ``/api/embed``."""
        start = time.perf_counter()
        data = await self._post("/api/embed", {"model": model, "input": texts}, model)
        embeddings = data.get("embeddings")
        if not isinstance(embeddings, list) or len(embeddings) != len(texts):
            raise ProviderResponseError(
                self.name, f"Expected {len(texts)} embeddings, got {type(embeddings).__name__}"
            )
        return EmbeddingBatch(
            embeddings=embeddings,
            prompt_tokens=data.get("prompt_eval_count", 0),
            latency_ms=(time.perf_counter() - start) * 1000,
        )

    async def list_models(self) -> list[str]:
        """List models pulled on the Ollama server.

        Raises:
            ProviderConnectionError: If connection to Ollama fails.
            ProviderError: For other API errors.
        """
        try:
            response = await self._client.get(f"{self.host}/api/tags")
        except httpx.ConnectError as e:
            raise ProviderConnectionError(
                self.name, f"Failed to connect to Ollama at {self.host}: {e}"
            ) from e

        if response.status_code != 200:
            raise ProviderError(
                self.name, f"API error (status {response.status_code}): {response.text}"
            )
        try:
            data = response.json()
        except ValueError as e:
            raise ProviderResponseError(self.name, f"Invalid JSON response: {e}") from e

        return [m.get("name", "") for m in data.get("models", []) if m.get("name")]

    async def is_healthy(self) -> bool:
        """Whether the server answers ``/api/tags``."""
        try:
            await self.list_models()
        except ProviderError:
            return False
        return True

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> OllamaProvider:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()

    async def _post(self, path: str, payload: dict[str, Any], model: str) -> dict[str, Any]:
        url = f"{self.host}{path}"
        last_error: Exception | None = None

        for attempt in range(self.max_retries):
            try:
                response = await self._client.post(url, json=payload)
            except (httpx.ConnectError, httpx.TimeoutException) as e:
                last_error = e
                delay = min(self._retry_base * 2**attempt, 10.0)
                log.debug(
                    "ollama_retry",
                    path=path,
                    attempt=attempt + 1,
                    delay=delay,
                    error=str(e),
                )
                if attempt + 1 < self.max_retries:
                    await asyncio.sleep(delay)
                continue

            if response.status_code == 404:
                raise ProviderModelError(
                    self.name, f"Model '{model}' not found. Run 'ollama pull {model}' first."
                )
            if response.status_code == 429:
                raise ProviderRateLimitError(self.name, "Rate limit exceeded")
            if response.status_code != 200:
                raise ProviderError(
                    self.name, f"API error (status {response.status_code}): {response.text}"
                )
            try:
                data: dict[str, Any] = response.json()
            except ValueError as e:
                raise ProviderResponseError(self.name, f"Invalid JSON response: {e}") from e
            return data

        raise ProviderConnectionError(
            self.name,
            f"Failed to reach Ollama at {self.host} after {self.max_retries} attempts: {last_error}",
        )
