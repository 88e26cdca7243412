"""Deterministic in-process provider for tests and offline runs."""

from __future__ import annotations

import asyncio
import hashlib
import math
from dataclasses import dataclass, field

from governance_os.models import EmbeddingBatch, GenerationResult, TokenUsage
from governance_os.providers.base import ProviderError


@dataclass
class MockCall:
    """One recorded generate() call."""

    model: str
    prompt: str
    system_prompt: str | None = None
    max_tokens: int | None = None
    temperature: float | None = None


@dataclass
class MockProvider:
    """Provider double with scripted responses and failures.

    Responses are a pure function of (model, prompt) unless overridden in
    ``responses``. Models in ``failing_models`` always raise; models in
    ``fail_times`` raise that many times before succeeding.

    Attributes:
        calls: Every generate() call, in order.
        embed_calls: Every embed() call as (model, texts).
    """

    responses: dict[str, str] = field(default_factory=dict)
    failing_models: set[str] = field(default_factory=set)
    fail_times: dict[str, int] = field(default_factory=dict)
    cost_per_1k_tokens: dict[str, float] = field(default_factory=dict)
    delay_seconds: float = 0.0
    dimensions: int = 16
    name: str = "mock"
    calls: list[MockCall] = field(default_factory=list)
    embed_calls: list[tuple[str, list[str]]] = field(default_factory=list)

    async def generate(
        self,
        model: str,
        prompt: str,
        *,
        system_prompt: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> GenerationResult:
        self.calls.append(MockCall(model, prompt, system_prompt, max_tokens, temperature))
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)

        if model in self.failing_models:
            raise ProviderError(self.name, f"Scripted failure for '{model}'")
        remaining = self.fail_times.get(model, 0)
        if remaining > 0:
            self.fail_times[model] = remaining - 1
            raise ProviderError(self.name, f"Scripted transient failure for '{model}'")

        content = self.responses.get(model) or _default_response(model, prompt)
        prompt_tokens = math.ceil(len(prompt + (system_prompt or "")) / 4)
        completion_tokens = math.ceil(len(content) / 4)
        total = prompt_tokens + completion_tokens
        return GenerationResult(
            content=content,
            model=model,
            provider=self.name,
            usage=TokenUsage(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens),
            latency_ms=1.0,
            cost_usd=self.cost_per_1k_tokens.get(model, 0.0) * total / 1000,
            finish_reason="stop",
        )

    async def embed(self, model: str, texts: list[str]) -> EmbeddingBatch:
        self.embed_calls.append((model, list(texts)))
        if model in self.failing_models:
            raise ProviderError(self.name, f"Scripted failure for '{model}'")
        return EmbeddingBatch(
            embeddings=[hash_embedding(f"{model}:{text}", self.dimensions) for text in texts],
            prompt_tokens=sum(math.ceil(len(text) / 4) for text in texts),
            latency_ms=1.0,
        )

    async def close(self) -> None:
        return None


def hash_embedding(text: str, dimensions: int) -> list[float]:
    """Deterministic unit vector derived from the sha256 of ``text``."""
    values: list[float] = []
    counter = 0
    while len(values) < dimensions:
        digest = hashlib.sha256(f"{counter}:{text}".encode()).digest()
        values.extend((byte - 127.5) / 127.5 for byte in digest)
        counter += 1
    vector = values[:dimensions]
    norm = math.sqrt(sum(v * v for v in vector)) or 1.0
    return [v / norm for v in vector]


def _default_response(model: str, prompt: str) -> str:
    first_line = prompt.strip().splitlines()[0] if prompt.strip() else "(empty prompt)"
    return (
        f"# Response from {model}\n"
        "\n"
        f"Request: {first_line[:160]}\n"
        "\n"
        "- Assessment: the request was processed by the deterministic mock backend.\n"
        f"- Prompt length: {len(prompt)} characters.\n"
        "- Recommendation: proceed with the standard review process."
    )
