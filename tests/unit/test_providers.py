"""Tests for the Ollama, LangChain, composite and health-check providers."""

from __future__ import annotations

import json
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from governance_os.models import ModelStatus
from governance_os.providers import (
    CompositeHealthCheckProvider,
    CompositeProvider,
    LangChainProvider,
    MockProvider,
    OllamaHealthCheckProvider,
    OllamaProvider,
    ProviderConnectionError,
    ProviderError,
    ProviderModelError,
    ProviderRateLimitError,
    ProviderResponseError,
    StaticHealthCheckProvider,
    create_chat_model,
)

HOST = "http://ollama.test:11434"


def _ollama(handler: Any, **kwargs: Any) -> OllamaProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return OllamaProvider(host=HOST, client=client, retry_base_seconds=0, **kwargs)


class TestOllamaProvider:
    @pytest.mark.asyncio()
    async def test_generate_without_system_prompt_uses_generate_endpoint(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "response": "Hello",
                    "prompt_eval_count": 7,
                    "eval_count": 3,
                    "done": True,
                },
            )

        provider = _ollama(handler)
        result = await provider.generate("llama3.2:8b", "hi", max_tokens=64)

        assert seen[0].url.path == "/api/generate"
        body = json.loads(seen[0].content)
        assert body["prompt"] == "hi"
        assert body["stream"] is False
        assert body["options"]["num_predict"] == 64
        assert result.content == "Hello"
        assert result.usage.prompt_tokens == 7
        assert result.usage.completion_tokens == 3
        assert result.cost_usd == 0.0
        assert result.finish_reason == "stop"
        assert result.provider == "ollama"

    @pytest.mark.asyncio()
    async def test_generate_with_system_prompt_uses_chat_endpoint(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200, json={"message": {"role": "assistant", "content": "Hi"}, "done": True}
            )

        provider = _ollama(handler)
        result = await provider.generate("llama3.2:8b", "hi", system_prompt="be brief")

        assert seen[0].url.path == "/api/chat"
        messages = json.loads(seen[0].content)["messages"]
        assert [m["role"] for m in messages] == ["system", "user"]
        assert result.content == "Hi"

    @pytest.mark.asyncio()
    async def test_embed(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            texts = json.loads(request.content)["input"]
            return httpx.Response(
                200,
                json={"embeddings": [[0.1, 0.2] for _ in texts], "prompt_eval_count": 4},
            )

        provider = _ollama(handler)
        batch = await provider.embed("nomic-embed-text", ["a", "b"])

        assert batch.embeddings == [[0.1, 0.2], [0.1, 0.2]]
        assert batch.prompt_tokens == 4

    @pytest.mark.asyncio()
    async def test_embed_count_mismatch(self) -> None:
        provider = _ollama(lambda request: httpx.Response(200, json={"embeddings": [[0.1]]}))

        with pytest.raises(ProviderResponseError):
            await provider.embed("nomic-embed-text", ["a", "b"])

    @pytest.mark.asyncio()
    async def test_missing_model_raises_model_error(self) -> None:
        provider = _ollama(lambda request: httpx.Response(404, json={"error": "not found"}))

        with pytest.raises(ProviderModelError, match="ollama pull"):
            await provider.generate("missing:1b", "hi")

    @pytest.mark.asyncio()
    async def test_rate_limit(self) -> None:
        provider = _ollama(lambda request: httpx.Response(429))

        with pytest.raises(ProviderRateLimitError):
            await provider.generate("llama3.2:8b", "hi")

    @pytest.mark.asyncio()
    async def test_server_error(self) -> None:
        provider = _ollama(lambda request: httpx.Response(500, text="boom"))

        with pytest.raises(ProviderError, match="status 500"):
            await provider.generate("llama3.2:8b", "hi")

    @pytest.mark.asyncio()
    async def test_invalid_json(self) -> None:
        provider = _ollama(lambda request: httpx.Response(200, text="not json"))

        with pytest.raises(ProviderResponseError):
            await provider.generate("llama3.2:8b", "hi")

    @pytest.mark.asyncio()
    async def test_connection_errors_are_retried_then_raised(self) -> None:
        attempts: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(1)
            raise httpx.ConnectError("refused", request=request)

        provider = _ollama(handler, max_retries=3)

        with pytest.raises(ProviderConnectionError, match="after 3 attempts"):
            await provider.generate("llama3.2:8b", "hi")
        assert len(attempts) == 3

    @pytest.mark.asyncio()
    async def test_transient_connection_error_recovers(self) -> None:
        attempts: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(1)
            if len(attempts) == 1:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, json={"response": "ok", "done": True})

        provider = _ollama(handler)
        result = await provider.generate("llama3.2:8b", "hi")

        assert result.content == "ok"
        assert len(attempts) == 2

    @pytest.mark.asyncio()
    async def test_list_models_and_health(self) -> None:
        provider = _ollama(
            lambda request: httpx.Response(
                200, json={"models": [{"name": "llama3.2:8b"}, {"name": "bge-m3:latest"}]}
            )
        )

        assert await provider.list_models() == ["llama3.2:8b", "bge-m3:latest"]
        assert await provider.is_healthy() is True

    @pytest.mark.asyncio()
    async def test_unreachable_server_is_unhealthy(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        provider = _ollama(handler)

        assert await provider.is_healthy() is False

    def test_host_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("OLLAMA_HOST", "http://gpu-box:11434/")

        provider = OllamaProvider()

        assert provider.host == "http://gpu-box:11434"


def _chat_response(
    content: str = "ok",
    usage: dict[str, int] | None = None,
    metadata: dict[str, str] | None = None,
) -> MagicMock:
    response = MagicMock()
    response.content = content
    response.usage_metadata = usage or {}
    response.response_metadata = metadata or {}
    return response


class TestLangChainProvider:
    @pytest.mark.asyncio()
    async def test_generate_maps_usage_and_cost(self) -> None:
        response = _chat_response(
            "Decision packet",
            usage={"input_tokens": 600, "output_tokens": 400, "total_tokens": 1000},
            metadata={"stop_reason": "end_turn"},
        )
        chat_model = MagicMock()
        chat_model.ainvoke = AsyncMock(return_value=response)
        factory = MagicMock(return_value=chat_model)

        provider = LangChainProvider(
            "anthropic",
            cost_per_1k_tokens={"claude-sonnet-4-20250514": 0.015},
            model_factory=factory,
        )
        result = await provider.generate(
            "claude-sonnet-4-20250514", "Decide", system_prompt="You are careful"
        )

        assert result.content == "Decision packet"
        assert result.usage.total_tokens == 1000
        assert result.cost_usd == pytest.approx(0.015)
        assert result.finish_reason == "end_turn"
        messages = chat_model.ainvoke.await_args.args[0]
        assert len(messages) == 2
        factory.assert_called_once()

    @pytest.mark.asyncio()
    async def test_chat_models_are_cached(self) -> None:
        chat_model = MagicMock()
        chat_model.ainvoke = AsyncMock(return_value=_chat_response())
        factory = MagicMock(return_value=chat_model)
        provider = LangChainProvider("openai", model_factory=factory)

        await provider.generate("gpt-4o", "a")
        await provider.generate("gpt-4o", "b")

        assert factory.call_count == 1

    @pytest.mark.asyncio()
    @pytest.mark.parametrize(
        ("message", "error_type"),
        [
            ("Rate limit reached (429)", ProviderRateLimitError),
            ("Connection timed out", ProviderConnectionError),
            ("model not found", ProviderModelError),
            ("something else", ProviderError),
        ],
    )
    async def test_sdk_exceptions_are_wrapped(
        self, message: str, error_type: type[ProviderError]
    ) -> None:
        chat_model = MagicMock()
        chat_model.ainvoke = AsyncMock(side_effect=RuntimeError(message))
        provider = LangChainProvider("openai", model_factory=MagicMock(return_value=chat_model))

        with pytest.raises(error_type):
            await provider.generate("gpt-4o", "hi")

    @pytest.mark.asyncio()
    async def test_embed_not_supported(self) -> None:
        provider = LangChainProvider("anthropic", model_factory=MagicMock())

        with pytest.raises(ProviderModelError):
            await provider.embed("claude-sonnet-4-20250514", ["x"])


class TestCreateChatModel:
    def test_unknown_provider(self) -> None:
        with pytest.raises(ProviderError, match="Unknown hosted provider"):
            create_chat_model("acme", "model-x")

    def test_missing_api_key(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)

        with pytest.raises(ProviderError, match="ANTHROPIC_API_KEY"):
            create_chat_model("anthropic", "claude-sonnet-4-20250514")


class TestCompositeProvider:
    @pytest.mark.asyncio()
    async def test_dispatches_by_resolved_provider(self) -> None:
        local = MockProvider(name="ollama")
        hosted = MockProvider(name="anthropic")
        routes = {"claude": "anthropic"}
        composite = CompositeProvider(
            {"ollama": local, "anthropic": hosted}, routes.get, default="ollama"
        )

        await composite.generate("claude", "x")
        await composite.generate("llama", "y")

        assert [call.model for call in hosted.calls] == ["claude"]
        assert [call.model for call in local.calls] == ["llama"]

    @pytest.mark.asyncio()
    async def test_unknown_model_without_default(self) -> None:
        composite = CompositeProvider({"ollama": MockProvider()}, lambda model: None)

        with pytest.raises(ProviderModelError):
            await composite.generate("mystery", "x")


class TestHealthProviders:
    @pytest.mark.asyncio()
    async def test_static_provider(self) -> None:
        provider = StaticHealthCheckProvider({"a": ModelStatus.DEGRADED})

        assert (await provider.check("a")).status == ModelStatus.DEGRADED
        assert (await provider.check("b")).status == ModelStatus.AVAILABLE

    @pytest.mark.asyncio()
    async def test_ollama_health_matches_latest_tag(self) -> None:
        ollama = _ollama(
            lambda request: httpx.Response(200, json={"models": [{"name": "bge-m3:latest"}]})
        )
        health = OllamaHealthCheckProvider(ollama)

        assert (await health.check("bge-m3")).status == ModelStatus.AVAILABLE
        missing = await health.check("phi4:14b")
        assert missing.status == ModelStatus.UNAVAILABLE
        assert "not pulled" in (missing.error or "")

    @pytest.mark.asyncio()
    async def test_ollama_health_server_down(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        health = OllamaHealthCheckProvider(_ollama(handler))

        result = await health.check("llama3.2:8b")

        assert result.status == ModelStatus.UNAVAILABLE
        assert result.error

    @pytest.mark.asyncio()
    async def test_composite_health_falls_back_for_hosted_models(self) -> None:
        local = StaticHealthCheckProvider({"llama": ModelStatus.UNAVAILABLE})
        routes = {"llama": "ollama", "claude": "anthropic"}
        health = CompositeHealthCheckProvider({"ollama": local}, routes.get)

        assert (await health.check("llama")).status == ModelStatus.UNAVAILABLE
        assert (await health.check("claude")).status == ModelStatus.AVAILABLE
        assert (await health.check("unknown")).status == ModelStatus.AVAILABLE
