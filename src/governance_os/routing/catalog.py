"""Default model catalog: local Ollama models (tier 1) and hosted models (tier 2)."""

from __future__ import annotations

from governance_os.models import Capability, ModelEntry, ModelProvider, Tier

_TEXT = Capability.TEXT
_CODE = Capability.CODE
_VISION = Capability.VISION
_EMBED = Capability.EMBEDDING
_RERANK = Capability.RERANK
_FUNCTIONS = Capability.FUNCTIONS

_HOSTED_LANGUAGES = ["en", "ko", "zh", "ja", "fr", "de", "es"]


def _local(
    id: str,
    name: str,
    capabilities: list[Capability],
    context_window: int,
    tokens_per_second: float,
    languages: list[str],
    specializations: list[str],
) -> ModelEntry:
    return ModelEntry(
        id=id,
        name=name,
        provider=ModelProvider.OLLAMA,
        tier=Tier.LOCAL,
        capabilities=capabilities,
        context_window=context_window,
        tokens_per_second=tokens_per_second,
        cost_per_1k_tokens=0.0,
        languages=languages,
        specializations=specializations,
    )


def default_models() -> list[ModelEntry]:
    """Fresh copies of the fourteen-model default catalog."""
    return [
        _local("llama3.2:8b", "Llama 3.2 8B", [_TEXT], 8192, 50, ["en"], ["chatter", "scouting"]),
        _local("phi4:14b", "Phi-4 14B", [_TEXT, _CODE], 16384, 35, ["en"], ["reasoning"]),
        _local(
            "qwen2.5:14b",
            "Qwen 2.5 14B",
            [_TEXT],
            32768,
            30,
            ["en", "ko", "zh"],
            ["debate", "summarization"],
        ),
        _local(
            "qwen2.5:32b",
            "Qwen 2.5 32B",
            [_TEXT, _CODE],
            32768,
            20,
            ["en", "ko", "zh"],
            ["core_decision", "language_specific", "research"],
        ),
        _local("qwen2.5-coder:32b", "Qwen 2.5 Coder 32B", [_TEXT, _CODE], 32768, 20, ["en"], ["coding"]),
        _local(
            "mistral-small-3:24b",
            "Mistral Small 3 24B",
            [_TEXT],
            32768,
            25,
            ["en", "fr"],
            ["debate", "research"],
        ),
        _local(
            "llama3.2-vision:11b", "Llama 3.2 Vision 11B", [_TEXT, _VISION], 8192, 30, ["en"], ["vision"]
        ),
        _local("exaone3.5:32b", "EXAONE 3.5 32B", [_TEXT], 32768, 18, ["en", "ko"], ["language_specific"]),
        _local("nomic-embed-text", "Nomic Embed Text", [_EMBED], 8192, 1000, ["en"], ["embedding"]),
        _local("mxbai-embed-large", "MixedBread Embed Large", [_EMBED], 512, 800, ["en"], ["embedding"]),
        _local(
            "bge-m3",
            "BGE M3",
            [_EMBED],
            8192,
            600,
            ["en", "ko", "zh", "ja"],
            ["embedding", "multilingual"],
        ),
        _local(
            "bge-reranker-v2-m3",
            "BGE Reranker v2 M3",
            [_RERANK],
            512,
            500,
            ["en", "ko", "zh", "ja"],
            ["reranking", "multilingual"],
        ),
        ModelEntry(
            id="claude-sonnet-4-20250514",
            name="Claude Sonnet 4",
            provider=ModelProvider.ANTHROPIC,
            tier=Tier.HOSTED,
            capabilities=[_TEXT, _CODE, _VISION, _FUNCTIONS],
            context_window=200_000,
            tokens_per_second=100,
            cost_per_1k_tokens=0.003,
            languages=list(_HOSTED_LANGUAGES),
            specializations=["complex_analysis", "critical"],
        ),
        ModelEntry(
            id="gpt-4o",
            name="GPT-4o",
            provider=ModelProvider.OPENAI,
            tier=Tier.HOSTED,
            capabilities=[_TEXT, _CODE, _VISION, _FUNCTIONS],
            context_window=128_000,
            tokens_per_second=80,
            cost_per_1k_tokens=0.005,
            languages=list(_HOSTED_LANGUAGES),
            specializations=["complex_analysis", "critical"],
        ),
    ]
