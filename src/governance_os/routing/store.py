"""Storage interface for the model registry."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from governance_os.models import (
        Capability,
        HealthCheckResult,
        ModelEntry,
        ModelProvider,
        ModelStatus,
        Tier,
    )


class ModelStore(Protocol):
    """Backing store for :class:`ModelEntry` records.

    Writes are last-write-wins per model id; implementations never merge.
    """

    def save(self, entry: ModelEntry) -> None: ...

    def get(self, model_id: str) -> ModelEntry | None: ...

    def get_all(self) -> list[ModelEntry]: ...

    def get_by_provider(self, provider: ModelProvider) -> list[ModelEntry]: ...

    def get_by_tier(self, tier: Tier) -> list[ModelEntry]: ...

    def get_by_capability(self, capability: Capability) -> list[ModelEntry]: ...

    def update_status(self, model_id: str, status: ModelStatus) -> None: ...

    def update_health_check(self, model_id: str, result: HealthCheckResult) -> None: ...

    def delete(self, model_id: str) -> bool: ...


class InMemoryModelStore:
    """Dict-backed :class:`ModelStore`. Entries are copied in and out."""

    def __init__(self) -> None:
        self._models: dict[str, ModelEntry] = {}

    def save(self, entry: ModelEntry) -> None:
        self._models[entry.id] = entry.model_copy(deep=True)

    def get(self, model_id: str) -> ModelEntry | None:
        entry = self._models.get(model_id)
        return entry.model_copy(deep=True) if entry is not None else None

    def get_all(self) -> list[ModelEntry]:
        return [entry.model_copy(deep=True) for entry in self._models.values()]

    def get_by_provider(self, provider: ModelProvider) -> list[ModelEntry]:
        return [m for m in self.get_all() if m.provider == provider]

    def get_by_tier(self, tier: Tier) -> list[ModelEntry]:
        return [m for m in self.get_all() if m.tier == tier]

    def get_by_capability(self, capability: Capability) -> list[ModelEntry]:
        return [m for m in self.get_all() if capability in m.capabilities]

    def update_status(self, model_id: str, status: ModelStatus) -> None:
        entry = self._models.get(model_id)
        if entry is not None:
            self._models[model_id] = entry.model_copy(update={"status": status})

    def update_health_check(self, model_id: str, result: HealthCheckResult) -> None:
        entry = self._models.get(model_id)
        if entry is None:
            return
        update: dict[str, object] = {
            "status": result.status,
            "last_health_check": result.checked_at,
        }
        if result.tokens_per_second is not None:
            update["tokens_per_second"] = result.tokens_per_second
        self._models[model_id] = entry.model_copy(update=update)

    def delete(self, model_id: str) -> bool:
        return self._models.pop(model_id, None) is not None

    def __len__(self) -> int:
        return len(self._models)
