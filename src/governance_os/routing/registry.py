"""Model registry: catalog CRUD, capability search and health tracking."""

from __future__ import annotations

import asyncio
import contextlib
from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from governance_os.models import (
    Capability,
    HealthCheckResult,
    ModelEntry,
    ModelProvider,
    ModelStatus,
    Tier,
)
from governance_os.observability.events import EventBus, EventName
from governance_os.observability.logging import get_logger
from governance_os.providers.health import StaticHealthCheckProvider
from governance_os.routing.catalog import default_models
from governance_os.routing.store import InMemoryModelStore

if TYPE_CHECKING:
    from governance_os.providers.base import HealthCheckProvider
    from governance_os.routing.store import ModelStore

log = get_logger(__name__)

DEFAULT_HEALTH_CHECK_INTERVAL_SECONDS = 60.0


@dataclass
class ModelCriteria:
    """Search filter for :meth:`ModelRegistry.find_models`.

    ``capabilities`` must all be present; ``languages`` and
    ``specializations`` match when any one is present.
    """

    tier: Tier | None = None
    provider: ModelProvider | None = None
    capabilities: list[Capability] = field(default_factory=list)
    languages: list[str] = field(default_factory=list)
    specializations: list[str] = field(default_factory=list)
    available_only: bool = True

    def matches(self, entry: ModelEntry) -> bool:
        """Whether a catalog entry satisfies every filter."""
        if self.available_only and entry.status != ModelStatus.AVAILABLE:
            return False
        if self.tier is not None and entry.tier != self.tier:
            return False
        if self.provider is not None and entry.provider != self.provider:
            return False
        if not all(cap in entry.capabilities for cap in self.capabilities):
            return False
        if self.languages and not any(lang in entry.languages for lang in self.languages):
            return False
        return not self.specializations or any(
            spec in entry.specializations for spec in self.specializations
        )


class ModelRegistry:
    """Catalog of inference models.

    Entries live behind a :class:`ModelStore` (in-memory by default).
    Health checks go through a pluggable :class:`HealthCheckProvider`; an
    optional periodic sweep runs every check on an interval and is off
    until :meth:`start_health_checks` is called.
    """

    def __init__(
        self,
        store: ModelStore | None = None,
        health_provider: HealthCheckProvider | None = None,
        events: EventBus | None = None,
    ) -> None:
        self._store: ModelStore = store if store is not None else InMemoryModelStore()
        self._health_provider: HealthCheckProvider = (
            health_provider if health_provider is not None else StaticHealthCheckProvider()
        )
        self.events = events if events is not None else EventBus()
        self._sweep_task: asyncio.Task[None] | None = None

    # -- CRUD ------------------------------------------------------------------

    def register(self, entry: ModelEntry) -> None:
        """Add or replace a model (last write wins)."""
        self._store.save(entry)
        log.debug("model_registered", model_id=entry.id, tier=int(entry.tier))
        self.events.emit(EventName.MODEL_REGISTERED, model_id=entry.id)

    def unregister(self, model_id: str) -> bool:
        """Remove a model. Returns False when it was not registered."""
        removed = self._store.delete(model_id)
        if removed:
            self.events.emit(EventName.MODEL_UNREGISTERED, model_id=model_id)
        return removed

    def get(self, model_id: str) -> ModelEntry | None:
        return self._store.get(model_id)

    def get_all(self) -> list[ModelEntry]:
        return self._store.get_all()

    def update_status(self, model_id: str, status: ModelStatus) -> bool:
        """Set a model's status, emitting ``status_changed`` when it changes.

        Returns:
            False when the model is not registered.
        """
        entry = self._store.get(model_id)
        if entry is None:
            return False
        if entry.status != status:
            self._store.update_status(model_id, status)
            self.events.emit(
                EventName.STATUS_CHANGED,
                model_id=model_id,
                previous=str(entry.status),
                status=str(status),
            )
        return True

    def seed_default_models(self) -> int:
        """Register the default catalog. Returns the number of models added."""
        models = default_models()
        for entry in models:
            self.register(entry)
        return len(models)

    # -- Search ----------------------------------------------------------------

    def find_models(self, criteria: ModelCriteria | None = None) -> list[ModelEntry]:
        """Models matching every filter, in registration order."""
        criteria = criteria or ModelCriteria()
        return [entry for entry in self._store.get_all() if criteria.matches(entry)]

    def get_best_model(
        self, criteria: ModelCriteria | None = None, prefer_local: bool = True
    ) -> ModelEntry | None:
        """Best available match: local first (optional), then cheapest, then fastest."""
        criteria = criteria or ModelCriteria()
        candidates = self.find_models(
            ModelCriteria(
                tier=criteria.tier,
                provider=criteria.provider,
                capabilities=criteria.capabilities,
                languages=criteria.languages,
                specializations=criteria.specializations,
                available_only=True,
            )
        )
        if not candidates:
            return None

        def sort_key(entry: ModelEntry) -> tuple[int, float, float]:
            local_rank = 0 if (not prefer_local or entry.tier == Tier.LOCAL) else 1
            return (local_rank, entry.cost_per_1k_tokens, -entry.tokens_per_second)

        return min(candidates, key=sort_key)

    def get_fallback_chain(
        self,
        primary_id: str,
        *,
        same_tier: bool = False,
        same_provider: bool = False,
        same_capabilities: bool = False,
    ) -> list[ModelEntry]:
        """Available alternatives to ``primary_id``, cheapest first.

        Filters relative to the primary apply only when it is registered.
        """
        primary = self._store.get(primary_id)
        candidates = [
            entry
            for entry in self._store.get_all()
            if entry.id != primary_id and entry.status == ModelStatus.AVAILABLE
        ]
        if primary is not None:
            if same_tier:
                candidates = [m for m in candidates if m.tier == primary.tier]
            if same_provider:
                candidates = [m for m in candidates if m.provider == primary.provider]
            if same_capabilities:
                candidates = [
                    m for m in candidates if all(c in m.capabilities for c in primary.capabilities)
                ]
        return sorted(candidates, key=lambda m: m.cost_per_1k_tokens)

    # -- Health ----------------------------------------------------------------

    async def check_health(self, model_id: str) -> HealthCheckResult:
        """Health-check one model and persist the result. Never raises."""
        entry = self._store.get(model_id)
        if entry is None:
            return HealthCheckResult(
                model_id=model_id, status=ModelStatus.UNAVAILABLE, error="Model not found"
            )

        try:
            result = await self._health_provider.check(model_id)
        except Exception as e:
            log.warning("health_check_failed", model_id=model_id, error=str(e))
            result = HealthCheckResult(
                model_id=model_id, status=ModelStatus.UNAVAILABLE, error=str(e)
            )

        self._store.update_health_check(model_id, result)
        self.events.emit(
            EventName.HEALTH_CHECKED,
            model_id=model_id,
            status=str(result.status),
            latency_ms=result.latency_ms,
        )
        if result.status != ModelStatus.AVAILABLE:
            self.events.emit(
                EventName.HEALTH_DEGRADED,
                model_id=model_id,
                status=str(result.status),
                error=result.error,
            )
        if result.status != entry.status:
            self.events.emit(
                EventName.STATUS_CHANGED,
                model_id=model_id,
                previous=str(entry.status),
                status=str(result.status),
            )
        return result

    async def check_all_health(self) -> dict[str, HealthCheckResult]:
        """Health-check every registered model sequentially."""
        results: dict[str, HealthCheckResult] = {}
        for entry in self._store.get_all():
            results[entry.id] = await self.check_health(entry.id)
        return results

    def start_health_checks(
        self, interval_seconds: float = DEFAULT_HEALTH_CHECK_INTERVAL_SECONDS
    ) -> None:
        """Start the periodic sweep on the running event loop (idempotent)."""
        if self._sweep_task is not None and not self._sweep_task.done():
            return
        self._sweep_task = asyncio.get_running_loop().create_task(self._sweep(interval_seconds))
        log.info("health_sweep_started", interval_seconds=interval_seconds)

    async def stop_health_checks(self) -> None:
        """Cancel the periodic sweep, if running."""
        if self._sweep_task is None:
            return
        self._sweep_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._sweep_task
        self._sweep_task = None
        log.info("health_sweep_stopped")

    @property
    def health_checks_running(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    async def _sweep(self, interval_seconds: float) -> None:
        while True:
            await self.check_all_health()
            await asyncio.sleep(interval_seconds)

    # -- Stats -----------------------------------------------------------------

    def stats(self) -> dict[str, Any]:
        """Totals by provider, tier, capability and availability."""
        models = self._store.get_all()
        capabilities: Counter[str] = Counter()
        for entry in models:
            capabilities.update(str(cap) for cap in entry.capabilities)
        return {
            "total_models": len(models),
            "available_models": sum(1 for m in models if m.status == ModelStatus.AVAILABLE),
            "by_provider": dict(Counter(str(m.provider) for m in models)),
            "by_tier": dict(Counter(int(m.tier) for m in models)),
            "by_capability": dict(capabilities),
        }
