"""Stage handler type and the registry of default handlers.

Default handlers register via the ``@stage_handler`` decorator when
:mod:`governance_os.pipeline.handlers` is imported. Engines copy the
registry at construction, so per-engine overrides never leak into it.

Usage::

    @stage_handler(PipelineStage.EXECUTION)
    async def execution(ctx, services):
        ...
        return ctx
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from governance_os.models import STAGE_ORDER, PipelineStage

if TYPE_CHECKING:
    from governance_os.models import PipelineContext
    from governance_os.pipeline.services import PipelineServices

StageHandler = Callable[["PipelineContext", "PipelineServices"], Awaitable["PipelineContext"]]

# Handler registry - populated by the handlers module
_HANDLER_REGISTRY: dict[PipelineStage, StageHandler] = {}


def register_handler(stage: PipelineStage | str, handler: StageHandler) -> None:
    """Register the default handler for a stage (replacing any previous one).

    Raises:
        ValueError: If ``stage`` is not one of the nine pipeline stages.
    """
    _HANDLER_REGISTRY[PipelineStage(stage)] = handler


def get_handler(stage: PipelineStage | str) -> StageHandler | None:
    """Default handler for a stage, or None if none is registered."""
    return _HANDLER_REGISTRY.get(PipelineStage(stage))


def list_handlers() -> list[PipelineStage]:
    """Stages with a registered handler, in pipeline order."""
    return [stage for stage in STAGE_ORDER if stage in _HANDLER_REGISTRY]


def default_handlers() -> dict[PipelineStage, StageHandler]:
    """Copy of the registry."""
    return dict(_HANDLER_REGISTRY)


def stage_handler(stage: PipelineStage) -> Callable[[StageHandler], StageHandler]:
    """Decorator registering a function as the default handler for ``stage``."""

    def decorator(fn: StageHandler) -> StageHandler:
        register_handler(stage, fn)
        return fn

    return decorator
