"""Retention of blocked pipeline contexts for later resumption."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from governance_os.models import PipelineContext
from governance_os.observability.logging import get_logger

if TYPE_CHECKING:
    from pathlib import Path

log = get_logger(__name__)


class ContextStore(Protocol):
    """Where the engine keeps contexts of runs that halted ``locked``."""

    def save(self, context: PipelineContext) -> None: ...

    def load(self, context_id: str) -> PipelineContext | None: ...

    def delete(self, context_id: str) -> bool: ...

    def list_ids(self) -> list[str]: ...


class InMemoryContextStore:
    """Dict-backed store; contexts are lost with the process."""

    def __init__(self) -> None:
        self._contexts: dict[str, PipelineContext] = {}

    def save(self, context: PipelineContext) -> None:
        self._contexts[context.id] = context.model_copy(deep=True)

    def load(self, context_id: str) -> PipelineContext | None:
        context = self._contexts.get(context_id)
        return context.model_copy(deep=True) if context is not None else None

    def delete(self, context_id: str) -> bool:
        return self._contexts.pop(context_id, None) is not None

    def list_ids(self) -> list[str]:
        return list(self._contexts)


class FileContextStore:
    """One JSON file per context under ``root``.

    Attributes:
        root: Directory holding ``<context id>.json`` files.
    """

    def __init__(self, root: Path) -> None:
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, context_id: str) -> Path:
        if "/" in context_id or "\\" in context_id or context_id.startswith("."):
            raise ValueError(f"Invalid context id: {context_id!r}")
        return self.root / f"{context_id}.json"

    def save(self, context: PipelineContext) -> None:
        path = self._path(context.id)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(context.model_dump_json(indent=2), encoding="utf-8")
        tmp.replace(path)

    def load(self, context_id: str) -> PipelineContext | None:
        path = self._path(context_id)
        if not path.exists():
            return None
        try:
            return PipelineContext.model_validate_json(path.read_text(encoding="utf-8"))
        except ValueError as e:
            log.error("context_load_failed", context_id=context_id, path=str(path), error=str(e))
            return None

    def delete(self, context_id: str) -> bool:
        path = self._path(context_id)
        if not path.exists():
            return False
        path.unlink()
        return True

    def list_ids(self) -> list[str]:
        return sorted(path.stem for path in self.root.glob("*.json"))
