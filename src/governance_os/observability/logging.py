"""Structured logging for governance-os.

Every module logs through ``get_logger(__name__)`` with event-style keys
(``log.info("stage_completed", run_id=..., stage=...)``). The CLI decides
where records go:

- the console, through rich, filtered by the ``-v`` count;
- optionally a JSONL file (``--log``) that receives every record.

Pipeline runs wrap their work in :func:`log_context` so each record emitted
during a run carries its ``run_id`` without every call site repeating it.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path  # noqa: TC003 - Used at runtime for path operations
from typing import TYPE_CHECKING, Any

import structlog
from rich.console import Console
from rich.logging import RichHandler

if TYPE_CHECKING:
    from structlog.typing import Processor

_CONSOLE_LEVELS = {0: logging.WARNING, 1: logging.INFO}

# Third-party loggers kept at WARNING whatever the verbosity
_QUIET_LOGGERS = ("httpx", "httpcore", "langchain", "langchain_core", "langsmith", "asyncio")

_configured = False
_file_handler: logging.FileHandler | None = None
_log_file: Path | None = None


class JSONLFileHandler(logging.FileHandler):
    """Append each record to the file as one JSON object."""

    def format_entry(self, record: logging.LogRecord) -> dict[str, Any]:
        entry: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
        }
        if not isinstance(record.msg, dict):
            entry["message"] = record.getMessage()
            return entry

        fields = {k: v for k, v in record.msg.items() if k not in ("level", "timestamp")}
        entry["message"] = fields.pop("event", "")
        entry.update(fields)
        return entry

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = json.dumps(self.format_entry(record), default=str)
            if self.stream:
                self.stream.write(line + "\n")
                self.stream.flush()
        except Exception:
            self.handleError(record)


def _console_handler(verbosity: int) -> RichHandler:
    return RichHandler(
        console=Console(stderr=True),
        level=_CONSOLE_LEVELS.get(verbosity, logging.DEBUG),
        rich_tracebacks=True,
        tracebacks_show_locals=verbosity >= 2,
        show_time=verbosity >= 1,
        show_path=verbosity >= 2,
        markup=False,
    )


def _open_log_file(path: Path) -> JSONLFileHandler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = JSONLFileHandler(str(path), mode="a")
    handler.setLevel(logging.DEBUG)
    return handler


def configure_logging(verbosity: int = 0, log_file: Path | None = None) -> None:
    """Route log records to the console and, optionally, a JSONL file.

    Safe to call repeatedly; a previously opened log file is closed first.

    Args:
        verbosity: 0 shows warnings only, 1 adds INFO, 2 or more adds DEBUG.
        log_file: Append every record, whatever ``verbosity``, to this file.
    """
    global _configured, _file_handler, _log_file

    close_file_logging()
    handlers: list[logging.Handler] = [_console_handler(verbosity)]
    if log_file is not None:
        _file_handler = _open_log_file(log_file)
        handlers.append(_file_handler)
    _log_file = log_file

    # The console handler filters by verbosity; the root level is the capture floor
    capture = logging.DEBUG if verbosity > 0 or log_file is not None else logging.WARNING
    logging.basicConfig(level=capture, format="%(message)s", handlers=handlers, force=True)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ]
    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(capture),
        cache_logger_on_first_use=False,
    )
    _configured = True


def get_logger(name: str | None = None) -> structlog.typing.FilteringBoundLogger:
    """Structured logger for ``name``; configures warning-only logging on first use."""
    if not _configured:
        configure_logging()
    logger: structlog.typing.FilteringBoundLogger = structlog.get_logger(name)
    return logger


@contextmanager
def log_context(**values: Any) -> Iterator[None]:
    """Attach ``values`` to every record logged inside the block.

    Bindings live in context variables, so concurrent pipeline runs in
    separate tasks do not see each other's ``run_id``.
    """
    with structlog.contextvars.bound_contextvars(**values):
        yield


def get_log_file() -> Path | None:
    return _log_file


def close_file_logging() -> None:
    """Flush and close the JSONL log file, if one is open."""
    global _file_handler
    if _file_handler is not None:
        _file_handler.close()
        _file_handler = None
