"""Tests for the event bus, structured logging and the generation log."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

import pytest

from governance_os.observability import (
    Event,
    EventBus,
    EventName,
    GenerationLogger,
    close_file_logging,
    configure_logging,
    get_log_file,
    get_logger,
    log_context,
)

if TYPE_CHECKING:
    from pathlib import Path


# --- Event bus ---


def test_subscriber_receives_matching_events_only() -> None:
    bus = EventBus()
    received: list[Event] = []
    bus.subscribe(EventName.STAGE_ENTERED, received.append)

    bus.emit(EventName.STAGE_ENTERED, stage="intake")
    bus.emit(EventName.STAGE_COMPLETED, stage="intake")

    assert [event.payload for event in received] == [{"stage": "intake"}]


def test_wildcard_subscriber_receives_everything() -> None:
    bus = EventBus()
    received: list[EventName] = []
    bus.subscribe(None, lambda event: received.append(event.name))

    bus.emit(EventName.PIPELINE_STARTED)
    bus.emit(EventName.BUDGET_WARNING, percent=80)

    assert received == [EventName.PIPELINE_STARTED, EventName.BUDGET_WARNING]


def test_subscribe_by_string_name() -> None:
    bus = EventBus()
    received: list[Event] = []
    bus.subscribe("model:selected", received.append)

    bus.emit(EventName.MODEL_SELECTED, model="phi4:14b")

    assert len(received) == 1


def test_subscribe_unknown_name_raises() -> None:
    with pytest.raises(ValueError):
        EventBus().subscribe("not-an-event", lambda event: None)


def test_unsubscribe() -> None:
    bus = EventBus()
    received: list[Event] = []
    token = bus.subscribe(None, received.append)

    assert bus.unsubscribe(token) is True
    assert bus.unsubscribe(token) is False
    bus.emit(EventName.PIPELINE_STARTED)

    assert received == []
    assert bus.subscriber_count == 0


def test_raising_subscriber_does_not_block_others() -> None:
    """A failing consumer is skipped; later subscribers still run."""
    bus = EventBus()
    received: list[Event] = []

    def broken(event: Event) -> None:
        raise RuntimeError("consumer bug")

    bus.subscribe(None, broken)
    bus.subscribe(None, received.append)

    event = bus.emit(EventName.PIPELINE_COMPLETED, status="completed")

    assert received == [event]


def test_history_is_bounded() -> None:
    bus = EventBus(history_size=2)
    for stage in ("a", "b", "c"):
        bus.emit(EventName.STAGE_ENTERED, stage=stage)

    assert [event.payload["stage"] for event in bus.history] == ["b", "c"]
    assert bus.names() == [EventName.STAGE_ENTERED, EventName.STAGE_ENTERED]


def test_event_is_immutable() -> None:
    event = EventBus().emit(EventName.PIPELINE_STARTED)

    with pytest.raises(AttributeError):
        event.name = EventName.PIPELINE_ERROR  # type: ignore[misc]
    assert event.timestamp.tzinfo is not None


# --- Logging ---


def test_configure_logging_default_level() -> None:
    configure_logging(verbosity=0)

    assert logging.getLogger().level == logging.WARNING


def test_configure_logging_verbose() -> None:
    configure_logging(verbosity=1)

    # Root stays at DEBUG; the console handler filters
    assert logging.getLogger().level == logging.DEBUG


def test_configure_logging_suppresses_httpx() -> None:
    configure_logging(verbosity=2)

    assert logging.getLogger("httpx").level == logging.WARNING


def test_get_logger_auto_configures() -> None:
    import governance_os.observability.logging as log_module

    log_module._configured = False

    logger = get_logger("test")

    assert log_module._configured is True
    assert hasattr(logger, "info")


def test_file_logging_writes_jsonl(tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "run.jsonl"
    configure_logging(verbosity=0, log_file=log_file)
    try:
        get_logger("governance_os.test").info("stage_completed", stage="intake")
        assert get_log_file() == log_file
    finally:
        close_file_logging()
        configure_logging(verbosity=0)

    lines = [json.loads(line) for line in log_file.read_text().splitlines()]
    entry = next(line for line in lines if line["message"] == "stage_completed")
    assert entry["stage"] == "intake"
    assert entry["level"] == "INFO"
    assert get_log_file() is None


def test_log_context_binds_fields_to_records(tmp_path: Path) -> None:
    log_file = tmp_path / "run.jsonl"
    configure_logging(verbosity=0, log_file=log_file)
    logger = get_logger("governance_os.test")
    try:
        with log_context(run_id="pipe-1"):
            logger.info("inside")
        logger.info("outside")
    finally:
        configure_logging(verbosity=0)

    entries = {
        line["message"]: line for line in map(json.loads, log_file.read_text().splitlines())
    }
    assert entries["inside"]["run_id"] == "pipe-1"
    assert "run_id" not in entries["outside"]


# --- Generation log ---


def test_generation_logger_appends_entries(tmp_path: Path) -> None:
    logger = GenerationLogger(tmp_path)

    entry = logger.create_entry(
        task_id="t1",
        task_type="chatter",
        model="llama3.2:8b",
        attempt=1,
        prompt="hi",
        system_prompt=None,
        content="hello",
        total_tokens=3,
        cost_usd=0.0,
        latency_ms=1.0,
        finish_reason="stop",
    )
    logger.log(entry)

    lines = (tmp_path / "generations.jsonl").read_text().splitlines()
    assert json.loads(lines[0])["model"] == "llama3.2:8b"
    assert logger.read_entries()[0].task_id == "t1"


def test_disabled_generation_logger_writes_nothing(tmp_path: Path) -> None:
    logger = GenerationLogger(tmp_path / "off", enabled=False)

    logger.log(logger.create_entry(task_id="t1", task_type="chatter", model="m", attempt=0, prompt="p"))

    assert not logger.log_path.exists()
    assert logger.read_entries() == []
