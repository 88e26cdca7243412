"""In-process event bus shared by the router, the registry and the pipeline.

Subscribers register for a single event name (or every event with ``None``)
and receive an immutable :class:`Event`. A subscriber that raises is logged
and skipped; publishing never fails because of a consumer.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from governance_os.observability.logging import get_logger

log = get_logger(__name__)


class EventName(StrEnum):
    """Every event name published inside governance-os."""

    # pipeline
    PIPELINE_STARTED = "started"
    STAGE_ENTERED = "stage_entered"
    STAGE_COMPLETED = "stage_completed"
    PIPELINE_BLOCKED = "blocked"
    PIPELINE_COMPLETED = "completed"
    PIPELINE_ERROR = "error"
    # router
    MODEL_SELECTED = "model:selected"
    GENERATION_STARTED = "generation:started"
    GENERATION_COMPLETED = "generation:completed"
    GENERATION_FAILED = "generation:failed"
    QUALITY_CHECKED = "quality:checked"
    QUALITY_FAILED = "quality:failed"
    MODEL_FALLBACK = "model:fallback"
    MODEL_EXHAUSTED = "model:exhausted"
    BUDGET_WARNING = "budget:warning"
    BUDGET_EXCEEDED = "budget:exceeded"
    # registry
    MODEL_REGISTERED = "model:registered"
    MODEL_UNREGISTERED = "model:unregistered"
    STATUS_CHANGED = "status_changed"
    HEALTH_CHECKED = "health:checked"
    HEALTH_DEGRADED = "health:degraded"


@dataclass(frozen=True)
class Event:
    """A published event.

    Attributes:
        name: Event name.
        payload: Event-specific data.
        timestamp: UTC time of publication.
    """

    name: EventName
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


Subscriber = Callable[[Event], object]


@dataclass(frozen=True)
class _Subscription:
    token: int
    name: EventName | None
    callback: Subscriber


class EventBus:
    """Typed observer list with fan-out to every matching subscriber.

    Attributes:
        history: Most recent events, oldest first.
    """

    def __init__(self, history_size: int = 256) -> None:
        self._subscriptions: dict[int, _Subscription] = {}
        self._next_token = 1
        self.history: deque[Event] = deque(maxlen=history_size)

    def subscribe(self, name: EventName | str | None, callback: Subscriber) -> int:
        """Register a callback.

        Args:
            name: Event name to listen for, or None for every event.
            callback: Called with each matching event.

        Returns:
            Token to pass to :meth:`unsubscribe`.

        Raises:
            ValueError: If the name is not a known event.
        """
        event_name = EventName(name) if name is not None else None
        token = self._next_token
        self._next_token += 1
        self._subscriptions[token] = _Subscription(token, event_name, callback)
        return token

    def unsubscribe(self, token: int) -> bool:
        """Remove a subscription. Returns True when the token existed."""
        return self._subscriptions.pop(token, None) is not None

    def emit(self, name: EventName, **payload: Any) -> Event:
        """Publish an event to every matching subscriber.

        Args:
            name: Event name.
            **payload: Event data.

        Returns:
            The published event.
        """
        event = Event(name=name, payload=payload)
        self.history.append(event)
        for subscription in tuple(self._subscriptions.values()):
            if subscription.name is not None and subscription.name != name:
                continue
            try:
                subscription.callback(event)
            except Exception as e:
                log.warning(
                    "event_subscriber_failed",
                    event_name=str(name),
                    subscriber=getattr(subscription.callback, "__qualname__", repr(subscription.callback)),
                    error=str(e),
                )
        return event

    def names(self) -> list[EventName]:
        """Names of the events in history, oldest first."""
        return [event.name for event in self.history]

    @property
    def subscriber_count(self) -> int:
        """Number of active subscriptions."""
        return len(self._subscriptions)
