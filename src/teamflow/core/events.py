"""Async event bus for decoupled communication between components.

Implements a publish/subscribe pattern that lets observers (metrics,
audit sinks, notifiers) react to committed mutations without coupling
them to the engine.  Events are published only after the originating
transaction has committed.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import defaultdict
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Lifecycle events emitted by the engine."""

    WORKFLOW_CREATED = "workflow.created"
    WORKFLOW_MODIFIED = "workflow.modified"
    CONTRIBUTOR_ENROLLED = "contributor.enrolled"
    CONTRIBUTOR_TIER_ADJUSTED = "contributor.tier_adjusted"
    CONTRIBUTOR_REMOVED = "contributor.removed"
    TASK_SPAWNED = "task.spawned"
    TASK_REVISED = "task.revised"
    TASK_TRANSITIONED = "task.transitioned"
    PREREQUISITE_ESTABLISHED = "prerequisite.established"
    PREREQUISITE_SEVERED = "prerequisite.severed"
    ARTIFACT_ATTACHED = "artifact.attached"
    TIME_LOGGED = "time.logged"
    NOTE_COMPOSED = "note.composed"
    CHECKPOINT_CREATED = "checkpoint.created"
    OPERATION_REJECTED = "operation.rejected"


@dataclass(frozen=True)
class Event:
    """An immutable event carrying contextual payload."""

    event_type: EventType
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


# Subscriber callable type
Subscriber = Callable[[Event], Coroutine[Any, Any, None]]


class EventBus:
    """In-process async event bus.

    Subscribers are invoked concurrently via :func:`asyncio.gather` when
    an event is published.  A failing subscriber does **not** prevent
    other subscribers from executing.
    """

    def __init__(self) -> None:
        self._subscribers: dict[EventType, list[Subscriber]] = defaultdict(list)

    def subscribe(self, event_type: EventType, handler: Subscriber) -> None:
        """Register *handler* for *event_type*."""
        self._subscribers[event_type].append(handler)

    def subscribe_all(self, handler: Subscriber) -> None:
        for event_type in EventType:
            self.subscribe(event_type, handler)

    def unsubscribe(self, event_type: EventType, handler: Subscriber) -> None:
        """Remove a previously registered handler."""
        with contextlib.suppress(ValueError):
            self._subscribers[event_type].remove(handler)

    async def publish(self, event: Event) -> None:
        """Dispatch *event* to all matching subscribers concurrently."""
        handlers = self._subscribers.get(event.event_type, [])
        if not handlers:
            return

        results = await asyncio.gather(*(h(event) for h in handlers), return_exceptions=True)
        for idx, result in enumerate(results):
            if isinstance(result, BaseException):
                logger.error(
                    "Subscriber %s raised %s for event %s",
                    handlers[idx].__qualname__,
                    result,
                    event.event_type.value,
                )
