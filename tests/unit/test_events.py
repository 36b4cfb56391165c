"""Unit tests for the event bus and engine event publication."""

from __future__ import annotations

import pytest

from teamflow.core.engine import OrchestrationEngine
from teamflow.core.errors import UnauthorizedError
from teamflow.core.events import Event, EventBus, EventType

OWNER = "alice"
OUTSIDER = "mallory"


class TestEventBus:
    @pytest.mark.asyncio
    async def test_publish_delivers_to_subscribers(self) -> None:
        bus = EventBus()
        received: list[Event] = []

        async def handler(event: Event) -> None:
            received.append(event)

        bus.subscribe(EventType.TASK_SPAWNED, handler)
        await bus.publish(Event(EventType.TASK_SPAWNED, {"task_id": 1}))

        assert len(received) == 1
        assert received[0].payload["task_id"] == 1

    @pytest.mark.asyncio
    async def test_no_cross_delivery(self) -> None:
        bus = EventBus()
        received: list[Event] = []

        async def handler(event: Event) -> None:
            received.append(event)

        bus.subscribe(EventType.TASK_SPAWNED, handler)
        await bus.publish(Event(EventType.TASK_REVISED))

        assert len(received) == 0

    @pytest.mark.asyncio
    async def test_unsubscribe(self) -> None:
        bus = EventBus()
        received: list[Event] = []

        async def handler(event: Event) -> None:
            received.append(event)

        bus.subscribe(EventType.TASK_SPAWNED, handler)
        bus.unsubscribe(EventType.TASK_SPAWNED, handler)
        bus.unsubscribe(EventType.TASK_SPAWNED, handler)
        await bus.publish(Event(EventType.TASK_SPAWNED))

        assert len(received) == 0

    @pytest.mark.asyncio
    async def test_failing_subscriber_does_not_block_others(self) -> None:
        bus = EventBus()
        ok_received: list[Event] = []

        async def bad_handler(_event: Event) -> None:
            raise RuntimeError("subscriber crash")

        async def ok_handler(event: Event) -> None:
            ok_received.append(event)

        bus.subscribe(EventType.TASK_SPAWNED, bad_handler)
        bus.subscribe(EventType.TASK_SPAWNED, ok_handler)
        await bus.publish(Event(EventType.TASK_SPAWNED))

        assert len(ok_received) == 1


class TestEngineEvents:
    @pytest.mark.asyncio
    async def test_committed_operations_publish(
        self, engine: OrchestrationEngine, event_bus: EventBus
    ) -> None:
        received: list[Event] = []

        async def handler(event: Event) -> None:
            received.append(event)

        event_bus.subscribe_all(handler)
        wf_id = await engine.create_workflow("Q4 Plan", "desc", 1, 2, 3, caller=OWNER)
        task_id = await engine.spawn_task(wf_id, "T1", "", caller=OWNER)

        assert [e.event_type for e in received] == [EventType.WORKFLOW_CREATED, EventType.TASK_SPAWNED]
        created, spawned = (e.payload for e in received)
        assert created["operation"] == "create_workflow"
        assert created["workflow_id"] == wf_id
        assert created["principal"] == OWNER
        assert created["duration_seconds"] >= 0
        assert spawned["task_id"] == task_id

    @pytest.mark.asyncio
    async def test_rejection_is_published(
        self, engine: OrchestrationEngine, event_bus: EventBus
    ) -> None:
        rejected: list[Event] = []

        async def handler(event: Event) -> None:
            rejected.append(event)

        event_bus.subscribe(EventType.OPERATION_REJECTED, handler)
        wf_id = await engine.create_workflow("Q4 Plan", "desc", 1, 2, 3, caller=OWNER)
        with pytest.raises(UnauthorizedError):
            await engine.spawn_task(wf_id, "T1", "", caller=OUTSIDER)

        assert len(rejected) == 1
        assert rejected[0].payload["operation"] == "spawn_task"
        assert rejected[0].payload["code"] == "unauthorized"
        assert rejected[0].payload["principal"] == OUTSIDER

    @pytest.mark.asyncio
    async def test_failing_subscriber_does_not_fail_operation(
        self, engine: OrchestrationEngine, event_bus: EventBus
    ) -> None:
        async def bad_handler(_event: Event) -> None:
            raise RuntimeError("audit sink offline")

        event_bus.subscribe(EventType.WORKFLOW_CREATED, bad_handler)
        wf_id = await engine.create_workflow("Q4 Plan", "desc", 1, 2, 3, caller=OWNER)
        assert await engine.query_workflow(wf_id) is not None

    @pytest.mark.asyncio
    async def test_subscriber_sees_committed_state(
        self, engine: OrchestrationEngine, event_bus: EventBus
    ) -> None:
        seen: list[str] = []

        async def handler(event: Event) -> None:
            task = await engine.query_task(event.payload["workflow_id"], event.payload["task_id"])
            seen.append(task.title)

        event_bus.subscribe(EventType.TASK_SPAWNED, handler)
        wf_id = await engine.create_workflow("Q4 Plan", "desc", 1, 2, 3, caller=OWNER)
        await engine.spawn_task(wf_id, "Visible", "", caller=OWNER)
        assert seen == ["Visible"]
