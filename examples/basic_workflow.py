"""Example: a small release workflow run through the TeamFlow engine.

Demonstrates enrolling a team, spawning tasks with prerequisites,
walking a task through its lifecycle, logging time, and reacting to
engine events.
"""

import asyncio
import hashlib
import logging

from teamflow.core.engine import OrchestrationEngine
from teamflow.core.errors import CyclicDependencyError, UnauthorizedError
from teamflow.core.events import Event, EventBus
from teamflow.core.models import TaskState
from teamflow.observability import PrometheusMetrics
from teamflow.storage.memory import InMemoryKeyValueStore

logging.basicConfig(level=logging.INFO, format="%(asctime)s  %(message)s")
log = logging.getLogger(__name__)


# ── Event listener ───────────────────────────────────────────────────


async def on_event(event: Event) -> None:
    log.info("Event: %s  %s", event.event_type.value, event.payload)


# ── Main ─────────────────────────────────────────────────────────────


async def main() -> None:
    bus = EventBus()
    bus.subscribe_all(on_event)
    metrics = PrometheusMetrics()
    engine = OrchestrationEngine(InMemoryKeyValueStore(), event_bus=bus, metrics=metrics)

    wf = await engine.create_workflow("Q4 Plan", "Quarterly release", 100, 500, 1_000_000, caller="alice")
    await engine.enroll_contributor(wf, "bob", 2, caller="alice")
    await engine.enroll_contributor(wf, "carol", 3, caller="alice")

    design = await engine.spawn_task(wf, "Design", "Agree the API", assignee="bob", caller="alice")
    build = await engine.spawn_task(wf, "Build", "Implement it", assignee="carol", caller="bob")
    await engine.establish_prerequisite(wf, build, design, caller="bob")

    try:
        await engine.establish_prerequisite(wf, design, build, caller="bob")
    except CyclicDependencyError as exc:
        log.info("Rejected: %s", exc)

    try:
        await engine.modify_workflow(wf, "Hijacked", "", 2, 0, 1, 1, caller="carol")
    except UnauthorizedError as exc:
        log.info("Rejected: %s", exc)

    for state in (TaskState.ACTIVE, TaskState.REVIEW, TaskState.DONE):
        await engine.transition_task_state(wf, design, state, caller="bob")
    await engine.log_task_time(wf, design, 8, "whiteboard session", caller="bob")
    await engine.attach_work_artifact(wf, design, hashlib.sha256(b"api-v1.md").digest(), caller="bob")

    await engine.create_checkpoint(wf, "Design frozen", "", 1200, 150, caller="alice")

    print("\n── Execution order ────────────────────────────")
    for task_id in await engine.execution_order(wf):
        task = await engine.query_task(wf, task_id)
        print(f"  {task.id}: {task.title:<8} {task.state.name}")
    print(f"\nReady now: {await engine.ready_tasks(wf)}")
    print("\n── Metrics ────────────────────────────────────")
    print(metrics.export())


if __name__ == "__main__":
    asyncio.run(main())
