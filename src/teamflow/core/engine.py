"""Orchestration engine — the public call surface.

Ties together the workflow registry, membership manager, task graph,
task ledger, checkpoint store and query facade on top of a
transactional :class:`KeyValueStore`.

Every mutating call follows the same shape:

1. open one serialized store transaction;
2. resolve the workflow, authorize the caller, validate and stage the
   mutation through the owning component;
3. commit (or discard everything if any step raised);
4. publish a domain event on the :class:`EventBus` once the lock is
   released.

Rejected calls are logged at WARNING, published as
``operation.rejected`` and re-raised unchanged.  Reads bypass
authorization and never publish events.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from teamflow.core.checkpoint import CheckpointStore
from teamflow.core.errors import OrchestrationError
from teamflow.core.events import Event, EventBus, EventType
from teamflow.core.ledger import TaskLedgerBook
from teamflow.core.membership import MembershipManager
from teamflow.core.queries import QueryFacade
from teamflow.core.registry import WorkflowRegistry
from teamflow.core.task_graph import TaskFields, TaskGraph
from teamflow.observability.logging import OperationLogContext

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from teamflow.core.models import (
        Checkpoint,
        Contributor,
        Principal,
        Task,
        TaskLedger,
        Tier,
        Workflow,
    )
    from teamflow.observability import PrometheusMetrics
    from teamflow.storage.base import KeyValueStore, Transaction

logger = logging.getLogger(__name__)


@dataclass
class _Call:
    """Bookkeeping for one public operation."""

    operation: str
    context: dict[str, Any]
    started: float = field(default_factory=time.perf_counter)
    txn: Transaction | None = None

    @property
    def elapsed(self) -> float:
        return time.perf_counter() - self.started


class OrchestrationEngine:
    """Authorized, atomic operations over workflows, contributors, tasks,
    prerequisites, ledgers and checkpoints.

    The engine holds no state of its own beyond its collaborators; all
    records live in the store.  Callers are opaque principals that have
    already been authenticated upstream.
    """

    def __init__(
        self,
        store: KeyValueStore,
        event_bus: EventBus | None = None,
        metrics: PrometheusMetrics | None = None,
    ) -> None:
        self._store = store
        self._event_bus = event_bus or EventBus()
        self._metrics = metrics
        if metrics is not None:
            metrics.attach(self._event_bus)
        self._registry = WorkflowRegistry()
        self._membership = MembershipManager()
        self._tasks = TaskGraph(self._registry, self._membership)
        self._ledger = TaskLedgerBook(self._tasks, self._membership)
        self._checkpoints = CheckpointStore(self._registry, self._membership)
        self._queries = QueryFacade(
            self._registry, self._membership, self._tasks, self._ledger, self._checkpoints
        )

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    @property
    def store(self) -> KeyValueStore:
        return self._store

    @property
    def metrics(self) -> PrometheusMetrics | None:
        return self._metrics

    # ------------------------------------------------------------------
    # Workflow registry
    # ------------------------------------------------------------------

    async def create_workflow(
        self,
        title: str,
        description: str,
        budget_floor: int,
        budget_ceiling: int,
        total_budget: int,
        *,
        caller: Principal,
    ) -> int:
        """Create a workflow owned by *caller* and return its id."""
        async with self._atomic("create_workflow", principal=caller) as call:
            workflow = await self._registry.create(
                call.txn,
                title=title,
                description=description,
                budget_floor=budget_floor,
                budget_ceiling=budget_ceiling,
                total_budget=total_budget,
                creator=caller,
            )
        await self._publish(call, EventType.WORKFLOW_CREATED, workflow_id=workflow.id)
        return workflow.id

    async def modify_workflow(
        self,
        workflow_id: int,
        title: str,
        description: str,
        required_tier: int,
        budget_floor: int,
        budget_ceiling: int,
        total_budget: int,
        *,
        caller: Principal,
    ) -> Workflow:
        async with self._atomic("modify_workflow", workflow_id=workflow_id, principal=caller) as call:
            workflow = await self._registry.modify(
                call.txn,
                self._membership,
                workflow_id,
                title=title,
                description=description,
                required_tier=required_tier,
                budget_floor=budget_floor,
                budget_ceiling=budget_ceiling,
                total_budget=total_budget,
                caller=caller,
            )
        await self._publish(call, EventType.WORKFLOW_MODIFIED)
        return workflow

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    async def enroll_contributor(
        self, workflow_id: int, principal: Principal, tier: int, *, caller: Principal
    ) -> Contributor:
        async with self._atomic("enroll_contributor", workflow_id=workflow_id, principal=caller) as call:
            workflow = await self._registry.require(call.txn, workflow_id)
            contributor = await self._membership.enroll(call.txn, workflow, principal, tier, caller)
        await self._publish(
            call, EventType.CONTRIBUTOR_ENROLLED, member=principal, tier=int(contributor.tier)
        )
        return contributor

    async def adjust_contributor_tier(
        self, workflow_id: int, principal: Principal, new_tier: int, *, caller: Principal
    ) -> Contributor:
        async with self._atomic(
            "adjust_contributor_tier", workflow_id=workflow_id, principal=caller
        ) as call:
            workflow = await self._registry.require(call.txn, workflow_id)
            contributor = await self._membership.adjust(call.txn, workflow, principal, new_tier, caller)
        await self._publish(
            call, EventType.CONTRIBUTOR_TIER_ADJUSTED, member=principal, tier=int(contributor.tier)
        )
        return contributor

    async def remove_contributor(
        self, workflow_id: int, principal: Principal, *, caller: Principal
    ) -> None:
        async with self._atomic("remove_contributor", workflow_id=workflow_id, principal=caller) as call:
            workflow = await self._registry.require(call.txn, workflow_id)
            await self._membership.remove(call.txn, workflow, principal, caller)
        await self._publish(call, EventType.CONTRIBUTOR_REMOVED, member=principal)

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def spawn_task(
        self,
        workflow_id: int,
        title: str,
        description: str,
        assignee: Principal | None = None,
        priority: int = 0,
        estimated_hours: int = 0,
        scheduled_start: int = 0,
        scheduled_end: int = 0,
        parent: int | None = None,
        *,
        caller: Principal,
    ) -> int:
        """Create a task in state ``CREATED`` and return its per-workflow id."""
        fields = TaskFields(
            title=title,
            description=description,
            assignee=assignee,
            priority=priority,
            estimated_hours=estimated_hours,
            scheduled_start=scheduled_start,
            scheduled_end=scheduled_end,
            parent=parent,
        )
        async with self._atomic("spawn_task", workflow_id=workflow_id, principal=caller) as call:
            workflow = await self._registry.require(call.txn, workflow_id)
            task = await self._tasks.spawn(call.txn, workflow, fields, caller)
        await self._publish(call, EventType.TASK_SPAWNED, task_id=task.id)
        return task.id

    async def revise_task(
        self,
        workflow_id: int,
        task_id: int,
        title: str,
        description: str,
        assignee: Principal | None = None,
        priority: int = 0,
        estimated_hours: int = 0,
        scheduled_start: int = 0,
        scheduled_end: int = 0,
        parent: int | None = None,
        *,
        caller: Principal,
    ) -> Task:
        """Overwrite a task's editable fields; its lifecycle state is kept."""
        fields = TaskFields(
            title=title,
            description=description,
            assignee=assignee,
            priority=priority,
            estimated_hours=estimated_hours,
            scheduled_start=scheduled_start,
            scheduled_end=scheduled_end,
            parent=parent,
        )
        async with self._atomic(
            "revise_task", workflow_id=workflow_id, task_id=task_id, principal=caller
        ) as call:
            workflow = await self._registry.require(call.txn, workflow_id)
            task = await self._tasks.revise(call.txn, workflow, task_id, fields, caller)
        await self._publish(call, EventType.TASK_REVISED)
        return task

    async def transition_task_state(
        self, workflow_id: int, task_id: int, target_state: int, *, caller: Principal
    ) -> Task:
        async with self._atomic(
            "transition_task_state", workflow_id=workflow_id, task_id=task_id, principal=caller
        ) as call:
            workflow = await self._registry.require(call.txn, workflow_id)
            task = await self._tasks.transition(call.txn, workflow, task_id, target_state, caller)
        await self._publish(call, EventType.TASK_TRANSITIONED, state=int(task.state))
        return task

    # ------------------------------------------------------------------
    # Prerequisites
    # ------------------------------------------------------------------

    async def establish_prerequisite(
        self, workflow_id: int, dependent_id: int, prerequisite_id: int, *, caller: Principal
    ) -> None:
        """Record that *dependent_id* waits on *prerequisite_id*."""
        async with self._atomic(
            "establish_prerequisite", workflow_id=workflow_id, task_id=dependent_id, principal=caller
        ) as call:
            workflow = await self._registry.require(call.txn, workflow_id)
            await self._tasks.establish_prerequisite(
                call.txn, workflow, dependent_id, prerequisite_id, caller
            )
        await self._publish(call, EventType.PREREQUISITE_ESTABLISHED, prerequisite_id=prerequisite_id)

    async def sever_prerequisite(
        self, workflow_id: int, dependent_id: int, prerequisite_id: int, *, caller: Principal
    ) -> None:
        async with self._atomic(
            "sever_prerequisite", workflow_id=workflow_id, task_id=dependent_id, principal=caller
        ) as call:
            workflow = await self._registry.require(call.txn, workflow_id)
            await self._tasks.sever_prerequisite(
                call.txn, workflow, dependent_id, prerequisite_id, caller
            )
        await self._publish(call, EventType.PREREQUISITE_SEVERED, prerequisite_id=prerequisite_id)

    # ------------------------------------------------------------------
    # Task ledger
    # ------------------------------------------------------------------

    async def attach_work_artifact(
        self, workflow_id: int, task_id: int, content_hash: bytes, *, caller: Principal
    ) -> int:
        """Append a 32-byte content hash; return the task's artifact count."""
        async with self._atomic(
            "attach_work_artifact", workflow_id=workflow_id, task_id=task_id, principal=caller
        ) as call:
            workflow = await self._registry.require(call.txn, workflow_id)
            count = await self._ledger.attach_artifact(call.txn, workflow, task_id, content_hash, caller)
        await self._publish(call, EventType.ARTIFACT_ATTACHED, artifact_count=count)
        return count

    async def log_task_time(
        self, workflow_id: int, task_id: int, hours: int, note: str = "", *, caller: Principal
    ) -> int:
        """Append a time entry; return the task's cumulative hours."""
        async with self._atomic(
            "log_task_time", workflow_id=workflow_id, task_id=task_id, principal=caller
        ) as call:
            workflow = await self._registry.require(call.txn, workflow_id)
            total = await self._ledger.log_time(call.txn, workflow, task_id, hours, note, caller)
        await self._publish(call, EventType.TIME_LOGGED, hours=hours, total_hours=total)
        return total

    async def compose_task_note(
        self, workflow_id: int, task_id: int, text: str, *, caller: Principal
    ) -> int:
        async with self._atomic(
            "compose_task_note", workflow_id=workflow_id, task_id=task_id, principal=caller
        ) as call:
            workflow = await self._registry.require(call.txn, workflow_id)
            count = await self._ledger.compose_note(call.txn, workflow, task_id, text, caller)
        await self._publish(call, EventType.NOTE_COMPOSED, note_count=count)
        return count

    # ------------------------------------------------------------------
    # Checkpoints
    # ------------------------------------------------------------------

    async def create_checkpoint(
        self,
        workflow_id: int,
        title: str,
        description: str,
        target_height: int,
        budget_allocation: int,
        *,
        caller: Principal,
    ) -> int:
        async with self._atomic("create_checkpoint", workflow_id=workflow_id, principal=caller) as call:
            workflow = await self._registry.require(call.txn, workflow_id)
            checkpoint = await self._checkpoints.create(
                call.txn,
                workflow,
                title=title,
                description=description,
                target_height=target_height,
                budget_allocation=budget_allocation,
                caller=caller,
            )
        await self._publish(call, EventType.CHECKPOINT_CREATED, checkpoint_id=checkpoint.id)
        return checkpoint.id

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def query_workflow(self, workflow_id: int) -> Workflow | None:
        async with self._store.transaction() as txn:
            return await self._queries.query_workflow(txn, workflow_id)

    async def query_task(self, workflow_id: int, task_id: int) -> Task:
        async with self._store.transaction() as txn:
            return await self._queries.query_task(txn, workflow_id, task_id)

    async def has_team_access(self, workflow_id: int, principal: Principal) -> bool:
        async with self._store.transaction() as txn:
            return await self._queries.has_team_access(txn, workflow_id, principal)

    async def query_permission_tier(self, workflow_id: int, principal: Principal) -> Tier | None:
        async with self._store.transaction() as txn:
            return await self._queries.query_permission_tier(txn, workflow_id, principal)

    async def query_checkpoint(self, workflow_id: int, checkpoint_id: int) -> Checkpoint | None:
        async with self._store.transaction() as txn:
            return await self._queries.query_checkpoint(txn, workflow_id, checkpoint_id)

    async def list_contributors(self, workflow_id: int) -> list[Contributor]:
        async with self._store.transaction() as txn:
            return await self._queries.list_contributors(txn, workflow_id)

    async def list_tasks(self, workflow_id: int) -> list[Task]:
        async with self._store.transaction() as txn:
            return await self._queries.list_tasks(txn, workflow_id)

    async def list_prerequisites(self, workflow_id: int, task_id: int) -> list[int]:
        async with self._store.transaction() as txn:
            return await self._queries.list_prerequisites(txn, workflow_id, task_id)

    async def list_dependents(self, workflow_id: int, task_id: int) -> list[int]:
        async with self._store.transaction() as txn:
            return await self._queries.list_dependents(txn, workflow_id, task_id)

    async def execution_order(self, workflow_id: int) -> list[int]:
        async with self._store.transaction() as txn:
            return await self._queries.execution_order(txn, workflow_id)

    async def ready_tasks(self, workflow_id: int) -> list[int]:
        async with self._store.transaction() as txn:
            return await self._queries.ready_tasks(txn, workflow_id)

    async def query_task_ledger(self, workflow_id: int, task_id: int) -> TaskLedger:
        async with self._store.transaction() as txn:
            return await self._queries.query_task_ledger(txn, workflow_id, task_id)

    async def list_checkpoints(self, workflow_id: int) -> list[Checkpoint]:
        async with self._store.transaction() as txn:
            return await self._queries.list_checkpoints(txn, workflow_id)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _atomic(self, operation: str, **context: Any) -> AsyncIterator[_Call]:
        """Run one operation inside a single store transaction.

        Staged writes are committed when the block exits cleanly and
        discarded when it raises.  Rejections are reported after the
        transaction lock has been released.
        """
        call = _Call(operation=operation, context=context)
        with OperationLogContext(operation=operation, **context):
            try:
                async with self._store.transaction() as txn:
                    call.txn = txn
                    yield call
            except OrchestrationError as exc:
                logger.warning("%s rejected (%s): %s", operation, exc.code, exc)
                await self._event_bus.publish(
                    Event(
                        EventType.OPERATION_REJECTED,
                        {
                            "operation": operation,
                            "code": exc.code,
                            "error": str(exc),
                            "duration_seconds": call.elapsed,
                            **context,
                        },
                    )
                )
                raise

    async def _publish(self, call: _Call, event_type: EventType, **payload: Any) -> None:
        await self._event_bus.publish(
            Event(
                event_type,
                {
                    "operation": call.operation,
                    **call.context,
                    **payload,
                    "duration_seconds": call.elapsed,
                },
            )
        )
