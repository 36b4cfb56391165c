"""Task graph — task records, lifecycle transitions and prerequisite edges.

Edges are stored one key per ``(workflow, dependent, prerequisite)``
triple.  Before an edge is inserted the workflow's edge set is loaded
into a :class:`DependencyGraph` and searched for a path from the
dependent back to the prerequisite; only that workflow's subgraph is
ever traversed.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING

from teamflow.core.errors import (
    CyclicDependencyError,
    DuplicatePrerequisiteError,
    InvalidParameterError,
    NotFoundError,
    SelfReferenceError,
    UnauthorizedError,
)
from teamflow.core.models import (
    DependencyGraph,
    Principal,
    Task,
    TaskState,
    Tier,
    Workflow,
    build,
)
from teamflow.core.state_machine import validate_transition

if TYPE_CHECKING:
    from teamflow.core.membership import MembershipManager
    from teamflow.core.registry import WorkflowRegistry
    from teamflow.storage.base import Transaction

logger = logging.getLogger(__name__)


def task_key(workflow_id: int, task_id: int) -> str:
    return f"task:{workflow_id}:{task_id}"


def task_prefix(workflow_id: int) -> str:
    return f"task:{workflow_id}:"


def edge_key(workflow_id: int, dependent_id: int, prerequisite_id: int) -> str:
    return f"edge:{workflow_id}:{dependent_id}:{prerequisite_id}"


def edge_prefix(workflow_id: int) -> str:
    return f"edge:{workflow_id}:"


@dataclass(frozen=True)
class TaskFields:
    """Caller-supplied, mutable fields shared by spawn and revise."""

    title: str
    description: str
    assignee: Principal | None = None
    priority: int = 0
    estimated_hours: int = 0
    scheduled_start: int = 0
    scheduled_end: int = 0
    parent: int | None = None


class TaskGraph:
    """Owns task records, the lifecycle state machine and the edge set."""

    def __init__(self, registry: WorkflowRegistry, membership: MembershipManager) -> None:
        self._registry = registry
        self._membership = membership

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get(self, txn: Transaction, workflow_id: int, task_id: int) -> Task | None:
        raw = await txn.get(task_key(workflow_id, task_id))
        return Task.model_validate(raw) if raw is not None else None

    async def require(self, txn: Transaction, workflow_id: int, task_id: int) -> Task:
        task = await self.get(txn, workflow_id, task_id)
        if task is None:
            raise NotFoundError(f"Task {task_id} not found in workflow {workflow_id}")
        return task

    async def list_tasks(self, txn: Transaction, workflow_id: int) -> list[Task]:
        raw = await txn.scan(task_prefix(workflow_id))
        return sorted((Task.model_validate(v) for v in raw.values()), key=lambda t: t.id)

    async def load_graph(self, txn: Transaction, workflow_id: int) -> DependencyGraph:
        """Build the workflow's dependency graph from its stored edges."""
        edges = await txn.scan(edge_prefix(workflow_id))
        return DependencyGraph.from_edges(
            (edge["prerequisite"], edge["dependent"]) for edge in edges.values()
        )

    # ------------------------------------------------------------------
    # Task records
    # ------------------------------------------------------------------

    async def spawn(
        self, txn: Transaction, workflow: Workflow, fields: TaskFields, caller: Principal
    ) -> Task:
        await self._membership.require_access(txn, workflow, caller)
        self._check_schedule(fields)
        if fields.parent is not None:
            await self.require(txn, workflow.id, fields.parent)

        task = build(
            Task,
            workflow_id=workflow.id,
            id=workflow.next_task_id,
            state=TaskState.CREATED,
            **asdict(fields),
        )
        txn.put(task_key(workflow.id, task.id), task.model_dump(mode="json"))
        self._registry.save(
            txn, workflow.model_copy(update={"next_task_id": workflow.next_task_id + 1})
        )
        logger.info("Task %d spawned in workflow %d by %s", task.id, workflow.id, caller)
        return task

    async def revise(
        self,
        txn: Transaction,
        workflow: Workflow,
        task_id: int,
        fields: TaskFields,
        caller: Principal,
    ) -> Task:
        await self._membership.require_access(txn, workflow, caller)
        current = await self.require(txn, workflow.id, task_id)
        self._check_schedule(fields)
        if fields.parent is not None:
            await self._check_parent_chain(txn, workflow.id, task_id, fields.parent)

        revised = build(
            Task,
            workflow_id=workflow.id,
            id=task_id,
            state=current.state,
            **asdict(fields),
        )
        txn.put(task_key(workflow.id, task_id), revised.model_dump(mode="json"))
        logger.info("Task %d revised in workflow %d by %s", task_id, workflow.id, caller)
        return revised

    async def transition(
        self,
        txn: Transaction,
        workflow: Workflow,
        task_id: int,
        target_state: int,
        caller: Principal,
    ) -> Task:
        """Advance a task one lifecycle step.

        Allowed for managers/owners, or for the task's assignee provided
        they are still a member of the workflow.
        """
        task = await self.require(txn, workflow.id, task_id)
        tier = await self._membership.require_access(txn, workflow, caller)
        if tier > Tier.MANAGER and task.assignee != caller:
            raise UnauthorizedError(caller, workflow.id, f"neither manager nor assignee of task {task_id}")

        target = validate_transition(task.state, target_state, task_id)

        updated = task.model_copy(update={"state": target})
        txn.put(task_key(workflow.id, task_id), updated.model_dump(mode="json"))
        logger.info(
            "Task %d in workflow %d moved %s -> %s by %s",
            task_id,
            workflow.id,
            task.state.name,
            target.name,
            caller,
        )
        return updated

    # ------------------------------------------------------------------
    # Prerequisite edges
    # ------------------------------------------------------------------

    async def establish_prerequisite(
        self,
        txn: Transaction,
        workflow: Workflow,
        dependent_id: int,
        prerequisite_id: int,
        caller: Principal,
    ) -> None:
        await self._membership.require_access(txn, workflow, caller)
        await self.require(txn, workflow.id, dependent_id)
        await self.require(txn, workflow.id, prerequisite_id)
        if dependent_id == prerequisite_id:
            raise SelfReferenceError(f"Task {dependent_id} cannot be its own prerequisite")

        key = edge_key(workflow.id, dependent_id, prerequisite_id)
        if await txn.exists(key):
            raise DuplicatePrerequisiteError(
                f"Task {prerequisite_id} is already a prerequisite of task {dependent_id}"
            )

        graph = await self.load_graph(txn, workflow.id)
        if graph.would_create_cycle(prerequisite_id, dependent_id):
            raise CyclicDependencyError(
                f"Making task {prerequisite_id} a prerequisite of task {dependent_id} "
                f"would create a cycle in workflow {workflow.id}"
            )

        txn.put(key, {"dependent": dependent_id, "prerequisite": prerequisite_id})
        logger.info(
            "Task %d now depends on task %d in workflow %d",
            dependent_id,
            prerequisite_id,
            workflow.id,
        )

    async def sever_prerequisite(
        self,
        txn: Transaction,
        workflow: Workflow,
        dependent_id: int,
        prerequisite_id: int,
        caller: Principal,
    ) -> None:
        await self._membership.require_access(txn, workflow, caller)
        key = edge_key(workflow.id, dependent_id, prerequisite_id)
        if not await txn.exists(key):
            raise NotFoundError(
                f"Task {prerequisite_id} is not a prerequisite of task {dependent_id} "
                f"in workflow {workflow.id}"
            )
        txn.delete(key)
        logger.info(
            "Task %d no longer depends on task %d in workflow %d",
            dependent_id,
            prerequisite_id,
            workflow.id,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _check_schedule(fields: TaskFields) -> None:
        if fields.scheduled_start > fields.scheduled_end:
            raise InvalidParameterError(
                f"Scheduled start {fields.scheduled_start} is after scheduled end {fields.scheduled_end}"
            )

    async def _check_parent_chain(
        self, txn: Transaction, workflow_id: int, task_id: int, parent_id: int
    ) -> None:
        if parent_id == task_id:
            raise SelfReferenceError(f"Task {task_id} cannot be its own parent")
        seen: set[int] = set()
        cursor: int | None = parent_id
        while cursor is not None and cursor not in seen:
            seen.add(cursor)
            ancestor = await self.require(txn, workflow_id, cursor)
            if ancestor.parent == task_id:
                raise CyclicDependencyError(
                    f"Parent {parent_id} of task {task_id} descends from task {task_id}"
                )
            cursor = ancestor.parent
