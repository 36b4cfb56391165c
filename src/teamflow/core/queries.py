"""Read-only projections over registry, roster, task graph, ledger and checkpoints.

None of these perform authorization.  ``query_workflow`` and
``query_checkpoint`` report absence as ``None``; everything scoped to a
workflow or task raises :class:`NotFoundError` when the scope is missing.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from teamflow.core.models import (
    Checkpoint,
    Contributor,
    Principal,
    Task,
    TaskLedger,
    Tier,
    Workflow,
)
from teamflow.core.state_machine import is_terminal

if TYPE_CHECKING:
    from teamflow.core.checkpoint import CheckpointStore
    from teamflow.core.ledger import TaskLedgerBook
    from teamflow.core.membership import MembershipManager
    from teamflow.core.registry import WorkflowRegistry
    from teamflow.core.task_graph import TaskGraph
    from teamflow.storage.base import Transaction


class QueryFacade:
    def __init__(
        self,
        registry: WorkflowRegistry,
        membership: MembershipManager,
        tasks: TaskGraph,
        ledger: TaskLedgerBook,
        checkpoints: CheckpointStore,
    ) -> None:
        self._registry = registry
        self._membership = membership
        self._tasks = tasks
        self._ledger = ledger
        self._checkpoints = checkpoints

    async def query_workflow(self, txn: Transaction, workflow_id: int) -> Workflow | None:
        return await self._registry.get(txn, workflow_id)

    async def query_task(self, txn: Transaction, workflow_id: int, task_id: int) -> Task:
        await self._registry.require(txn, workflow_id)
        return await self._tasks.require(txn, workflow_id, task_id)

    async def has_team_access(self, txn: Transaction, workflow_id: int, principal: Principal) -> bool:
        workflow = await self._registry.require(txn, workflow_id)
        return await self._membership.has_access(txn, workflow, principal)

    async def query_permission_tier(
        self, txn: Transaction, workflow_id: int, principal: Principal
    ) -> Tier | None:
        workflow = await self._registry.require(txn, workflow_id)
        return await self._membership.tier_of(txn, workflow, principal)

    async def query_checkpoint(
        self, txn: Transaction, workflow_id: int, checkpoint_id: int
    ) -> Checkpoint | None:
        return await self._checkpoints.get(txn, workflow_id, checkpoint_id)

    async def list_contributors(self, txn: Transaction, workflow_id: int) -> list[Contributor]:
        workflow = await self._registry.require(txn, workflow_id)
        return await self._membership.list_contributors(txn, workflow)

    async def list_tasks(self, txn: Transaction, workflow_id: int) -> list[Task]:
        await self._registry.require(txn, workflow_id)
        return await self._tasks.list_tasks(txn, workflow_id)

    async def list_prerequisites(self, txn: Transaction, workflow_id: int, task_id: int) -> list[int]:
        await self.query_task(txn, workflow_id, task_id)
        graph = await self._tasks.load_graph(txn, workflow_id)
        return sorted(graph.prerequisites_of(task_id))

    async def list_dependents(self, txn: Transaction, workflow_id: int, task_id: int) -> list[int]:
        await self.query_task(txn, workflow_id, task_id)
        graph = await self._tasks.load_graph(txn, workflow_id)
        return sorted(graph.dependents_of(task_id))

    async def execution_order(self, txn: Transaction, workflow_id: int) -> list[int]:
        """Every task id of the workflow in a prerequisite-respecting order."""
        tasks = await self.list_tasks(txn, workflow_id)
        graph = await self._tasks.load_graph(txn, workflow_id)
        for task in tasks:
            graph.add_node(task.id)
        return graph.topological_sort()

    async def ready_tasks(self, txn: Transaction, workflow_id: int) -> list[int]:
        """Unfinished tasks whose prerequisites are all done."""
        tasks = await self.list_tasks(txn, workflow_id)
        graph = await self._tasks.load_graph(txn, workflow_id)
        done = {t.id for t in tasks if is_terminal(t.state)}
        return [
            t.id
            for t in tasks
            if not is_terminal(t.state) and graph.prerequisites_of(t.id) <= done
        ]

    async def query_task_ledger(self, txn: Transaction, workflow_id: int, task_id: int) -> TaskLedger:
        await self._registry.require(txn, workflow_id)
        return await self._ledger.load(txn, workflow_id, task_id)

    async def list_checkpoints(self, txn: Transaction, workflow_id: int) -> list[Checkpoint]:
        await self._registry.require(txn, workflow_id)
        return await self._checkpoints.list_checkpoints(txn, workflow_id)
