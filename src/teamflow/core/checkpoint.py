"""Workflow checkpoints — immutable milestone records.

Checkpoints are numbered per workflow from 1.  Once written they are
never modified or deleted.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from teamflow.core.models import Checkpoint, Principal, Tier, Workflow, build

if TYPE_CHECKING:
    from teamflow.core.membership import MembershipManager
    from teamflow.core.registry import WorkflowRegistry
    from teamflow.storage.base import Transaction

logger = logging.getLogger(__name__)


def checkpoint_key(workflow_id: int, checkpoint_id: int) -> str:
    return f"checkpoint:{workflow_id}:{checkpoint_id}"


def checkpoint_prefix(workflow_id: int) -> str:
    return f"checkpoint:{workflow_id}:"


class CheckpointStore:
    """Creates and looks up workflow checkpoints."""

    def __init__(self, registry: WorkflowRegistry, membership: MembershipManager) -> None:
        self._registry = registry
        self._membership = membership

    async def create(
        self,
        txn: Transaction,
        workflow: Workflow,
        *,
        title: str,
        description: str,
        target_height: int,
        budget_allocation: int,
        caller: Principal,
    ) -> Checkpoint:
        await self._membership.require_tier(txn, workflow, caller, Tier.MANAGER)
        checkpoint = build(
            Checkpoint,
            workflow_id=workflow.id,
            id=workflow.next_checkpoint_id,
            title=title,
            description=description,
            target_height=target_height,
            budget_allocation=budget_allocation,
        )
        txn.put(checkpoint_key(workflow.id, checkpoint.id), checkpoint.model_dump(mode="json"))
        self._registry.save(
            txn,
            workflow.model_copy(update={"next_checkpoint_id": workflow.next_checkpoint_id + 1}),
        )
        logger.info("Checkpoint %d created in workflow %d by %s", checkpoint.id, workflow.id, caller)
        return checkpoint

    async def get(self, txn: Transaction, workflow_id: int, checkpoint_id: int) -> Checkpoint | None:
        raw = await txn.get(checkpoint_key(workflow_id, checkpoint_id))
        return Checkpoint.model_validate(raw) if raw is not None else None

    async def list_checkpoints(self, txn: Transaction, workflow_id: int) -> list[Checkpoint]:
        raw = await txn.scan(checkpoint_prefix(workflow_id))
        return sorted((Checkpoint.model_validate(v) for v in raw.values()), key=lambda c: c.id)
