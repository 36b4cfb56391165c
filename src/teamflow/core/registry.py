"""Workflow registry — owns workflow records and the global id counter."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from teamflow.core.errors import InvalidParameterError, NotFoundError
from teamflow.core.models import U64_MAX, Principal, Tier, Workflow, build, parse_tier

if TYPE_CHECKING:
    from teamflow.core.membership import MembershipManager
    from teamflow.storage.base import Transaction

logger = logging.getLogger(__name__)

WORKFLOW_COUNTER_KEY = "counter:workflow"

# Tiers allowed as the modification threshold; never looser than managers
_MODIFY_THRESHOLDS = frozenset({Tier.OWNER, Tier.MANAGER})


def workflow_key(workflow_id: int) -> str:
    return f"workflow:{workflow_id}"


def _check_budget_bounds(budget_floor: int, budget_ceiling: int) -> None:
    if budget_floor > budget_ceiling:
        raise InvalidParameterError(
            f"Budget floor {budget_floor} exceeds budget ceiling {budget_ceiling}"
        )


class WorkflowRegistry:
    """Creates, modifies and resolves workflow records."""

    async def get(self, txn: Transaction, workflow_id: int) -> Workflow | None:
        raw = await txn.get(workflow_key(workflow_id))
        return Workflow.model_validate(raw) if raw is not None else None

    async def require(self, txn: Transaction, workflow_id: int) -> Workflow:
        """Resolve *workflow_id* or raise :class:`NotFoundError`."""
        workflow = await self.get(txn, workflow_id)
        if workflow is None:
            raise NotFoundError(f"Workflow {workflow_id} not found")
        return workflow

    def save(self, txn: Transaction, workflow: Workflow) -> None:
        txn.put(workflow_key(workflow.id), workflow.model_dump(mode="json"))

    async def create(
        self,
        txn: Transaction,
        *,
        title: str,
        description: str,
        budget_floor: int,
        budget_ceiling: int,
        total_budget: int,
        creator: Principal,
    ) -> Workflow:
        _check_budget_bounds(budget_floor, budget_ceiling)
        last_id = await txn.get(WORKFLOW_COUNTER_KEY) or 0
        if last_id >= U64_MAX:
            raise RuntimeError("Workflow id space exhausted")
        workflow = build(
            Workflow,
            id=last_id + 1,
            title=title,
            description=description,
            budget_floor=budget_floor,
            budget_ceiling=budget_ceiling,
            total_budget=total_budget,
            owner=creator,
        )
        txn.put(WORKFLOW_COUNTER_KEY, workflow.id)
        self.save(txn, workflow)
        logger.info("Workflow %d created by %s", workflow.id, creator)
        return workflow

    async def modify(
        self,
        txn: Transaction,
        membership: MembershipManager,
        workflow_id: int,
        *,
        title: str,
        description: str,
        required_tier: int,
        budget_floor: int,
        budget_ceiling: int,
        total_budget: int,
        caller: Principal,
    ) -> Workflow:
        """Overwrite the mutable fields of a workflow.

        *required_tier* is the privilege threshold the caller must meet.
        It may tighten the rule to owners only but can never admit plain
        contributors.
        """
        workflow = await self.require(txn, workflow_id)
        # Callers below the loosest threshold are rejected before it is parsed
        await membership.require_tier(txn, workflow, caller, Tier.MANAGER)
        threshold = parse_tier(required_tier)
        if threshold not in _MODIFY_THRESHOLDS:
            raise InvalidParameterError(
                f"Modification threshold must be owner or manager, got {required_tier}"
            )
        await membership.require_tier(txn, workflow, caller, threshold)
        _check_budget_bounds(budget_floor, budget_ceiling)

        updated = build(
            Workflow,
            **{
                **workflow.model_dump(),
                "title": title,
                "description": description,
                "budget_floor": budget_floor,
                "budget_ceiling": budget_ceiling,
                "total_budget": total_budget,
            },
        )
        self.save(txn, updated)
        logger.info("Workflow %d modified by %s", workflow_id, caller)
        return updated
