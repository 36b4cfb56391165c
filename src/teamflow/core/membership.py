"""Membership manager — per-workflow contributor rosters and tier checks.

The workflow owner holds a *virtual* tier-1 membership derived from
:attr:`Workflow.owner`.  It is never stored, so no code path can delete
or demote it; :meth:`MembershipManager.adjust` and
:meth:`MembershipManager.remove` reject the owner up front.

Authorization is always "caller's tier <= required tier" (lower number
means more privilege).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from teamflow.core.errors import (
    AlreadyMemberError,
    NotFoundError,
    NotMemberError,
    ProtectedPrincipalError,
    UnauthorizedError,
)
from teamflow.core.models import Contributor, Principal, Tier, Workflow, build, parse_tier

if TYPE_CHECKING:
    from teamflow.storage.base import Transaction

logger = logging.getLogger(__name__)


def member_key(workflow_id: int, principal: Principal) -> str:
    return f"member:{workflow_id}:{principal}"


def member_prefix(workflow_id: int) -> str:
    return f"member:{workflow_id}:"


class MembershipManager:
    """Owns contributor records; answers access and tier queries."""

    async def tier_of(self, txn: Transaction, workflow: Workflow, principal: Principal) -> Tier | None:
        if principal == workflow.owner:
            return Tier.OWNER
        raw = await txn.get(member_key(workflow.id, principal))
        return Contributor.model_validate(raw).tier if raw is not None else None

    async def has_access(self, txn: Transaction, workflow: Workflow, principal: Principal) -> bool:
        return await self.tier_of(txn, workflow, principal) is not None

    async def require_access(
        self, txn: Transaction, workflow: Workflow, principal: Principal
    ) -> Tier:
        """Return the caller's tier or raise :class:`UnauthorizedError` for non-members."""
        return await self.require_tier(txn, workflow, principal, Tier.CONTRIBUTOR)

    async def require_tier(
        self, txn: Transaction, workflow: Workflow, principal: Principal, max_tier: Tier
    ) -> Tier:
        tier = await self.tier_of(txn, workflow, principal)
        if tier is None:
            raise UnauthorizedError(principal, workflow.id, "not a member")
        if tier > max_tier:
            raise UnauthorizedError(
                principal, workflow.id, f"tier {int(tier)} above required tier {int(max_tier)}"
            )
        return tier

    async def enroll(
        self,
        txn: Transaction,
        workflow: Workflow,
        principal: Principal,
        tier: int,
        caller: Principal,
    ) -> Contributor:
        await self.require_tier(txn, workflow, caller, Tier.OWNER)
        parsed = parse_tier(tier)
        if await self.has_access(txn, workflow, principal):
            raise AlreadyMemberError(f"'{principal}' is already a member of workflow {workflow.id}")
        contributor = build(Contributor, workflow_id=workflow.id, principal=principal, tier=parsed)
        txn.put(member_key(workflow.id, principal), contributor.model_dump(mode="json"))
        logger.info("Enrolled %s at tier %d in workflow %d", principal, parsed, workflow.id)
        return contributor

    async def adjust(
        self,
        txn: Transaction,
        workflow: Workflow,
        principal: Principal,
        new_tier: int,
        caller: Principal,
    ) -> Contributor:
        await self.require_tier(txn, workflow, caller, Tier.OWNER)
        parsed = parse_tier(new_tier)
        if principal == workflow.owner:
            raise ProtectedPrincipalError(f"Owner of workflow {workflow.id} cannot be re-tiered")
        key = member_key(workflow.id, principal)
        if not await txn.exists(key):
            raise NotFoundError(f"'{principal}' has no membership in workflow {workflow.id}")
        contributor = build(Contributor, workflow_id=workflow.id, principal=principal, tier=parsed)
        txn.put(key, contributor.model_dump(mode="json"))
        logger.info("Adjusted %s to tier %d in workflow %d", principal, parsed, workflow.id)
        return contributor

    async def remove(
        self,
        txn: Transaction,
        workflow: Workflow,
        principal: Principal,
        caller: Principal,
    ) -> None:
        await self.require_tier(txn, workflow, caller, Tier.OWNER)
        if principal == workflow.owner:
            raise ProtectedPrincipalError(f"Owner of workflow {workflow.id} cannot be removed")
        key = member_key(workflow.id, principal)
        if not await txn.exists(key):
            raise NotMemberError(f"'{principal}' is not a member of workflow {workflow.id}")
        txn.delete(key)
        logger.info("Removed %s from workflow %d", principal, workflow.id)

    async def list_contributors(self, txn: Transaction, workflow: Workflow) -> list[Contributor]:
        """Return the roster, owner first, then enrolled members by principal."""
        stored = await txn.scan(member_prefix(workflow.id))
        owner = Contributor(workflow_id=workflow.id, principal=workflow.owner, tier=Tier.OWNER)
        return [owner, *(Contributor.model_validate(raw) for raw in stored.values())]
