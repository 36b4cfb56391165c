"""Tests for contributor rosters and permission tiers."""

from __future__ import annotations

import pytest

from teamflow.core.engine import OrchestrationEngine
from teamflow.core.errors import (
    AlreadyMemberError,
    InvalidParameterError,
    NotFoundError,
    NotMemberError,
    ProtectedPrincipalError,
    UnauthorizedError,
)
from teamflow.core.models import Tier

OWNER = "alice"
MANAGER = "bob"
CONTRIBUTOR = "carol"
OUTSIDER = "mallory"


class TestEnroll:
    @pytest.mark.asyncio
    async def test_enroll_grants_access(self, engine: OrchestrationEngine, workflow_id: int) -> None:
        contributor = await engine.enroll_contributor(workflow_id, "dave", 3, caller=OWNER)
        assert contributor.tier is Tier.CONTRIBUTOR
        assert await engine.has_team_access(workflow_id, "dave")
        assert await engine.query_permission_tier(workflow_id, "dave") is Tier.CONTRIBUTOR

    @pytest.mark.asyncio
    async def test_duplicate_enrollment_leaves_roster_unchanged(
        self, engine: OrchestrationEngine, workflow_id: int
    ) -> None:
        before = await engine.list_contributors(workflow_id)
        with pytest.raises(AlreadyMemberError):
            await engine.enroll_contributor(workflow_id, MANAGER, 3, caller=OWNER)
        assert await engine.list_contributors(workflow_id) == before
        assert await engine.query_permission_tier(workflow_id, MANAGER) is Tier.MANAGER

    @pytest.mark.asyncio
    async def test_owner_cannot_be_enrolled(
        self, engine: OrchestrationEngine, workflow_id: int
    ) -> None:
        with pytest.raises(AlreadyMemberError):
            await engine.enroll_contributor(workflow_id, OWNER, 2, caller=OWNER)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("caller", [MANAGER, CONTRIBUTOR, OUTSIDER])
    async def test_only_owner_enrolls(
        self, engine: OrchestrationEngine, workflow_id: int, caller: str
    ) -> None:
        with pytest.raises(UnauthorizedError):
            await engine.enroll_contributor(workflow_id, "dave", 3, caller=caller)
        assert not await engine.has_team_access(workflow_id, "dave")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("tier", [0, 4, 99])
    async def test_tier_out_of_range(
        self, engine: OrchestrationEngine, workflow_id: int, tier: int
    ) -> None:
        with pytest.raises(InvalidParameterError):
            await engine.enroll_contributor(workflow_id, "dave", tier, caller=OWNER)

    @pytest.mark.asyncio
    async def test_unknown_workflow(self, engine: OrchestrationEngine) -> None:
        with pytest.raises(NotFoundError):
            await engine.enroll_contributor(5, "dave", 3, caller=OWNER)


class TestAdjust:
    @pytest.mark.asyncio
    async def test_adjust_tier(self, engine: OrchestrationEngine, workflow_id: int) -> None:
        await engine.adjust_contributor_tier(workflow_id, CONTRIBUTOR, 2, caller=OWNER)
        assert await engine.query_permission_tier(workflow_id, CONTRIBUTOR) is Tier.MANAGER

    @pytest.mark.asyncio
    async def test_owner_is_protected(self, engine: OrchestrationEngine, workflow_id: int) -> None:
        with pytest.raises(ProtectedPrincipalError):
            await engine.adjust_contributor_tier(workflow_id, OWNER, 3, caller=OWNER)
        assert await engine.query_permission_tier(workflow_id, OWNER) is Tier.OWNER

    @pytest.mark.asyncio
    async def test_missing_membership(self, engine: OrchestrationEngine, workflow_id: int) -> None:
        with pytest.raises(NotFoundError):
            await engine.adjust_contributor_tier(workflow_id, OUTSIDER, 2, caller=OWNER)

    @pytest.mark.asyncio
    async def test_manager_cannot_adjust(
        self, engine: OrchestrationEngine, workflow_id: int
    ) -> None:
        with pytest.raises(UnauthorizedError):
            await engine.adjust_contributor_tier(workflow_id, CONTRIBUTOR, 1, caller=MANAGER)

    @pytest.mark.asyncio
    async def test_bad_tier(self, engine: OrchestrationEngine, workflow_id: int) -> None:
        with pytest.raises(InvalidParameterError):
            await engine.adjust_contributor_tier(workflow_id, CONTRIBUTOR, 7, caller=OWNER)


class TestRemove:
    @pytest.mark.asyncio
    async def test_remove_revokes_access(
        self, engine: OrchestrationEngine, workflow_id: int
    ) -> None:
        await engine.remove_contributor(workflow_id, CONTRIBUTOR, caller=OWNER)
        assert not await engine.has_team_access(workflow_id, CONTRIBUTOR)
        assert await engine.query_permission_tier(workflow_id, CONTRIBUTOR) is None

    @pytest.mark.asyncio
    async def test_owner_cannot_be_removed(
        self, engine: OrchestrationEngine, workflow_id: int
    ) -> None:
        with pytest.raises(ProtectedPrincipalError):
            await engine.remove_contributor(workflow_id, OWNER, caller=OWNER)
        assert await engine.has_team_access(workflow_id, OWNER)

    @pytest.mark.asyncio
    async def test_not_a_member(self, engine: OrchestrationEngine, workflow_id: int) -> None:
        with pytest.raises(NotMemberError):
            await engine.remove_contributor(workflow_id, OUTSIDER, caller=OWNER)

    @pytest.mark.asyncio
    async def test_manager_cannot_remove(
        self, engine: OrchestrationEngine, workflow_id: int
    ) -> None:
        with pytest.raises(UnauthorizedError):
            await engine.remove_contributor(workflow_id, CONTRIBUTOR, caller=MANAGER)
        assert await engine.has_team_access(workflow_id, CONTRIBUTOR)

    @pytest.mark.asyncio
    async def test_removed_member_can_be_re_enrolled(
        self, engine: OrchestrationEngine, workflow_id: int
    ) -> None:
        await engine.remove_contributor(workflow_id, CONTRIBUTOR, caller=OWNER)
        await engine.enroll_contributor(workflow_id, CONTRIBUTOR, 2, caller=OWNER)
        assert await engine.query_permission_tier(workflow_id, CONTRIBUTOR) is Tier.MANAGER


class TestTierQueries:
    @pytest.mark.asyncio
    async def test_owner_has_virtual_tier_one(
        self, engine: OrchestrationEngine, workflow_id: int
    ) -> None:
        assert await engine.query_permission_tier(workflow_id, OWNER) is Tier.OWNER

    @pytest.mark.asyncio
    async def test_outsider_has_no_tier(self, engine: OrchestrationEngine, workflow_id: int) -> None:
        assert await engine.query_permission_tier(workflow_id, OUTSIDER) is None
        assert not await engine.has_team_access(workflow_id, OUTSIDER)

    @pytest.mark.asyncio
    async def test_unknown_workflow(self, engine: OrchestrationEngine) -> None:
        with pytest.raises(NotFoundError):
            await engine.has_team_access(77, OWNER)
        with pytest.raises(NotFoundError):
            await engine.query_permission_tier(77, OWNER)

    @pytest.mark.asyncio
    async def test_roster_lists_owner_first(
        self, engine: OrchestrationEngine, workflow_id: int
    ) -> None:
        roster = await engine.list_contributors(workflow_id)
        assert [(c.principal, c.tier) for c in roster] == [
            (OWNER, Tier.OWNER),
            (MANAGER, Tier.MANAGER),
            (CONTRIBUTOR, Tier.CONTRIBUTOR),
        ]
