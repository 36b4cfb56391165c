"""Shared test fixtures."""

from __future__ import annotations

import pytest

from teamflow.core.engine import OrchestrationEngine
from teamflow.core.events import EventBus
from teamflow.storage.memory import InMemoryKeyValueStore

OWNER = "alice"
MANAGER = "bob"
CONTRIBUTOR = "carol"
OUTSIDER = "mallory"


@pytest.fixture()
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture()
def store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture()
def engine(store: InMemoryKeyValueStore, event_bus: EventBus) -> OrchestrationEngine:
    return OrchestrationEngine(store, event_bus=event_bus)


@pytest.fixture()
async def workflow_id(engine: OrchestrationEngine) -> int:
    """A workflow owned by alice with bob as manager and carol as contributor."""
    wf_id = await engine.create_workflow("Q4 Plan", "desc", 100, 500, 1_000_000, caller=OWNER)
    await engine.enroll_contributor(wf_id, MANAGER, 2, caller=OWNER)
    await engine.enroll_contributor(wf_id, CONTRIBUTOR, 3, caller=OWNER)
    return wf_id
