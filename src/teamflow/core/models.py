"""Domain models for the TeamFlow orchestration engine.

Defines the records persisted by each component (Workflow, Contributor,
Task, TaskLedger, Checkpoint), the permission and lifecycle enums, and the
per-workflow :class:`DependencyGraph` used to keep prerequisite edges
acyclic.
"""

from __future__ import annotations

import enum
from collections import deque
from collections.abc import Iterable
from typing import Annotated, Any, TypeVar

from pydantic import BaseModel, Field, ValidationError

from teamflow.core.errors import CyclicDependencyError, InvalidParameterError

U64_MAX = 2**64 - 1

TITLE_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 500
TIME_NOTE_MAX_LENGTH = 200
NOTE_MAX_LENGTH = 500
ARTIFACT_HASH_BYTES = 32

U64 = Annotated[int, Field(ge=0, le=U64_MAX)]
Title = Annotated[str, Field(max_length=TITLE_MAX_LENGTH)]
Description = Annotated[str, Field(max_length=DESCRIPTION_MAX_LENGTH)]

# Opaque, already-authenticated caller identity
Principal = str


class Tier(enum.IntEnum):
    """Permission tiers.  Lower number means more privilege."""

    OWNER = 1
    MANAGER = 2
    CONTRIBUTOR = 3


class TaskState(enum.IntEnum):
    """Lifecycle states of a task."""

    CREATED = 1
    ACTIVE = 2
    REVIEW = 3
    DONE = 4


class Workflow(BaseModel):
    """A top-level project container with budget bounds and an owner."""

    id: U64
    title: Title
    description: Description
    budget_floor: U64
    budget_ceiling: U64
    total_budget: U64
    owner: Principal
    next_task_id: U64 = 1
    next_checkpoint_id: U64 = 1


class Contributor(BaseModel):
    workflow_id: U64
    principal: Principal
    tier: Tier


class Task(BaseModel):
    """A unit of work inside a workflow."""

    workflow_id: U64
    id: U64
    title: Title
    description: Description
    assignee: Principal | None = None
    priority: U64 = 0
    estimated_hours: U64 = 0
    scheduled_start: U64 = 0
    scheduled_end: U64 = 0
    state: TaskState = TaskState.CREATED
    parent: U64 | None = None


class TimeEntry(BaseModel):
    hours: Annotated[int, Field(gt=0, le=U64_MAX)]
    note: Annotated[str, Field(max_length=TIME_NOTE_MAX_LENGTH)] = ""


class TaskLedger(BaseModel):
    """Append-only auxiliary records of a single task.

    Artifact hashes are kept hex-encoded so the record stays JSON-native;
    use :meth:`artifact_hashes` to get the raw 32-byte digests back.
    """

    workflow_id: U64
    task_id: U64
    artifacts: list[str] = Field(default_factory=list)
    time_entries: list[TimeEntry] = Field(default_factory=list)
    notes: list[str] = Field(default_factory=list)
    total_hours: U64 = 0

    def artifact_hashes(self) -> list[bytes]:
        return [bytes.fromhex(h) for h in self.artifacts]


class Checkpoint(BaseModel):
    """An immutable workflow milestone."""

    workflow_id: U64
    id: U64
    title: Title
    description: Description
    target_height: U64
    budget_allocation: U64


ModelT = TypeVar("ModelT", bound=BaseModel)


def build(model: type[ModelT], **fields: Any) -> ModelT:
    """Construct *model*, converting validation failures to :class:`InvalidParameterError`."""
    try:
        return model.model_validate(fields)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        raise InvalidParameterError(f"Invalid {model.__name__}: {problems}") from exc


def parse_tier(value: int) -> Tier:
    try:
        return Tier(value)
    except ValueError as exc:
        raise InvalidParameterError(f"Unknown permission tier: {value!r}") from exc


class DependencyGraph:
    """Directed graph of task prerequisites within one workflow.

    An edge ``prerequisite -> dependent`` means *dependent* waits on
    *prerequisite*.  Provides the reachability search used to reject
    cycle-closing insertions and a topological ordering via Kahn's
    algorithm.
    """

    def __init__(self) -> None:
        self._adjacency: dict[int, set[int]] = {}
        self._in_degree: dict[int, int] = {}

    @classmethod
    def from_edges(
        cls, edges: Iterable[tuple[int, int]], nodes: Iterable[int] = ()
    ) -> DependencyGraph:
        """Build a graph from ``(prerequisite, dependent)`` pairs."""
        graph = cls()
        for node in nodes:
            graph.add_node(node)
        for prerequisite, dependent in edges:
            graph.add_edge(prerequisite, dependent)
        return graph

    def add_node(self, node_id: int) -> None:
        self._adjacency.setdefault(node_id, set())
        self._in_degree.setdefault(node_id, 0)

    def add_edge(self, prerequisite: int, dependent: int) -> None:
        """Declare that *prerequisite* must be done before *dependent*."""
        self.add_node(prerequisite)
        self.add_node(dependent)
        if dependent not in self._adjacency[prerequisite]:
            self._adjacency[prerequisite].add(dependent)
            self._in_degree[dependent] += 1

    def remove_edge(self, prerequisite: int, dependent: int) -> None:
        if self.has_edge(prerequisite, dependent):
            self._adjacency[prerequisite].discard(dependent)
            self._in_degree[dependent] -= 1

    def has_edge(self, prerequisite: int, dependent: int) -> bool:
        return dependent in self._adjacency.get(prerequisite, set())

    def is_reachable(self, start: int, target: int) -> bool:
        """Breadth-first search from *start* along prerequisite -> dependent edges."""
        if start == target:
            return True
        seen = {start}
        queue: deque[int] = deque([start])
        while queue:
            node = queue.popleft()
            for neighbour in self._adjacency.get(node, set()):
                if neighbour == target:
                    return True
                if neighbour not in seen:
                    seen.add(neighbour)
                    queue.append(neighbour)
        return False

    def would_create_cycle(self, prerequisite: int, dependent: int) -> bool:
        """True if adding ``prerequisite -> dependent`` closes a cycle (self-loops included)."""
        return self.is_reachable(dependent, prerequisite)

    def prerequisites_of(self, node_id: int) -> set[int]:
        return {src for src, targets in self._adjacency.items() if node_id in targets}

    def dependents_of(self, node_id: int) -> set[int]:
        return set(self._adjacency.get(node_id, set()))

    def topological_sort(self) -> list[int]:
        """Return a deterministic topological ordering (lowest id first among peers).

        Raises :class:`CyclicDependencyError` if the graph contains a cycle,
        which insertion checks make unreachable for stored graphs.
        """
        in_degree = dict(self._in_degree)
        queue: deque[int] = deque(sorted(n for n, d in in_degree.items() if d == 0))
        order: list[int] = []

        while queue:
            node = queue.popleft()
            order.append(node)
            for neighbour in sorted(self._adjacency.get(node, set())):
                in_degree[neighbour] -= 1
                if in_degree[neighbour] == 0:
                    queue.append(neighbour)

        if len(order) != len(self._adjacency):
            raise CyclicDependencyError("Task graph contains a cycle; topological sort impossible")
        return order

    @property
    def nodes(self) -> set[int]:
        return set(self._adjacency.keys())

    @property
    def edge_count(self) -> int:
        return sum(self._in_degree.values())
