"""Task lifecycle state machine.

State diagram::

    created -> active -> review -> done

Transitions move forward exactly one step.  ``done`` is terminal.
Invalid transitions raise :class:`InvalidStateTransitionError`.
"""

from __future__ import annotations

from teamflow.core.errors import InvalidStateTransitionError
from teamflow.core.models import TaskState

VALID_TRANSITIONS: dict[TaskState, frozenset[TaskState]] = {
    TaskState.CREATED: frozenset([TaskState.ACTIVE]),
    TaskState.ACTIVE: frozenset([TaskState.REVIEW]),
    TaskState.REVIEW: frozenset([TaskState.DONE]),
    # Terminal
    TaskState.DONE: frozenset(),
}

TERMINAL_STATES = frozenset(s for s, targets in VALID_TRANSITIONS.items() if not targets)


def can_transition(from_state: TaskState, to_state: int) -> bool:
    return to_state in VALID_TRANSITIONS.get(from_state, frozenset())


def is_terminal(state: TaskState) -> bool:
    return state in TERMINAL_STATES


def validate_transition(
    from_state: TaskState,
    to_state: int,
    task_id: int | None = None,
) -> TaskState:
    """Return the target state, or raise :class:`InvalidStateTransitionError`.

    *to_state* may be any integer; values outside the lifecycle are
    rejected the same way as skipped or backward steps.
    """
    if not can_transition(from_state, to_state):
        raise InvalidStateTransitionError(int(from_state), int(to_state), task_id)
    return TaskState(to_state)
