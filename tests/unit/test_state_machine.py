"""Tests for the task lifecycle state machine."""

from __future__ import annotations

import pytest

from teamflow.core.errors import InvalidStateTransitionError
from teamflow.core.models import TaskState
from teamflow.core.state_machine import (
    TERMINAL_STATES,
    can_transition,
    is_terminal,
    validate_transition,
)


class TestStateMachine:
    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (TaskState.CREATED, TaskState.ACTIVE),
            (TaskState.ACTIVE, TaskState.REVIEW),
            (TaskState.REVIEW, TaskState.DONE),
        ],
    )
    def test_forward_single_steps_allowed(self, current: TaskState, target: TaskState) -> None:
        assert validate_transition(current, target) is target
        assert can_transition(current, target)

    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (TaskState.CREATED, TaskState.REVIEW),
            (TaskState.CREATED, TaskState.CREATED),
            (TaskState.ACTIVE, TaskState.CREATED),
            (TaskState.REVIEW, TaskState.ACTIVE),
            (TaskState.DONE, TaskState.CREATED),
            (TaskState.DONE, TaskState.DONE),
        ],
    )
    def test_other_moves_rejected(self, current: TaskState, target: TaskState) -> None:
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            validate_transition(current, target, task_id=7)
        assert exc_info.value.from_state == current
        assert exc_info.value.to_state == target
        assert exc_info.value.task_id == 7
        assert not can_transition(current, target)

    def test_done_is_only_terminal_state(self) -> None:
        assert TERMINAL_STATES == frozenset({TaskState.DONE})
        assert is_terminal(TaskState.DONE)
        assert not is_terminal(TaskState.REVIEW)
        assert not can_transition(TaskState.DONE, TaskState.DONE + 1)

    @pytest.mark.parametrize("target", [0, 5, 42])
    def test_out_of_range_target_rejected(self, target: int) -> None:
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            validate_transition(TaskState.CREATED, target)
        assert exc_info.value.to_state == target

    def test_error_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            validate_transition(TaskState.CREATED, TaskState.DONE)
