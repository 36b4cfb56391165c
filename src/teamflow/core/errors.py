"""Typed errors raised by engine operations.

Every rejected operation raises a subclass of :class:`OrchestrationError`
carrying a stable :attr:`~OrchestrationError.code`.  Errors are raised
before any staged write is committed, so a failed call never leaves
partial state behind.
"""

from __future__ import annotations


class OrchestrationError(Exception):
    """Base class for all operation failures."""

    code: str = "error"


class NotFoundError(OrchestrationError):
    """A workflow, task, checkpoint, membership or edge does not exist."""

    code = "not_found"


class UnauthorizedError(OrchestrationError):
    """The caller's tier or relationship to the task is insufficient."""

    code = "unauthorized"

    def __init__(self, principal: str, workflow_id: int, reason: str) -> None:
        self.principal = principal
        self.workflow_id = workflow_id
        super().__init__(f"Principal '{principal}' not authorized on workflow {workflow_id}: {reason}")


class InvalidParameterError(OrchestrationError, ValueError):
    """Malformed input: inconsistent ranges, bad tier, oversized text, zero hours."""

    code = "invalid_parameter"


class AlreadyMemberError(OrchestrationError):
    code = "already_member"


class NotMemberError(OrchestrationError):
    code = "not_member"


class ProtectedPrincipalError(OrchestrationError):
    """The workflow owner cannot be removed or re-tiered."""

    code = "protected_principal"


class SelfReferenceError(OrchestrationError):
    code = "self_reference"


class CyclicDependencyError(OrchestrationError):
    """Raised when an edge insertion would close a cycle in the task graph."""

    code = "cyclic_dependency"


class DuplicatePrerequisiteError(OrchestrationError):
    code = "already_exists"


class InvalidStateTransitionError(OrchestrationError, ValueError):
    """Raised when a task state transition is not allowed by the state machine."""

    code = "invalid_state_transition"

    def __init__(self, from_state: int, to_state: int, task_id: int | None = None) -> None:
        self.from_state = from_state
        self.to_state = to_state
        self.task_id = task_id
        task_info = f" (task_id={task_id})" if task_id is not None else ""
        super().__init__(f"Invalid task transition{task_info}: {from_state} -> {to_state}")
