"""Task ledger — append-only artifacts, time entries and notes per task.

No update or delete operation is exposed for ledger entries.  The running
``total_hours`` is bumped in the same transaction as the time entry it
accounts for.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from teamflow.core.errors import InvalidParameterError
from teamflow.core.models import (
    ARTIFACT_HASH_BYTES,
    NOTE_MAX_LENGTH,
    U64_MAX,
    Principal,
    TaskLedger,
    TimeEntry,
    Workflow,
    build,
)

if TYPE_CHECKING:
    from teamflow.core.membership import MembershipManager
    from teamflow.core.task_graph import TaskGraph
    from teamflow.storage.base import Transaction

logger = logging.getLogger(__name__)


def ledger_key(workflow_id: int, task_id: int) -> str:
    return f"ledger:{workflow_id}:{task_id}"


class TaskLedgerBook:
    """Appends auxiliary records to tasks after access checks."""

    def __init__(self, tasks: TaskGraph, membership: MembershipManager) -> None:
        self._tasks = tasks
        self._membership = membership

    async def load(self, txn: Transaction, workflow_id: int, task_id: int) -> TaskLedger:
        """Return the task's ledger (empty if nothing was appended yet)."""
        await self._tasks.require(txn, workflow_id, task_id)
        raw = await txn.get(ledger_key(workflow_id, task_id))
        if raw is None:
            return TaskLedger(workflow_id=workflow_id, task_id=task_id)
        return TaskLedger.model_validate(raw)

    async def _open(
        self, txn: Transaction, workflow: Workflow, task_id: int, caller: Principal
    ) -> TaskLedger:
        await self._membership.require_access(txn, workflow, caller)
        return await self.load(txn, workflow.id, task_id)

    @staticmethod
    def _store(txn: Transaction, ledger: TaskLedger) -> None:
        txn.put(ledger_key(ledger.workflow_id, ledger.task_id), ledger.model_dump(mode="json"))

    async def attach_artifact(
        self,
        txn: Transaction,
        workflow: Workflow,
        task_id: int,
        content_hash: bytes,
        caller: Principal,
    ) -> int:
        """Append *content_hash*; return the artifact count afterwards."""
        ledger = await self._open(txn, workflow, task_id, caller)
        if not isinstance(content_hash, (bytes, bytearray)) or len(content_hash) != ARTIFACT_HASH_BYTES:
            raise InvalidParameterError(f"Artifact hash must be exactly {ARTIFACT_HASH_BYTES} bytes")
        ledger.artifacts.append(bytes(content_hash).hex())
        self._store(txn, ledger)
        logger.info("Artifact attached to task %d in workflow %d", task_id, workflow.id)
        return len(ledger.artifacts)

    async def log_time(
        self,
        txn: Transaction,
        workflow: Workflow,
        task_id: int,
        hours: int,
        note: str,
        caller: Principal,
    ) -> int:
        """Append a time entry; return the task's cumulative hours."""
        ledger = await self._open(txn, workflow, task_id, caller)
        if hours == 0:
            raise InvalidParameterError("Logged hours must be greater than zero")
        entry = build(TimeEntry, hours=hours, note=note)
        if ledger.total_hours + entry.hours > U64_MAX:
            raise InvalidParameterError("Cumulative hours would overflow")
        ledger.time_entries.append(entry)
        ledger.total_hours += entry.hours
        self._store(txn, ledger)
        logger.info(
            "Logged %d hours on task %d in workflow %d (total %d)",
            hours,
            task_id,
            workflow.id,
            ledger.total_hours,
        )
        return ledger.total_hours

    async def compose_note(
        self,
        txn: Transaction,
        workflow: Workflow,
        task_id: int,
        text: str,
        caller: Principal,
    ) -> int:
        """Append a note; return the note count afterwards."""
        ledger = await self._open(txn, workflow, task_id, caller)
        if len(text) > NOTE_MAX_LENGTH:
            raise InvalidParameterError(f"Note exceeds {NOTE_MAX_LENGTH} characters")
        ledger.notes.append(text)
        self._store(txn, ledger)
        logger.info("Note added to task %d in workflow %d", task_id, workflow.id)
        return len(ledger.notes)
