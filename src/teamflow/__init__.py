"""TeamFlow — Multi-contributor Workflow Orchestration Engine.

Tracks workflows, tiered contributor rosters, tasks with a lifecycle
state machine and a cycle-safe prerequisite graph, per-task ledgers and
workflow checkpoints on top of a transactional key-value store.
"""

__version__ = "1.0.0"
