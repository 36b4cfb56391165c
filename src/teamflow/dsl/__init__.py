"""Workflow blueprint parser for YAML/JSON definitions.

Allows declaring a whole workflow (roster, tasks, prerequisites and
checkpoints) in one file and replaying it through the engine.

Example YAML blueprint:
```yaml
title: Q4 Plan
description: Quarterly delivery plan
budget:
  floor: 100
  ceiling: 500
  total: 1000000

contributors:
  - principal: bob
    tier: 2
  - principal: carol
    tier: 3

tasks:
  - name: design
    title: Design review
    assignee: bob
    estimated_hours: 8
    schedule: {start: 0, end: 10}

  - name: build
    title: Implementation
    assignee: carol
    parent: design
    depends_on:
      - design

checkpoints:
  - title: Beta
    target_height: 1200
    budget_allocation: 250
```

Usage:
    from teamflow.dsl import BlueprintParser

    parser = BlueprintParser()
    blueprint = parser.parse_file("q4.yaml")
    result = await parser.apply(engine, blueprint, creator="alice")
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from teamflow.core.models import DependencyGraph

if TYPE_CHECKING:
    from teamflow.core.engine import OrchestrationEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContributorSpec:
    principal: str
    tier: int


@dataclass(frozen=True)
class TaskSpec:
    """A named task; ``parent`` and ``depends_on`` refer to other task names."""

    name: str
    title: str
    description: str = ""
    assignee: str | None = None
    priority: int = 0
    estimated_hours: int = 0
    scheduled_start: int = 0
    scheduled_end: int = 0
    parent: str | None = None
    depends_on: tuple[str, ...] = ()


@dataclass(frozen=True)
class CheckpointSpec:
    title: str
    description: str = ""
    target_height: int = 0
    budget_allocation: int = 0


@dataclass(frozen=True)
class Blueprint:
    title: str
    description: str = ""
    budget_floor: int = 0
    budget_ceiling: int = 0
    total_budget: int = 0
    contributors: tuple[ContributorSpec, ...] = ()
    tasks: tuple[TaskSpec, ...] = ()
    checkpoints: tuple[CheckpointSpec, ...] = ()


@dataclass
class BlueprintResult:
    """Ids allocated while replaying a blueprint."""

    workflow_id: int
    task_ids: dict[str, int] = field(default_factory=dict)
    checkpoint_ids: list[int] = field(default_factory=list)


class BlueprintParser:
    """Parse workflow blueprints from YAML or JSON files.

    Converts declarative definitions into :class:`Blueprint` objects
    that :meth:`apply` replays through an :class:`OrchestrationEngine`.
    """

    def parse_file(self, filepath: str | Path) -> Blueprint:
        """Parse a blueprint from a YAML or JSON file.

        Args:
            filepath: Path to blueprint definition file

        Returns:
            Parsed Blueprint

        Raises:
            ValueError: If file format is invalid or the definition is inconsistent
            FileNotFoundError: If file doesn't exist
        """
        path = Path(filepath)

        if not path.exists():
            raise FileNotFoundError(f"Blueprint file not found: {filepath}")

        content = path.read_text()

        if path.suffix in [".yaml", ".yml"]:
            return self.parse_yaml(content)
        elif path.suffix == ".json":
            return self.parse_json(content)
        else:
            raise ValueError(f"Unsupported file format: {path.suffix}. Use .yaml, .yml, or .json")

    def parse_yaml(self, yaml_content: str) -> Blueprint:
        """Parse a blueprint from YAML string.

        Raises:
            ImportError: If PyYAML is not installed
            ValueError: If YAML is invalid
        """
        try:
            import yaml
        except ImportError as exc:
            raise ImportError("PyYAML not installed. Install with: pip install pyyaml") from exc

        try:
            data = yaml.safe_load(yaml_content)
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML: {exc}") from exc

        return self.parse_dict(data)

    def parse_json(self, json_content: str) -> Blueprint:
        """Parse a blueprint from JSON string.

        Raises:
            ValueError: If JSON is invalid
        """
        try:
            data = json.loads(json_content)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid JSON: {exc}") from exc

        return self.parse_dict(data)

    def parse_dict(self, data: Any) -> Blueprint:
        """Validate *data* and build a :class:`Blueprint` from it.

        Raises:
            ValueError: Listing every validation problem found
        """
        errors = self.validate(data)
        if errors:
            raise ValueError("Invalid blueprint: " + "; ".join(errors))

        budget = data.get("budget", {})
        blueprint = Blueprint(
            title=data["title"],
            description=data.get("description", ""),
            budget_floor=budget.get("floor", 0),
            budget_ceiling=budget.get("ceiling", 0),
            total_budget=budget.get("total", 0),
            contributors=tuple(
                ContributorSpec(principal=c["principal"], tier=c["tier"])
                for c in data.get("contributors", [])
            ),
            tasks=tuple(self._parse_task(t) for t in data.get("tasks", [])),
            checkpoints=tuple(
                CheckpointSpec(
                    title=cp["title"],
                    description=cp.get("description", ""),
                    target_height=cp.get("target_height", 0),
                    budget_allocation=cp.get("budget_allocation", 0),
                )
                for cp in data.get("checkpoints", [])
            ),
        )

        logger.info(
            "Parsed blueprint '%s' with %d tasks and %d checkpoints",
            blueprint.title,
            len(blueprint.tasks),
            len(blueprint.checkpoints),
        )
        return blueprint

    @staticmethod
    def _parse_task(task_data: dict[str, Any]) -> TaskSpec:
        schedule = task_data.get("schedule", {})
        return TaskSpec(
            name=task_data["name"],
            title=task_data.get("title", task_data["name"]),
            description=task_data.get("description", ""),
            assignee=task_data.get("assignee"),
            priority=task_data.get("priority", 0),
            estimated_hours=task_data.get("estimated_hours", 0),
            scheduled_start=schedule.get("start", 0),
            scheduled_end=schedule.get("end", 0),
            parent=task_data.get("parent"),
            depends_on=tuple(task_data.get("depends_on", [])),
        )

    def validate(self, data: Any) -> list[str]:
        """Validate a blueprint definition and return list of errors.

        Field-level limits (lengths, budget bounds, tiers) are left to the
        engine; this checks structure and cross-references only.

        Args:
            data: Blueprint definition dictionary

        Returns:
            List of validation error messages (empty if valid)
        """
        if not isinstance(data, dict):
            return ["Blueprint must be a mapping"]

        errors = []

        if "title" not in data:
            errors.append("Missing required field: 'title'")

        if "budget" in data and not isinstance(data["budget"], dict):
            errors.append("Field 'budget' must be a mapping")

        for key in ("contributors", "tasks", "checkpoints"):
            if key in data and not isinstance(data[key], list):
                errors.append(f"Field '{key}' must be a list")

        contributors = data.get("contributors", [])
        if isinstance(contributors, list):
            principals = set()
            for i, contributor in enumerate(contributors):
                if not isinstance(contributor, dict) or "principal" not in contributor:
                    errors.append(f"Contributor at index {i} missing required field: 'principal'")
                    continue
                if "tier" not in contributor:
                    errors.append(f"Contributor '{contributor['principal']}' missing required field: 'tier'")
                if contributor["principal"] in principals:
                    errors.append(f"Duplicate contributor: '{contributor['principal']}'")
                principals.add(contributor["principal"])

        checkpoints = data.get("checkpoints", [])
        if isinstance(checkpoints, list):
            for i, checkpoint in enumerate(checkpoints):
                if not isinstance(checkpoint, dict) or "title" not in checkpoint:
                    errors.append(f"Checkpoint at index {i} missing required field: 'title'")

        tasks = data.get("tasks", [])
        if isinstance(tasks, list):
            errors.extend(self._validate_tasks(tasks))

        return errors

    @staticmethod
    def _validate_tasks(tasks: list[Any]) -> list[str]:
        errors = []
        positions: dict[str, int] = {}

        for i, task in enumerate(tasks):
            if not isinstance(task, dict):
                errors.append(f"Task at index {i} must be a dictionary")
                continue
            if "name" not in task:
                errors.append(f"Task at index {i} missing required field: 'name'")
                continue
            if task["name"] in positions:
                errors.append(f"Duplicate task name: '{task['name']}'")
                continue
            positions[task["name"]] = i

        graph = DependencyGraph()
        for i, task in enumerate(tasks):
            if not isinstance(task, dict) or positions.get(task.get("name")) != i:
                continue
            name = task["name"]

            parent = task.get("parent")
            if parent is not None:
                if parent == name:
                    errors.append(f"Task '{name}' cannot be its own parent")
                elif parent not in positions:
                    errors.append(f"Task '{name}' has unknown parent '{parent}'")
                elif positions[parent] > i:
                    errors.append(f"Parent '{parent}' must be declared before task '{name}'")

            for dep in task.get("depends_on", []):
                if dep == name:
                    errors.append(f"Task '{name}' cannot depend on itself")
                elif dep not in positions:
                    errors.append(f"Task '{name}' depends on unknown task '{dep}'")
                elif graph.has_edge(positions[dep], i):
                    errors.append(f"Duplicate dependency '{dep}' on task '{name}'")
                elif graph.would_create_cycle(positions[dep], i):
                    errors.append(f"Dependency '{name}' on '{dep}' would create a cycle")
                else:
                    graph.add_edge(positions[dep], i)

        return errors

    async def apply(
        self, engine: OrchestrationEngine, blueprint: Blueprint, creator: str
    ) -> BlueprintResult:
        """Replay *blueprint* through *engine* on behalf of *creator*.

        Each engine call is atomic on its own; a failure part-way leaves
        the operations already replayed in place and propagates the error.
        """
        workflow_id = await engine.create_workflow(
            blueprint.title,
            blueprint.description,
            blueprint.budget_floor,
            blueprint.budget_ceiling,
            blueprint.total_budget,
            caller=creator,
        )
        result = BlueprintResult(workflow_id=workflow_id)

        for contributor in blueprint.contributors:
            await engine.enroll_contributor(
                workflow_id, contributor.principal, contributor.tier, caller=creator
            )

        for task in blueprint.tasks:
            result.task_ids[task.name] = await engine.spawn_task(
                workflow_id,
                task.title,
                task.description,
                assignee=task.assignee,
                priority=task.priority,
                estimated_hours=task.estimated_hours,
                scheduled_start=task.scheduled_start,
                scheduled_end=task.scheduled_end,
                parent=result.task_ids[task.parent] if task.parent is not None else None,
                caller=creator,
            )

        for task in blueprint.tasks:
            for dep in task.depends_on:
                await engine.establish_prerequisite(
                    workflow_id, result.task_ids[task.name], result.task_ids[dep], caller=creator
                )

        for checkpoint in blueprint.checkpoints:
            result.checkpoint_ids.append(
                await engine.create_checkpoint(
                    workflow_id,
                    checkpoint.title,
                    checkpoint.description,
                    checkpoint.target_height,
                    checkpoint.budget_allocation,
                    caller=creator,
                )
            )

        logger.info(
            "Applied blueprint '%s' as workflow %d (%d tasks)",
            blueprint.title,
            workflow_id,
            len(result.task_ids),
        )
        return result
