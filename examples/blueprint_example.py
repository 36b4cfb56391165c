"""Example of replaying a YAML workflow blueprint.

Loads ``q4_plan.yaml``, validates it, replays it through an engine
built from ``TEAMFLOW_*`` environment settings, and prints the ids
allocated along the way.
"""

import asyncio
from pathlib import Path

from teamflow.config import EngineSettings
from teamflow.dsl import BlueprintParser
from teamflow.factory import create_engine
from teamflow.observability.logging import get_logger

logger = get_logger(__name__)


async def main() -> None:
    engine = create_engine(EngineSettings.from_env(), setup_logging=True)
    parser = BlueprintParser()
    blueprint = parser.parse_file(Path(__file__).with_name("q4_plan.yaml"))

    result = await parser.apply(engine, blueprint, creator="alice")
    logger.info("Workflow %d created", result.workflow_id)

    for name, task_id in result.task_ids.items():
        prerequisites = await engine.list_prerequisites(result.workflow_id, task_id)
        print(f"  {name:<8} id={task_id}  waits on {prerequisites}")
    print(f"  execution order: {await engine.execution_order(result.workflow_id)}")

    await engine.store.close()


if __name__ == "__main__":
    asyncio.run(main())
