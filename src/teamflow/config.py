"""Environment-driven engine settings.

Variables (all optional):

* ``TEAMFLOW_STORAGE`` — ``memory`` (default), ``sqlite``, ``redis`` or ``postgres``
* ``TEAMFLOW_DB_PATH`` — SQLite file (default ``teamflow.db``)
* ``TEAMFLOW_REDIS_URL`` — Redis connection URL
* ``TEAMFLOW_POSTGRES_DSN`` — PostgreSQL connection string
* ``TEAMFLOW_LOG_LEVEL`` — log level (default ``INFO``)
* ``TEAMFLOW_LOG_JSON`` — ``true`` for JSON log lines (default)
* ``TEAMFLOW_METRICS`` — ``true`` to attach the Prometheus collector
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

STORAGE_BACKENDS = frozenset({"memory", "sqlite", "redis", "postgres"})

_TRUTHY = frozenset({"1", "true", "yes", "on"})


def _flag(value: str) -> bool:
    return value.strip().lower() in _TRUTHY


@dataclass(frozen=True)
class EngineSettings:
    storage: str = "memory"
    db_path: str = "teamflow.db"
    redis_url: str = "redis://localhost:6379/0"
    postgres_dsn: str = "postgresql://localhost:5432/teamflow"
    log_level: str = "INFO"
    log_json: bool = True
    metrics: bool = False

    def __post_init__(self) -> None:
        if self.storage not in STORAGE_BACKENDS:
            raise ValueError(
                f"Unknown storage backend '{self.storage}'. "
                f"Expected one of: {', '.join(sorted(STORAGE_BACKENDS))}"
            )

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> EngineSettings:
        """Read settings from *environ* (defaults to :data:`os.environ`)."""
        env = os.environ if environ is None else environ
        return cls(
            storage=env.get("TEAMFLOW_STORAGE", "memory").strip().lower(),
            db_path=env.get("TEAMFLOW_DB_PATH", "teamflow.db"),
            redis_url=env.get("TEAMFLOW_REDIS_URL", "redis://localhost:6379/0"),
            postgres_dsn=env.get("TEAMFLOW_POSTGRES_DSN", "postgresql://localhost:5432/teamflow"),
            log_level=env.get("TEAMFLOW_LOG_LEVEL", "INFO"),
            log_json=_flag(env.get("TEAMFLOW_LOG_JSON", "true")),
            metrics=_flag(env.get("TEAMFLOW_METRICS", "false")),
        )
