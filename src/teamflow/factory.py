"""Wiring helpers: build a store and an engine from :class:`EngineSettings`."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from teamflow.config import EngineSettings
from teamflow.core.engine import OrchestrationEngine
from teamflow.core.events import EventBus
from teamflow.observability import PrometheusMetrics
from teamflow.observability.logging import configure_logging

if TYPE_CHECKING:
    from teamflow.storage.base import KeyValueStore

logger = logging.getLogger(__name__)


def create_store(settings: EngineSettings) -> KeyValueStore:
    """Instantiate the storage backend named by *settings*."""
    backend = settings.storage
    if backend == "sqlite":
        from teamflow.storage.sqlite import SQLiteKeyValueStore

        return SQLiteKeyValueStore(db_path=settings.db_path)
    if backend == "redis":
        from teamflow.storage.redis import RedisKeyValueStore

        return RedisKeyValueStore(redis_url=settings.redis_url)
    if backend == "postgres":
        from teamflow.storage.postgres import PostgresKeyValueStore

        return PostgresKeyValueStore(dsn=settings.postgres_dsn)
    if backend == "memory":
        from teamflow.storage.memory import InMemoryKeyValueStore

        return InMemoryKeyValueStore()
    raise ValueError(f"Unknown storage backend '{backend}'")


def create_engine(
    settings: EngineSettings | None = None,
    metrics: PrometheusMetrics | None = None,
    *,
    setup_logging: bool = False,
) -> OrchestrationEngine:
    """Build a fully wired :class:`OrchestrationEngine`.

    When *settings* enable metrics and no collector is passed, a fresh
    :class:`PrometheusMetrics` is attached; it is reachable through
    :attr:`OrchestrationEngine.metrics`.
    """
    settings = settings or EngineSettings.from_env()
    if setup_logging:
        configure_logging(log_level=settings.log_level, json_format=settings.log_json)

    if metrics is None and settings.metrics:
        metrics = PrometheusMetrics()

    engine = OrchestrationEngine(create_store(settings), event_bus=EventBus(), metrics=metrics)
    logger.info("Engine created with %s storage", settings.storage)
    return engine
