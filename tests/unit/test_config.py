"""Tests for environment settings and engine wiring."""

from __future__ import annotations

import pytest

from teamflow.config import EngineSettings
from teamflow.factory import create_engine, create_store
from teamflow.observability import PrometheusMetrics
from teamflow.storage.memory import InMemoryKeyValueStore
from teamflow.storage.postgres import PostgresKeyValueStore
from teamflow.storage.redis import RedisKeyValueStore
from teamflow.storage.sqlite import SQLiteKeyValueStore


class TestEngineSettings:
    def test_defaults(self) -> None:
        settings = EngineSettings.from_env({})
        assert settings == EngineSettings()
        assert settings.storage == "memory"
        assert settings.log_json is True
        assert settings.metrics is False

    def test_reads_environment(self) -> None:
        settings = EngineSettings.from_env(
            {
                "TEAMFLOW_STORAGE": "SQLite",
                "TEAMFLOW_DB_PATH": "/tmp/tf.db",
                "TEAMFLOW_LOG_LEVEL": "DEBUG",
                "TEAMFLOW_LOG_JSON": "false",
                "TEAMFLOW_METRICS": "yes",
            }
        )
        assert settings.storage == "sqlite"
        assert settings.db_path == "/tmp/tf.db"
        assert settings.log_level == "DEBUG"
        assert settings.log_json is False
        assert settings.metrics is True

    def test_reads_process_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TEAMFLOW_REDIS_URL", "redis://cache:6379/2")
        assert EngineSettings.from_env().redis_url == "redis://cache:6379/2"

    def test_unknown_backend(self) -> None:
        with pytest.raises(ValueError, match="Unknown storage backend"):
            EngineSettings.from_env({"TEAMFLOW_STORAGE": "mongo"})


class TestFactory:
    @pytest.mark.parametrize(
        ("backend", "expected"),
        [
            ("memory", InMemoryKeyValueStore),
            ("redis", RedisKeyValueStore),
            ("postgres", PostgresKeyValueStore),
        ],
    )
    def test_create_store(self, backend: str, expected: type) -> None:
        assert isinstance(create_store(EngineSettings(storage=backend)), expected)

    @pytest.mark.asyncio
    async def test_create_sqlite_store(self, tmp_path) -> None:
        store = create_store(EngineSettings(storage="sqlite", db_path=str(tmp_path / "tf.db")))
        assert isinstance(store, SQLiteKeyValueStore)
        await store.close()

    def test_metrics_flag_attaches_collector(self) -> None:
        engine = create_engine(EngineSettings(metrics=True))
        assert isinstance(engine.metrics, PrometheusMetrics)
        assert create_engine(EngineSettings()).metrics is None

    @pytest.mark.asyncio
    async def test_explicit_collector_is_used(self) -> None:
        metrics = PrometheusMetrics()
        engine = create_engine(EngineSettings(), metrics=metrics)
        await engine.create_workflow("Q4 Plan", "", 0, 1, 1, caller="alice")
        assert metrics.operations_total("create_workflow") == 1
        assert isinstance(engine.store, InMemoryKeyValueStore)
