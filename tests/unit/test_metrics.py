"""Tests for the Prometheus metrics collector."""

from __future__ import annotations

import pytest

from teamflow.core.engine import OrchestrationEngine
from teamflow.core.errors import UnauthorizedError
from teamflow.observability import PrometheusMetrics
from teamflow.storage.memory import InMemoryKeyValueStore

OWNER = "alice"
OUTSIDER = "mallory"


class TestPrometheusMetrics:
    def test_export_empty(self) -> None:
        output = PrometheusMetrics().export()
        assert "# TYPE teamflow_operations_total counter" in output
        assert "# TYPE teamflow_rejections_total counter" in output
        assert "# TYPE teamflow_operation_duration_seconds histogram" in output

    def test_histogram_buckets_are_cumulative(self) -> None:
        metrics = PrometheusMetrics()
        metrics.record_operation("spawn_task", 0.003)
        metrics.record_operation("spawn_task", 0.2)
        output = metrics.export()
        assert 'teamflow_operation_duration_seconds_bucket{operation="spawn_task",le="0.001"} 0' in output
        assert 'teamflow_operation_duration_seconds_bucket{operation="spawn_task",le="0.005"} 1' in output
        assert 'teamflow_operation_duration_seconds_bucket{operation="spawn_task",le="0.5"} 2' in output
        assert 'teamflow_operation_duration_seconds_bucket{operation="spawn_task",le="+Inf"} 2' in output
        assert 'teamflow_operation_duration_seconds_count{operation="spawn_task"} 2' in output

    @pytest.mark.asyncio
    async def test_engine_feeds_metrics(self) -> None:
        metrics = PrometheusMetrics()
        engine = OrchestrationEngine(InMemoryKeyValueStore(), metrics=metrics)
        assert engine.metrics is metrics

        wf_id = await engine.create_workflow("Q4 Plan", "desc", 1, 2, 3, caller=OWNER)
        await engine.spawn_task(wf_id, "T1", "", caller=OWNER)
        await engine.spawn_task(wf_id, "T2", "", caller=OWNER)
        with pytest.raises(UnauthorizedError):
            await engine.modify_workflow(wf_id, "x", "", 2, 0, 1, 1, caller=OUTSIDER)

        assert metrics.operations_total("create_workflow") == 1
        assert metrics.operations_total("spawn_task") == 2
        assert metrics.operations_total("modify_workflow") == 0
        assert metrics.rejections_total("modify_workflow", "unauthorized") == 1

        output = metrics.export()
        assert 'teamflow_operations_total{operation="spawn_task"} 2' in output
        assert (
            'teamflow_rejections_total{operation="modify_workflow",code="unauthorized"} 1' in output
        )
