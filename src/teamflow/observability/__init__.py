"""Prometheus metrics exporter for TeamFlow observability.

Exposes engine operation metrics in Prometheus text format.

Metrics exposed:
- teamflow_operations_total: Committed operations by operation name
- teamflow_rejections_total: Rejected operations by operation name and error code
- teamflow_operation_duration_seconds: Operation duration histogram

Usage:
    from teamflow.observability import PrometheusMetrics

    metrics = PrometheusMetrics()
    metrics.attach(engine.event_bus)

    # Expose via whatever transport hosts the engine
    body = metrics.export()
"""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING

from teamflow.core.events import Event, EventType

if TYPE_CHECKING:
    from teamflow.core.events import EventBus


class PrometheusMetrics:
    """Collects and exports Prometheus-format metrics for TeamFlow.

    Fed by :class:`EventBus` subscriptions; every committed or rejected
    operation event carries its ``operation`` name and
    ``duration_seconds``.
    """

    def __init__(self) -> None:
        # Counters
        self._operations_total: dict[str, int] = defaultdict(int)
        self._rejections_total: dict[tuple[str, str], int] = defaultdict(int)

        # Histogram (buckets in seconds)
        self._duration_buckets = [0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0]
        self._duration_observations: dict[str, list[float]] = defaultdict(list)

    def attach(self, bus: EventBus) -> None:
        """Subscribe to every event type published on *bus*."""
        bus.subscribe_all(self.handle_event)

    async def handle_event(self, event: Event) -> None:
        operation = event.payload.get("operation", event.event_type.value)
        duration = event.payload.get("duration_seconds")
        if event.event_type is EventType.OPERATION_REJECTED:
            self.record_rejection(operation, event.payload.get("code", "error"), duration)
        else:
            self.record_operation(operation, duration)

    def record_operation(self, operation: str, duration: float | None = None) -> None:
        """Record a committed operation."""
        self._operations_total[operation] += 1
        if duration is not None:
            self._duration_observations[operation].append(duration)

    def record_rejection(self, operation: str, code: str, duration: float | None = None) -> None:
        """Record a rejected operation."""
        self._rejections_total[(operation, code)] += 1
        if duration is not None:
            self._duration_observations[operation].append(duration)

    def operations_total(self, operation: str) -> int:
        return self._operations_total.get(operation, 0)

    def rejections_total(self, operation: str, code: str) -> int:
        return self._rejections_total.get((operation, code), 0)

    def export(self) -> str:
        """Export metrics in Prometheus text format.

        Returns:
            Prometheus-formatted metrics string
        """
        lines = [
            "# HELP teamflow_operations_total Total number of committed operations",
            "# TYPE teamflow_operations_total counter",
        ]
        for operation, count in sorted(self._operations_total.items()):
            lines.append(f'teamflow_operations_total{{operation="{operation}"}} {count}')

        lines.extend(
            [
                "",
                "# HELP teamflow_rejections_total Total number of rejected operations by error code",
                "# TYPE teamflow_rejections_total counter",
            ]
        )
        for (operation, code), count in sorted(self._rejections_total.items()):
            lines.append(
                f'teamflow_rejections_total{{operation="{operation}",code="{code}"}} {count}'
            )

        lines.extend(
            [
                "",
                "# HELP teamflow_operation_duration_seconds Operation duration in seconds",
                "# TYPE teamflow_operation_duration_seconds histogram",
            ]
        )
        for operation, observations in sorted(self._duration_observations.items()):
            if not observations:
                continue

            # Cumulative buckets
            for bucket in self._duration_buckets:
                cumulative = sum(1 for obs in observations if obs <= bucket)
                lines.append(
                    f'teamflow_operation_duration_seconds_bucket{{operation="{operation}",le="{bucket}"}} {cumulative}'
                )
            lines.append(
                f'teamflow_operation_duration_seconds_bucket{{operation="{operation}",le="+Inf"}} {len(observations)}'
            )
            lines.append(
                f'teamflow_operation_duration_seconds_sum{{operation="{operation}"}} {sum(observations):.4f}'
            )
            lines.append(
                f'teamflow_operation_duration_seconds_count{{operation="{operation}"}} {len(observations)}'
            )

        return "\n".join(lines) + "\n"
