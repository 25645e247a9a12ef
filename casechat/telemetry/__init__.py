"""Metrics for the compaction engine."""

from casechat.telemetry.metrics import (
    MetricsSink,
    NullMetricsSink,
    OpenTelemetryMetricsSink,
    describe_metrics,
    hash_user_id,
)

__all__ = [
    "MetricsSink",
    "NullMetricsSink",
    "OpenTelemetryMetricsSink",
    "describe_metrics",
    "hash_user_id",
]
