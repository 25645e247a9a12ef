"""Metrics emitted by the compaction engine."""

import hashlib
from abc import ABC, abstractmethod
from typing import Any

from loguru import logger
from opentelemetry import metrics

METRIC_PREFIX = "ai_tool_"

# name -> (kind, unit, description)
METRICS: dict[str, tuple[str, str, str]] = {
    "optimizations_total": ("counter", "1", "Message optimization calls"),
    "tool_summaries_total": ("counter", "1", "Tool-call summaries produced"),
    "cache_hits_total": ("counter", "1", "Tool summary cache hits"),
    "cache_misses_total": ("counter", "1", "Tool summary cache misses"),
    "message_reduction_ratio": ("histogram", "1", "Fraction of messages removed"),
    "character_reduction_ratio": ("histogram", "1", "Fraction of characters removed"),
    "optimization_duration_ms": ("histogram", "ms", "Time spent optimizing a thread"),
    "summary_generation_duration_ms": ("histogram", "ms", "Time spent resolving one summary"),
    "original_message_count": ("histogram", "1", "Messages before optimization"),
    "optimized_message_count": ("histogram", "1", "Messages after optimization"),
    "cache_hit_rate": ("histogram", "1", "Tool summary cache hit rate"),
    "optimization_middleware_total": ("counter", "1", "Model calls seen by the optimizing middleware"),
    "scanning_total": ("counter", "1", "Tool definition scans"),
    "optimization_middleware_duration_ms": ("histogram", "ms", "Time spent in the optimizing middleware"),
    "new_tools_found_count": ("histogram", "1", "New tools registered per scan"),
}


def describe_metrics() -> dict[str, dict[str, str]]:
    """Catalogue of every metric name the engine emits (prefixed)."""
    return {
        f"{METRIC_PREFIX}{name}": {"kind": kind, "unit": unit, "description": description}
        for name, (kind, unit, description) in METRICS.items()
    }


def hash_user_id(user_id: str | None) -> str:
    """Stable, non-reversible label for a user id."""
    if not user_id:
        return "anonymous"
    return hashlib.sha256(str(user_id).encode("utf-8")).hexdigest()[:12]


class MetricsSink(ABC):
    """Destination for counters and histograms."""

    @abstractmethod
    def add(self, name: str, value: float = 1, attributes: dict[str, Any] | None = None) -> None:
        pass

    @abstractmethod
    def record(self, name: str, value: float, attributes: dict[str, Any] | None = None) -> None:
        pass


class NullMetricsSink(MetricsSink):
    def add(self, name: str, value: float = 1, attributes: dict[str, Any] | None = None) -> None:
        pass

    def record(self, name: str, value: float, attributes: dict[str, Any] | None = None) -> None:
        pass


class OpenTelemetryMetricsSink(MetricsSink):
    """MetricsSink over the OpenTelemetry metrics API.

    Instruments are created on first use.  Without an SDK MeterProvider
    configured the API hands out no-op instruments.
    """

    def __init__(self, meter_name: str = "casechat.optimizer", prefix: str = METRIC_PREFIX):
        self.meter = metrics.get_meter(meter_name)
        self.prefix = prefix
        self._counters: dict[str, Any] = {}
        self._histograms: dict[str, Any] = {}

    def _describe(self, name: str) -> tuple[str, str]:
        _, unit, description = METRICS.get(name, ("", "1", name))
        return unit, description

    def add(self, name: str, value: float = 1, attributes: dict[str, Any] | None = None) -> None:
        counter = self._counters.get(name)
        if counter is None:
            unit, description = self._describe(name)
            counter = self.meter.create_counter(
                f"{self.prefix}{name}", unit=unit, description=description
            )
            self._counters[name] = counter
        counter.add(value, attributes=attributes or {})

    def record(self, name: str, value: float, attributes: dict[str, Any] | None = None) -> None:
        histogram = self._histograms.get(name)
        if histogram is None:
            unit, description = self._describe(name)
            histogram = self.meter.create_histogram(
                f"{self.prefix}{name}", unit=unit, description=description
            )
            self._histograms[name] = histogram
        histogram.record(value, attributes=attributes or {})


def safe_emit(sink: MetricsSink, kind: str, name: str, value: float, attributes: dict[str, Any] | None = None) -> None:
    """Emit one measurement; a failing sink is logged and otherwise ignored."""
    try:
        if kind == "counter":
            sink.add(name, value, attributes)
        else:
            sink.record(name, value, attributes)
    except Exception as e:
        logger.warning(f"Failed to emit metric {name}: {e}")
