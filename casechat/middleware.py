"""Model-call middleware that scans tools and compacts message history."""

import asyncio
import time
from dataclasses import dataclass
from typing import Any

from loguru import logger

from casechat.config.schema import MiddlewareConfig
from casechat.optimizer.optimizer import MessageOptimizer
from casechat.store.tool_calls import ToolMap
from casechat.telemetry.metrics import MetricsSink, OpenTelemetryMetricsSink, hash_user_id, safe_emit

STREAM_OPS = {"stream", "streamText"}


@dataclass
class _StepResult:
    params: dict[str, Any]
    applied: bool
    source_count: int = 0
    optimized_count: int = 0


class ToolOptimizingMiddleware:
    """
    Transforms model-call params before they reach the provider.

    1. Registers any new tool definitions in the tool map.
    2. For non-streaming calls with enough history, replaces the message
       list with the optimizer's output.

    Any failure (including a timeout) leaves the params as they were.
    """

    def __init__(
        self,
        optimizer: MessageOptimizer,
        tool_map: ToolMap | None = None,
        config: MiddlewareConfig | None = None,
        user_id: str | None = None,
        chat_id: str | None = None,
        metrics: MetricsSink | None = None,
    ):
        self.optimizer = optimizer
        # Scan into the recorder's map unless told otherwise
        self.tool_map = tool_map if tool_map is not None else optimizer.tool_map
        self.config = config or MiddlewareConfig()
        self.user_id = user_id
        self.chat_id = chat_id
        self.metrics = metrics or OpenTelemetryMetricsSink()

    @property
    def attributes(self) -> dict[str, str]:
        return {
            "user_id": hash_user_id(self.user_id),
            "chat_id": self.chat_id or "unknown",
        }

    async def transform_params(
        self,
        params: dict[str, Any],
        model: str | None = None,
        op_type: str = "generate",
    ) -> dict[str, Any]:
        """
        Return params with an optimized message list when optimization applies.

        Args:
            params: Call params; messages are read from ``messages`` or ``prompt``.
            model: Model id, used only as a telemetry label.
            op_type: ``generate`` / ``stream`` (or the ``*Text`` variants).
        """
        started = time.perf_counter()
        attributes = self.attributes
        try:
            safe_emit(self.metrics, "counter", "optimization_middleware_total", 1, attributes)
            new_tools = self._scan_tools(params)
            step = await self._optimize_messages(params, model, op_type)

            duration_ms = (time.perf_counter() - started) * 1000
            safe_emit(
                self.metrics, "histogram", "optimization_middleware_duration_ms", duration_ms,
                {**attributes, "optimization_applied": str(step.applied), "new_tools_found": new_tools},
            )
            logger.debug(
                f"Tool optimizing middleware done in {duration_ms:.0f}ms: "
                f"applied={step.applied}, messages {step.source_count} -> {step.optimized_count}, "
                f"new tools {new_tools}"
            )
            return step.params
        except Exception as e:
            duration_ms = (time.perf_counter() - started) * 1000
            safe_emit(
                self.metrics, "histogram", "optimization_middleware_duration_ms", duration_ms,
                {**attributes, "status": "error"},
            )
            logger.error(f"Unexpected error in tool optimizing middleware: {e}")
            return params

    def _scan_tools(self, params: dict[str, Any]) -> int:
        tools = params.get("tools")
        if not self.config.enable_tool_scanning or not tools or self.tool_map is None:
            return 0

        try:
            new_tools = self.tool_map.scan_for_tools(tools)
        except Exception as e:
            logger.error(f"Failed to scan tools: {e}")
            return 0

        provided = len(tools) if isinstance(tools, list) else 1
        safe_emit(self.metrics, "counter", "scanning_total", 1, {**self.attributes, "tools_provided": provided})
        safe_emit(self.metrics, "histogram", "new_tools_found_count", new_tools, self.attributes)
        logger.debug(f"Tool scanning completed: {new_tools} new of {provided} provided")
        return new_tools

    async def _optimize_messages(
        self,
        params: dict[str, Any],
        model: str | None,
        op_type: str,
    ) -> _StepResult:
        key = "messages" if "messages" in params else "prompt"
        source = params.get(key)
        if not isinstance(source, list):
            return _StepResult(params=params, applied=False)

        should_optimize = (
            self.config.enable_message_optimization
            and op_type not in STREAM_OPS
            and len(source) >= self.config.optimization_threshold
        )
        if not should_optimize:
            return _StepResult(params=params, applied=False, source_count=len(source), optimized_count=len(source))

        model_id = model or "unknown"
        try:
            optimized = await asyncio.wait_for(
                self.optimizer.optimize(
                    source,
                    model=model_id,
                    user_id=self.user_id,
                    chat_id=self.chat_id,
                ),
                timeout=self.config.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Message optimization timed out after {self.config.timeout_seconds}s, "
                f"sending original {len(source)} messages"
            )
            optimized = source
        except Exception as e:
            logger.error(
                f"Failed to optimize {len(source)} messages for chat {self.chat_id or 'unknown'} "
                f"({model_id}): {e}"
            )
            optimized = source

        if optimized is not source:
            logger.info(
                f"Message optimization applied: {len(source)} -> {len(optimized)} messages ({model_id})"
            )
        return _StepResult(
            params={**params, key: optimized},
            applied=optimized is not source,
            source_count=len(source),
            optimized_count=len(optimized),
        )
