"""Message-history optimizer: summarize completed tool calls in older turns."""

import asyncio
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from casechat.config.schema import Config
from casechat.optimizer.cache import SummaryCache, get_default_cache
from casechat.optimizer.context import OptimizationContext
from casechat.optimizer.cutoff import DEFAULT_PRESERVED_WINDOW, find_user_interaction_cutoff
from casechat.optimizer.errors import OptimizationError
from casechat.optimizer.grouping import GroupingEvent, ToolCallRecord, group_tool_calls
from casechat.optimizer.parts import Message, ensure_message
from casechat.optimizer.summarizer import ProviderSummarizer, SummaryOutcome, ToolCallSummarizer
from casechat.optimizer.tokens import count_message_characters
from casechat.providers.base import LLMProvider
from casechat.store.tool_calls import JsonlToolCallRecorder, ToolCallRecorder, ToolMap
from casechat.telemetry.metrics import (
    MetricsSink,
    OpenTelemetryMetricsSink,
    hash_user_id,
    safe_emit,
)

MessageLike = Message | dict[str, Any]


def with_record_id(summary: str, persisted_id: str | None) -> str:
    """Placeholder text pointing at the stored tool call, when there is one."""
    return f"{summary} [ID: {persisted_id}]" if persisted_id else summary


@dataclass
class OptimizationResult:
    """Everything one optimization call produced."""

    messages: list[Any]
    tool_calls: dict[str, ToolCallRecord] = field(default_factory=dict)
    outcomes: list[SummaryOutcome] = field(default_factory=list)
    cutoff_index: int = 0
    preserved_tool_ids: set[str] = field(default_factory=set)
    original_characters: int = 0
    optimized_characters: int = 0
    duration_ms: float = 0.0
    errors: list[str] = field(default_factory=list)

    @property
    def optimized(self) -> bool:
        return bool(self.tool_calls)

    @property
    def character_reduction(self) -> float:
        if self.original_characters <= 0:
            return 0.0
        return (self.original_characters - self.optimized_characters) / self.original_characters


class MessageOptimizer:
    """
    Compacts a chat thread by summarizing completed tool calls.

    The most recent ``preserved_window_size`` user turns, and every tool call
    they reference, are never touched. In the older part of the thread each
    completed tool call has its request replaced by a short summary; its
    result stays visible.
    """

    def __init__(
        self,
        summarizer: ToolCallSummarizer,
        recorder: ToolCallRecorder | None = None,
        metrics: MetricsSink | None = None,
        preserved_window_size: int = DEFAULT_PRESERVED_WINDOW,
    ):
        self.summarizer = summarizer
        self.recorder = recorder
        self.metrics = metrics or OpenTelemetryMetricsSink()
        self.preserved_window_size = preserved_window_size

    @classmethod
    def from_config(
        cls,
        config: Config,
        provider: LLMProvider | None = None,
        cache: SummaryCache | None = None,
        recorder: ToolCallRecorder | None = None,
        metrics: MetricsSink | None = None,
        tool_map: ToolMap | None = None,
    ) -> "MessageOptimizer":
        """
        Wire an optimizer from configuration, defaulting to LiteLLM and JSONL storage.

        Pass the same *tool_map* the middleware scans into, so tools it
        registers are known to the recorder.
        """
        if provider is None:
            from casechat.providers.litellm_provider import LiteLLMProvider

            provider = LiteLLMProvider(
                api_key=config.get_api_key(),
                api_base=config.get_api_base(),
                default_model=config.summarizer.model,
            )

        capability = ProviderSummarizer(
            provider,
            model=config.summarizer.model,
            temperature=config.summarizer.temperature,
            max_tokens=config.summarizer.max_tokens,
        )
        summarizer = ToolCallSummarizer(
            capability,
            cache=cache if cache is not None else get_default_cache(config.cache.capacity),
            max_prompt_chars=config.optimizer.max_prompt_chars,
            max_summary_chars=config.optimizer.max_summary_chars,
        )
        if recorder is None and config.storage.record_tool_calls:
            if tool_map is None:
                tool_map = ToolMap(config.tool_calls_path / "tools.json")
            recorder = JsonlToolCallRecorder(config.tool_calls_path / "calls.jsonl", tool_map=tool_map)

        return cls(
            summarizer,
            recorder=recorder,
            metrics=metrics,
            preserved_window_size=config.optimizer.preserved_window_size,
        )

    @property
    def cache(self) -> SummaryCache:
        return self.summarizer.cache

    @property
    def tool_map(self) -> ToolMap | None:
        return self.recorder.tool_map if self.recorder is not None else None

    async def optimize(
        self,
        messages: Sequence[MessageLike],
        *,
        model: str = "unknown",
        user_id: str | None = None,
        chat_id: str | None = None,
        preserved_window_size: int | None = None,
    ) -> list[Any]:
        """Optimized copy of *messages*; the input itself when nothing applies."""
        result = await self.optimize_with_result(
            messages,
            model=model,
            user_id=user_id,
            chat_id=chat_id,
            preserved_window_size=preserved_window_size,
        )
        return result.messages

    async def optimize_or_passthrough(
        self,
        messages: Sequence[MessageLike],
        **kwargs: Any,
    ) -> list[Any]:
        """Like optimize(), but any failure returns the original messages."""
        try:
            return await self.optimize(messages, **kwargs)
        except Exception as e:
            logger.error(f"Message optimization failed, using original history: {e}")
            return messages

    async def optimize_with_result(
        self,
        messages: Sequence[MessageLike],
        *,
        model: str = "unknown",
        user_id: str | None = None,
        chat_id: str | None = None,
        preserved_window_size: int | None = None,
    ) -> OptimizationResult:
        started = time.perf_counter()
        window = self.preserved_window_size if preserved_window_size is None else preserved_window_size
        user_hash = hash_user_id(user_id)
        attributes = {"model": model, "user": user_hash}

        try:
            parsed = [ensure_message(m) for m in messages]
            cutoff = find_user_interaction_cutoff(parsed, window)
        except Exception as e:
            raise OptimizationError(
                f"Failed to locate optimization cutoff: {e}",
                message_count=len(messages),
            ) from e

        if not cutoff.has_cutoff:
            logger.debug(f"No optimization needed for {len(parsed)} messages")
            noop_attributes = {**attributes, "status": "no_optimization_needed"}
            safe_emit(self.metrics, "counter", "optimizations_total", 1, noop_attributes)
            safe_emit(
                self.metrics, "histogram", "optimization_duration_ms",
                (time.perf_counter() - started) * 1000, noop_attributes,
            )
            return OptimizationResult(
                messages=messages,
                preserved_tool_ids=set(cutoff.preserved_tool_ids),
            )

        context = OptimizationContext(
            model=model,
            user_hash=user_hash,
            chat_id=chat_id,
            cutoff_index=cutoff.cutoff_index,
            preserved_tool_ids=cutoff.preserved_tool_ids,
        )
        try:
            try:
                grouping = group_tool_calls(parsed, cutoff.cutoff_index, cutoff.preserved_tool_ids)
            except Exception as e:
                raise OptimizationError(
                    f"Failed to group tool calls: {e}",
                    cutoff_index=cutoff.cutoff_index,
                    preserved_count=len(cutoff.preserved_tool_ids),
                    message_count=len(parsed),
                ) from e

            records = list(grouping.tool_calls.values())
            outcomes, persist_errors = await self._resolve_summaries(records, parsed)
            for record, outcome in zip(records, outcomes):
                record.summary_placeholder.text = with_record_id(outcome.text, record.persisted_id)

            output = self._assemble(messages, parsed, grouping.messages)
            result = OptimizationResult(
                messages=output,
                tool_calls=grouping.tool_calls,
                outcomes=outcomes,
                cutoff_index=cutoff.cutoff_index,
                preserved_tool_ids=grouping.preserved_tool_ids,
                original_characters=count_message_characters(parsed),
                optimized_characters=count_message_characters(grouping.messages),
                errors=persist_errors,
            )

            self._log_events(grouping.events)
            result.duration_ms = (time.perf_counter() - started) * 1000
            self._emit_metrics(result, len(parsed), attributes)

            context.set_attribute("summaries.count", len(outcomes))
            context.set_attribute("characters.original", result.original_characters)
            context.set_attribute("characters.optimized", result.optimized_characters)
            logger.info(
                f"Optimized {len(parsed)} messages (cutoff {cutoff.cutoff_index}): "
                f"{len(records)} tool call(s) summarized, "
                f"{result.original_characters} -> {result.optimized_characters} chars"
            )
            return result
        except Exception as e:
            context.record_error(e)
            if isinstance(e, OptimizationError):
                raise
            raise OptimizationError(
                f"Message optimization failed: {e}",
                cutoff_index=cutoff.cutoff_index,
                preserved_count=len(cutoff.preserved_tool_ids),
                message_count=len(parsed),
            ) from e
        finally:
            context.dispose()

    # ── internal helpers ────────────────────────────────────────

    async def _resolve_summaries(
        self,
        records: list[ToolCallRecord],
        all_messages: list[Message],
    ) -> tuple[list[SummaryOutcome], list[str]]:
        if not records:
            return [], []

        logger.debug(f"Generating summaries for {len(records)} tool call sequence(s)")
        persist_errors: list[str] = []
        results = await asyncio.gather(
            *(self._resolve_record(record, all_messages, persist_errors) for record in records),
            return_exceptions=True,
        )

        outcomes: list[SummaryOutcome] = []
        for record, result in zip(records, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                logger.error(f"Summary resolution failed for {record.tool_call_id}: {result}")
                result = SummaryOutcome(
                    tool_call_id=record.tool_call_id,
                    text=self.summarizer.fallback_summary(record, self.summarizer.max_summary_chars),
                    fallback=True,
                    error=str(result),
                )
            outcomes.append(result)
        return outcomes, persist_errors

    async def _resolve_record(
        self,
        record: ToolCallRecord,
        all_messages: list[Message],
        persist_errors: list[str],
    ) -> SummaryOutcome:
        """Store the full tool call (best effort), then summarize it."""
        error = await self._persist(record)
        if error:
            persist_errors.append(error)
        return await self.summarizer.summarize(record, all_messages)

    @staticmethod
    def _assemble(
        original: Sequence[MessageLike],
        parsed: list[Message],
        grouped: list[Message],
    ) -> list[Any]:
        """Map grouped messages back to the caller's representation."""
        output: list[Any] = []
        for index, message in enumerate(grouped):
            source = original[index]
            if isinstance(source, Message):
                output.append(message)
            elif message is parsed[index]:
                output.append(source)
            else:
                output.append(message.to_dict())
        return output

    async def _persist(self, record: ToolCallRecord) -> str | None:
        if self.recorder is None:
            return None

        tool_name = record.tool_names[0] if record.tool_names else "unknown"
        try:
            record.persisted_id = await asyncio.to_thread(
                self.recorder.record_tool_call,
                tool_name=tool_name,
                message_id=record.request_message_id or record.message_id,
                provider_call_id=record.tool_call_id,
                request_parts=record.tool_request,
                response_parts=record.tool_result,
            )
        except Exception as e:
            logger.error(f"Failed to record tool call {record.tool_call_id} ({tool_name}): {e}")
            return f"{record.tool_call_id}: {e}"
        return None

    @staticmethod
    def _log_events(events: list[GroupingEvent]) -> None:
        for event in events:
            if event.kind == "unresolved_request":
                logger.debug(
                    f"Tool call {event.tool_call_id} has no result before message "
                    f"{event.message_index}, preserving it"
                )
            else:
                logger.warning(
                    f"Tool part {event.tool_call_id} in message {event.message_index} "
                    f"has an unrecognized state, kept as-is"
                )

    def _emit_metrics(
        self,
        result: OptimizationResult,
        original_count: int,
        attributes: dict[str, str],
    ) -> None:
        optimized_count = len(result.messages)
        message_ratio = (
            (original_count - optimized_count) / original_count if original_count else 0.0
        )

        emit = [
            ("counter", "optimizations_total", 1, {**attributes, "status": "optimized"}),
            ("histogram", "original_message_count", original_count, attributes),
            ("histogram", "optimized_message_count", optimized_count, attributes),
            ("histogram", "message_reduction_ratio", message_ratio, attributes),
            ("histogram", "character_reduction_ratio", result.character_reduction, attributes),
            ("histogram", "optimization_duration_ms", result.duration_ms, attributes),
            ("counter", "tool_summaries_total", len(result.outcomes), attributes),
        ]
        for outcome in result.outcomes:
            if outcome.cache_hit:
                emit.append(("counter", "cache_hits_total", 1, {"cache_type": "tool_summary"}))
                status = "cache"
            else:
                emit.append(("counter", "cache_misses_total", 1, {"cache_type": "tool_summary"}))
                status = "fallback" if outcome.fallback else "success"
            emit.append(
                ("histogram", "summary_generation_duration_ms", outcome.duration_ms,
                 {**attributes, "status": status})
            )
        emit.append(("histogram", "cache_hit_rate", self.cache.hit_rate, {"cache_type": "tool_summary"}))

        for kind, name, value, attrs in emit:
            safe_emit(self.metrics, kind, name, value, attrs)
