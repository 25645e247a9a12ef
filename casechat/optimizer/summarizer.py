"""Summary generation for grouped tool calls."""

import json
import time
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from casechat.optimizer.cache import SummaryCache, get_default_cache, hash_tool_call_sequence
from casechat.optimizer.errors import PromptValidationError, SummarizationError
from casechat.optimizer.grouping import ToolCallRecord
from casechat.optimizer.parts import Message, TextPart, ToolPart
from casechat.prompts.summarization import (
    NO_CONTEXT,
    NO_SPECIFIC_CONTEXT,
    SUMMARY_SYSTEM_PROMPT,
    TOOL_SUMMARY_PROMPT,
)
from casechat.providers.base import LLMProvider


class ToolSummary(BaseModel):
    """Structured reply of the summarization model."""

    model_config = ConfigDict(populate_by_name=True)

    summary_text: str = Field(alias="summaryText")
    short_title: str = Field(default="", alias="shortTitle")


class SummarizationCapability(ABC):
    """Anything that can turn a prompt into a ToolSummary."""

    @abstractmethod
    async def summarize(self, prompt: str) -> ToolSummary:
        """Raise SummarizationError when no usable summary can be produced."""
        pass


def _strip_fences(content: str) -> str:
    text = content.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()


class ProviderSummarizer(SummarizationCapability):
    """SummarizationCapability backed by an LLMProvider chat call."""

    def __init__(
        self,
        provider: LLMProvider,
        model: str | None = None,
        temperature: float = 0.3,
        max_tokens: int = 300,
    ):
        self.provider = provider
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def summarize(self, prompt: str) -> ToolSummary:
        response = await self.provider.chat(
            messages=[
                {"role": "system", "content": SUMMARY_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            response_format={"type": "json_object"},
        )
        if response.is_error:
            raise SummarizationError(response.content or "Summarization call failed")
        if not response.content or not response.content.strip():
            raise SummarizationError("Summarization returned empty content")

        try:
            return ToolSummary.model_validate_json(_strip_fences(response.content))
        except ValidationError as e:
            raise SummarizationError(f"Invalid summarization payload: {e}") from e


@dataclass
class SummaryOutcome:
    """Result of resolving one tool call's summary."""

    tool_call_id: str
    text: str
    cache_hit: bool = False
    fallback: bool = False
    duration_ms: float = 0.0
    error: str | None = None


class ToolCallSummarizer:
    """Resolve tool-call summaries through the cache and a summarization capability.

    A single record's failure never escapes ``summarize``: the outcome falls
    back to a generic text that is cached under the same key, so a repeated
    sequence does not hit a failing model twice.
    """

    MAX_PROMPT_CHARS = 50_000
    MAX_SUMMARY_CHARS = 300
    USER_CONTEXT_CHARS = 200
    USER_LOOKBACK = 5

    def __init__(
        self,
        capability: SummarizationCapability,
        cache: SummaryCache | None = None,
        max_prompt_chars: int = MAX_PROMPT_CHARS,
        max_summary_chars: int = MAX_SUMMARY_CHARS,
    ):
        self.capability = capability
        self.cache = cache if cache is not None else get_default_cache()
        self.max_prompt_chars = max_prompt_chars
        self.max_summary_chars = max_summary_chars

    async def summarize(
        self,
        record: ToolCallRecord,
        all_messages: Sequence[Message],
    ) -> SummaryOutcome:
        started = time.perf_counter()
        key = hash_tool_call_sequence(record.parts)

        cached = self.cache.get(key)
        if cached is not None:
            logger.debug(f"Tool summary cache hit for {record.tool_call_id} ({key[:8]})")
            return SummaryOutcome(
                tool_call_id=record.tool_call_id,
                text=cached,
                cache_hit=True,
                duration_ms=_elapsed_ms(started),
            )

        try:
            prompt = self.build_prompt(record, all_messages)
            result = await self.capability.summarize(prompt)
            text = result.summary_text.strip()
            if not text:
                raise SummarizationError("Summary text is blank")
            text = text[: self.max_summary_chars]
        except Exception as e:
            text = self.fallback_summary(record, self.max_summary_chars)
            self.cache.set(key, text)
            logger.warning(f"Tool summarization failed for {record.tool_call_id}, using fallback: {e}")
            return SummaryOutcome(
                tool_call_id=record.tool_call_id,
                text=text,
                fallback=True,
                duration_ms=_elapsed_ms(started),
                error=str(e),
            )

        self.cache.set(key, text)
        logger.debug(
            f"Generated summary for {record.tool_call_id} "
            f"({len(text)} chars, cache size {len(self.cache)})"
        )
        return SummaryOutcome(
            tool_call_id=record.tool_call_id,
            text=text,
            duration_ms=_elapsed_ms(started),
        )

    def build_prompt(self, record: ToolCallRecord, all_messages: Sequence[Message]) -> str:
        requests = [
            {"tool": part.tool_name, "args": part.input if part.input is not None else {}}
            for part in record.tool_request
        ]
        results = [
            {"tool": part.tool_name, "result": self.truncate_result(_result_of(part))}
            for part in record.tool_result
        ]
        prompt = TOOL_SUMMARY_PROMPT.format(
            context=self.extract_conversational_context(record, all_messages),
            requests=json.dumps(requests, indent=2, ensure_ascii=False, default=str),
            results=json.dumps(results, indent=2, ensure_ascii=False, default=str),
            max_chars=self.max_summary_chars,
        )
        if not prompt.strip() or len(prompt) > self.max_prompt_chars:
            raise PromptValidationError(
                f"Summarization prompt is invalid ({len(prompt)} chars, "
                f"limit {self.max_prompt_chars})"
            )
        return prompt

    def extract_conversational_context(
        self,
        record: ToolCallRecord,
        all_messages: Sequence[Message],
    ) -> str:
        """User request and assistant reasoning around the tool call."""
        if not all_messages:
            return NO_CONTEXT

        index = record.request_message_index
        if index is None or not 0 <= index < len(all_messages):
            return NO_SPECIFIC_CONTEXT

        lines: list[str] = []
        stop = max(index - self.USER_LOOKBACK, 0)
        for i in range(index - 1, stop - 1, -1):
            candidate = all_messages[i]
            if candidate.role != "user":
                continue
            user_text = candidate.text.strip()
            if user_text:
                if len(user_text) > self.USER_CONTEXT_CHARS:
                    user_text = user_text[: self.USER_CONTEXT_CHARS] + "..."
                lines.append(f"User request: {user_text}")
                break

        for part in all_messages[index].parts:
            if isinstance(part, TextPart) and part.text.strip():
                lines.append(f"Assistant reasoning: {part.text.strip()}")

        return "\n".join(lines) if lines else NO_SPECIFIC_CONTEXT

    def truncate_result(self, result: Any) -> Any:
        """Hook for shrinking large tool results before prompting.  Identity by default."""
        return result

    @staticmethod
    def fallback_summary(record: ToolCallRecord, max_chars: int = MAX_SUMMARY_CHARS) -> str:
        names = ", ".join(record.tool_names)
        return f"Tool execution completed: {names}. Data processed successfully."[:max_chars]


def _result_of(part: ToolPart) -> Any:
    if part.output is not None:
        return part.output
    if part.error_text is not None:
        return {"error": part.error_text}
    return "No result"


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000
