"""Tests for tool-call summary generation."""

import json
from unittest.mock import AsyncMock

import pytest

from casechat.optimizer.cache import SummaryCache, hash_tool_call_sequence
from casechat.optimizer.errors import PromptValidationError, SummarizationError
from casechat.optimizer.grouping import ToolCallRecord
from casechat.optimizer.parts import Message, parse_part
from casechat.optimizer.summarizer import ProviderSummarizer, ToolCallSummarizer, ToolSummary
from casechat.providers.base import LLMResponse


def tool(call_id, state, name="search", **extra):
    return parse_part({"type": f"tool-{name}", "toolCallId": call_id, "state": state, **extra})


def make_record(call_id="T1", name="search", request_index=1):
    return ToolCallRecord(
        tool_call_id=call_id,
        message_id="t1",
        tool_request=[tool(call_id, "input-available", name=name, input={"q": "policy"})],
        tool_result=[tool(call_id, "output-available", name=name, output={"hits": 3})],
        request_message_id="a1",
        request_message_index=request_index,
    )


def thread():
    return [
        Message.from_dict({"role": "user", "content": "Find the retention policy"}),
        Message.from_dict({
            "role": "assistant",
            "parts": [
                {"type": "text", "text": "Searching the policy store."},
                {"type": "tool-search", "toolCallId": "T1", "state": "input-available", "input": {"q": "policy"}},
            ],
        }),
    ]


def capability(text="Searched policy store, found 3 matches.", title="Policy search"):
    cap = AsyncMock()
    cap.summarize = AsyncMock(return_value=ToolSummary(summary_text=text, short_title=title))
    return cap


# ── ToolCallSummarizer ──────────────────────────────────────────


class TestToolCallSummarizer:
    @pytest.mark.asyncio
    async def test_cache_hit_skips_capability(self):
        cache = SummaryCache()
        record = make_record()
        cache.set(hash_tool_call_sequence(record.parts), "Searched policy store, found 3 matches.")
        cap = capability()

        outcome = await ToolCallSummarizer(cap, cache=cache).summarize(record, thread())

        assert outcome.cache_hit
        assert outcome.text == "Searched policy store, found 3 matches."
        cap.summarize.assert_not_called()
        assert cache.hits == 1
        assert cache.misses == 0

    @pytest.mark.asyncio
    async def test_miss_generates_and_caches(self):
        cache = SummaryCache()
        record = make_record()
        cap = capability()

        outcome = await ToolCallSummarizer(cap, cache=cache).summarize(record, thread())

        assert not outcome.cache_hit and not outcome.fallback
        assert outcome.text == "Searched policy store, found 3 matches."
        assert cache.peek(hash_tool_call_sequence(record.parts)) == outcome.text
        assert cache.misses == 1

    @pytest.mark.asyncio
    async def test_summary_clamped(self):
        cap = capability(text="x" * 500)
        outcome = await ToolCallSummarizer(cap, cache=SummaryCache()).summarize(make_record(), thread())
        assert len(outcome.text) == 300

    @pytest.mark.asyncio
    async def test_failure_falls_back_and_caches(self):
        cache = SummaryCache()
        record = make_record()
        cap = AsyncMock()
        cap.summarize = AsyncMock(side_effect=SummarizationError("model down"))

        outcome = await ToolCallSummarizer(cap, cache=cache).summarize(record, thread())

        assert outcome.fallback
        assert outcome.text == "Tool execution completed: search. Data processed successfully."
        assert outcome.error == "model down"
        assert cache.peek(hash_tool_call_sequence(record.parts)) == outcome.text

    @pytest.mark.asyncio
    async def test_blank_summary_falls_back(self):
        cap = capability(text="   ")
        outcome = await ToolCallSummarizer(cap, cache=SummaryCache()).summarize(make_record(), thread())
        assert outcome.fallback

    @pytest.mark.asyncio
    async def test_oversized_prompt_falls_back(self):
        cap = capability()
        summarizer = ToolCallSummarizer(cap, cache=SummaryCache(), max_prompt_chars=100)
        outcome = await summarizer.summarize(make_record(), thread())
        assert outcome.fallback
        cap.summarize.assert_not_called()

    def test_build_prompt_rejects_oversized(self):
        summarizer = ToolCallSummarizer(capability(), cache=SummaryCache(), max_prompt_chars=100)
        with pytest.raises(PromptValidationError):
            summarizer.build_prompt(make_record(), thread())

    def test_build_prompt_contents(self):
        prompt = ToolCallSummarizer(capability(), cache=SummaryCache()).build_prompt(make_record(), thread())
        assert "User request: Find the retention policy" in prompt
        assert "Assistant reasoning: Searching the policy store." in prompt
        assert '"q": "policy"' in prompt
        assert '"hits": 3' in prompt

    def test_fallback_names_unique_requests_first(self):
        record = ToolCallRecord(
            tool_call_id="T1",
            message_id="m",
            tool_request=[tool("T1", "input-available", name="lookup")],
            tool_result=[
                tool("T1", "output-error", name="fetch"),
                tool("T1", "output-available", name="lookup"),
            ],
        )
        assert ToolCallSummarizer.fallback_summary(record) == (
            "Tool execution completed: lookup, fetch. Data processed successfully."
        )

    @pytest.mark.asyncio
    async def test_fallback_clamped(self):
        long_name = "n" * 400
        record = ToolCallRecord(
            tool_call_id="T1",
            message_id="m",
            tool_request=[tool("T1", "input-available", name=long_name)],
            tool_result=[tool("T1", "output-available", name=long_name)],
        )
        cap = AsyncMock()
        cap.summarize = AsyncMock(side_effect=SummarizationError("model down"))

        outcome = await ToolCallSummarizer(cap, cache=SummaryCache()).summarize(record, [])

        assert outcome.fallback
        assert len(outcome.text) == 300
        assert outcome.text.startswith("Tool execution completed: nnn")


class TestConversationalContext:
    def test_no_messages(self):
        summarizer = ToolCallSummarizer(capability(), cache=SummaryCache())
        assert summarizer.extract_conversational_context(make_record(), []) == "No conversational context available."

    def test_user_text_truncated(self):
        messages = [
            Message.from_dict({"role": "user", "content": "a" * 250}),
            Message.from_dict({"role": "assistant", "parts": []}),
        ]
        summarizer = ToolCallSummarizer(capability(), cache=SummaryCache())
        context = summarizer.extract_conversational_context(make_record(), messages)
        assert context == "User request: " + "a" * 200 + "..."

    def test_lookback_limited(self):
        messages = [Message.from_dict({"role": "user", "content": "too far"})]
        messages += [Message.from_dict({"role": "assistant", "content": "filler"}) for _ in range(6)]
        record = make_record(request_index=6)
        summarizer = ToolCallSummarizer(capability(), cache=SummaryCache())
        assert "too far" not in summarizer.extract_conversational_context(record, messages)

    def test_nothing_found(self):
        messages = [Message.from_dict({"role": "assistant", "parts": []})] * 2
        summarizer = ToolCallSummarizer(capability(), cache=SummaryCache())
        assert summarizer.extract_conversational_context(make_record(), messages) == (
            "No specific conversational context found."
        )


# ── ProviderSummarizer ──────────────────────────────────────────


class TestProviderSummarizer:
    @pytest.mark.asyncio
    async def test_parses_json(self):
        provider = AsyncMock()
        provider.chat = AsyncMock(return_value=LLMResponse(
            content=json.dumps({"summaryText": "Found 3 matches.", "shortTitle": "Policy search"}),
        ))
        result = await ProviderSummarizer(provider, model="m").summarize("prompt")

        assert result.summary_text == "Found 3 matches."
        assert result.short_title == "Policy search"
        kwargs = provider.chat.call_args.kwargs
        assert kwargs["temperature"] == 0.3
        assert kwargs["max_tokens"] == 300
        assert kwargs["response_format"] == {"type": "json_object"}

    @pytest.mark.asyncio
    async def test_strips_code_fences(self):
        provider = AsyncMock()
        provider.chat = AsyncMock(return_value=LLMResponse(
            content='```json\n{"summaryText": "ok"}\n```',
        ))
        result = await ProviderSummarizer(provider).summarize("prompt")
        assert result.summary_text == "ok"
        assert result.short_title == ""

    @pytest.mark.asyncio
    async def test_error_response_raises(self):
        provider = AsyncMock()
        provider.chat = AsyncMock(return_value=LLMResponse(
            content="Error calling LLM: timeout", finish_reason="error",
        ))
        with pytest.raises(SummarizationError):
            await ProviderSummarizer(provider).summarize("prompt")

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self):
        provider = AsyncMock()
        provider.chat = AsyncMock(return_value=LLMResponse(content="not json"))
        with pytest.raises(SummarizationError):
            await ProviderSummarizer(provider).summarize("prompt")

    @pytest.mark.asyncio
    async def test_empty_content_raises(self):
        provider = AsyncMock()
        provider.chat = AsyncMock(return_value=LLMResponse(content=""))
        with pytest.raises(SummarizationError):
            await ProviderSummarizer(provider).summarize("prompt")
