"""Tool-call summarization engine for chat history."""

from casechat.optimizer.cache import SummaryCache, get_default_cache, hash_tool_call_sequence
from casechat.optimizer.cutoff import CutoffResult, find_user_interaction_cutoff
from casechat.optimizer.errors import (
    CompactionError,
    OptimizationError,
    PromptValidationError,
    SummarizationError,
    ToolCallRecordError,
)
from casechat.optimizer.grouping import ToolCallRecord, group_tool_calls
from casechat.optimizer.parts import Message, extract_tool_call_ids, has_tool_calls
from casechat.optimizer.summarizer import (
    ProviderSummarizer,
    SummarizationCapability,
    ToolCallSummarizer,
    ToolSummary,
)

__all__ = [
    "CompactionError",
    "CutoffResult",
    "Message",
    "OptimizationError",
    "PromptValidationError",
    "ProviderSummarizer",
    "SummarizationCapability",
    "SummarizationError",
    "SummaryCache",
    "ToolCallRecord",
    "ToolCallRecordError",
    "ToolCallSummarizer",
    "ToolSummary",
    "extract_tool_call_ids",
    "find_user_interaction_cutoff",
    "get_default_cache",
    "group_tool_calls",
    "has_tool_calls",
    "hash_tool_call_sequence",
]
