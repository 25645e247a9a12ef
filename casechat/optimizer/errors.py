"""Exceptions raised by the compaction engine."""

from typing import Any


class CompactionError(Exception):
    """Base class for compaction failures."""


class OptimizationError(CompactionError):
    """Unexpected structural failure of a whole optimization call.

    Carries enough diagnostic data to tell which thread shape broke it.
    Callers are expected to fall back to the unabridged message list.
    """

    def __init__(
        self,
        message: str,
        cutoff_index: int | None = None,
        preserved_count: int | None = None,
        message_count: int | None = None,
    ):
        self.cutoff_index = cutoff_index
        self.preserved_count = preserved_count
        self.message_count = message_count
        super().__init__(message)

    @property
    def data(self) -> dict[str, Any]:
        return {
            "cutoff_index": self.cutoff_index,
            "preserved_count": self.preserved_count,
            "message_count": self.message_count,
        }

    def __str__(self) -> str:
        details = ", ".join(f"{k}={v}" for k, v in self.data.items() if v is not None)
        base = super().__str__()
        return f"{base} ({details})" if details else base


class PromptValidationError(CompactionError):
    """Assembled summarization prompt is empty or over the length ceiling."""


class SummarizationError(CompactionError):
    """The summarization capability failed or returned an unusable payload."""


class ToolCallRecordError(CompactionError):
    """A tool call could not be recorded durably."""
