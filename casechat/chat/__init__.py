"""Chat-level summarization helpers."""

from casechat.chat.summary import MessageRecordSummarizer, MessageSummary

__all__ = ["MessageRecordSummarizer", "MessageSummary"]
