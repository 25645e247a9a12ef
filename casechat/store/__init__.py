"""File-backed persistence for chats and tool calls."""

from casechat.store.chats import ChatStore, JsonlChatStore
from casechat.store.tool_calls import JsonlToolCallRecorder, ToolCallRecorder, ToolMap

__all__ = [
    "ChatStore",
    "JsonlChatStore",
    "JsonlToolCallRecorder",
    "ToolCallRecorder",
    "ToolMap",
]
