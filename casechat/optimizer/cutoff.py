"""Locate the boundary of the recent, untouched user-interaction window."""

from collections.abc import Sequence
from dataclasses import dataclass, field

from casechat.optimizer.parts import Message, ToolPart

DEFAULT_PRESERVED_WINDOW = 2


@dataclass
class CutoffResult:
    """Where compaction stops, and which tool calls the recent window uses."""

    cutoff_index: int
    preserved_tool_ids: set[str] = field(default_factory=set)

    @property
    def has_cutoff(self) -> bool:
        return self.cutoff_index > 0


def find_user_interaction_cutoff(
    messages: Sequence[Message],
    preserved_window_size: int = DEFAULT_PRESERVED_WINDOW,
) -> CutoffResult:
    """Walk backwards to the N-th most recent user message.

    Everything from that message on is preserved verbatim, and every tool call
    referenced by an assistant message after it joins the preserved set.  With
    fewer than N user messages the cutoff is 0 (nothing to compact).
    """
    if preserved_window_size < 1:
        raise ValueError("preserved_window_size must be at least 1")

    preserved: set[str] = set()
    user_count = 0

    for i in range(len(messages) - 1, -1, -1):
        message = messages[i]

        if message.role == "user":
            user_count += 1
            if user_count >= preserved_window_size:
                return CutoffResult(cutoff_index=i, preserved_tool_ids=preserved)

        if message.role == "assistant":
            for part in message.parts:
                # Unclassifiable tool shapes are OtherPart and contribute nothing
                if isinstance(part, ToolPart) and part.tool_call_id:
                    preserved.add(part.tool_call_id)

    return CutoffResult(cutoff_index=0, preserved_tool_ids=preserved)
