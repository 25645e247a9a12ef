"""Group completed tool calls in the older part of a thread.

The scan runs last-to-first over messages, and last-to-first over the parts of
each message, so the most recent fragment of any call is always met first.  A
call is only summarized once its outcome has been seen; requests are swapped
for the call's summary placeholder, responses stay visible.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from casechat.optimizer.parts import (
    Message,
    Part,
    TextPart,
    ToolPart,
    ToolState,
    part_tool_call_id,
)

PLACEHOLDER_TEXT = "[TOOL SUMMARY LOADING...]"


@dataclass
class ToolCallRecord:
    """Everything known about one summarizable tool call."""

    tool_call_id: str
    message_id: str
    tool_request: list[ToolPart] = field(default_factory=list)
    tool_result: list[ToolPart] = field(default_factory=list)
    # Shared by reference with every rewritten message that shows it
    summary_placeholder: TextPart = field(
        default_factory=lambda: TextPart(PLACEHOLDER_TEXT)
    )
    request_message_id: str | None = None
    request_message_index: int | None = None
    persisted_id: str | None = None

    @property
    def parts(self) -> list[ToolPart]:
        return [*self.tool_request, *self.tool_result]

    @property
    def tool_names(self) -> list[str]:
        """Distinct tool names, requests first."""
        names: dict[str, None] = {}
        for part in self.parts:
            names.setdefault(part.tool_name, None)
        return list(names)


@dataclass(frozen=True)
class GroupingEvent:
    """Something noteworthy met during the scan, reported after the fact."""

    kind: str  # "unresolved_request" | "unrecognized_state" | "unclassified_tool_part"
    tool_call_id: str
    message_index: int


@dataclass
class GroupingResult:
    messages: list[Message]
    tool_calls: dict[str, ToolCallRecord]
    preserved_tool_ids: set[str]
    events: list[GroupingEvent] = field(default_factory=list)


def group_tool_calls(
    messages: Sequence[Message],
    cutoff_index: int,
    preserved_tool_ids: Iterable[str] = (),
) -> GroupingResult:
    """Partition messages before *cutoff_index* into tool-call records.

    Returns the rewritten prefix followed by the untouched suffix.  Messages
    that needed no change are returned as the same objects.  The caller's
    preserved set is copied; ids of unresolved requests are added to the copy.
    """
    if not 0 <= cutoff_index <= len(messages):
        raise ValueError(
            f"cutoff_index {cutoff_index} out of range for {len(messages)} messages"
        )

    preserved = set(preserved_tool_ids)
    tool_calls: dict[str, ToolCallRecord] = {}
    events: list[GroupingEvent] = []
    prefix: list[Message] = []

    for index in range(cutoff_index - 1, -1, -1):
        message = messages[index]
        parts, dirty = _scan_message(message, index, tool_calls, preserved, events)
        prefix.append(message.with_parts(parts) if dirty else message)

    prefix.reverse()
    return GroupingResult(
        messages=prefix + list(messages[cutoff_index:]),
        tool_calls=tool_calls,
        preserved_tool_ids=preserved,
        events=events,
    )


def _scan_message(
    message: Message,
    index: int,
    tool_calls: dict[str, ToolCallRecord],
    preserved: set[str],
    events: list[GroupingEvent],
) -> tuple[list[Part], bool]:
    kept: list[Part] = []
    dirty = False
    # One placeholder per call within a single message
    summarized: set[str] = set()
    message_id = message.id or f"msg-{index}"

    for part in reversed(message.parts):
        if not isinstance(part, ToolPart):
            call_id = part_tool_call_id(part)
            if call_id and call_id not in preserved:
                kind = "unrecognized_state" if call_id in tool_calls else "unclassified_tool_part"
                events.append(GroupingEvent(kind, call_id, index))
            kept.append(part)
            continue

        call_id = part.tool_call_id
        if not call_id or call_id in preserved:
            kept.append(part)
            continue

        record = tool_calls.get(call_id)

        if record is None:
            if part.is_output:
                tool_calls[call_id] = ToolCallRecord(
                    tool_call_id=call_id,
                    message_id=message_id,
                    tool_result=[part],
                )
                dirty = True
            else:
                # Request with no known outcome: never summarize it
                preserved.add(call_id)
                events.append(GroupingEvent("unresolved_request", call_id, index))
            kept.append(part)
            continue

        if part.state is ToolState.INPUT_AVAILABLE:
            record.tool_request.insert(0, part)
            if record.request_message_id is None:
                record.request_message_id = message_id
                record.request_message_index = index
            if call_id not in summarized:
                summarized.add(call_id)
                kept.append(record.summary_placeholder)
            dirty = True
        elif part.state is ToolState.INPUT_STREAMING:
            # Superseded by the settled request
            dirty = True
        else:
            record.tool_result.insert(0, part)
            kept.append(part)

    kept.reverse()
    return kept, dirty
