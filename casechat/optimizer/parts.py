"""Message part model and tool-state classification.

Chat messages arrive as loosely-typed dicts (UI message shape: ``parts`` list,
or a compatibility ``content`` list).  They are converted once, here, into a
closed set of part types so the rest of the optimizer never has to guess.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Union


class ToolState(str, Enum):
    """Lifecycle state of a single tool invocation part."""

    INPUT_STREAMING = "input-streaming"
    INPUT_AVAILABLE = "input-available"
    OUTPUT_AVAILABLE = "output-available"
    OUTPUT_ERROR = "output-error"


INPUT_STATES = frozenset({ToolState.INPUT_STREAMING, ToolState.INPUT_AVAILABLE})
OUTPUT_STATES = frozenset({ToolState.OUTPUT_AVAILABLE, ToolState.OUTPUT_ERROR})

TOOL_TYPE_PREFIX = "tool-"


def classify_state(state: Any) -> ToolState | None:
    """Return the ToolState for a raw value, or None if it is not one."""
    if isinstance(state, ToolState):
        return state
    if not isinstance(state, str):
        return None
    try:
        return ToolState(state)
    except ValueError:
        return None


def is_input_state(state: Any) -> bool:
    return classify_state(state) in INPUT_STATES


def is_output_state(state: Any) -> bool:
    return classify_state(state) in OUTPUT_STATES


def is_tool_part(value: Any) -> bool:
    """A part is a tool part iff it has a ``type`` and a recognised ``state``."""
    if not isinstance(value, dict):
        return False
    if "type" not in value or "state" not in value:
        return False
    return classify_state(value["state"]) is not None


def resolve_tool_name(value: dict[str, Any]) -> str:
    """Tool name from ``toolName``, falling back to the ``tool-<name>`` type."""
    name = value.get("toolName")
    if isinstance(name, str) and name:
        return name
    part_type = str(value.get("type") or "")
    if part_type.startswith(TOOL_TYPE_PREFIX):
        return part_type[len(TOOL_TYPE_PREFIX):]
    return part_type or "unknown"


@dataclass
class TextPart:
    """Plain text content.  Mutable: summary placeholders are filled in later."""

    text: str
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    def to_dict(self) -> dict[str, Any]:
        return {**self.raw, "type": "text", "text": self.text}


@dataclass(frozen=True)
class ToolPart:
    """One fragment of a tool invocation (request or response)."""

    type: str
    state: ToolState
    tool_call_id: str | None
    tool_name: str
    input: Any = None
    output: Any = None
    error_text: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @property
    def is_input(self) -> bool:
        return self.state in INPUT_STATES

    @property
    def is_output(self) -> bool:
        return self.state in OUTPUT_STATES

    def to_dict(self) -> dict[str, Any]:
        if self.raw:
            return dict(self.raw)
        data: dict[str, Any] = {
            "type": self.type,
            "state": self.state.value,
            "toolName": self.tool_name,
        }
        if self.tool_call_id is not None:
            data["toolCallId"] = self.tool_call_id
        if self.input is not None:
            data["input"] = self.input
        if self.output is not None:
            data["output"] = self.output
        if self.error_text is not None:
            data["errorText"] = self.error_text
        return data


@dataclass(frozen=True)
class OtherPart:
    """Anything else (step markers, files, malformed tool parts).  Passed through."""

    data: Any

    def to_dict(self) -> Any:
        return dict(self.data) if isinstance(self.data, dict) else self.data


Part = Union[TextPart, ToolPart, OtherPart]


def parse_part(value: Any) -> Part:
    """Convert a raw part into the Part sum type.  Never raises."""
    if not isinstance(value, dict):
        return OtherPart(value)

    if value.get("type") == "text" and isinstance(value.get("text"), str):
        return TextPart(value["text"], raw=dict(value))

    if is_tool_part(value):
        call_id = value.get("toolCallId")
        return ToolPart(
            type=str(value["type"]),
            state=classify_state(value["state"]),
            tool_call_id=call_id if isinstance(call_id, str) and call_id else None,
            tool_name=resolve_tool_name(value),
            input=value.get("input", value.get("args")),
            output=value.get("output", value.get("result")),
            error_text=value.get("errorText"),
            raw=dict(value),
        )

    return OtherPart(value)


def part_tool_call_id(part: Part) -> str | None:
    """Tool call id carried by a part, including unclassifiable tool shapes."""
    if isinstance(part, ToolPart):
        return part.tool_call_id
    if isinstance(part, OtherPart) and isinstance(part.data, dict):
        call_id = part.data.get("toolCallId")
        if isinstance(call_id, str) and call_id:
            return call_id
    return None


# Where the parts of a message were read from, so they can be written back there.
PARTS_KEY = "parts"
CONTENT_KEY = "content"
CONTENT_TEXT = "content:text"


@dataclass
class Message:
    """A single chat turn."""

    role: str
    parts: list[Part] = field(default_factory=list)
    id: str | None = None
    extra: dict[str, Any] = field(default_factory=dict, repr=False)
    source_key: str = PARTS_KEY

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Message":
        if not isinstance(data, dict):
            raise TypeError(f"Message must be a dict, got {type(data).__name__}")

        raw_parts = data.get("parts")
        content = data.get("content")
        if isinstance(raw_parts, list):
            source_key = PARTS_KEY
        elif isinstance(content, list):
            source_key = CONTENT_KEY
            raw_parts = content
        elif isinstance(content, str):
            source_key = CONTENT_TEXT
            raw_parts = [{"type": "text", "text": content}] if content else []
        else:
            source_key = PARTS_KEY
            raw_parts = []

        consumed = {"role", "id", "parts" if source_key == PARTS_KEY else "content"}
        message_id = data.get("id")
        return cls(
            role=str(data.get("role", "")),
            parts=[parse_part(p) for p in raw_parts],
            id=str(message_id) if message_id is not None else None,
            extra={k: v for k, v in data.items() if k not in consumed},
            source_key=source_key,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"role": self.role}
        if self.id is not None:
            data["id"] = self.id
        data.update(self.extra)
        if self.source_key == CONTENT_TEXT and all(isinstance(p, TextPart) for p in self.parts):
            data["content"] = "".join(p.text for p in self.parts)
        elif self.source_key == PARTS_KEY:
            data["parts"] = [p.to_dict() for p in self.parts]
        else:
            data["content"] = [p.to_dict() for p in self.parts]
        return data

    def with_parts(self, parts: list[Part]) -> "Message":
        """Return a copy of this message carrying *parts*."""
        return replace(self, parts=list(parts), extra=dict(self.extra))

    @property
    def text(self) -> str:
        return " ".join(p.text for p in self.parts if isinstance(p, TextPart))


def ensure_message(value: "Message | dict[str, Any]") -> Message:
    return value if isinstance(value, Message) else Message.from_dict(value)


def extract_tool_call_ids(message: "Message | dict[str, Any]") -> list[str]:
    """Unique tool call ids of an assistant message, in first-seen order."""
    if not isinstance(message, (Message, dict)):
        return []
    message = ensure_message(message)
    if message.role != "assistant":
        return []
    seen: dict[str, None] = {}
    for part in message.parts:
        call_id = part_tool_call_id(part)
        if call_id:
            seen.setdefault(call_id, None)
    return list(seen)


def has_tool_calls(message: "Message | dict[str, Any]") -> bool:
    """Check if an assistant message carries any tool invocation."""
    return bool(extract_tool_call_ids(message))
