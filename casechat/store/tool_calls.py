"""Durable tool registry and tool-call records (JSON / JSONL files)."""

import json
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from loguru import logger

from casechat.optimizer.errors import ToolCallRecordError
from casechat.optimizer.parts import ToolPart
from casechat.utils.helpers import get_tool_calls_path


@dataclass
class ToolEntry:
    """One registered tool."""
    tool_id: str
    tool_name: str
    description: str = ""
    input_schema: str = '{"type": "object"}'
    provider_options: str | None = None


class ToolMap:
    """
    Two-way map between tool names and their stable ids.

    Backed by a JSON file so ids survive restarts. Lookups accept either
    a tool id or a tool name.
    """

    def __init__(self, path: Path | None = None):
        self.path = path
        self._lock = threading.Lock()
        self._by_id: dict[str, ToolEntry] = {}
        self._name_to_id: dict[str, str] = {}
        if path and path.exists():
            self._load()

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, id_or_name: object) -> bool:
        return isinstance(id_or_name, str) and self.record(id_or_name) is not None

    @property
    def entries(self) -> list[ToolEntry]:
        return list(self._by_id.values())

    def record(self, id_or_name: str) -> ToolEntry | None:
        if id_or_name in self._by_id:
            return self._by_id[id_or_name]
        tool_id = self._name_to_id.get(id_or_name)
        return self._by_id.get(tool_id) if tool_id else None

    def id_for(self, id_or_name: str) -> str | None:
        entry = self.record(id_or_name)
        return entry.tool_id if entry else None

    def id_or_throw(self, id_or_name: str) -> str:
        tool_id = self.id_for(id_or_name)
        if tool_id is None and self.path and self.path.exists():
            # Another map over the same file may have registered it since we loaded
            self.reload()
            tool_id = self.id_for(id_or_name)
        if tool_id is None:
            raise ToolCallRecordError(f"Tool id not found: {id_or_name}")
        return tool_id

    def get_or_create(self, tool_name: str, description: str = "") -> str:
        """Return the id for *tool_name*, registering it if unknown."""
        with self._lock:
            existing = self.id_for(tool_name)
            if existing:
                return existing
            entry = ToolEntry(tool_id=str(uuid.uuid4()), tool_name=tool_name, description=description)
            self._add(entry)
            self.save()
        return entry.tool_id

    def scan_for_tools(self, tools: list[dict[str, Any]] | dict[str, Any]) -> int:
        """
        Register tool definitions that are not yet known.

        Accepts AI-SDK shapes (``function`` / ``provider-defined``) and the
        OpenAI ``{"type": "function", "function": {...}}`` shape.

        Returns:
            Number of newly registered tools.
        """
        if isinstance(tools, dict):
            tools = [tools]

        added = 0
        with self._lock:
            for tool in tools:
                entry = self._entry_from_definition(tool)
                if entry is None or entry.tool_name in self._name_to_id:
                    continue
                self._add(entry)
                added += 1

            if added:
                self.save()
                logger.debug(f"Registered {added} new tool(s) in tool map")
        return added

    def reload(self) -> None:
        """Merge entries written to the backing file by other maps."""
        with self._lock:
            self._load()

    def save(self) -> None:
        if not self.path:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = {"tools": [asdict(e) for e in self._by_id.values()]}
        self.path.write_text(json.dumps(data, indent=2, ensure_ascii=False))

    def _add(self, entry: ToolEntry) -> None:
        self._by_id[entry.tool_id] = entry
        self._name_to_id[entry.tool_name] = entry.tool_id

    def _load(self) -> None:
        try:
            data = json.loads(self.path.read_text())
            for raw in data.get("tools", []):
                self._add(ToolEntry(**raw))
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning(f"Failed to load tool map from {self.path}: {e}")

    @staticmethod
    def _entry_from_definition(tool: Any) -> ToolEntry | None:
        if not isinstance(tool, dict):
            return None
        tool_type = tool.get("type")

        if tool_type == "function" and isinstance(tool.get("function"), dict):
            fn = tool["function"]
            name = fn.get("name")
            if not name:
                return None
            return ToolEntry(
                tool_id=str(uuid.uuid4()),
                tool_name=name,
                description=fn.get("description") or "",
                input_schema=json.dumps(fn.get("parameters") or {"type": "object"}),
            )
        if tool_type == "function":
            name = tool.get("name")
            if not name:
                return None
            options = tool.get("providerOptions")
            return ToolEntry(
                tool_id=str(uuid.uuid4()),
                tool_name=name,
                description=tool.get("description") or "",
                input_schema=json.dumps(tool.get("inputSchema") or {"type": "object"}),
                provider_options=json.dumps(options) if options else None,
            )
        if tool_type == "provider-defined":
            name = tool.get("name")
            if not name:
                return None
            return ToolEntry(
                tool_id=str(uuid.uuid4()),
                tool_name=name,
                description=f"provider-defined tool: {tool.get('id') or ''}",
                input_schema=json.dumps(tool.get("args") or {"type": "object"}),
            )

        logger.warning(f"Unknown tool type in scan_for_tools: {tool_type}")
        return None


class ToolCallRecorder(ABC):
    """Durable store of completed tool calls."""

    tool_map: ToolMap | None = None

    @abstractmethod
    def record_tool_call(
        self,
        tool_name: str,
        message_id: str,
        provider_call_id: str,
        request_parts: list[ToolPart],
        response_parts: list[ToolPart],
    ) -> str:
        """
        Persist one tool call.

        Returns:
            The store's id for the new record. Not idempotent.

        Raises:
            ToolCallRecordError: the tool is unknown or the write failed.
        """
        pass


def serialize_request(parts: list[ToolPart]) -> list[dict[str, Any]]:
    return [
        {
            "type": p.type,
            "state": p.state.value,
            "toolName": p.tool_name,
            "input": p.input,
        }
        for p in parts
    ]


def serialize_response(parts: list[ToolPart]) -> list[dict[str, Any]]:
    return [
        {
            "type": p.type,
            "state": p.state.value,
            "toolName": p.tool_name,
            "output": p.output,
            "errorText": p.error_text,
        }
        for p in parts
    ]


class JsonlToolCallRecorder(ToolCallRecorder):
    """
    Appends one JSON line per recorded tool call.

    Layout:
        ~/.casechat/tool_calls/
        ├── tools.json        # ToolMap
        └── calls.jsonl       # one record per line
    """

    def __init__(
        self,
        path: Path | None = None,
        tool_map: ToolMap | None = None,
        register_unknown: bool = False,
    ):
        root = get_tool_calls_path() if path is None else path.parent
        self.path = path or root / "calls.jsonl"
        self.tool_map = tool_map if tool_map is not None else ToolMap(root / "tools.json")
        # Offline runs never see tool definitions, so names are registered on first use
        self.register_unknown = register_unknown
        self._write_lock = threading.Lock()

    def record_tool_call(
        self,
        tool_name: str,
        message_id: str,
        provider_call_id: str,
        request_parts: list[ToolPart],
        response_parts: list[ToolPart],
    ) -> str:
        if self.register_unknown:
            tool_id = self.tool_map.get_or_create(tool_name)
        else:
            tool_id = self.tool_map.id_or_throw(tool_name)
        record_id = str(uuid.uuid4())
        entry = {
            "chat_tool_call_id": record_id,
            "chat_tool_id": tool_id,
            "tool_name": tool_name,
            "message_id": message_id,
            "provider_id": provider_call_id,
            "input": json.dumps(serialize_request(request_parts), default=str),
            "output": json.dumps(serialize_response(response_parts), default=str),
            "timestamp": datetime.now().isoformat(),
        }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self._write_lock, self.path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(entry, ensure_ascii=False) + "\n")
        except OSError as e:
            raise ToolCallRecordError(f"Failed to write tool call {provider_call_id}: {e}") from e
        return record_id

    def list_records(self) -> list[dict[str, Any]]:
        """Read back every recorded tool call, oldest first."""
        if not self.path.exists():
            return []
        records = []
        with self.path.open(encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line:
                    records.append(json.loads(line))
        return records
