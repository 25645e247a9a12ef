"""Tests for the tool map and JSONL tool-call recorder."""

import json

import pytest

from casechat.optimizer.errors import ToolCallRecordError
from casechat.optimizer.parts import parse_part
from casechat.store.tool_calls import JsonlToolCallRecorder, ToolMap


def tool(call_id, state, name="search", **extra):
    return parse_part({"type": f"tool-{name}", "toolCallId": call_id, "state": state, **extra})


# ── ToolMap ─────────────────────────────────────────────────────


class TestToolMap:
    def test_get_or_create_is_stable(self, tmp_path):
        tool_map = ToolMap(tmp_path / "tools.json")
        first = tool_map.get_or_create("search")
        assert tool_map.get_or_create("search") == first
        assert len(tool_map) == 1

    def test_lookup_by_id_or_name(self, tmp_path):
        tool_map = ToolMap(tmp_path / "tools.json")
        tool_id = tool_map.get_or_create("search")
        assert tool_map.id_for("search") == tool_id
        assert tool_map.id_for(tool_id) == tool_id
        assert "search" in tool_map
        assert tool_map.record(tool_id).tool_name == "search"

    def test_id_or_throw(self, tmp_path):
        tool_map = ToolMap(tmp_path / "tools.json")
        with pytest.raises(ToolCallRecordError):
            tool_map.id_or_throw("missing")

    def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "tools.json"
        tool_id = ToolMap(path).get_or_create("search")
        assert ToolMap(path).id_for("search") == tool_id

    def test_scan_counts_new_tools(self, tmp_path):
        tool_map = ToolMap(tmp_path / "tools.json")
        tools = [
            {"type": "function", "name": "a", "inputSchema": {"type": "object"}},
            {"type": "function", "function": {"name": "b", "parameters": {"type": "object"}}},
            {"type": "provider-defined", "name": "c", "id": "x.c"},
            {"type": "mystery", "name": "d"},
        ]
        assert tool_map.scan_for_tools(tools) == 3
        assert tool_map.scan_for_tools(tools) == 0
        assert tool_map.record("c").description == "provider-defined tool: x.c"

    def test_scan_single_definition(self, tmp_path):
        tool_map = ToolMap(tmp_path / "tools.json")
        assert tool_map.scan_for_tools({"type": "function", "name": "solo"}) == 1

    def test_id_or_throw_sees_other_maps(self, tmp_path):
        path = tmp_path / "tools.json"
        reader = ToolMap(path)
        writer = ToolMap(path)
        writer.scan_for_tools([{"type": "function", "name": "search"}])

        assert reader.id_or_throw("search") == writer.id_for("search")

    def test_corrupt_file_ignored(self, tmp_path):
        path = tmp_path / "tools.json"
        path.write_text("{not json")
        assert len(ToolMap(path)) == 0

    def test_in_memory(self):
        tool_map = ToolMap()
        tool_map.get_or_create("search")
        assert len(tool_map) == 1


# ── JsonlToolCallRecorder ───────────────────────────────────────


class TestJsonlToolCallRecorder:
    def test_records_one_line(self, tmp_path):
        tool_map = ToolMap(tmp_path / "tools.json")
        tool_id = tool_map.get_or_create("search")
        recorder = JsonlToolCallRecorder(tmp_path / "calls.jsonl", tool_map=tool_map)

        record_id = recorder.record_tool_call(
            tool_name="search",
            message_id="a1",
            provider_call_id="T1",
            request_parts=[tool("T1", "input-available", input={"q": "x"})],
            response_parts=[tool("T1", "output-error", errorText="timeout")],
        )

        records = recorder.list_records()
        assert len(records) == 1
        entry = records[0]
        assert entry["chat_tool_call_id"] == record_id
        assert entry["chat_tool_id"] == tool_id
        assert entry["provider_id"] == "T1"
        assert json.loads(entry["input"]) == [
            {"type": "tool-search", "state": "input-available", "toolName": "search", "input": {"q": "x"}}
        ]
        assert json.loads(entry["output"])[0]["errorText"] == "timeout"

    def test_not_idempotent(self, tmp_path):
        tool_map = ToolMap()
        tool_map.get_or_create("search")
        recorder = JsonlToolCallRecorder(tmp_path / "calls.jsonl", tool_map=tool_map)
        args = dict(tool_name="search", message_id="a", provider_call_id="T1", request_parts=[], response_parts=[])
        assert recorder.record_tool_call(**args) != recorder.record_tool_call(**args)
        assert len(recorder.list_records()) == 2

    def test_unknown_tool_raises(self, tmp_path):
        recorder = JsonlToolCallRecorder(tmp_path / "calls.jsonl", tool_map=ToolMap())
        with pytest.raises(ToolCallRecordError):
            recorder.record_tool_call("nope", "a", "T1", [], [])
        assert recorder.list_records() == []

    def test_register_unknown(self, tmp_path):
        recorder = JsonlToolCallRecorder(tmp_path / "calls.jsonl", register_unknown=True)
        recorder.record_tool_call("search", "a", "T1", [], [])

        assert recorder.list_records()[0]["chat_tool_id"] == recorder.tool_map.id_for("search")
        assert ToolMap(tmp_path / "tools.json").id_for("search")

    def test_default_tool_map_next_to_file(self, tmp_path):
        recorder = JsonlToolCallRecorder(tmp_path / "calls.jsonl")
        assert recorder.tool_map.path == tmp_path / "tools.json"
