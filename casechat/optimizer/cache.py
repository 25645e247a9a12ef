"""Content-addressed cache for tool-call summaries."""

import hashlib
import json
from collections import OrderedDict
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from loguru import logger

from casechat.optimizer.parts import TextPart, ToolPart


def _normal_form(part: ToolPart | TextPart) -> dict[str, Any]:
    if isinstance(part, TextPart):
        return {"type": "text", "state": "state", "text": part.text}
    return {
        "type": part.type,
        "state": part.state.value,
        "toolName": part.tool_name,
        "input": part.input,
        "output": part.output,
        "errorText": part.error_text,
    }


def _canonical(value: Any) -> str:
    return json.dumps(value, sort_keys=True, ensure_ascii=False, default=str)


def hash_tool_call_sequence(parts: Iterable[ToolPart | TextPart]) -> str:
    """SHA-256 of a tool call's request/response content, independent of part order."""
    entries = [_normal_form(p) for p in parts]
    entries.sort(
        key=lambda e: (e["type"], _canonical(e.get("text", e.get("input"))), _canonical(e))
    )
    return hashlib.sha256(_canonical(entries).encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class CacheStats:
    size: int
    capacity: int
    keys: list[str]
    hits: int
    misses: int
    evictions: int
    hit_rate: float


class SummaryCache:
    """Bounded LRU map of content hash → summary text.

    Shared by every optimization call in the process.  Summaries are written
    once per key; a concurrent duplicate write carries equivalent content.
    Hit/miss counters are kept for operational visibility and can be exported
    alongside the entries when moving the cache to another store.
    """

    DEFAULT_CAPACITY = 1000
    KEY_PREVIEW = 8  # Only key prefixes are exposed in stats

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._entries: OrderedDict[str, str] = OrderedDict()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def get(self, key: str) -> str | None:
        """Look up a summary, counting the hit or miss."""
        value = self._entries.get(key)
        if value is None:
            self.record_miss()
            return None
        self._entries.move_to_end(key)
        self.record_hit()
        return value

    def peek(self, key: str) -> str | None:
        """Look up a summary without touching recency or counters."""
        return self._entries.get(key)

    def set(self, key: str, value: str) -> None:
        self._entries[key] = value
        self._entries.move_to_end(key)
        while len(self._entries) > self.capacity:
            self._entries.popitem(last=False)
            self.evictions += 1

    def record_hit(self) -> None:
        self.hits += 1

    def record_miss(self) -> None:
        self.misses += 1

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    def stats(self) -> CacheStats:
        return CacheStats(
            size=len(self._entries),
            capacity=self.capacity,
            keys=[k[: self.KEY_PREVIEW] for k in self._entries],
            hits=self.hits,
            misses=self.misses,
            evictions=self.evictions,
            hit_rate=self.hit_rate,
        )

    def clear(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0
        self.evictions = 0
        logger.info("Tool summary cache cleared")

    def export(self) -> dict[str, str]:
        """Entries in recency order (oldest first)."""
        return dict(self._entries)

    def import_entries(self, data: dict[str, str]) -> None:
        """Replace the cache content with *data*, keeping the newest entries."""
        self._entries.clear()
        for key, value in data.items():
            if isinstance(key, str) and isinstance(value, str):
                self.set(key, value)
        logger.info(f"Tool summary cache imported ({len(self._entries)} entries)")


_default_cache: SummaryCache | None = None


def get_default_cache(capacity: int = SummaryCache.DEFAULT_CAPACITY) -> SummaryCache:
    """Process-wide cache used when none is injected.

    *capacity* only applies to the call that creates it.
    """
    global _default_cache
    if _default_cache is None:
        _default_cache = SummaryCache(capacity)
    return _default_cache
