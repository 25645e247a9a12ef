"""Approximate context-size accounting for message lists."""

import json
from collections.abc import Iterable

from casechat.optimizer.parts import Message, Part, TextPart, ensure_message

CHARS_PER_TOKEN = 4  # Cross-model estimate (EN text/code/JSON)
MESSAGE_OVERHEAD_TOKENS = 4  # role, separators


def estimate_tokens(text: str) -> int:
    """Estimate token count from character count."""
    return len(text) // CHARS_PER_TOKEN


def part_characters(part: Part) -> int:
    """Characters a part contributes to the context.

    Text counts its text; every other part counts its compact JSON encoding.
    """
    if isinstance(part, TextPart):
        return len(part.text)
    return len(json.dumps(part.to_dict(), separators=(",", ":"), default=str))


def count_message_characters(messages: Iterable[Message | dict]) -> int:
    """Total characters across all parts of all messages."""
    total = 0
    for msg in messages:
        total += sum(part_characters(p) for p in ensure_message(msg).parts)
    return total


def estimate_message_tokens(messages: Iterable[Message | dict]) -> int:
    """Estimate total tokens for a message list."""
    total = 0
    for msg in messages:
        total += MESSAGE_OVERHEAD_TOKENS
        total += count_message_characters([msg]) // CHARS_PER_TOKEN
    return total
