"""Path and filename helpers."""

import re
from pathlib import Path


def ensure_dir(path: Path) -> Path:
    """Create *path* (and parents) if missing and return it."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_path() -> Path:
    """Root data directory, ~/.casechat."""
    return ensure_dir(Path.home() / ".casechat")


def get_chats_path() -> Path:
    return ensure_dir(get_data_path() / "chats")


def get_tool_calls_path() -> Path:
    return ensure_dir(get_data_path() / "tool_calls")


_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def safe_filename(name: str) -> str:
    """Replace characters that are unsafe in file names with underscores."""
    cleaned = _UNSAFE.sub("_", name).strip("._")
    return cleaned or "_"
