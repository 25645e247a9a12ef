"""Chat persistence: one JSONL file per chat."""

import json
import uuid
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from loguru import logger

from casechat.utils.helpers import get_chats_path, safe_filename


@dataclass
class ChatMessage:
    """A persisted chat message."""
    turn_id: int
    message_id: int
    role: str
    content: str
    optimized_content: str | None = None
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())


@dataclass
class Chat:
    """A persisted chat thread."""
    chat_id: str
    title: str | None = None
    user_id: str | None = None
    messages: list[ChatMessage] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def ordered_messages(self) -> list[ChatMessage]:
        return sorted(self.messages, key=lambda m: (m.turn_id, m.message_id))


class ChatStore(ABC):
    """Persistence for chats and their messages."""

    @abstractmethod
    def create_chat(self, chat_id: str | None = None, title: str | None = None, user_id: str | None = None) -> Chat:
        pass

    @abstractmethod
    def get_chat(self, chat_id: str) -> Chat | None:
        pass

    @abstractmethod
    def list_messages(self, chat_id: str) -> list[ChatMessage]:
        """Messages ordered by (turn_id, message_id)."""
        pass

    @abstractmethod
    def get_message(self, chat_id: str, turn_id: int, message_id: int) -> ChatMessage | None:
        pass

    @abstractmethod
    def append_message(
        self,
        chat_id: str,
        turn_id: int,
        message_id: int,
        role: str,
        content: str,
    ) -> ChatMessage:
        pass

    @abstractmethod
    def update_message_optimized_content(
        self,
        chat_id: str,
        turn_id: int,
        message_id: int,
        optimized_content: str,
    ) -> bool:
        pass

    @abstractmethod
    def update_title(self, chat_id: str, title: str) -> bool:
        pass


class JsonlChatStore(ChatStore):
    """
    ChatStore keeping each chat in ``{chat_id}.jsonl``.

    The first line holds chat metadata, every following line one message.
    Writes rewrite the whole file.
    """

    def __init__(self, chats_dir: Path | None = None):
        self.chats_dir = chats_dir or get_chats_path()
        self.chats_dir.mkdir(parents=True, exist_ok=True)
        self._cache: dict[str, Chat] = {}

    # ── public API ──────────────────────────────────────────────

    def create_chat(self, chat_id: str | None = None, title: str | None = None, user_id: str | None = None) -> Chat:
        chat = Chat(chat_id=chat_id or uuid.uuid4().hex, title=title, user_id=user_id)
        self.save(chat)
        logger.info(f"Created chat {chat.chat_id}")
        return chat

    def get_chat(self, chat_id: str) -> Chat | None:
        if chat_id in self._cache:
            return self._cache[chat_id]
        chat = self._load(chat_id)
        if chat:
            self._cache[chat_id] = chat
        return chat

    def list_messages(self, chat_id: str) -> list[ChatMessage]:
        chat = self.get_chat(chat_id)
        return chat.ordered_messages() if chat else []

    def get_message(self, chat_id: str, turn_id: int, message_id: int) -> ChatMessage | None:
        for msg in self.list_messages(chat_id):
            if msg.turn_id == turn_id and msg.message_id == message_id:
                return msg
        return None

    def append_message(
        self,
        chat_id: str,
        turn_id: int,
        message_id: int,
        role: str,
        content: str,
    ) -> ChatMessage:
        chat = self.get_chat(chat_id) or self.create_chat(chat_id)
        msg = ChatMessage(turn_id=turn_id, message_id=message_id, role=role, content=content)
        chat.messages.append(msg)
        chat.updated_at = datetime.now()
        self.save(chat)
        return msg

    def update_message_optimized_content(
        self,
        chat_id: str,
        turn_id: int,
        message_id: int,
        optimized_content: str,
    ) -> bool:
        chat = self.get_chat(chat_id)
        msg = self.get_message(chat_id, turn_id, message_id) if chat else None
        if msg is None:
            return False
        msg.optimized_content = optimized_content
        chat.updated_at = datetime.now()
        self.save(chat)
        return True

    def update_title(self, chat_id: str, title: str) -> bool:
        chat = self.get_chat(chat_id)
        if chat is None:
            return False
        chat.title = title
        chat.updated_at = datetime.now()
        self.save(chat)
        return True

    def save(self, chat: Chat) -> None:
        path = self._get_chat_path(chat.chat_id)

        with open(path, "w", encoding="utf-8") as f:
            metadata_line = {
                "_type": "metadata",
                "chat_id": chat.chat_id,
                "title": chat.title,
                "user_id": chat.user_id,
                "created_at": chat.created_at.isoformat(),
                "updated_at": chat.updated_at.isoformat(),
            }
            f.write(json.dumps(metadata_line, ensure_ascii=False) + "\n")

            for msg in chat.messages:
                f.write(json.dumps(asdict(msg), ensure_ascii=False) + "\n")

        self._cache[chat.chat_id] = chat

    # ── internal helpers ────────────────────────────────────────

    def _get_chat_path(self, chat_id: str) -> Path:
        return self.chats_dir / f"{safe_filename(chat_id)}.jsonl"

    def _load(self, chat_id: str) -> Chat | None:
        path = self._get_chat_path(chat_id)
        if not path.exists():
            return None

        try:
            chat = Chat(chat_id=chat_id)
            with open(path, encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if not line:
                        continue

                    data: dict[str, Any] = json.loads(line)
                    if data.get("_type") == "metadata":
                        chat.title = data.get("title")
                        chat.user_id = data.get("user_id")
                        if data.get("created_at"):
                            chat.created_at = datetime.fromisoformat(data["created_at"])
                        if data.get("updated_at"):
                            chat.updated_at = datetime.fromisoformat(data["updated_at"])
                    else:
                        chat.messages.append(ChatMessage(**data))
            return chat
        except (json.JSONDecodeError, TypeError, ValueError) as e:
            logger.warning(f"Failed to load chat {chat_id}: {e}")
            return None
