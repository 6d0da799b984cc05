"""Conversation store - SQLite/in-memory persistence for conversations and messages."""

import itertools
import logging
import sqlite3
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from threading import Lock
from typing import Dict, List, Optional

from config import runtime_config

logger = logging.getLogger(__name__)

PLACEHOLDER_TITLE = "New chat"

_TS_FORMAT = "%Y-%m-%dT%H:%M:%S.%f+00:00"


class Role(str, Enum):
    USER = "USER"
    ASSISTANT = "ASSISTANT"


class ContentType(str, Enum):
    TEXT = "TEXT"
    HTML = "HTML"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _ts(value: datetime) -> str:
    """Fixed-width UTC timestamp so lexical order equals time order."""
    return value.astimezone(timezone.utc).strftime(_TS_FORMAT)


def _parse_ts(value: str) -> datetime:
    return datetime.fromisoformat(value)


@dataclass
class Conversation:
    """A chat thread owned by one user."""

    owner: str
    title: str = PLACEHOLDER_TITLE
    external_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    id: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "chatId": self.external_id,
            "title": self.title,
            "updatedAt": self.updated_at.isoformat(),
        }


@dataclass
class Message:
    """A single USER or ASSISTANT message inside a conversation."""

    conversation_id: int
    role: Role
    content: str
    content_type: ContentType = ContentType.TEXT
    created_at: datetime = field(default_factory=utcnow)
    transaction_id: Optional[str] = None
    category: Optional[str] = None
    id: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "role": self.role.value,
            "content": self.content,
            "contentType": self.content_type.value,
            "createdAt": self.created_at.isoformat(),
        }


class ConversationStore(ABC):
    """Persistence contract for conversations and their messages.

    now() hands out strictly increasing timestamps so message order by
    created_at is stable even for writes inside the same clock tick.
    """

    name: str = "base"

    def __init__(self):
        self._clock_lock = Lock()
        self._last_tick: Optional[datetime] = None

    def now(self) -> datetime:
        with self._clock_lock:
            current = utcnow()
            if self._last_tick is not None and current <= self._last_tick:
                current = self._last_tick + timedelta(microseconds=1)
            self._last_tick = current
            return current

    @abstractmethod
    def find_conversation(self, owner: str, external_id: Optional[str] = None) -> Optional[Conversation]:
        """By (owner, external_id) when given, else the owner's most recently updated one."""

    @abstractmethod
    def get_conversation(self, conversation_id: int) -> Optional[Conversation]:
        """By internal id, regardless of owner."""

    @abstractmethod
    def recent_conversations(self, owner: str, limit: int = 10) -> List[Conversation]:
        """Most recently updated first."""

    @abstractmethod
    def save_conversation(self, conversation: Conversation) -> Conversation:
        """Insert (assigning id) or update."""

    @abstractmethod
    def save_message(self, message: Message) -> Message:
        """Insert (assigning id) or update."""

    @abstractmethod
    def get_message(self, message_id: int) -> Optional[Message]:
        pass

    @abstractmethod
    def delete_message(self, message_id: int) -> bool:
        pass

    @abstractmethod
    def messages_for_conversation(self, conversation_id: int) -> List[Message]:
        """Oldest first (created_at, then id)."""

    @abstractmethod
    def recent_messages(self, conversation_id: int, limit: int) -> List[Message]:
        """Newest first, at most limit."""

    @abstractmethod
    def count_messages(self, conversation_id: int) -> int:
        pass

    @abstractmethod
    def next_message_after(self, conversation_id: int, created_at: datetime, role: Role) -> Optional[Message]:
        """Earliest message of role strictly after created_at in the conversation."""

    def health_check(self) -> Dict[str, str]:
        return {"status": "ok", "backend": self.name}


class InMemoryConversationStore(ConversationStore):
    """Dictionary-backed store (tests, single-process dev runs)."""

    name = "memory"

    def __init__(self):
        super().__init__()
        self._conversations: Dict[int, Conversation] = {}
        self._messages: Dict[int, Message] = {}
        self._conversation_ids = itertools.count(1)
        self._message_ids = itertools.count(1)

    def find_conversation(self, owner: str, external_id: Optional[str] = None) -> Optional[Conversation]:
        if external_id:
            for conversation in self._conversations.values():
                if conversation.owner == owner and conversation.external_id == external_id:
                    return conversation
            return None
        recent = self.recent_conversations(owner, limit=1)
        return recent[0] if recent else None

    def get_conversation(self, conversation_id: int) -> Optional[Conversation]:
        return self._conversations.get(conversation_id)

    def recent_conversations(self, owner: str, limit: int = 10) -> List[Conversation]:
        owned = [c for c in self._conversations.values() if c.owner == owner]
        owned.sort(key=lambda c: (c.updated_at, c.id), reverse=True)
        return owned[:limit]

    def save_conversation(self, conversation: Conversation) -> Conversation:
        if conversation.id is None:
            conversation.id = next(self._conversation_ids)
        self._conversations[conversation.id] = conversation
        return conversation

    def save_message(self, message: Message) -> Message:
        if message.id is None:
            message.id = next(self._message_ids)
        self._messages[message.id] = message
        return message

    def get_message(self, message_id: int) -> Optional[Message]:
        return self._messages.get(message_id)

    def delete_message(self, message_id: int) -> bool:
        return self._messages.pop(message_id, None) is not None

    def messages_for_conversation(self, conversation_id: int) -> List[Message]:
        messages = [m for m in self._messages.values() if m.conversation_id == conversation_id]
        messages.sort(key=lambda m: (m.created_at, m.id))
        return messages

    def recent_messages(self, conversation_id: int, limit: int) -> List[Message]:
        return list(reversed(self.messages_for_conversation(conversation_id)))[:limit]

    def count_messages(self, conversation_id: int) -> int:
        return sum(1 for m in self._messages.values() if m.conversation_id == conversation_id)

    def next_message_after(self, conversation_id: int, created_at: datetime, role: Role) -> Optional[Message]:
        for message in self.messages_for_conversation(conversation_id):
            if message.role == role and message.created_at > created_at:
                return message
        return None


class SqliteConversationStore(ConversationStore):
    """SQLite storage for conversations and messages."""

    name = "sqlite"

    def __init__(self, db_path: Optional[Path] = None):
        """Initialize store.

        Args:
            db_path: Path to SQLite database (default: runtime_config.database_path)
        """
        super().__init__()
        self.db_path = Path(db_path or runtime_config.database_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self) -> None:
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS conversations (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    external_id TEXT NOT NULL UNIQUE,
                    owner TEXT NOT NULL,
                    title TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    conversation_id INTEGER NOT NULL REFERENCES conversations(id),
                    role TEXT NOT NULL,
                    content TEXT NOT NULL,
                    content_type TEXT NOT NULL DEFAULT 'TEXT',
                    created_at TEXT NOT NULL,
                    transaction_id TEXT,
                    category TEXT
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_conversations_owner ON conversations(owner, updated_at)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_messages_conversation ON messages(conversation_id, created_at)"
            )
        logger.info(f"Conversation store ready at {self.db_path}")

    @staticmethod
    def _row_to_conversation(row: sqlite3.Row) -> Conversation:
        return Conversation(
            id=row["id"],
            external_id=row["external_id"],
            owner=row["owner"],
            title=row["title"] or "",
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
        )

    @staticmethod
    def _row_to_message(row: sqlite3.Row) -> Message:
        return Message(
            id=row["id"],
            conversation_id=row["conversation_id"],
            role=Role(row["role"]),
            content=row["content"],
            content_type=ContentType(row["content_type"]),
            created_at=_parse_ts(row["created_at"]),
            transaction_id=row["transaction_id"],
            category=row["category"],
        )

    def find_conversation(self, owner: str, external_id: Optional[str] = None) -> Optional[Conversation]:
        if not external_id:
            recent = self.recent_conversations(owner, limit=1)
            return recent[0] if recent else None

        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            row = conn.execute(
                "SELECT * FROM conversations WHERE owner = ? AND external_id = ?",
                (owner, external_id),
            ).fetchone()
        return self._row_to_conversation(row) if row else None

    def get_conversation(self, conversation_id: int) -> Optional[Conversation]:
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            row = conn.execute("SELECT * FROM conversations WHERE id = ?", (conversation_id,)).fetchone()
        return self._row_to_conversation(row) if row else None

    def recent_conversations(self, owner: str, limit: int = 10) -> List[Conversation]:
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            rows = conn.execute(
                """
                SELECT * FROM conversations
                WHERE owner = ?
                ORDER BY updated_at DESC, id DESC
                LIMIT ?
                """,
                (owner, limit),
            ).fetchall()
        return [self._row_to_conversation(r) for r in rows]

    def save_conversation(self, conversation: Conversation) -> Conversation:
        with sqlite3.connect(self.db_path) as conn:
            if conversation.id is None:
                cursor = conn.execute(
                    """
                    INSERT INTO conversations (external_id, owner, title, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        conversation.external_id,
                        conversation.owner,
                        conversation.title,
                        _ts(conversation.created_at),
                        _ts(conversation.updated_at),
                    ),
                )
                conversation.id = cursor.lastrowid
            else:
                conn.execute(
                    "UPDATE conversations SET title = ?, updated_at = ? WHERE id = ?",
                    (conversation.title, _ts(conversation.updated_at), conversation.id),
                )
        return conversation

    def save_message(self, message: Message) -> Message:
        with sqlite3.connect(self.db_path) as conn:
            if message.id is None:
                cursor = conn.execute(
                    """
                    INSERT INTO messages (
                        conversation_id, role, content, content_type,
                        created_at, transaction_id, category
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        message.conversation_id,
                        message.role.value,
                        message.content,
                        message.content_type.value,
                        _ts(message.created_at),
                        message.transaction_id,
                        message.category,
                    ),
                )
                message.id = cursor.lastrowid
            else:
                conn.execute(
                    "UPDATE messages SET content = ?, content_type = ? WHERE id = ?",
                    (message.content, message.content_type.value, message.id),
                )
        return message

    def get_message(self, message_id: int) -> Optional[Message]:
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            row = conn.execute("SELECT * FROM messages WHERE id = ?", (message_id,)).fetchone()
        return self._row_to_message(row) if row else None

    def delete_message(self, message_id: int) -> bool:
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute("DELETE FROM messages WHERE id = ?", (message_id,))
            return cursor.rowcount > 0

    def messages_for_conversation(self, conversation_id: int) -> List[Message]:
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            rows = conn.execute(
                "SELECT * FROM messages WHERE conversation_id = ? ORDER BY created_at ASC, id ASC",
                (conversation_id,),
            ).fetchall()
        return [self._row_to_message(r) for r in rows]

    def recent_messages(self, conversation_id: int, limit: int) -> List[Message]:
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            rows = conn.execute(
                """
                SELECT * FROM messages
                WHERE conversation_id = ?
                ORDER BY created_at DESC, id DESC
                LIMIT ?
                """,
                (conversation_id, limit),
            ).fetchall()
        return [self._row_to_message(r) for r in rows]

    def count_messages(self, conversation_id: int) -> int:
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM messages WHERE conversation_id = ?",
                (conversation_id,),
            ).fetchone()
        return row[0] if row else 0

    def next_message_after(self, conversation_id: int, created_at: datetime, role: Role) -> Optional[Message]:
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            row = conn.execute(
                """
                SELECT * FROM messages
                WHERE conversation_id = ? AND role = ? AND created_at > ?
                ORDER BY created_at ASC, id ASC
                LIMIT 1
                """,
                (conversation_id, role.value, _ts(created_at)),
            ).fetchone()
        return self._row_to_message(row) if row else None

    def health_check(self) -> Dict[str, str]:
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute("SELECT 1").fetchone()
            return {"status": "ok", "backend": self.name}
        except sqlite3.Error as e:
            logger.warning(f"Conversation store health check failed: {e}")
            return {"status": "down", "backend": self.name}


def create_conversation_store() -> ConversationStore:
    """Build the backend selected by runtime config."""
    if runtime_config.conversation_store == "memory":
        return InMemoryConversationStore()
    return SqliteConversationStore(Path(runtime_config.database_path))
