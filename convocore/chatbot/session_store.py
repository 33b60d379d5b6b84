"""
Session Store
=============

Keyed collection of conversation sessions plus helpers to persist them
through a key-value storage backend.
"""

import logging
import uuid
from datetime import datetime
from typing import Dict, List, Any, Optional
from dataclasses import dataclass, field

from .memory import ConversationMemory, Message

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_KEY = "chat_sessions"


class SessionNotFoundError(KeyError):
    """Raised when an operation names a session that does not exist."""

    def __init__(self, session_id: str):
        super().__init__(session_id)
        self.session_id = session_id

    def __str__(self) -> str:
        return f"Session not found: {self.session_id}"


@dataclass
class Session:
    """A named conversation thread with an append-only message log."""
    id: str
    title: str
    messages: List[Message] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.updated_at is None:
            self.updated_at = self.created_at

    def add_message(self, message: Message) -> None:
        self.messages.append(message)
        self.touch()

    def touch(self) -> None:
        # updated_at never moves backwards, even if the clock does
        self.updated_at = max(datetime.utcnow(), self.updated_at)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'title': self.title,
            'messages': [m.to_dict() for m in self.messages],
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Session':
        created_at = datetime.fromisoformat(data['created_at'])
        updated_at = datetime.fromisoformat(data.get('updated_at') or data['created_at'])
        return cls(
            id=data['id'],
            title=data.get('title', ''),
            messages=[Message.from_dict(m) for m in data.get('messages', [])],
            created_at=created_at,
            updated_at=max(created_at, updated_at),
        )


class SessionStore:
    """In-process collection of sessions keyed by id."""

    def __init__(self, memory: Optional[ConversationMemory] = None):
        self.memory = memory
        self._sessions: Dict[str, Session] = {}

    def create(self, title: Optional[str] = None) -> Session:
        """Allocate a new empty session."""
        session_id = str(uuid.uuid4())
        while session_id in self._sessions:
            session_id = str(uuid.uuid4())

        session = Session(id=session_id, title=title or f"AI Chat {len(self._sessions) + 1}")
        self._sessions[session_id] = session
        logger.info(f"Created session {session_id}")
        return session

    def get(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def require(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def list(self) -> List[Session]:
        """Sessions, most recently active first.

        ``sorted`` is stable with ``reverse=True``, so sessions with equal
        ``updated_at`` keep their insertion order.
        """
        return sorted(self._sessions.values(), key=lambda s: s.updated_at, reverse=True)

    def delete(self, session_id: str) -> bool:
        """Remove a session and release its conversation memory."""
        session = self._sessions.pop(session_id, None)
        if self.memory is not None:
            self.memory.clear(session_id)
        if session is None:
            return False
        logger.info(f"Deleted session {session_id}")
        return True

    def touch(self, session_id: str) -> None:
        self.require(session_id).touch()

    def append_message(self, session_id: str, message: Message) -> None:
        self.require(session_id).add_message(message)

    def to_records(self) -> List[Dict[str, Any]]:
        return [session.to_dict() for session in self._sessions.values()]

    @classmethod
    def from_records(cls, records: List[Dict[str, Any]],
                     memory: Optional[ConversationMemory] = None) -> 'SessionStore':
        store = cls(memory=memory)
        for record in records:
            session = Session.from_dict(record)
            store._sessions[session.id] = session
        return store

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)


def save_sessions(store: SessionStore, storage: Optional[Any], key: str = DEFAULT_STORAGE_KEY) -> bool:
    """Persist every session through ``storage``. Returns False if nothing was saved."""
    if storage is None:
        return False
    try:
        storage.save(key, store.to_records())
        return True
    except Exception as e:
        logger.error(f"Failed to save sessions under '{key}': {e}")
        return False


def load_sessions(storage: Optional[Any], key: str = DEFAULT_STORAGE_KEY,
                  memory: Optional[ConversationMemory] = None) -> SessionStore:
    """Load sessions from ``storage``, falling back to an empty store."""
    if storage is None:
        return SessionStore(memory=memory)
    try:
        records = storage.load(key)
        if not records:
            return SessionStore(memory=memory)
        store = SessionStore.from_records(records, memory=memory)
        logger.info(f"Loaded {len(store)} sessions from storage")
        return store
    except Exception as e:
        logger.warning(f"Could not load sessions under '{key}': {e}. Starting empty.")
        return SessionStore(memory=memory)
