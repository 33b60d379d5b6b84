"""
Conversation Memory
===================

Message model and bounded per-session memory used to build model prompts.

The memory is independent of the full session transcript: the transcript keeps
every message for display while the memory only ever holds the most recent
``context_window_size`` entries.
"""

import uuid
from datetime import datetime
from typing import Dict, List, Any, Optional
from dataclasses import dataclass, field
from enum import Enum


class MessageRole(Enum):
    """Who authored a message."""
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class MessageKind(Enum):
    """What a message carries."""
    TEXT = "text"
    IMAGE = "image"
    FILE = "file"
    SEARCH = "search"


@dataclass(frozen=True)
class AttachmentMeta:
    """Metadata of a file attached to a user message."""
    file_name: str
    file_size: int
    file_type: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'file_name': self.file_name,
            'file_size': self.file_size,
            'file_type': self.file_type,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AttachmentMeta':
        return cls(
            file_name=data['file_name'],
            file_size=int(data['file_size']),
            file_type=data['file_type'],
        )


@dataclass(frozen=True)
class Message:
    """A single chat message. Immutable once created."""
    role: MessageRole
    content: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=datetime.utcnow)
    kind: MessageKind = MessageKind.TEXT
    attachment_meta: Optional[AttachmentMeta] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def user(cls, content: str, **kwargs) -> 'Message':
        return cls(role=MessageRole.USER, content=content, **kwargs)

    @classmethod
    def assistant(cls, content: str, **kwargs) -> 'Message':
        return cls(role=MessageRole.ASSISTANT, content=content, **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-safe dictionary."""
        return {
            'id': self.id,
            'role': self.role.value,
            'content': self.content,
            'timestamp': self.timestamp.isoformat(),
            'kind': self.kind.value,
            'attachment_meta': self.attachment_meta.to_dict() if self.attachment_meta else None,
            'metadata': dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Message':
        attachment = data.get('attachment_meta')
        return cls(
            id=data['id'],
            role=MessageRole(data['role']),
            content=data['content'],
            timestamp=datetime.fromisoformat(data['timestamp']),
            kind=MessageKind(data.get('kind', MessageKind.TEXT.value)),
            attachment_meta=AttachmentMeta.from_dict(attachment) if attachment else None,
            metadata=data.get('metadata') or {},
        )


class ConversationMemory:
    """Bounded, per-session FIFO log of exchanged messages."""

    def __init__(self, context_window_size: int = 10):
        """Initialize conversation memory."""
        if context_window_size < 1:
            raise ValueError("context_window_size must be at least 1")
        self.context_window_size = context_window_size

        # In-memory storage
        self._messages: Dict[str, List[Message]] = {}

    def append(self, session_id: str, user_message: Message, assistant_message: Message) -> None:
        """Record one exchange, evicting the oldest entries beyond the window."""
        messages = self._messages.setdefault(session_id, [])
        messages.append(user_message)
        messages.append(assistant_message)

        if len(messages) > self.context_window_size:
            self._messages[session_id] = messages[-self.context_window_size:]

    def get_context(self, session_id: str) -> List[Message]:
        """Get the bounded context for a session, oldest first."""
        return list(self._messages.get(session_id, []))

    def clear(self, session_id: str) -> bool:
        """Release all memory held for a session."""
        return self._messages.pop(session_id, None) is not None

    def session_ids(self) -> List[str]:
        return list(self._messages.keys())

    def __len__(self) -> int:
        return len(self._messages)
