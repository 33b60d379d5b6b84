"""
Database Module
===============

Key-value storage backends used to persist serialized chat sessions.

Quick Start:
    from convocore.database import create_session_storage

    storage = create_session_storage("json", "sessions.json")
    storage.save("chat_sessions", records)
    records = storage.load("chat_sessions")
"""

from .session_storage import (
    BaseSessionStorage,
    InMemorySessionStorage,
    JsonFileSessionStorage,
    StorageError,
    create_session_storage,
)

__version__ = "1.0.0"

__all__ = [
    'BaseSessionStorage',
    'InMemorySessionStorage',
    'JsonFileSessionStorage',
    'StorageError',
    'create_session_storage',
]
