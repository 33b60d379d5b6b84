"""
Chatbot Core Module
==================

Conversation sessions, bounded memory and the orchestrator that turns a
user message into an assistant reply.
"""

from .memory import ConversationMemory, Message, MessageRole, MessageKind, AttachmentMeta
from .session_store import (
    Session, SessionStore, SessionNotFoundError, DEFAULT_STORAGE_KEY,
    save_sessions, load_sessions
)
from .fallback_handler import FallbackHandler, FallbackTrigger, FallbackResponse, APOLOGY_TEXT
from .orchestrator import (
    ChatOrchestrator, OrchestratorConfig, ResponseTier, FileAttachment,
    DEFAULT_TIER_ORDER, SEARCH_UNAVAILABLE, format_file_size
)

__version__ = "1.0.0"

__all__ = [
    'ConversationMemory',
    'Message',
    'MessageRole',
    'MessageKind',
    'AttachmentMeta',
    'Session',
    'SessionStore',
    'SessionNotFoundError',
    'DEFAULT_STORAGE_KEY',
    'save_sessions',
    'load_sessions',
    'FallbackHandler',
    'FallbackTrigger',
    'FallbackResponse',
    'APOLOGY_TEXT',
    'ChatOrchestrator',
    'OrchestratorConfig',
    'ResponseTier',
    'FileAttachment',
    'DEFAULT_TIER_ORDER',
    'SEARCH_UNAVAILABLE',
    'format_file_size',
]
