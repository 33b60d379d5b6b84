"""
Chat Orchestrator
=================

Turns one user message into one assistant message for a session.

Each ``send_message`` call appends the user message, asks the configured
response tiers in order until one produces text, decorates the reply with
search results and attachment summaries, then commits the assistant message
to the session and the bounded memory. Whatever fails inside generation, the
session ends the call with exactly one new user message and one new assistant
message.
"""

import asyncio
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union
import logging

from .memory import ConversationMemory, Message, MessageKind, AttachmentMeta
from .session_store import Session, SessionStore
from .fallback_handler import FallbackHandler, FallbackTrigger
from ..heuristics import HeuristicResponder, Personality, get_canned_prompts
from ..llm import LanguageModelBackend, BackendConfig
from ..predictions import PredictionEngine
from ..retriever import KnowledgeBackend, KnowledgeBackendError

logger = logging.getLogger(__name__)


class ResponseTier(Enum):
    """Reply sources, in the order they may be consulted."""
    PREDICTION = "prediction"
    KNOWLEDGE = "knowledge"
    LANGUAGE_MODEL = "language_model"
    HEURISTIC = "heuristic"
    CANNED = "canned"


DEFAULT_TIER_ORDER: Tuple[ResponseTier, ...] = (
    ResponseTier.PREDICTION,
    ResponseTier.KNOWLEDGE,
    ResponseTier.LANGUAGE_MODEL,
)

# Always tried last, in this order
TERMINAL_TIERS: Tuple[ResponseTier, ...] = (ResponseTier.HEURISTIC, ResponseTier.CANNED)

SEARCH_UNAVAILABLE = "_Web search is unavailable right now._"

_SIZE_UNITS = ("Bytes", "KB", "MB", "GB", "TB")


@dataclass(frozen=True)
class FileAttachment:
    """A file sent along with a user message."""
    name: str
    size: int
    mime_type: str = "application/octet-stream"

    def __post_init__(self):
        if self.size < 0:
            raise ValueError("File size cannot be negative")

    def to_meta(self) -> AttachmentMeta:
        return AttachmentMeta(file_name=self.name, file_size=self.size, file_type=self.mime_type)


def format_file_size(num_bytes: int) -> str:
    """Human readable size with 1024-based units, e.g. ``1.5 KB``."""
    if num_bytes <= 0:
        return "0 Bytes"
    i = min(int(math.floor(math.log(num_bytes, 1024))), len(_SIZE_UNITS) - 1)
    value = f"{num_bytes / (1024 ** i):.2f}".rstrip('0').rstrip('.')
    return f"{value} {_SIZE_UNITS[i]}"


def format_files_section(files: Sequence[FileAttachment]) -> str:
    lines = ["**Files:**"]
    for f in files:
        lines.append(f"{f.name} ({format_file_size(f.size)}) - Type: {f.mime_type}")
    return "\n".join(lines)


def format_search_section(results: Sequence[str]) -> str:
    if not results:
        return "**Web Search Results:**\nNo results found."
    lines = ["**Web Search Results:**"]
    lines.extend(f"{i}. {r}" for i, r in enumerate(results, start=1))
    return "\n".join(lines)


@dataclass
class OrchestratorConfig:
    """Which reply sources are used, and in what order."""
    knowledge_enabled: bool = False
    tier_order: Tuple[ResponseTier, ...] = DEFAULT_TIER_ORDER
    search_k: int = 5
    store_conversations: bool = True

    def __post_init__(self):
        self.tier_order = tuple(ResponseTier(t) for t in self.tier_order)
        if len(set(self.tier_order)) != len(self.tier_order):
            raise ValueError("tier_order contains duplicates")

    @property
    def effective_tiers(self) -> Tuple[ResponseTier, ...]:
        """Configured tiers followed by the terminal tiers."""
        head = tuple(t for t in self.tier_order if t not in TERMINAL_TIERS)
        return head + TERMINAL_TIERS

    @classmethod
    def from_settings(cls, settings: Any) -> 'OrchestratorConfig':
        return cls(
            knowledge_enabled=settings.knowledge.enabled,
            search_k=settings.knowledge.search_k,
            store_conversations=settings.knowledge.store_conversations,
        )


class ChatOrchestrator:
    """Session-aware front door over the reply sources."""

    def __init__(self,
                 session_store: Optional[SessionStore] = None,
                 memory: Optional[ConversationMemory] = None,
                 llm_backend: Optional[LanguageModelBackend] = None,
                 prediction_engine: Optional[PredictionEngine] = None,
                 knowledge_backend: Optional[KnowledgeBackend] = None,
                 heuristic: Optional[HeuristicResponder] = None,
                 fallback_handler: Optional[FallbackHandler] = None,
                 config: Optional[OrchestratorConfig] = None,
                 personality: Personality = Personality.INTELLIGENT_ASSISTANT):
        if memory is None:
            if session_store is not None and session_store.memory is not None:
                memory = session_store.memory
            else:
                memory = ConversationMemory()
        self.memory = memory
        self.session_store = session_store if session_store is not None else SessionStore(memory=memory)
        # Deleting a session must release the same memory used for prompts
        self.session_store.memory = memory

        self.heuristic = heuristic or HeuristicResponder()
        self.llm_backend = llm_backend or LanguageModelBackend(responder=self.heuristic)
        self.prediction_engine = prediction_engine or PredictionEngine()
        self.knowledge_backend = knowledge_backend
        self.fallback_handler = fallback_handler or FallbackHandler()
        self.config = config or OrchestratorConfig()
        self.personality = personality

        self._locks: Dict[str, asyncio.Lock] = {}

    @classmethod
    def from_settings(cls, settings: Any, session_store: Optional[SessionStore] = None,
                      prediction_engine: Optional[PredictionEngine] = None) -> 'ChatOrchestrator':
        """Wire every backend from application settings."""
        memory = ConversationMemory(settings.memory.context_window_size)
        if session_store is not None:
            session_store.memory = memory
        heuristic = HeuristicResponder()
        knowledge = KnowledgeBackend.from_settings(settings.knowledge) if settings.knowledge.enabled else None
        return cls(
            session_store=session_store,
            memory=memory,
            llm_backend=LanguageModelBackend(BackendConfig.from_settings(settings.llm), responder=heuristic),
            prediction_engine=prediction_engine,
            knowledge_backend=knowledge,
            heuristic=heuristic,
            config=OrchestratorConfig.from_settings(settings),
        )

    # Session management

    def create_session(self, title: Optional[str] = None) -> Session:
        return self.session_store.create(title)

    def get_session(self, session_id: str) -> Optional[Session]:
        return self.session_store.get(session_id)

    def list_sessions(self) -> List[Session]:
        return self.session_store.list()

    def delete_session(self, session_id: str) -> bool:
        """Delete a session together with its memory and lock."""
        self._locks.pop(session_id, None)
        self.fallback_handler.forget(session_id)
        return self.session_store.delete(session_id)

    def clear_memory(self, session_id: str) -> bool:
        return self.memory.clear(session_id)

    # Configuration

    def set_personality(self, personality: Union[Personality, str]) -> Personality:
        if not isinstance(personality, Personality):
            personality = Personality.from_value(personality)
        self.personality = personality
        logger.info(f"Personality set to {personality.value}")
        return personality

    def get_canned_prompts(self, personality: Union[Personality, str, None] = None) -> List[str]:
        if personality is None:
            personality = self.personality
        elif not isinstance(personality, Personality):
            personality = Personality.from_value(personality)
        return get_canned_prompts(personality)

    def set_backend_config(self, api_key: Optional[str] = None,
                           demo_mode_enabled: Optional[bool] = None,
                           api_base: Optional[str] = None) -> Dict[str, Any]:
        self.llm_backend.set_config(api_key=api_key, demo_mode_enabled=demo_mode_enabled, api_base=api_base)
        return self.llm_backend.get_config()

    # Messaging

    async def send_message(self, session_id: str, content: str,
                           attachments: Optional[Sequence[FileAttachment]] = None,
                           search_web: bool = False,
                           personality: Optional[Personality] = None) -> Message:
        """
        Process one user message and return the assistant reply.

        Raises:
            SessionNotFoundError: if ``session_id`` is unknown; nothing is appended.
        """
        self.session_store.require(session_id)
        lock = self._locks.setdefault(session_id, asyncio.Lock())

        async with lock:
            # The session may have been deleted while waiting for the lock
            session = self.session_store.require(session_id)
            personality = personality or self.personality
            attachments = list(attachments or [])

            user_message = self._build_user_message(content, attachments, search_web)
            session.add_message(user_message)
            context = self.memory.get_context(session_id)

            try:
                text, tier = await self._generate(session_id, content, context, personality)
                sections = [text]
                if search_web:
                    sections.append(await self._search_section(content))
                if attachments:
                    sections.append(format_files_section(attachments))
                text = "\n\n".join(sections)
            except Exception as e:
                logger.error(f"Message generation failed for session {session_id}: {e}")
                fallback = self.fallback_handler.handle_fallback(FallbackTrigger.UNEXPECTED_ERROR, session_id)
                text, tier = fallback.response_text, ResponseTier.CANNED
                if attachments:
                    text = "\n\n".join([text, format_files_section(attachments)])

            assistant_message = Message.assistant(
                text,
                metadata={'tier': tier.value, 'personality': personality.value},
            )
            session.add_message(assistant_message)
            self.memory.append(session_id, user_message, assistant_message)
            if session_id not in self.session_store:
                # Deleted mid-turn; don't keep memory for it
                self.memory.clear(session_id)

            if tier != ResponseTier.CANNED:
                self.fallback_handler.record_success(session_id)
                self._store_exchange(content, text, session_id)

            logger.info(f"Session {session_id} answered by {tier.value} tier")
            return assistant_message

    def _build_user_message(self, content: str, attachments: List[FileAttachment], search_web: bool) -> Message:
        kind = MessageKind.TEXT
        meta = None
        if attachments:
            meta = attachments[0].to_meta()
            kind = MessageKind.IMAGE if attachments[0].mime_type.startswith('image/') else MessageKind.FILE
        if search_web:
            kind = MessageKind.SEARCH
        return Message.user(content, kind=kind, attachment_meta=meta)

    async def _generate(self, session_id: str, content: str, context: List[Message],
                        personality: Personality) -> Tuple[str, ResponseTier]:
        for tier in self.config.effective_tiers:
            if tier == ResponseTier.CANNED:
                break
            text = await self._run_tier(tier, session_id, content, context, personality)
            if text and text.strip():
                return text, tier
            logger.debug(f"{tier.value} tier produced no reply")

        fallback = self.fallback_handler.handle_fallback(FallbackTrigger.EMPTY_RESPONSE, session_id)
        return fallback.response_text, ResponseTier.CANNED

    async def _run_tier(self, tier: ResponseTier, session_id: str, content: str,
                        context: List[Message], personality: Personality) -> Optional[str]:
        if tier == ResponseTier.PREDICTION:
            if self.prediction_engine is None:
                return None
            return self.prediction_engine.respond(content)

        if tier == ResponseTier.KNOWLEDGE:
            if not self.config.knowledge_enabled or self.knowledge_backend is None:
                return None
            try:
                return await self.knowledge_backend.get_enhanced_response(content, session_id)
            except KnowledgeBackendError as e:
                logger.warning(f"Knowledge tier failed, falling through: {e}")
            except Exception as e:
                logger.warning(f"Knowledge tier raised unexpectedly, falling through: {e}")
            return None

        if tier == ResponseTier.LANGUAGE_MODEL:
            if self.llm_backend is None:
                return None
            return await self.llm_backend.generate(content, context, personality)

        if tier == ResponseTier.HEURISTIC:
            return self.heuristic.respond(content, personality).text

        return None

    async def _search_section(self, content: str) -> str:
        if not self.config.knowledge_enabled or self.knowledge_backend is None:
            return SEARCH_UNAVAILABLE
        try:
            results = await self.knowledge_backend.search(content, self.config.search_k)
        except Exception as e:
            logger.warning(f"Web search failed: {e}")
            return SEARCH_UNAVAILABLE
        return format_search_section(results)

    def _store_exchange(self, user_text: str, reply: str, session_id: str) -> None:
        if not (self.config.knowledge_enabled and self.config.store_conversations and self.knowledge_backend):
            return
        try:
            self.knowledge_backend.schedule_store_conversation(user_text, reply, session_id)
        except Exception as e:
            logger.error(f"Could not schedule conversation storage for {session_id}: {e}")

    async def shutdown(self) -> None:
        """Wait for background work to finish."""
        if self.knowledge_backend is not None:
            await self.knowledge_backend.drain()

    def get_status(self) -> Dict[str, Any]:
        return {
            'sessions': len(self.session_store),
            'personality': self.personality.value,
            'tiers': [t.value for t in self.config.effective_tiers],
            'knowledge_enabled': self.config.knowledge_enabled,
            'llm': self.llm_backend.get_config(),
            'fallbacks': self.fallback_handler.get_metrics(),
        }
