"""
Tests for the chat orchestrator.

Backends are real objects wherever possible (demo-mode language model,
seeded prediction engine); the knowledge service is a mock.
"""

import asyncio
import random
from datetime import date
from unittest.mock import AsyncMock, Mock, patch

import pytest

from convocore.chatbot import (
    APOLOGY_TEXT, ChatOrchestrator, ConversationMemory, FallbackHandler, FallbackTrigger,
    FileAttachment, MessageKind, MessageRole, OrchestratorConfig, ResponseTier, SEARCH_UNAVAILABLE,
    SessionNotFoundError, SessionStore, format_file_size
)
from convocore.config import Settings
from convocore.heuristics import HeuristicResponder, Personality, ReplyCategory
from convocore.predictions import DISCLAIMER, PredictionEngine
from convocore.retriever import KnowledgeBackendError


@pytest.fixture
def engine():
    return PredictionEngine(rng=random.Random(3), today=lambda: date(2024, 3, 9))


@pytest.fixture
def orchestrator(engine):
    return ChatOrchestrator(prediction_engine=engine)


@pytest.fixture
def knowledge():
    backend = Mock()
    backend.get_enhanced_response = AsyncMock(return_value="Knowledge answer")
    backend.search = AsyncMock(return_value=["Result one", "Result two"])
    backend.schedule_store_conversation = Mock()
    backend.drain = AsyncMock()
    return backend


@pytest.fixture
def knowledge_orchestrator(engine, knowledge):
    return ChatOrchestrator(
        prediction_engine=engine,
        knowledge_backend=knowledge,
        config=OrchestratorConfig(knowledge_enabled=True),
    )


class TestSendMessage:
    """One user message in, one assistant message out."""

    @pytest.mark.asyncio
    async def test_greeting(self, orchestrator):
        session = orchestrator.create_session()
        reply = await orchestrator.send_message(session.id, "hello")

        assert reply.role == MessageRole.ASSISTANT
        assert reply.content in HeuristicResponder.TEMPLATES[ReplyCategory.GREETING]
        assert [m.role for m in session.messages] == [MessageRole.USER, MessageRole.ASSISTANT]
        assert session.messages[0].content == "hello"

    @pytest.mark.asyncio
    async def test_math(self, orchestrator):
        session = orchestrator.create_session()
        reply = await orchestrator.send_message(session.id, "What is 6 * 7?")
        assert "42" in reply.content

    @pytest.mark.asyncio
    async def test_prediction_tier(self, orchestrator):
        session = orchestrator.create_session()
        reply = await orchestrator.send_message(session.id, "Predict Arsenal vs Chelsea")

        assert reply.metadata['tier'] == ResponseTier.PREDICTION.value
        assert "Arsenal vs Chelsea" in reply.content
        assert DISCLAIMER in reply.content

    @pytest.mark.asyncio
    async def test_reply_metadata(self, orchestrator):
        session = orchestrator.create_session()
        reply = await orchestrator.send_message(session.id, "hello", personality=Personality.TEACHER)
        assert reply.metadata['tier'] == ResponseTier.LANGUAGE_MODEL.value
        assert reply.metadata['personality'] == Personality.TEACHER.value

    @pytest.mark.asyncio
    async def test_unknown_session_appends_nothing(self, orchestrator):
        other = orchestrator.create_session()
        with pytest.raises(SessionNotFoundError):
            await orchestrator.send_message("missing", "hello")
        assert other.messages == []
        assert orchestrator.memory.get_context("missing") == []

    @pytest.mark.asyncio
    async def test_failure_still_completes_the_turn(self, orchestrator):
        session = orchestrator.create_session()
        with patch.object(orchestrator.llm_backend, 'generate', AsyncMock(side_effect=RuntimeError("boom"))):
            reply = await orchestrator.send_message(session.id, "hello")

        assert reply.content == APOLOGY_TEXT
        assert reply.metadata['tier'] == ResponseTier.CANNED.value
        assert len(session.messages) == 2
        assert len(orchestrator.memory.get_context(session.id)) == 2

    @pytest.mark.asyncio
    async def test_empty_model_reply_uses_heuristic(self, orchestrator):
        session = orchestrator.create_session()
        with patch.object(orchestrator.llm_backend, 'generate', AsyncMock(return_value="   ")):
            reply = await orchestrator.send_message(session.id, "hello")
        assert reply.metadata['tier'] == ResponseTier.HEURISTIC.value

    @pytest.mark.asyncio
    async def test_canned_when_every_tier_is_blank(self, orchestrator):
        session = orchestrator.create_session()
        with patch.object(orchestrator.llm_backend, 'generate', AsyncMock(return_value="")), \
                patch.object(orchestrator.heuristic, 'respond', Mock(return_value=Mock(text="  "))):
            reply = await orchestrator.send_message(session.id, "hello")

        assert reply.metadata['tier'] == ResponseTier.CANNED.value
        assert reply.content == FallbackHandler.RESPONSE_TEMPLATES[FallbackTrigger.EMPTY_RESPONSE][0]

    @pytest.mark.asyncio
    async def test_context_passed_to_model(self, orchestrator):
        session = orchestrator.create_session()
        await orchestrator.send_message(session.id, "first question")

        generate = AsyncMock(return_value="second answer")
        with patch.object(orchestrator.llm_backend, 'generate', generate):
            await orchestrator.send_message(session.id, "second question")

        content, context, personality = generate.call_args.args
        assert content == "second question"
        assert [m.content for m in context][0] == "first question"
        assert len(context) == 2

    @pytest.mark.asyncio
    async def test_memory_window(self, engine):
        orchestrator = ChatOrchestrator(prediction_engine=engine, memory=ConversationMemory(4))
        session = orchestrator.create_session()
        for i in range(5):
            await orchestrator.send_message(session.id, f"question {i}")

        assert len(session.messages) == 10
        context = orchestrator.memory.get_context(session.id)
        assert [m.content for m in context if m.role == MessageRole.USER] == ["question 3", "question 4"]


class TestDecorations:
    """Attachments and web search sections."""

    @pytest.mark.asyncio
    async def test_file_section(self, orchestrator):
        session = orchestrator.create_session()
        attachment = FileAttachment("report.pdf", 1536, "application/pdf")
        reply = await orchestrator.send_message(session.id, "summarize this", attachments=[attachment])

        assert reply.content.endswith("**Files:**\nreport.pdf (1.5 KB) - Type: application/pdf")
        user_message = session.messages[0]
        assert user_message.kind == MessageKind.FILE
        assert user_message.attachment_meta.file_name == "report.pdf"

    @pytest.mark.asyncio
    async def test_file_section_after_apology(self, orchestrator):
        session = orchestrator.create_session()
        attachment = FileAttachment("report.pdf", 1536, "application/pdf")
        with patch.object(orchestrator, '_generate', AsyncMock(side_effect=RuntimeError("boom"))):
            reply = await orchestrator.send_message(session.id, "summarize this", attachments=[attachment])

        assert reply.metadata['tier'] == ResponseTier.CANNED.value
        assert reply.content.startswith(APOLOGY_TEXT)
        assert reply.content.endswith("**Files:**\nreport.pdf (1.5 KB) - Type: application/pdf")

    @pytest.mark.asyncio
    async def test_image_kind(self, orchestrator):
        session = orchestrator.create_session()
        await orchestrator.send_message(session.id, "look", attachments=[FileAttachment("a.png", 10, "image/png")])
        assert session.messages[0].kind == MessageKind.IMAGE

    @pytest.mark.asyncio
    async def test_search_unavailable(self, orchestrator):
        session = orchestrator.create_session()
        reply = await orchestrator.send_message(session.id, "hello", search_web=True)

        assert reply.content.endswith(SEARCH_UNAVAILABLE)
        assert session.messages[0].kind == MessageKind.SEARCH

    @pytest.mark.asyncio
    async def test_search_results(self, knowledge_orchestrator, knowledge):
        session = knowledge_orchestrator.create_session()
        reply = await knowledge_orchestrator.send_message(session.id, "python news", search_web=True)

        assert reply.content.endswith("**Web Search Results:**\n1. Result one\n2. Result two")
        knowledge.search.assert_awaited_once_with("python news", 5)

    @pytest.mark.asyncio
    async def test_search_then_files(self, knowledge_orchestrator):
        session = knowledge_orchestrator.create_session()
        reply = await knowledge_orchestrator.send_message(
            session.id, "python news", search_web=True, attachments=[FileAttachment("a.txt", 0, "text/plain")]
        )
        sections = reply.content.split("\n\n")
        assert sections[0] == "Knowledge answer"
        assert sections[1].startswith("**Web Search Results:**")
        assert sections[2] == "**Files:**\na.txt (0 Bytes) - Type: text/plain"

    def test_negative_size_rejected(self):
        with pytest.raises(ValueError):
            FileAttachment("a.txt", -1)

    @pytest.mark.parametrize("size,expected", [
        (0, "0 Bytes"),
        (512, "512 Bytes"),
        (1024, "1 KB"),
        (1536, "1.5 KB"),
        (5 * 1024 * 1024, "5 MB"),
    ])
    def test_format_file_size(self, size, expected):
        assert format_file_size(size) == expected


class TestKnowledgeTier:
    """Knowledge service as first-choice source."""

    @pytest.mark.asyncio
    async def test_knowledge_answer_is_stored(self, knowledge_orchestrator, knowledge):
        session = knowledge_orchestrator.create_session()
        reply = await knowledge_orchestrator.send_message(session.id, "tell me about my assets")

        assert reply.content == "Knowledge answer"
        assert reply.metadata['tier'] == ResponseTier.KNOWLEDGE.value
        knowledge.get_enhanced_response.assert_awaited_once_with("tell me about my assets", session.id)
        knowledge.schedule_store_conversation.assert_called_once_with(
            "tell me about my assets", "Knowledge answer", session.id
        )

    @pytest.mark.asyncio
    async def test_failure_falls_back_to_model(self, knowledge_orchestrator, knowledge):
        knowledge.get_enhanced_response.side_effect = KnowledgeBackendError("down", "/enhanced-response", 503)
        session = knowledge_orchestrator.create_session()
        reply = await knowledge_orchestrator.send_message(session.id, "What is 6 * 7?")

        assert reply.metadata['tier'] == ResponseTier.LANGUAGE_MODEL.value
        assert "42" in reply.content

    @pytest.mark.asyncio
    async def test_predictions_come_first(self, knowledge_orchestrator, knowledge):
        session = knowledge_orchestrator.create_session()
        reply = await knowledge_orchestrator.send_message(session.id, "Premier League standings")

        assert reply.metadata['tier'] == ResponseTier.PREDICTION.value
        knowledge.get_enhanced_response.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_disabled_knowledge_is_skipped(self, engine, knowledge):
        orchestrator = ChatOrchestrator(prediction_engine=engine, knowledge_backend=knowledge)
        session = orchestrator.create_session()
        await orchestrator.send_message(session.id, "hello")

        knowledge.get_enhanced_response.assert_not_awaited()
        knowledge.schedule_store_conversation.assert_not_called()

    @pytest.mark.asyncio
    async def test_canned_replies_are_not_stored(self, knowledge_orchestrator, knowledge):
        session = knowledge_orchestrator.create_session()
        with patch.object(knowledge_orchestrator, '_generate', AsyncMock(side_effect=RuntimeError("boom"))):
            await knowledge_orchestrator.send_message(session.id, "hello")
        knowledge.schedule_store_conversation.assert_not_called()

    @pytest.mark.asyncio
    async def test_shutdown_drains(self, knowledge_orchestrator, knowledge):
        await knowledge_orchestrator.shutdown()
        knowledge.drain.assert_awaited_once()


class TestTierOrder:
    """Configurable source order."""

    @pytest.mark.asyncio
    async def test_model_before_predictions(self, engine):
        config = OrchestratorConfig(tier_order=(ResponseTier.LANGUAGE_MODEL, ResponseTier.PREDICTION))
        orchestrator = ChatOrchestrator(prediction_engine=engine, config=config)
        session = orchestrator.create_session()
        reply = await orchestrator.send_message(session.id, "Premier League standings")
        assert reply.metadata['tier'] == ResponseTier.LANGUAGE_MODEL.value

    def test_terminal_tiers_always_last(self):
        config = OrchestratorConfig(tier_order=("heuristic", "prediction"))
        assert config.effective_tiers == (ResponseTier.PREDICTION, ResponseTier.HEURISTIC, ResponseTier.CANNED)

    def test_duplicates_rejected(self):
        with pytest.raises(ValueError):
            OrchestratorConfig(tier_order=(ResponseTier.PREDICTION, ResponseTier.PREDICTION))


class TestConcurrency:
    """Per-session serialization."""

    @pytest.mark.asyncio
    async def test_same_session_turns_do_not_interleave(self, orchestrator):
        session = orchestrator.create_session()

        async def slow_generate(content, context, personality):
            await asyncio.sleep(0.01)
            return f"answer to {content}"

        with patch.object(orchestrator.llm_backend, 'generate', side_effect=slow_generate):
            await asyncio.gather(*(orchestrator.send_message(session.id, f"q{i}") for i in range(5)))

        roles = [m.role for m in session.messages]
        assert roles == [MessageRole.USER, MessageRole.ASSISTANT] * 5
        for user, assistant in zip(session.messages[::2], session.messages[1::2]):
            assert assistant.content == f"answer to {user.content}"

    @pytest.mark.asyncio
    async def test_delete_while_waiting(self, orchestrator):
        session = orchestrator.create_session()
        started = asyncio.Event()

        async def slow_generate(content, context, personality):
            started.set()
            await asyncio.sleep(0.05)
            return "done"

        with patch.object(orchestrator.llm_backend, 'generate', side_effect=slow_generate):
            first = asyncio.ensure_future(orchestrator.send_message(session.id, "one"))
            await started.wait()
            second = asyncio.ensure_future(orchestrator.send_message(session.id, "two"))
            await asyncio.sleep(0)
            orchestrator.session_store.delete(session.id)
            await first
            with pytest.raises(SessionNotFoundError):
                await second

        assert orchestrator.memory.get_context(session.id) == []


class TestSessionManagement:
    """Session and configuration passthroughs."""

    @pytest.mark.asyncio
    async def test_delete_releases_memory(self, orchestrator):
        session = orchestrator.create_session()
        await orchestrator.send_message(session.id, "hello")

        assert orchestrator.delete_session(session.id) is True
        assert orchestrator.get_session(session.id) is None
        assert orchestrator.memory.get_context(session.id) == []
        assert orchestrator.delete_session(session.id) is False

    def test_store_shares_memory(self):
        store = SessionStore()
        orchestrator = ChatOrchestrator(session_store=store)
        assert store.memory is orchestrator.memory

    def test_set_personality(self, orchestrator):
        assert orchestrator.set_personality("coding_assistant") == Personality.CODING_ASSISTANT
        assert orchestrator.get_canned_prompts() == list(Personality.CODING_ASSISTANT.profile.canned_prompts)

    def test_set_personality_unknown(self, orchestrator):
        with pytest.raises(ValueError):
            orchestrator.set_personality("pirate")

    def test_set_backend_config(self, orchestrator):
        config = orchestrator.set_backend_config(api_key="sk-test", demo_mode_enabled=False)
        assert config['api_key'] == "***"
        assert orchestrator.llm_backend.is_live

    def test_from_settings(self):
        settings = Settings()
        settings.memory.context_window_size = 6
        orchestrator = ChatOrchestrator.from_settings(settings)

        assert orchestrator.memory.context_window_size == 6
        assert orchestrator.knowledge_backend is None
        assert orchestrator.llm_backend.responder is orchestrator.heuristic

    def test_status(self, orchestrator):
        orchestrator.create_session()
        status = orchestrator.get_status()
        assert status['sessions'] == 1
        assert status['tiers'][-2:] == ["heuristic", "canned"]
