"""
Unit tests for the language model backend.

The live path is exercised with a fake OpenAI client patched in through
``_create_client``; nothing here reaches the network.
"""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import openai
import pytest

from convocore.heuristics import HeuristicResponder, Personality, ReplyCategory
from convocore.chatbot.memory import Message
from convocore.llm import (
    APOLOGY_RESPONSE, BackendConfig, ContentFilter, LanguageModelBackend, ModelError, build_prompt
)


def _completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


class FakeClient:
    """Stands in for ``openai.AsyncOpenAI``; records whether it was closed."""

    def __init__(self, create=None, models_list=None):
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=create or AsyncMock()))
        self.models = SimpleNamespace(list=models_list or AsyncMock())
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.closed = True


def _fake_client(create=None, models_list=None):
    return FakeClient(create, models_list)


@pytest.fixture
def demo_backend():
    return LanguageModelBackend(BackendConfig(demo_mode_enabled=True))


@pytest.fixture
def live_backend():
    return LanguageModelBackend(BackendConfig(api_key="sk-test", demo_mode_enabled=False, timeout=1.0))


class TestBuildPrompt:
    """Composite prompt construction."""

    def test_without_context(self):
        messages = build_prompt("hi there", [])
        assert [m["role"] for m in messages] == ["system", "user"]
        assert messages[0]["content"].startswith("You are Websoft AI")
        assert messages[1]["content"] == "hi there"

    def test_context_is_role_labelled(self):
        context = [Message.user("What is Python?"), Message.assistant("A programming language.")]
        messages = build_prompt("Who made it?", context)
        user_content = messages[1]["content"]
        assert "User: What is Python?" in user_content
        assert "Assistant: A programming language." in user_content
        assert user_content.endswith("User: Who made it?")

    def test_personality_system_prompt(self):
        messages = build_prompt("x", [], Personality.CODING_ASSISTANT)
        assert messages[0]["content"] == Personality.CODING_ASSISTANT.profile.system_prompt


class TestDemoMode:
    """Offline generation."""

    @pytest.mark.asyncio
    async def test_greeting(self, demo_backend):
        reply = await demo_backend.generate("hello", [])
        assert reply in HeuristicResponder.TEMPLATES[ReplyCategory.GREETING]

    @pytest.mark.asyncio
    async def test_math(self, demo_backend):
        assert "48" in await demo_backend.generate("12 * 4", [])
        assert "42" in await demo_backend.generate("What is 6 * 7?", [])

    @pytest.mark.asyncio
    async def test_deterministic(self, demo_backend):
        replies = {await demo_backend.generate("explain closures", []) for _ in range(5)}
        assert len(replies) == 1

    @pytest.mark.asyncio
    async def test_key_without_demo_off_stays_offline(self):
        backend = LanguageModelBackend(BackendConfig(api_key="sk-test", demo_mode_enabled=True))
        with patch.object(backend, '_create_client') as create_client:
            await backend.generate("hello", [])
        create_client.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_key_stays_offline(self):
        backend = LanguageModelBackend(BackendConfig(api_key=None, demo_mode_enabled=False))
        assert not backend.is_live
        with patch.object(backend, '_create_client') as create_client:
            await backend.generate("hello", [])
        create_client.assert_not_called()


class TestLiveMode:
    """Live calls and silent fallback."""

    @pytest.mark.asyncio
    async def test_successful_call(self, live_backend):
        create = AsyncMock(return_value=_completion("Live answer"))
        with patch.object(live_backend, '_create_client', return_value=_fake_client(create)):
            reply = await live_backend.generate("hello", [Message.user("earlier")])

        assert reply == "Live answer"
        kwargs = create.call_args.kwargs
        assert kwargs["model"] == "gpt-3.5-turbo"
        assert kwargs["max_tokens"] == 1000
        assert kwargs["temperature"] == 0.7
        assert kwargs["presence_penalty"] == 0.1
        assert kwargs["frequency_penalty"] == 0.1
        assert [m["role"] for m in kwargs["messages"]] == ["system", "user"]

    @pytest.mark.asyncio
    async def test_network_error_falls_back(self, live_backend):
        create = AsyncMock(side_effect=ConnectionError("boom"))
        with patch.object(live_backend, '_create_client', return_value=_fake_client(create)):
            reply = await live_backend.generate("What is 6 * 7?", [])
        assert "42" in reply
        create.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_rate_limit_falls_back(self, live_backend):
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        response = httpx.Response(429, request=request)
        error = openai.RateLimitError("slow down", response=response, body=None)
        create = AsyncMock(side_effect=error)
        with patch.object(live_backend, '_create_client', return_value=_fake_client(create)):
            reply = await live_backend.generate("hello", [])
        assert reply in HeuristicResponder.TEMPLATES[ReplyCategory.GREETING]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [
        _completion(""),
        _completion(None),
        SimpleNamespace(choices=[]),
        SimpleNamespace(),
    ])
    async def test_malformed_payload_falls_back(self, live_backend, payload):
        create = AsyncMock(return_value=payload)
        with patch.object(live_backend, '_create_client', return_value=_fake_client(create)):
            reply = await live_backend.generate("12 * 4", [])
        assert "48" in reply

    @pytest.mark.asyncio
    async def test_timeout_falls_back(self):
        backend = LanguageModelBackend(BackendConfig(api_key="sk-test", demo_mode_enabled=False, timeout=0.05))

        async def slow(**kwargs):
            await asyncio.sleep(1)
            return _completion("too late")

        with patch.object(backend, '_create_client', return_value=_fake_client(slow)):
            reply = await backend.generate("12 * 4", [])
        assert "48" in reply

    @pytest.mark.asyncio
    async def test_complete_raises_model_error(self, live_backend):
        create = AsyncMock(return_value=_completion("   "))
        with patch.object(live_backend, '_create_client', return_value=_fake_client(create)):
            with pytest.raises(ModelError):
                await live_backend._complete(live_backend._config, build_prompt("x", []))

    @pytest.mark.asyncio
    async def test_never_raises(self, demo_backend):
        with patch.object(demo_backend.responder, 'respond', side_effect=RuntimeError("broken")):
            reply = await demo_backend.generate("hello", [])
        assert reply == APOLOGY_RESPONSE


class TestClientLifecycle:
    """Every client created for a call is closed afterwards."""

    @pytest.mark.asyncio
    async def test_closed_after_success(self, live_backend):
        client = _fake_client(AsyncMock(return_value=_completion("Live answer")))
        with patch.object(live_backend, '_create_client', return_value=client):
            await live_backend.generate("hello", [])
        assert client.closed

    @pytest.mark.asyncio
    async def test_closed_after_failure(self, live_backend):
        clients = []

        def create_client(config):
            client = _fake_client(AsyncMock(side_effect=ConnectionError("unreachable")),
                                  AsyncMock(side_effect=ConnectionError("unreachable")))
            clients.append(client)
            return client

        with patch.object(live_backend, '_create_client', side_effect=create_client):
            for _ in range(3):
                await live_backend.generate("hello", [])
            await live_backend.verify_credentials()

        assert len(clients) == 4
        assert all(c.closed for c in clients)

    @pytest.mark.asyncio
    async def test_closed_after_timeout(self):
        backend = LanguageModelBackend(BackendConfig(api_key="sk-test", demo_mode_enabled=False, timeout=0.05))

        async def slow(**kwargs):
            await asyncio.sleep(1)

        client = _fake_client(slow)
        with patch.object(backend, '_create_client', return_value=client):
            await backend.generate("hello", [])
        assert client.closed


class TestConfiguration:
    """Runtime configuration changes."""

    @pytest.mark.asyncio
    async def test_set_config_is_read_on_next_call(self, demo_backend):
        create = AsyncMock(return_value=_completion("Live answer"))
        with patch.object(demo_backend, '_create_client', return_value=_fake_client(create)) as factory:
            assert await demo_backend.generate("hello", []) != "Live answer"

            demo_backend.set_config(api_key="sk-new", demo_mode_enabled=False)
            assert await demo_backend.generate("hello", []) == "Live answer"
            assert factory.call_args.args[0].api_key == "sk-new"

            demo_backend.set_config(demo_mode_enabled=True)
            assert await demo_backend.generate("hello", []) != "Live answer"

        assert create.await_count == 1

    def test_get_config_masks_key(self, live_backend):
        config = live_backend.get_config()
        assert config["api_key"] == "***"
        assert config["demo_mode_enabled"] is False

    def test_empty_key_clears_credentials(self, live_backend):
        live_backend.set_config(api_key="")
        assert not live_backend.is_live
        assert live_backend.get_config()["api_key"] is None

    def test_from_settings(self):
        settings = SimpleNamespace(
            api_key="", api_base="http://localhost:1234/v1", model_name="local-model", demo_mode=False,
            max_tokens=200, temperature=0.2, presence_penalty=0.0, frequency_penalty=0.0, timeout=3.0,
        )
        config = BackendConfig.from_settings(settings)
        assert config.api_key is None
        assert config.api_base == "http://localhost:1234/v1"
        assert not config.is_live


class TestVerifyCredentials:
    """Credential check via GET /models."""

    @pytest.mark.asyncio
    async def test_no_key(self, demo_backend):
        assert await demo_backend.verify_credentials() is False

    @pytest.mark.asyncio
    async def test_success(self, live_backend):
        models_list = AsyncMock(return_value=MagicMock())
        with patch.object(live_backend, '_create_client', return_value=_fake_client(models_list=models_list)):
            assert await live_backend.verify_credentials() is True
        models_list.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failure(self, live_backend):
        models_list = AsyncMock(side_effect=ConnectionError("down"))
        with patch.object(live_backend, '_create_client', return_value=_fake_client(models_list=models_list)):
            assert await live_backend.verify_credentials() is False


class TestContentFilter:
    """Log sanitization."""

    def test_masks_secrets(self):
        text = "key sk-abcdefghijklmnopqrstuvwxyz012345 mail bob@example.com Bearer abc.def"
        sanitized = ContentFilter().sanitize_for_logging(text)
        assert "sk-abc" not in sanitized
        assert "bob@example.com" not in sanitized
        assert "Bearer abc" not in sanitized

    def test_truncates(self):
        sanitized = ContentFilter(max_length=20).sanitize_for_logging("x" * 100)
        assert len(sanitized) == 20
        assert sanitized.endswith("...")
