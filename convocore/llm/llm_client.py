"""
LLM Client Module
=================

Language model backend for the chat orchestrator.

A single ``generate`` call builds one composite prompt (system instruction,
role-labelled prior context and the current input) and either sends it to an
OpenAI-compatible chat completions endpoint or, in demo mode, answers with
the offline heuristic responder.

Key Features:
- Runtime configuration (API key, demo mode, base URL) re-read on every call
- Single attempt per call, bounded by a timeout; no retry loop
- Every failure degrades to the offline generator, never to an exception
- Secure logging: keys, tokens and e-mail addresses are masked
"""

import asyncio
import re
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Sequence
import logging

import openai

from ..heuristics import HeuristicResponder, Personality

logger = logging.getLogger(__name__)

APOLOGY_RESPONSE = "I'm sorry, I encountered an error. Please try again."


class LLMError(Exception):
    """Base exception for LLM operations."""

    def __init__(self, message: str, error_code: str = "UNKNOWN", **kwargs):
        super().__init__(message)
        self.error_code = error_code
        self.metadata = kwargs


class RateLimitError(LLMError):
    """Rate limit exceeded error."""

    def __init__(self, message: str, retry_after: Optional[int] = None, **kwargs):
        super().__init__(message, error_code="RATE_LIMIT", **kwargs)
        self.retry_after = retry_after


class SecurityError(LLMError):
    """Authentication or credential error."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, error_code="SECURITY_VIOLATION", **kwargs)


class ModelError(LLMError):
    """Transport, status or payload error."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, error_code="MODEL_ERROR", **kwargs)


class ContentFilter:
    """Masks sensitive data before text reaches the logs."""

    SENSITIVE_PATTERNS = [
        r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b',  # Email
        r'Bearer\s+[A-Za-z0-9\-\._~\+\/]+=*',  # Bearer token
        r'sk-[A-Za-z0-9_\-]{16,}',  # OpenAI API key pattern
    ]

    def __init__(self, max_length: int = 500):
        self.max_length = max_length
        self.sensitive_regex = re.compile('|'.join(self.SENSITIVE_PATTERNS), re.IGNORECASE)

    def sanitize_for_logging(self, text: str) -> str:
        """Sanitize text for logging purposes."""
        sanitized = self.sensitive_regex.sub('[REDACTED]', text)

        if len(sanitized) > self.max_length:
            sanitized = sanitized[:self.max_length - 3] + "..."

        return sanitized


@dataclass
class BackendConfig:
    """Runtime configuration of the language model backend."""
    api_key: Optional[str] = None
    demo_mode_enabled: bool = True
    api_base: str = "https://api.openai.com/v1"
    model_name: str = "gpt-3.5-turbo"
    max_tokens: int = 1000
    temperature: float = 0.7
    presence_penalty: float = 0.1
    frequency_penalty: float = 0.1
    timeout: float = 10.0

    @property
    def is_live(self) -> bool:
        return bool(self.api_key) and not self.demo_mode_enabled

    @classmethod
    def from_settings(cls, llm_settings: Any) -> 'BackendConfig':
        """Build from the ``llm`` section of the application settings."""
        return cls(
            api_key=llm_settings.api_key or None,
            demo_mode_enabled=llm_settings.demo_mode,
            api_base=llm_settings.api_base,
            model_name=llm_settings.model_name,
            max_tokens=llm_settings.max_tokens,
            temperature=llm_settings.temperature,
            presence_penalty=llm_settings.presence_penalty,
            frequency_penalty=llm_settings.frequency_penalty,
            timeout=llm_settings.timeout,
        )

    def masked(self) -> Dict[str, Any]:
        data = {
            'api_key': '***' if self.api_key else None,
            'demo_mode_enabled': self.demo_mode_enabled,
            'api_base': self.api_base,
            'model_name': self.model_name,
            'max_tokens': self.max_tokens,
            'temperature': self.temperature,
            'presence_penalty': self.presence_penalty,
            'frequency_penalty': self.frequency_penalty,
            'timeout': self.timeout,
        }
        return data


def build_prompt(user_input: str, prior_context: Sequence[Any],
                 personality: Personality = Personality.INTELLIGENT_ASSISTANT) -> List[Dict[str, str]]:
    """Composite chat prompt: system instruction plus one user message.

    Prior messages are flattened to ``Role: content`` lines ahead of the
    current input.
    """
    lines = []
    for message in prior_context:
        role = getattr(message.role, 'value', message.role)
        lines.append(f"{str(role).capitalize()}: {message.content}")

    if lines:
        user_content = "Previous conversation:\n" + "\n".join(lines) + f"\n\nUser: {user_input}"
    else:
        user_content = user_input

    return [
        {"role": "system", "content": personality.profile.system_prompt},
        {"role": "user", "content": user_content},
    ]


class LanguageModelBackend:
    """Live/demo text generator with silent fallback."""

    def __init__(self, config: Optional[BackendConfig] = None,
                 responder: Optional[HeuristicResponder] = None):
        self._config = config or BackendConfig()
        self.responder = responder or HeuristicResponder()
        self.content_filter = ContentFilter()

    def set_config(self, api_key: Optional[str] = None,
                   demo_mode_enabled: Optional[bool] = None,
                   api_base: Optional[str] = None) -> None:
        """Replace configuration values; the next call picks them up."""
        changes: Dict[str, Any] = {}
        if api_key is not None:
            changes['api_key'] = api_key or None
        if demo_mode_enabled is not None:
            changes['demo_mode_enabled'] = demo_mode_enabled
        if api_base is not None:
            changes['api_base'] = api_base
        self._config = replace(self._config, **changes)
        logger.info(f"Language model backend reconfigured (live={self._config.is_live})")

    def get_config(self) -> Dict[str, Any]:
        """Current configuration with the API key masked."""
        return self._config.masked()

    @property
    def is_live(self) -> bool:
        return self._config.is_live

    async def generate(self, user_input: str, prior_context: Sequence[Any] = (),
                       personality: Personality = Personality.INTELLIGENT_ASSISTANT) -> str:
        """Produce a reply. Never raises."""
        try:
            config = self._config
            if config.is_live:
                try:
                    messages = build_prompt(user_input, prior_context, personality)
                    return await self._complete(config, messages)
                except LLMError as e:
                    logger.warning(
                        f"Live model call failed ({e.error_code}): "
                        f"{self.content_filter.sanitize_for_logging(str(e))}; using offline responder"
                    )
            return self.responder.respond(user_input, personality).text
        except Exception as e:
            logger.error(f"Language model backend failed: {self.content_filter.sanitize_for_logging(str(e))}")
            return APOLOGY_RESPONSE

    def _create_client(self, config: BackendConfig) -> 'openai.AsyncOpenAI':
        return openai.AsyncOpenAI(
            api_key=config.api_key,
            base_url=config.api_base,
            timeout=config.timeout,
            max_retries=0,  # one attempt per call
        )

    async def _complete(self, config: BackendConfig, messages: List[Dict[str, str]]) -> str:
        """Single chat completion request."""
        try:
            # Closing the client releases its connection pool
            async with self._create_client(config) as client:
                response = await asyncio.wait_for(
                    client.chat.completions.create(
                        model=config.model_name,
                        messages=messages,
                        max_tokens=config.max_tokens,
                        temperature=config.temperature,
                        presence_penalty=config.presence_penalty,
                        frequency_penalty=config.frequency_penalty,
                    ),
                    timeout=config.timeout,
                )

        except asyncio.TimeoutError:
            raise ModelError(f"Request timed out after {config.timeout}s")

        except openai.RateLimitError as e:
            raise RateLimitError(f"OpenAI rate limit exceeded: {e}")

        except openai.AuthenticationError as e:
            raise SecurityError(f"OpenAI authentication failed: {e}")

        except openai.BadRequestError as e:
            raise ModelError(f"OpenAI bad request: {e}")

        except Exception as e:
            raise ModelError(f"OpenAI request failed: {e}")

        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError, TypeError) as e:
            raise ModelError(f"Malformed completion payload: {e}")

        if not isinstance(content, str) or not content.strip():
            raise ModelError("Empty completion content")
        return content

    async def verify_credentials(self) -> bool:
        """Probe ``GET /models`` with the configured key."""
        config = self._config
        if not config.api_key:
            return False
        try:
            async with self._create_client(config) as client:
                await asyncio.wait_for(client.models.list(), timeout=config.timeout)
            return True
        except Exception as e:
            logger.warning(f"Credential check failed: {self.content_filter.sanitize_for_logging(str(e))}")
            return False
