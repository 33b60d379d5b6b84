"""
LLM Module
==========

Language model backend with live (OpenAI-compatible) and offline demo modes.

Quick Start:
    from convocore.llm import LanguageModelBackend, BackendConfig

    backend = LanguageModelBackend(BackendConfig(demo_mode_enabled=True))
    reply = await backend.generate("What is 6 * 7?", prior_context=[])

    # Switch to the live model; the next call uses it
    backend.set_config(api_key="sk-...", demo_mode_enabled=False)
"""

from .llm_client import (
    # Core classes
    LanguageModelBackend,
    BackendConfig,
    ContentFilter,
    build_prompt,
    APOLOGY_RESPONSE,

    # Exceptions
    LLMError,
    RateLimitError,
    SecurityError,
    ModelError,
)

__all__ = [
    'LanguageModelBackend',
    'BackendConfig',
    'ContentFilter',
    'build_prompt',
    'APOLOGY_RESPONSE',
    'LLMError',
    'RateLimitError',
    'SecurityError',
    'ModelError',
]
