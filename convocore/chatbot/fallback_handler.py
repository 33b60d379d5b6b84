"""
Fallback Handler

Canned last-resort replies. Used when every other response source has
failed or produced nothing, and when a send fails unexpectedly; the
conversation always gets an assistant turn.
"""

from typing import Dict, Any, List, Optional
from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime
import logging

logger = logging.getLogger(__name__)


class FallbackTrigger(Enum):
    """Triggers that activate the canned tier."""
    EMPTY_RESPONSE = "empty_response"
    UNEXPECTED_ERROR = "unexpected_error"
    REPEATED_FAILURE = "repeated_failure"


APOLOGY_TEXT = (
    "I'm sorry, I'm experiencing some technical difficulties. "
    "Please try again or contact support."
)


@dataclass
class FallbackResponse:
    """Response from fallback handling."""
    trigger: FallbackTrigger
    response_text: str
    attempt_count: int
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'trigger': self.trigger.value,
            'response_text': self.response_text,
            'attempt_count': self.attempt_count,
            'timestamp': self.timestamp.isoformat(),
        }


class FallbackHandler:
    """Produces canned replies and tracks consecutive failures per session."""

    RESPONSE_TEMPLATES: Dict[FallbackTrigger, List[str]] = {
        FallbackTrigger.EMPTY_RESPONSE: [
            "I'm not quite sure how to answer that. Could you rephrase it or give me more context?",
            "Could you be more specific about what you'd like me to help you with?",
        ],
        FallbackTrigger.UNEXPECTED_ERROR: [
            APOLOGY_TEXT,
        ],
        FallbackTrigger.REPEATED_FAILURE: [
            "Sorry, I seem to keep running into problems with this conversation. "
            "You could try starting a new chat, or ask me something else. I can help with "
            "{capabilities}.",
        ],
    }

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self.max_failures_before_notice = self.config.get('max_failures_before_notice', 3)
        self.capabilities = self.config.get('capabilities', [
            'answering questions',
            'simple calculations',
            'football predictions',
        ])

        self.session_failures: Dict[str, int] = {}
        self.metrics = {
            'total_fallbacks': 0,
            'trigger_frequency': {t.value: 0 for t in FallbackTrigger},
        }

    def handle_fallback(self, trigger: FallbackTrigger, session_id: Optional[str] = None) -> FallbackResponse:
        """Canned reply for ``trigger``. Never raises."""
        attempt_count = 1
        if session_id is not None:
            attempt_count = self.session_failures.get(session_id, 0) + 1
            self.session_failures[session_id] = attempt_count

        effective = trigger
        if attempt_count >= self.max_failures_before_notice:
            effective = FallbackTrigger.REPEATED_FAILURE

        templates = self.RESPONSE_TEMPLATES[effective]
        text = templates[(attempt_count - 1) % len(templates)]
        text = text.format(capabilities=', '.join(self.capabilities[:3]))

        self.metrics['total_fallbacks'] += 1
        self.metrics['trigger_frequency'][trigger.value] += 1
        logger.warning(f"Canned fallback used ({trigger.value}, attempt {attempt_count})")

        return FallbackResponse(trigger=effective, response_text=text, attempt_count=attempt_count)

    def record_success(self, session_id: str) -> None:
        """Reset the failure streak once a real reply was produced."""
        self.session_failures.pop(session_id, None)

    def forget(self, session_id: str) -> None:
        self.session_failures.pop(session_id, None)

    def get_metrics(self) -> Dict[str, Any]:
        return {
            'total_fallbacks': self.metrics['total_fallbacks'],
            'trigger_frequency': dict(self.metrics['trigger_frequency']),
            'sessions_failing': len(self.session_failures),
        }
