"""
Heuristic Responder
===================

Keyword-driven template engine. Produces a reply from free text with no
external calls; used as the offline (demo) generator of the language model
backend and as the rule-based tier of the orchestrator.
"""

import re
import zlib
from typing import Dict, List, Tuple
from dataclasses import dataclass
from enum import Enum

from .arithmetic import ArithmeticParseError, extract_expression, format_number, safe_eval
from .personality import Personality


class ReplyCategory(Enum):
    """Template family a reply was drawn from."""
    GREETING = "greeting"
    EXPLANATION = "explanation"
    COMPARISON = "comparison"
    PROBLEM_SOLVING = "problem_solving"
    CREATIVE = "creative"
    ANALYTICAL = "analytical"
    WEATHER = "weather"
    MATH = "math"
    CODE = "code"
    JOKE = "joke"
    THANKS = "thanks"
    GENERIC = "generic"


@dataclass(frozen=True)
class HeuristicReply:
    """Result of a heuristic response."""
    category: ReplyCategory
    text: str


MATH_HELP = "I can help with math! Please provide a simple calculation like '2 + 2' or '10 * 5'."


class HeuristicResponder:
    """Deterministic rule-based responder."""

    # Checked in order; first match wins. Arithmetic expressions are checked
    # before any of these.
    CATEGORY_PATTERNS: List[Tuple[ReplyCategory, List[str]]] = [
        (ReplyCategory.GREETING, [
            r'\b(hello|hi|hey|greetings)\b',
            r'\bgood (morning|afternoon|evening)\b',
        ]),
        (ReplyCategory.EXPLANATION, [
            r'\b(explain|how|why)\b',
        ]),
        (ReplyCategory.COMPARISON, [
            r'\b(compare|comparison|difference|versus)\b',
        ]),
        (ReplyCategory.PROBLEM_SOLVING, [
            r'\b(solve|problem)\b',
        ]),
        (ReplyCategory.CREATIVE, [
            r'\b(create|design|brainstorm)\b',
        ]),
        (ReplyCategory.ANALYTICAL, [
            r'\b(analy[sz]e|evaluate|assess)\b',
        ]),
        (ReplyCategory.WEATHER, [
            r'\b(weather|forecast|temperature)\b',
        ]),
        (ReplyCategory.CODE, [
            r'\b(code|coding|programming|program|javascript|typescript|python|react|function|bug)\b',
        ]),
        (ReplyCategory.MATH, [
            r'\b(math|calculate|calculation|compute|arithmetic)\b',
        ]),
        (ReplyCategory.JOKE, [
            r'\b(joke|jokes|funny|laugh)\b',
        ]),
        (ReplyCategory.THANKS, [
            r'\b(thanks|thank you|thx)\b',
        ]),
    ]

    TEMPLATES: Dict[ReplyCategory, List[str]] = {
        ReplyCategory.GREETING: [
            "Hello! I'm Websoft AI, your intelligent assistant. How can I help you today?",
            "Hi there! I'm ready to assist you with any questions or tasks.",
            "Hello! I'm your intelligent companion. What would you like to explore?",
        ],
        ReplyCategory.EXPLANATION: [
            "I'll explain \"{topic}\" step by step. Let me break this down in a clear and comprehensive way.",
            "Good question! Here's how I'd approach \"{topic}\", one piece at a time.",
        ],
        ReplyCategory.COMPARISON: [
            "I'll help you compare and analyze the differences. Let me break this down systematically.",
        ],
        ReplyCategory.PROBLEM_SOLVING: [
            "Let me help you solve this problem. I'll approach it methodically.",
        ],
        ReplyCategory.CREATIVE: [
            "I love creative challenges! Let me help you design and create something amazing.",
        ],
        ReplyCategory.ANALYTICAL: [
            "I'll analyze this thoroughly for you. Let me examine the key factors.",
        ],
        ReplyCategory.WEATHER: [
            "I'd be happy to help with weather information! However, I don't have access to "
            "real-time weather data. You might want to check a weather app or website for current conditions.",
        ],
        ReplyCategory.CODE: [
            "I'd be happy to help with programming! What specific question do you have?",
            "Programming is my specialty! What language or framework are you working with?",
            "I can help with coding questions. Are you working on a specific problem?",
        ],
        ReplyCategory.JOKE: [
            "Why don't programmers like nature? It has too many bugs!",
            "Why did the developer go broke? Because he used up all his cache!",
            "Why do programmers prefer dark mode? Because light attracts bugs!",
            "How many programmers does it take to change a light bulb? None, that's a hardware problem!",
        ],
        ReplyCategory.THANKS: [
            "You're welcome! Is there anything else I can help you with?",
        ],
        ReplyCategory.GENERIC: [
            "That's an interesting question about \"{input}\". Let me think about this and provide "
            "you with a comprehensive answer. I'm here to help!",
            "I understand you're asking about \"{input}\". Can you elaborate a bit more so I can "
            "provide a better answer?",
        ],
    }

    def __init__(self):
        """Compile the category patterns."""
        self._compiled = [
            (category, [re.compile(p, re.IGNORECASE) for p in patterns])
            for category, patterns in self.CATEGORY_PATTERNS
        ]

    def classify(self, text: str) -> ReplyCategory:
        """Pick the template family for ``text``."""
        if extract_expression(text):
            return ReplyCategory.MATH

        for category, patterns in self._compiled:
            if any(p.search(text) for p in patterns):
                return category
        return ReplyCategory.GENERIC

    def respond(self, text: str,
                personality: Personality = Personality.INTELLIGENT_ASSISTANT) -> HeuristicReply:
        """Generate a reply. The same input always yields the same reply."""
        text = text.strip()
        category = self.classify(text)

        if category == ReplyCategory.MATH:
            body = self._math_response(text)
        else:
            body = self._fill(self._choose(category, text), text)

        banner = personality.profile.render_banner(text)
        return HeuristicReply(category=category, text=banner + body)

    def _choose(self, category: ReplyCategory, text: str) -> str:
        templates = self.TEMPLATES[category]
        return templates[zlib.crc32(text.lower().encode('utf-8')) % len(templates)]

    def _fill(self, template: str, text: str) -> str:
        topic = re.sub(r'\b(explain|how|why)\b', '', text, flags=re.IGNORECASE).strip(" ?!.") or text
        return template.format(input=text, topic=topic)

    def _math_response(self, text: str) -> str:
        expression = extract_expression(text)
        if not expression:
            return MATH_HELP
        try:
            result = safe_eval(expression)
        except ArithmeticParseError:
            return MATH_HELP
        return f"The result of {expression} is {format_number(result)}"
