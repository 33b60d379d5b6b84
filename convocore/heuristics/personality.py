"""
Assistant personalities.

A closed set of personalities, each mapped to the template set it uses:
the system instruction sent to a live model, the banner prefixed to offline
replies and the starter prompts offered to the user.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Tuple


class Personality(Enum):
    """Supported assistant personalities."""
    INTELLIGENT_ASSISTANT = "intelligent_assistant"
    CREATIVE_THINKER = "creative_thinker"
    ANALYTICAL_EXPERT = "analytical_expert"
    CODING_ASSISTANT = "coding_assistant"
    BUSINESS_CONSULTANT = "business_consultant"
    TEACHER = "teacher"
    DOMAIN_SPECIALIST = "domain_specialist"

    @classmethod
    def from_value(cls, value: str) -> 'Personality':
        """Parse a personality name, rejecting anything outside the set."""
        normalized = value.strip().lower().replace('-', '_').replace(' ', '_')
        for personality in cls:
            if personality.value == normalized:
                return personality
        raise ValueError(f"Unknown personality: {value!r}")

    @property
    def profile(self) -> 'PersonalityProfile':
        return PROFILES[self]


@dataclass(frozen=True)
class PersonalityProfile:
    """Template set for one personality."""
    mode: str
    system_prompt: str
    banner: str
    canned_prompts: Tuple[str, ...] = field(default_factory=tuple)

    def render_banner(self, user_input: str) -> str:
        if not self.banner:
            return ""
        return self.banner.format(input=user_input)


_BASE_SYSTEM_PROMPT = (
    "You are Websoft AI, a helpful and intelligent AI assistant. "
    "Provide clear, helpful, and accurate responses."
)

PROFILES: Dict[Personality, PersonalityProfile] = {
    Personality.INTELLIGENT_ASSISTANT: PersonalityProfile(
        mode="conversational",
        system_prompt=_BASE_SYSTEM_PROMPT,
        banner="",
        canned_prompts=(
            "Hello! How can I help you today?",
            "What would you like to learn about?",
            "Tell me a joke",
            "What can you help me with?",
            "What is 12 * 4?",
        ),
    ),
    Personality.CREATIVE_THINKER: PersonalityProfile(
        mode="creative",
        system_prompt=_BASE_SYSTEM_PROMPT + " Think creatively and offer original, imaginative ideas.",
        banner="**Creative Mode**\n\nI'm thinking creatively about \"{input}\".\n\n",
        canned_prompts=(
            "Let's brainstorm some creative ideas!",
            "What kind of project would you like to create?",
            "Help me design a logo concept",
            "Write a short story opening",
        ),
    ),
    Personality.ANALYTICAL_EXPERT: PersonalityProfile(
        mode="analytical",
        system_prompt=_BASE_SYSTEM_PROMPT + " Reason step by step and weigh the evidence explicitly.",
        banner="**Analytical Mode**\n\nI'm analyzing \"{input}\" systematically.\n\n",
        canned_prompts=(
            "Analyze the pros and cons of remote work",
            "Evaluate this argument for me",
            "Compare SQL and NoSQL databases",
            "Break this problem down step by step",
        ),
    ),
    Personality.CODING_ASSISTANT: PersonalityProfile(
        mode="coding",
        system_prompt=_BASE_SYSTEM_PROMPT + " You are an expert programmer; include short code examples when useful.",
        banner="**Coding Mode**\n\nLet's work through \"{input}\" technically.\n\n",
        canned_prompts=(
            "Explain async/await in Python",
            "Help me solve a coding problem",
            "How do I get started with programming?",
            "What are the best practices for code review?",
            "Help me understand type hints",
        ),
    ),
    Personality.BUSINESS_CONSULTANT: PersonalityProfile(
        mode="business",
        system_prompt=_BASE_SYSTEM_PROMPT + " Answer as a pragmatic business consultant focused on outcomes.",
        banner="**Business Mode**\n\nLooking at \"{input}\" from a business perspective.\n\n",
        canned_prompts=(
            "Help me create a business strategy",
            "How do I analyze market trends?",
            "What are the key metrics for startups?",
            "Help me with financial planning",
            "How do I improve customer retention?",
        ),
    ),
    Personality.TEACHER: PersonalityProfile(
        mode="educational",
        system_prompt=_BASE_SYSTEM_PROMPT + " Teach patiently, using simple terms, examples and analogies.",
        banner="**Educational Mode**\n\nLet me teach you about \"{input}\".\n\n",
        canned_prompts=(
            "What would you like to learn today?",
            "Explain photosynthesis simply",
            "Teach me the basics of statistics",
            "Give me an analogy for how the internet works",
        ),
    ),
    Personality.DOMAIN_SPECIALIST: PersonalityProfile(
        mode="football",
        system_prompt=_BASE_SYSTEM_PROMPT + " You specialise in football analysis, fixtures and predictions.",
        banner="**Football Mode**\n\n",
        canned_prompts=(
            "Show me today's football predictions",
            "Premier League standings",
            "La Liga table",
            "Upcoming matches this week",
            "Predict Manchester City vs Arsenal",
            "Champions League predictions",
        ),
    ),
}


def get_canned_prompts(personality: Personality) -> List[str]:
    return list(PROFILES[personality].canned_prompts)
