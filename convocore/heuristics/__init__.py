"""
Heuristics Module
=================

Rule-based text generation with no external calls: keyword templates,
assistant personalities and safe arithmetic.
"""

from .arithmetic import ArithmeticParseError, extract_expression, format_number, safe_eval
from .personality import Personality, PersonalityProfile, PROFILES, get_canned_prompts
from .responder import HeuristicResponder, HeuristicReply, ReplyCategory, MATH_HELP

__all__ = [
    'ArithmeticParseError',
    'extract_expression',
    'format_number',
    'safe_eval',
    'Personality',
    'PersonalityProfile',
    'PROFILES',
    'get_canned_prompts',
    'HeuristicResponder',
    'HeuristicReply',
    'ReplyCategory',
    'MATH_HELP',
]
