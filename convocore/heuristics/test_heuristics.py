"""
Unit tests for the heuristic responder, personalities and safe arithmetic.
"""

import pytest

from convocore.heuristics import (
    ArithmeticParseError, HeuristicResponder, MATH_HELP, Personality, ReplyCategory,
    extract_expression, format_number, get_canned_prompts, safe_eval
)


class TestSafeEval:
    """Grammar-restricted arithmetic."""

    @pytest.mark.parametrize("expression,expected", [
        ("2 + 2", 4),
        ("12 * 4", 48),
        ("10 / 4", 2.5),
        ("(1 + 2) * 3", 9),
        ("-5 + 3", -2),
        ("7 - 10", -3),
    ])
    def test_basic_operators(self, expression, expected):
        assert safe_eval(expression) == expected

    @pytest.mark.parametrize("expression", [
        "__import__('os')",
        "2 ** 10",
        "abs(-1)",
        "1; 2",
        "x + 1",
        "",
    ])
    def test_rejects_anything_outside_grammar(self, expression):
        with pytest.raises(ArithmeticParseError):
            safe_eval(expression)

    def test_division_by_zero(self):
        with pytest.raises(ArithmeticParseError):
            safe_eval("1 / 0")

    def test_result_size_is_bounded(self):
        with pytest.raises(ArithmeticParseError):
            safe_eval("99999999 * 99999999 * 99999999")

    def test_format_number(self):
        assert format_number(42.0) == "42"
        assert format_number(2.5) == "2.5"
        assert format_number(7) == "7"


class TestExtractExpression:
    """Finding arithmetic inside free text."""

    def test_question(self):
        assert extract_expression("What is 6 * 7?") == "6 * 7"

    def test_bare_expression(self):
        assert extract_expression("12 * 4") == "12 * 4"

    def test_number_without_operator(self):
        assert extract_expression("I have 3 apples") is None

    def test_no_digits(self):
        assert extract_expression("hello there") is None


class TestHeuristicResponder:
    """Keyword categories and deterministic template choice."""

    @pytest.fixture
    def responder(self):
        return HeuristicResponder()

    @pytest.mark.parametrize("text,category", [
        ("hello", ReplyCategory.GREETING),
        ("Hey, good morning", ReplyCategory.GREETING),
        ("explain recursion", ReplyCategory.EXPLANATION),
        ("compare cats and dogs", ReplyCategory.COMPARISON),
        ("tell me a joke", ReplyCategory.JOKE),
        ("I need help with my python code", ReplyCategory.CODE),
        ("thanks a lot", ReplyCategory.THANKS),
        ("what's the weather like", ReplyCategory.WEATHER),
        ("12 * 4", ReplyCategory.MATH),
        ("the quick brown fox", ReplyCategory.GENERIC),
    ])
    def test_classify(self, responder, text, category):
        assert responder.classify(text) == category

    def test_word_boundaries(self, responder):
        """'this' must not be read as the greeting 'hi'."""
        assert responder.classify("this is a sentence") == ReplyCategory.GENERIC

    def test_arithmetic_beats_keywords(self, responder):
        assert responder.classify("hello, what is 3 + 4?") == ReplyCategory.MATH

    def test_math_reply_contains_value(self, responder):
        reply = responder.respond("What is 6 * 7?")
        assert reply.category == ReplyCategory.MATH
        assert "42" in reply.text

    def test_math_keyword_without_expression(self, responder):
        reply = responder.respond("can you do some math")
        assert reply.text == MATH_HELP

    def test_unevaluable_expression_gets_help(self, responder):
        reply = responder.respond("what is 1 / 0")
        assert reply.category == ReplyCategory.MATH
        assert reply.text == MATH_HELP

    def test_same_input_same_reply(self, responder):
        first = responder.respond("tell me a joke")
        for _ in range(5):
            assert responder.respond("tell me a joke") == first

    def test_greeting_template(self, responder):
        reply = responder.respond("hello")
        assert reply.category == ReplyCategory.GREETING
        assert reply.text in HeuristicResponder.TEMPLATES[ReplyCategory.GREETING]

    def test_generic_echoes_input(self, responder):
        reply = responder.respond("the quick brown fox")
        assert "the quick brown fox" in reply.text

    def test_personality_banner(self, responder):
        reply = responder.respond("hello", Personality.CREATIVE_THINKER)
        assert reply.text.startswith("**Creative Mode**")
        assert reply.category == ReplyCategory.GREETING

    def test_default_personality_has_no_banner(self, responder):
        reply = responder.respond("hello", Personality.INTELLIGENT_ASSISTANT)
        assert not reply.text.startswith("**")


class TestPersonality:
    """Closed personality set."""

    def test_from_value(self):
        assert Personality.from_value("coding_assistant") == Personality.CODING_ASSISTANT
        assert Personality.from_value("Coding-Assistant") == Personality.CODING_ASSISTANT

    def test_unknown_value_rejected(self):
        with pytest.raises(ValueError):
            Personality.from_value("pirate")

    def test_every_personality_has_prompts(self):
        for personality in Personality:
            prompts = get_canned_prompts(personality)
            assert prompts
            assert personality.profile.system_prompt

    def test_prompts_are_copies(self):
        prompts = get_canned_prompts(Personality.TEACHER)
        prompts.append("extra")
        assert "extra" not in get_canned_prompts(Personality.TEACHER)
