"""
Grammar-restricted arithmetic.

Only numbers, ``+ - * /``, unary signs and parentheses are accepted. The
expression is parsed with :mod:`ast` and walked node by node; anything else
(names, calls, attributes, powers) is rejected before evaluation.
"""

import ast
import operator
import re
from typing import Optional, Union

Number = Union[int, float]

MAX_EXPRESSION_LENGTH = 200
MAX_RESULT = 1e15

_BINARY_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
}

_UNARY_OPS = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}

# A run of digits, operators, dots, parens and spaces that starts with a
# number (optionally signed or parenthesised) and ends with a digit or ')'.
_EXPRESSION_RE = re.compile(r'[-+(\s]*\d[\d\s.+\-*/()]*[\d)]|\d')
_HAS_OPERATOR_RE = re.compile(r'[\d)]\s*[-+*/]\s*[-+(]*\s*[\d(.]')
_ALLOWED_CHARS_RE = re.compile(r'^[\d\s.+\-*/()]+$')


class ArithmeticParseError(ValueError):
    """Raised for anything that is not a safe, finite arithmetic expression."""
    pass


def safe_eval(expression: str) -> Number:
    """Evaluate ``expression`` using the four basic operators only."""
    expression = expression.strip()
    if not expression or len(expression) > MAX_EXPRESSION_LENGTH:
        raise ArithmeticParseError("Expression is empty or too long")
    if not _ALLOWED_CHARS_RE.match(expression):
        raise ArithmeticParseError(f"Unsupported characters in: {expression}")

    try:
        tree = ast.parse(expression, mode="eval")
    except SyntaxError as e:
        raise ArithmeticParseError(f"Malformed expression: {expression}") from e

    def _eval(node: ast.AST) -> Number:
        if isinstance(node, ast.Expression):
            return _eval(node.body)
        if isinstance(node, ast.Constant):
            if isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
                return node.value
            raise ArithmeticParseError("Only numeric constants are allowed")
        if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
            return _UNARY_OPS[type(node.op)](_eval(node.operand))
        if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
            left = _eval(node.left)
            right = _eval(node.right)
            if isinstance(node.op, ast.Div) and right == 0:
                raise ArithmeticParseError("Division by zero")
            result = _BINARY_OPS[type(node.op)](left, right)
            if abs(result) > MAX_RESULT:
                raise ArithmeticParseError("Result too large")
            return result
        raise ArithmeticParseError("Unsupported math expression")

    return _eval(tree)


def extract_expression(text: str) -> Optional[str]:
    """Pull the first arithmetic expression (with at least one operator) out of free text."""
    for match in _EXPRESSION_RE.finditer(text):
        candidate = match.group(0).strip()
        if _HAS_OPERATOR_RE.search(candidate):
            return candidate
    return None


def format_number(value: Number) -> str:
    """Render integers without a trailing ``.0`` and trim float noise."""
    if isinstance(value, float):
        rounded = round(value, 10)
        if rounded == int(rounded):
            return str(int(rounded))
        return repr(rounded)
    return str(value)
