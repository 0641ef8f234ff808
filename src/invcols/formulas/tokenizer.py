"""Tokenizer for substituted numeric expressions.

After column substitution an expression may only contain digits, ``.``,
the four operators ``+ - * /``, parentheses and whitespace.  Anything else
means the formula referenced a name that was not substituted, and is
rejected here rather than silently evaluated.
"""

from __future__ import annotations

from functools import lru_cache
from typing import NamedTuple

from invcols.formulas.errors import InvalidCharacterError

NUMBER = "number"
OP = "op"
LPAREN = "lparen"
RPAREN = "rparen"

OPERATORS = frozenset("+-*/")
_DIGITS = frozenset("0123456789.")


class Token(NamedTuple):
    """A single lexical token.

    Attributes:
        kind: One of ``number``, ``op``, ``lparen``, ``rparen``.
        value: The float for numbers, the operator or paren character otherwise.
        position: Offset of the token's first character in the source.
    """

    kind: str
    value: float | str
    position: int


def tokenize(expression: str) -> list[Token]:
    """Split *expression* into number, operator and parenthesis tokens.

    Args:
        expression: A fully substituted expression, e.g. ``"(10 - 2) * 3"``.

    Returns:
        A new list of tokens.  Whitespace is dropped.

    Raises:
        InvalidCharacterError: On any character outside the allowed set,
            or on a malformed numeric literal such as ``1.2.3`` or ``.``.
    """
    return list(_tokenize_cached(expression))


@lru_cache(maxsize=4096)
def _tokenize_cached(expression: str) -> tuple[Token, ...]:
    tokens: list[Token] = []
    i = 0
    n = len(expression)
    while i < n:
        ch = expression[i]
        if ch.isspace():
            i += 1
            continue
        if ch in _DIGITS:
            start = i
            while i < n and expression[i] in _DIGITS:
                i += 1
            tokens.append(Token(NUMBER, _parse_literal(expression[start:i], start), start))
            continue
        if ch in OPERATORS:
            tokens.append(Token(OP, ch, i))
        elif ch == "(":
            tokens.append(Token(LPAREN, ch, i))
        elif ch == ")":
            tokens.append(Token(RPAREN, ch, i))
        else:
            raise InvalidCharacterError(ch, position=i)
        i += 1
    return tuple(tokens)


def _parse_literal(text: str, position: int) -> float:
    """Parse a run of digits and dots as a float."""
    if text.count(".") > 1:
        second = text.index(".", text.index(".") + 1)
        raise InvalidCharacterError(
            ".", position=position + second, message=f"Malformed number: {text!r}"
        )
    if text == ".":
        raise InvalidCharacterError(".", position=position, message="Malformed number: '.'")
    return float(text)
