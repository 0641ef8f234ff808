"""Precedence-aware evaluator for substituted numeric expressions.

Evaluation works on the token list from ``tokenize()``:

1. Parentheses are resolved innermost first.  The last ``(`` and the
   first ``)`` after it enclose a parenthesis-free group, which is folded
   and replaced by a single number token.
2. A parenthesis-free run is folded in two left-to-right passes: ``*``
   and ``/`` first, then ``+`` and ``-``.

A ``-`` where an operand is expected (start of a group, or right after
another operator) negates the operand that follows, i.e. ``0 - value``.
"""

from __future__ import annotations

import math
from typing import Any, Iterable, Literal, Mapping

from pydantic import BaseModel

from invcols.formulas.errors import (
    DivisionByZeroError,
    FormulaEvalError,
    MalformedOperatorError,
    MismatchedParenthesesError,
)
from invcols.formulas.resolver import NO_VALUE, NoValue, resolve_references
from invcols.formulas.tokenizer import LPAREN, NUMBER, OP, RPAREN, Token, tokenize


def evaluate_expression(expression: str) -> float:
    """Evaluate a fully substituted numeric expression.

    Args:
        expression: Digits, ``.``, ``+ - * /``, parentheses and whitespace.

    Returns:
        The result as a float.  No rounding is applied.

    Raises:
        InvalidCharacterError: The expression holds anything else.
        MismatchedParenthesesError: A ``(`` or ``)`` has no partner.
        MalformedOperatorError: Operators and operands do not alternate.
        DivisionByZeroError: A ``/`` has a zero right operand.
    """
    items = tokenize(expression)
    if not items:
        raise MalformedOperatorError("Empty expression")

    while True:
        start = _last_index(items, LPAREN)
        if start is None:
            break
        end = _first_index(items, RPAREN, start + 1)
        if end is None:
            raise MismatchedParenthesesError(items[start].position)
        opener = items[start]
        value = _fold(items[start + 1:end], opener.position, "Empty parentheses")
        items[start:end + 1] = [Token(NUMBER, value, opener.position)]

    stray = _first_index(items, RPAREN, 0)
    if stray is not None:
        raise MismatchedParenthesesError(items[stray].position)

    result = _fold(items, 0, "Empty expression")
    # Normalise -0.0 so "0 - 0" and "-0" read as zero.
    return result if result != 0 else 0.0


def _last_index(items: list[Token], kind: str) -> int | None:
    for i in range(len(items) - 1, -1, -1):
        if items[i].kind == kind:
            return i
    return None


def _first_index(items: list[Token], kind: str, begin: int) -> int | None:
    for i in range(begin, len(items)):
        if items[i].kind == kind:
            return i
    return None


def _fold(tokens: list[Token], position: int, empty_message: str) -> float:
    """Fold a parenthesis-free token run: ``*``/``/`` first, then ``+``/``-``."""
    if not tokens:
        raise MalformedOperatorError(empty_message, position)

    operands, operators = _split_operands(tokens)

    # Pass 1: multiplication and division, left to right.
    terms = [operands[0]]
    additive: list[str] = []
    for op, rhs in zip(operators, operands[1:]):
        if op.value == "*":
            terms[-1] = terms[-1] * rhs
        elif op.value == "/":
            if rhs == 0:
                raise DivisionByZeroError(op.position)
            terms[-1] = terms[-1] / rhs
        else:
            additive.append(str(op.value))
            terms.append(rhs)

    # Pass 2: addition and subtraction, left to right.
    result = terms[0]
    for op_char, rhs in zip(additive, terms[1:]):
        result = result + rhs if op_char == "+" else result - rhs
    return result


def _split_operands(tokens: list[Token]) -> tuple[list[float], list[Token]]:
    """Separate an alternating operand/operator run, applying unary minus."""
    operands: list[float] = []
    operators: list[Token] = []
    expect_operand = True
    negate = False

    for tok in tokens:
        if expect_operand:
            if tok.kind == OP and tok.value == "-" and not negate:
                negate = True
                continue
            if tok.kind != NUMBER:
                raise MalformedOperatorError(
                    f"Expected a number, found {tok.value!r}", tok.position
                )
            value = float(tok.value)
            operands.append(0 - value if negate else value)
            negate = False
            expect_operand = False
        else:
            if tok.kind != OP:
                raise MalformedOperatorError("Missing operator between numbers", tok.position)
            operators.append(tok)
            expect_operand = True

    if expect_operand:
        raise MalformedOperatorError("Expression ends with an operator", tokens[-1].position)
    return operands, operators


# ---------------------------------------------------------------------------
# Formula entry points
# ---------------------------------------------------------------------------


def evaluate_formula(
    formula: str,
    record: Mapping[str, Any],
    numeric_fields: Iterable[str],
) -> float | NoValue:
    """Evaluate a formula column for one record.

    Args:
        formula: Formula text as stored on the column, e.g. ``"price * quantity"``.
        record: Field name -> value mapping for the row.  Never mutated.
        numeric_fields: Numeric field names from the live catalog.

    Returns:
        The numeric result, or ``NO_VALUE`` when a referenced field has no
        usable value or the result is not finite.

    Raises:
        FormulaEvalError: The substituted expression could not be evaluated.
    """
    expression = resolve_references(formula, record, numeric_fields)
    if expression is NO_VALUE:
        return NO_VALUE
    result = evaluate_expression(expression)
    if not math.isfinite(result):
        return NO_VALUE
    return result


class CellResult(BaseModel):
    """Tagged outcome of computing one formula cell."""

    status: Literal["ok", "no_value", "error"]
    value: float | None = None
    error_code: str | None = None
    message: str | None = None

    @property
    def is_ok(self) -> bool:
        return self.status == "ok"


def compute_cell(
    formula: str,
    record: Mapping[str, Any],
    numeric_fields: Iterable[str],
) -> CellResult:
    """Evaluate a formula cell, turning evaluation failures into a tagged result.

    Never raises for a bad formula, so one broken column cannot stop the
    rest of a row or table from rendering.
    """
    try:
        result = evaluate_formula(formula, record, numeric_fields)
    except FormulaEvalError as exc:
        return CellResult(status="error", error_code=exc.error_code, message=str(exc))
    if result is NO_VALUE:
        return CellResult(status="no_value")
    return CellResult(status="ok", value=result)
