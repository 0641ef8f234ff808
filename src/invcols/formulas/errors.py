"""Error types for formula validation and evaluation."""

from __future__ import annotations


class FormulaError(Exception):
    """Base class for all formula-related errors."""

    error_code = "formula_error"


# ---------------------------------------------------------------------------
# Definition time
# ---------------------------------------------------------------------------


class FormulaValidationError(FormulaError):
    """A formula was rejected before the column could be saved."""

    error_code = "formula_invalid"


class EmptyFormulaError(FormulaValidationError):
    """The formula text is empty once trimmed."""

    error_code = "empty_formula"

    def __init__(self) -> None:
        super().__init__("Formula is required.")


class NonNumericColumnError(FormulaValidationError):
    """The formula references a column that does not hold numbers.

    Attributes:
        field: The offending column field name, as spelled in the catalog.
    """

    error_code = "non_numeric_column"

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(
            f'Formula can only use numeric columns. "{field}" is not a numeric column.'
        )


# ---------------------------------------------------------------------------
# Evaluation time
# ---------------------------------------------------------------------------


class FormulaEvalError(FormulaError):
    """A substituted expression could not be evaluated.

    Attributes:
        position: Character position where the error was detected, if known.
    """

    error_code = "formula_eval_error"

    def __init__(self, message: str, position: int | None = None) -> None:
        self.position = position
        full = message
        if position is not None:
            full += f" (at position {position})"
        super().__init__(full)


class InvalidCharacterError(FormulaEvalError):
    """The expression holds something other than numbers, operators and parentheses."""

    error_code = "invalid_character"

    def __init__(self, char: str, position: int | None = None, message: str | None = None) -> None:
        self.char = char
        super().__init__(message or f"Invalid character: {char!r}", position)


class MismatchedParenthesesError(FormulaEvalError):
    error_code = "mismatched_parentheses"

    def __init__(self, position: int | None = None) -> None:
        super().__init__("Mismatched parentheses", position)


class MalformedOperatorError(FormulaEvalError):
    """Operators and operands do not alternate (``2 + * 3``, ``2 3``, ``()``)."""

    error_code = "malformed_operator_sequence"


class DivisionByZeroError(FormulaEvalError):
    error_code = "division_by_zero"

    def __init__(self, position: int | None = None) -> None:
        super().__init__("Division by zero in formula", position)


ENGINE_ERRORS = (
    InvalidCharacterError,
    MismatchedParenthesesError,
    MalformedOperatorError,
    DivisionByZeroError,
)
