"""Arithmetic formulas for computed columns.

Public API::

    from invcols.formulas import validate_formula, evaluate_formula, compute_cell
"""

from invcols.formulas.errors import (
    ENGINE_ERRORS,
    DivisionByZeroError,
    EmptyFormulaError,
    FormulaError,
    FormulaEvalError,
    FormulaValidationError,
    InvalidCharacterError,
    MalformedOperatorError,
    MismatchedParenthesesError,
    NonNumericColumnError,
)
from invcols.formulas.evaluator import (
    CellResult,
    compute_cell,
    evaluate_expression,
    evaluate_formula,
)
from invcols.formulas.references import find_references, references_field
from invcols.formulas.resolver import (
    NO_VALUE,
    NoValue,
    coerce_number,
    resolve_references,
)
from invcols.formulas.tokenizer import Token, tokenize
from invcols.formulas.validator import ValidationResult, check_formula, validate_formula

__all__ = [
    "ENGINE_ERRORS",
    "NO_VALUE",
    "CellResult",
    "DivisionByZeroError",
    "EmptyFormulaError",
    "FormulaError",
    "FormulaEvalError",
    "FormulaValidationError",
    "InvalidCharacterError",
    "MalformedOperatorError",
    "MismatchedParenthesesError",
    "NoValue",
    "NonNumericColumnError",
    "Token",
    "ValidationResult",
    "check_formula",
    "coerce_number",
    "compute_cell",
    "evaluate_expression",
    "evaluate_formula",
    "find_references",
    "references_field",
    "resolve_references",
    "tokenize",
    "validate_formula",
]
