"""Definition-time gate for formula columns.

Runs when a formula column is created or its text is edited, before the
column is saved.  Independent of any record.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from invcols.formulas.errors import (
    EmptyFormulaError,
    FormulaValidationError,
    NonNumericColumnError,
)
from invcols.formulas.references import find_identifiers, find_references, references_field
from invcols.formulas.resolver import SYNTHETIC_FIELDS

if TYPE_CHECKING:
    from invcols.catalog import ColumnCatalog


class ValidationResult(BaseModel):
    """Outcome of ``validate_formula``.

    ``unknown_identifiers`` lists words that look like names but match no
    catalog column.  They do not fail validation (constants and typos are
    left to evaluation time) but a UI can warn about them.
    """

    ok: bool
    formula: str = ""
    error_code: str | None = None
    field: str | None = None
    message: str | None = None
    references: list[str] = Field(default_factory=list)
    unknown_identifiers: list[str] = Field(default_factory=list)


def _rejected_fields(catalog: ColumnCatalog) -> list[str]:
    """Fields a formula may never reference, in catalog order."""
    from invcols.catalog import non_numeric_fields

    return list(dict.fromkeys([*non_numeric_fields(catalog), *sorted(SYNTHETIC_FIELDS)]))


def check_formula(text: str, catalog: ColumnCatalog) -> str:
    """Validate raw formula input and return the trimmed formula.

    Args:
        text: The author's untrimmed input.
        catalog: The column catalog the formula will live in.

    Returns:
        The trimmed formula text, ready to store.

    Raises:
        EmptyFormulaError: Nothing but whitespace was entered.
        NonNumericColumnError: A whole-word reference to a column that is
            not numeric, a formula column, ``totalValue`` or ``actions``.
    """
    formula = text.strip()
    if not formula:
        raise EmptyFormulaError()
    for field in _rejected_fields(catalog):
        if references_field(formula, field):
            raise NonNumericColumnError(field)
    return formula


def validate_formula(text: str, catalog: ColumnCatalog) -> ValidationResult:
    """Validate a formula without raising; see ``check_formula`` for the rules."""
    from invcols.catalog import numeric_fields

    try:
        formula = check_formula(text, catalog)
    except FormulaValidationError as exc:
        return ValidationResult(
            ok=False,
            formula=text.strip(),
            error_code=exc.error_code,
            field=getattr(exc, "field", None),
            message=str(exc),
        )

    numeric = numeric_fields(catalog)
    known = {c.field.lower() for c in catalog.columns}
    unknown = [w for w in find_identifiers(formula) if w.lower() not in known]
    return ValidationResult(
        ok=True,
        formula=formula,
        references=find_references(formula, numeric),
        unknown_identifiers=unknown,
    )
