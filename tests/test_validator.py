"""Tests for the definition-time formula validator."""

from __future__ import annotations

import pytest

from invcols.catalog import (
    ColumnCatalog,
    ColumnDefinition,
    ColumnType,
    default_catalog,
    numeric_fields,
)
from invcols.formulas import (
    EmptyFormulaError,
    NonNumericColumnError,
    check_formula,
    evaluate_formula,
    validate_formula,
)


@pytest.fixture
def catalog() -> ColumnCatalog:
    base = default_catalog()
    return ColumnCatalog(columns=[
        *base.columns,
        ColumnDefinition(id="c1", field="category", label="Category", is_custom=True),
        ColumnDefinition(id="c2", field="discount", label="Discount", is_custom=True,
                         type=ColumnType.currency),
        ColumnDefinition(id="c3", field="tax", label="Tax", is_custom=True, type=ColumnType.number),
        ColumnDefinition(id="c4", field="added", label="Added", is_custom=True, type=ColumnType.date),
        ColumnDefinition(id="c5", field="net", label="Net", is_custom=True,
                         type=ColumnType.formula, formula="(price - discount) * quantity"),
    ])


# ────────────────────────────────────────────────────────────────
# check_formula
# ────────────────────────────────────────────────────────────────


class TestCheckFormula:
    def test_returns_trimmed(self, catalog: ColumnCatalog) -> None:
        assert check_formula("  price * quantity \n", catalog) == "price * quantity"

    @pytest.mark.parametrize("text", ["", "   ", "\t\n"])
    def test_empty(self, catalog: ColumnCatalog, text: str) -> None:
        with pytest.raises(EmptyFormulaError) as exc_info:
            check_formula(text, catalog)
        assert exc_info.value.error_code == "empty_formula"

    def test_text_column_rejected(self, catalog: ColumnCatalog) -> None:
        with pytest.raises(NonNumericColumnError) as exc_info:
            check_formula("price * category", catalog)
        assert exc_info.value.field == "category"
        assert '"category" is not a numeric column' in str(exc_info.value)

    def test_case_insensitive_rejection(self, catalog: ColumnCatalog) -> None:
        with pytest.raises(NonNumericColumnError):
            check_formula("price * CATEGORY", catalog)

    def test_date_and_builtin_text_rejected(self, catalog: ColumnCatalog) -> None:
        with pytest.raises(NonNumericColumnError):
            check_formula("added + 1", catalog)
        with pytest.raises(NonNumericColumnError) as exc_info:
            check_formula("productId * 2", catalog)
        assert exc_info.value.field == "productId"

    @pytest.mark.parametrize("field", ["totalValue", "actions"])
    def test_synthetic_fields_rejected(self, catalog: ColumnCatalog, field: str) -> None:
        with pytest.raises(NonNumericColumnError) as exc_info:
            check_formula(f"{field} * 2", catalog)
        assert exc_info.value.field == field

    def test_synthetic_rejected_even_when_absent(self) -> None:
        empty = ColumnCatalog(columns=[])
        with pytest.raises(NonNumericColumnError):
            check_formula("totalValue / 2", empty)

    def test_formula_column_rejected(self, catalog: ColumnCatalog) -> None:
        with pytest.raises(NonNumericColumnError) as exc_info:
            check_formula("net * 2", catalog)
        assert exc_info.value.field == "net"

    def test_word_boundary(self, catalog: ColumnCatalog) -> None:
        """``categoryx`` and ``net_margin`` are not references to text/formula columns."""
        assert check_formula("categoryx * 2", catalog) == "categoryx * 2"
        assert check_formula("net_margin * 2", catalog) == "net_margin * 2"

    def test_numeric_columns_accepted(self, catalog: ColumnCatalog) -> None:
        assert check_formula("(price - discount) * quantity + tax", catalog)

    def test_builtins_numeric_regardless_of_type(self) -> None:
        cat = ColumnCatalog(columns=[
            ColumnDefinition(id="price", field="price", label="Price"),
            ColumnDefinition(id="quantity", field="quantity", label="Qty"),
        ])
        assert check_formula("price * quantity", cat) == "price * quantity"


# ────────────────────────────────────────────────────────────────
# validate_formula
# ────────────────────────────────────────────────────────────────


class TestValidateFormula:
    def test_ok_result(self, catalog: ColumnCatalog) -> None:
        result = validate_formula(" (price - discount) * quantity ", catalog)
        assert result.ok
        assert result.formula == "(price - discount) * quantity"
        assert sorted(result.references) == ["discount", "price", "quantity"]
        assert result.unknown_identifiers == []
        assert result.error_code is None

    def test_empty(self, catalog: ColumnCatalog) -> None:
        result = validate_formula("   ", catalog)
        assert not result.ok
        assert result.error_code == "empty_formula"
        assert result.field is None

    def test_non_numeric(self, catalog: ColumnCatalog) -> None:
        result = validate_formula("price * category", catalog)
        assert not result.ok
        assert result.error_code == "non_numeric_column"
        assert result.field == "category"

    def test_unknown_identifiers_are_warnings(self, catalog: ColumnCatalog) -> None:
        result = validate_formula("price * weight + 5", catalog)
        assert result.ok
        assert result.unknown_identifiers == ["weight"]

    def test_validator_and_evaluator_agree(self, catalog: ColumnCatalog) -> None:
        """Accepted references are exactly what the resolver substitutes."""
        result = validate_formula("Tax * 2", catalog)
        assert result.references == ["tax"]
        assert evaluate_formula(result.formula, {"tax": 5}, numeric_fields(catalog)) == 10

    def test_retyped_column_changes_interpretation(self, catalog: ColumnCatalog) -> None:
        """Known edge case: the catalog is versioned by the caller.

        A formula accepted while ``tax`` was numeric is rejected once ``tax``
        is retyped to text, and evaluation no longer substitutes it.
        """
        formula = validate_formula("tax * 2", catalog).formula
        retyped = ColumnCatalog(columns=[
            c.model_copy(update={"type": ColumnType.text}) if c.field == "tax" else c
            for c in catalog.columns
        ])
        assert not validate_formula(formula, retyped).ok
        assert "tax" not in numeric_fields(retyped)
