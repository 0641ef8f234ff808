"""Tests for formula tokenizing, expression evaluation and formula entry points."""

from __future__ import annotations

import pytest

from invcols.formulas import (
    ENGINE_ERRORS,
    NO_VALUE,
    DivisionByZeroError,
    FormulaError,
    FormulaEvalError,
    InvalidCharacterError,
    MalformedOperatorError,
    MismatchedParenthesesError,
    compute_cell,
    evaluate_expression,
    evaluate_formula,
    tokenize,
)

NUMERIC = ["price", "quantity", "discount", "tax"]


# ────────────────────────────────────────────────────────────────
# Tokenizer
# ────────────────────────────────────────────────────────────────


class TestTokenizer:
    def test_numbers_and_operators(self) -> None:
        tokens = tokenize("(10.5 - 2) * 3")
        assert [t.kind for t in tokens] == [
            "lparen", "number", "op", "number", "rparen", "op", "number",
        ]
        assert tokens[1].value == 10.5
        assert tokens[5].value == "*"

    def test_positions(self) -> None:
        tokens = tokenize("1 +  22")
        assert [t.position for t in tokens] == [0, 2, 5]

    def test_whitespace_only_is_empty(self) -> None:
        assert tokenize("  \t ") == []

    def test_leading_dot_literal(self) -> None:
        assert tokenize(".5")[0].value == 0.5

    def test_rejects_letters(self) -> None:
        with pytest.raises(InvalidCharacterError) as exc_info:
            tokenize("10 * qty")
        assert exc_info.value.char == "q"
        assert exc_info.value.position == 5

    def test_rejects_exponent_notation(self) -> None:
        with pytest.raises(InvalidCharacterError):
            tokenize("1e5")

    @pytest.mark.parametrize("expr", ["2 ^ 3", "2 % 3", "a", "1,5", "$5"])
    def test_rejects_unsupported_characters(self, expr: str) -> None:
        with pytest.raises(InvalidCharacterError):
            tokenize(expr)

    def test_rejects_double_dot_literal(self) -> None:
        with pytest.raises(InvalidCharacterError, match="Malformed number"):
            tokenize("1.2.3")

    def test_rejects_bare_dot(self) -> None:
        with pytest.raises(InvalidCharacterError):
            tokenize("1 + .")

    def test_returns_fresh_list(self) -> None:
        first = tokenize("1 + 2")
        first.clear()
        assert len(tokenize("1 + 2")) == 3


# ────────────────────────────────────────────────────────────────
# Expression evaluation
# ────────────────────────────────────────────────────────────────


class TestEvaluateExpression:
    def test_single_number(self) -> None:
        assert evaluate_expression("42") == 42.0

    def test_precedence(self) -> None:
        """Multiplication binds tighter than addition: 10 + 3*2 = 16."""
        assert evaluate_expression("10 + 3 * 2") == 16.0

    def test_parentheses_override_precedence(self) -> None:
        assert evaluate_expression("(10 + 3) * 2") == 26.0

    def test_left_to_right_subtraction(self) -> None:
        assert evaluate_expression("10 - 4 - 3") == 3.0

    def test_left_to_right_division(self) -> None:
        assert evaluate_expression("100 / 10 / 5") == 2.0

    def test_mixed_multiplicative_left_to_right(self) -> None:
        assert evaluate_expression("8 / 4 * 2") == 4.0

    def test_nested_parentheses(self) -> None:
        assert evaluate_expression("((2 + 3) * (4 - 1)) / 5") == 3.0

    def test_sibling_groups(self) -> None:
        assert evaluate_expression("(1 + 2) * (3 + 4)") == 21.0

    def test_float_arithmetic_not_rounded(self) -> None:
        assert evaluate_expression("0.1 + 0.2") == pytest.approx(0.3)
        assert evaluate_expression("1 / 3") == pytest.approx(0.333333333333)

    def test_leading_unary_minus(self) -> None:
        assert evaluate_expression("-5 + 2") == -3.0

    def test_leading_unary_minus_binds_to_operand(self) -> None:
        """-2 * 3 reads as 0 - 2*3 either way."""
        assert evaluate_expression("-2 * 3") == -6.0

    def test_unary_minus_inside_group(self) -> None:
        assert evaluate_expression("3 * (-2 + 1)") == -3.0

    def test_unary_minus_after_operator(self) -> None:
        """Substituted negative values land after an operator."""
        assert evaluate_expression("3 * -5") == -15.0
        assert evaluate_expression("10 - -3") == 13.0

    def test_negative_group_result_composes(self) -> None:
        assert evaluate_expression("2 * (1 - 4)") == -6.0

    def test_zero_result_is_positive_zero(self) -> None:
        assert str(evaluate_expression("-0")) == "0.0"

    def test_division_by_zero(self) -> None:
        with pytest.raises(DivisionByZeroError) as exc_info:
            evaluate_expression("10 / 0")
        assert exc_info.value.position == 3

    def test_division_by_zero_group(self) -> None:
        with pytest.raises(DivisionByZeroError):
            evaluate_expression("10 / (2 - 2)")

    def test_zero_numerator_is_fine(self) -> None:
        assert evaluate_expression("0 / 5") == 0.0

    @pytest.mark.parametrize("expr", ["(1 + 2", "1 + 2)", ")(", "((1)", "(1))"])
    def test_mismatched_parentheses(self, expr: str) -> None:
        with pytest.raises(MismatchedParenthesesError):
            evaluate_expression(expr)

    @pytest.mark.parametrize(
        "expr",
        ["", "2 +", "* 2", "2 + * 3", "2 3", "()", "2 (3)", "(2) 3", "--2", "+2"],
    )
    def test_malformed_operator_sequences(self, expr: str) -> None:
        with pytest.raises(MalformedOperatorError):
            evaluate_expression(expr)

    def test_errors_share_base_classes(self) -> None:
        for cls in ENGINE_ERRORS:
            assert issubclass(cls, FormulaEvalError)
            assert issubclass(cls, FormulaError)


# ────────────────────────────────────────────────────────────────
# evaluate_formula / compute_cell
# ────────────────────────────────────────────────────────────────


class TestEvaluateFormula:
    @pytest.mark.parametrize("a, b", [(2, 3), (0, 7), (-1.5, 4), (0.25, 0.5), (1000, 1000)])
    def test_multiplication_of_fields(self, a: float, b: float) -> None:
        result = evaluate_formula("price * quantity", {"price": a, "quantity": b}, NUMERIC)
        assert result == pytest.approx(a * b)

    def test_precedence_with_fields(self) -> None:
        assert evaluate_formula("price + quantity * 2", {"price": 10, "quantity": 3}, NUMERIC) == 16

    def test_parentheses_with_fields(self) -> None:
        assert evaluate_formula("(price + quantity) * 2", {"price": 10, "quantity": 3}, NUMERIC) == 26

    def test_discounted_value(self) -> None:
        record = {"price": "12.50", "discount": 2.5, "quantity": "4"}
        assert evaluate_formula("(price - discount) * quantity", record, NUMERIC) == 40.0

    def test_missing_input_is_no_value(self) -> None:
        assert evaluate_formula("price * quantity", {"price": 10}, NUMERIC) is NO_VALUE

    def test_non_numeric_string_is_no_value(self) -> None:
        result = evaluate_formula("price * quantity", {"price": "abc", "quantity": 3}, NUMERIC)
        assert result is NO_VALUE

    def test_no_value_is_not_zero(self) -> None:
        result = evaluate_formula("price * quantity", {"price": 10, "quantity": ""}, NUMERIC)
        assert result is NO_VALUE
        assert result != 0

    def test_negated_negative_field(self) -> None:
        assert evaluate_formula("-discount", {"discount": -5}, NUMERIC) == 5.0

    def test_negated_negative_field_after_operator(self) -> None:
        result = evaluate_formula("price * -discount", {"price": 3, "discount": -2}, NUMERIC)
        assert result == 6.0

    def test_subtracting_negative_field(self) -> None:
        assert evaluate_formula("price - discount", {"price": 3, "discount": "-2"}, NUMERIC) == 5.0

    def test_zero_input_is_a_value(self) -> None:
        assert evaluate_formula("price * quantity", {"price": 10, "quantity": 0}, NUMERIC) == 0

    def test_division_by_zero_raises(self) -> None:
        with pytest.raises(DivisionByZeroError):
            evaluate_formula("price / quantity", {"price": 10, "quantity": 0}, NUMERIC)

    def test_unknown_name_is_invalid_character(self) -> None:
        with pytest.raises(InvalidCharacterError):
            evaluate_formula("price * weight", {"price": 10, "weight": 2}, NUMERIC)

    def test_constant_formula(self) -> None:
        assert evaluate_formula("2 * (3 + 4)", {}, NUMERIC) == 14

    def test_overflow_is_no_value(self) -> None:
        big = "9" * 200
        assert evaluate_formula(f"price * {big} * {big}", {"price": 10}, NUMERIC) is NO_VALUE

    def test_idempotent(self) -> None:
        record = {"price": 19.99, "quantity": 3, "discount": 1}
        first = evaluate_formula("(price - discount) * quantity", record, NUMERIC)
        second = evaluate_formula("(price - discount) * quantity", record, NUMERIC)
        assert first == second

    def test_record_not_mutated(self) -> None:
        record = {"price": "10", "quantity": 3, "note": "x"}
        snapshot = dict(record)
        evaluate_formula("price * quantity", record, NUMERIC)
        assert record == snapshot


class TestComputeCell:
    def test_ok(self) -> None:
        cell = compute_cell("price * quantity", {"price": 2, "quantity": 3}, NUMERIC)
        assert cell.status == "ok"
        assert cell.is_ok
        assert cell.value == 6

    def test_no_value(self) -> None:
        cell = compute_cell("price * quantity", {"price": 2}, NUMERIC)
        assert cell.status == "no_value"
        assert cell.value is None
        assert cell.error_code is None

    def test_division_by_zero_is_tagged(self) -> None:
        cell = compute_cell("price / quantity", {"price": 10, "quantity": 0}, NUMERIC)
        assert cell.status == "error"
        assert cell.error_code == "division_by_zero"
        assert "Division by zero" in (cell.message or "")

    def test_syntax_errors_are_tagged(self) -> None:
        assert compute_cell("price * (quantity", {"price": 1, "quantity": 2}, NUMERIC).error_code == (
            "mismatched_parentheses"
        )
        assert compute_cell("price * * quantity", {"price": 1, "quantity": 2}, NUMERIC).error_code == (
            "malformed_operator_sequence"
        )
        assert compute_cell("price * weight", {"price": 1}, NUMERIC).error_code == "invalid_character"

    @pytest.mark.parametrize("formula, record, expected", [
        ("-discount", {"discount": -5}, 5.0),
        ("price * -discount", {"price": 3, "discount": -2}, 6.0),
        ("-discount", {"discount": 5}, -5.0),
    ])
    def test_negative_inputs_are_ok(self, formula: str, record: dict, expected: float) -> None:
        cell = compute_cell(formula, record, NUMERIC)
        assert cell.status == "ok"
        assert cell.value == expected

    def test_no_value_wins_over_syntax(self) -> None:
        """Missing inputs are checked before the expression is parsed."""
        cell = compute_cell("price * * quantity", {"price": 1}, NUMERIC)
        assert cell.status == "no_value"
