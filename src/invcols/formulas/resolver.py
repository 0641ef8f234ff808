"""Column reference resolution: formula text + record -> numeric expression.

A record is an open mapping from field name to value.  Only the numeric
fields named by the caller matter here; every other key is inert.
"""

from __future__ import annotations

import math
from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Mapping

from invcols.formulas.references import find_references, reference_pattern

# Synthetic table fields that never hold a stored numeric value.
SYNTHETIC_FIELDS = frozenset({"totalValue", "actions"})


class NoValue:
    """Marker for "this record does not have enough data yet".

    Distinct from ``0`` and from an evaluation error.  Use the module-level
    ``NO_VALUE`` instance and compare with ``is``.
    """

    _instance: NoValue | None = None

    def __new__(cls) -> NoValue:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NO_VALUE"


NO_VALUE = NoValue()


def coerce_number(value: Any) -> float | None:
    """Convert a record value to a float, or None if it is not usable.

    Absent, blank, boolean, date and non-numeric string values are not
    usable.  Numeric strings are parsed after stripping surrounding
    whitespace.  Infinite and NaN values are not usable either.

    Parsing is strict: a string with a numeric prefix such as ``"12abc"``
    or ``"1,200"`` is not usable rather than being read as 12 or 1, so a
    partly numeric cell shows as missing data instead of a wrong number.
    """
    if value is None or isinstance(value, (bool, date)):
        return None
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    return number


def render_literal(value: float) -> str:
    """Render *value* as a plain decimal literal (no exponent notation)."""
    if value == int(value) and abs(value) < 1e15:
        return str(int(value))
    text = format(Decimal(repr(value)), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def usable_numeric_fields(numeric_fields: Iterable[str]) -> list[str]:
    """Drop synthetic fields and blanks from a caller-supplied field list."""
    return [f for f in numeric_fields if f and f not in SYNTHETIC_FIELDS]


def resolve_references(
    formula: str,
    record: Mapping[str, Any],
    numeric_fields: Iterable[str],
) -> str | NoValue:
    """Substitute every referenced numeric field with its value in *record*.

    Args:
        formula: Formula source text, e.g. ``"(price - discount) * quantity"``.
        record: The row being evaluated.  Never mutated.
        numeric_fields: Field names currently typed as numeric in the catalog.

    Returns:
        The substituted expression (e.g. ``"(10 - 2) * 3"``, with negative
        values written as ``(-2)``), or ``NO_VALUE``
        if any referenced field is absent, blank or not a number.
    """
    text = formula.strip()
    fields = usable_numeric_fields(numeric_fields)
    referenced = find_references(text, fields)

    values: dict[str, str] = {}
    for field in referenced:
        number = coerce_number(record.get(field))
        if number is None:
            return NO_VALUE
        literal = render_literal(number)
        # Negative values are parenthesised so "-discount" never becomes "--5".
        values.setdefault(field.lower(), f"({literal})" if literal.startswith("-") else literal)

    pattern = reference_pattern(referenced)
    if pattern is None:
        return text
    return pattern.sub(lambda m: values[m.group(0).lower()], text)
