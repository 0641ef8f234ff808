"""Formula columns over a whole product table.

Builds a Polars DataFrame from raw records and appends one column per
formula column.  Every cell goes through ``compute_cell``, so a formula
that fails for one row still renders every other cell and row.
"""

from __future__ import annotations

import json
import uuid
from pathlib import Path
from typing import Any, Mapping, Sequence

import polars as pl
from pydantic import BaseModel

from invcols.catalog import (
    ColumnCatalog,
    ColumnDefinition,
    ColumnType,
    formula_columns,
    numeric_fields,
)
from invcols.formulas import CellResult, coerce_number, compute_cell, find_references
from invcols.logging.events import EventType, emit, emit_info, make_cell_event

TOTAL_VALUE_FIELD = "totalValue"


class CellIssue(BaseModel):
    """A formula cell that failed to evaluate."""

    row: int
    field: str
    error_code: str
    message: str


class FormulaTable:
    """Result of ``compute_formula_table``.

    Attributes:
        frame: Record columns plus one Float64 column per formula column
            (null where the cell has no value or failed).
        cells: Formula field -> per-row ``CellResult``.
        issues: Every failed cell, in row order.
        compute_id: Identifier used to scope log events.
    """

    def __init__(
        self,
        frame: pl.DataFrame,
        cells: dict[str, list[CellResult]],
        issues: list[CellIssue],
        compute_id: str,
    ) -> None:
        self.frame = frame
        self.cells = cells
        self.issues = issues
        self.compute_id = compute_id

    @property
    def row_count(self) -> int:
        return self.frame.height


def compute_formula_table(
    catalog: ColumnCatalog,
    records: Sequence[Mapping[str, Any]],
    *,
    compute_id: str | None = None,
) -> FormulaTable:
    """Evaluate every formula column of *catalog* for every record.

    Args:
        catalog: Column catalog; numeric membership is taken from it once.
        records: Rows as field -> value mappings.  Never mutated.
        compute_id: Optional id for log scoping; generated when omitted.

    Returns:
        A ``FormulaTable``.
    """
    compute_id = compute_id or uuid.uuid4().hex[:12]
    numeric = numeric_fields(catalog)
    formulas = formula_columns(catalog)

    cells: dict[str, list[CellResult]] = {c.field: [] for c in formulas}
    issues: list[CellIssue] = []
    for row, record in enumerate(records):
        for col in formulas:
            result = compute_cell(col.formula or "", record, numeric)
            cells[col.field].append(result)
            if result.status == "error":
                issue = CellIssue(
                    row=row,
                    field=col.field,
                    error_code=result.error_code or "formula_eval_error",
                    message=result.message or "",
                )
                issues.append(issue)
                emit(
                    make_cell_event(
                        issue.message,
                        field=col.field,
                        row=row,
                        formula=col.formula,
                        error_code=issue.error_code,
                        compute_id=compute_id,
                    ),
                    compute_id=compute_id,
                )

    frame = records_frame(records)
    if catalog.by_field(TOTAL_VALUE_FIELD) is not None:
        frame = frame.with_columns(
            pl.Series(TOTAL_VALUE_FIELD, [_total_value(r) for r in records], dtype=pl.Float64)
        )
    if cells:
        frame = frame.with_columns([
            pl.Series(field, [c.value for c in results], dtype=pl.Float64)
            for field, results in cells.items()
        ])

    emit_info(
        EventType.table_computed,
        f"Computed {len(formulas)} formula column(s) over {len(records)} row(s)",
        {"compute_id": compute_id, "rows": len(records), "issues": len(issues)},
        compute_id=compute_id,
    )
    return FormulaTable(frame, cells, issues, compute_id)


def _total_value(record: Mapping[str, Any]) -> float | None:
    price = coerce_number(record.get("price"))
    quantity = coerce_number(record.get("quantity"))
    if price is None or quantity is None:
        return None
    return price * quantity


# ────────────────────────────────────────────────────────────────
# Records
# ────────────────────────────────────────────────────────────────


def records_frame(records: Sequence[Mapping[str, Any]]) -> pl.DataFrame:
    """Build a DataFrame from open-shaped records.

    Columns appear in first-seen order.  A column whose values are all
    numbers becomes Float64; anything mixed is kept as text so no value
    is lost to type inference.
    """
    names: list[str] = []
    for record in records:
        for key in record:
            if key not in names:
                names.append(key)
    return pl.DataFrame([_series(name, [r.get(name) for r in records]) for name in names])


def _series(name: str, values: list[Any]) -> pl.Series:
    present = [v for v in values if v is not None]
    if present and all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in present):
        return pl.Series(name, [None if v is None else float(v) for v in values], dtype=pl.Float64)
    if present and all(isinstance(v, bool) for v in present):
        return pl.Series(name, values, dtype=pl.Boolean)
    return pl.Series(name, [None if v is None else str(v) for v in values], dtype=pl.String)


def load_records(path: Path) -> list[dict[str, Any]]:
    """Load records from CSV or a JSON array of objects.

    CSV columns are read as text; turning them into numbers is left to
    formula resolution, which treats unparseable text as "no value".

    Raises:
        ValueError: Unsupported extension, an empty CSV file or a JSON
            document that is not a list of objects.
    """
    suffix = path.suffix.lower()
    if suffix == ".csv":
        try:
            return pl.read_csv(path, infer_schema_length=0).to_dicts()
        except pl.exceptions.NoDataError as e:
            raise ValueError(f"{path} is empty") from e
    if suffix == ".json":
        data = json.loads(path.read_text())
        if not isinstance(data, list) or not all(isinstance(r, dict) for r in data):
            raise ValueError(f"{path} must contain a JSON array of objects")
        return data
    raise ValueError(f"Unsupported records format: {path.suffix!r}")


# ────────────────────────────────────────────────────────────────
# Rendering
# ────────────────────────────────────────────────────────────────


def is_currency_formula(col: ColumnDefinition, catalog: ColumnCatalog) -> bool:
    """A formula column renders as currency when it references a currency column."""
    if col.type != ColumnType.formula:
        return False
    currency = [c.field for c in catalog.columns if c.type == ColumnType.currency]
    return bool(find_references(col.formula or "", currency))


def format_number(value: float, config: Mapping[str, Any], *, currency: bool = False) -> str:
    places = int(config.get("decimal_places", 2))
    text = f"{abs(value):,.{places}f}"
    if currency:
        text = f"{config.get('currency_symbol', '$')}{text}"
    return f"-{text}" if value < 0 else text


def format_cell(result: CellResult, config: Mapping[str, Any], *, currency: bool = False) -> str:
    """Render a formula cell: a placeholder for no value, a badge for errors."""
    if result.status == "no_value":
        return str(config.get("no_value_placeholder", "-"))
    if result.status == "error":
        return str(config.get("error_placeholder", "Error"))
    return format_number(result.value or 0.0, config, currency=currency)


def render_rows(
    table: FormulaTable,
    catalog: ColumnCatalog,
    config: Mapping[str, Any],
) -> list[dict[str, str]]:
    """Render the visible catalog columns of *table* as display strings."""
    visible = [
        c for c in catalog.columns
        if c.visible and c.field != "actions" and c.type != ColumnType.image
    ]
    currency_formula = {c.field: is_currency_formula(c, catalog) for c in visible}
    rows: list[dict[str, str]] = []
    records = table.frame.to_dicts()
    placeholder = str(config.get("no_value_placeholder", "-"))

    for i, record in enumerate(records):
        out: dict[str, str] = {}
        for col in visible:
            if col.field in table.cells:
                out[col.label] = format_cell(
                    table.cells[col.field][i], config, currency=currency_formula[col.field]
                )
                continue
            value = record.get(col.field)
            if value is None or value == "":
                out[col.label] = placeholder
            elif col.type in (ColumnType.number, ColumnType.currency):
                number = coerce_number(value)
                out[col.label] = (
                    str(value) if number is None
                    else format_number(number, config, currency=col.type == ColumnType.currency)
                )
            else:
                out[col.label] = str(value)
        rows.append(out)
    return rows
