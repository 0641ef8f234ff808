"""Command-line interface for invcols."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import click

from invcols import __core_api_version__, __version__


@click.group()
@click.version_option(
    version=f"{__version__} (core_api={__core_api_version__})",
    prog_name="invcols",
)
def main() -> None:
    """invcols -- product inventory columns with computed formulas."""


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------


def _parse_assignments(items: tuple[str, ...]) -> dict[str, str]:
    values: dict[str, str] = {}
    for item in items:
        if "=" not in item:
            raise click.ClickException(f"Invalid --set format: {item!r}. Use field=value.")
        k, v = item.split("=", 1)
        values[k.strip()] = v
    return values


def _open_project(directory: str) -> tuple[Path, dict[str, Any], Any]:
    """Load config and catalog for *directory* and attach the event sink."""
    from invcols.catalog import load_catalog
    from invcols.logging.events import set_project_dir
    from invcols.project import catalog_path, load_project_config

    project_dir = Path(directory)
    try:
        config = load_project_config(project_dir)
        catalog = load_catalog(catalog_path(project_dir, config))
    except (ValueError, OSError) as e:
        raise click.ClickException(str(e))
    set_project_dir(project_dir)
    return project_dir, config, catalog


def _save(project_dir: Path, config: dict[str, Any], catalog: Any) -> None:
    from invcols.catalog import save_catalog
    from invcols.project import catalog_path

    save_catalog(catalog, catalog_path(project_dir, config))


def _reject(event_type: Any, field: str, error: Exception, *, formula: str | None = None) -> click.ClickException:
    """Log a refused catalog change and return the exception to raise."""
    from invcols.catalog import ColumnInUseError, DuplicateFieldError
    from invcols.formulas import FormulaValidationError
    from invcols.logging.events import (
        CATALOG_COLUMN_IN_USE,
        CATALOG_DUPLICATE_FIELD,
        CATALOG_INVALID_CHANGE,
        EventLevel,
        EventType,
        emit,
        make_column_event,
    )

    if isinstance(error, FormulaValidationError):
        event_type, code = EventType.formula_rejected, error.error_code
    elif isinstance(error, DuplicateFieldError):
        code = CATALOG_DUPLICATE_FIELD
    elif isinstance(error, ColumnInUseError):
        code = CATALOG_COLUMN_IN_USE
    else:
        code = CATALOG_INVALID_CHANGE
    emit(make_column_event(
        event_type, EventLevel.warning, str(error),
        field=field, formula=formula, error_code=code,
    ))
    return click.ClickException(str(error))


# ---------------------------------------------------------------------------
# New
# ---------------------------------------------------------------------------


@main.command()
@click.argument("directory", type=click.Path())
def new(directory: str) -> None:
    """Scaffold a new project at DIRECTORY."""
    from invcols.project import scaffold_project

    try:
        result = scaffold_project(Path(directory))
    except FileExistsError as e:
        raise click.ClickException(str(e))
    click.echo(f"Created project at {result}")


# ---------------------------------------------------------------------------
# Formulas
# ---------------------------------------------------------------------------


@main.command()
@click.argument("formula")
@click.option("--project", "directory", default=".", type=click.Path(exists=True), help="Project directory.")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def validate(formula: str, directory: str, as_json: bool) -> None:
    """Check FORMULA against the project's column catalog."""
    from invcols.formulas import validate_formula
    from invcols.logging.events import EventType, emit_info, emit_warning

    _, _, catalog = _open_project(directory)
    result = validate_formula(formula, catalog)

    if result.ok:
        emit_info(EventType.formula_validated, "Formula accepted", {"formula": result.formula})
    else:
        emit_warning(
            EventType.formula_rejected,
            result.message or "Formula rejected",
            {"formula": result.formula, "field": result.field},
            error_code=result.error_code,
        )

    if as_json:
        click.echo(json.dumps(result.model_dump(), indent=2))
    elif result.ok:
        click.echo(f"OK: {result.formula}")
        if result.references:
            click.echo(f"  references: {', '.join(result.references)}")
        if result.unknown_identifiers:
            click.echo(f"  warning: unknown names: {', '.join(result.unknown_identifiers)}")
    if not result.ok:
        raise click.ClickException(result.message or "Formula rejected")


@main.command("eval")
@click.argument("formula")
@click.option("--set", "assignments", multiple=True, help="Record value as field=value.")
@click.option("--project", "directory", default=".", type=click.Path(exists=True), help="Project directory.")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def eval_cmd(formula: str, assignments: tuple[str, ...], directory: str, as_json: bool) -> None:
    """Evaluate FORMULA for a single record given with --set."""
    from invcols.catalog import numeric_fields
    from invcols.formulas import compute_cell
    from invcols.table import format_cell

    _, config, catalog = _open_project(directory)
    record = _parse_assignments(assignments)
    result = compute_cell(formula, record, numeric_fields(catalog))

    if as_json:
        click.echo(json.dumps(result.model_dump(), indent=2))
    elif result.status == "error":
        raise click.ClickException(result.message or "Formula could not be evaluated")
    else:
        click.echo(format_cell(result, config))


# ---------------------------------------------------------------------------
# Columns
# ---------------------------------------------------------------------------


@main.group()
def columns() -> None:
    """Column catalog commands."""


@columns.command("list")
@click.option("--project", "directory", default=".", type=click.Path(exists=True), help="Project directory.")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def columns_list(directory: str, as_json: bool) -> None:
    """List the catalog's columns."""
    _, _, catalog = _open_project(directory)
    if as_json:
        click.echo(json.dumps(catalog.model_dump(mode="json", by_alias=True), indent=2))
        return
    for col in catalog.columns:
        flag = " " if col.visible else "h"
        line = f"  {flag} {col.id:22s} {col.field:16s} {col.type.value:9s} {col.label}"
        if col.formula:
            line += f"  = {col.formula}"
        click.echo(line)


@columns.command("add")
@click.argument("label")
@click.option(
    "--type", "column_type", default="text",
    type=click.Choice(["text", "number", "currency", "date", "image", "formula"]),
    help="Declared column type.",
)
@click.option("--formula", default=None, help="Formula text (formula columns only).")
@click.option("--project", "directory", default=".", type=click.Path(exists=True), help="Project directory.")
def columns_add(label: str, column_type: str, formula: str | None, directory: str) -> None:
    """Add a custom column named LABEL."""
    from invcols.catalog import CatalogError, add_column, field_name_from_label
    from invcols.formulas import FormulaValidationError
    from invcols.logging.events import EventLevel, EventType, emit, make_column_event

    project_dir, config, catalog = _open_project(directory)
    if formula is not None and column_type != "formula":
        raise click.ClickException("--formula requires --type formula")
    try:
        updated = add_column(catalog, label, column_type, formula)
    except (CatalogError, FormulaValidationError) as e:
        raise _reject(EventType.column_added, field_name_from_label(label), e, formula=formula or "")

    col = updated.columns[-1]
    _save(project_dir, config, updated)
    emit(make_column_event(
        EventType.column_added, EventLevel.info, f"Added column {col.field!r}",
        field=col.field, column_id=col.id, column_type=col.type.value, formula=col.formula,
    ))
    click.echo(f"Added column {col.field} ({col.id})")


@columns.command("edit")
@click.argument("column_id")
@click.argument("formula")
@click.option("--project", "directory", default=".", type=click.Path(exists=True), help="Project directory.")
def columns_edit(column_id: str, formula: str, directory: str) -> None:
    """Replace the formula of formula column COLUMN_ID."""
    from invcols.catalog import CatalogError, update_formula
    from invcols.formulas import FormulaValidationError
    from invcols.logging.events import EventLevel, EventType, emit, make_column_event

    project_dir, config, catalog = _open_project(directory)
    try:
        updated = update_formula(catalog, column_id, formula)
    except (CatalogError, FormulaValidationError) as e:
        field = next((c.field for c in catalog.columns if c.id == column_id), column_id)
        raise _reject(EventType.column_updated, field, e, formula=formula)

    col = updated.get(column_id)
    _save(project_dir, config, updated)
    emit(make_column_event(
        EventType.column_updated, EventLevel.info, f"Updated formula of {col.field!r}",
        field=col.field, column_id=col.id, formula=col.formula,
    ))
    click.echo(f"Updated {col.field}: {col.formula}")


@columns.command("remove")
@click.argument("column_id")
@click.option("--project", "directory", default=".", type=click.Path(exists=True), help="Project directory.")
def columns_remove(column_id: str, directory: str) -> None:
    """Remove custom column COLUMN_ID."""
    from invcols.catalog import CatalogError, remove_column
    from invcols.logging.events import EventLevel, EventType, emit, make_column_event

    project_dir, config, catalog = _open_project(directory)
    try:
        col = catalog.get(column_id)
        updated = remove_column(catalog, column_id)
    except CatalogError as e:
        field = getattr(e, "field", None) or column_id
        raise _reject(EventType.column_removed, field, e)

    _save(project_dir, config, updated)
    emit(make_column_event(
        EventType.column_removed, EventLevel.info, f"Removed column {col.field!r}",
        field=col.field, column_id=col.id,
    ))
    click.echo(f"Removed column {col.field}")


@columns.command("toggle")
@click.argument("column_id")
@click.option("--project", "directory", default=".", type=click.Path(exists=True), help="Project directory.")
def columns_toggle(column_id: str, directory: str) -> None:
    """Show or hide column COLUMN_ID."""
    from invcols.catalog import CatalogError, toggle_visibility

    project_dir, config, catalog = _open_project(directory)
    try:
        updated = toggle_visibility(catalog, column_id)
    except CatalogError as e:
        raise click.ClickException(str(e))
    _save(project_dir, config, updated)
    col = updated.get(column_id)
    click.echo(f"{col.field}: {'visible' if col.visible else 'hidden'}")


# ---------------------------------------------------------------------------
# Compute
# ---------------------------------------------------------------------------


@main.command()
@click.argument("records_file", type=click.Path(exists=True))
@click.option("--project", "directory", default=".", type=click.Path(exists=True), help="Project directory.")
@click.option("--json", "as_json", is_flag=True, help="Output rendered rows as JSON.")
@click.option("--out", "out_path", default=None, type=click.Path(), help="Write computed values to CSV.")
def compute(records_file: str, directory: str, as_json: bool, out_path: str | None) -> None:
    """Compute formula columns for every record in RECORDS_FILE (CSV or JSON)."""
    from invcols.table import compute_formula_table, load_records, render_rows

    _, config, catalog = _open_project(directory)
    try:
        records = load_records(Path(records_file))
    except (ValueError, OSError) as e:
        raise click.ClickException(str(e))

    table = compute_formula_table(catalog, records)
    rows = render_rows(table, catalog, config)

    if out_path:
        table.frame.write_csv(out_path)

    if as_json:
        click.echo(json.dumps(
            {
                "compute_id": table.compute_id,
                "rows": rows,
                "issues": [i.model_dump() for i in table.issues],
            },
            indent=2,
        ))
        return

    if rows:
        headers = list(rows[0].keys())
        widths = {h: max(len(h), *(len(r[h]) for r in rows)) for h in headers}
        click.echo("  ".join(h.ljust(widths[h]) for h in headers))
        for r in rows:
            click.echo("  ".join(r[h].ljust(widths[h]) for h in headers))
    else:
        click.echo("No records.")

    for issue in table.issues:
        click.echo(f"  row {issue.row} {issue.field}: {issue.message} ({issue.error_code})", err=True)
    click.echo(f"Compute id: {table.compute_id}")


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


def _echo_events(events: list[dict[str, Any]]) -> None:
    if not events:
        click.echo("No events found.")
        return
    for evt in events:
        ts = evt.get("ts", "")
        lvl = evt.get("level", "").upper()
        etype = evt.get("event_type", "")
        msg = evt.get("message", "")
        err = evt.get("error_code")
        line = f"[{ts}] {lvl:7s} {etype}: {msg}"
        if err:
            line += f"  ({err})"
        click.echo(line)


@main.command("events")
@click.option("--project", "directory", default=".", type=click.Path(exists=True), help="Project directory.")
@click.option("--level", default=None, type=click.Choice(["info", "warning", "error"]), help="Filter by level.")
@click.option("--type", "event_type", default=None, help="Filter by event type.")
@click.option("--field", default=None, help="Filter by column field.")
@click.option("--limit", default=100, type=int, help="Maximum events to show.")
def events_cmd(
    directory: str,
    level: str | None,
    event_type: str | None,
    field: str | None,
    limit: int,
) -> None:
    """Show the structured event log."""
    from invcols.logging.sink import EventSink

    sink = EventSink(Path(directory))
    _echo_events(sink.read_global(level=level, event_type=event_type, field=field, limit=limit))


@main.command("compute-log")
@click.argument("compute_id")
@click.option("--project", "directory", default=".", type=click.Path(exists=True), help="Project directory.")
def compute_log_cmd(compute_id: str, directory: str) -> None:
    """Show events recorded for one compute run."""
    from invcols.logging.sink import EventSink

    sink = EventSink(Path(directory))
    _echo_events(sink.read_compute_log(compute_id))
