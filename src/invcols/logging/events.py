"""Event schema for invcols and the module-level ``emit`` helpers.

Events describe what happened to a project's formulas: a formula was
accepted or rejected, a column was added, edited or removed, a table was
computed and which cells failed.  Timestamps are UTC ISO-8601 with a
``Z`` suffix.

Nothing in this module raises into the caller.  Until ``set_project_dir``
attaches a sink, events are dropped; once attached, a failing write is
reported on stderr (at most once a minute) and otherwise ignored.
"""

from __future__ import annotations

import logging
import re
import sys
import time
import traceback
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from invcols.logging.sink import EventSink

log = logging.getLogger(__name__)


class EventLevel(str, Enum):
    info = "info"
    warning = "warning"
    error = "error"


class EventType(str, Enum):
    formula_validated = "formula_validated"
    formula_rejected = "formula_rejected"
    column_added = "column_added"
    column_updated = "column_updated"
    column_removed = "column_removed"
    table_computed = "table_computed"
    cell_eval_error = "cell_eval_error"


# Error codes for rejected catalog changes; formula failures use the exception's error_code.
CATALOG_DUPLICATE_FIELD = "catalog_duplicate_field"
CATALOG_COLUMN_IN_USE = "catalog_column_in_use"
CATALOG_INVALID_CHANGE = "catalog_invalid_change"


def _utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class InvcolsEvent(BaseModel):
    """One line of the project event log."""

    schema_version: int = 1
    ts: str = Field(default_factory=_utc_now)
    level: EventLevel
    event_type: EventType
    context: dict[str, Any] = Field(default_factory=dict)
    message: str = ""
    error_code: str | None = None


# ---------------------------------------------------------------------------
# Context hygiene
# ---------------------------------------------------------------------------

# Product records may carry supplier contacts, so email counts as sensitive.
_SENSITIVE_KEY_RE = re.compile(
    r"password|passwd|secret|token|api_?key|authorization|cookie|session|bearer|email",
    re.IGNORECASE,
)
_REDACTED = "[REDACTED]"
_MAX_VALUE_LEN = 256


def redact_context(context: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of *context* that is safe to write to disk.

    Values under sensitive-looking keys become ``"[REDACTED]"`` at any
    depth, and strings longer than 256 characters (long formulas
    included) are truncated.
    """
    return {
        key: _REDACTED if _SENSITIVE_KEY_RE.search(key) else _scrub(value)
        for key, value in context.items()
    }


def _scrub(value: Any) -> Any:
    if isinstance(value, dict):
        return redact_context(value)
    if isinstance(value, list):
        return [_scrub(item) for item in value]
    if isinstance(value, str) and len(value) > _MAX_VALUE_LEN:
        return value[:_MAX_VALUE_LEN] + "...[truncated]"
    return value


# Context keys an event must carry to be traceable to a formula or column.
_REQUIRED_CONTEXT: dict[EventType, frozenset[str]] = {
    EventType.formula_validated: frozenset({"formula"}),
    EventType.formula_rejected: frozenset({"formula"}),
    EventType.column_added: frozenset({"field"}),
    EventType.column_updated: frozenset({"field"}),
    EventType.column_removed: frozenset({"field"}),
    EventType.table_computed: frozenset({"compute_id", "rows"}),
    EventType.cell_eval_error: frozenset({"field", "row"}),
}


def _check_attribution(event: InvcolsEvent) -> InvcolsEvent:
    """Downgrade an event that lacks its required context to a warning."""
    missing = _REQUIRED_CONTEXT.get(event.event_type, frozenset()) - set(event.context)
    if not missing:
        return event
    return event.model_copy(update={
        "level": EventLevel.warning,
        "context": {**event.context, "_missing_attribution": sorted(missing)},
    })


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def make_column_event(
    event_type: EventType,
    level: EventLevel,
    message: str,
    *,
    field: str,
    column_id: str | None = None,
    column_type: str | None = None,
    formula: str | None = None,
    error_code: str | None = None,
    extra: dict[str, Any] | None = None,
) -> InvcolsEvent:
    """Event about one catalog column; unset attributes are left out of the context."""
    optional = {"column_id": column_id, "column_type": column_type, "formula": formula}
    context: dict[str, Any] = {"field": field}
    context.update((k, v) for k, v in optional.items() if v is not None)
    context.update(extra or {})
    return InvcolsEvent(
        level=level, event_type=event_type, message=message, context=context, error_code=error_code,
    )


def make_cell_event(
    message: str,
    *,
    field: str,
    row: int,
    formula: str | None = None,
    error_code: str | None = None,
    compute_id: str | None = None,
) -> InvcolsEvent:
    """Warning for a single formula cell that failed to evaluate."""
    context: dict[str, Any] = {"field": field, "row": row}
    if formula is not None:
        context["formula"] = formula
    if compute_id is not None:
        context["compute_id"] = compute_id
    return InvcolsEvent(
        level=EventLevel.warning,
        event_type=EventType.cell_eval_error,
        message=message,
        context=context,
        error_code=error_code,
    )


# ---------------------------------------------------------------------------
# Sink attachment
# ---------------------------------------------------------------------------

_sink: EventSink | None = None


def set_project_dir(project_dir: Path | str) -> None:
    """Attach a sink writing under *project_dir*/logs.

    ``logging_fsync`` and ``logging_tail_bytes`` come from the project's
    ``invcols.yaml``; an unreadable config falls back to sink defaults.
    """
    global _sink
    from invcols.logging.sink import EventSink
    from invcols.project import load_project_config

    project_dir = Path(project_dir)
    fsync, tail_bytes = False, None
    try:
        config = load_project_config(project_dir)
        fsync = bool(config.get("logging_fsync"))
        if config.get("logging_tail_bytes") is not None:
            tail_bytes = int(config["logging_tail_bytes"])
    except Exception:
        log.debug("Could not read logging settings for %s", project_dir, exc_info=True)

    _sink = EventSink(project_dir, fsync=fsync, tail_bytes=tail_bytes)


def reset_sink() -> None:
    """Detach the sink; later events are dropped."""
    global _sink
    _sink = None


_STDERR_INTERVAL_SECS = 60.0
_last_stderr_ts = 0.0


def _report_failure(detail: str) -> None:
    global _last_stderr_ts
    now = time.monotonic()
    if now - _last_stderr_ts < _STDERR_INTERVAL_SECS:
        return
    _last_stderr_ts = now
    try:
        print(f"[invcols] event logging failed: {detail}", file=sys.stderr)
    except Exception:
        pass


# ---------------------------------------------------------------------------
# Emit
# ---------------------------------------------------------------------------


def emit(event: InvcolsEvent, *, compute_id: str | None = None) -> None:
    """Redact, check attribution and write *event*.  Never raises.

    With *compute_id* the event also goes to that computation's own log.
    """
    sink = _sink
    if sink is None:
        return
    try:
        event = event.model_copy(update={"context": redact_context(event.context)})
        sink.write(_check_attribution(event), compute_id=compute_id)
    except Exception:
        _report_failure(traceback.format_exc())


def emit_info(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
    *,
    compute_id: str | None = None,
) -> None:
    emit(InvcolsEvent(level=EventLevel.info, event_type=event_type, message=message,
                      context=context or {}), compute_id=compute_id)


def emit_warning(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
    *,
    error_code: str | None = None,
    compute_id: str | None = None,
) -> None:
    emit(InvcolsEvent(level=EventLevel.warning, event_type=event_type, message=message,
                      context=context or {}, error_code=error_code), compute_id=compute_id)


def emit_error(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
    *,
    error_code: str | None = None,
    compute_id: str | None = None,
) -> None:
    emit(InvcolsEvent(level=EventLevel.error, event_type=event_type, message=message,
                      context=context or {}, error_code=error_code), compute_id=compute_id)
