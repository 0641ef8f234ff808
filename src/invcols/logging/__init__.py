"""Structured event logging for invcols.

Provides a unified event schema, filesystem NDJSON sink, and safe
emit helpers that never raise uncaught exceptions.
"""

from invcols.logging.events import (
    EventLevel,
    EventType,
    InvcolsEvent,
    emit,
    emit_error,
    emit_info,
    emit_warning,
    make_cell_event,
    make_column_event,
    redact_context,
    reset_sink,
    set_project_dir,
)
from invcols.logging.sink import EventSink

__all__ = [
    "EventLevel",
    "EventSink",
    "EventType",
    "InvcolsEvent",
    "emit",
    "emit_error",
    "emit_info",
    "emit_warning",
    "make_cell_event",
    "make_column_event",
    "redact_context",
    "reset_sink",
    "set_project_dir",
]
