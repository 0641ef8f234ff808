"""Append-only NDJSON event log for an invcols project.

Layout under the project directory::

    logs/events.ndjson                 every event
    logs/compute/<compute_id>.ndjson   events of one table computation

Appends hold an exclusive ``fcntl.flock`` and reads a shared one, so two
CLI processes working on the same project never interleave partial lines.
Where ``fcntl`` is missing (Windows) the files are used unlocked.
"""

from __future__ import annotations

import contextlib
import json
import os
import re
import sys
from pathlib import Path
from typing import Any, Iterator

from invcols.logging.events import InvcolsEvent

try:
    import fcntl
except ImportError:
    fcntl = None  # type: ignore[assignment]
    print("[invcols] fcntl not available; event log locking disabled", file=sys.stderr)

EVENTS_FILENAME = "events.ndjson"
COMPUTE_DIRNAME = "compute"
MAX_READ_LIMIT = 2000
DEFAULT_TAIL_BYTES = 2 * 1024 * 1024

# Compute ids become file names.
_COMPUTE_ID_RE = re.compile(r"^[A-Za-z0-9_\-]+$")


def is_safe_compute_id(compute_id: str | None) -> bool:
    return bool(compute_id) and _COMPUTE_ID_RE.match(compute_id or "") is not None


@contextlib.contextmanager
def _locked(path: Path, *, write: bool) -> Iterator[int]:
    """Open *path* as a raw descriptor holding an exclusive (write) or shared lock."""
    flags = os.O_WRONLY | os.O_CREAT | os.O_APPEND if write else os.O_RDONLY
    fd = os.open(str(path), flags, 0o644)
    try:
        if fcntl is not None:
            fcntl.flock(fd, fcntl.LOCK_EX if write else fcntl.LOCK_SH)
        yield fd
    finally:
        if fcntl is not None:
            fcntl.flock(fd, fcntl.LOCK_UN)
        os.close(fd)


class EventSink:
    """Writes ``InvcolsEvent`` lines under ``<project>/logs`` and reads them back.

    Args:
        project_dir: Project root; ``logs/`` is created beneath it on the
            first write, never by reads.
        fsync: Flush every append to disk before returning.
        tail_bytes: Reads only look at this many bytes from the end of a log.
    """

    def __init__(self, project_dir: Path, *, fsync: bool = False, tail_bytes: int | None = None) -> None:
        self.logs_dir = project_dir / "logs"
        self.compute_dir = self.logs_dir / COMPUTE_DIRNAME
        self.fsync = fsync
        self.tail_bytes = DEFAULT_TAIL_BYTES if tail_bytes is None else tail_bytes

    @property
    def events_path(self) -> Path:
        return self.logs_dir / EVENTS_FILENAME

    def compute_path(self, compute_id: str) -> Path | None:
        """Per-computation log path, or None for an id unusable as a file name."""
        if not is_safe_compute_id(compute_id):
            return None
        return self.compute_dir / f"{compute_id}.ndjson"

    def write(self, event: InvcolsEvent, *, compute_id: str | None = None) -> None:
        """Append *event* to the project log, and to its compute log when scoped."""
        line = json.dumps(event.model_dump(mode="json"), sort_keys=True, default=str) + "\n"
        data = line.encode("utf-8")

        self._append(self.events_path, data)
        scoped = self.compute_path(compute_id) if compute_id else None
        if scoped is not None:
            self._append(scoped, data)

    # ── queries ──────────────────────────────────────────────────

    def read_global(
        self,
        *,
        level: str | None = None,
        event_type: str | None = None,
        field: str | None = None,
        limit: int = 200,
    ) -> list[dict[str, Any]]:
        """Return project events, most recent first.

        *field* matches ``context["field"]``, the column an event is about.
        At most ``MAX_READ_LIMIT`` events are returned whatever *limit* says.
        """
        selected = [
            event for event in reversed(self._load(self.events_path))
            if (level is None or event.get("level") == level)
            and (event_type is None or event.get("event_type") == event_type)
            and (field is None or event.get("context", {}).get("field") == field)
        ]
        return selected[:max(0, min(limit, MAX_READ_LIMIT))]

    def read_compute_log(self, compute_id: str) -> list[dict[str, Any]]:
        """Events of one table computation, in the order they were written."""
        path = self.compute_path(compute_id)
        return [] if path is None else self._load(path)

    # ── file access ──────────────────────────────────────────────

    def _append(self, path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with _locked(path, write=True) as fd:
            os.write(fd, data)
            if self.fsync:
                os.fsync(fd)

    def _load(self, path: Path) -> list[dict[str, Any]]:
        if not path.exists():
            return []
        events: list[dict[str, Any]] = []
        for raw in self._tail(path).splitlines():
            raw = raw.strip()
            if not raw:
                continue
            try:
                events.append(json.loads(raw))
            except json.JSONDecodeError:
                continue  # torn write
        return events

    def _tail(self, path: Path) -> str:
        with _locked(path, write=False) as fd:
            size = os.fstat(fd).st_size
            start = max(0, size - self.tail_bytes)
            os.lseek(fd, start, os.SEEK_SET)
            data = os.read(fd, size - start)
        if start:
            # The first line is most likely cut.
            data = data.partition(b"\n")[2]
        return data.decode("utf-8", errors="replace")
