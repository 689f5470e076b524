from __future__ import annotations

import json
import logging
import threading
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

"""Per-job audit trail.

Two append-only files live in the job output directory for each stream:

    registration: vault-registration.log / vault-registration-log.jsonl
    update:       vault-update.log       / vault-update-log.jsonl

Text lines are ``[<ISO-8601 UTC>] message``; JSON lines start with ``time``
and ``event``. Appends to one directory are serialized by a lock shared by all
AuditLog instances pointing at it. Failing to write is reported as a warning and
never interrupts a run.

When rows are processed concurrently each row records into an AuditBuffer and
the orchestrator flushes the buffers in row order.
"""

__all__ = [
    "STREAM_FILES",
    "AuditLog",
    "AuditBuffer",
    "console_snippet",
    "utc_timestamp",
]

logger = logging.getLogger(__name__)

STREAM_FILES: dict[str, tuple[str, str]] = {
    "registration": ("vault-registration.log", "vault-registration-log.jsonl"),
    "update": ("vault-update.log", "vault-update-log.jsonl"),
}

_locks: dict[Path, threading.Lock] = {}
_locks_guard = threading.Lock()


def _directory_lock(directory: Path) -> threading.Lock:
    key = directory.resolve()
    with _locks_guard:
        lock = _locks.get(key)
        if lock is None:
            lock = _locks[key] = threading.Lock()
        return lock


def utc_timestamp() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def console_snippet(text: str | None, limit: int = 600) -> str:
    """Collapse whitespace and cap the length of a raw body for one-line logs."""
    if not text:
        return ""
    compact = " ".join(str(text).split())
    if len(compact) <= limit:
        return compact
    return compact[:limit] + " … (truncated)"


class AuditLog:
    """Append-only text + JSONL audit files for one job directory.

    With ``directory=None`` nothing is written to disk; text lines still reach
    the console logger (single-record updates without a job directory).
    """

    def __init__(self, directory: Path | None, stream: str = "registration") -> None:
        if stream not in STREAM_FILES:
            raise ValueError(f"unknown audit stream: {stream}")
        text_name, json_name = STREAM_FILES[stream]
        self.stream = stream
        self.directory = Path(directory) if directory is not None else None
        self.text_path = self.directory / text_name if self.directory else None
        self.json_path = self.directory / json_name if self.directory else None
        self._lock = _directory_lock(self.directory) if self.directory else threading.Lock()

    def _append(self, path: Path | None, line: str) -> None:
        if path is None:
            return
        try:
            with self._lock, path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError as e:
            logger.warning(f"audit log write failed: {path.name} ({e})")

    def info(self, message: str, *, timestamp: str | None = None) -> None:
        """Append a text line and mirror it to the console logger."""
        self._append(self.text_path, f"[{timestamp or utc_timestamp()}] {message}")
        logger.info(message)

    def event(self, event: str, *, timestamp: str | None = None, **fields: Any) -> None:
        record = {"time": timestamp or utc_timestamp(), "event": event}
        record.update(fields)
        self._append(self.json_path, json.dumps(record, ensure_ascii=False, default=str))


class AuditBuffer:
    """Row-scoped recorder with the AuditLog interface.

    Entries keep the time they were recorded so a late flush still shows when
    each step happened.
    """

    def __init__(self) -> None:
        self._entries: list[tuple[str, str, Any]] = []

    def info(self, message: str) -> None:
        self._entries.append(("text", utc_timestamp(), message))

    def event(self, event: str, **fields: Any) -> None:
        self._entries.append(("json", utc_timestamp(), (event, fields)))

    def __len__(self) -> int:
        return len(self._entries)

    def flush(self, audit: AuditLog) -> None:
        for kind, ts, payload in self._entries:
            if kind == "text":
                audit.info(payload, timestamp=ts)
            else:
                event, fields = payload
                audit.event(event, timestamp=ts, **fields)
        self._entries.clear()
