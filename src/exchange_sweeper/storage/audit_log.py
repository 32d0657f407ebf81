"""Append-only JSONL store for purge audit records."""

from __future__ import annotations

import json
import logging
import os
import threading
import uuid
from datetime import UTC, datetime
from pathlib import Path

from pydantic import ValidationError

from exchange_sweeper.models.audit import AuditLogEntry

logger = logging.getLogger(__name__)

DEFAULT_READ_LIMIT = 200


class AuditLog:
    """Durable, append-only log of purge operations (one JSON object per line)."""

    def __init__(self, *, path: Path) -> None:
        """Initialize the store.

        Args:
            path: JSONL file the records are appended to.
        """
        self._path = path
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        """Return the JSONL file path."""
        return self._path

    def append(self, entry: AuditLogEntry) -> AuditLogEntry:
        """Append one record, assigning ``id`` and ``timestamp`` when absent.

        Args:
            entry: Record to persist.

        Returns:
            The stored record.
        """
        stored = entry.model_copy(
            update={
                "id": entry.id or str(uuid.uuid4()),
                "timestamp": entry.timestamp or datetime.now(tz=UTC),
            },
        )
        line = json.dumps(stored.to_wire(), ensure_ascii=False) + "\n"

        with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as handle:
                handle.write(line)
                handle.flush()
                os.fsync(handle.fileno())
        return stored

    def read_recent(self, limit: int | None = DEFAULT_READ_LIMIT) -> list[AuditLogEntry]:
        """Return records newest-first.

        Corrupt lines are skipped. A missing file yields an empty list.

        Args:
            limit: Maximum number of records to return (``None`` or 0 for all).
        """
        try:
            content = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []

        entries: list[AuditLogEntry] = []
        for lineno, line in enumerate(content.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                entries.append(AuditLogEntry.model_validate(json.loads(line)))
            except (json.JSONDecodeError, ValidationError) as exc:
                logger.warning("Skipping unreadable audit line %s in %s: %s", lineno, self._path, exc)

        entries.sort(key=_sort_key, reverse=True)
        if limit and len(entries) > limit:
            return entries[:limit]
        return entries


def _sort_key(entry: AuditLogEntry) -> float:
    """Order records by timestamp; records without one sort last."""
    if entry.timestamp is None:
        return float("-inf")
    ts = entry.timestamp
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts.timestamp()
