"""Tests for the JSONL purge audit log."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

from exchange_sweeper.models.audit import AuditLogEntry
from exchange_sweeper.models.types import ExecutionMode, PurgeMethod, PurgeStatus, SubjectMode
from exchange_sweeper.storage.audit_log import AuditLog


def _entry(operation_id: str, timestamp: datetime | None) -> AuditLogEntry:
    return AuditLogEntry(
        timestamp=timestamp,
        operation_id=operation_id,
        sender_email="spam@x.com",
        subject_mode=SubjectMode.none,
        simulate=True,
        allow_hard_delete=False,
        mode=ExecutionMode.simulation,
        method=PurgeMethod.compliance_search,
        days_back=30,
        exit_code=0,
        status=PurgeStatus.simulated,
        completed_at=datetime(2024, 1, 1, tzinfo=UTC),
        duration_ms=5,
        log_file_path="/tmp/x.log",
        affected_mailboxes=["a@x.com"],
    )


def test_missing_file_reads_empty(tmp_path: Path) -> None:
    assert AuditLog(path=tmp_path / "none.jsonl").read_recent() == []


def test_append_assigns_id_and_creates_parent(tmp_path: Path) -> None:
    log = AuditLog(path=tmp_path / "data" / "audit.jsonl")
    stored = log.append(_entry("op-1", None))
    assert stored.id
    assert stored.timestamp is not None
    assert log.path.exists()
    [read] = log.read_recent()
    assert read.id == stored.id
    assert read.affected_mailboxes == ["a@x.com"]
    assert '"operationId": "op-1"' in log.path.read_text(encoding="utf-8")


def test_read_recent_is_newest_first_and_limited(tmp_path: Path) -> None:
    log = AuditLog(path=tmp_path / "audit.jsonl")
    base = datetime(2024, 1, 1, tzinfo=UTC)
    for i in range(5):
        log.append(_entry(f"op-{i}", base + timedelta(hours=i)))
    recent = log.read_recent(3)
    assert [entry.operation_id for entry in recent] == ["op-4", "op-3", "op-2"]
    assert len(log.read_recent(None)) == 5


def test_corrupt_lines_are_skipped(tmp_path: Path) -> None:
    log = AuditLog(path=tmp_path / "audit.jsonl")
    log.append(_entry("op-1", datetime(2024, 1, 1, tzinfo=UTC)))
    with log.path.open("a", encoding="utf-8") as handle:
        handle.write("{not json\n")
        handle.write('{"operationId": "partial"}\n')
        handle.write("\n")
    log.append(_entry("op-2", datetime(2024, 1, 2, tzinfo=UTC)))
    assert [entry.operation_id for entry in log.read_recent()] == ["op-2", "op-1"]
