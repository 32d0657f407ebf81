"""Audit record persisted once per purge operation."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import ConfigDict, Field

from exchange_sweeper.models.base import WireModel
from exchange_sweeper.models.types import (
    CancelReason,
    ExecutionMode,
    PurgeMethod,
    PurgeStatus,
    SubjectMode,
)


class AuditLogEntry(WireModel):
    """Structured, append-only record of a finished purge."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str | None = None
    timestamp: datetime | None = None
    operation_id: str
    sender_email: str
    subject_mode: SubjectMode
    subject_value: str | None = None
    received_from: datetime | None = None
    received_to: datetime | None = None
    simulate: bool
    allow_hard_delete: bool
    mode: ExecutionMode
    method: PurgeMethod
    days_back: int
    exit_code: int | None = None
    exit_signal: str | None = None
    status: PurgeStatus
    cancelled: bool = False
    cancel_reason: CancelReason | None = None
    completed_at: datetime
    duration_ms: int
    log_file_path: str
    stdout_length: int = 0
    stderr_length: int = 0
    affected_mailboxes: list[str] = Field(default_factory=list)
    unparsed_evidence: list[str] = Field(default_factory=list)
    request_payload: dict[str, Any] = Field(default_factory=dict)
