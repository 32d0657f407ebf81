"""Purge stream events and synchronous purge responses."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from pydantic import Field

from exchange_sweeper.errors import ProcessFailure
from exchange_sweeper.models.audit import AuditLogEntry
from exchange_sweeper.models.base import WireModel
from exchange_sweeper.models.types import (
    CancelReason,
    CancelStatus,
    PurgeEventType,
    PurgeMethod,
    PurgeStatus,
    SubjectMode,
)


class PurgeStarted(WireModel):
    """Payload of the ``start`` event: the resolved run parameters."""

    operation_id: str
    log_file_path: str
    started_at: datetime
    simulate: bool
    allow_hard_delete: bool
    method: PurgeMethod
    days_back: int
    subject_mode: SubjectMode
    subject_value: str | None = None
    received_from: str | None = None
    received_to: str | None = None


class OutputChunk(WireModel):
    """One decoded chunk of stdout or stderr."""

    chunk: str


class PurgeFinished(WireModel):
    """Payload of the ``end`` event, emitted once the process has exited."""

    operation_id: str
    exit_code: int | None
    status: PurgeStatus
    cancelled: bool
    cancel_reason: CancelReason | None = None
    log_file_path: str
    simulate: bool
    log_entry: AuditLogEntry


class PurgeErrored(WireModel):
    """Payload of the ``error`` event when the script could not be launched."""

    message: str
    details: dict[str, Any] = Field(default_factory=dict)


class PurgeEvent(WireModel):
    """One ordered event on a purge stream."""

    event: PurgeEventType
    data: PurgeStarted | OutputChunk | PurgeFinished | PurgeErrored

    @property
    def is_terminal(self) -> bool:
        """Return whether no further events follow this one."""
        return self.event in {PurgeEventType.end, PurgeEventType.error}

    def to_sse(self) -> str:
        """Render as an ``event:``/``data:`` pair terminated by a blank line."""
        payload = json.dumps(self.data.to_wire(), ensure_ascii=False)
        return f"event: {self.event.value}\ndata: {payload}\n\n"


class PurgeResponse(WireModel):
    """Synchronous response for non-streaming purge callers."""

    operation_id: str
    exit_code: int | None
    stdout: str
    stderr: str
    status: PurgeStatus
    cancelled: bool
    cancel_reason: CancelReason | None = None
    log_file_path: str
    simulate: bool
    log_entry: AuditLogEntry

    def raise_for_status(self) -> None:
        """Raise if the process failed without being cancelled.

        Raises:
            ProcessFailure: If ``status`` is ``failed``.
        """
        if self.status is PurgeStatus.failed:
            raise ProcessFailure(
                exit_code=self.exit_code,
                exit_signal=self.log_entry.exit_signal,
            )


class CancelResult(WireModel):
    """Outcome of a cancel request for one operation id."""

    operation_id: str
    status: CancelStatus

    @property
    def http_status(self) -> int:
        return self.status.http_status
