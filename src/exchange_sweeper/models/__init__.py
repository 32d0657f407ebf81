"""Validated domain models (Pydantic)."""

from __future__ import annotations

from exchange_sweeper.models.audit import AuditLogEntry
from exchange_sweeper.models.events import (
    CancelResult,
    OutputChunk,
    PurgeErrored,
    PurgeEvent,
    PurgeFinished,
    PurgeResponse,
    PurgeStarted,
)
from exchange_sweeper.models.requests import DeleteRequest, PurgeRequest, SearchFilter
from exchange_sweeper.models.results import (
    AggregateResult,
    DeleteSummary,
    FolderDescriptor,
    MailboxDirectoryEntry,
    MailboxFailure,
    MailboxOutcome,
    MatchRecord,
    SearchSummary,
)
from exchange_sweeper.models.types import (
    CancelReason,
    CancelStatus,
    DeleteMode,
    ExecutionMode,
    Importance,
    PurgeEventType,
    PurgeMethod,
    PurgeStatus,
    SubjectMode,
)

__all__ = [
    "AggregateResult",
    "AuditLogEntry",
    "CancelReason",
    "CancelResult",
    "CancelStatus",
    "DeleteMode",
    "DeleteRequest",
    "DeleteSummary",
    "ExecutionMode",
    "FolderDescriptor",
    "Importance",
    "MailboxDirectoryEntry",
    "MailboxFailure",
    "MailboxOutcome",
    "MatchRecord",
    "OutputChunk",
    "PurgeErrored",
    "PurgeEvent",
    "PurgeEventType",
    "PurgeFinished",
    "PurgeMethod",
    "PurgeRequest",
    "PurgeResponse",
    "PurgeStarted",
    "PurgeStatus",
    "SearchFilter",
    "SearchSummary",
    "SubjectMode",
]
