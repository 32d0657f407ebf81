"""Shared enums used across the sweep engine and purge orchestrator."""

from __future__ import annotations

from enum import StrEnum


class ExchangeVersionName(StrEnum):
    """Supported Exchange server versions."""

    exchange2010 = "exchange2010"
    exchange2013 = "exchange2013"
    exchange2016 = "exchange2016"
    exchange2019 = "exchange2019"


class DeleteMode(StrEnum):
    """Bulk delete modes, keyed by their lower-case request names."""

    soft_delete = "softdelete"
    move_to_deleted_items = "movetodeleteditems"
    hard_delete = "harddelete"

    @classmethod
    def parse(cls, value: str | None) -> DeleteMode:
        """Resolve a request value case-insensitively, falling back to soft delete."""
        if not value:
            return cls.soft_delete
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.soft_delete

    @property
    def protocol_name(self) -> str:
        """Return the EWS ``DeleteType`` name for this mode."""
        return {
            DeleteMode.soft_delete: "SoftDelete",
            DeleteMode.move_to_deleted_items: "MoveToDeletedItems",
            DeleteMode.hard_delete: "HardDelete",
        }[self]


class Importance(StrEnum):
    """Message importance values accepted in search filters."""

    low = "low"
    normal = "normal"
    high = "high"


class PurgeMethod(StrEnum):
    """Search strategies understood by the remediation script."""

    compliance_search = "ComplianceSearch"
    search_mailbox = "SearchMailbox"


class SubjectMode(StrEnum):
    """How the purge subject value is matched."""

    equals = "equals"
    contains = "contains"
    none = "none"


class ExecutionMode(StrEnum):
    """Execution mode label recorded in purge audit entries."""

    simulation = "simulation"
    hard_delete = "hard-delete"
    soft_delete = "soft-delete"


class PurgeStatus(StrEnum):
    """Terminal status of a purge operation."""

    simulated = "simulated"
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"


class CancelReason(StrEnum):
    """Why a purge operation was cancelled."""

    user_requested = "user_requested"
    connection_closed = "connection_closed"


class CancelStatus(StrEnum):
    """Outcome of a cancel request."""

    cancelling = "cancelling"
    pending = "pending"
    not_found = "not-found"
    already_finished = "already-finished"

    @property
    def http_status(self) -> int:
        """Return the HTTP-style status code for this outcome."""
        if self is CancelStatus.not_found:
            return 404
        if self is CancelStatus.already_finished:
            return 409
        return 200


class PurgeEventType(StrEnum):
    """Event names emitted on a purge stream."""

    start = "start"
    stdout = "stdout"
    stderr = "stderr"
    end = "end"
    error = "error"
