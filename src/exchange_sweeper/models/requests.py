"""Validated request models for search, delete and purge operations."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Self

from pydantic import AfterValidator, Field, field_validator, model_validator

from exchange_sweeper.models.base import WireModel
from exchange_sweeper.models.types import (
    DeleteMode,
    ExecutionMode,
    Importance,
    PurgeMethod,
    SubjectMode,
)

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+$"

EmailAddress = Annotated[str, Field(min_length=3, max_length=320, pattern=EMAIL_PATTERN)]
SubjectText = Annotated[str, Field(max_length=256)]


def _as_utc(value: datetime) -> datetime:
    """Take naive timestamps as UTC so bounds always compare."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


UtcDateTime = Annotated[datetime, AfterValidator(_as_utc)]


def _blank_to_none(value: object) -> object:
    """Treat empty or whitespace-only strings as absent."""
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return value


class SearchFilter(WireModel):
    """Criteria for locating messages across every searchable mailbox."""

    sender: EmailAddress | None = None
    subject: SubjectText | None = None
    body: str | None = None
    keywords: list[str] = Field(default_factory=list)
    received_from: UtcDateTime | None = None
    received_to: UtcDateTime | None = None
    has_attachments: bool | None = None
    importance: Importance | None = None
    folders: list[str] | None = None
    max_per_mailbox: Annotated[int, Field(ge=1, le=2000)] | None = None

    @field_validator("sender", "subject", "body", mode="before")
    @classmethod
    def _strip_text(cls, value: object) -> object:
        """Normalize blank strings to ``None``."""
        return _blank_to_none(value)

    @field_validator("keywords", mode="before")
    @classmethod
    def _drop_blank_keywords(cls, value: object) -> object:
        """Drop empty keyword entries."""
        if value is None:
            return []
        if isinstance(value, list):
            return [word.strip() for word in value if isinstance(word, str) and word.strip()]
        return value

    @field_validator("importance", mode="before")
    @classmethod
    def _lowercase_importance(cls, value: object) -> object:
        """Accept importance values in any case."""
        return value.strip().lower() if isinstance(value, str) else value

    @model_validator(mode="after")
    def _check_date_range(self) -> Self:
        """Ensure ``received_from`` does not come after ``received_to``."""
        if self.received_from and self.received_to and self.received_from > self.received_to:
            raise ValueError("receivedTo must be greater than or equal to receivedFrom.")
        return self


class DeleteRequest(SearchFilter):
    """Search criteria plus delete options."""

    delete_mode: str = "softDelete"
    simulate: bool = True

    @model_validator(mode="after")
    def _require_primary_filter(self) -> Self:
        """Deletes must be narrowed by sender or subject."""
        if not self.sender and not self.subject:
            raise ValueError("Sender email or subject must be provided.")
        return self

    @property
    def effective_mode(self) -> DeleteMode:
        """Return the resolved delete mode."""
        return DeleteMode.parse(self.delete_mode)


class PurgeRequest(WireModel):
    """Parameters for an organization-wide purge by the remediation script."""

    sender_email: EmailAddress
    subject_contains: SubjectText | None = None
    subject_equal: SubjectText | None = None
    received_from: UtcDateTime | None = None
    received_to: UtcDateTime | None = None
    simulate: bool = True
    allow_hard_delete: bool = False
    method: PurgeMethod = PurgeMethod.compliance_search
    days_back: Annotated[int, Field(ge=1, le=365)] = 30

    @field_validator("sender_email", mode="before")
    @classmethod
    def _strip_sender(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value

    @field_validator("subject_contains", "subject_equal", mode="before")
    @classmethod
    def _blank_subject(cls, value: object) -> object:
        """Empty subjects mean no subject filter."""
        return _blank_to_none(value)

    @model_validator(mode="after")
    def _check_consistency(self) -> Self:
        """Reject conflicting subject filters and inverted date ranges."""
        if self.subject_contains and self.subject_equal:
            raise ValueError("subjectContains and subjectEqual cannot be used together.")
        if self.received_from and self.received_to and self.received_from > self.received_to:
            raise ValueError("receivedTo must be greater than or equal to receivedFrom.")
        return self

    @property
    def subject_mode(self) -> SubjectMode:
        """Return how the subject value is matched."""
        if self.subject_equal:
            return SubjectMode.equals
        if self.subject_contains:
            return SubjectMode.contains
        return SubjectMode.none

    @property
    def subject_value(self) -> str | None:
        """Return the subject text, whichever mode supplied it."""
        return self.subject_equal or self.subject_contains

    @property
    def execution_mode(self) -> ExecutionMode:
        """Return the audit label for how the script will run."""
        if self.simulate:
            return ExecutionMode.simulation
        if self.allow_hard_delete:
            return ExecutionMode.hard_delete
        return ExecutionMode.soft_delete
