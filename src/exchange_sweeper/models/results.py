"""Result models produced by the cross-mailbox search/delete engine."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import ConfigDict, Field

from exchange_sweeper.models.base import WireModel
from exchange_sweeper.models.types import DeleteMode


class ResultModel(WireModel):
    """Immutable wire model."""

    model_config = ConfigDict(frozen=True)


class MailboxDirectoryEntry(ResultModel):
    """A mailbox the service identity may search."""

    address: str
    display_name: str | None = None
    is_external: bool = False


class FolderDescriptor(ResultModel):
    """Logical folder name mapped to its protocol folder id."""

    logical_name: str
    protocol_folder_id: str


class MatchRecord(ResultModel):
    """Metadata of one matching message."""

    item_id: str | None
    change_token: str | None = None
    subject: str = ""
    from_address: str | None = Field(default=None, alias="from")
    sender: str | None = None
    received_at: datetime | None = None
    internet_message_id: str | None = None
    has_attachments: bool = False
    size: int | None = None
    body_preview: str = ""
    mailbox: str
    folder: str


class MailboxOutcome(ResultModel):
    """Matches found (and optionally deleted) in one mailbox."""

    mailbox: str
    display_name: str | None = None
    total_matches: int
    deleted: int | None = None
    folders: list[str] | None = None
    matches: list[MatchRecord] = Field(default_factory=list)


class MailboxFailure(ResultModel):
    """A mailbox whose task failed."""

    mailbox: str
    display_name: str | None = None
    error: str
    details: dict[str, Any] | None = None


class SearchSummary(ResultModel):
    scanned: int
    with_matches: int
    total_messages: int


class DeleteSummary(ResultModel):
    scanned: int
    with_matches: int
    total_matches: int
    total_deleted: int
    mode: DeleteMode
    simulate: bool


class AggregateResult(ResultModel):
    """Merged outcome of one search or delete request."""

    summary: SearchSummary | DeleteSummary
    query: str | None
    results: list[MailboxOutcome] = Field(default_factory=list)
    failures: list[MailboxFailure] = Field(default_factory=list)
