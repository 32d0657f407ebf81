"""Capabilities consumed from the remote mail-protocol client."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any, Protocol

from exchange_sweeper.models.types import DeleteMode


class NotificationPolicy(StrEnum):
    """Meeting cancellation notices sent when deleting items."""

    send_to_none = "SendToNone"


class OccurrencePolicy(StrEnum):
    """Which task occurrences a delete affects."""

    all_occurrences = "AllOccurrences"


@dataclass(frozen=True)
class RemoteMailbox:
    """Mailbox as reported by searchable-mailbox enumeration."""

    address: str
    display_name: str | None
    is_external: bool
    is_searchable: bool = True


@dataclass(frozen=True)
class ItemId:
    """Remote item identifier and change key."""

    id: str
    change_key: str | None = None


@dataclass(frozen=True)
class RemoteItem:
    """Read-optimized projection of one message."""

    item_id: ItemId | None
    subject: str | None = None
    from_address: str | None = None
    sender_address: str | None = None
    received_at: datetime | None = None
    internet_message_id: str | None = None
    has_attachments: bool | None = None
    size: int | None = None
    body_text: str | None = None


@dataclass(frozen=True)
class PageView:
    """Bounded, receipt-time-descending, shallow item view."""

    page_size: int
    offset: int = 0
    order_by: str = "-datetime_received"
    shallow: bool = True


@dataclass(frozen=True)
class FindItemsPage:
    """One page of a remote item enumeration."""

    items: list[RemoteItem] = field(default_factory=list)
    more_available: bool = False
    next_page_offset: int | None = None


class MailProtocol(Protocol):
    """Remote mail protocol (EWS-like) client capabilities."""

    async def enumerate_searchable_mailboxes(self) -> list[RemoteMailbox]: ...

    async def create_session(self) -> Any: ...

    async def impersonate(self, session: Any, address: str) -> None: ...

    async def find_items(
        self,
        session: Any,
        folder_id: str,
        query: str,
        view: PageView,
    ) -> FindItemsPage: ...

    async def bulk_delete(
        self,
        session: Any,
        item_ids: Sequence[ItemId],
        mode: DeleteMode,
        notification_policy: NotificationPolicy,
        occurrence_policy: OccurrencePolicy,
    ) -> None: ...
