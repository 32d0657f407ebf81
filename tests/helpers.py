"""In-memory mail protocol used by the sweep engine tests."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from exchange_sweeper.ews.protocol import (
    FindItemsPage,
    ItemId,
    NotificationPolicy,
    OccurrencePolicy,
    PageView,
    RemoteItem,
    RemoteMailbox,
)
from exchange_sweeper.models.types import DeleteMode


def make_items(prefix: str, count: int, *, sender: str = "spam@x.com") -> list[RemoteItem]:
    """Build ``count`` items, newest first."""
    base = datetime(2024, 5, 1, tzinfo=UTC)
    return [
        RemoteItem(
            item_id=ItemId(id=f"{prefix}-{i}", change_key=f"ck-{i}"),
            subject=f"{prefix} subject {i}",
            from_address=sender,
            sender_address=sender,
            received_at=base - timedelta(minutes=i),
            internet_message_id=f"<{prefix}-{i}@x.com>",
            has_attachments=False,
            size=1024,
            body_text=f"body of {prefix} {i}",
        )
        for i in range(count)
    ]


@dataclass
class FakeSession:
    address: str | None = None


@dataclass
class DeleteCall:
    address: str | None
    item_ids: list[ItemId]
    mode: DeleteMode
    notification_policy: NotificationPolicy
    occurrence_policy: OccurrencePolicy


@dataclass
class FindCall:
    address: str | None
    folder_id: str
    query: str
    view: PageView


@dataclass
class FakeMailProtocol:
    """Serves configured items per (mailbox, folder id) with offset paging."""

    mailboxes: list[RemoteMailbox] = field(default_factory=list)
    items: dict[tuple[str, str], list[RemoteItem]] = field(default_factory=dict)
    fail_session: set[str] = field(default_factory=set)
    fail_find: set[str] = field(default_factory=set)
    fail_delete: set[str] = field(default_factory=set)
    enumerate_error: Exception | None = None
    delay: float = 0.0
    in_flight: int = 0
    max_in_flight: int = 0
    sessions: int = 0
    find_calls: list[FindCall] = field(default_factory=list)
    delete_calls: list[DeleteCall] = field(default_factory=list)

    async def enumerate_searchable_mailboxes(self) -> list[RemoteMailbox]:
        if self.enumerate_error is not None:
            raise self.enumerate_error
        return list(self.mailboxes)

    async def create_session(self) -> FakeSession:
        self.sessions += 1
        return FakeSession()

    async def impersonate(self, session: FakeSession, address: str) -> None:
        if address in self.fail_session:
            raise RuntimeError(f"impersonation denied for {address}")
        session.address = address

    async def find_items(
        self,
        session: FakeSession,
        folder_id: str,
        query: str,
        view: PageView,
    ) -> FindItemsPage:
        self.find_calls.append(FindCall(session.address, folder_id, query, view))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if session.address in self.fail_find:
                raise RuntimeError("find failed")
            available = self.items.get((session.address or "", folder_id), [])
            page = available[view.offset : view.offset + view.page_size]
            end = view.offset + len(page)
            more = end < len(available)
            return FindItemsPage(
                items=page,
                more_available=more,
                next_page_offset=end if more else None,
            )
        finally:
            self.in_flight -= 1

    async def bulk_delete(
        self,
        session: FakeSession,
        item_ids: Sequence[ItemId],
        mode: DeleteMode,
        notification_policy: NotificationPolicy,
        occurrence_policy: OccurrencePolicy,
    ) -> None:
        if session.address in self.fail_delete:
            raise RuntimeError("delete rejected")
        self.delete_calls.append(
            DeleteCall(session.address, list(item_ids), mode, notification_policy, occurrence_policy),
        )
