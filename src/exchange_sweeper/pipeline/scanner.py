"""Paginated, limit-bounded item enumeration within one mailbox folder."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from exchange_sweeper.errors import UpstreamUnavailable
from exchange_sweeper.ews.protocol import ItemId, MailProtocol, PageView, RemoteItem
from exchange_sweeper.models.results import FolderDescriptor, MatchRecord

logger = logging.getLogger(__name__)

BODY_PREVIEW_CHARS = 500


@dataclass(frozen=True)
class ScannedItem:
    """A matched item: its identifier for deletes plus caller-facing metadata."""

    item_id: ItemId | None
    record: MatchRecord


def to_match_record(item: RemoteItem, *, mailbox: str, folder: str) -> MatchRecord:
    """Transform a remote item into a MatchRecord."""
    item_id = item.item_id
    return MatchRecord(
        item_id=item_id.id if item_id else None,
        change_token=item_id.change_key if item_id else None,
        subject=item.subject or "",
        from_address=item.from_address or None,
        sender=item.sender_address or None,
        received_at=item.received_at,
        internet_message_id=item.internet_message_id or None,
        has_attachments=bool(item.has_attachments),
        size=item.size,
        body_preview=(item.body_text or "")[:BODY_PREVIEW_CHARS],
        mailbox=mailbox,
        folder=folder,
    )


class FolderScanner:
    """Pages through one folder, newest first, until a limit is reached."""

    def __init__(self, *, protocol: MailProtocol, page_size: int) -> None:
        """Initialize the scanner.

        Args:
            protocol: Remote mail-protocol client.
            page_size: Maximum items requested per find call.
        """
        self._protocol = protocol
        self._page_size = page_size

    async def scan(
        self,
        session: Any,
        folder: FolderDescriptor,
        query: str,
        limit: int,
        mailbox: str,
        *,
        operation: str = "FindItems",
    ) -> list[ScannedItem]:
        """Collect up to ``limit`` matching items from ``folder``.

        Args:
            session: Impersonated session for ``mailbox``.
            folder: Folder to scan (no subfolders).
            query: AQS query string.
            limit: Maximum number of items to return.
            mailbox: Mailbox address, recorded on each match.
            operation: Operation name for error context.

        Returns:
            Matched items in receipt-time-descending order.

        Raises:
            UpstreamUnavailable: If a find call fails.
        """
        if limit <= 0:
            return []

        out: list[ScannedItem] = []
        offset = 0
        try:
            while True:
                view = PageView(page_size=min(limit - len(out), self._page_size), offset=offset)
                page = await self._protocol.find_items(
                    session,
                    folder.protocol_folder_id,
                    query,
                    view,
                )
                for item in page.items:
                    if len(out) >= limit:
                        break
                    record = to_match_record(item, mailbox=mailbox, folder=folder.logical_name)
                    out.append(ScannedItem(item_id=item.item_id, record=record))

                if not page.more_available or len(out) >= limit:
                    break
                if page.next_page_offset is None or page.next_page_offset <= offset:
                    logger.warning(
                        "Find call reported more items without advancing the offset",
                        extra={"mailbox": mailbox, "folder": folder.logical_name},
                    )
                    break
                offset = page.next_page_offset
        except Exception as exc:
            logger.error(
                "Find items call failed",
                extra={"mailbox": mailbox, "folder": folder.logical_name, "error": repr(exc)},
            )
            raise UpstreamUnavailable(
                "Failed to search mailbox folder",
                operation=operation,
                details={"mailbox": mailbox, "folder": folder.logical_name},
                cause=exc,
            ) from exc

        return out
