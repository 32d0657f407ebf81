"""Per-mailbox search and delete work."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, TypeAlias

from exchange_sweeper.errors import SweeperError, UpstreamUnavailable
from exchange_sweeper.ews.protocol import MailProtocol, NotificationPolicy, OccurrencePolicy
from exchange_sweeper.models.results import (
    FolderDescriptor,
    MailboxDirectoryEntry,
    MailboxFailure,
    MailboxOutcome,
)
from exchange_sweeper.models.types import DeleteMode
from exchange_sweeper.pipeline.scanner import FolderScanner, ScannedItem

logger = logging.getLogger(__name__)

MailboxResult: TypeAlias = MailboxOutcome | MailboxFailure | None


def _failure(mailbox: MailboxDirectoryEntry, exc: Exception) -> MailboxFailure:
    """Convert an exception into a MailboxFailure for the given mailbox."""
    details: dict[str, Any] | None = None
    if isinstance(exc, SweeperError):
        details = exc.details or None
    return MailboxFailure(
        mailbox=mailbox.address,
        display_name=mailbox.display_name,
        error=str(exc) or exc.__class__.__name__,
        details=details,
    )


class MailboxExecutor:
    """Impersonates one mailbox, scans its folders, and optionally deletes matches."""

    def __init__(self, *, protocol: MailProtocol, scanner: FolderScanner) -> None:
        """Initialize the executor.

        Args:
            protocol: Remote mail-protocol client.
            scanner: Folder scanner bound to the same client.
        """
        self._protocol = protocol
        self._scanner = scanner

    async def _open_session(self, address: str, *, operation: str) -> Any:
        """Create a session impersonating ``address``."""
        try:
            session = await self._protocol.create_session()
            await self._protocol.impersonate(session, address)
        except UpstreamUnavailable:
            raise
        except Exception as exc:
            raise UpstreamUnavailable(
                "Failed to open mailbox session",
                operation=operation,
                details={"mailbox": address},
                cause=exc,
            ) from exc
        return session

    async def _collect(
        self,
        session: Any,
        address: str,
        *,
        folders: Sequence[FolderDescriptor],
        query: str,
        limit: int,
        operation: str,
    ) -> list[ScannedItem]:
        """Scan folders in order until ``limit`` matches are collected."""
        matches: list[ScannedItem] = []
        for folder in folders:
            items = await self._scanner.scan(
                session,
                folder,
                query,
                limit - len(matches),
                address,
                operation=operation,
            )
            matches.extend(items)
            if len(matches) >= limit:
                break
        return matches

    async def search_mailbox(
        self,
        mailbox: MailboxDirectoryEntry,
        *,
        folders: Sequence[FolderDescriptor],
        query: str,
        limit: int,
    ) -> MailboxResult:
        """Collect match metadata for one mailbox.

        Returns:
            An outcome when there are matches, a failure on error, else ``None``.
        """
        try:
            session = await self._open_session(mailbox.address, operation="SearchMessages")
            matches = await self._collect(
                session,
                mailbox.address,
                folders=folders,
                query=query,
                limit=limit,
                operation="SearchMessages",
            )
        except Exception as exc:
            logger.error(
                "Unable to collect matches for mailbox",
                extra={"mailbox": mailbox.address, "error": repr(exc)},
            )
            return _failure(mailbox, exc)

        if not matches:
            return None
        return MailboxOutcome(
            mailbox=mailbox.address,
            display_name=mailbox.display_name,
            total_matches=len(matches),
            matches=[match.record for match in matches],
        )

    async def delete_mailbox(
        self,
        mailbox: MailboxDirectoryEntry,
        *,
        folders: Sequence[FolderDescriptor],
        query: str,
        limit: int,
        mode: DeleteMode,
        simulate: bool,
    ) -> MailboxResult:
        """Collect matches for one mailbox and bulk-delete them unless simulating.

        Returns:
            An outcome when there are matches, a failure on error, else ``None``.
        """
        try:
            session = await self._open_session(mailbox.address, operation="DeleteMessages")
            matches = await self._collect(
                session,
                mailbox.address,
                folders=folders,
                query=query,
                limit=limit,
                operation="DeleteMessages",
            )
            item_ids = [match.item_id for match in matches if match.item_id is not None]
            deleted = 0
            if not simulate and item_ids:
                try:
                    await self._protocol.bulk_delete(
                        session,
                        item_ids,
                        mode,
                        NotificationPolicy.send_to_none,
                        OccurrencePolicy.all_occurrences,
                    )
                except Exception as exc:
                    raise UpstreamUnavailable(
                        "Failed to delete messages",
                        operation="DeleteItems",
                        details={"mailbox": mailbox.address},
                        cause=exc,
                    ) from exc
                deleted = len(item_ids)
        except Exception as exc:
            logger.error(
                "Unable to delete messages for mailbox",
                extra={"mailbox": mailbox.address, "error": repr(exc)},
            )
            return _failure(mailbox, exc)

        if not matches:
            return None

        folder_names: list[str] = []
        for match in matches:
            if match.record.folder not in folder_names:
                folder_names.append(match.record.folder)

        return MailboxOutcome(
            mailbox=mailbox.address,
            display_name=mailbox.display_name,
            total_matches=len(matches),
            deleted=deleted,
            folders=folder_names,
            matches=[match.record for match in matches],
        )
