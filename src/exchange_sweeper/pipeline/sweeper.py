"""Cross-mailbox search and delete."""

from __future__ import annotations

import logging

from exchange_sweeper.config.settings import SearchSettings
from exchange_sweeper.ews.aqs import build_aqs_query
from exchange_sweeper.ews.folders import resolve_folders
from exchange_sweeper.ews.protocol import MailProtocol
from exchange_sweeper.models.requests import DeleteRequest, SearchFilter
from exchange_sweeper.models.results import AggregateResult, MailboxDirectoryEntry
from exchange_sweeper.pipeline.aggregate import aggregate_delete, aggregate_search
from exchange_sweeper.pipeline.directory import resolve_mailboxes
from exchange_sweeper.pipeline.executor import MailboxExecutor, MailboxResult
from exchange_sweeper.pipeline.scanner import FolderScanner
from exchange_sweeper.pipeline.scheduler import run_all

logger = logging.getLogger(__name__)

SEARCH_LIMIT_CAP = 1000
DELETE_LIMIT_CAP = 2000


def _clamp_limit(requested: int | None, *, default: int, cap: int) -> int:
    """Clamp a per-mailbox limit into ``1..cap``."""
    return max(1, min(requested or default, cap))


class SweepService:
    """Fans search/delete work out over every searchable mailbox."""

    def __init__(self, *, protocol: MailProtocol, settings: SearchSettings) -> None:
        """Initialize the service.

        Args:
            protocol: Remote mail-protocol client.
            settings: Search defaults and limits.
        """
        self._protocol = protocol
        self._s = settings
        self._executor = MailboxExecutor(
            protocol=protocol,
            scanner=FolderScanner(protocol=protocol, page_size=settings.page_size),
        )

    async def list_mailboxes(self, *, operation_id: str | None = None) -> list[MailboxDirectoryEntry]:
        """Return the searchable mailbox directory."""
        return await resolve_mailboxes(self._protocol, operation_id=operation_id)

    async def search(
        self,
        request: SearchFilter,
        *,
        operation_id: str | None = None,
    ) -> AggregateResult:
        """Search every searchable mailbox.

        Args:
            request: Validated search filter.
            operation_id: Request correlation id for logging.

        Returns:
            Aggregated matches and per-mailbox failures.

        Raises:
            UnsupportedFolder: If a requested folder has no mapping.
            UpstreamUnavailable: If the mailbox directory cannot be resolved.
        """
        logger.info(
            "Search request received",
            extra={
                "operation_id": operation_id,
                "sender": request.sender,
                "subject": request.subject,
                "folders": request.folders,
            },
        )
        folders = resolve_folders(request.folders, defaults=self._s.default_folders)
        limit = _clamp_limit(
            request.max_per_mailbox,
            default=self._s.max_per_mailbox,
            cap=SEARCH_LIMIT_CAP,
        )

        mailboxes = await resolve_mailboxes(self._protocol, operation_id=operation_id)
        if not mailboxes:
            return aggregate_search(scanned=0, query=None, results=[])

        query = build_aqs_query(
            sender=request.sender,
            subject=request.subject,
            body=request.body,
            keywords=request.keywords,
            received_from=request.received_from,
            received_to=request.received_to,
            has_attachments=request.has_attachments,
            importance=request.importance,
        )

        async def _worker(mailbox: MailboxDirectoryEntry) -> MailboxResult:
            """Search one mailbox."""
            return await self._executor.search_mailbox(
                mailbox,
                folders=folders,
                query=query,
                limit=limit,
            )

        results = await run_all(mailboxes, _worker, self._s.max_concurrency)
        aggregate = aggregate_search(scanned=len(mailboxes), query=query, results=results)
        logger.info(
            "Search finished",
            extra={
                "operation_id": operation_id,
                "scanned": len(mailboxes),
                "with_matches": len(aggregate.results),
                "failures": len(aggregate.failures),
            },
        )
        return aggregate

    async def delete(
        self,
        request: DeleteRequest,
        *,
        operation_id: str | None = None,
    ) -> AggregateResult:
        """Find and (unless simulating) delete matches in every searchable mailbox.

        Args:
            request: Validated delete request.
            operation_id: Request correlation id for logging.

        Returns:
            Aggregated matches, delete counts, and per-mailbox failures.

        Raises:
            UnsupportedFolder: If a requested folder has no mapping.
            UpstreamUnavailable: If the mailbox directory cannot be resolved.
        """
        mode = request.effective_mode
        logger.info(
            "Delete request received",
            extra={
                "operation_id": operation_id,
                "sender": request.sender,
                "subject": request.subject,
                "folders": request.folders,
                "delete_mode": mode.value,
                "simulate": request.simulate,
            },
        )
        folders = resolve_folders(request.folders, defaults=self._s.default_folders)
        limit = _clamp_limit(
            request.max_per_mailbox,
            default=self._s.max_per_mailbox,
            cap=DELETE_LIMIT_CAP,
        )

        mailboxes = await resolve_mailboxes(self._protocol, operation_id=operation_id)
        if not mailboxes:
            return aggregate_delete(
                scanned=0,
                query=None,
                results=[],
                mode=mode,
                simulate=request.simulate,
            )

        query = build_aqs_query(
            sender=request.sender,
            subject=request.subject,
            body=request.body,
            received_from=request.received_from,
            received_to=request.received_to,
        )

        async def _worker(mailbox: MailboxDirectoryEntry) -> MailboxResult:
            """Delete matches in one mailbox."""
            return await self._executor.delete_mailbox(
                mailbox,
                folders=folders,
                query=query,
                limit=limit,
                mode=mode,
                simulate=request.simulate,
            )

        results = await run_all(mailboxes, _worker, self._s.max_concurrency)
        aggregate = aggregate_delete(
            scanned=len(mailboxes),
            query=query,
            results=results,
            mode=mode,
            simulate=request.simulate,
        )
        logger.info(
            "Delete finished",
            extra={
                "operation_id": operation_id,
                "scanned": len(mailboxes),
                "with_matches": len(aggregate.results),
                "failures": len(aggregate.failures),
                "simulate": request.simulate,
            },
        )
        return aggregate
