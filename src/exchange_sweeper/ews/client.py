"""Exchange Web Services adapter built on exchangelib."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from exchangelib import DELEGATE, IMPERSONATION, Account, Build, Configuration, Credentials, Version
from exchangelib.properties import SearchableMailbox
from exchangelib.protocol import BaseProtocol, NoVerifyHTTPAdapter
from exchangelib.version import EXCHANGE_2010_SP2, EXCHANGE_2013, EXCHANGE_2016, EXCHANGE_2019

from exchange_sweeper.config.settings import EwsSettings
from exchange_sweeper.errors import UpstreamUnavailable
from exchange_sweeper.ews.protocol import (
    FindItemsPage,
    ItemId,
    NotificationPolicy,
    OccurrencePolicy,
    PageView,
    RemoteItem,
    RemoteMailbox,
)
from exchange_sweeper.models.types import DeleteMode, ExchangeVersionName

logger = logging.getLogger(__name__)

_VERSION_BUILDS: dict[ExchangeVersionName, Build] = {
    ExchangeVersionName.exchange2010: EXCHANGE_2010_SP2,
    ExchangeVersionName.exchange2013: EXCHANGE_2013,
    ExchangeVersionName.exchange2016: EXCHANGE_2016,
    ExchangeVersionName.exchange2019: EXCHANGE_2019,
}

_FOLDER_ATTRS: dict[str, str] = {
    "inbox": "inbox",
    "junkemail": "junk",
    "deleteditems": "trash",
    "sentitems": "sent",
    "drafts": "drafts",
    "archiveroot": "archive_root",
}

_ITEM_FIELDS: tuple[str, ...] = (
    "subject",
    "author",
    "sender",
    "datetime_received",
    "message_id",
    "has_attachments",
    "size",
    "text_body",
)


class ExchangeError(RuntimeError):
    """Raised when an exchangelib call reports per-item errors."""


@dataclass
class ExchangeSession:
    """Per-task EWS session; impersonation binds it to one mailbox."""

    config: Configuration | None
    credentials: Credentials
    account: Account | None = None
    mailbox: str | None = None


class ExchangeProtocol:
    """Mail-protocol capabilities over exchangelib (blocking calls run in threads)."""

    def __init__(self, *, settings: EwsSettings) -> None:
        """Initialize the adapter.

        Args:
            settings: EWS endpoint and credential settings.

        Raises:
            ConfigurationError: If credentials or an endpoint are missing.
        """
        settings.require_credentials()
        self._s = settings
        if settings.ignore_ssl:
            BaseProtocol.HTTP_ADAPTER_CLS = NoVerifyHTTPAdapter

    def _credentials(self) -> Credentials:
        """Build credentials, prefixing the domain when configured."""
        assert self._s.username is not None
        assert self._s.password is not None
        username = self._s.username
        if self._s.domain and "\\" not in username and "@" not in username:
            username = f"{self._s.domain}\\{username}"
        return Credentials(username, self._s.password)

    def _configuration(self, credentials: Credentials) -> Configuration | None:
        """Build an explicit endpoint configuration, or ``None`` for autodiscover."""
        if not self._s.url:
            return None
        return Configuration(
            service_endpoint=self._s.url,
            credentials=credentials,
            version=Version(build=_VERSION_BUILDS[self._s.version]),
        )

    def _account(self, session: ExchangeSession, address: str, access_type: str) -> Account:
        """Open an account for ``address`` using the session's endpoint."""
        if session.config is not None:
            return Account(
                primary_smtp_address=address,
                config=session.config,
                autodiscover=False,
                access_type=access_type,
            )
        return Account(
            primary_smtp_address=address,
            credentials=session.credentials,
            autodiscover=True,
            access_type=access_type,
        )

    async def create_session(self) -> ExchangeSession:
        """Create an unbound session for the service identity."""
        try:
            credentials = self._credentials()
            config = await asyncio.to_thread(self._configuration, credentials)
        except Exception as exc:
            logger.error(
                "Failed to initialise Exchange service",
                extra={"config": self._s.sanitized(), "error": repr(exc)},
            )
            raise UpstreamUnavailable(
                "Failed to initialise Exchange Web Services client",
                operation="CreateSession",
                details=self._s.sanitized(),
                cause=exc,
            ) from exc
        return ExchangeSession(config=config, credentials=credentials)

    async def impersonate(self, session: ExchangeSession, address: str) -> None:
        """Bind the session to ``address`` via impersonation."""
        session.account = await asyncio.to_thread(self._account, session, address, IMPERSONATION)
        session.mailbox = address

    async def enumerate_searchable_mailboxes(self) -> list[RemoteMailbox]:
        """List mailboxes visible to the service identity."""
        session = await self.create_session()
        service_address = self._s.effective_service_address
        assert service_address is not None

        def _call() -> list[RemoteMailbox]:
            account = self._account(session, service_address, DELEGATE)
            out: list[RemoteMailbox] = []
            for entry in account.protocol.get_searchable_mailboxes(expand_group_membership=False):
                if not isinstance(entry, SearchableMailbox):
                    logger.warning("Skipping mailbox that failed enumeration: %r", entry)
                    continue
                out.append(
                    RemoteMailbox(
                        address=str(entry.primary_smtp_address or ""),
                        display_name=entry.display_name,
                        is_external=bool(entry.is_external),
                        is_searchable=not entry.is_membership_group,
                    ),
                )
            return out

        return await asyncio.to_thread(_call)

    async def find_items(
        self,
        session: ExchangeSession,
        folder_id: str,
        query: str,
        view: PageView,
    ) -> FindItemsPage:
        """Fetch one page of items matching an AQS query."""
        account = _require_account(session)

        def _call() -> FindItemsPage:
            folder = getattr(account, _FOLDER_ATTRS[folder_id])
            qs = folder.filter(query).only(*_ITEM_FIELDS).order_by(view.order_by)
            # One extra row tells us whether another page exists.
            rows = list(qs[view.offset : view.offset + view.page_size + 1])
            more = len(rows) > view.page_size
            items = [_to_remote_item(row) for row in rows[: view.page_size]]
            return FindItemsPage(
                items=items,
                more_available=more,
                next_page_offset=view.offset + len(items) if more else None,
            )

        return await asyncio.to_thread(_call)

    async def bulk_delete(
        self,
        session: ExchangeSession,
        item_ids: Sequence[ItemId],
        mode: DeleteMode,
        notification_policy: NotificationPolicy,
        occurrence_policy: OccurrencePolicy,
    ) -> None:
        """Delete items in one call.

        Raises:
            ExchangeError: If any item could not be deleted.
        """
        account = _require_account(session)
        ids = [(item.id, item.change_key) for item in item_ids]

        def _call() -> list[Any]:
            return list(
                account.bulk_delete(
                    ids=ids,
                    delete_type=mode.protocol_name,
                    send_meeting_cancellations=notification_policy.value,
                    affected_task_occurrences=occurrence_policy.value,
                ),
            )

        results = await asyncio.to_thread(_call)
        errors = [res for res in results if isinstance(res, Exception)]
        if errors:
            raise ExchangeError(f"{len(errors)} of {len(ids)} deletes failed: {errors[0]!r}")


def _require_account(session: ExchangeSession) -> Account:
    """Return the impersonated account or raise if the session is unbound."""
    if session.account is None:
        raise ExchangeError("Session is not impersonating a mailbox")
    return session.account


def _to_remote_item(row: Any) -> RemoteItem:
    """Project an exchangelib item into a RemoteItem."""
    item_id = ItemId(id=row.id, change_key=row.changekey) if getattr(row, "id", None) else None
    author = getattr(row, "author", None)
    sender = getattr(row, "sender", None)
    return RemoteItem(
        item_id=item_id,
        subject=getattr(row, "subject", None),
        from_address=getattr(author, "email_address", None),
        sender_address=getattr(sender, "email_address", None),
        received_at=getattr(row, "datetime_received", None),
        internet_message_id=getattr(row, "message_id", None),
        has_attachments=getattr(row, "has_attachments", None),
        size=getattr(row, "size", None),
        body_text=getattr(row, "text_body", None),
    )
