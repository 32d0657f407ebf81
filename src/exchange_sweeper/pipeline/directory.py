"""Resolve the set of mailboxes the service identity may act on."""

from __future__ import annotations

import logging

from exchange_sweeper.errors import ConfigurationError, UpstreamUnavailable
from exchange_sweeper.ews.protocol import MailProtocol
from exchange_sweeper.models.results import MailboxDirectoryEntry

logger = logging.getLogger(__name__)

_OPERATION = "GetSearchableMailboxes"


async def resolve_mailboxes(
    protocol: MailProtocol,
    *,
    operation_id: str | None = None,
) -> list[MailboxDirectoryEntry]:
    """Enumerate searchable mailboxes and normalize them into directory entries.

    Args:
        protocol: Remote mail-protocol client.
        operation_id: Request correlation id for logging.

    Returns:
        Directory entries for searchable mailboxes with an address.

    Raises:
        ConfigurationError: If the client is not configured.
        UpstreamUnavailable: If the enumeration call fails.
    """
    try:
        mailboxes = await protocol.enumerate_searchable_mailboxes()
    except ConfigurationError:
        raise
    except Exception as exc:
        logger.error(
            "Unable to enumerate searchable mailboxes",
            extra={"operation_id": operation_id, "error": repr(exc)},
        )
        raise UpstreamUnavailable(
            "Unable to enumerate searchable mailboxes",
            operation=_OPERATION,
            cause=exc,
        ) from exc

    return [
        MailboxDirectoryEntry(
            address=mailbox.address,
            display_name=mailbox.display_name,
            is_external=mailbox.is_external,
        )
        for mailbox in mailboxes
        if mailbox.is_searchable and mailbox.address
    ]
