"""Merge per-mailbox results into a single response."""

from __future__ import annotations

from collections.abc import Iterable

from exchange_sweeper.models.results import (
    AggregateResult,
    DeleteSummary,
    MailboxFailure,
    MailboxOutcome,
    SearchSummary,
)
from exchange_sweeper.models.types import DeleteMode


def partition(
    results: Iterable[MailboxOutcome | MailboxFailure | None],
) -> tuple[list[MailboxOutcome], list[MailboxFailure]]:
    """Split worker results into outcomes (sorted by mailbox) and failures.

    ``None`` results (mailboxes without matches) are dropped.
    """
    outcomes: list[MailboxOutcome] = []
    failures: list[MailboxFailure] = []
    for result in results:
        if result is None:
            continue
        if isinstance(result, MailboxFailure):
            failures.append(result)
            continue
        outcomes.append(result)
    outcomes.sort(key=lambda outcome: outcome.mailbox)
    return outcomes, failures


def aggregate_search(
    *,
    scanned: int,
    query: str | None,
    results: Iterable[MailboxOutcome | MailboxFailure | None],
) -> AggregateResult:
    """Build the aggregate result of a search request."""
    outcomes, failures = partition(results)
    return AggregateResult(
        summary=SearchSummary(
            scanned=scanned,
            with_matches=len(outcomes),
            total_messages=sum(outcome.total_matches for outcome in outcomes),
        ),
        query=query,
        results=outcomes,
        failures=failures,
    )


def aggregate_delete(
    *,
    scanned: int,
    query: str | None,
    results: Iterable[MailboxOutcome | MailboxFailure | None],
    mode: DeleteMode,
    simulate: bool,
) -> AggregateResult:
    """Build the aggregate result of a delete request."""
    outcomes, failures = partition(results)
    return AggregateResult(
        summary=DeleteSummary(
            scanned=scanned,
            with_matches=len(outcomes),
            total_matches=sum(outcome.total_matches for outcome in outcomes),
            total_deleted=sum(outcome.deleted or 0 for outcome in outcomes),
            mode=mode,
            simulate=simulate,
        ),
        query=query,
        results=outcomes,
        failures=failures,
    )
