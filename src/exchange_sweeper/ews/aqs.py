"""Compile search filters into AQS query strings."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime

from exchange_sweeper.models.types import Importance

DEFAULT_QUERY = "kind:email"


def escape_value(value: str) -> str:
    """Escape backslashes and double quotes so a value stays inside its quotes."""
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _date_part(value: datetime | None) -> str | None:
    """Return the UTC calendar date of a bound, naive values taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).date().isoformat()


def build_aqs_query(
    *,
    sender: str | None = None,
    subject: str | None = None,
    body: str | None = None,
    keywords: Iterable[str] | None = None,
    received_from: datetime | None = None,
    received_to: datetime | None = None,
    has_attachments: bool | None = None,
    importance: Importance | str | None = None,
) -> str:
    """Build an AQS query string from filter values.

    Clauses are AND-joined in a fixed order: sender, subject, body, keywords,
    received-after, received-before, attachment flag, importance.

    Returns:
        The query string, or ``kind:email`` when no clause applies.
    """
    clauses: list[str] = []

    if sender:
        clauses.append(f'from:"{escape_value(sender)}"')
    if subject:
        clauses.append(f'subject:"{escape_value(subject)}"')
    if body:
        clauses.append(f'body:"{escape_value(body)}"')

    if keywords:
        keyword_clause = " AND ".join(f'"{escape_value(word)}"' for word in keywords if word)
        if keyword_clause:
            clauses.append(keyword_clause)

    after = _date_part(received_from)
    if after:
        clauses.append(f"received>={after}")
    before = _date_part(received_to)
    if before:
        clauses.append(f"received<={before}")

    if has_attachments is not None:
        clauses.append(f"hasattachment:{'true' if has_attachments else 'false'}")

    if importance:
        clauses.append(f"importance:{str(importance).lower()}")

    return " AND ".join(clauses) if clauses else DEFAULT_QUERY
