"""Best-effort extraction of affected mailboxes from script output.

The remediation script has no structured output contract. These patterns
match its diagnostic lines; values that do not look like an address are
reported as unparsed rather than dropped.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

_ACTIVE_ITEMS_RE = re.compile(r"\[INFO\] Mailbox (.*?): \d+ active items")
_AFFECTED_LINE_RE = re.compile(r"\[INFO\] (?:Affected|Effected) (?:Emails|Mailboxes): (.*)")
_DELETED_RE = re.compile(r"Deleted ([1-9]\d*) items from (.*)")
_ADDRESS_RE = re.compile(r"^[^@\s,;:]+@[^@\s,;:]+$")


@dataclass(frozen=True)
class AffectedMailboxes:
    """Addresses found in the output, in first-seen order."""

    mailboxes: list[str] = field(default_factory=list)
    unparsed: list[str] = field(default_factory=list)


def _clean(value: str) -> str:
    """Strip whitespace and trailing punctuation from a captured value."""
    return value.strip().rstrip(".;,").strip()


def extract_affected_mailboxes(text: str) -> AffectedMailboxes:
    """Collect mailbox addresses from the three known diagnostic patterns.

    Args:
        text: Accumulated standard output of the script.

    Returns:
        Deduplicated addresses plus candidate values that were not addresses.
    """
    candidates: list[str] = []
    candidates.extend(match.group(1) for match in _ACTIVE_ITEMS_RE.finditer(text))
    for match in _AFFECTED_LINE_RE.finditer(text):
        candidates.extend(match.group(1).split(","))
    candidates.extend(match.group(2) for match in _DELETED_RE.finditer(text))

    mailboxes: list[str] = []
    unparsed: list[str] = []
    for raw in candidates:
        value = _clean(raw)
        if not value:
            continue
        if not _ADDRESS_RE.match(value):
            if value not in unparsed:
                unparsed.append(value)
            continue
        if value not in mailboxes:
            mailboxes.append(value)
    return AffectedMailboxes(mailboxes=mailboxes, unparsed=unparsed)
