"""Argument vector for the external remediation script."""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

from exchange_sweeper.config.settings import PurgeSettings
from exchange_sweeper.models.requests import PurgeRequest


def format_script_date(value: datetime | None) -> str | None:
    """Format a date bound as ``dd/mm/yyyy`` (UTC) for the script."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime("%d/%m/%Y")


def log_file_for(settings: PurgeSettings, *, started_at: datetime) -> Path:
    """Return the per-run log file path the script writes to."""
    epoch_ms = int(started_at.timestamp() * 1000)
    return settings.log_dir / f"EmailDeletion_{epoch_ms}.log"


def build_script_args(
    request: PurgeRequest,
    *,
    settings: PurgeSettings,
    log_file: Path,
) -> list[str]:
    """Build the positional argument vector (no shell involved).

    Args:
        request: Validated purge request.
        settings: Script location and interpreter arguments.
        log_file: Path the script writes its own log to.

    Returns:
        Arguments following the executable name.
    """
    args = [
        *settings.executable_args,
        str(settings.script_path),
        "-SenderEmail",
        request.sender_email,
        "-Method",
        request.method.value,
        "-DaysBack",
        str(request.days_back),
    ]

    if request.subject_equal:
        args.extend(["-SubjectEqual", request.subject_equal])
    elif request.subject_contains:
        args.extend(["-SubjectContains", request.subject_contains])

    from_date = format_script_date(request.received_from)
    if from_date:
        args.extend(["-FromDate", from_date])
    to_date = format_script_date(request.received_to)
    if to_date:
        args.extend(["-ToDate", to_date])

    args.extend(["-LogFile", str(log_file)])
    args.append("-WhatIf" if request.simulate else "-AutoConfirm")
    if request.allow_hard_delete:
        args.append("-AllowHardDelete")
    return args
