"""Typer CLI for cross-mailbox search, delete and purge."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Coroutine
from contextlib import aclosing
from datetime import datetime
from pathlib import Path
from typing import Annotated, Any, TypeVar

import typer
from pydantic import BaseModel, ValidationError
from rich.console import Console
from rich.table import Table

from exchange_sweeper.config.settings import AppSettings, load_settings
from exchange_sweeper.errors import ConfigurationError, ProcessFailure, SpawnFailure, SweeperError
from exchange_sweeper.ews.client import ExchangeProtocol
from exchange_sweeper.models.events import PurgeFinished
from exchange_sweeper.models.requests import DeleteRequest, PurgeRequest, SearchFilter
from exchange_sweeper.models.results import AggregateResult, DeleteSummary
from exchange_sweeper.models.types import PurgeEventType, PurgeStatus
from exchange_sweeper.pipeline.sweeper import SweepService
from exchange_sweeper.purge.orchestrator import PurgeOrchestrator
from exchange_sweeper.storage.audit_log import AuditLog
from exchange_sweeper.utils.logging import configure_logging

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)
T = TypeVar("T")

app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help="Find and remove messages across every Exchange mailbox, with dry runs and an audit trail.",
)

_DATE_FORMATS = ["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%dT%H:%M:%S%z"]

EnvFile = Annotated[
    Path | None,
    typer.Option(
        "--env-file",
        exists=True,
        dir_okay=False,
        help="Optional path to a .env file (in addition to environment variables).",
    ),
]


def load_app_settings(*, env_file: Path | None) -> AppSettings:
    """Load settings and configure logging for a CLI run."""
    settings = load_settings(env_file=env_file)
    configure_logging(settings=settings.logging)
    return settings


def _validate(model: type[M], payload: dict[str, Any]) -> M:
    """Validate a request model, exiting with code 2 on invalid input."""
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        typer.echo(f"Invalid request: {exc}", err=True)
        raise typer.Exit(code=2) from None


def _sweeper(settings: AppSettings) -> SweepService:
    """Build the sweep service, exiting with code 2 on missing configuration."""
    try:
        protocol = ExchangeProtocol(settings=settings.ews)
    except ConfigurationError as exc:
        typer.echo(f"{exc} {exc.details}", err=True)
        raise typer.Exit(code=2) from None
    return SweepService(protocol=protocol, settings=settings.search)


def _run_sweep(coro: Coroutine[Any, Any, T]) -> T:
    """Run a sweep coroutine, mapping request-level failures to exit codes."""
    try:
        return asyncio.run(coro)
    except ConfigurationError as exc:
        typer.echo(f"{exc} {exc.details}", err=True)
        raise typer.Exit(code=2) from None
    except SweeperError as exc:
        logger.error("Request failed: %s", exc, extra={"details": exc.details})
        typer.echo(f"{exc} {exc.details}", err=True)
        raise typer.Exit(code=1) from None
    except KeyboardInterrupt:
        raise typer.Exit(code=130) from None


def _print_aggregate(result: AggregateResult, *, as_json: bool) -> None:
    """Render an aggregate result as JSON or rich tables."""
    if as_json:
        typer.echo(json.dumps(result.to_wire(), indent=2, ensure_ascii=False))
        return

    console = Console()
    summary = result.summary
    console.print(f"[dim]Query:[/dim] {result.query}")
    console.print(
        f"[bold]Scanned[/bold] {summary.scanned}  "
        f"[bold]with matches[/bold] {summary.with_matches}",
    )
    if isinstance(summary, DeleteSummary):
        verb = "would delete" if summary.simulate else "deleted"
        console.print(
            f"[bold]Matches[/bold] {summary.total_matches}  "
            f"[bold]{verb}[/bold] {summary.total_deleted}  [dim]mode={summary.mode.value}[/dim]",
        )
    else:
        console.print(f"[bold]Messages[/bold] {summary.total_messages}")

    if result.results:
        table = Table(title="Mailboxes with matches")
        table.add_column("Mailbox")
        table.add_column("Display name")
        table.add_column("Matches", justify="right")
        table.add_column("Deleted", justify="right")
        for outcome in result.results:
            table.add_row(
                outcome.mailbox,
                outcome.display_name or "",
                str(outcome.total_matches),
                "" if outcome.deleted is None else str(outcome.deleted),
            )
        console.print(table)

    if result.failures:
        table = Table(title="Failures", style="red")
        table.add_column("Mailbox")
        table.add_column("Error")
        for failure in result.failures:
            table.add_row(failure.mailbox, failure.error)
        console.print(table)


@app.command("mailboxes")
def mailboxes_cmd(*, env_file: EnvFile = None) -> None:
    """List mailboxes the service identity can search."""
    settings = load_app_settings(env_file=env_file)
    sweeper = _sweeper(settings)
    entries = _run_sweep(sweeper.list_mailboxes())
    typer.echo(
        json.dumps({"mailboxes": [entry.to_wire() for entry in entries]}, indent=2),
    )


@app.command("search")
def search_cmd(
    *,
    env_file: EnvFile = None,
    sender: str | None = typer.Option(None, help="Sender address."),
    subject: str | None = typer.Option(None, help="Subject phrase."),
    body: str | None = typer.Option(None, help="Body phrase."),
    keyword: list[str] | None = typer.Option(None, help="Keyword (repeatable)."),
    received_from: datetime | None = typer.Option(None, formats=_DATE_FORMATS),
    received_to: datetime | None = typer.Option(None, formats=_DATE_FORMATS),
    has_attachments: bool | None = typer.Option(None, "--has-attachments/--no-attachments"),
    importance: str | None = typer.Option(None, help="low, normal or high."),
    folder: list[str] | None = typer.Option(None, help="Folder to scan (repeatable)."),
    max_per_mailbox: int | None = typer.Option(None, min=1, max=2000),
    as_json: bool = typer.Option(False, "--json", help="Print the full result as JSON."),
) -> None:
    """Search every searchable mailbox for matching messages."""
    settings = load_app_settings(env_file=env_file)
    request = _validate(
        SearchFilter,
        {
            "sender": sender,
            "subject": subject,
            "body": body,
            "keywords": keyword or [],
            "received_from": received_from,
            "received_to": received_to,
            "has_attachments": has_attachments,
            "importance": importance,
            "folders": folder or None,
            "max_per_mailbox": max_per_mailbox,
        },
    )
    sweeper = _sweeper(settings)
    result: AggregateResult = _run_sweep(sweeper.search(request))
    _print_aggregate(result, as_json=as_json)


@app.command("delete")
def delete_cmd(
    *,
    env_file: EnvFile = None,
    sender: str | None = typer.Option(None, help="Sender address."),
    subject: str | None = typer.Option(None, help="Subject phrase."),
    body: str | None = typer.Option(None, help="Body phrase."),
    received_from: datetime | None = typer.Option(None, formats=_DATE_FORMATS),
    received_to: datetime | None = typer.Option(None, formats=_DATE_FORMATS),
    folder: list[str] | None = typer.Option(None, help="Folder to scan (repeatable)."),
    max_per_mailbox: int | None = typer.Option(None, min=1, max=2000),
    mode: str = typer.Option("softDelete", help="softDelete, moveToDeletedItems or hardDelete."),
    execute: bool = typer.Option(
        False,
        "--execute",
        help="Actually delete. Without it, matches are only reported.",
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the full result as JSON."),
) -> None:
    """Delete matching messages from every searchable mailbox (simulated by default)."""
    settings = load_app_settings(env_file=env_file)
    request = _validate(
        DeleteRequest,
        {
            "sender": sender,
            "subject": subject,
            "body": body,
            "received_from": received_from,
            "received_to": received_to,
            "folders": folder or None,
            "max_per_mailbox": max_per_mailbox,
            "delete_mode": mode,
            "simulate": not execute,
        },
    )
    sweeper = _sweeper(settings)
    result: AggregateResult = _run_sweep(sweeper.delete(request))
    _print_aggregate(result, as_json=as_json)


async def _stream_purge(orchestrator: PurgeOrchestrator, request: PurgeRequest) -> PurgeStatus:
    """Print purge events as they arrive and return the terminal status."""
    status = PurgeStatus.failed
    async with aclosing(orchestrator.stream(request)) as events:
        async for event in events:
            typer.echo(event.to_sse(), nl=False)
            if isinstance(event.data, PurgeFinished):
                status = event.data.status
            elif event.event is PurgeEventType.error:
                status = PurgeStatus.failed
    return status


@app.command("purge")
def purge_cmd(
    *,
    env_file: EnvFile = None,
    sender_email: str = typer.Option(..., "--sender", help="Sender address to purge."),
    subject_contains: str | None = typer.Option(None, help="Subject must contain this text."),
    subject_equal: str | None = typer.Option(None, help="Subject must equal this text."),
    received_from: datetime | None = typer.Option(None, formats=_DATE_FORMATS),
    received_to: datetime | None = typer.Option(None, formats=_DATE_FORMATS),
    method: str = typer.Option("ComplianceSearch", help="ComplianceSearch or SearchMailbox."),
    days_back: int = typer.Option(30, min=1, max=365),
    execute: bool = typer.Option(False, "--execute", help="Run for real instead of -WhatIf."),
    allow_hard_delete: bool = typer.Option(False, help="Allow the script to hard delete."),
    stream: bool = typer.Option(True, "--stream/--no-stream", help="Stream events as they arrive."),
) -> None:
    """Run the remediation script for one sender across the organization.

    Ctrl-C while streaming terminates the script and records the run as cancelled.
    """
    settings = load_app_settings(env_file=env_file)
    request = _validate(
        PurgeRequest,
        {
            "sender_email": sender_email,
            "subject_contains": subject_contains,
            "subject_equal": subject_equal,
            "received_from": received_from,
            "received_to": received_to,
            "method": method,
            "days_back": days_back,
            "simulate": not execute,
            "allow_hard_delete": allow_hard_delete,
        },
    )
    orchestrator = PurgeOrchestrator(
        settings=settings.purge,
        audit_log=AuditLog(path=settings.purge.audit_log_file),
    )

    if stream:
        try:
            status = asyncio.run(_stream_purge(orchestrator, request))
        except KeyboardInterrupt:
            raise typer.Exit(code=130) from None
        raise typer.Exit(code=1 if status is PurgeStatus.failed else 0)

    try:
        response = asyncio.run(orchestrator.run(request))
    except SpawnFailure as exc:
        typer.echo(f"{exc} {exc.details}", err=True)
        raise typer.Exit(code=1) from None
    except KeyboardInterrupt:
        raise typer.Exit(code=130) from None

    typer.echo(json.dumps(response.to_wire(), indent=2, ensure_ascii=False))
    try:
        response.raise_for_status()
    except ProcessFailure as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from None


@app.command("purge-logs")
def purge_logs_cmd(
    *,
    env_file: EnvFile = None,
    limit: int = typer.Option(200, min=1, help="Maximum number of entries."),
) -> None:
    """Print recent purge audit entries, newest first."""
    settings = load_app_settings(env_file=env_file)
    audit_log = AuditLog(path=settings.purge.audit_log_file)
    entries = audit_log.read_recent(limit)
    typer.echo(json.dumps({"logs": [entry.to_wire() for entry in entries]}, indent=2))
