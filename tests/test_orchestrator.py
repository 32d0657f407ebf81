"""End-to-end tests for the purge orchestrator using real child processes."""

from __future__ import annotations

import asyncio
import sys
from contextlib import aclosing
from pathlib import Path

import pytest

from exchange_sweeper.config.settings import PurgeSettings
from exchange_sweeper.errors import ProcessFailure, SpawnFailure
from exchange_sweeper.models.events import OutputChunk, PurgeErrored, PurgeEvent, PurgeFinished, PurgeStarted
from exchange_sweeper.models.requests import PurgeRequest
from exchange_sweeper.models.types import CancelReason, CancelStatus, PurgeEventType, PurgeStatus
from exchange_sweeper.purge.orchestrator import PurgeOrchestrator
from exchange_sweeper.storage.audit_log import AuditLog

SUCCESS_SCRIPT = """\
import sys
print("[INFO] Mailbox user1@x.com: 3 active items", flush=True)
print("Deleted 3 items from user1@x.com", flush=True)
print("warn", file=sys.stderr, flush=True)
print(" ".join(sys.argv[1:]), flush=True)
"""

FAILING_SCRIPT = """\
import sys
sys.stderr.write("bad sender")
sys.exit(3)
"""

SLOW_SCRIPT = """\
import time
print("ready", flush=True)
time.sleep(30)
print("done", flush=True)
"""


def _orchestrator(tmp_path: Path, script: str | None, **overrides: object) -> PurgeOrchestrator:
    script_path = tmp_path / "purge_script.py"
    if script is not None:
        script_path.write_text(script, encoding="utf-8")
    settings = PurgeSettings(
        **{
            "script_path": script_path,
            "executable": sys.executable,
            "executable_args": [],
            "log_dir": tmp_path / "logs",
            "audit_log_file": tmp_path / "audit.jsonl",
            **overrides,
        },
    )
    return PurgeOrchestrator(settings=settings, audit_log=AuditLog(path=settings.audit_log_file))


def _request(**kwargs: object) -> PurgeRequest:
    return PurgeRequest(sender_email="spam@x.com", **kwargs)


async def _collect(orchestrator: PurgeOrchestrator, request: PurgeRequest) -> list[PurgeEvent]:
    async with aclosing(orchestrator.stream(request, operation_id="op-1")) as events:
        return [event async for event in events]


def _audit(tmp_path: Path) -> AuditLog:
    return AuditLog(path=tmp_path / "audit.jsonl")


def test_simulated_run_buffers_output_and_audits(tmp_path: Path) -> None:
    orchestrator = _orchestrator(tmp_path, SUCCESS_SCRIPT)
    response = asyncio.run(orchestrator.run(_request(), operation_id="op-1"))

    assert response.status is PurgeStatus.simulated
    assert response.exit_code == 0
    assert response.simulate is True
    assert "-WhatIf" in response.stdout
    assert "-SenderEmail spam@x.com" in response.stdout
    assert response.stderr == "warn\n"
    assert Path(response.log_file_path).parent == (tmp_path / "logs").resolve()
    response.raise_for_status()

    [entry] = _audit(tmp_path).read_recent()
    assert entry.operation_id == "op-1"
    assert entry.status is PurgeStatus.simulated
    assert entry.affected_mailboxes == ["user1@x.com"]
    assert entry.stdout_length == len(response.stdout)
    assert entry.request_payload["senderEmail"] == "spam@x.com"
    assert entry.request_payload["mode"] == "simulation"
    assert len(orchestrator.registry) == 0


def test_executed_run_is_completed(tmp_path: Path) -> None:
    orchestrator = _orchestrator(tmp_path, SUCCESS_SCRIPT)
    response = asyncio.run(orchestrator.run(_request(simulate=False)))
    assert response.status is PurgeStatus.completed
    assert "-AutoConfirm" in response.stdout
    assert response.log_entry.mode.value == "soft-delete"
    assert response.log_entry.affected_mailboxes == ["user1@x.com"]


def test_non_zero_exit_is_failed(tmp_path: Path) -> None:
    orchestrator = _orchestrator(tmp_path, FAILING_SCRIPT)
    response = asyncio.run(orchestrator.run(_request()))
    assert response.status is PurgeStatus.failed
    assert response.exit_code == 3
    assert response.stderr == "bad sender"
    with pytest.raises(ProcessFailure):
        response.raise_for_status()
    assert _audit(tmp_path).read_recent()[0].status is PurgeStatus.failed


def test_stream_emits_start_output_then_end(tmp_path: Path) -> None:
    orchestrator = _orchestrator(tmp_path, SUCCESS_SCRIPT)
    events = asyncio.run(_collect(orchestrator, _request()))

    assert events[0].event is PurgeEventType.start
    assert isinstance(events[0].data, PurgeStarted)
    assert events[0].data.operation_id == "op-1"
    assert events[-1].event is PurgeEventType.end
    assert isinstance(events[-1].data, PurgeFinished)
    assert events[-1].data.status is PurgeStatus.simulated
    assert events[-1].data.log_entry.affected_mailboxes == ["user1@x.com"]

    middle = events[1:-1]
    assert middle
    assert all(isinstance(event.data, OutputChunk) for event in middle)
    stdout = "".join(e.data.chunk for e in middle if e.event is PurgeEventType.stdout)  # type: ignore[union-attr]
    assert stdout.startswith("[INFO] Mailbox user1@x.com")
    assert sum(event.is_terminal for event in events) == 1


def test_explicit_cancel_terminates_process(tmp_path: Path) -> None:
    orchestrator = _orchestrator(tmp_path, SLOW_SCRIPT)

    async def scenario() -> tuple[list[PurgeEvent], list[CancelStatus]]:
        statuses: list[CancelStatus] = []
        events: list[PurgeEvent] = []
        async with aclosing(orchestrator.stream(_request(), operation_id="op-1")) as stream:
            async for event in stream:
                events.append(event)
                if event.event is PurgeEventType.stdout and not statuses:
                    statuses.append(orchestrator.cancel("op-1").status)
        return events, statuses

    events, statuses = asyncio.run(scenario())
    assert statuses == [CancelStatus.cancelling]
    finished = events[-1].data
    assert isinstance(finished, PurgeFinished)
    assert finished.status is PurgeStatus.cancelled
    assert finished.cancelled is True
    assert finished.cancel_reason is CancelReason.user_requested
    assert finished.log_entry.exit_signal == "SIGTERM"

    [entry] = _audit(tmp_path).read_recent()
    assert entry.status is PurgeStatus.cancelled
    assert entry.cancel_reason is CancelReason.user_requested
    assert orchestrator.cancel("op-1").status is CancelStatus.not_found


def test_closing_the_stream_cancels_the_operation(tmp_path: Path) -> None:
    orchestrator = _orchestrator(tmp_path, SLOW_SCRIPT)

    async def scenario() -> None:
        async with aclosing(orchestrator.stream(_request(), operation_id="op-1")) as stream:
            async for event in stream:
                if event.event is PurgeEventType.stdout:
                    break

    asyncio.run(scenario())
    [entry] = _audit(tmp_path).read_recent()
    assert entry.status is PurgeStatus.cancelled
    assert entry.cancelled is True
    assert entry.cancel_reason is CancelReason.connection_closed
    assert len(orchestrator.registry) == 0


def test_missing_script_fails_before_launch(tmp_path: Path) -> None:
    orchestrator = _orchestrator(tmp_path, None)
    with pytest.raises(SpawnFailure, match="not found"):
        asyncio.run(orchestrator.run(_request()))
    [entry] = _audit(tmp_path).read_recent()
    assert entry.status is PurgeStatus.failed
    assert entry.exit_code is None


def test_missing_executable_is_an_error_event(tmp_path: Path) -> None:
    orchestrator = _orchestrator(
        tmp_path,
        SUCCESS_SCRIPT,
        executable=str(tmp_path / "no-such-interpreter"),
    )
    events = asyncio.run(_collect(orchestrator, _request()))
    assert [event.event for event in events] == [PurgeEventType.error]
    assert isinstance(events[0].data, PurgeErrored)
    assert events[0].data.details["executable"].endswith("no-such-interpreter")


def test_unknown_operation_cancel_is_not_found(tmp_path: Path) -> None:
    orchestrator = _orchestrator(tmp_path, SUCCESS_SCRIPT)
    result = orchestrator.cancel("missing")
    assert result.status is CancelStatus.not_found
    assert result.http_status == 404


def test_reused_operation_id_is_rejected_without_touching_the_live_run(tmp_path: Path) -> None:
    """A second stream with a live id gets an error event; the first run is unaffected."""
    orchestrator = _orchestrator(tmp_path, SLOW_SCRIPT)

    async def scenario() -> tuple[list[PurgeEvent], list[PurgeEvent], CancelStatus]:
        first: list[PurgeEvent] = []
        async with aclosing(orchestrator.stream(_request(), operation_id="dup")) as stream:
            async for event in stream:
                first.append(event)
                if event.event is PurgeEventType.stdout:
                    break
            async with aclosing(orchestrator.stream(_request(), operation_id="dup")) as second:
                rejected = [event async for event in second]
            assert orchestrator.registry.get("dup") is not None
            assert orchestrator.registry.get("dup").cancelled is False  # type: ignore[union-attr]
            status = orchestrator.cancel("dup").status
            first.extend([event async for event in stream])
        return first, rejected, status

    first, rejected, status = asyncio.run(scenario())

    assert [event.event for event in rejected] == [PurgeEventType.error]
    assert isinstance(rejected[0].data, PurgeErrored)
    assert rejected[0].data.details == {"operation_id": "dup"}

    assert status is CancelStatus.cancelling
    finished = first[-1].data
    assert isinstance(finished, PurgeFinished)
    assert finished.cancel_reason is CancelReason.user_requested
    assert [entry.operation_id for entry in _audit(tmp_path).read_recent()] == ["dup"]


def test_reused_operation_id_raises_for_synchronous_callers(tmp_path: Path) -> None:
    orchestrator = _orchestrator(tmp_path, SLOW_SCRIPT)

    async def scenario() -> None:
        async with aclosing(orchestrator.stream(_request(), operation_id="dup")) as stream:
            async for event in stream:
                if event.event is PurgeEventType.stdout:
                    break
            with pytest.raises(SpawnFailure, match="already running"):
                await orchestrator.run(_request(), operation_id="dup")
            assert orchestrator.cancel("dup").status is CancelStatus.cancelling
            async for _ in stream:
                pass

    asyncio.run(scenario())
    [entry] = _audit(tmp_path).read_recent()
    assert entry.cancel_reason is CancelReason.user_requested
