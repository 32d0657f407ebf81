"""Launch, stream, cancel and audit the external remediation script."""

from __future__ import annotations

import asyncio
import codecs
import logging
import signal
import uuid
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol, TypeAlias

from exchange_sweeper.config.settings import PurgeSettings
from exchange_sweeper.errors import SpawnFailure
from exchange_sweeper.models.audit import AuditLogEntry
from exchange_sweeper.models.events import (
    CancelResult,
    OutputChunk,
    PurgeErrored,
    PurgeEvent,
    PurgeFinished,
    PurgeResponse,
    PurgeStarted,
)
from exchange_sweeper.models.requests import PurgeRequest
from exchange_sweeper.models.types import CancelReason, PurgeEventType, PurgeStatus
from exchange_sweeper.purge.arguments import build_script_args, format_script_date, log_file_for
from exchange_sweeper.purge.evidence import extract_affected_mailboxes
from exchange_sweeper.purge.registry import OperationRegistry, PurgeContext
from exchange_sweeper.storage.audit_log import AuditLog

logger = logging.getLogger(__name__)

_Chunk: TypeAlias = tuple[PurgeEventType, str] | None


class EventSink(Protocol):
    """Receives purge events in emission order."""

    async def emit(self, event: PurgeEvent) -> None: ...


class EventBuffer:
    """Collects events in memory for non-streaming callers."""

    def __init__(self) -> None:
        self.events: list[PurgeEvent] = []

    async def emit(self, event: PurgeEvent) -> None:
        self.events.append(event)

    def text(self, kind: PurgeEventType) -> str:
        """Join the output chunks of one stream kind."""
        return "".join(
            event.data.chunk
            for event in self.events
            if event.event is kind and isinstance(event.data, OutputChunk)
        )


class _ChannelSink:
    """Bounded channel feeding a live subscriber; drops events once closed."""

    def __init__(self, *, maxsize: int) -> None:
        self.queue: asyncio.Queue[PurgeEvent | None] = asyncio.Queue(maxsize=maxsize)
        self.closed = False

    async def emit(self, event: PurgeEvent) -> None:
        if self.closed:
            return
        await self.queue.put(event)

    async def finish(self) -> None:
        if not self.closed:
            await self.queue.put(None)

    def close(self) -> None:
        """Stop delivering and unblock a producer waiting on a full channel."""
        self.closed = True
        while not self.queue.empty():
            self.queue.get_nowait()


@dataclass
class _Output:
    """Output buffered for the audit record."""

    stdout: list[str] = field(default_factory=list)
    stderr: list[str] = field(default_factory=list)

    def append(self, kind: PurgeEventType, text: str) -> None:
        (self.stdout if kind is PurgeEventType.stdout else self.stderr).append(text)


@dataclass
class _Run:
    """Per-invocation state shared between the caller and the execution task."""

    operation_id: str
    request: PurgeRequest
    started_at: datetime
    log_file: Path
    wants_stream: bool
    disconnected: bool = False
    context: PurgeContext | None = None


class PurgeOrchestrator:
    """Runs the remediation script, one process per operation id."""

    def __init__(
        self,
        *,
        settings: PurgeSettings,
        audit_log: AuditLog,
        registry: OperationRegistry | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            settings: Script location, interpreter and buffering settings.
            audit_log: Store receiving one record per finished operation.
            registry: Active operation registry (a private one by default).
        """
        self._s = settings
        self._audit = audit_log
        self._registry = registry if registry is not None else OperationRegistry()
        self._claimed: set[str] = set()

    @property
    def registry(self) -> OperationRegistry:
        """Return the active operation registry."""
        return self._registry

    def cancel(self, operation_id: str) -> CancelResult:
        """Request cancellation of a running operation.

        Args:
            operation_id: Operation to cancel.

        Returns:
            The cancel outcome; the operation finishes asynchronously.
        """
        status = self._registry.request_cancel(operation_id, reason=CancelReason.user_requested)
        return CancelResult(operation_id=operation_id, status=status)

    async def run(
        self,
        request: PurgeRequest,
        *,
        operation_id: str | None = None,
    ) -> PurgeResponse:
        """Run the script to completion and return one synchronous response.

        Args:
            request: Validated purge request.
            operation_id: Correlation id (generated when omitted).

        Returns:
            Exit details, full buffered output and the audit record.

        Raises:
            SpawnFailure: If the script cannot be launched.
        """
        run = self._new_run(request, operation_id=operation_id, wants_stream=False)
        buffer = EventBuffer()
        finished = await self._execute(run, buffer)
        return PurgeResponse(
            operation_id=finished.operation_id,
            exit_code=finished.exit_code,
            stdout=buffer.text(PurgeEventType.stdout),
            stderr=buffer.text(PurgeEventType.stderr),
            status=finished.status,
            cancelled=finished.cancelled,
            cancel_reason=finished.cancel_reason,
            log_file_path=finished.log_file_path,
            simulate=finished.simulate,
            log_entry=finished.log_entry,
        )

    async def stream(
        self,
        request: PurgeRequest,
        *,
        operation_id: str | None = None,
    ) -> AsyncIterator[PurgeEvent]:
        """Run the script and yield ``start``, output, and ``end``/``error`` events.

        Closing the iterator before the terminal event is treated as the
        client connection closing: the process is terminated and the
        operation is recorded as cancelled.

        Args:
            request: Validated purge request.
            operation_id: Correlation id (generated when omitted).

        Yields:
            Events in emission order.
        """
        run = self._new_run(request, operation_id=operation_id, wants_stream=True)
        sink = _ChannelSink(maxsize=self._s.channel_maxsize)
        task = asyncio.create_task(self._execute_streaming(run, sink))
        terminal_seen = False
        try:
            while True:
                event = await sink.queue.get()
                if event is None:
                    break
                terminal_seen = terminal_seen or event.is_terminal
                yield event
        finally:
            if not terminal_seen:
                run.disconnected = True
                if run.context is not None:
                    run.context.cancel(CancelReason.connection_closed)
                sink.close()
            await task

    def _new_run(
        self,
        request: PurgeRequest,
        *,
        operation_id: str | None,
        wants_stream: bool,
    ) -> _Run:
        """Allocate ids and paths for one invocation."""
        started_at = datetime.now(tz=UTC)
        return _Run(
            operation_id=operation_id or str(uuid.uuid4()),
            request=request,
            started_at=started_at,
            log_file=log_file_for(self._s, started_at=started_at),
            wants_stream=wants_stream,
        )

    async def _execute_streaming(self, run: _Run, sink: _ChannelSink) -> None:
        """Execute for a streaming subscriber, turning spawn failures into ``error`` events."""
        try:
            await self._execute(run, sink)
        except SpawnFailure as exc:
            await sink.emit(
                PurgeEvent(
                    event=PurgeEventType.error,
                    data=PurgeErrored(message=str(exc), details=exc.details),
                ),
            )
        finally:
            await sink.finish()

    async def _spawn(self, run: _Run) -> asyncio.subprocess.Process:
        """Launch the script process.

        Raises:
            SpawnFailure: If the script is missing or the executable cannot start.
        """
        script = self._s.script_path
        if not script.is_file():
            raise SpawnFailure(
                "Purge script not found on server.",
                details={"script_path": str(script)},
            )

        args = build_script_args(run.request, settings=self._s, log_file=run.log_file)
        run.log_file.parent.mkdir(parents=True, exist_ok=True)
        try:
            return await asyncio.create_subprocess_exec(
                self._s.executable,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(script.parent),
            )
        except OSError as exc:
            raise SpawnFailure(
                "Failed to launch purge executable",
                details={"executable": self._s.executable, "error": str(exc)},
            ) from exc

    async def _execute(self, run: _Run, sink: EventSink) -> PurgeFinished:
        """Claim the operation id for the whole run, then execute it.

        Raises:
            SpawnFailure: If the id is already in use or the script cannot start.
        """
        if run.operation_id in self._claimed or run.operation_id in self._registry:
            logger.error(
                "Rejected purge request with an operation id already in use",
                extra={"operation_id": run.operation_id},
            )
            raise SpawnFailure(
                "Operation already running",
                details={"operation_id": run.operation_id},
            )
        self._claimed.add(run.operation_id)
        try:
            return await self._execute_claimed(run, sink)
        finally:
            self._claimed.discard(run.operation_id)

    async def _execute_claimed(self, run: _Run, sink: EventSink) -> PurgeFinished:
        """Spawn, pump output, wait for exit, then audit and emit ``end``."""
        request = run.request
        logger.info(
            "Purge request received",
            extra={
                "operation_id": run.operation_id,
                "sender_email": request.sender_email,
                "method": request.method.value,
                "simulate": request.simulate,
                "allow_hard_delete": request.allow_hard_delete,
            },
        )

        try:
            process = await self._spawn(run)
        except SpawnFailure as exc:
            logger.error(
                "Failed to launch purge process: %s",
                exc,
                extra={"operation_id": run.operation_id, "details": exc.details},
            )
            await self._persist(
                self._audit_entry(
                    run,
                    exit_code=None,
                    exit_signal=None,
                    status=PurgeStatus.failed,
                    context=None,
                    output=_Output(),
                ),
            )
            raise

        context = PurgeContext(
            operation_id=run.operation_id,
            process=process,
            wants_stream=run.wants_stream,
        )
        output = _Output()
        io_failed = False
        interrupted: asyncio.CancelledError | None = None

        with self._registry.track(context):
            run.context = context
            logger.info(
                "Purge process started",
                extra={"operation_id": run.operation_id, "pid": process.pid},
            )
            await sink.emit(
                PurgeEvent(event=PurgeEventType.start, data=self._started(run)),
            )
            if run.disconnected:
                context.cancel(CancelReason.connection_closed)

            try:
                await self._pump(process, sink, output)
            except asyncio.CancelledError as exc:
                interrupted = exc
                context.mark_cancelled(CancelReason.connection_closed)
                context.terminate()
            except Exception:
                logger.exception(
                    "Reading purge process output failed",
                    extra={"operation_id": run.operation_id},
                )
                io_failed = True
                if context.running:
                    process.kill()

            await process.wait()

        finished = await self._finish(run, sink, context=context, output=output, io_failed=io_failed)
        if interrupted is not None:
            raise interrupted
        return finished

    async def _pump(
        self,
        process: asyncio.subprocess.Process,
        sink: EventSink,
        output: _Output,
    ) -> None:
        """Forward stdout/stderr chunks to ``sink`` in arrival order until both close."""
        assert process.stdout is not None
        assert process.stderr is not None

        channel: asyncio.Queue[_Chunk] = asyncio.Queue(maxsize=self._s.channel_maxsize)
        readers = [
            asyncio.create_task(self._read_stream(process.stdout, PurgeEventType.stdout, channel)),
            asyncio.create_task(self._read_stream(process.stderr, PurgeEventType.stderr, channel)),
        ]
        try:
            open_streams = len(readers)
            while open_streams:
                item = await channel.get()
                if item is None:
                    open_streams -= 1
                    continue
                kind, text = item
                output.append(kind, text)
                await sink.emit(PurgeEvent(event=kind, data=OutputChunk(chunk=text)))
            await asyncio.gather(*readers)
        finally:
            pending = [reader for reader in readers if not reader.done()]
            for reader in pending:
                reader.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

    async def _read_stream(
        self,
        stream: asyncio.StreamReader,
        kind: PurgeEventType,
        channel: asyncio.Queue[_Chunk],
    ) -> None:
        """Decode one pipe incrementally and push its chunks onto ``channel``."""
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            while True:
                data = await stream.read(self._s.read_chunk_size)
                if not data:
                    break
                text = decoder.decode(data)
                if text:
                    await channel.put((kind, text))
            tail = decoder.decode(b"", final=True)
            if tail:
                await channel.put((kind, tail))
        except Exception:
            await channel.put(None)
            raise
        await channel.put(None)

    async def _finish(
        self,
        run: _Run,
        sink: EventSink,
        *,
        context: PurgeContext,
        output: _Output,
        io_failed: bool,
    ) -> PurgeFinished:
        """Classify the exit, persist the audit record and emit ``end``."""
        returncode = context.process.returncode
        exit_code: int | None = None
        exit_signal: str | None = None
        if returncode is not None and returncode < 0:
            exit_signal = _signal_name(-returncode)
        else:
            exit_code = returncode

        if context.cancelled:
            status = PurgeStatus.cancelled
        elif exit_code == 0 and not io_failed:
            status = PurgeStatus.simulated if run.request.simulate else PurgeStatus.completed
        else:
            status = PurgeStatus.failed

        logger.info(
            "Purge process finished",
            extra={
                "operation_id": run.operation_id,
                "exit_code": exit_code,
                "exit_signal": exit_signal,
                "status": status.value,
                "cancel_reason": context.cancel_reason,
            },
        )

        entry = self._audit_entry(
            run,
            exit_code=exit_code,
            exit_signal=exit_signal,
            status=status,
            context=context,
            output=output,
        )
        stored = await self._persist(entry)

        finished = PurgeFinished(
            operation_id=run.operation_id,
            exit_code=exit_code,
            status=status,
            cancelled=context.cancelled,
            cancel_reason=context.cancel_reason,
            log_file_path=str(run.log_file),
            simulate=run.request.simulate,
            log_entry=stored,
        )
        await sink.emit(PurgeEvent(event=PurgeEventType.end, data=finished))
        return finished

    def _started(self, run: _Run) -> PurgeStarted:
        request = run.request
        return PurgeStarted(
            operation_id=run.operation_id,
            log_file_path=str(run.log_file),
            started_at=run.started_at,
            simulate=request.simulate,
            allow_hard_delete=request.allow_hard_delete,
            method=request.method,
            days_back=request.days_back,
            subject_mode=request.subject_mode,
            subject_value=request.subject_value,
            received_from=format_script_date(request.received_from),
            received_to=format_script_date(request.received_to),
        )

    def _audit_entry(
        self,
        run: _Run,
        *,
        exit_code: int | None,
        exit_signal: str | None,
        status: PurgeStatus,
        context: PurgeContext | None,
        output: _Output,
    ) -> AuditLogEntry:
        """Assemble the audit record for a terminal transition."""
        request = run.request
        completed_at = datetime.now(tz=UTC)
        stdout_text = "".join(output.stdout)
        stderr_text = "".join(output.stderr)

        affected = extract_affected_mailboxes(stdout_text)
        if affected.unparsed:
            logger.warning(
                "Purge output mentioned mailboxes that could not be parsed",
                extra={"operation_id": run.operation_id, "unparsed": affected.unparsed},
            )

        return AuditLogEntry(
            timestamp=run.started_at,
            operation_id=run.operation_id,
            sender_email=request.sender_email,
            subject_mode=request.subject_mode,
            subject_value=request.subject_value,
            received_from=request.received_from,
            received_to=request.received_to,
            simulate=request.simulate,
            allow_hard_delete=request.allow_hard_delete,
            mode=request.execution_mode,
            method=request.method,
            days_back=request.days_back,
            exit_code=exit_code,
            exit_signal=exit_signal,
            status=status,
            cancelled=context.cancelled if context else False,
            cancel_reason=context.cancel_reason if context else None,
            completed_at=completed_at,
            duration_ms=int((completed_at - run.started_at).total_seconds() * 1000),
            log_file_path=str(run.log_file),
            stdout_length=len(stdout_text),
            stderr_length=len(stderr_text),
            affected_mailboxes=affected.mailboxes,
            unparsed_evidence=affected.unparsed,
            request_payload={**request.to_wire(), "mode": request.execution_mode.value},
        )

    async def _persist(self, entry: AuditLogEntry) -> AuditLogEntry:
        """Append the record; on storage failure log it and return it unpersisted."""
        try:
            return await asyncio.to_thread(self._audit.append, entry)
        except Exception:
            logger.exception(
                "Failed to persist purge log entry",
                extra={"operation_id": entry.operation_id},
            )
            return entry


def _signal_name(signum: int) -> str:
    """Return a signal's name, e.g. ``SIGTERM``."""
    try:
        return signal.Signals(signum).name
    except ValueError:
        return str(signum)
