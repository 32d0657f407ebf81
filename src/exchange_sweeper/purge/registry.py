"""Registry of in-flight purge processes keyed by operation id."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from exchange_sweeper.models.types import CancelReason, CancelStatus

logger = logging.getLogger(__name__)


@dataclass
class PurgeContext:
    """Live handle and cancellation state of one external process."""

    operation_id: str
    process: asyncio.subprocess.Process
    wants_stream: bool = False
    cancelled: bool = False
    cancel_reason: CancelReason | None = None

    @property
    def running(self) -> bool:
        """Return whether the process has not exited yet."""
        return self.process.returncode is None

    def mark_cancelled(self, reason: CancelReason) -> None:
        """Record cancellation intent; the first reason recorded wins."""
        self.cancelled = True
        if self.cancel_reason is None:
            self.cancel_reason = reason

    def cancel(self, reason: CancelReason) -> bool:
        """Record cancellation and ask a still-running process to terminate.

        Returns:
            True if the termination signal was delivered.
        """
        if not self.running:
            return False
        self.mark_cancelled(reason)
        return self.terminate()

    def terminate(self) -> bool:
        """Ask the process to terminate.

        Returns:
            True if the termination signal was delivered.
        """
        try:
            self.process.terminate()
        except ProcessLookupError:
            return False
        except OSError as exc:
            logger.error(
                "Failed to terminate purge process: %r",
                exc,
                extra={"operation_id": self.operation_id},
            )
            return False
        return True


class OperationRegistry:
    """Maps operation ids to live purge contexts for the lifetime of a process."""

    def __init__(self) -> None:
        self._entries: dict[str, PurgeContext] = {}

    def __contains__(self, operation_id: object) -> bool:
        return operation_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, operation_id: str) -> PurgeContext | None:
        """Return the context for ``operation_id`` if registered."""
        return self._entries.get(operation_id)

    @contextmanager
    def track(self, context: PurgeContext) -> Iterator[PurgeContext]:
        """Register ``context`` for the duration of the block.

        The entry is removed on every exit path.

        Raises:
            ValueError: If the operation id is already registered.
        """
        if context.operation_id in self._entries:
            raise ValueError(f"Operation already running: {context.operation_id}")
        self._entries[context.operation_id] = context
        try:
            yield context
        finally:
            if self._entries.get(context.operation_id) is context:
                del self._entries[context.operation_id]

    def request_cancel(
        self,
        operation_id: str,
        *,
        reason: CancelReason = CancelReason.user_requested,
    ) -> CancelStatus:
        """Signal cancellation intent and attempt to terminate the process.

        The operation only becomes ``cancelled`` once its process exits.

        Args:
            operation_id: Operation to cancel.
            reason: Why the operation is being cancelled.

        Returns:
            ``not-found``, ``already-finished``, ``cancelling`` or ``pending``.
        """
        context = self._entries.get(operation_id)
        if context is None:
            return CancelStatus.not_found

        if not context.running:
            del self._entries[operation_id]
            return CancelStatus.already_finished

        if context.cancel(reason):
            logger.info(
                "Termination requested for purge process",
                extra={"operation_id": operation_id, "cancel_reason": context.cancel_reason},
            )
            return CancelStatus.cancelling
        return CancelStatus.pending
