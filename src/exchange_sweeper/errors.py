"""Exception taxonomy shared by the sweep engine and the purge orchestrator."""

from __future__ import annotations

from typing import Any


class SweeperError(RuntimeError):
    """Base class for errors raised by exchange-sweeper."""

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        """Initialize the error.

        Args:
            message: Human-readable message.
            details: Caller-visible context for the failure.
        """
        super().__init__(message)
        self.details: dict[str, Any] = dict(details or {})


class ConfigurationError(SweeperError):
    """Raised when credentials or endpoints are missing."""


class UpstreamUnavailable(SweeperError):
    """Raised when a remote mail-protocol call fails."""

    def __init__(
        self,
        message: str,
        *,
        operation: str,
        details: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ) -> None:
        """Initialize the error.

        Args:
            message: Human-readable message.
            operation: Remote operation that failed.
            details: Extra context (mailbox, folder, ...).
            cause: Original exception raised by the protocol client.
        """
        merged = {"operation": operation, **(details or {})}
        if cause is not None:
            merged.setdefault("cause", str(cause))
        super().__init__(message, details=merged)
        self.operation = operation
        self.__cause__ = cause


class UnsupportedFolder(SweeperError):
    """Raised when a caller names a folder with no protocol mapping."""

    def __init__(self, folder: str) -> None:
        super().__init__(f"Unsupported folder specified: {folder}", details={"folder": folder})
        self.folder = folder


class SpawnFailure(SweeperError):
    """Raised when the external remediation process cannot be launched."""


class ProcessFailure(SweeperError):
    """Raised when the external process exits non-zero without a cancellation."""

    def __init__(self, *, exit_code: int | None, exit_signal: str | None) -> None:
        super().__init__(
            f"External process failed (exit_code={exit_code}, signal={exit_signal})",
            details={"exit_code": exit_code, "exit_signal": exit_signal},
        )
        self.exit_code = exit_code
        self.exit_signal = exit_signal
