"""Exception hierarchy for the bookmark/notebook sync tool.

Adapter errors are what the two service clients raise; the engine decides
per kind whether a failure aborts the run or is recorded in the summary:

- ``AuthError`` -- fatal for the run, nothing is committed.
- ``NetworkError`` / ``RateLimited`` -- retried with backoff, then
  recorded as a per-item or per-side failure.
- ``StateCorruptionError`` -- fatal, the state file must be repaired or
  reset before another run.

Ambiguous matches and conflicts are not exceptions; they are reported in
the ``SyncSummary``.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base class for all errors raised by this package."""


class ConfigError(SyncError):
    """Configuration is missing or invalid."""


class AdapterError(SyncError):
    """A service adapter call failed.

    Attributes:
        service: Name of the service that failed (``"raindrop"``,
            ``"notebooklm"``).
        status_code: HTTP status code, when the failure came from a
            response.
    """

    retryable = False

    def __init__(
        self,
        message: str,
        *,
        service: str = "",
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.service = service
        self.status_code = status_code


class AuthError(AdapterError):
    """Credentials were rejected. Never retried."""


class NetworkError(AdapterError):
    """Connection failure, timeout or server-side error."""

    retryable = True


class RateLimited(NetworkError):
    """The service asked us to slow down.

    Attributes:
        retry_after: Seconds the service asked us to wait, if it said.
    """

    def __init__(
        self,
        message: str,
        *,
        service: str = "",
        status_code: int | None = 429,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(
            message, service=service, status_code=status_code
        )
        self.retry_after = retry_after


class StateCorruptionError(SyncError):
    """The persisted sync state cannot be trusted."""


class SyncInProgressError(SyncError):
    """Another run holds the run lock for this state file."""


class SyncCancelledError(SyncError):
    """The run was cancelled before it could commit."""
