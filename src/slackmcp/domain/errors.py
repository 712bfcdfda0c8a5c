"""Exception taxonomy for the thread engine, identifier cache and resource locator."""

from __future__ import annotations

from typing import Any

from slackmcp.domain.types import ErrorCode


class SlackMcpError(Exception):
    """Base class for all domain errors.

    Attributes:
        error_code: Stable code surfaced to callers in the response envelope.
        details: Extra structured context for the response and the logs.
    """

    error_code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class NotFoundError(SlackMcpError):
    """Raised when an address, channel or thread does not resolve."""

    error_code = ErrorCode.NOT_FOUND


class UnavailableError(SlackMcpError):
    """Raised when the cache has no snapshot and the remote cannot be reached."""

    error_code = ErrorCode.UNAVAILABLE


class RemoteServiceError(SlackMcpError):
    """Raised when the remote service answers ``ok: false``.

    Attributes:
        remote_code: The error code reported by the remote service.
        method: The remote method that failed.
    """

    error_code = ErrorCode.REMOTE_ERROR

    def __init__(self, method: str, remote_code: str) -> None:
        self.method = method
        self.remote_code = remote_code
        super().__init__(
            f"{method} failed: {remote_code}",
            {"method": method, "remote_code": remote_code},
        )


class RateLimitedError(RemoteServiceError):
    """Raised when the remote service rate-limits a call.  Retryable.

    Attributes:
        retry_after: Seconds the remote asked us to wait, if it said.
    """

    error_code = ErrorCode.RATE_LIMITED

    def __init__(self, method: str, retry_after: float | None = None) -> None:
        self.retry_after = retry_after
        super().__init__(method, "ratelimited")
        self.details["retry_after"] = retry_after


class FatalError(SlackMcpError):
    """Raised for malformed input that no retry can fix."""

    error_code = ErrorCode.FATAL


class InvalidTimeRangeError(FatalError):
    """Raised when a time range has ``oldest > latest`` or unparseable bounds."""


class InvalidParameterError(FatalError):
    """Raised when a required parameter is missing or malformed.

    Attributes:
        parameter: Name of the offending parameter.
    """

    def __init__(
        self,
        parameter: str,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.parameter = parameter
        super().__init__(message, {"parameter": parameter, **(details or {})})


class DuplicateTemplateError(FatalError):
    """Raised when a resource template string is registered twice."""

    def __init__(self, template: str) -> None:
        self.template = template
        super().__init__(f"Resource template already registered: {template}", {"template": template})


class CollectionFailedError(SlackMcpError):
    """Raised when thread anchors were identified but none could be collected.

    Attributes:
        skipped: Number of anchors whose reply fetch failed.
    """

    error_code = ErrorCode.COLLECTION_FAILED

    def __init__(self, channel_id: str, skipped: int) -> None:
        self.skipped = skipped
        super().__init__(
            f"No threads could be collected from {channel_id} ({skipped} anchors failed)",
            {"channel_id": channel_id, "skipped": skipped},
        )


class InvalidTransitionError(SlackMcpError):
    """Raised when a collection state machine receives an event it cannot apply.

    Attributes:
        from_state: The state the machine was in.
        event: The rejected event.
    """

    def __init__(self, from_state: str, event: str) -> None:
        self.from_state = from_state
        self.event = event
        super().__init__(
            f"Invalid transition: cannot apply '{event}' in state '{from_state}'",
            {"from_state": str(from_state), "event": str(event)},
        )
