"""Domain enumerations and fixed-point timestamp helpers for the thread engine."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from enum import StrEnum
from typing import Annotated

from pydantic import BeforeValidator, PlainSerializer

# Message identifiers are seconds with microsecond precision ("1693526400.000123").
MICROSECOND = Decimal("0.000001")
_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


class IdentifierKind(StrEnum):
    """Record types held by the identifier cache."""

    PRINCIPAL = "principal"
    CHANNEL = "channel"


class ThreadStatus(StrEnum):
    """Activity status reported for a thread."""

    ACTIVE = "active"
    ARCHIVED = "archived"


class ParticipantRole(StrEnum):
    """How a principal took part in a thread."""

    CREATOR = "creator"
    PARTICIPANT = "participant"


class ThreadSortKey(StrEnum):
    """Sort keys for thread listings (always descending)."""

    TIMESTAMP = "timestamp"
    REPLIES = "replies"
    ACTIVITY = "activity"


class MatchType(StrEnum):
    """Keyword matching strategy for collected threads."""

    ANY = "any"
    ALL = "all"


class RefreshPolicy(StrEnum):
    """How often a resource's content is expected to change."""

    STATIC = "static"
    CACHED = "cached"
    DYNAMIC = "dynamic"


class CollectionState(StrEnum):
    """States of a single time-range collection request."""

    SCANNING = "scanning"
    IDENTIFYING = "identifying"
    COLLECTING = "collecting"
    DONE = "done"
    PARTIAL_FAILURE = "partial_failure"
    FAILED = "failed"


class CollectionEvent(StrEnum):
    """Events that move a collection request between states."""

    SCAN_COMPLETE = "scan_complete"
    ANCHORS_IDENTIFIED = "anchors_identified"
    FINISH = "finish"
    FINISH_DEGRADED = "finish_degraded"
    FAIL = "fail"


class ErrorCode(StrEnum):
    """Stable error codes surfaced in every failed response."""

    NOT_FOUND = "NOT_FOUND"
    UNAVAILABLE = "UNAVAILABLE"
    RATE_LIMITED = "RATE_LIMITED"
    REMOTE_ERROR = "REMOTE_ERROR"
    PARTIAL_FAILURE = "PARTIAL_FAILURE"
    FATAL = "FATAL"
    COLLECTION_FAILED = "COLLECTION_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# Aliases accepted from callers when naming an identifier kind.
KIND_ALIASES: dict[str, IdentifierKind] = {
    "principal": IdentifierKind.PRINCIPAL,
    "principals": IdentifierKind.PRINCIPAL,
    "user": IdentifierKind.PRINCIPAL,
    "users": IdentifierKind.PRINCIPAL,
    "member": IdentifierKind.PRINCIPAL,
    "channel": IdentifierKind.CHANNEL,
    "channels": IdentifierKind.CHANNEL,
    "conversation": IdentifierKind.CHANNEL,
}


def parse_kind(value: str | IdentifierKind) -> IdentifierKind:
    """Normalize a caller-supplied kind name to an ``IdentifierKind``.

    Args:
        value: A kind name such as ``"channel"``, ``"user"`` or ``"principal"``.

    Returns:
        The matching ``IdentifierKind``.

    Raises:
        ValueError: If the name is not a known kind or alias.
    """
    if isinstance(value, IdentifierKind):
        return value
    kind = KIND_ALIASES.get(str(value).strip().lower())
    if kind is None:
        raise ValueError(
            f"Unknown identifier kind: {value!r}. "
            f"Valid kinds: {', '.join(sorted(KIND_ALIASES))}"
        )
    return kind


def parse_timestamp(value: object) -> Decimal:
    """Convert a message timestamp to a fixed-point ``Decimal``.

    Accepts ``Decimal``, ``int``, ``float`` and numeric strings.  The result
    is quantized to microseconds so ``"200"`` and ``"200.000000"`` compare
    and hash identically.

    Args:
        value: The raw timestamp value.

    Returns:
        The timestamp as a ``Decimal`` with six fractional digits.

    Raises:
        ValueError: If the value is not a finite number.
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid timestamp: {value!r}")
    try:
        if isinstance(value, Decimal):
            parsed = value
        elif isinstance(value, int):
            parsed = Decimal(value)
        elif isinstance(value, float):
            parsed = Decimal(repr(value))
        elif isinstance(value, str):
            parsed = Decimal(value.strip())
        else:
            raise ValueError(f"Invalid timestamp: {value!r}")
    except InvalidOperation:
        raise ValueError(f"Invalid timestamp: {value!r}") from None

    if not parsed.is_finite():
        raise ValueError(f"Invalid timestamp: {value!r}")
    try:
        return parsed.quantize(MICROSECOND)
    except InvalidOperation:
        raise ValueError(f"Timestamp out of range: {value!r}") from None


def format_timestamp(value: Decimal) -> str:
    """Render a timestamp in the remote service's ``"seconds.micros"`` form."""
    return f"{value.quantize(MICROSECOND):f}"


def timestamp_to_datetime(value: Decimal) -> datetime:
    """Convert a timestamp to an aware UTC ``datetime``."""
    return datetime.fromtimestamp(float(value), tz=UTC)


def datetime_to_timestamp(value: datetime) -> Decimal:
    """Convert a ``datetime`` (naive values are taken as UTC) to a timestamp."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    delta = value - _EPOCH
    seconds = Decimal(delta.days * 86400 + delta.seconds)
    return (seconds + Decimal(delta.microseconds) * MICROSECOND).quantize(MICROSECOND)


Timestamp = Annotated[
    Decimal,
    BeforeValidator(parse_timestamp),
    PlainSerializer(format_timestamp, return_type=str, when_used="json"),
]
