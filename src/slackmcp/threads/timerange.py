"""Parsing of caller-supplied time bounds into a ``TimeRange``.

A bound may be Unix seconds (``"1693526400.000123"``, ``1693526400``) or an
ISO-8601 string (``"2025-08-10T00:00:00Z"``).  Naive ISO values are UTC.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from slackmcp.domain.errors import InvalidTimeRangeError
from slackmcp.domain.models import TimeRange
from slackmcp.domain.types import datetime_to_timestamp, parse_timestamp


def parse_bound(value: object, name: str = "bound") -> Decimal:
    """Convert one time bound to a timestamp.

    Args:
        value: Unix seconds (number or numeric string), ISO-8601 string or
            ``datetime``.
        name: Parameter name used in the error message.

    Returns:
        The bound as a fixed-point timestamp.

    Raises:
        InvalidTimeRangeError: If the value is neither numeric nor ISO-8601.
    """
    if isinstance(value, datetime):
        return datetime_to_timestamp(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise InvalidTimeRangeError(f"{name} must not be empty", {"parameter": name})
        try:
            return parse_timestamp(text)
        except ValueError:
            pass
        try:
            return datetime_to_timestamp(datetime.fromisoformat(text))
        except ValueError:
            raise InvalidTimeRangeError(
                f"Invalid {name}: {value!r}. Use Unix seconds or ISO-8601 "
                "(e.g. '1693526400.000000' or '2025-08-10T00:00:00Z')",
                {"parameter": name, "value": value},
            ) from None
    try:
        return parse_timestamp(value)
    except ValueError:
        raise InvalidTimeRangeError(
            f"Invalid {name}: {value!r}", {"parameter": name, "value": repr(value)}
        ) from None


def parse_time_range(start: object, end: object, inclusive: bool = True) -> TimeRange:
    """Build a ``TimeRange`` from two caller-supplied bounds.

    Raises:
        InvalidTimeRangeError: If a bound is malformed or ``start > end``.
    """
    return TimeRange.between(
        parse_bound(start, "start"), parse_bound(end, "end"), inclusive=inclusive
    )
