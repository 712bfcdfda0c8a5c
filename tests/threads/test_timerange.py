"""Tests for parsing caller-supplied time bounds."""

from datetime import UTC, datetime
from decimal import Decimal

import pytest

from slackmcp.domain.errors import InvalidTimeRangeError
from slackmcp.threads.timerange import parse_bound, parse_time_range


class TestParseBound:
    """A bound is Unix seconds, an ISO-8601 string or a datetime."""

    def test_numeric_string(self):
        assert parse_bound("1693526400.000123") == Decimal("1693526400.000123")

    def test_number(self):
        assert parse_bound(1693526400) == Decimal("1693526400")

    def test_iso_with_zulu(self):
        assert parse_bound("2024-05-01T00:00:00Z") == Decimal("1714521600")

    def test_iso_date_only_is_midnight_utc(self):
        assert parse_bound("2024-05-01") == Decimal("1714521600")

    def test_datetime(self):
        assert parse_bound(datetime(2024, 5, 1, tzinfo=UTC)) == Decimal("1714521600")

    @pytest.mark.parametrize("bad", ["", "   ", "last tuesday", "1e30", 10**40, None])
    def test_invalid_bound(self, bad):
        with pytest.raises(InvalidTimeRangeError):
            parse_bound(bad, "start")

    def test_error_names_the_parameter(self):
        with pytest.raises(InvalidTimeRangeError) as exc_info:
            parse_bound("nope", "end")
        assert exc_info.value.details["parameter"] == "end"


class TestParseTimeRange:
    """Both bounds are parsed and ordered."""

    def test_mixed_formats(self):
        tr = parse_time_range("2024-05-01T00:00:00Z", 1714525200)
        assert tr.oldest == Decimal("1714521600")
        assert tr.latest == Decimal("1714525200")
        assert tr.duration_hours == 1.0

    def test_reversed_bounds_are_fatal(self):
        with pytest.raises(InvalidTimeRangeError, match="after latest"):
            parse_time_range("2024-05-02", "2024-05-01")

    def test_exclusive_range(self):
        assert parse_time_range(1, 2, inclusive=False).inclusive is False
