"""Tests for domain models: records, time ranges, threads and the response envelope."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from pydantic import ValidationError

from slackmcp.domain.errors import (
    CollectionFailedError,
    InvalidParameterError,
    InvalidTimeRangeError,
    NotFoundError,
    RateLimitedError,
)
from slackmcp.domain.models import (
    ChannelRecord,
    CollectedThread,
    MessageRecord,
    PrincipalRecord,
    ThreadFilters,
    ThreadStats,
    TimeRange,
    ToolResponse,
    normalize_name,
    thread_status,
)
from slackmcp.domain.types import ErrorCode, ThreadSortKey, ThreadStatus

# ---------------------------------------------------------------------------
# Identifier records
# ---------------------------------------------------------------------------


class TestPrincipalRecord:
    """Member payloads from users.list."""

    def test_from_slack_reads_profile(self):
        record = PrincipalRecord.from_slack(
            {
                "id": "U1",
                "name": "alice",
                "real_name": "Alice Smith",
                "profile": {"display_name": "ali", "email": "alice@example.com"},
                "is_bot": False,
            }
        )
        assert record.display_name == "ali"
        assert record.email == "alice@example.com"
        assert record.label == "ali"
        assert record.names() == ["ali", "Alice Smith", "alice"]

    def test_label_falls_back_to_id(self):
        assert PrincipalRecord(id="U9").label == "U9"

    def test_is_frozen(self):
        record = PrincipalRecord(id="U1")
        with pytest.raises(ValidationError):
            record.name = "changed"  # type: ignore[misc]


class TestChannelRecord:
    """Channel payloads from conversations.list."""

    def test_from_slack_unwraps_topic_and_purpose(self):
        record = ChannelRecord.from_slack(
            {
                "id": "C1",
                "name": "general",
                "is_archived": True,
                "topic": {"value": "Company news"},
                "purpose": {"value": "Announcements"},
                "num_members": 42,
            }
        )
        assert record.topic == "Company news"
        assert record.purpose == "Announcements"
        assert record.is_archived is True
        assert record.num_members == 42
        assert record.names() == ["general"]

    def test_nameless_channel_has_no_names(self):
        record = ChannelRecord(id="D1")
        assert record.names() == []
        assert record.label == "D1"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("General", "general"), ("  #general ", "general"), ("@Alice", "alice")],
)
def test_normalize_name(raw, expected):
    assert normalize_name(raw) == expected


# ---------------------------------------------------------------------------
# TimeRange
# ---------------------------------------------------------------------------


class TestTimeRange:
    """Validated message-timestamp windows."""

    def test_between_parses_bounds(self):
        tr = TimeRange.between("150", 250)
        assert tr.oldest == Decimal("150")
        assert tr.latest == Decimal("250")
        assert tr.inclusive is True

    def test_equal_bounds_are_allowed(self):
        tr = TimeRange.between(200, 200)
        assert tr.contains(Decimal("200"))

    def test_oldest_after_latest_raises_fatal(self):
        with pytest.raises(InvalidTimeRangeError) as exc_info:
            TimeRange.between(300, 100)
        assert exc_info.value.error_code == ErrorCode.FATAL

    def test_unparseable_bound_raises_fatal(self):
        with pytest.raises(InvalidTimeRangeError):
            TimeRange.between("yesterday", 100)

    def test_direct_construction_validates_order(self):
        with pytest.raises(ValidationError):
            TimeRange(oldest=Decimal("2"), latest=Decimal("1"))

    def test_contains_respects_inclusive(self):
        inclusive = TimeRange.between(100, 200)
        exclusive = TimeRange.between(100, 200, inclusive=False)
        assert inclusive.contains(Decimal("100"))
        assert inclusive.contains(Decimal("200"))
        assert not exclusive.contains(Decimal("100"))
        assert not exclusive.contains(Decimal("200"))
        assert exclusive.contains(Decimal("150"))

    def test_duration_hours(self):
        assert TimeRange.between(0, 5400).duration_hours == 1.5


# ---------------------------------------------------------------------------
# Messages and threads
# ---------------------------------------------------------------------------


class TestMessageRecord:
    """Raw conversation messages."""

    def test_from_slack_parent(self):
        message = MessageRecord.from_slack(
            {
                "ts": "200.000000",
                "thread_ts": "200.000000",
                "user": "U1",
                "text": "hello",
                "reply_count": 2,
                "latest_reply": "210.000000",
                "reply_users": ["U2"],
            }
        )
        assert message.is_thread_parent
        assert not message.is_thread_reply
        assert message.last_activity_at == Decimal("210")
        assert message.reply_users == ("U2",)

    def test_from_slack_reply(self):
        message = MessageRecord.from_slack({"ts": "205", "thread_ts": "200", "user": "U2"})
        assert message.is_thread_reply
        assert not message.is_thread_parent
        assert message.last_activity_at == Decimal("205")

    def test_bot_message_uses_bot_id(self):
        message = MessageRecord.from_slack({"ts": "1", "bot_id": "B1", "files": [{"id": "F"}]})
        assert message.author_id == "B1"
        assert message.has_attachments is True

    def test_json_dump_uses_remote_timestamp_form(self):
        message = MessageRecord(id=Decimal("200"))
        assert message.model_dump(mode="json")["id"] == "200.000000"


def _thread(anchor: str, reply_ids: list[str], parent_id: str | None = None) -> CollectedThread:
    parent = MessageRecord(id=parent_id or anchor, author_id="U1")
    replies = [MessageRecord(id=r, thread_anchor=anchor, author_id="U2") for r in reply_ids]
    return CollectedThread(
        thread_anchor=anchor,
        parent_message=parent,
        replies=replies,
        stats=ThreadStats(reply_count=len(replies), participant_count=2),
    )


class TestCollectedThread:
    """A collected thread keeps its parent on the anchor and replies in order."""

    def test_valid_thread(self):
        thread = _thread("200", ["205", "210"])
        assert [m.id for m in thread.messages] == [Decimal("200"), Decimal("205"), Decimal("210")]

    def test_parent_must_match_anchor(self):
        with pytest.raises(ValidationError, match="does not match anchor"):
            _thread("200", ["205"], parent_id="201")

    def test_replies_must_be_sorted(self):
        with pytest.raises(ValidationError, match="sorted"):
            _thread("200", ["210", "205"])

    def test_payload_can_drop_parent(self):
        thread = _thread("200", ["205"])
        assert "parent_message" in thread.to_payload()
        assert "parent_message" not in thread.to_payload(include_parent=False)


class TestThreadFilters:
    """Filters applied to thread parents."""

    def test_query_parameter_aliases(self):
        filters = ThreadFilters.model_validate({"sort": "replies", "author": "U2"})
        assert filters.sort_by is ThreadSortKey.REPLIES
        assert filters.author_id == "U2"

    def test_rejects_messages_without_replies(self):
        assert not ThreadFilters().accepts(MessageRecord(id="1", reply_count=0))

    def test_reply_bounds(self):
        filters = ThreadFilters(min_replies=2, max_replies=3)
        assert not filters.accepts(MessageRecord(id="1", reply_count=1))
        assert filters.accepts(MessageRecord(id="1", reply_count=2))
        assert not filters.accepts(MessageRecord(id="1", reply_count=4))

    def test_query_is_case_insensitive(self):
        filters = ThreadFilters(query="Deploy")
        assert filters.accepts(MessageRecord(id="1", reply_count=1, text="the DEPLOY plan"))
        assert not filters.accepts(MessageRecord(id="1", reply_count=1, text="lunch"))

    def test_attachment_and_author_filters(self):
        filters = ThreadFilters(has_attachments=True, author_id="U1")
        assert filters.accepts(
            MessageRecord(id="1", reply_count=1, has_attachments=True, author_id="U1")
        )
        assert not filters.accepts(
            MessageRecord(id="1", reply_count=1, has_attachments=False, author_id="U1")
        )
        assert not filters.accepts(
            MessageRecord(id="1", reply_count=1, has_attachments=True, author_id="U2")
        )


def test_thread_status_window():
    now = datetime(2024, 5, 1, tzinfo=UTC)
    recent = Decimal(int((now - timedelta(hours=1)).timestamp()))
    old = Decimal(int((now - timedelta(hours=200)).timestamp()))
    assert thread_status(recent, now, 168) is ThreadStatus.ACTIVE
    assert thread_status(old, now, 168) is ThreadStatus.ARCHIVED


# ---------------------------------------------------------------------------
# ToolResponse envelope
# ---------------------------------------------------------------------------


class TestToolResponse:
    """Every call returns success, a stable error code and partial-success markers."""

    def test_ok(self):
        response = ToolResponse.ok({"x": 1}, degraded=True, skipped_count=2)
        assert response.success is True
        assert response.degraded is True
        assert response.skipped_count == 2
        assert response.error_code is None

    def test_from_not_found(self):
        response = ToolResponse.from_error(NotFoundError("Resource not found", {"uri": "x"}))
        assert response.success is False
        assert response.error_code == "NOT_FOUND"
        assert response.data == {"uri": "x"}

    def test_from_rate_limited(self):
        response = ToolResponse.from_error(RateLimitedError("conversations.history", 3.0))
        assert response.error_code == "RATE_LIMITED"
        assert response.data["retry_after"] == 3.0

    def test_from_collection_failed(self):
        response = ToolResponse.from_error(CollectionFailedError("C1", 4))
        assert response.error_code == "COLLECTION_FAILED"
        assert response.data == {"channel_id": "C1", "skipped": 4}

    def test_invalid_parameter_is_fatal(self):
        response = ToolResponse.from_error(InvalidParameterError("limit", "bad limit"))
        assert response.error_code == "FATAL"
        assert response.data == {"parameter": "limit"}

    def test_internal_error(self):
        response = ToolResponse.internal_error("boom")
        assert response.error_code == "INTERNAL_ERROR"
        assert response.message == "boom"
