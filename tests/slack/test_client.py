"""Tests for SlackConversationService.

Uses a mocked AsyncWebClient to verify request parameters, pagination
cursors and error translation without requiring Slack API access.
"""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest
from slack_sdk.errors import SlackApiError
from tenacity import wait_none

from slackmcp.domain.errors import NotFoundError, RateLimitedError, RemoteServiceError
from slackmcp.slack.client import SlackConversationService, translate_slack_error


def _api_error(code: str, status: int = 200, headers: dict | None = None) -> SlackApiError:
    """Build a SlackApiError the way slack_sdk raises it for ``ok: false``."""
    response = MagicMock()
    response.get.side_effect = {"ok": False, "error": code}.get
    response.status_code = status
    response.headers = headers or {}
    return SlackApiError(f"The request to the Slack API failed. ({code})", response)


def _create_service_with_mock(attempts: int = 3):
    """Create a SlackConversationService with a mocked AsyncWebClient."""
    client = MagicMock()
    for method in (
        "conversations_history",
        "conversations_replies",
        "users_list",
        "conversations_list",
        "conversations_info",
    ):
        setattr(client, method, AsyncMock())
    service = SlackConversationService(client=client, retry_attempts=attempts, retry_wait=wait_none())
    return service, client


# ---------------------------------------------------------------------------
# Error translation
# ---------------------------------------------------------------------------


class TestTranslateSlackError:
    """SlackApiError codes map onto the domain error taxonomy."""

    def test_ratelimited_code(self):
        error = translate_slack_error(
            "conversations.history", _api_error("ratelimited", headers={"Retry-After": "7"})
        )
        assert isinstance(error, RateLimitedError)
        assert error.retry_after == 7.0

    def test_http_429_without_hint(self):
        error = translate_slack_error("users.list", _api_error("unknown", status=429))
        assert isinstance(error, RateLimitedError)
        assert error.retry_after is None

    @pytest.mark.parametrize("code", ["channel_not_found", "thread_not_found"])
    def test_not_found_codes(self, code):
        error = translate_slack_error("conversations.replies", _api_error(code))
        assert isinstance(error, NotFoundError)
        assert error.details["remote_code"] == code

    def test_other_codes_are_remote_errors(self):
        error = translate_slack_error("conversations.history", _api_error("not_in_channel"))
        assert type(error) is RemoteServiceError
        assert error.remote_code == "not_in_channel"
        assert str(error) == "conversations.history failed: not_in_channel"


# ---------------------------------------------------------------------------
# Requests and pagination
# ---------------------------------------------------------------------------


@pytest.mark.anyio()
async def test_fetch_history_sends_formatted_bounds():
    """Bounds go out in the remote's fixed six-decimal form."""
    service, client = _create_service_with_mock()
    client.conversations_history.return_value = {
        "ok": True,
        "messages": [{"ts": "200.000000", "user": "U1", "reply_count": 2}],
        "response_metadata": {"next_cursor": "dXNlcjpVMDYxTkZUVDI="},
    }

    page = await service.fetch_history(
        "C1", oldest=Decimal("150"), latest=Decimal("250.5"), limit=50
    )

    client.conversations_history.assert_awaited_once_with(
        channel="C1", limit=50, inclusive=True, oldest="150.000000", latest="250.500000"
    )
    assert [m.id for m in page.items] == [Decimal("200")]
    assert page.next_cursor == "dXNlcjpVMDYxTkZUVDI="


@pytest.mark.anyio()
async def test_empty_cursor_ends_pagination():
    service, client = _create_service_with_mock()
    client.conversations_history.return_value = {
        "ok": True,
        "messages": [],
        "response_metadata": {"next_cursor": ""},
    }

    page = await service.fetch_history("C1", cursor="abc")

    assert client.conversations_history.await_args.kwargs["cursor"] == "abc"
    assert page.items == []
    assert page.next_cursor is None


@pytest.mark.anyio()
async def test_fetch_replies_passes_anchor():
    service, client = _create_service_with_mock()
    client.conversations_replies.return_value = {
        "ok": True,
        "messages": [
            {"ts": "200.000000", "thread_ts": "200.000000", "reply_count": 1},
            {"ts": "205.000000", "thread_ts": "200.000000", "user": "U2"},
        ],
    }

    page = await service.fetch_replies("C1", Decimal("200"))

    assert client.conversations_replies.await_args.kwargs["ts"] == "200.000000"
    assert page.items[1].is_thread_reply


@pytest.mark.anyio()
async def test_list_channels_maps_archive_flag():
    service, client = _create_service_with_mock()
    client.conversations_list.return_value = {
        "ok": True,
        "channels": [{"id": "C1", "name": "general"}],
    }

    page = await service.list_channels(include_archived=False)

    assert client.conversations_list.await_args.kwargs["exclude_archived"] is True
    assert page.items[0].name == "general"


@pytest.mark.anyio()
async def test_list_principals_and_channel_info():
    service, client = _create_service_with_mock()
    client.users_list.return_value = {
        "ok": True,
        "members": [{"id": "U1", "name": "alice", "profile": {"display_name": "ali"}}],
    }
    client.conversations_info.return_value = {"ok": True, "channel": {"id": "C1", "name": "general"}}

    principals = await service.list_principals()
    channel = await service.channel_info("C1")

    assert principals.items[0].label == "ali"
    assert channel.id == "C1"
    client.conversations_info.assert_awaited_once_with(channel="C1")


# ---------------------------------------------------------------------------
# Failures and retries
# ---------------------------------------------------------------------------


@pytest.mark.anyio()
async def test_rate_limit_is_retried():
    service, client = _create_service_with_mock()
    client.conversations_history.side_effect = [
        _api_error("ratelimited", status=429),
        {"ok": True, "messages": []},
    ]

    page = await service.fetch_history("C1")

    assert page.items == []
    assert client.conversations_history.await_count == 2


@pytest.mark.anyio()
async def test_rate_limit_surfaces_after_exhaustion():
    service, client = _create_service_with_mock(attempts=2)
    client.conversations_history.side_effect = _api_error("ratelimited", status=429)

    with pytest.raises(RateLimitedError):
        await service.fetch_history("C1")
    assert client.conversations_history.await_count == 2


@pytest.mark.anyio()
async def test_not_found_is_not_retried():
    service, client = _create_service_with_mock()
    client.conversations_replies.side_effect = _api_error("thread_not_found")

    with pytest.raises(NotFoundError):
        await service.fetch_replies("C1", Decimal("999"))
    assert client.conversations_replies.await_count == 1


@pytest.mark.anyio()
async def test_transport_failure_becomes_remote_error():
    service, client = _create_service_with_mock()
    client.conversations_history.side_effect = aiohttp.ClientConnectionError("reset")

    with pytest.raises(RemoteServiceError) as exc_info:
        await service.fetch_history("C1")
    assert exc_info.value.remote_code == "ClientConnectionError"
    assert client.conversations_history.await_count == 1
