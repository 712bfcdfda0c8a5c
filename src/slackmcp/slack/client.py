"""Async conversation service over the Slack Web API.

``ConversationService`` is the seam the thread engine and identifier cache
depend on.  ``SlackConversationService`` implements it with
``slack_sdk``'s ``AsyncWebClient``, translating ``SlackApiError`` codes into
the domain error taxonomy and retrying rate-limit rejections.
"""

from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal
from typing import Any, Protocol

import aiohttp
import structlog
from slack_sdk.errors import SlackApiError
from slack_sdk.web.async_client import AsyncWebClient
from tenacity.wait import wait_base

from slackmcp.domain.errors import (
    NotFoundError,
    RateLimitedError,
    RemoteServiceError,
    SlackMcpError,
)
from slackmcp.domain.models import ChannelRecord, MessageRecord, PrincipalRecord
from slackmcp.domain.types import format_timestamp
from slackmcp.observability.metrics import REMOTE_CALLS
from slackmcp.resilience.retry import DEFAULT_ATTEMPTS, resilient_api_call
from slackmcp.slack.models import Page

logger = structlog.get_logger()

DEFAULT_CHANNEL_TYPES = "public_channel,private_channel"

RATE_LIMIT_CODES = frozenset({"ratelimited", "rate_limited"})
NOT_FOUND_CODES = frozenset(
    {"channel_not_found", "thread_not_found", "message_not_found", "user_not_found"}
)


class ConversationService(Protocol):
    """Remote operations the thread engine and identifier cache rely on."""

    async def fetch_history(
        self,
        channel_id: str,
        *,
        oldest: Decimal | None = None,
        latest: Decimal | None = None,
        inclusive: bool = True,
        cursor: str | None = None,
        limit: int = 200,
    ) -> Page[MessageRecord]: ...

    async def fetch_replies(
        self,
        channel_id: str,
        anchor: Decimal,
        *,
        oldest: Decimal | None = None,
        latest: Decimal | None = None,
        inclusive: bool = True,
        cursor: str | None = None,
        limit: int = 200,
    ) -> Page[MessageRecord]: ...

    async def list_principals(
        self, *, cursor: str | None = None, limit: int = 200
    ) -> Page[PrincipalRecord]: ...

    async def list_channels(
        self,
        *,
        cursor: str | None = None,
        limit: int = 200,
        types: str = DEFAULT_CHANNEL_TYPES,
        include_archived: bool = True,
    ) -> Page[ChannelRecord]: ...

    async def channel_info(self, channel_id: str) -> ChannelRecord: ...


def translate_slack_error(method: str, exc: SlackApiError) -> SlackMcpError:
    """Map a ``SlackApiError`` to the matching domain error.

    Args:
        method: The Web API method that failed, e.g. ``"conversations.replies"``.
        exc: The error raised by ``slack_sdk``.

    Returns:
        ``RateLimitedError``, ``NotFoundError`` or ``RemoteServiceError``.
    """
    response = exc.response
    code = str(response.get("error") or "unknown_error") if response is not None else "unknown_error"
    status = getattr(response, "status_code", None)

    if code in RATE_LIMIT_CODES or status == 429:
        headers = getattr(response, "headers", None) or {}
        retry_after = headers.get("Retry-After") or headers.get("retry-after")
        return RateLimitedError(method, float(retry_after) if retry_after else None)
    if code in NOT_FOUND_CODES:
        return NotFoundError(f"{method} failed: {code}", {"method": method, "remote_code": code})
    return RemoteServiceError(method, code)


def _next_cursor(response: Mapping[str, Any]) -> str | None:
    metadata = response.get("response_metadata") or {}
    return metadata.get("next_cursor") or None


def _bounds(
    oldest: Decimal | None, latest: Decimal | None, inclusive: bool
) -> dict[str, Any]:
    params: dict[str, Any] = {"inclusive": inclusive}
    if oldest is not None:
        params["oldest"] = format_timestamp(oldest)
    if latest is not None:
        params["latest"] = format_timestamp(latest)
    return params


class SlackConversationService:
    """``ConversationService`` backed by ``AsyncWebClient``.

    Each remote call is counted in ``slackmcp_remote_calls_total`` and
    retried on rate limiting only.
    """

    def __init__(
        self,
        bot_token: str | None = None,
        client: AsyncWebClient | None = None,
        retry_attempts: int = DEFAULT_ATTEMPTS,
        retry_wait: wait_base | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            bot_token: Slack bot token.  Ignored when *client* is given.
            client: Pre-built client, mainly for tests.
            retry_attempts: Attempts per call before a rate limit is surfaced.
            retry_wait: Override the retry wait strategy.
        """
        self._client = client or AsyncWebClient(token=bot_token)

        async def invoke(method: str, params: dict[str, Any]) -> Mapping[str, Any]:
            return await self._invoke_once(method, params)

        self._invoke = resilient_api_call(
            "slack", attempts=retry_attempts, wait=retry_wait
        )(invoke)

    async def _invoke_once(self, method: str, params: dict[str, Any]) -> Mapping[str, Any]:
        api = getattr(self._client, method.replace(".", "_"))
        try:
            response = await api(**params)
        except SlackApiError as exc:
            error = translate_slack_error(method, exc)
            REMOTE_CALLS.labels(method=method, outcome=error.error_code.value.lower()).inc()
            logger.warning("slack_call_failed", method=method, error_code=error.error_code.value)
            raise error from exc
        except (aiohttp.ClientError, TimeoutError) as exc:
            REMOTE_CALLS.labels(method=method, outcome="remote_error").inc()
            logger.warning("slack_call_failed", method=method, error=str(exc))
            raise RemoteServiceError(method, type(exc).__name__) from exc
        REMOTE_CALLS.labels(method=method, outcome="ok").inc()
        return response

    async def fetch_history(
        self,
        channel_id: str,
        *,
        oldest: Decimal | None = None,
        latest: Decimal | None = None,
        inclusive: bool = True,
        cursor: str | None = None,
        limit: int = 200,
    ) -> Page[MessageRecord]:
        params = {"channel": channel_id, "limit": limit, **_bounds(oldest, latest, inclusive)}
        if cursor:
            params["cursor"] = cursor
        response = await self._invoke("conversations.history", params)
        return Page[MessageRecord](
            items=[MessageRecord.from_slack(m) for m in response.get("messages") or []],
            next_cursor=_next_cursor(response),
        )

    async def fetch_replies(
        self,
        channel_id: str,
        anchor: Decimal,
        *,
        oldest: Decimal | None = None,
        latest: Decimal | None = None,
        inclusive: bool = True,
        cursor: str | None = None,
        limit: int = 200,
    ) -> Page[MessageRecord]:
        params = {
            "channel": channel_id,
            "ts": format_timestamp(anchor),
            "limit": limit,
            **_bounds(oldest, latest, inclusive),
        }
        if cursor:
            params["cursor"] = cursor
        response = await self._invoke("conversations.replies", params)
        return Page[MessageRecord](
            items=[MessageRecord.from_slack(m) for m in response.get("messages") or []],
            next_cursor=_next_cursor(response),
        )

    async def list_principals(
        self, *, cursor: str | None = None, limit: int = 200
    ) -> Page[PrincipalRecord]:
        params: dict[str, Any] = {"limit": limit}
        if cursor:
            params["cursor"] = cursor
        response = await self._invoke("users.list", params)
        return Page[PrincipalRecord](
            items=[PrincipalRecord.from_slack(m) for m in response.get("members") or []],
            next_cursor=_next_cursor(response),
        )

    async def list_channels(
        self,
        *,
        cursor: str | None = None,
        limit: int = 200,
        types: str = DEFAULT_CHANNEL_TYPES,
        include_archived: bool = True,
    ) -> Page[ChannelRecord]:
        params: dict[str, Any] = {
            "limit": limit,
            "types": types,
            "exclude_archived": not include_archived,
        }
        if cursor:
            params["cursor"] = cursor
        response = await self._invoke("conversations.list", params)
        return Page[ChannelRecord](
            items=[ChannelRecord.from_slack(c) for c in response.get("channels") or []],
            next_cursor=_next_cursor(response),
        )

    async def channel_info(self, channel_id: str) -> ChannelRecord:
        response = await self._invoke("conversations.info", {"channel": channel_id})
        return ChannelRecord.from_slack(response["channel"])
