"""Sentry SDK initialization with structlog-sentry bridge."""

from __future__ import annotations

import logging

import sentry_sdk
import structlog
from sentry_sdk.integrations.logging import LoggingIntegration
from structlog_sentry import SentryProcessor


def init_sentry(dsn: str, environment: str = "development") -> bool:
    """Initialize Sentry SDK with the given *dsn*.

    An empty *dsn* disables Sentry and makes no network calls, so this is
    safe to call unconditionally at startup.

    Args:
        dsn: Sentry DSN string.
        environment: Environment tag attached to every event.

    Returns:
        ``True`` if the SDK was initialized.
    """
    if not dsn:
        return False

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        traces_sample_rate=0.1,
        send_default_pii=False,
        integrations=[
            # structlog-sentry reports errors; stdlib logging capture would double them.
            LoggingIntegration(event_level=None, level=None),
        ],
    )
    return True


def get_sentry_processor() -> structlog.types.Processor:
    """Return a structlog processor that forwards ERROR events to Sentry.

    Goes after ``add_log_level`` and before the renderer.
    """
    return SentryProcessor(event_level=logging.ERROR)
