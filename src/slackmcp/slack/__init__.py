"""Slack integration: the async conversation service and its page model."""

from slackmcp.slack.client import (
    ConversationService,
    SlackConversationService,
    translate_slack_error,
)
from slackmcp.slack.models import Page

__all__ = [
    "ConversationService",
    "Page",
    "SlackConversationService",
    "translate_slack_error",
]
