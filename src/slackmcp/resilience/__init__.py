"""Resilience infrastructure for remote calls with rate-limit aware retry."""

from slackmcp.resilience.retry import resilient_api_call, wait_retry_after

__all__ = [
    "resilient_api_call",
    "wait_retry_after",
]
