"""Prometheus metrics instrumentation for the thread server.

Provides:
- ``setup_metrics(app)``: Attach prometheus-fastapi-instrumentator to a FastAPI app,
  exposing ``/metrics`` with HTTP request duration/count plus custom counters.
- ``REMOTE_CALLS``: Counter of remote service calls by method and outcome.
- ``CACHE_REFRESHES``: Counter of identifier cache refreshes by kind and outcome.
- ``THREADS_COLLECTED`` / ``ANCHORS_SKIPPED``: Time-range collection counters.

Counters are updated where the work happens (not by polling).
"""

from __future__ import annotations

from fastapi import FastAPI
from prometheus_client import Counter
from prometheus_fastapi_instrumentator import Instrumentator

REMOTE_CALLS: Counter = Counter(
    "slackmcp_remote_calls_total",
    "Total number of remote service calls",
    ["method", "outcome"],
)

CACHE_REFRESHES: Counter = Counter(
    "slackmcp_cache_refreshes_total",
    "Total number of identifier cache refreshes",
    ["kind", "outcome"],
)

THREADS_COLLECTED: Counter = Counter(
    "slackmcp_threads_collected_total",
    "Total number of threads collected by time-range collection",
)

ANCHORS_SKIPPED: Counter = Counter(
    "slackmcp_anchors_skipped_total",
    "Total number of thread anchors skipped because their replies could not be fetched",
)


def setup_metrics(app: FastAPI) -> None:
    """Instrument *app* with Prometheus HTTP metrics and expose ``/metrics``.

    Excludes health/ready/metrics endpoints from instrumentation to avoid
    noise in dashboards.

    Args:
        app: The FastAPI application to instrument.
    """
    Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=True,
        excluded_handlers=["/health", "/ready", "/metrics"],
    ).instrument(app).expose(app, include_in_schema=False, should_gzip=True)
