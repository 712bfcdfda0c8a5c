"""Tests for Prometheus metrics endpoint and custom counters."""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from slackmcp.observability.metrics import (
    ANCHORS_SKIPPED,
    REMOTE_CALLS,
    THREADS_COLLECTED,
    setup_metrics,
)


@pytest.fixture()
def metrics_app() -> FastAPI:
    """Create a minimal FastAPI app with Prometheus instrumentation."""
    app = FastAPI()

    @app.get("/hello")
    async def hello():
        return {"msg": "hello"}

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    @app.get("/ready")
    async def ready():
        return {"status": "ready"}

    setup_metrics(app)
    return app


@pytest.fixture()
def metrics_client(metrics_app: FastAPI) -> TestClient:
    """TestClient for the metrics-enabled app."""
    return TestClient(metrics_app)


def test_metrics_endpoint_returns_prometheus_format(metrics_client: TestClient) -> None:
    """GET /metrics returns 200 with Prometheus-format text containing expected metrics."""
    metrics_client.get("/hello")
    resp = metrics_client.get("/metrics")
    assert resp.status_code == 200
    body = resp.text
    assert "http_request" in body
    assert "slackmcp_threads_collected_total" in body
    assert "slackmcp_anchors_skipped_total" in body


def test_excluded_handlers_not_in_metrics(metrics_client: TestClient) -> None:
    """/health and /ready do NOT appear as handler labels in the HTTP metrics."""
    metrics_client.get("/health")
    metrics_client.get("/ready")
    resp = metrics_client.get("/metrics")
    lines = [
        line
        for line in resp.text.splitlines()
        if "http_request_duration" in line and 'handler="' in line
    ]
    for line in lines:
        assert '/health"' not in line, f"/health found in metrics: {line}"
        assert '/ready"' not in line, f"/ready found in metrics: {line}"


def test_threads_collected_counter_increments(metrics_client: TestClient) -> None:
    """Counter increments are reflected in /metrics output."""
    initial = _extract_value(metrics_client.get("/metrics").text, "slackmcp_threads_collected_total")

    THREADS_COLLECTED.inc(3)
    ANCHORS_SKIPPED.inc()

    body = metrics_client.get("/metrics").text
    assert _extract_value(body, "slackmcp_threads_collected_total") == initial + 3.0


def test_remote_calls_are_labelled(metrics_client: TestClient) -> None:
    REMOTE_CALLS.labels(method="conversations.history", outcome="ok").inc()
    body = metrics_client.get("/metrics").text
    assert 'slackmcp_remote_calls_total{method="conversations.history",outcome="ok"}' in body


def _extract_value(text: str, metric_name: str) -> float:
    """Extract the numeric value of an unlabelled metric from Prometheus text output."""
    for line in text.splitlines():
        if line.startswith(metric_name + " "):
            return float(line.split()[1])
    raise ValueError(f"Metric {metric_name} not found in output")
