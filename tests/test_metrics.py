"""Tests for Prometheus metrics endpoint and custom business metrics."""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from auditdesk.observability.metrics import (
    CLAIM_ATTEMPTS,
    PLATFORM_FEES,
    REQUESTS_CREATED,
    SETTLEMENTS,
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
    return TestClient(metrics_app)


def test_metrics_endpoint_returns_prometheus_format(metrics_client: TestClient) -> None:
    metrics_client.get("/hello")
    resp = metrics_client.get("/metrics")
    assert resp.status_code == 200
    body = resp.text
    assert "http_request" in body
    assert "auditdesk_requests_created_total" in body
    assert "auditdesk_platform_fees_total" in body


def test_excluded_handlers_not_in_metrics(metrics_client: TestClient) -> None:
    """/health and /ready do NOT appear as handler labels."""
    metrics_client.get("/health")
    metrics_client.get("/ready")
    body = metrics_client.get("/metrics").text
    lines = [
        line
        for line in body.splitlines()
        if "http_request_duration" in line and 'handler="' in line
    ]
    for line in lines:
        assert '/health"' not in line, f"/health found in metrics: {line}"
        assert '/ready"' not in line, f"/ready found in metrics: {line}"


def test_requests_created_counter_increments(metrics_client: TestClient) -> None:
    initial = _extract_value(metrics_client.get("/metrics").text, "auditdesk_requests_created_total")
    REQUESTS_CREATED.inc()
    new = _extract_value(metrics_client.get("/metrics").text, "auditdesk_requests_created_total")
    assert new == initial + 1.0


def test_labelled_counters_exposed(metrics_client: TestClient) -> None:
    CLAIM_ATTEMPTS.labels(outcome="lost").inc()
    SETTLEMENTS.labels(outcome="capture_queued").inc()
    body = metrics_client.get("/metrics").text
    assert 'auditdesk_claim_attempts_total{outcome="lost"}' in body
    assert 'auditdesk_settlements_total{outcome="capture_queued"}' in body


def test_platform_fees_accumulate(metrics_client: TestClient) -> None:
    initial = _extract_value(metrics_client.get("/metrics").text, "auditdesk_platform_fees_total")
    PLATFORM_FEES.inc(500)
    new = _extract_value(metrics_client.get("/metrics").text, "auditdesk_platform_fees_total")
    assert new == initial + 500.0


def _extract_value(text: str, metric_name: str) -> float:
    """Extract the numeric value of an unlabelled counter from Prometheus text output."""
    for line in text.splitlines():
        if line.startswith(metric_name) and not line.startswith(metric_name + "_"):
            parts = line.split()
            if len(parts) == 2:
                return float(parts[1])
    raise ValueError(f"Metric {metric_name} not found in output")
