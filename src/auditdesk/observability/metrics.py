"""Prometheus metrics for the audit marketplace.

Provides:
- ``setup_metrics(app)``: attach prometheus-fastapi-instrumentator to a FastAPI
  app, exposing ``/metrics`` with HTTP metrics plus the business counters below.
- ``REQUESTS_CREATED``: requests that reached ``open`` with a hold.
- ``CLAIM_ATTEMPTS``: claim attempts labelled ``won`` / ``lost``.
- ``SETTLEMENTS``: escrow outcomes labelled ``captured`` / ``capture_queued`` /
  ``released`` / ``release_queued``.
- ``PLATFORM_FEES``: platform fees captured, in minor currency units.

Counters are updated by the lifecycle service as operations complete.
"""

from __future__ import annotations

from fastapi import FastAPI
from prometheus_client import Counter
from prometheus_fastapi_instrumentator import Instrumentator

REQUESTS_CREATED: Counter = Counter(
    "auditdesk_requests_created_total",
    "Total number of audit requests created with an authorized hold",
)

CLAIM_ATTEMPTS: Counter = Counter(
    "auditdesk_claim_attempts_total",
    "Claim attempts by outcome",
    ["outcome"],
)

SETTLEMENTS: Counter = Counter(
    "auditdesk_settlements_total",
    "Escrow settlement operations by outcome",
    ["outcome"],
)

PLATFORM_FEES: Counter = Counter(
    "auditdesk_platform_fees_total",
    "Platform fees captured, in minor currency units",
)


def setup_metrics(app: FastAPI) -> None:
    """Instrument *app* with Prometheus HTTP metrics and expose ``/metrics``.

    Health, readiness and the metrics endpoint itself are excluded.

    Args:
        app: The FastAPI application to instrument.
    """
    Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=True,
        excluded_handlers=["/health", "/ready", "/metrics"],
    ).instrument(app).expose(app, include_in_schema=False, should_gzip=True)
