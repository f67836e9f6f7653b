"""Tests for application entry point: structlog config, service initialization, and app creation."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from unittest.mock import patch

import pytest
import structlog
from fastapi import FastAPI
from fastapi.testclient import TestClient
from pydantic import SecretStr

from auditdesk.app import configure_logging, create_app, initialize_services
from auditdesk.config import Settings
from auditdesk.escrow.stripe_gateway import StripeEscrowGateway
from auditdesk.lifecycle.service import CaptureFailurePolicy


def _reset_structlog() -> None:
    """Reset structlog so cached loggers don't leak between tests."""
    structlog.reset_defaults()


def _base_settings(tmp_path: Path, **overrides) -> Settings:
    """Build Settings pointing the ledger at tmp_path, with no payment key."""
    defaults = {
        "_env_file": None,
        "ledger_db_path": tmp_path / "ledger.db",
        "stripe_secret_key": SecretStr(""),
    }
    defaults.update(overrides)
    return Settings(**defaults)  # type: ignore[arg-type]


class TestConfigureLogging:
    """Tests for structlog configuration in dev and production modes."""

    def test_development_mode_uses_console_renderer(self) -> None:
        _reset_structlog()
        configure_logging(production=False)
        processors = structlog.get_config()["processors"]
        assert any(isinstance(p, structlog.dev.ConsoleRenderer) for p in processors)

    def test_production_mode_uses_json_renderer(self) -> None:
        _reset_structlog()
        configure_logging(production=True)
        processors = structlog.get_config()["processors"]
        assert any(isinstance(p, structlog.processors.JSONRenderer) for p in processors)

    def test_sentry_processor_inserted_when_enabled(self) -> None:
        _reset_structlog()
        configure_logging(production=True, sentry_enabled=True)
        names = [type(p).__name__ for p in structlog.get_config()["processors"]]
        assert "SentryProcessor" in names
        assert names.index("SentryProcessor") < names.index("JSONRenderer")

    def test_no_sentry_processor_by_default(self) -> None:
        _reset_structlog()
        configure_logging()
        names = [type(p).__name__ for p in structlog.get_config()["processors"]]
        assert "SentryProcessor" not in names

    def test_binds_service_name(self) -> None:
        _reset_structlog()
        configure_logging()
        assert structlog.contextvars.get_contextvars()["service"] == "auditdesk"


class TestInitializeServices:
    """Tests for service initialization."""

    def test_creates_ledger(self, tmp_path: Path) -> None:
        _reset_structlog()
        db_path = tmp_path / "nested" / "ledger.db"
        services = initialize_services(_base_settings(tmp_path, ledger_db_path=db_path))

        assert db_path.exists()
        tables = {
            row[0]
            for row in services["ledger_conn"].execute(
                "SELECT name FROM sqlite_master WHERE type = 'table'"
            ).fetchall()
        }
        assert {"audit_requests", "audit_deliveries", "settlements", "journal"} <= tables
        services["ledger_conn"].close()

    def test_connection_factory_opens_same_database(self, tmp_path: Path) -> None:
        _reset_structlog()
        services = initialize_services(_base_settings(tmp_path))

        conn = services["connect_ledger"]()
        row = conn.execute("SELECT fee_rate FROM platform_settings WHERE id = 1").fetchone()
        assert row[0] == "0.1"
        conn.close()
        services["ledger_conn"].close()

    def test_gateway_none_without_key(self, tmp_path: Path) -> None:
        _reset_structlog()
        services = initialize_services(_base_settings(tmp_path))

        assert services["escrow_gateway"] is None
        assert services["capture_failure_policy"] == CaptureFailurePolicy.QUEUE_FOR_RETRY
        services["ledger_conn"].close()

    def test_gateway_created_with_key(self, tmp_path: Path) -> None:
        _reset_structlog()
        settings = _base_settings(
            tmp_path,
            stripe_secret_key=SecretStr("sk_test_123"),
            capture_failure_policy="queue_and_raise",
        )

        services = initialize_services(settings)

        assert isinstance(services["escrow_gateway"], StripeEscrowGateway)
        assert services["capture_failure_policy"] == CaptureFailurePolicy.QUEUE_AND_RAISE
        services["ledger_conn"].close()

    def test_configures_retry_notifier(self, tmp_path: Path) -> None:
        _reset_structlog()
        with patch("auditdesk.app.configure_error_notifier") as mock_cfg:
            services = initialize_services(_base_settings(tmp_path))
        mock_cfg.assert_called_once()
        services["ledger_conn"].close()


class TestCreateApp:
    def test_returns_fastapi_with_routes(self, tmp_path: Path) -> None:
        _reset_structlog()
        services = initialize_services(_base_settings(tmp_path))

        app = create_app(services)

        assert isinstance(app, FastAPI)
        paths = set(app.openapi()["paths"])
        assert "/requests" in paths
        assert "/requests/{request_id}/claim" in paths
        assert "/admin/settings/fee-rate" in paths
        assert "/health" in paths
        assert "/ready" in paths
        # /metrics is left out of the schema
        assert TestClient(app).get("/metrics").status_code == 200
        services["ledger_conn"].close()

    def test_lifespan_closes_ledger(self, tmp_path: Path) -> None:
        _reset_structlog()
        services = initialize_services(_base_settings(tmp_path))

        with TestClient(create_app(services)) as client:
            assert client.get("/health").status_code == 200

        with pytest.raises(sqlite3.ProgrammingError):
            services["ledger_conn"].execute("SELECT 1")

    def test_ready_reports_missing_gateway(self, tmp_path: Path) -> None:
        _reset_structlog()
        services = initialize_services(_base_settings(tmp_path))
        client = TestClient(create_app(services))

        resp = client.get("/ready")

        assert resp.status_code == 503
        assert resp.json()["checks"] == {"ledger": "ok", "escrow": "fail"}
        services["ledger_conn"].close()
