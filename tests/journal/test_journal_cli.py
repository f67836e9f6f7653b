"""Tests for the operator CLI over a real ledger."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path

import pytest

from auditdesk.domain.errors import PaymentProviderError
from auditdesk.journal.cli import build_parser, main, render_rows, since_timestamp
from auditdesk.lifecycle.bootstrap import open_ledger
from auditdesk.lifecycle.service import AuditRequestService


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "ledger.db"


@pytest.fixture
def ledger_service(db_path: Path, gateway):
    conn = open_ledger(db_path, Decimal("0.1"))
    yield AuditRequestService(conn, gateway)
    conn.close()


def _run(capsys: pytest.CaptureFixture[str], *argv: str) -> str:
    assert main(list(argv)) == 0
    return capsys.readouterr().out


class TestSinceTimestamp:
    NOW = datetime(2026, 3, 10, 12, 0, tzinfo=UTC)

    @pytest.mark.parametrize(
        ("since", "expected"),
        [
            ("30m", "2026-03-10T11:30:00Z"),
            ("24h", "2026-03-09T12:00:00Z"),
            ("7d", "2026-03-03T12:00:00Z"),
        ],
    )
    def test_durations(self, since: str, expected: str) -> None:
        assert since_timestamp(since, now=self.NOW) == expected

    @pytest.mark.parametrize("since", ["", "7", "d", "7w", "-1d", "1.5h"])
    def test_rejects_other_formats(self, since: str) -> None:
        with pytest.raises(ValueError, match="expected a duration"):
            since_timestamp(since)


class TestRenderRows:
    def test_header_rule_and_rows(self) -> None:
        lines = render_rows([{"a": "x", "b": 1}], [("a", 3), ("b", 2)]).split("\n")
        assert lines[0] == "a   | b "
        assert set(lines[1]) == {"="}
        assert lines[2] == "x   | 1 "

    def test_long_cells_are_cut(self) -> None:
        output = render_rows([{"a": "abcdefgh"}], [("a", 4)])
        assert "abc~" in output
        assert "abcdefgh" not in output

    def test_no_rows(self) -> None:
        assert render_rows([], [("a", 3)]) == "(none)"


class TestParser:
    def test_command_is_required(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_common_options_follow_the_command(self) -> None:
        args = build_parser().parse_args(["trail", "req-1", "--json", "--db", "/tmp/x.db"])
        assert args.request_id == "req-1"
        assert args.json
        assert args.db == Path("/tmp/x.db")

    def test_unknown_event_type_rejected(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["events", "--event-type", "email_sent"])


class TestMain:
    def test_events_filtered_by_request(
        self, capsys, db_path, ledger_service, client_caller, draft_payload
    ) -> None:
        first = ledger_service.create_request(client_caller, draft_payload).request
        ledger_service.create_request(client_caller, draft_payload)

        out = _run(capsys, "events", "--request", first.id, "--json", "--db", str(db_path))

        rows = json.loads(out)
        assert [row["request_id"] for row in rows] == [first.id]
        assert rows[0]["event_type"] == "request_created"

    def test_trail_of_settled_request(
        self, capsys, db_path, ledger_service, client_caller, reviewer, draft_payload, delivery_payload
    ) -> None:
        request = ledger_service.create_request(client_caller, draft_payload).request
        ledger_service.claim(request.id, reviewer)
        ledger_service.deliver(request.id, reviewer, delivery_payload)

        out = _run(capsys, "trail", request.id, "--db", str(db_path))

        assert out.startswith(f"{request.id}  completed  budget=5000")
        assert "reviewer=reviewer-x" in out
        assert "settled: fee=500 payout=4500" in out
        for event in ("request_created", "request_claimed", "request_delivered", "payment_captured"):
            assert event in out

    def test_trail_shows_pending_capture(
        self, capsys, db_path, gateway, ledger_service, client_caller, reviewer, draft_payload, delivery_payload
    ) -> None:
        request = ledger_service.create_request(client_caller, draft_payload).request
        ledger_service.claim(request.id, reviewer)
        gateway.fail_on.add("capture")
        ledger_service.deliver(request.id, reviewer, delivery_payload)

        trail = json.loads(_run(capsys, "trail", request.id, "--json", "--db", str(db_path)))

        assert trail["request"]["status"] == "completed"
        assert "content" not in trail["request"]
        assert trail["settlement"] is None
        assert [entry["operation"] for entry in trail["pending"]] == ["capture"]
        assert trail["history"][0]["event_type"] == "request_created"

    def test_queue(
        self, capsys, db_path, gateway, ledger_service, client_caller, draft_payload
    ) -> None:
        request = ledger_service.create_request(client_caller, draft_payload).request
        gateway.fail_on.add("cancel")
        with pytest.raises(PaymentProviderError):
            ledger_service.cancel(request.id, client_caller)

        entries = json.loads(_run(capsys, "queue", "--json", "--db", str(db_path)))

        assert [(e["request_id"], e["operation"], e["attempts"]) for e in entries] == [
            (request.id, "cancel", 1)
        ]

    def test_unknown_request(self, capsys, db_path, ledger_service) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["trail", "missing", "--db", str(db_path)])
        assert exc_info.value.code == 1
        assert "no audit request missing" in capsys.readouterr().err

    def test_missing_database(self, capsys, tmp_path: Path) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["queue", "--db", str(tmp_path / "absent.db")])
        assert exc_info.value.code == 1
        assert "no ledger database" in capsys.readouterr().err
