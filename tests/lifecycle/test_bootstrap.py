"""Tests for opening and preparing a ledger database."""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path

from auditdesk.ledger.settings_store import PlatformSettingsStore
from auditdesk.lifecycle.bootstrap import open_ledger


def test_open_ledger_creates_parent_directory(tmp_path: Path) -> None:
    db_path = tmp_path / "a" / "b" / "ledger.db"
    conn = open_ledger(db_path, Decimal("0.1"))
    assert db_path.exists()
    conn.close()


def test_reopening_keeps_existing_fee_rate(tmp_path: Path) -> None:
    db_path = tmp_path / "ledger.db"
    conn = open_ledger(db_path, Decimal("0.1"))
    PlatformSettingsStore(conn).set_fee_rate(Decimal("0.25"), "admin-1")
    conn.close()

    conn = open_ledger(db_path, Decimal("0.1"))

    assert PlatformSettingsStore(conn).get_fee_rate() == Decimal("0.25")
    conn.close()


def test_in_memory_ledger(tmp_path: Path) -> None:
    conn = open_ledger(":memory:", Decimal("0.05"))
    assert PlatformSettingsStore(conn).get_fee_rate() == Decimal("0.05")
    conn.close()
