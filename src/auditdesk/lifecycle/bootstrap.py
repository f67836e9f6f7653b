"""Open a ledger database with every table the lifecycle service needs."""

from __future__ import annotations

import sqlite3
from decimal import Decimal
from pathlib import Path

from auditdesk.journal.store import init_journal_table
from auditdesk.ledger.schema import connect_ledger, init_ledger_db, init_settlement_tables
from auditdesk.ledger.settings_store import PlatformSettingsStore


def prepare_ledger(conn: sqlite3.Connection, default_fee_rate: Decimal) -> sqlite3.Connection:
    """Create ledger, settlement and journal tables and seed the fee rate.

    Safe to call repeatedly; an existing fee rate is left untouched.
    """
    init_ledger_db(conn)
    init_settlement_tables(conn)
    init_journal_table(conn)
    PlatformSettingsStore(conn).ensure_default(default_fee_rate)
    return conn


def open_ledger(
    db_path: Path | str,
    default_fee_rate: Decimal,
    busy_timeout_seconds: float = 5.0,
) -> sqlite3.Connection:
    """Connect to *db_path* and prepare it (see :func:`prepare_ledger`)."""
    if str(db_path) != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = connect_ledger(db_path, busy_timeout_seconds)
    return prepare_ledger(conn, default_fee_rate)
