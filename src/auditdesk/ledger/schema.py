"""SQLite schema for the request ledger.

The lifecycle invariants are enforced by the database itself through CHECK
constraints and triggers, so no writer (including ad-hoc SQL) can store an
inconsistent request:

- ``reviewer_id`` is NULL while ``status = 'open'`` and present while
  ``in_progress`` / ``completed``; ``claimed_at`` follows ``reviewer_id``.
- ``completed_at`` is set exactly when ``status = 'completed'``.
- ``client_id``, ``category``, ``budget``, ``payment_intent_id`` and
  ``created_at`` never change; ``reviewer_id``, ``claimed_at`` and
  ``completed_at`` are write-once.
- completed and cancelled rows are frozen.
- at most one delivery per request; deliveries are append-only.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path


def connect_ledger(db_path: Path | str, busy_timeout_seconds: float = 5.0) -> sqlite3.Connection:
    """Open a ledger connection with WAL mode and foreign keys enabled.

    Each concurrent worker should open its own connection; SQLite serializes
    writers and waits up to *busy_timeout_seconds* for the write lock.

    Args:
        db_path: Path to the SQLite database file (or ``":memory:"``).
        busy_timeout_seconds: How long a writer waits for a competing lock.

    Returns:
        An open sqlite3.Connection.
    """
    conn = sqlite3.connect(
        str(db_path),
        timeout=busy_timeout_seconds,
        check_same_thread=False,
    )
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


def init_ledger_db(conn: sqlite3.Connection) -> None:
    """Create the ledger tables, indexes and invariant triggers if missing.

    Args:
        conn: An open sqlite3.Connection.
    """
    conn.execute("""
        CREATE TABLE IF NOT EXISTS audit_requests (
            id TEXT PRIMARY KEY,
            client_id TEXT NOT NULL,
            reviewer_id TEXT,
            category TEXT NOT NULL
                CHECK (category IN ('it_code', 'translation', 'academic')),
            title TEXT NOT NULL,
            content TEXT NOT NULL,
            ai_chat_url TEXT,
            budget INTEGER NOT NULL CHECK (budget > 0),
            status TEXT NOT NULL DEFAULT 'open'
                CHECK (status IN ('open', 'in_progress', 'completed', 'cancelled')),
            category_options_json TEXT NOT NULL,
            payment_intent_id TEXT NOT NULL CHECK (payment_intent_id <> ''),
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            claimed_at TEXT,
            completed_at TEXT,
            CHECK (status <> 'open' OR reviewer_id IS NULL),
            CHECK (status NOT IN ('in_progress', 'completed') OR reviewer_id IS NOT NULL),
            CHECK ((claimed_at IS NULL) = (reviewer_id IS NULL)),
            CHECK ((completed_at IS NOT NULL) = (status = 'completed'))
        )
    """)

    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_requests_status ON audit_requests (status, created_at)"
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_requests_client ON audit_requests (client_id)"
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_requests_reviewer ON audit_requests (reviewer_id)"
    )

    conn.execute("""
        CREATE TRIGGER IF NOT EXISTS trg_requests_immutable
        BEFORE UPDATE ON audit_requests
        WHEN NEW.id IS NOT OLD.id
          OR NEW.client_id IS NOT OLD.client_id
          OR NEW.category IS NOT OLD.category
          OR NEW.budget IS NOT OLD.budget
          OR NEW.payment_intent_id IS NOT OLD.payment_intent_id
          OR NEW.category_options_json IS NOT OLD.category_options_json
          OR NEW.created_at IS NOT OLD.created_at
        BEGIN
            SELECT RAISE(ABORT, 'immutable audit request column');
        END
    """)

    conn.execute("""
        CREATE TRIGGER IF NOT EXISTS trg_requests_write_once
        BEFORE UPDATE ON audit_requests
        WHEN (OLD.reviewer_id IS NOT NULL AND NEW.reviewer_id IS NOT OLD.reviewer_id)
          OR (OLD.claimed_at IS NOT NULL AND NEW.claimed_at IS NOT OLD.claimed_at)
          OR (OLD.completed_at IS NOT NULL AND NEW.completed_at IS NOT OLD.completed_at)
        BEGIN
            SELECT RAISE(ABORT, 'write-once audit request column');
        END
    """)

    conn.execute("""
        CREATE TRIGGER IF NOT EXISTS trg_requests_terminal
        BEFORE UPDATE ON audit_requests
        WHEN OLD.status IN ('completed', 'cancelled')
        BEGIN
            SELECT RAISE(ABORT, 'audit request is final');
        END
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS audit_deliveries (
            id TEXT PRIMARY KEY,
            request_id TEXT NOT NULL UNIQUE REFERENCES audit_requests (id),
            reviewer_id TEXT NOT NULL,
            verdict TEXT NOT NULL
                CHECK (verdict IN ('approved', 'needs_revision', 'dangerous')),
            comment TEXT NOT NULL CHECK (comment <> ''),
            revision TEXT,
            created_at TEXT NOT NULL
        )
    """)

    conn.execute("""
        CREATE TRIGGER IF NOT EXISTS trg_deliveries_no_update
        BEFORE UPDATE ON audit_deliveries
        BEGIN
            SELECT RAISE(ABORT, 'audit deliveries are append-only');
        END
    """)

    conn.execute("""
        CREATE TRIGGER IF NOT EXISTS trg_deliveries_no_delete
        BEFORE DELETE ON audit_deliveries
        BEGIN
            SELECT RAISE(ABORT, 'audit deliveries are append-only');
        END
    """)

    conn.execute("""
        CREATE TRIGGER IF NOT EXISTS trg_deliveries_reviewer_matches
        BEFORE INSERT ON audit_deliveries
        WHEN NOT EXISTS (
            SELECT 1 FROM audit_requests
            WHERE id = NEW.request_id AND reviewer_id = NEW.reviewer_id
        )
        BEGIN
            SELECT RAISE(ABORT, 'delivery reviewer does not match the assigned reviewer');
        END
    """)

    conn.commit()


def init_settlement_tables(conn: sqlite3.Connection) -> None:
    """Create the platform settings, settlements and settlement queue tables.

    ``platform_settings`` uses a ``CHECK (id = 1)`` constraint to enforce a
    singleton row; ``fee_rate`` is stored as decimal text.

    Args:
        conn: An open sqlite3.Connection.
    """
    conn.execute("""
        CREATE TABLE IF NOT EXISTS platform_settings (
            id INTEGER PRIMARY KEY CHECK (id = 1),
            fee_rate TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            updated_by TEXT
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS settlements (
            request_id TEXT PRIMARY KEY REFERENCES audit_requests (id),
            hold_id TEXT NOT NULL,
            receipt_id TEXT NOT NULL,
            budget INTEGER NOT NULL,
            fee_rate TEXT NOT NULL,
            platform_fee INTEGER NOT NULL,
            reviewer_payout INTEGER NOT NULL,
            captured_at TEXT NOT NULL,
            CHECK (platform_fee + reviewer_payout = budget)
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS settlement_queue (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            request_id TEXT NOT NULL REFERENCES audit_requests (id),
            operation TEXT NOT NULL CHECK (operation IN ('capture', 'cancel')),
            hold_id TEXT NOT NULL,
            last_error TEXT NOT NULL,
            attempts INTEGER NOT NULL DEFAULT 1,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            resolved_at TEXT
        )
    """)

    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_queue_pending ON settlement_queue (resolved_at)"
    )

    conn.commit()
