"""SQLite-backed event journal with indexed queries.

The journal lives next to the ledger tables and is append-only.  All queries
are parameterized.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from auditdesk.journal.models import JournalEntry
from auditdesk.ledger.schema import connect_ledger


def init_journal_table(conn: sqlite3.Connection) -> None:
    """Create the journal table and its indexes if missing.

    Args:
        conn: An open sqlite3.Connection.
    """
    conn.execute("""
        CREATE TABLE IF NOT EXISTS journal (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            timestamp TEXT NOT NULL,
            event_type TEXT NOT NULL,
            request_id TEXT,
            actor_id TEXT,
            status TEXT,
            amount INTEGER,
            metadata TEXT
        )
    """)

    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_journal_request ON journal (request_id)"
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_journal_timestamp ON journal (timestamp)"
    )

    conn.commit()


def init_journal_db(db_path: Path) -> sqlite3.Connection:
    """Open the database at *db_path* and make sure the journal table exists.

    Returns:
        An open sqlite3.Connection with WAL mode enabled.
    """
    conn = connect_ledger(db_path)
    init_journal_table(conn)
    return conn


def insert_journal_entry(conn: sqlite3.Connection, entry: JournalEntry) -> int:
    """Append an entry to the journal.

    Args:
        conn: An open database connection.
        entry: The entry to insert.

    Returns:
        The row ID of the inserted entry.
    """
    metadata_json: str | None = None
    if entry.metadata is not None:
        metadata_json = json.dumps(entry.metadata)

    timestamp = datetime.now(tz=UTC).strftime("%Y-%m-%dT%H:%M:%SZ")

    cursor = conn.execute(
        """
        INSERT INTO journal (
            timestamp, event_type, request_id, actor_id, status, amount, metadata
        ) VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        (
            timestamp,
            entry.event_type.value,
            entry.request_id,
            entry.actor_id,
            entry.status,
            entry.amount,
            metadata_json,
        ),
    )
    conn.commit()
    return cursor.lastrowid or 0


def query_journal(
    conn: sqlite3.Connection,
    *,
    request_id: str | None = None,
    actor_id: str | None = None,
    from_date: str | None = None,
    to_date: str | None = None,
    event_type: str | None = None,
    limit: int = 50,
) -> list[dict[str, Any]]:
    """Query the journal with optional filters, newest first.

    Args:
        conn: An open database connection.
        request_id: Filter by audit request id.
        actor_id: Filter by the caller who triggered the event.
        from_date: Entries on or after this ISO 8601 date.
        to_date: Entries on or before this ISO 8601 date.
        event_type: Filter by event type.
        limit: Maximum number of results to return (default 50).

    Returns:
        A list of dicts, one per matching entry.
    """
    conn.row_factory = sqlite3.Row

    conditions: list[str] = []
    params: list[str | int] = []

    if request_id is not None:
        conditions.append("request_id = ?")
        params.append(request_id)

    if actor_id is not None:
        conditions.append("actor_id = ?")
        params.append(actor_id)

    if from_date is not None:
        conditions.append("timestamp >= ?")
        params.append(from_date)

    if to_date is not None:
        conditions.append("timestamp <= ?")
        params.append(to_date)

    if event_type is not None:
        conditions.append("event_type = ?")
        params.append(event_type)

    where_clause = ""
    if conditions:
        where_clause = "WHERE " + " AND ".join(conditions)

    query = f"SELECT * FROM journal {where_clause} ORDER BY timestamp DESC, id DESC LIMIT ?"
    params.append(limit)

    results: list[dict[str, Any]] = []
    for row in conn.execute(query, params).fetchall():
        row_dict = dict(row)
        if row_dict.get("metadata") is not None:
            row_dict["metadata"] = json.loads(row_dict["metadata"])
        results.append(row_dict)

    return results
