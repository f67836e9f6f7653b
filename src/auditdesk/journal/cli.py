"""Operator CLI over the ledger database.

Three read-only views:

- ``events``: journal entries across requests, newest first.
- ``trail``: one request's current state, its journal history oldest first,
  and its settlement or pending escrow retry.
- ``queue``: escrow operations waiting for an operator retry.

Usage::

    auditdesk-journal events --event-type capture_failed --since 24h
    auditdesk-journal trail 3f2c9a... --json
    auditdesk-journal queue --db /var/lib/auditdesk/ledger.db
"""

from __future__ import annotations

import argparse
import json
import re
import sqlite3
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from auditdesk.journal.models import EventType
from auditdesk.journal.store import query_journal
from auditdesk.ledger.schema import connect_ledger
from auditdesk.ledger.settlements import SettlementQueue, SettlementStore
from auditdesk.ledger.store import RequestLedger

_SINCE_PATTERN = re.compile(r"^(\d+)([mhd])$")
_SINCE_UNITS = {"m": "minutes", "h": "hours", "d": "days"}

EVENT_COLUMNS: list[tuple[str, int]] = [
    ("timestamp", 20),
    ("event_type", 20),
    ("request_id", 36),
    ("actor_id", 16),
    ("amount", 8),
]
QUEUE_COLUMNS: list[tuple[str, int]] = [
    ("id", 5),
    ("operation", 9),
    ("request_id", 36),
    ("hold_id", 28),
    ("attempts", 8),
    ("last_error", 40),
]


def since_timestamp(since: str, now: datetime | None = None) -> str:
    """Turn ``30m``, ``24h`` or ``7d`` into the journal's timestamp format.

    Raises:
        ValueError: If *since* is not a count followed by m, h or d.
    """
    match = _SINCE_PATTERN.match(since)
    if match is None:
        raise ValueError(f"expected a duration like 30m, 24h or 7d, got {since!r}")
    delta = timedelta(**{_SINCE_UNITS[match.group(2)]: int(match.group(1))})
    return ((now or datetime.now(tz=UTC)) - delta).strftime("%Y-%m-%dT%H:%M:%SZ")


def render_rows(rows: Sequence[dict[str, Any]], columns: list[tuple[str, int]]) -> str:
    """Fixed-width table; cells wider than their column end in ``~``."""
    if not rows:
        return "(none)"

    def cell(value: Any, width: int) -> str:
        text = "" if value is None else str(value)
        return (text if len(text) <= width else text[: width - 1] + "~").ljust(width)

    header = " | ".join(name.ljust(width) for name, width in columns)
    body = [" | ".join(cell(row.get(name), width) for name, width in columns) for row in rows]
    return "\n".join([header, "=" * len(header), *body])


def _events(conn: sqlite3.Connection, args: argparse.Namespace) -> Any:
    rows = query_journal(
        conn,
        request_id=args.request,
        actor_id=args.actor,
        event_type=args.event_type,
        from_date=since_timestamp(args.since) if args.since else None,
        limit=args.limit,
    )
    return rows if args.json else render_rows(rows, EVENT_COLUMNS)


def _trail(conn: sqlite3.Connection, args: argparse.Namespace) -> Any:
    request = RequestLedger(conn).get_request(args.request_id)
    if request is None:
        raise LookupError(f"no audit request {args.request_id}")

    history = list(reversed(query_journal(conn, request_id=request.id, limit=1000)))
    settlement = SettlementStore(conn).get(request.id)
    pending = [
        entry
        for entry in SettlementQueue(conn).list_pending(limit=1000)
        if entry.request_id == request.id
    ]

    if args.json:
        return {
            "request": request.model_dump(mode="json", exclude={"content"}),
            "history": history,
            "settlement": settlement.model_dump(mode="json") if settlement else None,
            "pending": [entry.model_dump(mode="json") for entry in pending],
        }

    lines = [
        f"{request.id}  {request.status}  budget={request.budget}  "
        f"client={request.client_id}  reviewer={request.reviewer_id or '-'}",
        "",
        render_rows(history, EVENT_COLUMNS),
    ]
    if settlement is not None:
        lines += [
            "",
            f"settled: fee={settlement.platform_fee} payout={settlement.reviewer_payout} "
            f"rate={settlement.fee_rate} receipt={settlement.receipt_id}",
        ]
    if pending:
        lines += ["", render_rows([e.model_dump() for e in pending], QUEUE_COLUMNS)]
    return "\n".join(lines)


def _queue(conn: sqlite3.Connection, args: argparse.Namespace) -> Any:
    pending = SettlementQueue(conn).list_pending(args.limit)
    entries = [entry.model_dump(mode="json") for entry in pending]
    return entries if args.json else render_rows(entries, QUEUE_COLUMNS)


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--db", type=Path, default=Path("data/auditdesk.db"), help="ledger database")
    common.add_argument("--json", action="store_true", help="print JSON instead of a table")

    parser = argparse.ArgumentParser(prog="auditdesk-journal", description="Read the audit ledger")
    commands = parser.add_subparsers(dest="command", required=True)

    events = commands.add_parser("events", parents=[common], help="journal entries, newest first")
    events.add_argument("--request", help="audit request id")
    events.add_argument("--actor", help="caller id that caused the event")
    events.add_argument("--event-type", choices=[e.value for e in EventType])
    events.add_argument("--since", help="only the last 30m / 24h / 7d")
    events.add_argument("--limit", type=int, default=50)
    events.set_defaults(handler=_events)

    trail = commands.add_parser("trail", parents=[common], help="one request's full history")
    trail.add_argument("request_id")
    trail.set_defaults(handler=_trail)

    queue = commands.add_parser("queue", parents=[common], help="escrow operations awaiting retry")
    queue.add_argument("--limit", type=int, default=100)
    queue.set_defaults(handler=_queue)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Run one view and print it.  Returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.db.exists():
        parser.exit(1, f"no ledger database at {args.db}\n")

    conn = connect_ledger(args.db)
    try:
        result = args.handler(conn, args)
    except (LookupError, ValueError) as exc:
        parser.exit(1, f"{exc}\n")
    finally:
        conn.close()

    print(json.dumps(result, indent=2) if args.json else result)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
