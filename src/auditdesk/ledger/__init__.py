"""Request ledger: SQLite schema, request store, settings and settlement records."""

from auditdesk.ledger.schema import connect_ledger, init_ledger_db, init_settlement_tables
from auditdesk.ledger.settings_store import PlatformSettingsStore
from auditdesk.ledger.settlements import (
    QueueEntry,
    QueueOperation,
    SettlementQueue,
    SettlementRecord,
    SettlementStore,
)
from auditdesk.ledger.store import RequestLedger, utc_now

__all__ = [
    "PlatformSettingsStore",
    "QueueEntry",
    "QueueOperation",
    "RequestLedger",
    "SettlementQueue",
    "SettlementRecord",
    "SettlementStore",
    "connect_ledger",
    "init_ledger_db",
    "init_settlement_tables",
    "utc_now",
]
