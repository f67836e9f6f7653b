"""Event journal: models, storage, typed logger and query CLI."""

from auditdesk.journal.logger import JournalLogger
from auditdesk.journal.models import EventType, JournalEntry
from auditdesk.journal.store import (
    init_journal_db,
    init_journal_table,
    insert_journal_entry,
    query_journal,
)

__all__ = [
    "EventType",
    "JournalEntry",
    "JournalLogger",
    "init_journal_db",
    "init_journal_table",
    "insert_journal_entry",
    "query_journal",
]
