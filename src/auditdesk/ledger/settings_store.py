"""Singleton platform settings row (fee rate) backed by SQLite."""

from __future__ import annotations

import sqlite3
from datetime import datetime
from decimal import Decimal

import structlog

from auditdesk.domain.models import PlatformSettings
from auditdesk.ledger.store import utc_now

logger = structlog.get_logger()


class PlatformSettingsStore:
    """Read and update the platform-wide fee rate.

    Updates are last-write-wins.  The rate is stored as decimal text so it
    round-trips without float error.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._conn.row_factory = sqlite3.Row

    def ensure_default(self, fee_rate: Decimal) -> None:
        """Insert *fee_rate* if no settings row exists yet."""
        PlatformSettings(fee_rate=fee_rate)  # range check
        self._conn.execute(
            "INSERT OR IGNORE INTO platform_settings (id, fee_rate, updated_at) "
            "VALUES (1, ?, ?)",
            (str(fee_rate), utc_now().isoformat()),
        )
        self._conn.commit()

    def get(self) -> PlatformSettings:
        """Return the current platform settings.

        Raises:
            LookupError: If the settings row was never initialised.
        """
        row = self._conn.execute(
            "SELECT fee_rate, updated_at, updated_by FROM platform_settings WHERE id = 1"
        ).fetchone()
        if row is None:
            raise LookupError("platform settings have not been initialised")
        return PlatformSettings(
            fee_rate=Decimal(row["fee_rate"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
            updated_by=row["updated_by"],
        )

    def get_fee_rate(self) -> Decimal:
        """Return the fee rate currently in force."""
        return self.get().fee_rate

    def set_fee_rate(self, fee_rate: Decimal, updated_by: str) -> PlatformSettings:
        """Replace the fee rate.

        Args:
            fee_rate: New rate in [0, 1].
            updated_by: Id of the administrator making the change.

        Returns:
            The stored settings.
        """
        settings = PlatformSettings(
            fee_rate=fee_rate, updated_at=utc_now(), updated_by=updated_by
        )
        self._conn.execute(
            """
            INSERT INTO platform_settings (id, fee_rate, updated_at, updated_by)
            VALUES (1, ?, ?, ?)
            ON CONFLICT (id) DO UPDATE SET
                fee_rate = excluded.fee_rate,
                updated_at = excluded.updated_at,
                updated_by = excluded.updated_by
            """,
            (
                str(settings.fee_rate),
                settings.updated_at.isoformat(),  # type: ignore[union-attr]
                updated_by,
            ),
        )
        self._conn.commit()
        logger.info("Fee rate updated", fee_rate=str(fee_rate), updated_by=updated_by)
        return settings
