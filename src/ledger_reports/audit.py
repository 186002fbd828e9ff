"""Best-effort log of delivered reports."""

import sqlite3
from dataclasses import dataclass
from datetime import datetime

from .database import Database
from .models import PeriodKind


@dataclass(frozen=True)
class AppendResult:
    ok: bool
    error: str | None = None


class AuditLog:
    """Append-only history of sent reports backed by the reports_sent table."""

    def __init__(self, db: Database):
        self.db = db

    def append(
        self,
        user_id: str,
        kind: PeriodKind,
        label: str,
        timestamp: datetime,
        destination: str | None,
    ) -> AppendResult:
        """Record a successful send.

        Storage errors are returned in the result instead of raised; a failed
        append must never undo or abort a delivery.
        """
        try:
            self.db.insert_report_sent(user_id, kind, label, timestamp, destination)
        except sqlite3.Error as e:
            return AppendResult(False, str(e))
        return AppendResult(True)
