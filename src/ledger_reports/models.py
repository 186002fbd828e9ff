"""Data model for ledger reports."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class TransactionKind(str, Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class PeriodKind(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"


@dataclass(frozen=True)
class Category:
    id: str
    name: str
    color: str | None = None
    user_id: str | None = None


@dataclass(frozen=True)
class Transaction:
    """A ledger entry as read from the store. Amounts are always positive."""

    id: str
    description: str
    amount: float
    kind: TransactionKind
    timestamp: datetime
    user_id: str
    category: Category | None = None


@dataclass(frozen=True)
class User:
    id: str
    name: str
    destination: str | None = None

    @property
    def has_destination(self) -> bool:
        return bool(self.destination and self.destination.strip())


@dataclass(frozen=True)
class ReportWindow:
    """Inclusive time range [start, end] with its display label."""

    kind: PeriodKind
    start: datetime
    end: datetime
    label: str

    def contains(self, ts: datetime) -> bool:
        return self.start <= ts <= self.end


@dataclass
class CategoryBucket:
    category: str
    amount: float = 0.0


@dataclass(frozen=True)
class ReportEntry:
    description: str
    amount: float
    timestamp: datetime


@dataclass
class ReportRecord:
    label: str
    kind: PeriodKind
    start: datetime
    end: datetime
    total_income: float
    total_expense: float
    transaction_count: int
    categories: list[CategoryBucket] = field(default_factory=list)
    uncategorized_expense: float = 0.0
    top_incomes: list[ReportEntry] = field(default_factory=list)
    top_expenses: list[ReportEntry] = field(default_factory=list)

    @property
    def balance(self) -> float:
        return self.total_income - self.total_expense

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready representation."""
        return {
            "period": self.label,
            "type": self.kind.value,
            "start_date": self.start.isoformat(),
            "end_date": self.end.isoformat(),
            "summary": {
                "total_income": self.total_income,
                "total_expense": self.total_expense,
                "balance": self.balance,
                "transaction_count": self.transaction_count,
            },
            "expenses_by_category": [
                {"category": b.category, "amount": b.amount} for b in self.categories
            ],
            "uncategorized_expense": self.uncategorized_expense,
            "top_incomes": [_entry_dict(e) for e in self.top_incomes],
            "top_expenses": [_entry_dict(e) for e in self.top_expenses],
        }


def _entry_dict(entry: ReportEntry) -> dict[str, Any]:
    return {
        "description": entry.description,
        "amount": entry.amount,
        "date": entry.timestamp.isoformat(),
    }


class DeliveryStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class DeliveryOutcome:
    user_id: str
    status: DeliveryStatus
    destination: str | None
    timestamp: datetime
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.status is DeliveryStatus.SENT


@dataclass
class BatchRunSummary:
    sent: int = 0
    total: int = 0
    errors: list[str] = field(default_factory=list)
    outcomes: list[DeliveryOutcome] = field(default_factory=list)

    def to_dict(self, message: str) -> dict[str, Any]:
        result: dict[str, Any] = {
            "message": message,
            "sent": self.sent,
            "total": self.total,
        }
        if self.errors:
            result["errors"] = list(self.errors)
        return result
