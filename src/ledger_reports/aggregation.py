"""Aggregation of a user's transactions into a report record."""

from collections.abc import Iterable
from dataclasses import dataclass, field

from .models import (
    CategoryBucket,
    ReportEntry,
    ReportRecord,
    ReportWindow,
    Transaction,
    TransactionKind,
)


# Upper bound on top income/expense entries kept in a record. The renderer
# shows fewer.
REPORT_TOP_N = 5


@dataclass
class Aggregation:
    """Totals and breakdowns for one user's transactions within one window."""

    total_income: float = 0.0
    total_expense: float = 0.0
    transaction_count: int = 0
    categories: list[CategoryBucket] = field(default_factory=list)
    uncategorized_expense: float = 0.0
    top_incomes: list[ReportEntry] = field(default_factory=list)
    top_expenses: list[ReportEntry] = field(default_factory=list)


def _top(transactions: list[Transaction], kind: TransactionKind, n: int) -> list[ReportEntry]:
    # sorted() is stable with reverse=True, so equal amounts keep window order
    matching = [t for t in transactions if t.kind is kind]
    ranked = sorted(matching, key=lambda t: t.amount, reverse=True)[:n]
    return [ReportEntry(t.description, t.amount, t.timestamp) for t in ranked]


def aggregate(
    transactions: Iterable[Transaction],
    window: ReportWindow,
    top_n: int = REPORT_TOP_N,
) -> Aggregation:
    """Reduce transactions to totals, category buckets and top-N lists.

    Only transactions whose timestamp falls within the window (inclusive) are
    counted. They are put in window order (timestamp descending, input order
    on equal timestamps) before any ranking.

    Args:
        transactions: One user's transactions, in any order.
        window: Report window.
        top_n: Maximum length of the top income/expense lists.

    Returns:
        Aggregation. Empty input gives zero totals and empty lists.
    """
    in_window = [t for t in transactions if window.contains(t.timestamp)]
    in_window.sort(key=lambda t: t.timestamp, reverse=True)

    result = Aggregation(transaction_count=len(in_window))
    buckets: dict[str, CategoryBucket] = {}

    for tx in in_window:
        if tx.kind is TransactionKind.INCOME:
            result.total_income += tx.amount
            continue

        result.total_expense += tx.amount
        if tx.category is None:
            result.uncategorized_expense += tx.amount
            continue

        bucket = buckets.get(tx.category.name)
        if bucket is None:
            bucket = buckets[tx.category.name] = CategoryBucket(tx.category.name)
        bucket.amount += tx.amount

    # dict preserves first-seen order; stable sort keeps it on ties
    result.categories = sorted(buckets.values(), key=lambda b: b.amount, reverse=True)
    result.top_incomes = _top(in_window, TransactionKind.INCOME, top_n)
    result.top_expenses = _top(in_window, TransactionKind.EXPENSE, top_n)
    return result


def build_report(window: ReportWindow, aggregation: Aggregation) -> ReportRecord:
    """Assemble a report record from a window and its aggregation."""
    return ReportRecord(
        label=window.label,
        kind=window.kind,
        start=window.start,
        end=window.end,
        total_income=aggregation.total_income,
        total_expense=aggregation.total_expense,
        transaction_count=aggregation.transaction_count,
        categories=list(aggregation.categories),
        uncategorized_expense=aggregation.uncategorized_expense,
        top_incomes=list(aggregation.top_incomes),
        top_expenses=list(aggregation.top_expenses),
    )


def generate_report(
    transactions: Iterable[Transaction],
    window: ReportWindow,
    top_n: int = REPORT_TOP_N,
) -> ReportRecord:
    return build_report(window, aggregate(transactions, window, top_n))
