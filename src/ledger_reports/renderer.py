"""Render a report record as a WhatsApp text message."""

from .locales import DEFAULT_LOCALE, Locale, format_currency
from .models import ReportEntry, ReportRecord


CATEGORY_MARKERS = ("🥇", "🥈", "🥉", "4️⃣", "5️⃣")
TOP_MARKERS = ("🥇", "🥈", "🥉")

MAX_CATEGORIES = len(CATEGORY_MARKERS)
MAX_TOP_ENTRIES = len(TOP_MARKERS)


def _entry_lines(entries: list[ReportEntry], locale: Locale) -> list[str]:
    return [
        f"{marker} {entry.description}: {format_currency(entry.amount, locale)}"
        for marker, entry in zip(TOP_MARKERS, entries[:MAX_TOP_ENTRIES])
    ]


def render_report_message(
    report: ReportRecord,
    display_name: str,
    *,
    locale: Locale = DEFAULT_LOCALE,
) -> str:
    """Build the message body for a report.

    Sections are header, summary, spending by category (top 5), top incomes
    (top 3), top expenses (top 3) and footer. Sections whose list is empty are
    left out entirely.
    """
    lines = [
        f"📊 *{locale.title}*",
        f"👤 {display_name}",
        f"📅 {report.label}",
        "",
        f"💰 *{locale.summary}*",
        f"💚 {locale.income}: {format_currency(report.total_income, locale)}",
        f"💸 {locale.expense}: {format_currency(report.total_expense, locale)}",
        f"{'✅' if report.balance >= 0 else '❌'} {locale.result}: "
        f"{format_currency(report.balance, locale)}",
        f"📋 {locale.transaction_count}: {report.transaction_count}",
        "",
    ]

    if report.categories:
        lines.append(f"📊 *{locale.by_category}*")
        for marker, bucket in zip(CATEGORY_MARKERS, report.categories[:MAX_CATEGORIES]):
            lines.append(f"{marker} {bucket.category}: {format_currency(bucket.amount, locale)}")
        lines.append("")

    if report.top_incomes:
        lines.append(f"💚 *{locale.top_incomes}*")
        lines.extend(_entry_lines(report.top_incomes, locale))
        lines.append("")

    if report.top_expenses:
        lines.append(f"💸 *{locale.top_expenses}*")
        lines.extend(_entry_lines(report.top_expenses, locale))
        lines.append("")

    lines.append(f"🚀 *{locale.brand}*")
    lines.append(locale.tagline)
    return "\n".join(lines)
