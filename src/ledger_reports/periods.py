"""Period resolution: period kind + reference instant -> report window."""

from datetime import date, datetime, time, timedelta

from .errors import InvalidPeriodKind
from .locales import DEFAULT_LOCALE, Locale, month_label
from .models import PeriodKind, ReportWindow


def parse_period_kind(value: PeriodKind | str | None) -> PeriodKind:
    """Convert "weekly"/"monthly" (any case) to PeriodKind.

    Raises:
        InvalidPeriodKind: For anything else, including None.
    """
    if isinstance(value, PeriodKind):
        return value
    if isinstance(value, str):
        try:
            return PeriodKind(value.strip().lower())
        except ValueError:
            pass
    raise InvalidPeriodKind(value)


def _as_datetime(reference: date | datetime | None) -> datetime:
    if reference is None:
        return datetime.now()
    if isinstance(reference, datetime):
        return reference
    return datetime.combine(reference, time.min)


def _last_day_of_month(day: date) -> date:
    if day.month == 12:
        return day.replace(year=day.year + 1, month=1, day=1) - timedelta(days=1)
    return day.replace(month=day.month + 1, day=1) - timedelta(days=1)


def resolve_window(
    kind: PeriodKind | str,
    reference: date | datetime | None = None,
    *,
    locale: Locale = DEFAULT_LOCALE,
) -> ReportWindow:
    """Resolve the window of the period containing the reference instant.

    Weeks start on Monday. Both bounds are inclusive: the window ends at the
    last microsecond of Sunday (weekly) or of the month's last day (monthly).

    Args:
        kind: Period kind.
        reference: Reference instant. Defaults to now.
        locale: Locale used for the label.

    Returns:
        ReportWindow with start, end and display label.
    """
    kind = parse_period_kind(kind)
    ref = _as_datetime(reference).date()

    if kind is PeriodKind.WEEKLY:
        first = ref - timedelta(days=ref.weekday())
        last = first + timedelta(days=6)
        label = locale.week_label.format(
            start=first.strftime("%d/%m"),
            end=last.strftime("%d/%m/%Y"),
        )
    else:
        first = ref.replace(day=1)
        last = _last_day_of_month(first)
        label = month_label(first.year, first.month, locale)

    return ReportWindow(
        kind=kind,
        start=datetime.combine(first, time.min),
        end=datetime.combine(last, time.max),
        label=label,
    )


def resolve_previous_window(
    kind: PeriodKind | str,
    now: date | datetime | None = None,
    *,
    locale: Locale = DEFAULT_LOCALE,
) -> ReportWindow:
    """Resolve the last full period before now (last week / last month)."""
    kind = parse_period_kind(kind)
    current = _as_datetime(now)

    if kind is PeriodKind.WEEKLY:
        reference = current - timedelta(weeks=1)
    else:
        reference = current.replace(day=1) - timedelta(days=1)

    return resolve_window(kind, reference, locale=locale)


def sunday_week_range(reference: date | datetime | None = None) -> tuple[datetime, datetime]:
    """Sunday-to-Saturday week containing the reference date.

    Used only by ad hoc range filters. Report windows always start on Monday,
    so this range does not match resolve_window(WEEKLY) for the same date.
    """
    ref = _as_datetime(reference).date()
    first = ref - timedelta(days=(ref.weekday() + 1) % 7)
    last = first + timedelta(days=6)
    return datetime.combine(first, time.min), datetime.combine(last, time.max)
