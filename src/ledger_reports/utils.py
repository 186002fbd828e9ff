"""Small helpers shared by the trigger surface."""

import hmac
from datetime import date, datetime

from .errors import InvalidReferenceDate


def parse_reference_date(value: str | date | datetime | None) -> datetime | None:
    """Parse an optional ISO date or datetime string.

    Args:
        value: "2024-03-15", "2024-03-15T10:00:00", a date/datetime, or None.

    Returns:
        Naive datetime, or None when value is None or blank.

    Raises:
        InvalidReferenceDate: If the string is not ISO formatted.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError as e:
        raise InvalidReferenceDate(f"Invalid date {value!r}, expected YYYY-MM-DD") from e
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def verify_secret(provided: str | None, expected: str | None) -> bool:
    """Constant-time comparison of a shared secret. Unset secrets never match."""
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())
