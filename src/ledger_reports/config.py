"""Environment-driven settings."""

import os
from dataclasses import dataclass
from pathlib import Path

from .locales import get_locale


class SettingsError(RuntimeError):
    """Raised when an environment variable holds an unusable value."""


def default_db_path() -> Path:
    return Path.home() / ".cache" / "ledger-reports" / "ledger.db"


@dataclass(frozen=True)
class Settings:
    db_path: str = ":memory:"
    twilio_account_sid: str | None = None
    twilio_auth_token: str | None = None
    twilio_whatsapp_number: str | None = None
    cron_secret: str | None = None
    locale: str = "pt_BR"
    country_code: str = "55"
    weekly_delay: float = 1.0
    monthly_delay: float = 2.0
    http_timeout: float = 30.0
    lock_ttl: float = 3600.0


def _parse_float(raw: str | None, default: float, name: str, *, positive: bool = False) -> float:
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise SettingsError(f"{name} must be a number, got {raw!r}") from e
    if positive and value <= 0:
        raise SettingsError(f"{name} must be greater than zero, got {raw!r}")
    if value < 0:
        raise SettingsError(f"{name} must not be negative, got {raw!r}")
    return value


def load_settings(environ: dict[str, str] | None = None) -> Settings:
    """Read settings from the environment.

    Raises:
        SettingsError: On malformed numeric values or an unknown locale.
    """
    env = os.environ if environ is None else environ

    locale = env.get("REPORT_LOCALE") or "pt_BR"
    try:
        locale = get_locale(locale).code
    except ValueError as e:
        raise SettingsError(str(e)) from e

    return Settings(
        db_path=env.get("LEDGER_REPORTS_DB") or str(default_db_path()),
        twilio_account_sid=env.get("TWILIO_ACCOUNT_SID") or None,
        twilio_auth_token=env.get("TWILIO_AUTH_TOKEN") or None,
        twilio_whatsapp_number=env.get("TWILIO_WHATSAPP_NUMBER") or None,
        cron_secret=env.get("CRON_SECRET") or None,
        locale=locale,
        country_code=env.get("REPORT_COUNTRY_CODE") or "55",
        weekly_delay=_parse_float(env.get("REPORT_WEEKLY_DELAY"), 1.0, "REPORT_WEEKLY_DELAY"),
        monthly_delay=_parse_float(env.get("REPORT_MONTHLY_DELAY"), 2.0, "REPORT_MONTHLY_DELAY"),
        http_timeout=_parse_float(env.get("REPORT_HTTP_TIMEOUT"), 30.0, "REPORT_HTTP_TIMEOUT"),
        lock_ttl=_parse_float(
            env.get("REPORT_LOCK_TTL"), 3600.0, "REPORT_LOCK_TTL", positive=True
        ),
    )
