"""Locale rules for report labels, currency values and message text."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Locale:
    code: str
    month_names: tuple[str, ...]
    week_label: str  # formatted with start="DD/MM", end="DD/MM/YYYY"
    currency_symbol: str
    symbol_separator: str
    thousands_separator: str
    decimal_separator: str
    # Message strings
    title: str
    summary: str
    income: str
    expense: str
    result: str
    transaction_count: str
    by_category: str
    top_incomes: str
    top_expenses: str
    brand: str
    tagline: str
    sent_ok: str
    weekly_done: str
    monthly_done: str
    no_users: str
    not_configured: str


PT_BR = Locale(
    code="pt_BR",
    month_names=(
        "janeiro", "fevereiro", "março", "abril", "maio", "junho",
        "julho", "agosto", "setembro", "outubro", "novembro", "dezembro",
    ),
    week_label="Semana de {start} a {end}",
    currency_symbol="R$",
    symbol_separator="\xa0",
    thousands_separator=".",
    decimal_separator=",",
    title="RELATÓRIO FINANCEIRO",
    summary="RESUMO GERAL",
    income="Entradas",
    expense="Saídas",
    result="Resultado",
    transaction_count="Total de transações",
    by_category="GASTOS POR CATEGORIA",
    top_incomes="PRINCIPAIS ENTRADAS",
    top_expenses="PRINCIPAIS DESPESAS",
    brand="Connect Financeiro",
    tagline="Seu controle financeiro sempre em dia!",
    sent_ok="Relatório enviado com sucesso via WhatsApp",
    weekly_done="Relatórios semanais processados",
    monthly_done="Relatórios mensais processados",
    no_users="Nenhum usuário com WhatsApp encontrado",
    not_configured="WhatsApp não configurado. Verifique as variáveis de ambiente.",
)

EN_US = Locale(
    code="en_US",
    month_names=(
        "january", "february", "march", "april", "may", "june",
        "july", "august", "september", "october", "november", "december",
    ),
    week_label="Week of {start} to {end}",
    currency_symbol="$",
    symbol_separator="",
    thousands_separator=",",
    decimal_separator=".",
    title="FINANCIAL REPORT",
    summary="SUMMARY",
    income="Income",
    expense="Expenses",
    result="Balance",
    transaction_count="Transactions",
    by_category="SPENDING BY CATEGORY",
    top_incomes="TOP INCOME",
    top_expenses="TOP EXPENSES",
    brand="Connect Financeiro",
    tagline="Your finances, always up to date!",
    sent_ok="Report sent via WhatsApp",
    weekly_done="Weekly reports processed",
    monthly_done="Monthly reports processed",
    no_users="No users with WhatsApp found",
    not_configured="WhatsApp is not configured. Check the environment variables.",
)

LOCALES = {locale.code: locale for locale in (PT_BR, EN_US)}

DEFAULT_LOCALE = PT_BR


def get_locale(code: str | None) -> Locale:
    """Look up a locale by code, e.g. "pt_BR" or "en-US"."""
    if not code:
        return DEFAULT_LOCALE
    normalized = code.replace("-", "_")
    if normalized not in LOCALES:
        raise ValueError(f"Unsupported locale: {code}. Use one of {sorted(LOCALES)}")
    return LOCALES[normalized]


def format_currency(amount: float, locale: Locale = DEFAULT_LOCALE) -> str:
    """Format amount with two decimals, currency symbol and thousands separator.

    pt_BR renders 1234.5 as "R$\\xa01.234,50", en_US as "$1,234.50".
    """
    digits = f"{abs(amount):,.2f}"
    integer, _, fraction = digits.partition(".")
    integer = integer.replace(",", locale.thousands_separator)
    number = f"{integer}{locale.decimal_separator}{fraction}"
    sign = "-" if round(amount, 2) < 0 else ""
    return f"{sign}{locale.currency_symbol}{locale.symbol_separator}{number}"


def month_label(year: int, month: int, locale: Locale = DEFAULT_LOCALE) -> str:
    """Month name plus year, first letter capitalized ("Março 2024")."""
    label = f"{locale.month_names[month - 1]} {year}"
    return label[0].upper() + label[1:]
