"""MCP server exposing scheduled and on-demand ledger reports."""

import json
from pathlib import Path
from typing import Any

from mcp.server import Server
from mcp.types import Resource, TextContent, Tool

from .channel import WhatsAppChannel
from .config import Settings, load_settings
from .database import Database
from .dispatcher import ReportDispatcher
from .errors import ReportError, RunInProgressError
from .locales import get_locale
from .logging_setup import configure_logging, get_logger
from .models import PeriodKind
from .utils import parse_reference_date, verify_secret


logger = get_logger(__name__)

# Initialize MCP server
server = Server("ledger-reports")

# Global state
_settings: Settings | None = None
_db: Database | None = None
_dispatcher: ReportDispatcher | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def get_db() -> Database:
    """Get or create database instance."""
    global _db
    if _db is None:
        db_path = get_settings().db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        _db = Database(db_path)
        _db.init_schema()
    return _db


def get_dispatcher() -> ReportDispatcher:
    """Get or create the dispatcher with a Twilio channel built from settings."""
    global _dispatcher
    if _dispatcher is None:
        settings = get_settings()
        channel = WhatsAppChannel(
            settings.twilio_account_sid,
            settings.twilio_auth_token,
            settings.twilio_whatsapp_number,
            country_code=settings.country_code,
            timeout=settings.http_timeout,
            not_configured_message=get_locale(settings.locale).not_configured,
        )
        _dispatcher = ReportDispatcher(get_db(), channel, settings=settings)
    return _dispatcher


def init_for_testing(dispatcher: ReportDispatcher, settings: Settings | None = None) -> None:
    """Initialize server with a prepared dispatcher (and its database).

    Args:
        dispatcher: Dispatcher to use, usually wired to a fake channel.
        settings: Settings holding the cron secret. Defaults to dispatcher.settings.
    """
    global _settings, _db, _dispatcher
    _dispatcher = dispatcher
    _db = dispatcher.db
    _settings = settings if settings is not None else dispatcher.settings


# ============================================================================
# Handlers
# ============================================================================

async def run_scheduled_reports(kind: PeriodKind, secret: str | None) -> dict[str, Any]:
    """Scheduled batch entry point, authorized by the shared cron secret.

    Per-user failures are reported in "errors"; the call itself only fails
    when unauthorized or when a run of the same kind is already going.
    """
    settings = get_settings()
    if not verify_secret(secret, settings.cron_secret):
        logger.warning("Rejected %s report run: bad secret", kind.value)
        return {"error": "Unauthorized"}

    dispatcher = get_dispatcher()
    locale = dispatcher.locale
    try:
        summary = await dispatcher.run_batch(kind)
    except RunInProgressError as e:
        return {"error": str(e)}

    if summary.total == 0:
        return {"message": locale.no_users, "sent": 0}

    done = locale.monthly_done if kind is PeriodKind.MONTHLY else locale.weekly_done
    return summary.to_dict(done)


async def send_report_now(
    user_id: str | None,
    kind: str | None,
    date: str | None = None,
) -> dict[str, Any]:
    """On-demand send of the authenticated user's report."""
    dispatcher = get_dispatcher()
    try:
        outcome = await dispatcher.send_single_report(
            user_id or "", kind, parse_reference_date(date)
        )
    except ReportError as e:
        return {"success": False, "error": str(e)}

    if not outcome.success:
        return {"success": False, "error": outcome.error}
    return {"success": True, "message": dispatcher.locale.sent_ok}


def get_report(
    user_id: str | None,
    kind: str | None,
    date: str | None = None,
) -> dict[str, Any]:
    """Report record for the period containing date, without sending."""
    dispatcher = get_dispatcher()
    try:
        report = dispatcher.build_single_report(user_id or "", kind, parse_reference_date(date))
    except ReportError as e:
        return {"error": str(e)}
    return report.to_dict()


# ============================================================================
# Tools
# ============================================================================

_SECRET_SCHEMA = {
    "type": "object",
    "properties": {
        "secret": {
            "type": "string",
            "description": "Shared scheduler secret (CRON_SECRET)",
        },
    },
    "required": ["secret"],
}

_USER_REPORT_SCHEMA = {
    "type": "object",
    "properties": {
        "user_id": {
            "type": "string",
            "description": "Authenticated user ID",
        },
        "type": {
            "type": "string",
            "enum": ["weekly", "monthly"],
            "description": "Report period",
        },
        "date": {
            "type": "string",
            "description": "Reference date 'YYYY-MM-DD'. Defaults to today.",
        },
    },
    "required": ["user_id", "type"],
}


@server.list_tools()
async def list_tools() -> list[Tool]:
    """List available tools."""
    return [
        Tool(
            name="send_weekly_reports",
            description="Send last week's report (Monday-Sunday) to every user with WhatsApp.",
            inputSchema=_SECRET_SCHEMA,
        ),
        Tool(
            name="send_monthly_reports",
            description="Send last month's report to every user with WhatsApp.",
            inputSchema=_SECRET_SCHEMA,
        ),
        Tool(
            name="send_report",
            description="Send one user's weekly or monthly report via WhatsApp now.",
            inputSchema=_USER_REPORT_SCHEMA,
        ),
        Tool(
            name="get_report",
            description="Get one user's weekly or monthly report: totals, spending by category, top incomes and expenses.",
            inputSchema=_USER_REPORT_SCHEMA,
        ),
    ]


@server.call_tool()
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    if name == "send_weekly_reports":
        result = await run_scheduled_reports(PeriodKind.WEEKLY, arguments.get("secret"))

    elif name == "send_monthly_reports":
        result = await run_scheduled_reports(PeriodKind.MONTHLY, arguments.get("secret"))

    elif name == "send_report":
        result = await send_report_now(
            arguments.get("user_id"),
            arguments.get("type"),
            date=arguments.get("date"),
        )

    elif name == "get_report":
        result = get_report(
            arguments.get("user_id"),
            arguments.get("type"),
            date=arguments.get("date"),
        )

    else:
        raise ValueError(f"Unknown tool: {name}")

    return [TextContent(type="text", text=json.dumps(result, ensure_ascii=False, indent=2))]


# ============================================================================
# Resources
# ============================================================================

@server.list_resources()
async def list_resources() -> list[Resource]:
    return [
        Resource(
            uri="ledger-reports://recent-deliveries",
            name="Recent deliveries",
            description="Most recently delivered reports",
            mimeType="application/json",
        ),
    ]


@server.read_resource()
async def read_resource(uri: str) -> str:
    """Read resource content."""
    db = get_db()

    if str(uri) == "ledger-reports://recent-deliveries":
        result = db.recent_reports_sent()
    else:
        raise ValueError(f"Unknown resource: {uri}")

    return json.dumps(result, ensure_ascii=False, indent=2)


# ============================================================================
# Main
# ============================================================================

def main() -> None:
    """Run the MCP server."""
    import asyncio

    from mcp.server.stdio import stdio_server

    configure_logging()

    async def run():
        async with stdio_server() as (read_stream, write_stream):
            await server.run(read_stream, write_stream, server.create_initialization_options())

    asyncio.run(run())


if __name__ == "__main__":
    main()
