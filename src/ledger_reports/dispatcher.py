"""Batch and on-demand delivery of ledger reports."""

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from datetime import date, datetime

from .aggregation import generate_report
from .audit import AuditLog
from .channel import MessageChannel, SendResult
from .config import Settings
from .database import Database
from .errors import (
    ChannelUnavailableError,
    NoDestinationConfigured,
    RunInProgressError,
    UserNotFound,
)
from .locales import get_locale
from .logging_setup import get_logger
from .models import (
    BatchRunSummary,
    DeliveryOutcome,
    DeliveryStatus,
    PeriodKind,
    ReportRecord,
    ReportWindow,
    User,
)
from .periods import parse_period_kind, resolve_previous_window, resolve_window
from .renderer import render_report_message


logger = get_logger(__name__)


class ReportDispatcher:
    """Builds reports and sends them through a message channel.

    A batch run walks eligible users one at a time. Each user ends up SENT,
    SKIPPED (no transactions in the window) or FAILED; failures are collected
    into the run summary and never stop the run. After every SENT or FAILED
    user the dispatcher sleeps for the kind's inter-send delay to stay under
    the channel's sending quota.
    """

    def __init__(
        self,
        db: Database,
        channel: MessageChannel,
        *,
        audit_log: AuditLog | None = None,
        settings: Settings | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """Initialize dispatcher.

        Args:
            db: Ledger store.
            channel: Outbound message channel.
            audit_log: Delivery log. Defaults to one backed by db.
            settings: Delays, locale and lock TTL. Defaults to Settings().
            sleep: Coroutine used for the inter-send delay.
            clock: Source of "now".
        """
        self.db = db
        self.channel = channel
        self.audit_log = audit_log if audit_log is not None else AuditLog(db)
        self.settings = settings if settings is not None else Settings()
        self.locale = get_locale(self.settings.locale)
        self.sleep = sleep
        self.clock = clock

    def delay_for(self, kind: PeriodKind) -> float:
        """Seconds to wait after each processed user."""
        if kind is PeriodKind.MONTHLY:
            return self.settings.monthly_delay
        return self.settings.weekly_delay

    # -------------------------------------------------------------------------
    # Batch
    # -------------------------------------------------------------------------

    async def run_batch(
        self,
        kind: PeriodKind | str,
        now: datetime | None = None,
    ) -> BatchRunSummary:
        """Send last period's report to every user with a WhatsApp number.

        Args:
            kind: "weekly" (last full Monday-Sunday week) or "monthly" (last month).
            now: Override for the current instant.

        Returns:
            BatchRunSummary with sent count, eligible count and per-user errors.

        Raises:
            InvalidPeriodKind: If kind is not weekly/monthly.
            RunInProgressError: If another run of the same kind holds the lock.
        """
        kind = parse_period_kind(kind)
        lock_name = f"batch:{kind.value}"
        holder = uuid.uuid4().hex

        if not self.db.acquire_lock(lock_name, holder, self.settings.lock_ttl):
            raise RunInProgressError(f"A {kind.value} report run is already in progress")

        try:
            return await self._run_batch(kind, now or self.clock())
        finally:
            self.db.release_lock(lock_name, holder)

    async def _run_batch(self, kind: PeriodKind, now: datetime) -> BatchRunSummary:
        users = self.db.find_eligible_users()
        summary = BatchRunSummary(total=len(users))
        if not users:
            logger.info("No users with WhatsApp found, nothing to send")
            return summary

        window = resolve_previous_window(kind, now, locale=self.locale)
        delay = self.delay_for(kind)
        logger.info("Sending %s reports for %s to %d users", kind.value, window.label, len(users))

        for user in users:
            outcome = await self._process_user(user, window)
            summary.outcomes.append(outcome)

            if outcome.status is DeliveryStatus.SKIPPED:
                continue
            if outcome.success:
                summary.sent += 1
            else:
                summary.errors.append(f"{user.name}: {outcome.error}")

            await self.sleep(delay)

        logger.info(
            "%s reports done: %d/%d sent, %d failed",
            kind.value.capitalize(), summary.sent, summary.total, len(summary.errors),
        )
        return summary

    async def _process_user(self, user: User, window: ReportWindow) -> DeliveryOutcome:
        try:
            transactions = self.db.find_transactions(user.id, window.start, window.end)
            if not transactions:
                logger.info("User %s has no transactions in %s, skipping", user.name, window.label)
                return DeliveryOutcome(
                    user_id=user.id,
                    status=DeliveryStatus.SKIPPED,
                    destination=user.destination,
                    timestamp=self.clock(),
                )
            report = generate_report(transactions, window)
            return await self._deliver(user, report)
        except Exception as e:  # per-user boundary: one user's failure never ends the run
            logger.exception("Error processing user %s", user.name)
            return DeliveryOutcome(
                user_id=user.id,
                status=DeliveryStatus.FAILED,
                destination=user.destination,
                timestamp=self.clock(),
                error=str(e) or type(e).__name__,
            )

    async def _deliver(self, user: User, report: ReportRecord) -> DeliveryOutcome:
        body = render_report_message(report, user.name, locale=self.locale)
        try:
            result = await self.channel.send(user.destination or "", body)
        except Exception as e:  # a channel that throws is a failed delivery
            logger.exception("Channel raised while sending to %s", user.name)
            result = SendResult(False, str(e) or type(e).__name__)
        sent_at = self.clock()

        if not result.success:
            error = result.error or "Failed to send message"
            logger.error("Error sending to %s: %s", user.name, error)
            return DeliveryOutcome(
                user_id=user.id,
                status=DeliveryStatus.FAILED,
                destination=user.destination,
                timestamp=sent_at,
                error=error,
            )

        logger.info("%s report sent to %s", report.kind.value.capitalize(), user.name)
        appended = self.audit_log.append(
            user.id, report.kind, report.label, sent_at, user.destination
        )
        if not appended.ok:
            logger.warning("Could not record delivery for %s: %s", user.name, appended.error)

        return DeliveryOutcome(
            user_id=user.id,
            status=DeliveryStatus.SENT,
            destination=user.destination,
            timestamp=sent_at,
        )

    # -------------------------------------------------------------------------
    # On demand
    # -------------------------------------------------------------------------

    def _require_user(self, user_id: str) -> User:
        user = self.db.get_user(user_id)
        if user is None:
            raise UserNotFound(f"User {user_id} not found")
        return user

    def build_single_report(
        self,
        user_id: str,
        kind: PeriodKind | str,
        reference: date | datetime | None = None,
    ) -> ReportRecord:
        """Report for the period containing reference (default now), without sending."""
        kind = parse_period_kind(kind)
        user = self._require_user(user_id)
        window = resolve_window(kind, reference or self.clock(), locale=self.locale)
        transactions = self.db.find_transactions(user.id, window.start, window.end)
        return generate_report(transactions, window)

    async def send_single_report(
        self,
        user_id: str,
        kind: PeriodKind | str,
        reference: date | datetime | None = None,
    ) -> DeliveryOutcome:
        """Build and send one user's report for the period containing reference.

        Unlike a batch run, a period without transactions is still sent as an
        all-zero report.

        Raises:
            InvalidPeriodKind: If kind is not weekly/monthly.
            UserNotFound: If the user does not exist.
            NoDestinationConfigured: If the user has no WhatsApp number.
            ChannelUnavailableError: If the channel has no credentials.
        """
        kind = parse_period_kind(kind)
        user = self._require_user(user_id)
        if not user.has_destination:
            raise NoDestinationConfigured(f"User {user.name} has no WhatsApp number")
        if not self.channel.configured:
            raise ChannelUnavailableError(self.locale.not_configured)

        report = self.build_single_report(user.id, kind, reference)
        return await self._deliver(user, report)
