"""Tests for batch and on-demand report delivery."""

from datetime import datetime

import pytest

from ledger_reports.audit import AppendResult, AuditLog
from ledger_reports.config import Settings
from ledger_reports.database import Database
from ledger_reports.dispatcher import ReportDispatcher
from ledger_reports.errors import (
    ChannelUnavailableError,
    InvalidPeriodKind,
    NoDestinationConfigured,
    RunInProgressError,
    UserNotFound,
)
from ledger_reports.models import DeliveryStatus, PeriodKind

from conftest import ANA_PHONE, BRUNO_PHONE, FakeChannel, RecordingSleep


CAIO_PHONE = "31 98888-7777"


def add_caio(db: Database) -> None:
    db.upsert_users([{"id": "u-caio", "name": "Caio", "whatsapp": CAIO_PHONE}])
    db.upsert_transactions([
        {"id": "tx-c1", "description": "Books", "amount": 80.0, "type": "EXPENSE",
         "date": "2024-03-21T10:00:00", "userId": "u-caio"},
    ])


class TestMonthlyBatch:
    """Test a monthly run over last month (March 2024)."""

    @pytest.mark.asyncio
    async def test_sends_to_all_active_users(
        self, dispatcher: ReportDispatcher, channel: FakeChannel, populated_db: Database
    ):
        summary = await dispatcher.run_batch("monthly")

        assert summary.sent == 2
        assert summary.total == 2
        assert summary.errors == []
        assert [d for d, _ in channel.sent] == [ANA_PHONE, BRUNO_PHONE]
        assert [o.status for o in summary.outcomes] == [DeliveryStatus.SENT, DeliveryStatus.SENT]
        assert populated_db.count_table("reports_sent") == 2

    @pytest.mark.asyncio
    async def test_message_content(self, dispatcher: ReportDispatcher, channel: FakeChannel):
        await dispatcher.run_batch(PeriodKind.MONTHLY)

        ana_body = channel.sent[0][1]
        assert "👤 Ana" in ana_body
        assert "📅 Março 2024" in ana_body
        assert "💚 Entradas: R$\xa0500,00" in ana_body
        assert "💸 Saídas: R$\xa0150,00" in ana_body
        assert "🥇 Fuel: R$\xa0150,00" in ana_body
        # February expense is outside the window
        assert "Old rent" not in ana_body

    @pytest.mark.asyncio
    async def test_delay_after_each_processed_user(
        self, dispatcher: ReportDispatcher, recording_sleep: RecordingSleep
    ):
        await dispatcher.run_batch("monthly")
        assert recording_sleep.calls == [2.0, 2.0]

    @pytest.mark.asyncio
    async def test_audit_rows(self, dispatcher: ReportDispatcher, populated_db: Database):
        await dispatcher.run_batch("monthly")

        rows = populated_db.recent_reports_sent()
        assert {r["user_id"] for r in rows} == {"u-ana", "u-bruno"}
        assert all(r["type"] == "monthly" and r["period"] == "Março 2024" for r in rows)

    @pytest.mark.asyncio
    async def test_rerun_keeps_one_audit_row_per_period(
        self, dispatcher: ReportDispatcher, populated_db: Database
    ):
        await dispatcher.run_batch("monthly")
        await dispatcher.run_batch("monthly")
        assert populated_db.count_table("reports_sent") == 2


class TestWeeklyBatch:
    """Test a weekly run over last week."""

    @pytest.mark.asyncio
    async def test_user_without_activity_is_skipped(
        self,
        populated_db: Database,
        channel: FakeChannel,
        recording_sleep: RecordingSleep,
        settings: Settings,
    ):
        dispatcher = ReportDispatcher(
            populated_db, channel, settings=settings, sleep=recording_sleep
        )

        # last week is 2024-03-04..03-10: Ana has two entries, Bruno none
        summary = await dispatcher.run_batch("weekly", now=datetime(2024, 3, 13, 8, 0))

        assert summary.sent == 1
        assert summary.total == 2
        assert summary.errors == []
        assert [o.status for o in summary.outcomes] == [DeliveryStatus.SENT, DeliveryStatus.SKIPPED]
        assert recording_sleep.calls == [1.0]
        assert "Semana de 04/03 a 10/03/2024" in channel.sent[0][1]
        assert "📋 Total de transações: 2" in channel.sent[0][1]


class TestFailureIsolation:
    """One user's failure never affects the others."""

    @pytest.mark.asyncio
    async def test_channel_failure_for_one_user(
        self, dispatcher: ReportDispatcher, channel: FakeChannel, populated_db: Database
    ):
        channel.failures[BRUNO_PHONE] = "Invalid 'To' Phone Number"

        summary = await dispatcher.run_batch("monthly")

        assert summary.sent == 1
        assert summary.total == 2
        assert summary.errors == ["Bruno: Invalid 'To' Phone Number"]
        assert populated_db.count_table("reports_sent") == 1

    @pytest.mark.asyncio
    async def test_exception_in_middle_user(
        self,
        dispatcher: ReportDispatcher,
        channel: FakeChannel,
        recording_sleep: RecordingSleep,
        populated_db: Database,
    ):
        add_caio(populated_db)
        channel.raises[BRUNO_PHONE] = RuntimeError("socket closed")

        summary = await dispatcher.run_batch("monthly")

        assert [o.status for o in summary.outcomes] == [
            DeliveryStatus.SENT,
            DeliveryStatus.FAILED,
            DeliveryStatus.SENT,
        ]
        assert [d for d, _ in channel.attempts] == [ANA_PHONE, BRUNO_PHONE, CAIO_PHONE]
        assert summary.sent == 2
        assert summary.total == 3
        assert summary.errors == ["Bruno: socket closed"]
        assert recording_sleep.calls == [2.0, 2.0, 2.0]

    @pytest.mark.asyncio
    async def test_fetch_failure(
        self, dispatcher: ReportDispatcher, populated_db: Database, monkeypatch
    ):
        original = populated_db.find_transactions

        def flaky(user_id, start, end):
            if user_id == "u-ana":
                raise ConnectionError("ledger unavailable")
            return original(user_id, start, end)

        monkeypatch.setattr(populated_db, "find_transactions", flaky)

        summary = await dispatcher.run_batch("monthly")

        assert summary.sent == 1
        assert summary.errors == ["Ana: ledger unavailable"]

    @pytest.mark.asyncio
    async def test_unconfigured_channel_fails_every_user(
        self,
        populated_db: Database,
        recording_sleep: RecordingSleep,
        settings: Settings,
        fixed_now: datetime,
    ):
        dispatcher = ReportDispatcher(
            populated_db,
            FakeChannel(configured=False),
            settings=settings,
            sleep=recording_sleep,
            clock=lambda: fixed_now,
        )

        summary = await dispatcher.run_batch("monthly")

        assert summary.sent == 0
        assert summary.total == 2
        assert summary.errors == [
            "Ana: WhatsApp not configured",
            "Bruno: WhatsApp not configured",
        ]

    @pytest.mark.asyncio
    async def test_audit_failure_is_swallowed(
        self, dispatcher: ReportDispatcher, populated_db: Database
    ):
        populated_db.connect().execute("DROP TABLE reports_sent")

        summary = await dispatcher.run_batch("monthly")

        assert summary.sent == 2
        assert summary.errors == []

    @pytest.mark.asyncio
    async def test_custom_audit_log_result_is_discarded(
        self,
        populated_db: Database,
        channel: FakeChannel,
        recording_sleep: RecordingSleep,
        fixed_now: datetime,
    ):
        class BrokenAuditLog(AuditLog):
            def __init__(self):
                self.calls = 0

            def append(self, *args, **kwargs) -> AppendResult:
                self.calls += 1
                return AppendResult(False, "disk full")

        audit_log = BrokenAuditLog()
        dispatcher = ReportDispatcher(
            populated_db,
            channel,
            audit_log=audit_log,
            sleep=recording_sleep,
            clock=lambda: fixed_now,
        )

        summary = await dispatcher.run_batch("monthly")

        assert summary.sent == 2
        assert audit_log.calls == 2


class TestBatchBoundaries:
    """Test run-level validation, empty runs and the run lock."""

    @pytest.mark.asyncio
    async def test_no_eligible_users(
        self, db: Database, channel: FakeChannel, recording_sleep: RecordingSleep
    ):
        db.upsert_users([{"id": "u1", "name": "Nobody", "whatsapp": None}])
        dispatcher = ReportDispatcher(db, channel, sleep=recording_sleep)

        summary = await dispatcher.run_batch("weekly")

        assert summary.sent == 0
        assert summary.total == 0
        assert summary.errors == []
        assert channel.attempts == []
        assert recording_sleep.calls == []

    @pytest.mark.asyncio
    async def test_invalid_kind(self, dispatcher: ReportDispatcher, channel: FakeChannel):
        with pytest.raises(InvalidPeriodKind):
            await dispatcher.run_batch("daily")
        assert channel.attempts == []

    @pytest.mark.asyncio
    async def test_overlapping_run_rejected(
        self, dispatcher: ReportDispatcher, populated_db: Database, channel: FakeChannel
    ):
        assert populated_db.acquire_lock("batch:monthly", "other-worker", ttl_seconds=60)

        with pytest.raises(RunInProgressError):
            await dispatcher.run_batch("monthly")
        assert channel.attempts == []

        # a different kind is not blocked
        summary = await dispatcher.run_batch("weekly", now=datetime(2024, 3, 13))
        assert summary.sent == 1

    @pytest.mark.asyncio
    async def test_lock_released_after_run(
        self, dispatcher: ReportDispatcher, populated_db: Database
    ):
        await dispatcher.run_batch("monthly")
        assert populated_db.count_table("run_locks") == 0

    @pytest.mark.asyncio
    async def test_lock_released_after_error(
        self, dispatcher: ReportDispatcher, populated_db: Database, monkeypatch
    ):
        def broken():
            raise RuntimeError("users table locked")

        monkeypatch.setattr(populated_db, "find_eligible_users", broken)

        with pytest.raises(RuntimeError):
            await dispatcher.run_batch("monthly")
        assert populated_db.count_table("run_locks") == 0


class TestRateLimiting:
    """Real-clock checks of the inter-send delay."""

    @pytest.mark.asyncio
    async def test_monthly_gap_between_sends(
        self, populated_db: Database, channel: FakeChannel, fixed_now: datetime
    ):
        dispatcher = ReportDispatcher(populated_db, channel, clock=lambda: fixed_now)

        await dispatcher.run_batch("monthly")

        (_, first), (_, second) = channel.attempts
        assert second - first >= 2.0

    @pytest.mark.asyncio
    async def test_weekly_gap_between_sends(self, populated_db: Database, channel: FakeChannel):
        populated_db.upsert_transactions([
            {"id": "tx-b9", "description": "Bus", "amount": 4.5, "type": "EXPENSE",
             "date": "2024-03-06T08:00:00", "userId": "u-bruno"},
        ])
        dispatcher = ReportDispatcher(populated_db, channel)

        await dispatcher.run_batch("weekly", now=datetime(2024, 3, 13))

        (_, first), (_, second) = channel.attempts
        assert second - first >= 1.0


class TestSingleReport:
    """Test the on-demand single-user path."""

    @pytest.mark.asyncio
    async def test_sends_period_containing_reference(
        self,
        dispatcher: ReportDispatcher,
        channel: FakeChannel,
        recording_sleep: RecordingSleep,
        populated_db: Database,
    ):
        outcome = await dispatcher.send_single_report("u-ana", "monthly", datetime(2024, 3, 15))

        assert outcome.success
        assert outcome.destination == ANA_PHONE
        assert "📅 Março 2024" in channel.sent[0][1]
        assert recording_sleep.calls == []
        assert populated_db.recent_reports_sent()[0]["period"] == "Março 2024"

    @pytest.mark.asyncio
    async def test_weekly_reference(self, dispatcher: ReportDispatcher, channel: FakeChannel):
        await dispatcher.send_single_report("u-ana", PeriodKind.WEEKLY, datetime(2024, 3, 5))
        assert "Semana de 04/03 a 10/03/2024" in channel.sent[0][1]

    @pytest.mark.asyncio
    async def test_empty_period_still_sent(self, dispatcher: ReportDispatcher, channel: FakeChannel):
        outcome = await dispatcher.send_single_report("u-ana", "weekly", datetime(2024, 1, 10))

        assert outcome.success
        assert "📋 Total de transações: 0" in channel.sent[0][1]

    @pytest.mark.asyncio
    async def test_channel_failure(
        self, dispatcher: ReportDispatcher, channel: FakeChannel, populated_db: Database
    ):
        channel.failures[ANA_PHONE] = "rate limited"

        outcome = await dispatcher.send_single_report("u-ana", "monthly", datetime(2024, 3, 15))

        assert outcome.status is DeliveryStatus.FAILED
        assert outcome.error == "rate limited"
        assert populated_db.count_table("reports_sent") == 0

    @pytest.mark.asyncio
    async def test_channel_exception_is_failed_outcome(
        self, dispatcher: ReportDispatcher, channel: FakeChannel, populated_db: Database
    ):
        channel.raises[ANA_PHONE] = ConnectionError("socket closed")

        outcome = await dispatcher.send_single_report("u-ana", "monthly", datetime(2024, 3, 15))

        assert outcome.status is DeliveryStatus.FAILED
        assert outcome.error == "socket closed"
        assert populated_db.count_table("reports_sent") == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("user_id", ["u-carla", "u-davi"])
    async def test_no_destination(self, dispatcher: ReportDispatcher, user_id: str):
        with pytest.raises(NoDestinationConfigured):
            await dispatcher.send_single_report(user_id, "monthly")

    @pytest.mark.asyncio
    async def test_unknown_user(self, dispatcher: ReportDispatcher):
        with pytest.raises(UserNotFound):
            await dispatcher.send_single_report("u-ghost", "monthly")

    @pytest.mark.asyncio
    async def test_invalid_kind(self, dispatcher: ReportDispatcher):
        with pytest.raises(InvalidPeriodKind):
            await dispatcher.send_single_report("u-ana", "yearly")

    @pytest.mark.asyncio
    async def test_channel_unavailable_is_hard_failure(
        self, populated_db: Database, fixed_now: datetime
    ):
        dispatcher = ReportDispatcher(
            populated_db, FakeChannel(configured=False), clock=lambda: fixed_now
        )
        with pytest.raises(ChannelUnavailableError):
            await dispatcher.send_single_report("u-ana", "monthly")


class TestBuildSingleReport:
    """Test the report preview path."""

    def test_defaults_to_clock(self, dispatcher: ReportDispatcher):
        report = dispatcher.build_single_report("u-ana", "monthly")
        assert report.label == "Abril 2024"
        assert report.transaction_count == 0

    def test_reference_date(self, dispatcher: ReportDispatcher):
        report = dispatcher.build_single_report("u-bruno", "monthly", datetime(2024, 3, 1))
        assert report.total_income == 1000
        assert report.total_expense == 230
        assert report.uncategorized_expense == 30
        assert [(b.category, b.amount) for b in report.categories] == [("Food", 200)]

    def test_does_not_require_destination(self, dispatcher: ReportDispatcher):
        report = dispatcher.build_single_report("u-carla", "weekly", datetime(2024, 3, 1))
        assert report.transaction_count == 0

    def test_unknown_user(self, dispatcher: ReportDispatcher):
        with pytest.raises(UserNotFound):
            dispatcher.build_single_report("u-ghost", "weekly")
