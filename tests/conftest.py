"""Test fixtures for ledger report tests."""

import time
from datetime import datetime

import pytest

from ledger_reports.channel import SendResult
from ledger_reports.config import Settings
from ledger_reports.database import Database
from ledger_reports.dispatcher import ReportDispatcher


class FakeChannel:
    """In-memory message channel.

    failures maps a destination to the error it returns; raises maps a
    destination to an exception raised from send().
    """

    def __init__(self, configured: bool = True):
        self._configured = configured
        self.failures: dict[str, str] = {}
        self.raises: dict[str, Exception] = {}
        self.sent: list[tuple[str, str]] = []
        self.attempts: list[tuple[str, float]] = []

    @property
    def configured(self) -> bool:
        return self._configured

    async def send(self, destination: str, body: str) -> SendResult:
        self.attempts.append((destination, time.monotonic()))
        if not self._configured:
            return SendResult(False, "WhatsApp not configured")
        if destination in self.raises:
            raise self.raises[destination]
        if destination in self.failures:
            return SendResult(False, self.failures[destination])
        self.sent.append((destination, body))
        return SendResult(True)


class RecordingSleep:
    """Stand-in for asyncio.sleep that records the requested delays."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


ANA_PHONE = "(11) 98765-4321"
BRUNO_PHONE = "21 99999-0000"


@pytest.fixture
def db() -> Database:
    """Create in-memory database with schema."""
    database = Database(":memory:")
    database.init_schema()
    return database


@pytest.fixture
def populated_db(db: Database) -> Database:
    """In-memory ledger with four users, two of them reachable.

    Ana: March 2024 has exactly Fuel 100 (03-02), Fuel 50 (03-05) and
    Client 500 (03-10); one February expense sits outside the month.
    Bruno: March 2024 has Salary 1000, Market 200 (Food) and an
    uncategorized Coffee 30, all after 03-10.
    Carla has no WhatsApp number, Davi has a blank one.
    """
    db.upsert_users([
        {"id": "u-ana", "name": "Ana", "email": "ana@example.com", "whatsapp": ANA_PHONE},
        {"id": "u-bruno", "name": "Bruno", "email": "bruno@example.com", "whatsapp": BRUNO_PHONE},
        {"id": "u-carla", "name": "Carla", "email": "carla@example.com", "whatsapp": None},
        {"id": "u-davi", "name": "Davi", "email": "davi@example.com", "whatsapp": "  "},
    ])
    db.upsert_categories([
        {"id": "cat-fuel", "name": "Fuel", "color": "#ff0000", "userId": "u-ana"},
        {"id": "cat-food", "name": "Food", "color": "#00ff00", "userId": "u-ana"},
        {"id": "cat-food-b", "name": "Food", "color": "#00ff00", "userId": "u-bruno"},
    ])
    db.upsert_transactions([
        {"id": "tx-a1", "description": "Gas station", "amount": 100.0, "type": "EXPENSE",
         "date": "2024-03-02T08:30:00", "categoryId": "cat-fuel", "userId": "u-ana"},
        {"id": "tx-a2", "description": "Gas refill", "amount": 50.0, "type": "EXPENSE",
         "date": "2024-03-05T18:00:00", "categoryId": "cat-fuel", "userId": "u-ana"},
        {"id": "tx-a3", "description": "Client", "amount": 500.0, "type": "INCOME",
         "date": "2024-03-10T12:00:00", "userId": "u-ana"},
        {"id": "tx-a0", "description": "Old rent", "amount": 999.0, "type": "EXPENSE",
         "date": "2024-02-28T10:00:00", "categoryId": "cat-food", "userId": "u-ana"},
        {"id": "tx-b1", "description": "Salary", "amount": 1000.0, "type": "INCOME",
         "date": "2024-03-15T09:00:00", "userId": "u-bruno"},
        {"id": "tx-b2", "description": "Market", "amount": 200.0, "type": "EXPENSE",
         "date": "2024-03-16T11:00:00", "categoryId": "cat-food-b", "userId": "u-bruno"},
        {"id": "tx-b3", "description": "Coffee", "amount": 30.0, "type": "EXPENSE",
         "date": "2024-03-20T07:45:00", "userId": "u-bruno"},
    ])
    return db


@pytest.fixture
def channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def settings() -> Settings:
    return Settings(cron_secret="s3cret", locale="pt_BR")


@pytest.fixture
def fixed_now() -> datetime:
    """Clock value used by dispatcher fixtures: 2024-04-10, so last month is March."""
    return datetime(2024, 4, 10, 9, 0, 0)


@pytest.fixture
def dispatcher(
    populated_db: Database,
    channel: FakeChannel,
    recording_sleep: RecordingSleep,
    settings: Settings,
    fixed_now: datetime,
) -> ReportDispatcher:
    return ReportDispatcher(
        populated_db,
        channel,
        settings=settings,
        sleep=recording_sleep,
        clock=lambda: fixed_now,
    )
