"""Shared test fixtures for chat-loyalty."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, AsyncGenerator
from unittest.mock import MagicMock

import pytest
import pytest_asyncio

from chat_loyalty.config import LoyaltyConfig
from chat_loyalty.database import SqliteLedger
from chat_loyalty.dispatcher import Dispatcher
from chat_loyalty.ledger import InMemoryLedger
from chat_loyalty.outgoing import OutgoingQueue
from chat_loyalty.transport import InboundMessage

FAST_INTERVAL = 0.05


# ── Minimal config dict matching LoyaltyConfig schema ────────

def make_config_dict(**overrides) -> dict:
    """Build a valid config dict with sensible test defaults."""
    base = {
        "transport": "twitch",
        "bot": {"username": "LoyaltyBot", "oauth_token": "oauth:abc123", "channel": "testchannel"},
        "database": {"backend": "memory", "path": "unused.db"},
        "outgoing": {"interval_seconds": FAST_INTERVAL, "max_pending": 1000},
        "ignored_users": ["IgnoredBot"],
    }
    base.update(overrides)
    return base


def make_message(text: str, login: str = "alice", display: str | None = None) -> InboundMessage:
    """Build an InboundMessage the way the transports do."""
    return InboundMessage(
        sender_login=login,
        sender_display=display or login.capitalize(),
        text=text,
        channel="testchannel",
    )


class FakeClock:
    """Deterministic clock for ledger and dispatcher tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: Any) -> None:
        self.now += timedelta(**kwargs)


class RecordingSender:
    """Send primitive that records (monotonic time, text) pairs."""

    def __init__(self) -> None:
        self.sent: list[tuple[float, str]] = []

    async def __call__(self, text: str) -> None:
        self.sent.append((time.monotonic(), text))

    @property
    def texts(self) -> list[str]:
        return [t for _, t in self.sent]


@pytest.fixture
def sample_config_dict() -> dict:
    """Return a config dict suitable for tests."""
    return make_config_dict()


@pytest.fixture
def sample_config(sample_config_dict: dict) -> LoyaltyConfig:
    """Return a parsed LoyaltyConfig."""
    return LoyaltyConfig(**sample_config_dict)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_ledger(clock: FakeClock) -> InMemoryLedger:
    return InMemoryLedger(clock=clock)


@pytest.fixture
def tmp_db_path(tmp_path: Path) -> str:
    """Return a temporary SQLite database path."""
    return str(tmp_path / "test_loyalty.db")


@pytest_asyncio.fixture
async def database(tmp_db_path: str, clock: FakeClock) -> AsyncGenerator[SqliteLedger, None]:
    """Provide an initialized SQLite ledger with temp file."""
    db = SqliteLedger(tmp_db_path, logging.getLogger("test"), clock=clock)
    await db.initialize()
    yield db


@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def ledger(request, clock: FakeClock, tmp_db_path: str):
    """Run the same ledger contract against both implementations."""
    if request.param == "memory":
        yield InMemoryLedger(clock=clock)
    else:
        db = SqliteLedger(tmp_db_path, logging.getLogger("test"), clock=clock)
        await db.initialize()
        yield db


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()


@pytest_asyncio.fixture
async def outgoing(sender: RecordingSender) -> AsyncGenerator[OutgoingQueue, None]:
    """OutgoingQueue with a fast pacing interval. Worker not started."""
    queue = OutgoingQueue(sender, interval=FAST_INTERVAL, logger=logging.getLogger("test"))
    yield queue
    await queue.stop()


@pytest.fixture
def dispatcher(memory_ledger: InMemoryLedger, outgoing: OutgoingQueue, clock: FakeClock) -> Dispatcher:
    """Dispatcher over the in-memory ledger; replies stay queued until started."""
    return Dispatcher(
        memory_ledger,
        outgoing,
        logger=logging.getLogger("test"),
        ignored_users=["IgnoredBot", "LoyaltyBot"],
        clock=clock,
    )


# ── Mock kryten client ───────────────────────────────────────

class MockKrytenClient:
    """Stand-in for kryten.KrytenClient covering what KrytenTransport uses."""

    def __init__(self) -> None:
        self._handlers: dict[str, list] = {}
        self.sent_chats: list[tuple[str, str]] = []
        self.connected = False
        self.stopped = False

    async def send_chat(self, channel: str, message: str, *, domain: str | None = None) -> str:
        self.sent_chats.append((channel, message))
        return "mock-corr-id"

    async def connect(self) -> None:
        self.connected = True

    async def run(self) -> None:
        pass

    async def stop(self) -> None:
        self.stopped = True

    def on(self, event_name: str, channel: str | None = None, domain: str | None = None):
        """Match kryten-py's ``on()`` decorator signature."""
        def decorator(func):
            self._handlers.setdefault(event_name, []).append(func)
            return func
        return decorator

    async def fire_event(self, event_name: str, event: Any) -> None:
        """Test helper: simulate an incoming event."""
        for handler in self._handlers.get(event_name, []):
            await handler(event)


@pytest.fixture
def mock_kryten_client() -> MockKrytenClient:
    return MockKrytenClient()


def make_chatmsg(username: str, message: str, channel: str = "testchannel") -> MagicMock:
    event = MagicMock()
    event.username = username
    event.message = message
    event.channel = channel
    return event
