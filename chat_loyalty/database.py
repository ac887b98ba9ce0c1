"""SQLite-backed loyalty ledger.

Each public method is async and wraps a synchronous inner function via
asyncio.run_in_executor(None, _sync). A new connection is created per call
(WAL mode, 30s busy timeout, Row factory). Mutations run inside
``BEGIN IMMEDIATE`` so concurrent handlers cannot double-subscribe a user.

The database must be a file path; ``:memory:`` would give every call its own
empty database.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from datetime import datetime

from .ledger import (
    SUBSCRIPTION_PERIOD,
    ChannelInfo,
    Clock,
    LedgerError,
    UserInfo,
    pick_top_gifter,
)
from .utils import now_utc, parse_timestamp


class SqliteLedger:
    """Persistent ledger for subscriptions, gift subs and cheers."""

    def __init__(
        self,
        db_path: str,
        logger: logging.Logger | None = None,
        clock: Clock = now_utc,
    ) -> None:
        self._db_path = db_path
        self._logger = logger or logging.getLogger("loyalty.ledger")
        self._clock = clock

    def _get_connection(self) -> sqlite3.Connection:
        """Create a new SQLite connection with standard settings."""
        conn = sqlite3.connect(self._db_path, timeout=30, isolation_level=None)
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA busy_timeout=30000")
        conn.row_factory = sqlite3.Row
        return conn

    # ══════════════════════════════════════════════════════════
    #  Initialization
    # ══════════════════════════════════════════════════════════

    async def initialize(self) -> None:
        """Create all tables and indexes. Idempotent."""
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._create_tables)
        self._logger.debug("Ledger tables ready in %s", self._db_path)

    def _create_tables(self) -> None:
        conn = self._get_connection()
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS subscriptions (
                    username TEXT PRIMARY KEY,
                    months_subbed INTEGER NOT NULL DEFAULT 0,
                    last_sub TEXT,
                    gifted_from TEXT
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS gifts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    gifter TEXT NOT NULL,
                    recipient TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS cheers (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    username TEXT NOT NULL,
                    amount INTEGER NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_gifts_gifter ON gifts(gifter)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_cheers_username ON cheers(username)")
        finally:
            conn.close()

    # ══════════════════════════════════════════════════════════
    #  Helpers
    # ══════════════════════════════════════════════════════════

    @staticmethod
    def _subscribed_at(row: sqlite3.Row | None, now: datetime) -> bool:
        if row is None:
            return False
        last_sub = parse_timestamp(row["last_sub"])
        return last_sub is not None and now - last_sub < SUBSCRIPTION_PERIOD

    @staticmethod
    def _renew(
        conn: sqlite3.Connection, username: str, now: datetime, gifted_from: str | None = None,
    ) -> None:
        conn.execute(
            "INSERT OR IGNORE INTO subscriptions (username) VALUES (?)", (username,),
        )
        conn.execute(
            "UPDATE subscriptions SET months_subbed = months_subbed + 1, last_sub = ?, "
            "gifted_from = COALESCE(?, gifted_from) WHERE username = ?",
            (now.isoformat(), gifted_from, username),
        )

    # ══════════════════════════════════════════════════════════
    #  Mutations
    # ══════════════════════════════════════════════════════════

    async def subscribe(self, user: str) -> None:
        """Start or renew a subscription. Raises LedgerError if already active."""
        loop = asyncio.get_running_loop()

        def _sync() -> None:
            conn = self._get_connection()
            try:
                conn.execute("BEGIN IMMEDIATE")
                now = self._clock()
                row = conn.execute(
                    "SELECT last_sub FROM subscriptions WHERE username = ?", (user,),
                ).fetchone()
                if self._subscribed_at(row, now):
                    conn.execute("ROLLBACK")
                    raise LedgerError("you are already subscribed")
                self._renew(conn, user, now)
                conn.execute("COMMIT")
            finally:
                conn.close()

        await loop.run_in_executor(None, _sync)

    async def gift(self, target: str, gifter: str) -> None:
        """Gift a subscription to ``target`` on behalf of ``gifter``."""
        if target == gifter:
            raise LedgerError("you cannot gift a sub to yourself")
        loop = asyncio.get_running_loop()

        def _sync() -> None:
            conn = self._get_connection()
            try:
                conn.execute("BEGIN IMMEDIATE")
                now = self._clock()
                row = conn.execute(
                    "SELECT last_sub FROM subscriptions WHERE username = ?", (target,),
                ).fetchone()
                if self._subscribed_at(row, now):
                    conn.execute("ROLLBACK")
                    raise LedgerError(f"{target} is already subscribed")
                self._renew(conn, target, now, gifted_from=gifter)
                conn.execute(
                    "INSERT INTO gifts (gifter, recipient, created_at) VALUES (?, ?, ?)",
                    (gifter, target, now.isoformat()),
                )
                conn.execute("COMMIT")
            finally:
                conn.close()

        await loop.run_in_executor(None, _sync)

    async def cheer(self, user: str, amount: int) -> None:
        """Record a cheer of ``amount`` bits."""
        if amount <= 0:
            raise LedgerError("cheer amount must be positive")
        loop = asyncio.get_running_loop()

        def _sync() -> None:
            conn = self._get_connection()
            try:
                conn.execute(
                    "INSERT INTO cheers (username, amount, created_at) VALUES (?, ?, ?)",
                    (user, amount, self._clock().isoformat()),
                )
            finally:
                conn.close()

        await loop.run_in_executor(None, _sync)

    # ══════════════════════════════════════════════════════════
    #  Queries
    # ══════════════════════════════════════════════════════════

    async def user_info(self, user: str) -> UserInfo:
        """Return the user's loyalty record. Unknown users get zero values."""
        loop = asyncio.get_running_loop()

        def _sync() -> UserInfo:
            conn = self._get_connection()
            try:
                sub = conn.execute(
                    "SELECT months_subbed, last_sub, gifted_from FROM subscriptions WHERE username = ?",
                    (user,),
                ).fetchone()
                gifts = conn.execute(
                    "SELECT COUNT(*) AS n FROM gifts WHERE gifter = ?", (user,),
                ).fetchone()
                bits = conn.execute(
                    "SELECT COALESCE(SUM(amount), 0) AS total FROM cheers WHERE username = ?",
                    (user,),
                ).fetchone()
                return UserInfo(
                    months_subbed=sub["months_subbed"] if sub else 0,
                    last_sub=parse_timestamp(sub["last_sub"]) if sub else None,
                    gifts_given=gifts["n"],
                    gifted_from=sub["gifted_from"] if sub else None,
                    bits_cheered=bits["total"],
                )
            finally:
                conn.close()

        return await loop.run_in_executor(None, _sync)

    async def channel_info(self) -> ChannelInfo:
        """Return community-wide totals."""
        loop = asyncio.get_running_loop()

        def _sync() -> ChannelInfo:
            conn = self._get_connection()
            try:
                cutoff = (self._clock() - SUBSCRIPTION_PERIOD).isoformat()
                active = conn.execute(
                    "SELECT COUNT(*) AS n FROM subscriptions WHERE last_sub > ?", (cutoff,),
                ).fetchone()
                rows = conn.execute(
                    "SELECT gifter, COUNT(*) AS n FROM gifts GROUP BY gifter",
                ).fetchall()
                bits = conn.execute(
                    "SELECT COALESCE(SUM(amount), 0) AS total FROM cheers",
                ).fetchone()
                counts = {r["gifter"]: r["n"] for r in rows}
                return ChannelInfo(
                    active_subscribers=active["n"],
                    total_gifts=sum(counts.values()),
                    total_bits=bits["total"],
                    top_gifter=pick_top_gifter(counts),
                )
            finally:
                conn.close()

        return await loop.run_in_executor(None, _sync)
