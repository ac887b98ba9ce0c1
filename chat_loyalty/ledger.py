"""Loyalty ledger interface and in-memory implementation.

The ledger records subscriptions, gift subs and cheers. The dispatcher only
talks to the :class:`Ledger` protocol; :class:`InMemoryLedger` backs tests and
``database.backend: memory``, ``SqliteLedger`` (database.py) persists to disk.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Protocol

from .utils import now_utc

SUBSCRIPTION_PERIOD = timedelta(days=30)
NO_TOP_GIFTER = "nobody"

TREATS: tuple[str, ...] = (
    "teddy bear", "hot choccy", "blanket", "desk plant", "wii u", "copy of mario maker",
    "rune scim", "egg salad", "buzzy beetle", "mazarati", "golden kappa", "time machine",
)

Clock = Callable[[], datetime]


class LedgerError(Exception):
    """The ledger refused an operation. The message is shown to the user."""


@dataclass(frozen=True)
class UserInfo:
    months_subbed: int = 0
    last_sub: datetime | None = None
    gifts_given: int = 0
    gifted_from: str | None = None
    bits_cheered: int = 0

    def is_subscribed(self, now: datetime) -> bool:
        return self.last_sub is not None and now - self.last_sub < SUBSCRIPTION_PERIOD


@dataclass(frozen=True)
class ChannelInfo:
    active_subscribers: int = 0
    total_gifts: int = 0
    total_bits: int = 0
    top_gifter: str = NO_TOP_GIFTER

    def treat_for_current_total(self, treats: tuple[str, ...] = TREATS) -> str:
        """Pick the treat the community's bits have 'bought'."""
        return treats[self.total_bits % len(treats)]


class Ledger(Protocol):
    """Operations the dispatcher needs from a loyalty ledger."""

    async def subscribe(self, user: str) -> None: ...

    async def gift(self, target: str, gifter: str) -> None: ...

    async def cheer(self, user: str, amount: int) -> None: ...

    async def user_info(self, user: str) -> UserInfo: ...

    async def channel_info(self) -> ChannelInfo: ...


def pick_top_gifter(counts: dict[str, int]) -> str:
    """Most gifts wins; ties go to the alphabetically first name."""
    if not counts:
        return NO_TOP_GIFTER
    return min(counts, key=lambda name: (-counts[name], name))


@dataclass
class _Subscription:
    months: int = 0
    last_sub: datetime | None = None
    gifted_from: str | None = None


@dataclass
class _Records:
    subs: dict[str, _Subscription] = field(default_factory=dict)
    gifts: list[tuple[str, str]] = field(default_factory=list)  # (gifter, target)
    cheers: dict[str, int] = field(default_factory=dict)


class InMemoryLedger:
    """Dict-backed ledger. Nothing survives a restart."""

    def __init__(self, clock: Clock = now_utc) -> None:
        self._clock = clock
        self._records = _Records()
        self._lock = asyncio.Lock()

    def _is_subscribed(self, user: str, now: datetime) -> bool:
        sub = self._records.subs.get(user)
        return sub is not None and sub.last_sub is not None and now - sub.last_sub < SUBSCRIPTION_PERIOD

    def _renew(self, user: str, now: datetime, gifted_from: str | None = None) -> None:
        sub = self._records.subs.setdefault(user, _Subscription())
        sub.months += 1
        sub.last_sub = now
        if gifted_from is not None:
            sub.gifted_from = gifted_from

    async def subscribe(self, user: str) -> None:
        async with self._lock:
            now = self._clock()
            if self._is_subscribed(user, now):
                raise LedgerError("you are already subscribed")
            self._renew(user, now)

    async def gift(self, target: str, gifter: str) -> None:
        if target == gifter:
            raise LedgerError("you cannot gift a sub to yourself")
        async with self._lock:
            now = self._clock()
            if self._is_subscribed(target, now):
                raise LedgerError(f"{target} is already subscribed")
            self._renew(target, now, gifted_from=gifter)
            self._records.gifts.append((gifter, target))

    async def cheer(self, user: str, amount: int) -> None:
        if amount <= 0:
            raise LedgerError("cheer amount must be positive")
        async with self._lock:
            self._records.cheers[user] = self._records.cheers.get(user, 0) + amount

    async def user_info(self, user: str) -> UserInfo:
        sub = self._records.subs.get(user, _Subscription())
        return UserInfo(
            months_subbed=sub.months,
            last_sub=sub.last_sub,
            gifts_given=sum(1 for gifter, _ in self._records.gifts if gifter == user),
            gifted_from=sub.gifted_from,
            bits_cheered=self._records.cheers.get(user, 0),
        )

    async def channel_info(self) -> ChannelInfo:
        now = self._clock()
        counts: dict[str, int] = {}
        for gifter, _ in self._records.gifts:
            counts[gifter] = counts.get(gifter, 0) + 1
        return ChannelInfo(
            active_subscribers=sum(1 for u in self._records.subs if self._is_subscribed(u, now)),
            total_gifts=len(self._records.gifts),
            total_bits=sum(self._records.cheers.values()),
            top_gifter=pick_top_gifter(counts),
        )
