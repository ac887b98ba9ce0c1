"""Chat message dispatcher.

Turns each inbound chat line into at most one reply:

1. Inline cheers (``Kappa100 PogChamp50``) win over everything else.
2. Otherwise the first word picks a command handler.
3. The handler talks to the ledger and returns the reply text, which goes to
   the outgoing queue.

Ledger refusals become replies quoting the ledger's reason. Nothing raised
while handling one message escapes ``handle_message``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Awaitable, Callable, Iterable

from .cheers import scan_cheers
from .commands import ParsedCommand, parse_command
from .ledger import LedgerError
from .utils import format_elapsed, now_utc, parse_int

if TYPE_CHECKING:
    from .ledger import Clock, Ledger
    from .outgoing import OutgoingQueue
    from .transport import InboundMessage

SUB_EMOTES = "SeemsGood VoHiYo 4Head GivePLZ Kappa MingLee TableHere"
MAX_CHEER = 1_000_000

Handler = Callable[["InboundMessage", ParsedCommand], Awaitable[str]]


class Dispatcher:
    """Routes chat messages to loyalty commands and queues the replies."""

    def __init__(
        self,
        ledger: Ledger,
        outgoing: OutgoingQueue,
        logger: logging.Logger | None = None,
        ignored_users: Iterable[str] = (),
        clock: Clock = now_utc,
    ) -> None:
        self._ledger = ledger
        self._outgoing = outgoing
        self._logger = logger or logging.getLogger("loyalty.dispatch")
        self._ignored_users: set[str] = {u.lower() for u in ignored_users}
        self._clock = clock

        self.messages_processed: int = 0
        self.commands_processed: int = 0

        # Command dispatch map
        self._command_map: dict[str, Handler] = {
            "giftsub": self._cmd_giftsub,
            "sub": self._cmd_sub,
            "me": self._cmd_me,
            "cheer": self._cmd_cheer,
            "stats": self._cmd_stats,
        }

    async def handle_message(self, message: InboundMessage) -> None:
        """Entry point registered with the transport."""
        self.messages_processed += 1
        if message.sender_login in self._ignored_users:
            return
        try:
            reply = await self.respond(message)
        except Exception:
            self._logger.exception(
                "Dispatch error for %s: %s", message.sender_login, message.text,
            )
            return
        if reply:
            self._outgoing.enqueue(reply)

    async def respond(self, message: InboundMessage) -> str | None:
        """Compute the reply for one message, or None when it needs none."""
        total = scan_cheers(message.text)
        if total > 0:
            return await self.do_cheer(message, total)

        parsed = parse_command(message.text)
        handler = self._command_map.get(parsed.keyword)
        if handler is None:
            self._logger.debug("%s : %s", message.sender_login, message.text)
            return None
        self.commands_processed += 1
        return await handler(message, parsed)

    # ══════════════════════════════════════════════════════════
    #  Commands
    # ══════════════════════════════════════════════════════════

    async def _cmd_sub(self, message: InboundMessage, parsed: ParsedCommand) -> str:
        name = message.sender_display
        try:
            await self._ledger.subscribe(message.sender_login)
        except LedgerError as e:
            self._logger.warning("err sub: %s", e)
            return f"{name}, your sub failed because `{e}`"
        return (
            f"Thank you {name} for the sub! "
            f"You can now use our emotes: {SUB_EMOTES} #IfYouWant!"
        )

    async def _cmd_giftsub(self, message: InboundMessage, parsed: ParsedCommand) -> str:
        target = parsed.argument(0)
        if target is None:
            return "To gift sub, type !giftsub <username>"
        name = message.sender_display
        try:
            await self._ledger.gift(target, message.sender_login)
        except LedgerError as e:
            self._logger.warning("err giftsub: %s", e)
            return f"{name}, your giftsub failed because `{e}`"
        count = (await self._ledger.user_info(message.sender_login)).gifts_given
        return (
            f"Thank you {name} for the gift sub to {target}! They can now use {SUB_EMOTES}! "
            f"You have given {count} gift subs to this channel."
        )

    async def _cmd_me(self, message: InboundMessage, parsed: ParsedCommand) -> str:
        info = await self._ledger.user_info(message.sender_login)
        now = self._clock()
        parts: list[str] = []

        if info.is_subscribed(now):
            parts.append(
                f"have been subscribed for {info.months_subbed} months, "
                f"most recently {format_elapsed(now - info.last_sub)} ago"
            )
        else:
            parts.append("are not currently subscribed")

        if info.gifts_given == 0:
            parts.append("have given 0 gift subs to the community")
        else:
            parts.append(f"have given {info.gifts_given} gift subs")

        if info.gifted_from is not None:
            parts.append(f"last received a gift sub from {info.gifted_from}")

        if info.bits_cheered == 0:
            parts.append("have not cheered")
        else:
            parts.append(f"have cheered {info.bits_cheered} bits")

        return f"{message.sender_display}, you: {'; '.join(parts)}."

    async def _cmd_cheer(self, message: InboundMessage, parsed: ParsedCommand) -> str:
        arg = parsed.argument(0)
        if arg is None:
            return "To cheer, type !cheer <amount>, or Cheer100"
        amount = parse_int(arg)
        if amount is None:
            return f"{message.sender_display}, you must cheer a number."
        return await self.do_cheer(message, amount)

    async def _cmd_stats(self, message: InboundMessage, parsed: ParsedCommand) -> str:
        ci = await self._ledger.channel_info()
        return (
            f"There are currently {ci.active_subscribers} active subscribers! "
            f"The community has given {ci.total_gifts} gift subs and cheered {ci.total_bits} bits, "
            f"and the top gift subber is {ci.top_gifter}"
        )

    async def do_cheer(self, message: InboundMessage, amount: int) -> str:
        """Record a cheer, refusing amounts outside 0..MAX_CHEER."""
        name = message.sender_display
        if amount < 0:
            return f"{name}, stop trying to steal my bits! :("
        if amount > MAX_CHEER:
            return f"{name}, I can't allow you to be so generous! GivePLZ"
        try:
            await self._ledger.cheer(message.sender_login, amount)
        except LedgerError as e:
            self._logger.warning("err cheering: %s", e)
            return f"{name}, your cheer failed because `{e}`"
        user_info = await self._ledger.user_info(message.sender_login)
        info = await self._ledger.channel_info()
        return (
            f"{name}, thanks for cheering {amount} bits, for a total of {user_info.bits_cheered}! "
            f"The community has given {info.total_bits} bits, "
            f"enough for a new {info.treat_for_current_total()}!"
        )
