"""Chat transports.

A transport delivers inbound chat lines to one registered callback and sends
plain text back to the channel. Two are provided:

- TwitchTransport: Twitch chat through a twitchio bot.
- KrytenTransport: CyTube chat through the kryten-py NATS bridge.

Sending is best effort on both: failures are logged, never raised.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Callable, Protocol

import aiohttp
from twitchio import AuthenticationError, TwitchIOException
from twitchio.ext import commands

from .commands import COMMAND_MARKER

if TYPE_CHECKING:
    from kryten import KrytenClient


class TransportConnectionError(Exception):
    """The transport could not connect or log in."""


@dataclass(frozen=True)
class InboundMessage:
    """One chat line. ``sender_login`` is the lowercase canonical identity."""

    sender_login: str
    sender_display: str
    text: str
    channel: str = ""


MessageCallback = Callable[[InboundMessage], Awaitable[None]]


class Transport(Protocol):
    async def connect(self) -> None: ...

    async def join_channel(self, name: str) -> None: ...

    def on_message(self, callback: MessageCallback) -> None: ...

    async def send(self, channel: str, text: str) -> None: ...

    async def run(self) -> None: ...

    async def close(self) -> None: ...


# ══════════════════════════════════════════════════════════
#  Twitch via twitchio
# ══════════════════════════════════════════════════════════

class _ChatBot(commands.Bot):
    """twitchio bot that hands ready and chat events to its transport.

    ``event_message`` does not call ``handle_commands``; the dispatcher routes
    commands.
    """

    def __init__(self, transport: TwitchTransport, token: str) -> None:
        super().__init__(token=token, prefix=COMMAND_MARKER)
        self._transport = transport

    async def event_ready(self) -> None:
        await self._transport._handle_ready(self.nick)

    async def event_message(self, message) -> None:
        await self._transport._handle_message(message)

    async def event_error(self, error: Exception, data: str | None = None) -> None:
        self._transport._logger.error("twitchio error: %s", error)


class TwitchTransport:
    """Twitch chat through a twitchio ``commands.Bot``."""

    def __init__(
        self,
        username: str,
        oauth_token: str,
        login_timeout: float = 10.0,
        logger: logging.Logger | None = None,
        bot: commands.Bot | None = None,
    ) -> None:
        self._username = username.lower()
        self._oauth_token = oauth_token.removeprefix("oauth:")
        self._login_timeout = login_timeout
        self._logger = logger or logging.getLogger("loyalty.twitch")
        self._bot = bot
        self._callback: MessageCallback | None = None
        self._ready = asyncio.Event()
        self._runner: asyncio.Task | None = None

    # ── Lifecycle ────────────────────────────────────────────

    async def connect(self) -> None:
        """Start the bot and wait for Twitch to accept the login.

        twitchio retries dropped sockets on its own, so a login that never
        completes within ``login_timeout`` is treated as a failure.
        Raises TransportConnectionError.
        """
        if self._bot is None:
            self._bot = _ChatBot(self, self._oauth_token)
        self._runner = asyncio.create_task(self._bot.start())
        ready = asyncio.create_task(self._ready.wait())
        done, _ = await asyncio.wait(
            {self._runner, ready}, timeout=self._login_timeout,
            return_when=asyncio.FIRST_COMPLETED,
        )
        if ready in done:
            return

        ready.cancel()
        if self._runner in done:
            exc = None if self._runner.cancelled() else self._runner.exception()
            self._runner = None
            if exc is None:
                raise TransportConnectionError("Twitch connection closed during login")
            raise TransportConnectionError(f"Twitch login failed: {exc}") from exc

        await self.close()
        raise TransportConnectionError(f"Twitch login timed out after {self._login_timeout}s")

    async def join_channel(self, name: str) -> None:
        channel = name.lower().lstrip("#")
        await self._bot.join_channels([channel])
        self._logger.info("Joined #%s", channel)

    def on_message(self, callback: MessageCallback) -> None:
        self._callback = callback

    async def run(self) -> None:
        """Block until the bot stops."""
        if self._runner is None:
            raise TransportConnectionError("run() called before connect()")
        await asyncio.wait({self._runner})
        exc = None if self._runner.cancelled() else self._runner.exception()
        if isinstance(exc, (AuthenticationError, aiohttp.ClientError, OSError)):
            raise TransportConnectionError(f"Twitch connection lost: {exc}") from exc
        if exc is not None:
            raise exc
        self._logger.warning("Twitch connection closed")

    async def close(self) -> None:
        if self._bot is not None:
            await self._bot.close()
        if self._runner is not None and not self._runner.done():
            self._runner.cancel()

    # ── Inbound ──────────────────────────────────────────────

    async def _handle_ready(self, nick: str | None) -> None:
        if nick and nick.lower() != self._username:
            self._logger.warning("Token belongs to %s, not %s", nick, self._username)
        self._logger.info("connected!")
        self._ready.set()

    async def _handle_message(self, message) -> None:
        # Our own lines come back as echoes without an author
        if getattr(message, "echo", False) or message.author is None or self._callback is None:
            return
        login = message.author.name.lower()
        inbound = InboundMessage(
            sender_login=login,
            sender_display=message.author.display_name or login,
            text=message.content,
            channel=message.channel.name,
        )
        try:
            await self._callback(inbound)
        except Exception:
            self._logger.exception("Message handler error for %s", login)

    # ── Outbound ─────────────────────────────────────────────

    async def send(self, channel: str, text: str) -> None:
        """Say ``text`` in ``channel``. Best effort."""
        name = channel.lower().lstrip("#")
        target = self._bot.get_channel(name) if self._bot is not None else None
        if target is None:
            self._logger.warning("Not in #%s, dropping: %s", name, text)
            return
        flat = text.replace("\r", " ").replace("\n", " ")
        try:
            await target.send(flat)
        except (TwitchIOException, aiohttp.ClientError, ConnectionError) as exc:
            self._logger.warning("Send failed: %s", exc)


# ══════════════════════════════════════════════════════════
#  CyTube via kryten-py
# ══════════════════════════════════════════════════════════

class KrytenTransport:
    """Adapter over a KrytenClient. Channels are joined by the kryten bridge."""

    def __init__(self, client: KrytenClient, logger: logging.Logger | None = None) -> None:
        self._client = client
        self._logger = logger or logging.getLogger("loyalty.kryten")

    async def connect(self) -> None:
        try:
            await self._client.connect()
        except Exception as exc:
            raise TransportConnectionError(f"could not connect to NATS: {exc}") from exc
        self._logger.info("Connected to NATS")

    async def join_channel(self, name: str) -> None:
        self._logger.info("Listening to %s via kryten", name)

    def on_message(self, callback: MessageCallback) -> None:
        @self._client.on("chatmsg")
        async def handle_chatmsg(event):
            inbound = InboundMessage(
                sender_login=event.username.lower(),
                sender_display=event.username,
                text=event.message,
                channel=event.channel,
            )
            try:
                await callback(inbound)
            except Exception:
                self._logger.exception("chatmsg handler error for %s", getattr(event, "username", "?"))

    async def send(self, channel: str, text: str) -> None:
        try:
            await self._client.send_chat(channel, text)
        except Exception:
            self._logger.exception("Failed to send chat to %s", channel)

    async def run(self) -> None:
        await self._client.run()

    async def close(self) -> None:
        await self._client.stop()
