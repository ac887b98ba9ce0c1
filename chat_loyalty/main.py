"""Service orchestrator: LoyaltyApp.

config → ledger init → outgoing queue → dispatcher → connect → join →
start delivery worker → run.
"""

from __future__ import annotations

import logging
import time

from . import __version__
from .config import LoyaltyConfig
from .database import SqliteLedger
from .dispatcher import Dispatcher
from .ledger import InMemoryLedger, Ledger
from .outgoing import OutgoingQueue
from .transport import KrytenTransport, Transport, TwitchTransport


class LoyaltyApp:
    """Top-level application orchestrator."""

    def __init__(
        self,
        config: LoyaltyConfig,
        transport: Transport | None = None,
        ledger: Ledger | None = None,
    ) -> None:
        self.config = config
        self.logger = logging.getLogger("loyalty")

        # Components (initialized in start() unless injected)
        self.transport: Transport | None = transport
        self.ledger: Ledger | None = ledger
        self.outgoing: OutgoingQueue | None = None
        self.dispatcher: Dispatcher | None = None

        self._running = False
        self._start_time: float | None = None

    @property
    def uptime_seconds(self) -> float:
        if self._start_time is None:
            return 0.0
        return time.time() - self._start_time

    def _build_ledger(self) -> Ledger:
        if self.config.database.backend == "memory":
            self.logger.warning("Using in-memory ledger; nothing will be persisted")
            return InMemoryLedger()
        return SqliteLedger(self.config.database.path, logging.getLogger("loyalty.ledger"))

    def _build_transport(self) -> Transport:
        if self.config.transport == "kryten":
            from kryten import KrytenClient, KrytenConfig

            kryten_config = KrytenConfig(
                nats={"servers": self.config.kryten.nats_servers},
                channels=[{"domain": self.config.kryten.domain, "channel": self.config.bot.channel}],
            )
            return KrytenTransport(KrytenClient(kryten_config))
        return TwitchTransport(
            self.config.bot.username,
            self.config.bot.oauth_token,
            login_timeout=self.config.twitch.login_timeout_seconds,
        )

    async def _say(self, text: str) -> None:
        await self.transport.send(self.config.bot.channel, text)

    async def start(self) -> None:
        """Wire everything up, connect, and block until the connection ends.

        Raises TransportConnectionError when the transport cannot connect; the
        dispatch loop never starts in that case.
        """
        self.logger.info("Starting chat-loyalty...")
        self._start_time = time.time()
        channel = self.config.bot.channel

        # 1. Ledger
        if self.ledger is None:
            self.ledger = self._build_ledger()
        if isinstance(self.ledger, SqliteLedger):
            await self.ledger.initialize()
            self.logger.info("Ledger initialized: %s", self.config.database.path)

        # 2. Transport + outgoing queue + dispatcher
        if self.transport is None:
            self.transport = self._build_transport()
        self.outgoing = OutgoingQueue(
            self._say,
            interval=self.config.outgoing.interval_seconds,
            max_pending=self.config.outgoing.max_pending,
        )
        self.dispatcher = Dispatcher(
            self.ledger,
            self.outgoing,
            ignored_users=[*self.config.ignored_users, self.config.bot.username],
        )

        # 3. Register handler BEFORE connect
        self.transport.on_message(self.dispatcher.handle_message)

        # 4. Connect and join
        await self.transport.connect()
        await self.transport.join_channel(channel)

        # 5. Delivery worker
        self.outgoing.start()

        self._running = True
        self.logger.info("chat-loyalty started successfully (v%s) in %s", __version__, channel)

        # 6. Block on transport read loop
        await self.transport.run()

    async def stop(self) -> None:
        """Shut down in reverse order. Pending replies are abandoned."""
        if not self._running:
            return
        self.logger.info("Shutting down chat-loyalty...")
        self._running = False

        if self.outgoing:
            await self.outgoing.stop()
        if self.transport:
            await self.transport.close()

        if self.dispatcher:
            self.logger.info(
                "Processed %d messages, %d commands",
                self.dispatcher.messages_processed, self.dispatcher.commands_processed,
            )
        if self.outgoing:
            self.logger.info(
                "Sent %d replies, %d deduplicated, %d dropped",
                self.outgoing.sent_count, self.outgoing.deduplicated_count,
                self.outgoing.dropped_count,
            )
        self.logger.info("chat-loyalty stopped after %.0fs.", self.uptime_seconds)
