"""Throttled outgoing chat queue.

Handlers enqueue replies without waiting; a single background worker delivers
them in FIFO order, skips a reply identical to the one it just said, and
pauses ``interval`` seconds after every message it actually sends.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

SendFunc = Callable[[str], Awaitable[None]]

DEFAULT_INTERVAL: float = 4.0
MIN_PENDING: int = 1000


class OutgoingQueue:
    """Single-consumer delivery queue with dedup and pacing."""

    def __init__(
        self,
        send: SendFunc,
        interval: float = DEFAULT_INTERVAL,
        max_pending: int = MIN_PENDING,
        logger: logging.Logger | None = None,
    ) -> None:
        self._send = send
        self._interval = interval
        self._logger = logger or logging.getLogger("loyalty.outgoing")
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=max(max_pending, MIN_PENDING))
        self._worker_task: asyncio.Task | None = None

        # Owned by the worker task only
        self._last_delivered: str | None = None

        self.sent_count: int = 0
        self.deduplicated_count: int = 0
        self.dropped_count: int = 0

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def running(self) -> bool:
        return self._worker_task is not None and not self._worker_task.done()

    # ── Lifecycle ────────────────────────────────────────────

    def start(self) -> None:
        """Start the background delivery worker."""
        if not self.running:
            self._worker_task = asyncio.create_task(self._worker())

    async def stop(self) -> None:
        """Stop the worker. Replies still queued are abandoned."""
        if self._worker_task and not self._worker_task.done():
            self._worker_task.cancel()
            try:
                await self._worker_task
            except asyncio.CancelledError:
                pass
        self._worker_task = None

    async def join(self) -> None:
        """Wait until every enqueued reply was delivered or skipped."""
        await self._queue.join()

    # ── Producer side ────────────────────────────────────────

    def enqueue(self, text: str) -> None:
        """Append a reply without blocking. When full, the oldest reply is dropped."""
        try:
            self._queue.put_nowait(text)
        except asyncio.QueueFull:
            dropped = self._queue.get_nowait()
            self._queue.task_done()
            self.dropped_count += 1
            self._logger.warning("Outgoing queue full, dropping oldest reply: %s", dropped)
            self._queue.put_nowait(text)

    # ── Consumer side ────────────────────────────────────────

    async def _worker(self) -> None:
        try:
            while True:
                text = await self._queue.get()
                if text == self._last_delivered:
                    self._logger.debug("Skipping repeated reply: %s", text)
                    self.deduplicated_count += 1
                    self._queue.task_done()
                    continue
                self._last_delivered = text
                try:
                    self._logger.info("saying %s", text)
                    await self._send(text)
                    self.sent_count += 1
                except Exception:
                    self._logger.exception("Failed to send reply")
                finally:
                    self._queue.task_done()
                await asyncio.sleep(self._interval)
        except asyncio.CancelledError:
            abandoned = 0
            while not self._queue.empty():
                self._queue.get_nowait()
                self._queue.task_done()
                abandoned += 1
            if abandoned:
                self._logger.info("Outgoing worker stopped, abandoned %d replies", abandoned)
            raise
