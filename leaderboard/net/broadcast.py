"""Top-N fan-out to live subscribers.

A listener is anything with a ``closed`` attribute and an awaitable
``send_str(text)``; aiohttp's ``WebSocketResponse`` qualifies as-is.

Sends to one listener are serialized, and a snapshot still waiting behind a
newer one for the same listener is dropped, so a viewer never ends on a
stale top-N.
"""

from __future__ import annotations

import asyncio
import logging

from leaderboard.core import protocol
from leaderboard.core.errors import DeliveryFailure, StoreUnavailable
from leaderboard.core.ranking import ChangeEvent, RankedLeaderboard

log = logging.getLogger(__name__)


class UpdateBroadcaster:
    def __init__(
        self,
        board: RankedLeaderboard,
        *,
        interval_sec: float = 2.0,
        send_timeout_sec: float = 1.0,
        top_n: int | None = None,
    ):
        self.board = board
        self.interval_sec = float(interval_sec)
        self.send_timeout_sec = float(send_timeout_sec)
        self.top_n = top_n

        self._listeners: dict[int, object] = {}
        self._send_locks: dict[int, asyncio.Lock] = {}
        self._latest: dict[int, int] = {}
        self._seq = 0
        self._deliveries: set[asyncio.Task] = set()
        self._running = False
        self._timer_task: asyncio.Task | None = None

        self.broadcasts = 0
        self.delivery_failures = 0

    @property
    def subscriber_count(self) -> int:
        return len(self._listeners)

    def subscribe(self, listener) -> None:
        key = id(listener)
        self._listeners[key] = listener
        self._send_locks.setdefault(key, asyncio.Lock())

    def unsubscribe(self, listener) -> None:
        key = id(listener)
        self._listeners.pop(key, None)
        self._send_locks.pop(key, None)
        self._latest.pop(key, None)

    def attach(self, board: RankedLeaderboard | None = None) -> None:
        (board or self.board).add_hook(self._on_change)

    def detach(self, board: RankedLeaderboard | None = None) -> None:
        (board or self.board).remove_hook(self._on_change)

    async def _on_change(self, event: ChangeEvent) -> None:
        try:
            await self.notify_changed()
        except StoreUnavailable as e:
            log.warning("broadcast after %s skipped: %s", event.op, e)

    async def notify_changed(self) -> int:
        """Snapshot the top-N and dispatch it to every open subscriber.

        Returns once deliveries are scheduled; listener I/O runs in
        background tasks. Raises StoreUnavailable if the snapshot fails.
        """
        entries = await self.board.top_n(self.top_n)
        message = protocol.update_message(entries)
        self.broadcasts += 1
        self._seq += 1
        seq = self._seq

        dispatched = 0
        for key, listener in list(self._listeners.items()):
            if getattr(listener, "closed", False):
                continue
            self._latest[key] = seq
            task = asyncio.create_task(self._deliver(key, listener, message, seq))
            self._deliveries.add(task)
            task.add_done_callback(self._deliveries.discard)
            dispatched += 1
        return dispatched

    async def _deliver(self, key: int, listener, message: str, seq: int) -> None:
        lock = self._send_locks.get(key)
        if lock is None:
            return
        async with lock:
            # Superseded by a newer snapshot, or unsubscribed meanwhile.
            if self._latest.get(key) != seq:
                return
            try:
                await asyncio.wait_for(listener.send_str(message), timeout=self.send_timeout_sec)
            except Exception as e:
                self.delivery_failures += 1
                log.warning("%s", DeliveryFailure(listener, e))

    async def drain(self) -> None:
        while self._deliveries:
            await asyncio.gather(*list(self._deliveries), return_exceptions=True)

    # Periodic broadcast

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._timer_task = asyncio.create_task(self._timer_loop())

    async def stop(self) -> None:
        self._running = False
        if self._timer_task:
            self._timer_task.cancel()
            try:
                await self._timer_task
            except asyncio.CancelledError:
                pass
            self._timer_task = None

        for task in list(self._deliveries):
            task.cancel()
        await asyncio.gather(*list(self._deliveries), return_exceptions=True)

    async def _timer_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.interval_sec)
            try:
                await self.notify_changed()
            except StoreUnavailable as e:
                log.warning("periodic broadcast skipped: %s", e)
            except Exception:
                log.exception("periodic broadcast failed")
