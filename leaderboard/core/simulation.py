"""Random score traffic for demos and load checks."""

from __future__ import annotations

import asyncio
import logging
import random

from leaderboard.core.errors import StoreUnavailable
from leaderboard.core.ranking import RankedLeaderboard

log = logging.getLogger(__name__)


class TrafficSimulator:
    def __init__(
        self,
        board: RankedLeaderboard,
        players: list[str],
        *,
        interval_sec: float = 2.0,
        max_delta: int = 500,
        initial_score: int = 1000,
        rng: random.Random | None = None,
    ):
        self.board = board
        self.players = list(players)
        self.interval_sec = float(interval_sec)
        self.max_delta = abs(int(max_delta))
        self.initial_score = initial_score
        self.rng = rng or random.Random()

        self._running = False
        self._task: asyncio.Task | None = None

    async def step(self) -> tuple[str, int, int]:
        player = self.rng.choice(self.players)
        delta = self.rng.randint(-self.max_delta, self.max_delta)
        new_score = await self.board.apply_delta(player, delta)
        log.debug("simulated %s %+d -> %d", player, delta, new_score)
        return player, delta, new_score

    async def start(self) -> None:
        if self._running or not self.players:
            return
        await self.board.initialize_many(self.players, self.initial_score)
        self._running = True
        self._task = asyncio.create_task(self._loop())
        log.info("traffic simulator started for %d players", len(self.players))

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.interval_sec)
            try:
                await self.step()
            except StoreUnavailable as e:
                log.warning("simulated update failed: %s", e)
