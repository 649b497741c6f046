"""Ranked leaderboard: player -> score mapping with ordered top-N views.

Ordering is score descending, ties broken by player identifier ascending.
Every store backend applies the same order.

Read-modify-write sequences for a single player are serialized with a
per-player ``asyncio.Lock``; different players never contend. The lock only
covers this process: floored adjustments and seeding are also atomic inside
the store itself, so several processes may share one Redis key.

Scores, amounts and deltas are bounded to +/-2**53, the range a Redis
sorted-set score holds exactly.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable

from leaderboard.core.errors import InvalidInput

log = logging.getLogger(__name__)

DEFAULT_TOP_N = 100
MAX_SCORE = 2**53


@dataclass(frozen=True)
class LeaderboardEntry:
    player: str
    score: int

    def as_dict(self) -> dict[str, Any]:
        return {"player": self.player, "score": self.score}


@dataclass(frozen=True)
class ChangeEvent:
    op: str
    players: tuple[str, ...]


Hook = Callable[[ChangeEvent], Awaitable[None]]


def coerce_score(value: Any, name: str = "score") -> int:
    if isinstance(value, bool):
        raise InvalidInput(f"{name} must be an integer")
    if isinstance(value, float):
        if not math.isfinite(value) or not value.is_integer():
            raise InvalidInput(f"{name} must be a finite integer")
        value = int(value)
    if not isinstance(value, int):
        raise InvalidInput(f"{name} must be an integer")
    return check_range(value, name)


def check_range(value: int, name: str = "score") -> int:
    if not -MAX_SCORE <= value <= MAX_SCORE:
        raise InvalidInput(f"{name} must be within +/-{MAX_SCORE}")
    return value


def coerce_player(value: Any) -> str:
    if not isinstance(value, str) or not value:
        raise InvalidInput("player must be a non-empty string")
    return value


def _non_negative(value: Any, name: str) -> int:
    amount = coerce_score(value, name)
    if amount < 0:
        raise InvalidInput(f"{name} must be >= 0")
    return amount


class RankedLeaderboard:
    def __init__(self, store, default_top_n: int = DEFAULT_TOP_N):
        self.store = store
        self.default_top_n = int(default_top_n)
        self._locks: dict[str, asyncio.Lock] = {}
        self._hooks: list[Hook] = []

    # Hooks

    def add_hook(self, hook: Hook) -> None:
        if hook not in self._hooks:
            self._hooks.append(hook)

    def remove_hook(self, hook: Hook) -> None:
        try:
            self._hooks.remove(hook)
        except ValueError:
            pass

    async def _emit(self, op: str, players: Iterable[str]) -> None:
        event = ChangeEvent(op=op, players=tuple(players))
        for hook in list(self._hooks):
            try:
                await hook(event)
            except Exception:
                log.exception("post-mutation hook failed for %s", op)

    def _lock(self, player: str) -> asyncio.Lock:
        lock = self._locks.get(player)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[player] = lock
        return lock

    # Mutations

    async def set_score(self, player: str, score: int) -> int:
        player = coerce_player(player)
        score = coerce_score(score)
        async with self._lock(player):
            await self.store.set_score(player, score)
        await self._emit("set", [player])
        return score

    async def increase_score(self, player: str, amount: int) -> int:
        player = coerce_player(player)
        amount = _non_negative(amount, "amount")
        async with self._lock(player):
            check_range((await self.store.score_of(player) or 0) + amount)
            new_score = await self.store.increment_score(player, amount)
        await self._emit("increase", [player])
        return new_score

    async def decrease_score(self, player: str, amount: int) -> int:
        player = coerce_player(player)
        amount = _non_negative(amount, "amount")
        new_score = await self._adjust_floored(player, -amount)
        await self._emit("decrease", [player])
        return new_score

    async def apply_delta(self, player: str, delta: int) -> int:
        player = coerce_player(player)
        delta = coerce_score(delta, "delta")
        new_score = await self._adjust_floored(player, delta)
        await self._emit("delta", [player])
        return new_score

    async def _adjust_floored(self, player: str, delta: int) -> int:
        async with self._lock(player):
            check_range(max((await self.store.score_of(player) or 0) + delta, 0))
            return await self.store.add_floored(player, delta)

    async def initialize_many(self, players: Iterable[str], initial_score: int = 1000) -> list[str]:
        """Seed players that have no entry yet; existing players keep their score."""
        if isinstance(players, str):
            raise InvalidInput("players must be a list of strings")
        names = [coerce_player(p) for p in players]
        initial_score = coerce_score(initial_score, "initialScore")

        seeded: list[str] = []
        for player in dict.fromkeys(names):
            async with self._lock(player):
                if await self.store.set_if_absent(player, initial_score):
                    seeded.append(player)
        if seeded:
            await self._emit("initialize", seeded)
        return seeded

    # Queries

    async def top_n(self, n: int | None = None) -> list[LeaderboardEntry]:
        count = self.default_top_n if n is None else coerce_score(n, "count")
        if count <= 0:
            return []
        rows = await self.store.top_descending(count)
        return [LeaderboardEntry(player=p, score=int(s)) for p, s in rows]

    async def score_of(self, player: str) -> int:
        player = coerce_player(player)
        score = await self.store.score_of(player)
        return 0 if score is None else int(score)

    async def player_count(self) -> int:
        return await self.store.count()
