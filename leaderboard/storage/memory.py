"""In-process sorted index."""

from __future__ import annotations

import bisect


class MemoryStore:
    """Sorted list of ``(-score, player)`` keys beside a player -> score dict.

    Iterating the key list front to back yields score descending, player
    ascending, which is the ranking order.
    """

    def __init__(self):
        self._scores: dict[str, int] = {}
        self._index: list[tuple[int, str]] = []

    async def open(self) -> None:
        pass

    async def close(self) -> None:
        pass

    def _put(self, player: str, score: int) -> None:
        old = self._scores.get(player)
        if old is not None:
            i = bisect.bisect_left(self._index, (-old, player))
            del self._index[i]
        self._scores[player] = score
        bisect.insort(self._index, (-score, player))

    async def set_score(self, player: str, score: int) -> None:
        self._put(player, int(score))

    async def increment_score(self, player: str, amount: int) -> int:
        score = self._scores.get(player, 0) + int(amount)
        self._put(player, score)
        return score

    async def add_floored(self, player: str, delta: int) -> int:
        score = max(self._scores.get(player, 0) + int(delta), 0)
        self._put(player, score)
        return score

    async def set_if_absent(self, player: str, score: int) -> bool:
        if player in self._scores:
            return False
        self._put(player, int(score))
        return True

    async def score_of(self, player: str) -> int | None:
        return self._scores.get(player)

    async def top_descending(self, n: int) -> list[tuple[str, int]]:
        return [(player, -neg) for neg, player in self._index[: int(n)]]

    async def count(self) -> int:
        return len(self._scores)
