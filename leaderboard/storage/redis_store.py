"""Redis sorted-set score store."""

from __future__ import annotations

import functools
import logging

import redis.asyncio as aioredis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from leaderboard.core.errors import StoreUnavailable

log = logging.getLogger(__name__)

# Top-N in one atomic read. ZREVRANGE orders equal scores by descending
# member, so the cut-off score's slice is re-read with ZRANGEBYSCORE, which
# orders them ascending.
TOP_SCRIPT = """
local n = tonumber(ARGV[1])
local rows = redis.call('ZREVRANGE', KEYS[1], 0, n - 1, 'WITHSCORES')
if #rows == 0 then
  return {}
end
local cutoff = rows[#rows]
local out = {}
for i = 1, #rows, 2 do
  if tonumber(rows[i + 1]) > tonumber(cutoff) then
    table.insert(out, rows[i])
    table.insert(out, rows[i + 1])
  end
end
local ties = redis.call('ZRANGEBYSCORE', KEYS[1], cutoff, cutoff, 'WITHSCORES', 'LIMIT', 0, n - #out / 2)
for i = 1, #ties do
  table.insert(out, ties[i])
end
return out
"""

FLOOR_SCRIPT = """
local current = tonumber(redis.call('ZSCORE', KEYS[1], ARGV[1]) or '0')
local score = math.max(current + tonumber(ARGV[2]), 0)
redis.call('ZADD', KEYS[1], score, ARGV[1])
return score
"""


def _unavailable(fn):
    @functools.wraps(fn)
    async def wrapper(self, *args, **kwargs):
        try:
            return await fn(self, *args, **kwargs)
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise StoreUnavailable(f"redis {fn.__name__} failed: {e}") from e

    return wrapper


class RedisStore:
    def __init__(self, url: str, key: str = "leaderboard", timeout_sec: float = 2.0, client=None):
        self.url = url
        self.key = key
        self.timeout_sec = timeout_sec
        self.client = client
        self._top = None
        self._floor = None

    @_unavailable
    async def open(self) -> None:
        if self.client is None:
            self.client = aioredis.from_url(
                self.url,
                decode_responses=True,
                socket_timeout=self.timeout_sec,
                socket_connect_timeout=self.timeout_sec,
            )
        await self.client.ping()
        log.info("connected to redis at %s (key=%s)", self.url, self.key)

    async def close(self) -> None:
        if self.client is not None:
            await self.client.aclose()
            self.client = None
            self._top = None
            self._floor = None

    def _redis(self):
        if self.client is None:
            raise StoreUnavailable("redis store is not open")
        return self.client

    def _scripts(self):
        client = self._redis()
        if self._top is None:
            self._top = client.register_script(TOP_SCRIPT)
            self._floor = client.register_script(FLOOR_SCRIPT)
        return self._top, self._floor

    @_unavailable
    async def set_score(self, player: str, score: int) -> None:
        await self._redis().zadd(self.key, {player: int(score)})

    @_unavailable
    async def increment_score(self, player: str, amount: int) -> int:
        return int(await self._redis().zincrby(self.key, int(amount), player))

    @_unavailable
    async def add_floored(self, player: str, delta: int) -> int:
        _, floor = self._scripts()
        return int(await floor(keys=[self.key], args=[player, int(delta)]))

    @_unavailable
    async def set_if_absent(self, player: str, score: int) -> bool:
        return bool(await self._redis().zadd(self.key, {player: int(score)}, nx=True))

    @_unavailable
    async def score_of(self, player: str) -> int | None:
        score = await self._redis().zscore(self.key, player)
        return None if score is None else int(score)

    @_unavailable
    async def top_descending(self, n: int) -> list[tuple[str, int]]:
        top, _ = self._scripts()
        flat = await top(keys=[self.key], args=[int(n)])
        rows = [(flat[i], int(float(flat[i + 1]))) for i in range(0, len(flat), 2)]
        if not rows:
            return []
        cutoff = rows[-1][1]
        above = sorted((r for r in rows if r[1] > cutoff), key=lambda r: (-r[1], r[0]))
        return above + [r for r in rows if r[1] == cutoff]

    @_unavailable
    async def count(self) -> int:
        return int(await self._redis().zcard(self.key))
