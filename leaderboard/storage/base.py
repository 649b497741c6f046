"""Score store interface and backend selection."""

from __future__ import annotations

from typing import Protocol

from leaderboard.core.config import ServerConfig


class ScoreStore(Protocol):
    async def open(self) -> None: ...

    async def close(self) -> None: ...

    async def set_score(self, player: str, score: int) -> None: ...

    async def increment_score(self, player: str, amount: int) -> int: ...

    async def add_floored(self, player: str, delta: int) -> int: ...

    async def set_if_absent(self, player: str, score: int) -> bool: ...

    async def score_of(self, player: str) -> int | None: ...

    async def top_descending(self, n: int) -> list[tuple[str, int]]: ...

    async def count(self) -> int: ...


def create_store(config: ServerConfig) -> ScoreStore:
    backend = config.store_backend
    if backend == "memory":
        from leaderboard.storage.memory import MemoryStore

        return MemoryStore()
    if backend == "sqlite":
        from leaderboard.storage.sqlite import SqliteStore

        return SqliteStore(config.sqlite_path)
    if backend == "redis":
        from leaderboard.storage.redis_store import RedisStore

        return RedisStore(config.redis_url, key=config.redis_key, timeout_sec=config.redis_timeout_sec)
    raise ValueError(f"unknown store backend: {backend!r}")
