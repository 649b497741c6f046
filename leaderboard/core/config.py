"""Server, store and broadcast settings."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

DEFAULT_PLAYERS = [
    "Alice",
    "Bob",
    "Charlie",
    "David",
    "Eve",
    "Frank",
    "Grace",
    "Henry",
    "Isabella",
    "Jack",
]


@dataclass
class ServerConfig:
    server_version: str = "0.1.0"

    # Network
    host: str = "0.0.0.0"
    port: int = 3000
    cors_allow_all: bool = True
    cors_allowed_origins: list[str] = field(default_factory=list)

    # Store
    store_backend: str = "memory"  # memory | redis | sqlite
    redis_url: str = "redis://localhost:6379/0"
    redis_key: str = "leaderboard"
    redis_timeout_sec: float = 2.0
    sqlite_path: str = "leaderboard.sqlite3"

    # Ranking
    default_top_n: int = 100
    seed_players: list[str] = field(default_factory=list)
    seed_score: int = 1000

    # Broadcast
    broadcast_interval_sec: float = 2.0
    send_timeout_sec: float = 1.0
    snapshot_on_connect: bool = False

    # Traffic simulator
    simulation_enabled: bool = False
    simulation_interval_sec: float = 2.0
    simulation_max_delta: int = 500
    simulation_players: list[str] = field(default_factory=lambda: list(DEFAULT_PLAYERS))

    log_level: str = "INFO"

    @staticmethod
    def _parse_bool(v: str | None, default: bool) -> bool:
        if v is None:
            return default
        return v.strip().lower() in ("1", "true", "yes", "on")

    @staticmethod
    def _parse_int(v: str | None, default: int) -> int:
        if v is None:
            return default
        try:
            return int(v)
        except ValueError:
            return default

    @staticmethod
    def _parse_float(v: str | None, default: float) -> float:
        if v is None:
            return default
        try:
            out = float(v)
        except ValueError:
            return default
        return out if out > 0 else default

    @staticmethod
    def _parse_list(v: str | None, default: list[str]) -> list[str]:
        if not v:
            return default
        return [item.strip() for item in v.split(",") if item.strip()]

    @classmethod
    def from_env(cls, environ=None) -> "ServerConfig":
        env = os.environ if environ is None else environ
        cfg = cls()
        cfg.host = env.get("LB_HOST", cfg.host)
        cfg.port = cls._parse_int(env.get("LB_PORT"), cfg.port)
        cfg.cors_allow_all = cls._parse_bool(env.get("LB_CORS_ALLOW_ALL"), cfg.cors_allow_all)
        cfg.cors_allowed_origins = cls._parse_list(env.get("LB_CORS_ORIGINS"), cfg.cors_allowed_origins)

        cfg.store_backend = env.get("LB_STORE", cfg.store_backend).strip().lower()
        cfg.redis_url = env.get("LB_REDIS_URL", cfg.redis_url)
        cfg.redis_key = env.get("LB_REDIS_KEY", cfg.redis_key)
        cfg.redis_timeout_sec = cls._parse_float(env.get("LB_REDIS_TIMEOUT"), cfg.redis_timeout_sec)
        cfg.sqlite_path = env.get("LB_SQLITE_PATH", cfg.sqlite_path)

        cfg.default_top_n = cls._parse_int(env.get("LB_TOP_N"), cfg.default_top_n)
        cfg.seed_players = cls._parse_list(env.get("LB_SEED_PLAYERS"), cfg.seed_players)
        cfg.seed_score = cls._parse_int(env.get("LB_SEED_SCORE"), cfg.seed_score)

        cfg.broadcast_interval_sec = cls._parse_float(
            env.get("LB_BROADCAST_INTERVAL"), cfg.broadcast_interval_sec
        )
        cfg.send_timeout_sec = cls._parse_float(env.get("LB_SEND_TIMEOUT"), cfg.send_timeout_sec)
        cfg.snapshot_on_connect = cls._parse_bool(env.get("LB_SNAPSHOT_ON_CONNECT"), cfg.snapshot_on_connect)

        cfg.simulation_enabled = cls._parse_bool(env.get("LB_SIMULATION"), cfg.simulation_enabled)
        cfg.simulation_interval_sec = cls._parse_float(
            env.get("LB_SIMULATION_INTERVAL"), cfg.simulation_interval_sec
        )
        cfg.simulation_max_delta = cls._parse_int(env.get("LB_SIMULATION_MAX_DELTA"), cfg.simulation_max_delta)
        cfg.simulation_players = cls._parse_list(env.get("LB_SIMULATION_PLAYERS"), cfg.simulation_players)

        cfg.log_level = env.get("LB_LOG_LEVEL", cfg.log_level).upper()
        return cfg
