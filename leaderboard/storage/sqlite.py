"""SQLite-backed score store."""

from __future__ import annotations

import sqlite3

from leaderboard.core.errors import StoreUnavailable


class SqliteStore:
    def __init__(self, path: str):
        self.path = path
        self.conn: sqlite3.Connection | None = None

    async def open(self) -> None:
        try:
            self.conn = sqlite3.connect(self.path, check_same_thread=False)
            self.conn.execute(
                """
                CREATE TABLE IF NOT EXISTS player_scores (
                  player TEXT PRIMARY KEY,
                  score INTEGER NOT NULL
                )
                """
            )
            self.conn.execute(
                "CREATE INDEX IF NOT EXISTS player_scores_rank ON player_scores (score DESC, player ASC)"
            )
            self.conn.commit()
        except sqlite3.Error as e:
            raise StoreUnavailable(f"sqlite open failed: {e}") from e

    async def close(self) -> None:
        if self.conn:
            self.conn.close()
            self.conn = None

    def _db(self) -> sqlite3.Connection:
        if not self.conn:
            raise StoreUnavailable("sqlite store is not open")
        return self.conn

    async def set_score(self, player: str, score: int) -> None:
        db = self._db()
        try:
            db.execute(
                """
                INSERT INTO player_scores (player, score) VALUES (?, ?)
                ON CONFLICT(player) DO UPDATE SET score=excluded.score
                """,
                (player, int(score)),
            )
            db.commit()
        except sqlite3.Error as e:
            raise StoreUnavailable(f"sqlite write failed: {e}") from e

    async def increment_score(self, player: str, amount: int) -> int:
        db = self._db()
        try:
            db.execute(
                """
                INSERT INTO player_scores (player, score) VALUES (?, ?)
                ON CONFLICT(player) DO UPDATE SET score=score + excluded.score
                """,
                (player, int(amount)),
            )
            db.commit()
            row = db.execute("SELECT score FROM player_scores WHERE player = ?", (player,)).fetchone()
        except sqlite3.Error as e:
            raise StoreUnavailable(f"sqlite write failed: {e}") from e
        return int(row[0])

    async def add_floored(self, player: str, delta: int) -> int:
        db = self._db()
        try:
            db.execute(
                """
                INSERT INTO player_scores (player, score) VALUES (?, MAX(?, 0))
                ON CONFLICT(player) DO UPDATE SET score=MAX(score + ?, 0)
                """,
                (player, int(delta), int(delta)),
            )
            db.commit()
            row = db.execute("SELECT score FROM player_scores WHERE player = ?", (player,)).fetchone()
        except sqlite3.Error as e:
            raise StoreUnavailable(f"sqlite write failed: {e}") from e
        return int(row[0])

    async def set_if_absent(self, player: str, score: int) -> bool:
        db = self._db()
        try:
            cur = db.execute(
                "INSERT OR IGNORE INTO player_scores (player, score) VALUES (?, ?)",
                (player, int(score)),
            )
            db.commit()
        except sqlite3.Error as e:
            raise StoreUnavailable(f"sqlite write failed: {e}") from e
        return cur.rowcount == 1

    async def score_of(self, player: str) -> int | None:
        db = self._db()
        try:
            row = db.execute("SELECT score FROM player_scores WHERE player = ?", (player,)).fetchone()
        except sqlite3.Error as e:
            raise StoreUnavailable(f"sqlite read failed: {e}") from e
        return None if row is None else int(row[0])

    async def top_descending(self, n: int) -> list[tuple[str, int]]:
        db = self._db()
        try:
            cur = db.execute(
                "SELECT player, score FROM player_scores ORDER BY score DESC, player ASC LIMIT ?",
                (int(n),),
            )
            return [(row[0], int(row[1])) for row in cur.fetchall()]
        except sqlite3.Error as e:
            raise StoreUnavailable(f"sqlite read failed: {e}") from e

    async def count(self) -> int:
        db = self._db()
        try:
            return int(db.execute("SELECT COUNT(*) FROM player_scores").fetchone()[0])
        except sqlite3.Error as e:
            raise StoreUnavailable(f"sqlite read failed: {e}") from e
