"""Message schemas + validation.

Push format (server -> viewer):
  {"type": "leaderboard_update", "leaderboard": [{"player": ..., "score": ...}, ...]}

Client messages over the socket:
  {"type": "ping", "t": ...} | {"type": "leaderboard", "count": ...}
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Iterable

from leaderboard.core.errors import InvalidInput
from leaderboard.core.ranking import LeaderboardEntry, coerce_player, coerce_score

UPDATE_TYPE = "leaderboard_update"


class ProtocolError(Exception):
    pass


def dumps(msg_type: str, **fields: Any) -> str:
    return json.dumps({"type": msg_type, **fields}, separators=(",", ":"))


def update_message(entries: Iterable[LeaderboardEntry]) -> str:
    return dumps(UPDATE_TYPE, leaderboard=[e.as_dict() for e in entries])


def loads(text: str) -> tuple[str, dict[str, Any]]:
    try:
        obj = json.loads(text)
    except ValueError as e:
        raise ProtocolError(f"invalid json: {e}")

    if not isinstance(obj, dict):
        raise ProtocolError("message must be object")
    t = obj.get("type")
    if not isinstance(t, str):
        raise ProtocolError("missing type")
    return t, obj


def _body(data: Any) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise InvalidInput("request body must be a JSON object")
    return data


def parse_count(raw: str | None, default: int) -> int:
    # Unparseable or zero counts fall back to the default, like `parseInt(x) || 100`.
    if raw is None:
        return default
    try:
        count = int(raw)
    except ValueError:
        return default
    return count or default


@dataclass
class SetScore:
    player: str
    score: int

    @classmethod
    def parse(cls, data: Any) -> "SetScore":
        data = _body(data)
        return cls(player=coerce_player(data.get("player")), score=coerce_score(data.get("score")))


@dataclass
class AdjustScore:
    player: str
    amount: int

    @classmethod
    def parse(cls, data: Any) -> "AdjustScore":
        data = _body(data)
        return cls(player=coerce_player(data.get("player")), amount=coerce_score(data.get("amount"), "amount"))


@dataclass
class ChangeScore:
    player: str
    delta: int

    @classmethod
    def parse(cls, data: Any) -> "ChangeScore":
        data = _body(data)
        return cls(player=coerce_player(data.get("player")), delta=coerce_score(data.get("delta"), "delta"))


@dataclass
class InitPlayers:
    players: list[str]
    initial_score: int

    @classmethod
    def parse(cls, data: Any, default_score: int = 1000) -> "InitPlayers":
        data = _body(data)
        players = data.get("players")
        if not isinstance(players, list):
            raise InvalidInput("players must be a list of strings")
        initial = data.get("initialScore", default_score)
        return cls(
            players=[coerce_player(p) for p in players],
            initial_score=coerce_score(initial, "initialScore"),
        )


VALID_C2S = {"ping", "leaderboard"}
