from __future__ import annotations

import asyncio

import pytest

from leaderboard.core.errors import InvalidInput
from leaderboard.core.ranking import MAX_SCORE, ChangeEvent, LeaderboardEntry, RankedLeaderboard
from leaderboard.storage.memory import MemoryStore


def _board() -> RankedLeaderboard:
    return RankedLeaderboard(MemoryStore())


def test_increase_accumulates() -> None:
    board = _board()

    async def scenario() -> int:
        await board.set_score("p", 10)
        await board.increase_score("p", 5)
        await board.increase_score("p", 7)
        return await board.score_of("p")

    assert asyncio.run(scenario()) == 22


def test_increase_starts_new_players_at_zero() -> None:
    board = _board()

    async def scenario() -> tuple[int, int]:
        new_score = await board.increase_score("fresh", 3)
        return new_score, await board.score_of("fresh")

    assert asyncio.run(scenario()) == (3, 3)


def test_decrease_floors_at_zero() -> None:
    board = _board()

    async def scenario() -> int:
        await board.set_score("p", 100)
        await board.decrease_score("p", 250)
        return await board.score_of("p")

    assert asyncio.run(scenario()) == 0


def test_apply_delta_floors_at_zero_and_adds() -> None:
    board = _board()

    async def scenario() -> list[int]:
        out = [await board.apply_delta("p", 40)]
        out.append(await board.apply_delta("p", -15))
        out.append(await board.apply_delta("p", -1000))
        return out

    assert asyncio.run(scenario()) == [40, 25, 0]


def test_set_score_accepts_any_sign() -> None:
    board = _board()

    async def scenario() -> int:
        await board.set_score("p", -20)
        return await board.score_of("p")

    assert asyncio.run(scenario()) == -20


@pytest.mark.parametrize("op", ["increase_score", "decrease_score"])
def test_negative_amount_is_rejected_and_score_unchanged(op: str) -> None:
    board = _board()

    async def scenario() -> int:
        await board.set_score("p", 50)
        with pytest.raises(InvalidInput):
            await getattr(board, op)("p", -1)
        return await board.score_of("p")

    assert asyncio.run(scenario()) == 50


@pytest.mark.parametrize("bad", [1.5, float("nan"), float("inf"), "10", None, True])
def test_set_score_rejects_non_integers(bad) -> None:
    board = _board()
    with pytest.raises(InvalidInput):
        asyncio.run(board.set_score("p", bad))


def test_integral_float_is_accepted() -> None:
    board = _board()
    assert asyncio.run(board.set_score("p", 12.0)) == 12


@pytest.mark.parametrize("player", ["", None, 7])
def test_player_must_be_non_empty_string(player) -> None:
    board = _board()
    with pytest.raises(InvalidInput):
        asyncio.run(board.set_score(player, 1))


def test_score_of_unknown_player_is_zero() -> None:
    assert asyncio.run(_board().score_of("nobody")) == 0


def test_top_n_orders_descending_with_player_tie_break() -> None:
    board = _board()

    async def scenario() -> list[LeaderboardEntry]:
        await board.set_score("carol", 50)
        await board.set_score("bob", 80)
        await board.set_score("alice", 50)
        await board.set_score("dave", 10)
        await board.set_score("bob", 40)
        return await board.top_n(10)

    assert asyncio.run(scenario()) == [
        LeaderboardEntry("alice", 50),
        LeaderboardEntry("carol", 50),
        LeaderboardEntry("bob", 40),
        LeaderboardEntry("dave", 10),
    ]


def test_top_n_bounds() -> None:
    board = _board()

    async def scenario():
        for i in range(5):
            await board.set_score(f"p{i}", i * 10)
        return (
            await board.top_n(0),
            await board.top_n(-3),
            await board.top_n(2),
            await board.top_n(50),
        )

    zero, negative, two, all_ = asyncio.run(scenario())
    assert zero == []
    assert negative == []
    assert [e.player for e in two] == ["p4", "p3"]
    assert len(all_) == 5
    scores = [e.score for e in all_]
    assert scores == sorted(scores, reverse=True)


def test_top_n_uses_default_count() -> None:
    board = RankedLeaderboard(MemoryStore(), default_top_n=3)

    async def scenario():
        for i in range(10):
            await board.set_score(f"p{i}", i)
        return await board.top_n()

    assert [e.score for e in asyncio.run(scenario())] == [9, 8, 7]


def test_initialize_many_skips_existing_players() -> None:
    board = _board()

    async def scenario():
        await board.set_score("Alice", 5)
        seeded = await board.initialize_many(["Alice", "Bob", "Bob"], 1000)
        return seeded, await board.score_of("Alice"), await board.score_of("Bob")

    assert asyncio.run(scenario()) == (["Bob"], 5, 1000)


def test_initialize_many_rejects_bare_string() -> None:
    with pytest.raises(InvalidInput):
        asyncio.run(_board().initialize_many("Alice", 10))


def test_concurrent_deltas_are_not_lost() -> None:
    board = _board()

    async def scenario() -> int:
        await asyncio.gather(*(board.apply_delta("p", 1) for _ in range(100)))
        return await board.score_of("p")

    assert asyncio.run(scenario()) == 100


def test_end_to_end_scenario() -> None:
    board = _board()

    async def scenario():
        await board.initialize_many(["Alice", "Bob"], 1000)
        await board.increase_score("Alice", 500)
        await board.decrease_score("Bob", 1200)
        return [e.as_dict() for e in await board.top_n(10)]

    assert asyncio.run(scenario()) == [
        {"player": "Alice", "score": 1500},
        {"player": "Bob", "score": 0},
    ]


def test_hooks_receive_events_and_failures_are_contained() -> None:
    board = _board()
    events: list[ChangeEvent] = []

    async def record(event: ChangeEvent) -> None:
        events.append(event)

    async def boom(_: ChangeEvent) -> None:
        raise RuntimeError("hook failed")

    board.add_hook(boom)
    board.add_hook(record)

    async def scenario() -> int:
        await board.set_score("a", 1)
        await board.apply_delta("a", 2)
        await board.initialize_many(["a", "b"], 10)
        with pytest.raises(InvalidInput):
            await board.increase_score("a", -5)
        return await board.score_of("a")

    assert asyncio.run(scenario()) == 3
    assert [e.op for e in events] == ["set", "delta", "initialize"]
    assert events[-1].players == ("b",)

    board.remove_hook(record)
    board.remove_hook(record)
    asyncio.run(board.set_score("a", 4))
    assert len(events) == 3


@pytest.mark.parametrize("bad", [2**53 + 1, -(2**53) - 1, 10**20, 1e20])
def test_scores_outside_exact_range_are_rejected(bad) -> None:
    board = _board()
    with pytest.raises(InvalidInput):
        asyncio.run(board.set_score("p", bad))
    with pytest.raises(InvalidInput):
        asyncio.run(board.apply_delta("p", bad))


def test_results_outside_exact_range_are_rejected() -> None:
    board = _board()

    async def scenario() -> int:
        await board.set_score("p", MAX_SCORE - 1)
        with pytest.raises(InvalidInput):
            await board.increase_score("p", 2)
        with pytest.raises(InvalidInput):
            await board.apply_delta("p", 2)
        await board.increase_score("p", 1)
        return await board.score_of("p")

    assert asyncio.run(scenario()) == MAX_SCORE


class YieldingStore(MemoryStore):
    """Suspends before every call, like a networked store would."""

    async def score_of(self, player):
        await asyncio.sleep(0)
        return await super().score_of(player)

    async def set_score(self, player, score):
        await asyncio.sleep(0)
        await super().set_score(player, score)

    async def add_floored(self, player, delta):
        await asyncio.sleep(0)
        return await super().add_floored(player, delta)

    async def set_if_absent(self, player, score):
        await asyncio.sleep(0)
        return await super().set_if_absent(player, score)


def test_boards_sharing_a_store_do_not_lose_updates() -> None:
    store = YieldingStore()
    first, second = RankedLeaderboard(store), RankedLeaderboard(store)

    async def scenario():
        seeded = await asyncio.gather(
            first.initialize_many(["p"], 0),
            second.initialize_many(["p"], 0),
        )
        await asyncio.gather(
            *(first.apply_delta("p", 1) for _ in range(50)),
            *(second.apply_delta("p", 1) for _ in range(50)),
        )
        return seeded, await first.score_of("p")

    seeded, score = asyncio.run(scenario())
    assert sorted(seeded) == [[], ["p"]]
    assert score == 100
