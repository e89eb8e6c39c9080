import pytest

from services.leaderboard import MAX_LIMIT, clamp_limit


@pytest.fixture
def seed(game, set_player):
    async def _seed(coins_by_id: dict):
        for player_id, coins in coins_by_id.items():
            await game.get_player_summary(player_id, first_name=f"P{player_id}")
            await set_player(player_id, coins=coins)

    return _seed


@pytest.mark.asyncio
async def test_ties_get_distinct_successive_ranks(game, seed):
    # inserted out of id order on purpose
    await seed({3: 100, 2: 300, 1: 300})

    rows = await game.get_leaderboard(10)

    assert [(r["rank"], r["id"], r["coins"]) for r in rows] == [
        (1, 1, 300),
        (2, 2, 300),
        (3, 3, 100),
    ]
    assert rows[0]["name"] == "P1"
    assert await game.get_leaderboard(10) == rows


@pytest.mark.asyncio
async def test_pagination_keeps_global_ranks(game, seed):
    await seed({1: 50, 2: 40, 3: 30, 4: 20})

    page = await game.get_leaderboard(limit=2, offset=2)

    assert [(r["rank"], r["id"]) for r in page] == [(3, 3), (4, 4)]


@pytest.mark.asyncio
async def test_rank_of_matches_top_n(game, seed):
    await seed({10: 700, 11: 700, 12: 900, 13: 5})

    board = await game.get_leaderboard(100)
    for row in board:
        rank = await game.get_player_rank(row["id"])
        assert rank["rank"] == row["rank"]
        assert rank["total_players"] == 4


def test_clamp_limit():
    assert clamp_limit(0) == 1
    assert clamp_limit(-5) == 1
    assert clamp_limit(10_000) == MAX_LIMIT
    assert clamp_limit("7") == 7
    assert clamp_limit(None) == 10
