# ===============================================================
# services/leaderboard.py — read-only ranking by coins
# ===============================================================
from sqlalchemy.ext.asyncio import AsyncSession

from helpers import count_players, count_players_ahead, load_player, query_top_players

DEFAULT_LIMIT = 10
MAX_LIMIT = 100


def clamp_limit(limit) -> int:
    try:
        limit = int(limit)
    except (TypeError, ValueError):
        return DEFAULT_LIMIT
    return max(1, min(MAX_LIMIT, limit))


async def top_n(session: AsyncSession, limit: int = DEFAULT_LIMIT, offset: int = 0) -> list[dict]:
    """
    Players by coins desc, ties broken by ascending id.
    Ranks are 1-based, contiguous and never shared.
    """
    limit = clamp_limit(limit)
    offset = max(0, int(offset or 0))
    rows = await query_top_players(session, limit, offset)
    return [
        {
            "rank": offset + position + 1,
            "id": row.id,
            "username": row.username,
            "first_name": row.first_name,
            "name": row.first_name or row.username or "Anonymous",
            "coins": row.coins,
            "level": row.level,
            "total_clicks": row.total_clicks,
        }
        for position, row in enumerate(rows)
    ]


async def rank_of(session: AsyncSession, player_id: int) -> dict:
    player = await load_player(session, player_id)
    ahead = await count_players_ahead(session, player.id, player.coins)
    return {
        "id": player.id,
        "rank": ahead + 1,
        "coins": player.coins,
        "level": player.level,
        "total_players": await count_players(session),
    }
