# ===============================================================
# helpers.py — persistence gateway for the game engine
# ===============================================================
import logging
from sqlalchemy import select, update, func, or_, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from models import Player, ReferralRecord
from services.economy import DAY_MS
from services.errors import (
    AlreadyReferred,
    CorruptedPlayerState,
    PlayerNotFound,
    StorageConflict,
)
from services.player_state import new_player, validate_player

logger = logging.getLogger(__name__)


# -------------------------------------------------
# Escape MarkdownV2 for Telegram messages
# -------------------------------------------------
def md_escape(text: str) -> str:
    escape_chars = r"_*[]()~`>#+-=|{}.!"
    return "".join(f"\\{c}" if c in escape_chars else c for c in str(text))


# -------------------------------------------------
# Load (validated)
# -------------------------------------------------
async def find_player(session: AsyncSession, player_id: int) -> Player | None:
    """
    Fetch a Player by id and check its invariants.
    A corrupted record is logged and reported as PlayerNotFound so one bad
    row never takes the process down.
    """
    player = await session.get(Player, player_id)
    if player is None:
        return None
    try:
        validate_player(player)
    except CorruptedPlayerState as e:
        logger.error(f"🧨 Corrupted player record quarantined: {e}")
        raise PlayerNotFound(f"Player {player_id} is unavailable") from e
    return player


async def load_player(session: AsyncSession, player_id: int) -> Player:
    player = await find_player(session, player_id)
    if player is None:
        raise PlayerNotFound(f"Player {player_id} not found")
    return player


# -------------------------------------------------
# Create or get an existing player
# -------------------------------------------------
async def create_player(
    session: AsyncSession,
    player_id: int,
    now: int,
    username: str | None = None,
    first_name: str | None = None,
) -> Player:
    """
    Insert a new Player inside the caller's transaction.
    NOTE: This function does not commit, the caller must handle commit.
    """
    player = new_player(player_id, now, username=username, first_name=first_name)
    session.add(player)
    try:
        await session.flush()
    except IntegrityError as e:
        # another instance created the same player (or code) first
        await session.rollback()
        raise StorageConflict(f"Player {player_id} was created concurrently") from e

    logger.info(f"🆕 New player id={player_id} code={player.referral_code}")
    return player


async def get_or_create_player(
    session: AsyncSession,
    player_id: int,
    now: int,
    username: str | None = None,
    first_name: str | None = None,
) -> tuple[Player, bool]:
    """Returns (player, created). Refreshes the display names when they changed."""
    player = await find_player(session, player_id)
    if player is not None:
        if username and player.username != username:
            player.username = username
        if first_name and player.first_name != first_name:
            player.first_name = first_name
        return player, False

    player = await create_player(session, player_id, now, username=username, first_name=first_name)
    return player, True


# -------------------------------------------------
# Save (optimistic write)
# -------------------------------------------------
async def save_player(session: AsyncSession, *players: Player) -> None:
    """
    Flush pending changes of the given players.
    Raises StorageConflict if any row changed since it was loaded (version mismatch).
    NOTE: This function does not commit, the caller must handle commit.
    """
    # read ids up front; rollback expires the instances
    ids = ", ".join(str(p.id) for p in players)
    for player in players:
        session.add(player)
    try:
        await session.flush()
    except StaleDataError as e:
        await session.rollback()
        raise StorageConflict(f"Player(s) {ids} changed concurrently") from e


# -------------------------------------------------
# Referral ledger rows
# -------------------------------------------------
async def find_player_by_code(session: AsyncSession, code: str) -> Player | None:
    result = await session.execute(select(Player).where(Player.referral_code == code))
    return result.scalar_one_or_none()


async def find_referral_record(session: AsyncSession, referred_id: int) -> ReferralRecord | None:
    result = await session.execute(
        select(ReferralRecord).where(ReferralRecord.referred_id == referred_id)
    )
    return result.scalar_one_or_none()


async def insert_referral_record(
    session: AsyncSession,
    referrer_id: int,
    referred_id: int,
    now: int,
) -> ReferralRecord:
    """
    Insert the ledger row and flush immediately so the unique constraint on
    referred_id is checked before any reward is posted.
    A duplicate key is the authoritative "already referred" answer.
    """
    record = ReferralRecord(referrer_id=referrer_id, referred_id=referred_id, created_at=now)
    session.add(record)
    try:
        await session.flush()
    except IntegrityError as e:
        await session.rollback()
        logger.warning(f"🚫 Duplicate referral rejected by ledger: referred_id={referred_id}")
        raise AlreadyReferred(referred_id=referred_id) from e
    return record


async def list_referred_players(session: AsyncSession, referrer_id: int) -> list[dict]:
    result = await session.execute(
        select(
            Player.id,
            Player.first_name,
            Player.username,
            Player.coins,
            ReferralRecord.created_at,
        )
        .join(ReferralRecord, ReferralRecord.referred_id == Player.id)
        .where(ReferralRecord.referrer_id == referrer_id)
        .order_by(ReferralRecord.created_at.desc(), ReferralRecord.id.desc())
    )
    return [
        {
            "id": row.id,
            "first_name": row.first_name,
            "username": row.username,
            "coins": row.coins,
            "created_at": row.created_at,
        }
        for row in result.all()
    ]


# -------------------------------------------------
# Leaderboard queries
# -------------------------------------------------
async def query_top_players(session: AsyncSession, limit: int, offset: int = 0) -> list:
    """Rows ordered by coins desc, then id asc (deterministic on ties)."""
    result = await session.execute(
        select(
            Player.id,
            Player.username,
            Player.first_name,
            Player.coins,
            Player.level,
            Player.total_clicks,
        )
        .order_by(Player.coins.desc(), Player.id.asc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.all())


async def count_players_ahead(session: AsyncSession, player_id: int, coins: int) -> int:
    result = await session.execute(
        select(func.count(Player.id)).where(
            or_(
                Player.coins > coins,
                and_(Player.coins == coins, Player.id < player_id),
            )
        )
    )
    return result.scalar_one()


async def count_players(session: AsyncSession) -> int:
    result = await session.execute(select(func.count(Player.id)))
    return result.scalar_one()


# -------------------------------------------------
# Daily bonus reminders
# -------------------------------------------------
async def players_due_bonus_reminder(session: AsyncSession, now: int, limit: int = 500) -> list[int]:
    """Ids whose bonus window elapsed and who were not reminded since their last claim."""
    result = await session.execute(
        select(Player.id)
        .where(Player.daily_bonus_last_claim_at <= now - DAY_MS)
        .where(
            or_(
                Player.bonus_reminder_sent_at.is_(None),
                Player.bonus_reminder_sent_at <= Player.daily_bonus_last_claim_at,
            )
        )
        .order_by(Player.id.asc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def mark_bonus_reminded(session: AsyncSession, player_ids: list[int], now: int) -> int:
    """
    Stamp bonus_reminder_sent_at without bumping the version.
    No game transition reads or writes this column.
    NOTE: This function does not commit, the caller must handle commit.
    """
    if not player_ids:
        return 0
    result = await session.execute(
        update(Player)
        .where(Player.id.in_(player_ids))
        .values(bonus_reminder_sent_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount
