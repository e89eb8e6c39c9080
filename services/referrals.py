# ===============================================================
# services/referrals.py — referral ledger (exactly-once attribution)
# ===============================================================
"""
Referral redemption and statistics.

`redeem()` runs inside one database transaction opened by the caller.
The ledger row is inserted and flushed before any coins move, so the
unique constraint on referral_records.referred_id decides every race:
the loser gets AlreadyReferred and its transaction is rolled back with
no reward posted.
"""
import logging
import os

from sqlalchemy.ext.asyncio import AsyncSession

from helpers import (
    find_player_by_code,
    find_referral_record,
    get_or_create_player,
    insert_referral_record,
    list_referred_players,
    load_player,
    save_player,
)
from services.errors import AlreadyReferred, SelfReferral, UnknownCode
from services.player_state import credit_coins, player_summary

logger = logging.getLogger(__name__)

REFERRER_REWARD = int(os.getenv("REFERRER_REWARD", "1000"))
REFERRED_REWARD = int(os.getenv("REFERRED_REWARD", "500"))


def normalize_code(code) -> str:
    return str(code or "").strip().upper()


async def resolve_referrer_id(session: AsyncSession, code: str, candidate_id: int) -> int:
    """Owner of `code`. Raises UnknownCode, then SelfReferral."""
    referrer = await find_player_by_code(session, normalize_code(code))
    if referrer is None:
        raise UnknownCode(code=code)
    if referrer.id == candidate_id:
        raise SelfReferral()
    return referrer.id


async def redeem(
    session: AsyncSession,
    code: str,
    candidate_id: int,
    now: int,
    username: str = None,
    first_name: str = None,
) -> dict:
    """
    Attribute `candidate_id` to the owner of `code` and post both rewards.
    NOTE: This function does not commit, the caller must handle commit.
    """
    referrer_id = await resolve_referrer_id(session, code, candidate_id)
    referrer = await load_player(session, referrer_id)
    candidate, _ = await get_or_create_player(
        session, candidate_id, now, username=username, first_name=first_name
    )

    # fast path; the unique constraint below is what actually guarantees it
    if candidate.referred_by is not None or await find_referral_record(session, candidate_id):
        raise AlreadyReferred(referred_id=candidate_id)

    await insert_referral_record(session, referrer.id, candidate.id, now)

    candidate.referred_by = referrer.id
    credit_coins(referrer, REFERRER_REWARD)
    referrer.referral_earnings += REFERRER_REWARD
    credit_coins(candidate, REFERRED_REWARD)

    await save_player(session, referrer, candidate)

    logger.info(
        f"🤝 Referral redeemed: referrer={referrer.id} (+{REFERRER_REWARD}) "
        f"candidate={candidate.id} (+{REFERRED_REWARD})"
    )
    return {
        "referrer_id": referrer.id,
        "referred_id": candidate.id,
        "referrer_reward": REFERRER_REWARD,
        "referred_reward": REFERRED_REWARD,
        "player": player_summary(candidate, now),
    }


async def referral_stats(session: AsyncSession, player_id: int) -> dict:
    player = await load_player(session, player_id)
    referrals = await list_referred_players(session, player_id)
    return {
        "player_id": player.id,
        "referral_code": player.referral_code,
        "total_referrals": len(referrals),
        "total_earnings": player.referral_earnings,
        "referrals": [
            {
                "name": r["first_name"] or r["username"] or "Anonymous",
                "username": r["username"],
                "coins": r["coins"],
                "created_at": r["created_at"],
            }
            for r in referrals
        ],
    }
