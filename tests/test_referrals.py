import asyncio

import pytest
from sqlalchemy import func, select

from models import ReferralRecord
from services.engine import GameService
from services.errors import AlreadyReferred, GameError, SelfReferral, UnknownCode


async def _record_count(session_factory) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count(ReferralRecord.id)))).scalar_one()


@pytest.fixture
def referrer_code(game):
    async def _make(player_id=1001, **kwargs):
        summary = await game.get_player_summary(player_id, **kwargs)
        return summary["referral_code"]

    return _make


@pytest.mark.asyncio
async def test_redemption_scenario(game, referrer_code, set_player, fetch_player, session_factory, notifier):
    code = await referrer_code(1001)
    await set_player(1001, coins=1000)
    await game.get_player_summary(2002, first_name="Bob")

    result = await game.redeem_referral(code, 2002)

    assert result["referrer_id"] == 1001
    referrer = await fetch_player(1001)
    candidate = await fetch_player(2002)
    assert referrer.coins == 2000
    assert referrer.referral_earnings == 1000
    assert candidate.coins == 1000
    assert candidate.referred_by == 1001
    assert await _record_count(session_factory) == 1

    notifier.notify.assert_awaited_once()
    args, kwargs = notifier.notify.call_args
    assert args == (1001, "referral_redeemed")
    assert kwargs["reward"] == 1000


@pytest.mark.asyncio
async def test_redeem_creates_unknown_candidate(game, referrer_code, fetch_player):
    code = await referrer_code(1001)

    await game.redeem_referral(code, 3003, username="carol")

    candidate = await fetch_player(3003)
    assert candidate.coins == 1000
    assert candidate.username == "carol"


@pytest.mark.asyncio
async def test_unknown_code(game, referrer_code, session_factory):
    await referrer_code(1001)
    with pytest.raises(UnknownCode):
        await game.redeem_referral("REF0000XXXX", 2002)
    assert await _record_count(session_factory) == 0


@pytest.mark.asyncio
async def test_self_referral_rejected(game, referrer_code, fetch_player, session_factory):
    code = await referrer_code(1001)

    with pytest.raises(SelfReferral):
        await game.redeem_referral(code, 1001)
    with pytest.raises(SelfReferral):
        await game.redeem_referral(code.lower(), 1001)

    assert (await fetch_player(1001)).coins == 500
    assert await _record_count(session_factory) == 0


@pytest.mark.asyncio
async def test_second_redemption_is_rejected_without_reward(game, referrer_code, fetch_player, session_factory):
    first = await referrer_code(1001)
    second = await referrer_code(1002)
    await game.get_player_summary(2002)

    await game.redeem_referral(first, 2002)
    with pytest.raises(AlreadyReferred):
        await game.redeem_referral(second, 2002)
    with pytest.raises(AlreadyReferred):
        await game.redeem_referral(first, 2002)

    assert (await fetch_player(1002)).coins == 500
    assert (await fetch_player(1001)).coins == 1500
    assert (await fetch_player(2002)).coins == 1000
    assert await _record_count(session_factory) == 1


@pytest.mark.asyncio
async def test_notification_failure_keeps_rewards(game, referrer_code, fetch_player, notifier):
    code = await referrer_code(1001)
    notifier.notify.side_effect = RuntimeError("telegram down")

    await game.redeem_referral(code, 2002)

    assert (await fetch_player(1001)).coins == 1500
    assert (await fetch_player(2002)).referred_by == 1001


@pytest.mark.asyncio
async def test_concurrent_redemptions_across_instances(game, referrer_code, session_factory, clock, fetch_player):
    code = await referrer_code(1001)
    await game.get_player_summary(2002)

    # separate services share no in-process locks, like separate processes
    instances = [GameService(session_factory, clock=clock) for _ in range(5)]
    outcomes = await asyncio.gather(
        *(svc.redeem_referral(code, 2002) for svc in instances),
        return_exceptions=True,
    )

    successes = [o for o in outcomes if isinstance(o, dict)]
    rejected = [o for o in outcomes if isinstance(o, AlreadyReferred)]
    assert len(successes) == 1
    assert len(rejected) == 4
    assert not [o for o in outcomes if isinstance(o, Exception) and not isinstance(o, GameError)]

    assert await _record_count(session_factory) == 1
    assert (await fetch_player(1001)).coins == 1500
    assert (await fetch_player(1001)).referral_earnings == 1000
    assert (await fetch_player(2002)).coins == 1000


@pytest.mark.asyncio
async def test_referral_stats(game, referrer_code, clock):
    code = await referrer_code(1001)
    await game.redeem_referral(code, 2002, first_name="Bob")
    clock.advance(seconds=30)
    await game.redeem_referral(code, 2003, username="carol")

    stats = await game.get_referral_stats(1001)

    assert stats["total_referrals"] == 2
    assert stats["total_earnings"] == 2000
    assert [r["name"] for r in stats["referrals"]] == ["carol", "Bob"]
    assert stats["referrals"][0]["coins"] == 1000
