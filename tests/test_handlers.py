from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from handlers import core


def _update(user_id: int, first_name: str = "Bob", username: str = "bob"):
    message = SimpleNamespace(reply_text=AsyncMock())
    user = SimpleNamespace(id=user_id, first_name=first_name, username=username)
    return SimpleNamespace(effective_user=user, message=message)


def _context(game, args=None):
    return SimpleNamespace(args=args or [], application=SimpleNamespace(bot_data={"game": game}))


def _reply(update) -> str:
    return update.message.reply_text.call_args.args[0]


@pytest.mark.asyncio
async def test_start_with_referral_code(game, fetch_player, notifier):
    code = (await game.get_player_summary(1001, first_name="Alice"))["referral_code"]
    update = _update(2002)

    await core.start(update, _context(game, [code]))

    assert "bonus coins" in _reply(update)
    candidate = await fetch_player(2002)
    assert candidate.referred_by == 1001
    assert candidate.coins == 1000
    assert (await fetch_player(1001)).coins == 1500
    notifier.notify.assert_awaited_once()


@pytest.mark.asyncio
async def test_start_with_own_code_does_nothing(game, fetch_player):
    code = (await game.get_player_summary(1001))["referral_code"]
    update = _update(1001)

    await core.start(update, _context(game, [code]))

    assert "bonus coins" not in _reply(update)
    assert (await fetch_player(1001)).coins == 500


@pytest.mark.asyncio
async def test_start_with_bad_code_is_silent(game, fetch_player):
    update = _update(2002)

    await core.start(update, _context(game, ["REF0BAD0"]))

    assert "Welcome" in _reply(update)
    assert (await fetch_player(2002)).coins == 500


@pytest.mark.asyncio
async def test_stats_and_leaderboard(game):
    await game.get_player_summary(1001, first_name="Alice")
    await game.submit_tap(1001)

    update = _update(1001, first_name="Alice")
    await core.stats(update, _context(game))
    assert "Coins: 501" in _reply(update)

    update = _update(1001, first_name="Alice")
    await core.leaderboard_cmd(update, _context(game))
    assert "🥇 Alice - 501 coins" in _reply(update)


@pytest.mark.asyncio
async def test_help_mentions_rewards(game):
    update = _update(1001)
    await core.help_cmd(update, _context(game))
    assert "1,000" in _reply(update)
