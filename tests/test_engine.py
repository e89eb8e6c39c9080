import asyncio

import pytest

import helpers
from services import engine as engine_module
from services.errors import (
    BonusNotReady,
    InsufficientEnergy,
    PlayerNotFound,
    StorageConflict,
    TaskAlreadyCompleted,
    TaskNotEligible,
    TaskNotFound,
)
from services.engine import GameService


@pytest.mark.asyncio
async def test_first_contact_creates_player(game):
    summary = await game.get_player_summary(1001, username="alice", first_name="Alice")

    assert summary["id"] == 1001
    assert summary["coins"] == 500
    assert summary["level"] == 3
    assert summary["energy"] == 1000
    assert summary["referral_code"].startswith("REF1001")

    again = await game.get_player_summary(1001)
    assert again["referral_code"] == summary["referral_code"]


@pytest.mark.asyncio
async def test_mutations_require_existing_player(game):
    with pytest.raises(PlayerNotFound):
        await game.submit_tap(404)
    with pytest.raises(PlayerNotFound):
        await game.buy_upgrade(404, "clickPower")
    with pytest.raises(PlayerNotFound):
        await game.claim_daily_bonus(404)
    with pytest.raises(PlayerNotFound):
        await game.get_player_rank(404)


@pytest.mark.asyncio
async def test_tap_is_persisted(game, fetch_player):
    await game.get_player_summary(1001)
    result = await game.submit_tap(1001)

    assert result["player"]["coins"] == 501
    stored = await fetch_player(1001)
    assert stored.coins == 501
    assert stored.energy == 999
    assert stored.total_clicks == 1


@pytest.mark.asyncio
async def test_energy_regenerates_between_requests(game, clock, set_player):
    await game.get_player_summary(1001)
    await set_player(1001, energy=0, last_energy_update_at=clock.now())

    with pytest.raises(InsufficientEnergy):
        await game.submit_tap(1001)

    clock.advance(seconds=5.5)
    summary = await game.get_player_summary(1001)
    assert summary["energy"] == 5


@pytest.mark.asyncio
async def test_concurrent_taps_on_one_player_are_serialized(game, fetch_player):
    await game.get_player_summary(1001)

    await asyncio.gather(*(game.submit_tap(1001) for _ in range(5)))

    stored = await fetch_player(1001)
    assert stored.total_clicks == 5
    assert stored.coins == 505
    assert stored.energy == 995


@pytest.mark.asyncio
async def test_daily_bonus_twice_in_window(game, clock, fetch_player):
    await game.get_player_summary(1001)
    first = await game.claim_daily_bonus(1001)
    assert first["amount"] == 3000

    with pytest.raises(BonusNotReady):
        await game.claim_daily_bonus(1001)
    assert (await fetch_player(1001)).coins == 3500

    clock.advance(hours=24)
    second = await game.claim_daily_bonus(1001)
    assert second["amount"] == 4000


@pytest.mark.asyncio
async def test_complete_task_via_service(game, fetch_player):
    await game.get_player_summary(1001)

    with pytest.raises(TaskNotFound):
        await game.complete_task(1001, "does_not_exist")
    with pytest.raises(TaskNotEligible):
        await game.complete_task(1001, "upgrade_power")

    await game.buy_upgrade(1001, "clickPower")
    result = await game.complete_task(1001, "upgrade_power")
    assert result["reward"] == 1000
    assert (await fetch_player(1001)).coins == 500 - 100 + 1000

    with pytest.raises(TaskAlreadyCompleted):
        await game.complete_task(1001, "upgrade_power")

    tasks = {t["id"]: t for t in await game.list_tasks(1001)}
    assert tasks["upgrade_power"]["completed"] is True
    assert tasks["upgrade_power"]["claimable"] is False
    assert tasks["clicks_100"]["progress"] == 0


def _race_after_load(monkeypatch, set_player, times):
    """Commit a competing coins += 10 from another session right after each of the first `times` loads."""
    real_load = engine_module.load_player
    calls = {"n": 0}

    async def racing_load(session, player_id):
        player = await real_load(session, player_id)
        calls["n"] += 1
        if calls["n"] <= times:
            await set_player(player_id, coins=player.coins + 10)
        return player

    monkeypatch.setattr(engine_module, "load_player", racing_load)
    return calls


@pytest.mark.asyncio
async def test_conflict_is_retried_on_fresh_state(game, monkeypatch, set_player, fetch_player):
    await game.get_player_summary(1001)
    calls = _race_after_load(monkeypatch, set_player, times=1)

    result = await game.submit_tap(1001)

    assert calls["n"] == 2
    assert result["player"]["coins"] == 511
    stored = await fetch_player(1001)
    assert stored.coins == 511
    assert stored.total_clicks == 1
    assert stored.energy == 999


@pytest.mark.asyncio
async def test_conflict_surfaces_after_max_retries(session_factory, clock, monkeypatch, set_player, fetch_player):
    game = GameService(session_factory, clock=clock, max_retries=3)
    await game.get_player_summary(1001)
    calls = _race_after_load(monkeypatch, set_player, times=10)

    with pytest.raises(StorageConflict):
        await game.submit_tap(1001)

    assert calls["n"] == 3
    stored = await fetch_player(1001)
    # only the competing writes landed
    assert stored.coins == 530
    assert stored.total_clicks == 0


@pytest.mark.asyncio
async def test_stale_version_raises_storage_conflict(game, session_factory):
    await game.get_player_summary(1001)

    async with session_factory() as first, session_factory() as second:
        a = await helpers.load_player(first, 1001)
        b = await helpers.load_player(second, 1001)

        b.coins += 10
        await helpers.save_player(second, b)
        await second.commit()

        a.coins += 1
        with pytest.raises(StorageConflict, match="1001"):
            await helpers.save_player(first, a)


@pytest.mark.asyncio
async def test_corrupted_record_is_reported_as_not_found(game, set_player):
    await game.get_player_summary(1001)
    await game.get_player_summary(1002)
    # tier says +3 click power, stored stat says otherwise
    await set_player(1001, upgrade_click_power=3)

    with pytest.raises(PlayerNotFound):
        await game.submit_tap(1001)
    with pytest.raises(PlayerNotFound):
        await game.get_player_summary(1001)

    # other players are unaffected
    result = await game.submit_tap(1002)
    assert result["player"]["coins"] == 501


@pytest.mark.asyncio
async def test_stale_cached_level_is_repaired_on_load(game, set_player, fetch_player):
    await game.get_player_summary(1001)
    await set_player(1001, level=7)

    summary = await game.get_player_summary(1001)
    assert summary["level"] == 3
    assert (await fetch_player(1001)).level == 3
