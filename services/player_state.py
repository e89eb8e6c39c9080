# ===============================================================
# services/player_state.py — validated Player transitions
# ===============================================================
"""
State transitions for a single Player record.

Each operation checks every precondition first and only then mutates the
player, so a rejected call (a GameError) changes nothing beyond the energy
accrual that tap() performs up front.
None of these functions touch the database: callers load the player,
apply one operation under that player's exclusive section, and persist.
"""
import logging
import secrets
import string

from models import Player, CompletedTask
from services.economy import (
    BASE_MAX_ENERGY,
    BASE_COINS_PER_CLICK,
    BASE_ENERGY_REGEN_RATE,
    DAY_MS,
    LEVEL_THRESHOLDS,
    MAX_LEVEL,
    STARTING_COINS,
    TaskDef,
    UpgradeKind,
    daily_bonus_amount,
    derived_stat,
    energy_accrued,
    level_for,
    max_tier,
    parse_upgrade_kind,
    upgrade_cost,
    upgrade_effect,
)
from services.errors import (
    BonusNotReady,
    CorruptedPlayerState,
    InsufficientEnergy,
    InsufficientFunds,
    TaskAlreadyCompleted,
    TaskNotEligible,
    UnknownUpgrade,
    UpgradeMaxed,
)

logger = logging.getLogger(__name__)

_CODE_ALPHABET = string.ascii_uppercase + string.digits


# -------------------------------------------------
# Creation
# -------------------------------------------------
def generate_referral_code(player_id: int) -> str:
    suffix = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(4))
    return f"REF{player_id}{suffix}"


def new_player(player_id: int, now: int, username: str = None, first_name: str = None) -> Player:
    """Fresh Player with every attribute set explicitly (column defaults only apply on INSERT)."""
    return Player(
        id=player_id,
        username=username,
        first_name=first_name,
        coins=STARTING_COINS,
        energy=BASE_MAX_ENERGY,
        max_energy=BASE_MAX_ENERGY,
        energy_regen_rate=BASE_ENERGY_REGEN_RATE,
        coins_per_click=BASE_COINS_PER_CLICK,
        level=level_for(STARTING_COINS),
        total_clicks=0,
        upgrade_click_power=0,
        upgrade_energy_capacity=0,
        upgrade_energy_regen=0,
        last_energy_update_at=now,
        daily_bonus_last_claim_at=0,
        bonus_reminder_sent_at=None,
        created_at=now,
        referral_code=generate_referral_code(player_id),
        referred_by=None,
        referral_earnings=0,
        completed_tasks=[],
    )


# -------------------------------------------------
# Load-time validation
# -------------------------------------------------
def validate_player(player: Player) -> None:
    """Raise CorruptedPlayerState if a stored record breaks an invariant."""
    if player.coins is None or player.coins < 0:
        raise CorruptedPlayerState(player.id, f"coins={player.coins}")
    if player.referral_earnings is None or player.referral_earnings < 0:
        raise CorruptedPlayerState(player.id, f"referral_earnings={player.referral_earnings}")
    if player.energy is None or not 0 <= player.energy <= player.max_energy:
        raise CorruptedPlayerState(player.id, f"energy={player.energy}/{player.max_energy}")

    for kind in UpgradeKind:
        tier = player.get_upgrade_level(kind)
        if not 0 <= tier <= max_tier(kind):
            raise CorruptedPlayerState(player.id, f"{kind.value} tier={tier}")
        attr, _ = upgrade_effect(kind)
        expected = derived_stat(kind, tier)
        if getattr(player, attr) != expected:
            raise CorruptedPlayerState(
                player.id, f"{attr}={getattr(player, attr)} but tier {tier} implies {expected}"
            )

    # level is only a cache of level_for(coins): repair instead of rejecting
    expected_level = level_for(player.coins)
    if player.level != expected_level:
        logger.warning(f"🩹 Repairing cached level for player={player.id}: {player.level} → {expected_level}")
        player.level = expected_level


# -------------------------------------------------
# Coins helpers
# -------------------------------------------------
def _set_coins(player: Player, coins: int) -> bool:
    """Set the balance and refresh the cached level. Returns True on level-up."""
    old_level = player.level
    player.coins = coins
    player.level = level_for(coins)
    if player.level > old_level:
        logger.info(f"📈 Player {player.id} reached level {player.level}")
        return True
    return False


def credit_coins(player: Player, amount: int) -> bool:
    return _set_coins(player, player.coins + amount)


# ===============================================================
# Operations
# ===============================================================
def accrue_energy(player: Player, now: int) -> int:
    """Pull-based regen. Always moves last_energy_update_at to `now`; returns the energy gained."""
    gain = energy_accrued(now - player.last_energy_update_at, player.energy_regen_rate)
    before = player.energy
    if gain:
        player.energy = min(player.max_energy, player.energy + gain)
    player.last_energy_update_at = now
    return player.energy - before


def tap(player: Player, now: int) -> dict:
    gained = accrue_energy(player, now)
    if player.energy < 1:
        raise InsufficientEnergy(energy=player.energy, max_energy=player.max_energy)

    player.energy -= 1
    player.total_clicks += 1
    level_up = credit_coins(player, player.coins_per_click)

    return {
        "coins_earned": player.coins_per_click,
        "energy_gained": gained,
        "level_up": level_up,
        "level": player.level,
    }


def purchase_upgrade(player: Player, kind) -> dict:
    parsed = parse_upgrade_kind(kind)
    if parsed is None:
        raise UnknownUpgrade(kind=str(kind))

    current = player.get_upgrade_level(parsed)
    cost = upgrade_cost(parsed, current)
    if cost is None:
        raise UpgradeMaxed(kind=parsed.value, level=current)
    if player.coins < cost:
        raise InsufficientFunds(cost=cost, coins=player.coins)

    # all checks passed: deduct, bump tier and apply the effect together
    attr, delta = upgrade_effect(parsed)
    _set_coins(player, player.coins - cost)
    player.set_upgrade_level(parsed, current + 1)
    setattr(player, attr, getattr(player, attr) + delta)

    logger.info(f"🛒 Player {player.id} bought {parsed.value} tier {current + 1} for {cost}")
    return {
        "kind": parsed.value,
        "cost": cost,
        "new_level": current + 1,
        "stat": attr,
        "stat_value": getattr(player, attr),
    }


def bonus_ready(player: Player, now: int) -> bool:
    return now - player.daily_bonus_last_claim_at >= DAY_MS


def claim_daily_bonus(player: Player, now: int) -> dict:
    if not bonus_ready(player, now):
        raise BonusNotReady(available_at=player.daily_bonus_last_claim_at + DAY_MS)

    amount = daily_bonus_amount(player.level)
    level_up = credit_coins(player, amount)
    player.daily_bonus_last_claim_at = now

    logger.info(f"🎁 Player {player.id} claimed daily bonus of {amount}")
    return {"amount": amount, "level_up": level_up, "next_at": now + DAY_MS}


def task_progress(player: Player, task: TaskDef) -> int:
    """Progress measured from the authoritative record, never from client input."""
    if task.kind == "clicks":
        return player.total_clicks
    if task.kind == "level":
        return player.level
    if task.kind == "coins":
        return player.coins
    if task.kind == "upgrade_power":
        return player.get_upgrade_level(UpgradeKind.CLICK_POWER)
    if task.kind == "upgrade_energy":
        return player.get_upgrade_level(UpgradeKind.ENERGY_CAPACITY)
    return 0


def complete_task(
    player: Player,
    task_id: str,
    reward: int,
    progress_value: int,
    requirement: int,
    now: int,
) -> dict:
    if task_id in player.completed_task_ids:
        raise TaskAlreadyCompleted(task_id=task_id)
    if progress_value < requirement:
        raise TaskNotEligible(task_id=task_id, progress=progress_value, requirement=requirement)

    level_up = credit_coins(player, reward)
    player.completed_tasks.append(CompletedTask(task_id=task_id, completed_at=now))

    logger.info(f"🏅 Player {player.id} completed task '{task_id}' (+{reward})")
    return {"task_id": task_id, "reward": reward, "level_up": level_up}


# -------------------------------------------------
# Read model
# -------------------------------------------------
def player_summary(player: Player, now: int) -> dict:
    next_level_at = LEVEL_THRESHOLDS[player.level] if player.level < MAX_LEVEL else None
    upgrades = {}
    for kind in UpgradeKind:
        tier = player.get_upgrade_level(kind)
        upgrades[kind.value] = {
            "level": tier,
            "max_level": max_tier(kind),
            "next_cost": upgrade_cost(kind, tier),
        }

    return {
        "id": player.id,
        "username": player.username,
        "first_name": player.first_name,
        "coins": player.coins,
        "energy": player.energy,
        "max_energy": player.max_energy,
        "energy_regen_rate": player.energy_regen_rate,
        "coins_per_click": player.coins_per_click,
        "level": player.level,
        "next_level_at": next_level_at,
        "total_clicks": player.total_clicks,
        "upgrades": upgrades,
        "completed_tasks": sorted(player.completed_task_ids),
        "referral_code": player.referral_code,
        "referred_by": player.referred_by,
        "referral_earnings": player.referral_earnings,
        "daily_bonus": {
            "available": bonus_ready(player, now),
            "amount": daily_bonus_amount(player.level),
            "next_at": player.daily_bonus_last_claim_at + DAY_MS,
        },
        "last_energy_update_at": player.last_energy_update_at,
    }
