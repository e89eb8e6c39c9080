# ===============================================================
# services/economy.py — pure economy rules (no I/O, no state)
# ===============================================================
import os
from bisect import bisect_right
from dataclasses import dataclass
from enum import Enum
from typing import Optional

# -------------------------------------------------
# Level curve: strictly increasing, starts at 0
# -------------------------------------------------
LEVEL_THRESHOLDS = (0, 100, 500, 1500, 4000, 10000, 25000, 60000, 150000, 400000)
MAX_LEVEL = len(LEVEL_THRESHOLDS)

# -------------------------------------------------
# Base stats of a freshly created player
# -------------------------------------------------
STARTING_COINS = 500
BASE_MAX_ENERGY = 1000
BASE_COINS_PER_CLICK = 1
BASE_ENERGY_REGEN_RATE = 1

DAY_MS = 24 * 60 * 60 * 1000
DAILY_BONUS_PER_LEVEL = int(os.getenv("DAILY_BONUS_PER_LEVEL", "1000"))


class UpgradeKind(str, Enum):
    CLICK_POWER = "clickPower"
    ENERGY_CAPACITY = "energyCapacity"
    ENERGY_REGEN = "energyRegen"


UPGRADE_COSTS = {
    UpgradeKind.CLICK_POWER: (100, 500, 2000, 10000, 50000),
    UpgradeKind.ENERGY_CAPACITY: (200, 1000, 5000, 25000, 100000),
    UpgradeKind.ENERGY_REGEN: (150, 750, 3000, 15000, 75000),
}

# kind → (player attribute, increment per tier)
UPGRADE_EFFECTS = {
    UpgradeKind.CLICK_POWER: ("coins_per_click", 1),
    UpgradeKind.ENERGY_CAPACITY: ("max_energy", 200),
    UpgradeKind.ENERGY_REGEN: ("energy_regen_rate", 1),
}

BASE_STATS = {
    "coins_per_click": BASE_COINS_PER_CLICK,
    "max_energy": BASE_MAX_ENERGY,
    "energy_regen_rate": BASE_ENERGY_REGEN_RATE,
}


def parse_upgrade_kind(value) -> Optional[UpgradeKind]:
    """Accept an UpgradeKind or its wire name; None when unknown."""
    try:
        return UpgradeKind(value)
    except ValueError:
        return None


# ===============================================================
# Rules
# ===============================================================
def level_for(coins: int) -> int:
    """
    1-based level for a coin balance: (highest i with coins >= LEVEL_THRESHOLDS[i]) + 1.
    Total and monotonic for coins >= 0; negative balances clamp to level 1.
    """
    return max(1, bisect_right(LEVEL_THRESHOLDS, coins))


def max_tier(kind: UpgradeKind) -> int:
    return len(UPGRADE_COSTS[UpgradeKind(kind)])


def upgrade_cost(kind: UpgradeKind, current_level: int) -> Optional[int]:
    """Price of the next tier, or None when the upgrade is maxed out."""
    costs = UPGRADE_COSTS[UpgradeKind(kind)]
    if current_level < 0 or current_level >= len(costs):
        return None
    return costs[current_level]


def upgrade_effect(kind: UpgradeKind) -> tuple:
    return UPGRADE_EFFECTS[UpgradeKind(kind)]


def derived_stat(kind: UpgradeKind, tier: int) -> int:
    """Value of the stat an upgrade drives, for a given purchased tier."""
    attr, delta = upgrade_effect(kind)
    return BASE_STATS[attr] + tier * delta


def energy_accrued(elapsed_ms: int, regen_rate: int) -> int:
    # clock skew can make elapsed negative
    elapsed_ms = max(0, int(elapsed_ms))
    return (elapsed_ms // 1000) * regen_rate


def daily_bonus_amount(level: int) -> int:
    return DAILY_BONUS_PER_LEVEL * level


# ===============================================================
# Task catalog
# ===============================================================
@dataclass(frozen=True)
class TaskDef:
    id: str
    title: str
    reward: int
    requirement: int
    kind: str  # clicks | level | coins | upgrade_power | upgrade_energy


TASKS = (
    TaskDef("clicks_100", "Make 100 taps", 500, 100, "clicks"),
    TaskDef("clicks_500", "Make 500 taps", 2000, 500, "clicks"),
    TaskDef("clicks_1000", "Make 1000 taps", 5000, 1000, "clicks"),
    TaskDef("level_5", "Reach level 5", 5000, 5, "level"),
    TaskDef("level_10", "Reach level 10", 15000, 10, "level"),
    TaskDef("coins_10k", "Hold 10,000 coins", 10000, 10000, "coins"),
    TaskDef("coins_50k", "Hold 50,000 coins", 25000, 50000, "coins"),
    TaskDef("upgrade_power", "Buy a click power upgrade", 1000, 1, "upgrade_power"),
    TaskDef("upgrade_energy", "Buy an energy capacity upgrade", 1500, 1, "upgrade_energy"),
)
TASKS_BY_ID = {task.id: task for task in TASKS}
