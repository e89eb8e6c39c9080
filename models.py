#=================================================================
# models.py (players, completed tasks, referral ledger)
#=================================================================
from sqlalchemy import (
    Column, String, Integer, BigInteger, ForeignKey, CheckConstraint,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from base import Base  # from base.py
from services.economy import UpgradeKind, max_tier

# Upgrade kind → column that stores the purchased tier
UPGRADE_COLUMNS = {
    UpgradeKind.CLICK_POWER: "upgrade_click_power",
    UpgradeKind.ENERGY_CAPACITY: "upgrade_energy_capacity",
    UpgradeKind.ENERGY_REGEN: "upgrade_energy_regen",
}


def _tier_check(kind: UpgradeKind) -> CheckConstraint:
    column = UPGRADE_COLUMNS[kind]
    return CheckConstraint(
        f"{column} >= 0 AND {column} <= {max_tier(kind)}",
        name=f"{column}_bounds",
    )


# ================================================================
# 1. PLAYERS
# ================================================================
class Player(Base):
    __tablename__ = "players"

    # Telegram user id: stable, never reassigned
    id = Column(BigInteger, primary_key=True, autoincrement=False)
    username = Column(String, nullable=True)
    first_name = Column(String, nullable=True)

    coins = Column(BigInteger, nullable=False, default=0)
    energy = Column(Integer, nullable=False)
    max_energy = Column(Integer, nullable=False)
    energy_regen_rate = Column(Integer, nullable=False)
    coins_per_click = Column(Integer, nullable=False)

    # cached levelFor(coins)
    level = Column(Integer, nullable=False, default=1)
    total_clicks = Column(BigInteger, nullable=False, default=0)

    upgrade_click_power = Column(Integer, nullable=False, default=0)
    upgrade_energy_capacity = Column(Integer, nullable=False, default=0)
    upgrade_energy_regen = Column(Integer, nullable=False, default=0)

    # epoch milliseconds
    last_energy_update_at = Column(BigInteger, nullable=False)
    daily_bonus_last_claim_at = Column(BigInteger, nullable=False, default=0)
    bonus_reminder_sent_at = Column(BigInteger, nullable=True)
    created_at = Column(BigInteger, nullable=False)

    referral_code = Column(String(40), unique=True, nullable=False)
    referred_by = Column(BigInteger, ForeignKey("players.id"), nullable=True)
    referral_earnings = Column(BigInteger, nullable=False, default=0)

    # optimistic lock, bumped on every UPDATE
    version = Column(Integer, nullable=False)

    completed_tasks = relationship(
        "CompletedTask",
        back_populates="player",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="CompletedTask.completed_at",
    )

    __table_args__ = (
        CheckConstraint("coins >= 0", name="coins_non_negative"),
        CheckConstraint("energy >= 0 AND energy <= max_energy", name="energy_bounds"),
        CheckConstraint("level >= 1", name="level_positive"),
        CheckConstraint("referral_earnings >= 0", name="referral_earnings_non_negative"),
        _tier_check(UpgradeKind.CLICK_POWER),
        _tier_check(UpgradeKind.ENERGY_CAPACITY),
        _tier_check(UpgradeKind.ENERGY_REGEN),
    )

    __mapper_args__ = {"version_id_col": version}

    # ------------------------------------------------
    # Bounded-field accessors
    # ------------------------------------------------
    def get_upgrade_level(self, kind: UpgradeKind) -> int:
        return getattr(self, UPGRADE_COLUMNS[UpgradeKind(kind)]) or 0

    def set_upgrade_level(self, kind: UpgradeKind, value: int) -> None:
        setattr(self, UPGRADE_COLUMNS[UpgradeKind(kind)], value)

    @property
    def completed_task_ids(self) -> frozenset:
        return frozenset(t.task_id for t in self.completed_tasks)

    def __repr__(self):
        return f"<Player id={self.id} coins={self.coins} energy={self.energy}/{self.max_energy}>"


# ================================================================
# 2. COMPLETED TASKS
# ================================================================
class CompletedTask(Base):
    __tablename__ = "completed_tasks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    player_id = Column(BigInteger, ForeignKey("players.id", ondelete="CASCADE"), nullable=False)
    task_id = Column(String(64), nullable=False)
    completed_at = Column(BigInteger, nullable=False)

    __table_args__ = (
        UniqueConstraint("player_id", "task_id", name="uq_completed_task_once"),
    )

    player = relationship("Player", back_populates="completed_tasks")


# ================================================================
# 3. REFERRAL LEDGER (append-only)
# ================================================================
class ReferralRecord(Base):
    __tablename__ = "referral_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    referrer_id = Column(BigInteger, ForeignKey("players.id"), nullable=False, index=True)
    # a player can be referred at most once, ever
    referred_id = Column(BigInteger, ForeignKey("players.id"), nullable=False, unique=True)
    created_at = Column(BigInteger, nullable=False)

    __table_args__ = (
        CheckConstraint("referrer_id <> referred_id", name="no_self_referral"),
    )

    def __repr__(self):
        return f"<ReferralRecord {self.referrer_id} -> {self.referred_id}>"
