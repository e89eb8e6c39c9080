# ===============================================================
# services/engine.py — GameService (locks, transactions, retries)
# ===============================================================
"""
GameService ties the player transitions to storage.

Every mutating call:
  1. takes the in-process asyncio.Lock of each player it touches
     (ascending id order, so two players never deadlock),
  2. opens one session/transaction, loads, applies, flushes, commits,
  3. on StorageConflict (another instance wrote the row first) reloads
     and re-applies, up to MAX_WRITE_RETRIES attempts.

In-process locks only serialize calls inside this process; across
instances the version column and the referral unique key are the arbiters.
"""
import asyncio
import logging
import os
import weakref
from contextlib import AsyncExitStack, asynccontextmanager

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

import helpers
from helpers import get_or_create_player, load_player, save_player
from services import leaderboard, player_state, referrals
from services.economy import TASKS, TASKS_BY_ID
from services.errors import StorageConflict, TaskNotFound
from services.notifications import DAILY_BONUS_AVAILABLE, REFERRAL_REDEEMED
from utils.clock import SystemClock

logger = logging.getLogger(__name__)

MAX_WRITE_RETRIES = int(os.getenv("MAX_WRITE_RETRIES", "3"))


class GameService:
    def __init__(self, session_factory, clock=None, notifier=None, max_retries: int = MAX_WRITE_RETRIES):
        self.session_factory = session_factory
        self.clock = clock or SystemClock()
        self.notifier = notifier
        self.max_retries = max(1, int(max_retries))
        self._locks: "weakref.WeakValueDictionary[int, asyncio.Lock]" = weakref.WeakValueDictionary()

    # -------------------------------------------------
    # Exclusive sections
    # -------------------------------------------------
    def _lock_for(self, player_id: int) -> asyncio.Lock:
        lock = self._locks.get(player_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[player_id] = lock
        return lock

    @asynccontextmanager
    async def _exclusive(self, *player_ids):
        # hold strong refs for the whole section so the weak registry keeps them
        locks = [self._lock_for(pid) for pid in sorted(set(player_ids))]
        async with AsyncExitStack() as stack:
            for lock in locks:
                await stack.enter_async_context(lock)
            yield

    # -------------------------------------------------
    # Transaction + retry runner
    # -------------------------------------------------
    async def _attempt(self, fn):
        now = self.clock.now()
        async with self.session_factory() as session:
            try:
                result = await fn(session, now)
                await session.commit()
                return result
            except StaleDataError as e:
                await session.rollback()
                raise StorageConflict("Concurrent update detected at commit") from e
            except IntegrityError as e:
                await session.rollback()
                raise StorageConflict("Constraint violated by a concurrent write") from e
            except Exception:
                await session.rollback()
                raise

    async def _write(self, op: str, player_ids, fn):
        async with self._exclusive(*player_ids):
            for attempt in range(1, self.max_retries + 1):
                try:
                    return await self._attempt(fn)
                except StorageConflict:
                    if attempt >= self.max_retries:
                        logger.error(f"❌ {op} gave up after {attempt} conflicting attempts (players={list(player_ids)})")
                        raise
                    logger.warning(f"🔁 {op}: storage conflict, retrying ({attempt}/{self.max_retries})")

    async def _read(self, fn):
        async with self.session_factory() as session:
            return await fn(session)

    async def _notify(self, player_id: int, event: str, **data) -> None:
        """Best-effort delivery; the economic transaction is already committed."""
        if self.notifier is None:
            return
        try:
            await self.notifier.notify(player_id, event, **data)
        except Exception as e:
            logger.warning(f"⚠️ Notification '{event}' to {player_id} failed: {e}")

    # ===============================================================
    # Player operations
    # ===============================================================
    async def get_player_summary(self, player_id: int, username: str = None, first_name: str = None) -> dict:
        async def op(session, now):
            player, _ = await get_or_create_player(
                session, player_id, now, username=username, first_name=first_name
            )
            player_state.accrue_energy(player, now)
            await save_player(session, player)
            return player_state.player_summary(player, now)

        return await self._write("get_player_summary", (player_id,), op)

    async def submit_tap(self, player_id: int) -> dict:
        async def op(session, now):
            player = await load_player(session, player_id)
            result = player_state.tap(player, now)
            await save_player(session, player)
            return {**result, "player": player_state.player_summary(player, now)}

        return await self._write("submit_tap", (player_id,), op)

    async def buy_upgrade(self, player_id: int, kind: str) -> dict:
        async def op(session, now):
            player = await load_player(session, player_id)
            player_state.accrue_energy(player, now)
            result = player_state.purchase_upgrade(player, kind)
            await save_player(session, player)
            return {**result, "player": player_state.player_summary(player, now)}

        return await self._write("buy_upgrade", (player_id,), op)

    async def claim_daily_bonus(self, player_id: int) -> dict:
        async def op(session, now):
            player = await load_player(session, player_id)
            player_state.accrue_energy(player, now)
            result = player_state.claim_daily_bonus(player, now)
            await save_player(session, player)
            return {**result, "player": player_state.player_summary(player, now)}

        return await self._write("claim_daily_bonus", (player_id,), op)

    async def complete_task(self, player_id: int, task_id: str) -> dict:
        task = TASKS_BY_ID.get(task_id)
        if task is None:
            raise TaskNotFound(task_id=task_id)

        async def op(session, now):
            player = await load_player(session, player_id)
            player_state.accrue_energy(player, now)
            progress = player_state.task_progress(player, task)
            result = player_state.complete_task(
                player, task.id, task.reward, progress, task.requirement, now
            )
            await save_player(session, player)
            return {**result, "player": player_state.player_summary(player, now)}

        return await self._write("complete_task", (player_id,), op)

    async def list_tasks(self, player_id: int) -> list[dict]:
        async def op(session):
            player = await load_player(session, player_id)
            done = player.completed_task_ids
            items = []
            for task in TASKS:
                progress = player_state.task_progress(player, task)
                completed = task.id in done
                items.append({
                    "id": task.id,
                    "title": task.title,
                    "reward": task.reward,
                    "requirement": task.requirement,
                    "progress": progress,
                    "completed": completed,
                    "claimable": not completed and progress >= task.requirement,
                })
            return items

        return await self._read(op)

    # ===============================================================
    # Referrals
    # ===============================================================
    async def redeem_referral(
        self,
        code: str,
        candidate_id: int,
        username: str = None,
        first_name: str = None,
    ) -> dict:
        # resolve the owner first so both player locks can be taken in order
        referrer_id = await self._read(
            lambda session: referrals.resolve_referrer_id(session, code, candidate_id)
        )

        async def op(session, now):
            return await referrals.redeem(
                session, code, candidate_id, now, username=username, first_name=first_name
            )

        result = await self._write("redeem_referral", (referrer_id, candidate_id), op)
        await self._notify(
            result["referrer_id"],
            REFERRAL_REDEEMED,
            referred_id=candidate_id,
            referred_name=first_name or username,
            reward=result["referrer_reward"],
        )
        return result

    async def get_referral_stats(self, player_id: int) -> dict:
        return await self._read(lambda session: referrals.referral_stats(session, player_id))

    # ===============================================================
    # Leaderboard
    # ===============================================================
    async def get_leaderboard(self, limit: int = leaderboard.DEFAULT_LIMIT, offset: int = 0) -> list[dict]:
        return await self._read(lambda session: leaderboard.top_n(session, limit, offset))

    async def get_player_rank(self, player_id: int) -> dict:
        return await self._read(lambda session: leaderboard.rank_of(session, player_id))

    # ===============================================================
    # Daily bonus reminders
    # ===============================================================
    async def players_due_bonus_reminder(self, now: int = None, limit: int = 500) -> list[int]:
        now = self.clock.now() if now is None else now
        return await self._read(lambda session: helpers.players_due_bonus_reminder(session, now, limit))

    async def mark_bonus_reminded(self, player_ids, now: int = None) -> int:
        now = self.clock.now() if now is None else now
        async with self.session_factory() as session:
            try:
                count = await helpers.mark_bonus_reminded(session, list(player_ids), now)
                await session.commit()
                return count
            except Exception:
                await session.rollback()
                raise

    async def send_bonus_reminders(self, limit: int = 500) -> int:
        """Notify every due player once for the current window. Returns how many were reminded."""
        if self.notifier is None:
            # nobody to deliver to; leave players due until a bot is attached
            return 0
        now = self.clock.now()
        due = await self.players_due_bonus_reminder(now, limit)
        if not due:
            return 0
        for player_id in due:
            await self._notify(player_id, DAILY_BONUS_AVAILABLE)
        await self.mark_bonus_reminded(due, now)
        logger.info(f"⏰ Daily bonus reminders sent to {len(due)} player(s)")
        return len(due)
