# ========================================================
# tasks/bonus_reminder.py
# ========================================================
"""
Daily bonus reminder: tells players their 24h bonus window is open.
Each player is reminded at most once per window.
"""

import asyncio
import logging
import os

logger = logging.getLogger(__name__)

CHECK_INTERVAL_SECONDS = int(os.getenv("BONUS_REMINDER_INTERVAL_SECONDS", str(60 * 60)))  # 1h


async def bonus_reminder_loop(game, interval: float = CHECK_INTERVAL_SECONDS):
    """Loop that periodically reminds players whose daily bonus is claimable."""
    while True:
        try:
            await send_due_reminders(game)
        except Exception as e:
            logger.exception(f"Bonus reminder task error: {e}")
        await asyncio.sleep(interval)


async def send_due_reminders(game) -> int:
    sent = await game.send_bonus_reminders()
    if not sent:
        logger.debug("No daily bonus reminders due.")
    return sent
