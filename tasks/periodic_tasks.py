# ========================================================
# tasks/periodic_tasks.py
# ========================================================
"""
Periodic background task manager for:
- Daily bonus reminders
"""
import asyncio
import logging

from . import bonus_reminder

logger = logging.getLogger(__name__)


# ------------------------------------------
# Start All Tasks
# --------------------------------------------

async def start_all_tasks(game, loop: asyncio.AbstractEventLoop = None) -> list[asyncio.Task]:
    """
    Boot all repeating service loops (non-blocking)
    """
    if loop is None:
        loop = asyncio.get_running_loop()

    tasks = [
        loop.create_task(bonus_reminder.bonus_reminder_loop(game), name="BonusReminderLoop"),
    ]

    logger.info("🚀 All periodic background tasks are now running")
    return tasks
