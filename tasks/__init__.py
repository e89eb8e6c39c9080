# ====================================================================
# tasks/__init__.py
# ===================================================================
import asyncio
import logging
from typing import Dict
from . import periodic_tasks

__all__ = ["start_background_tasks", "stop_background_tasks", "running_task_names"]

logger = logging.getLogger(__name__)

_running_tasks: Dict[str, asyncio.Task] = {}


def running_task_names() -> list[str]:
    return [name for name, task in _running_tasks.items() if not task.done()]


async def start_background_tasks(game) -> None:
    if running_task_names():
        logger.warning("⚠️ Background tasks already running, not starting twice.")
        return
    started = await periodic_tasks.start_all_tasks(game, asyncio.get_running_loop())
    _running_tasks.update({task.get_name(): task for task in started})
    logger.info(f"✅ Background tasks started: {', '.join(_running_tasks)}")


async def stop_background_tasks() -> None:
    if not _running_tasks:
        return
    logger.info("🛑 Stopping background tasks...")

    for task in _running_tasks.values():
        task.cancel()
    results = await asyncio.gather(*_running_tasks.values(), return_exceptions=True)

    for name, result in zip(_running_tasks, results):
        if isinstance(result, Exception):
            logger.error(f"⚠️ Task '{name}' ended with an error: {result}")
        else:
            logger.debug(f"✅ Task '{name}' cancelled cleanly.")

    _running_tasks.clear()
    logger.info("✅ All background tasks stopped.")
