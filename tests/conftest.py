"""Shared fixtures: a throwaway SQLite database per test and a manual clock."""

import os
import sys
from pathlib import Path
from unittest.mock import AsyncMock

# config.py refuses to import without a database URL
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.pop("BOT_TOKEN", None)
os.environ.pop("SENTRY_DSN", None)

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest
import pytest_asyncio

from db import init_db, make_engine, make_sessionmaker
from models import Player
from services.economy import level_for
from services.engine import GameService
from utils.clock import ManualClock

NOW = 1_700_000_000_000


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'game.db'}")
    await init_db(engine)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_sessionmaker(engine)


@pytest.fixture
def clock():
    return ManualClock(NOW)


@pytest.fixture
def notifier():
    return AsyncMock()


@pytest.fixture
def game(session_factory, clock, notifier):
    return GameService(session_factory, clock=clock, notifier=notifier)


@pytest.fixture
def set_player(session_factory):
    """Overwrite stored fields of a player (keeps the cached level in sync with coins)."""

    async def _set(player_id, **fields):
        async with session_factory() as session:
            player = await session.get(Player, player_id)
            for name, value in fields.items():
                setattr(player, name, value)
            if "coins" in fields and "level" not in fields:
                player.level = level_for(player.coins)
            await session.commit()

    return _set


@pytest.fixture
def fetch_player(session_factory):
    """Raw stored row, bypassing validation."""

    async def _fetch(player_id):
        async with session_factory() as session:
            return await session.get(Player, player_id)

    return _fetch
