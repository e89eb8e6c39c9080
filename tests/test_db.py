import pytest
from sqlalchemy.exc import IntegrityError

import db
from models import ReferralRecord
from services.player_state import new_player


def test_normalize_database_url():
    assert db.normalize_database_url("postgres://u:p@h/db") == "postgresql+asyncpg://u:p@h/db"
    assert db.normalize_database_url("postgresql://u:p@h/db") == "postgresql+asyncpg://u:p@h/db"
    assert db.normalize_database_url("sqlite:///game.db") == "sqlite+aiosqlite:///game.db"
    assert db.normalize_database_url("sqlite+aiosqlite:///x.db") == "sqlite+aiosqlite:///x.db"


@pytest.mark.asyncio
async def test_connection_ping(engine):
    assert await db.test_connection(engine) is True


@pytest.mark.asyncio
async def test_self_referral_row_is_rejected_by_schema(session_factory):
    async with session_factory() as session:
        session.add(new_player(7, 0))
        await session.commit()

        session.add(ReferralRecord(referrer_id=7, referred_id=7, created_at=0))
        with pytest.raises(IntegrityError):
            await session.flush()
        await session.rollback()


@pytest.mark.asyncio
async def test_coins_cannot_go_negative_in_storage(session_factory):
    async with session_factory() as session:
        player = new_player(8, 0)
        player.coins = -1
        session.add(player)
        with pytest.raises(IntegrityError):
            await session.flush()
        await session.rollback()
