import random

import pytest

from database import Settings, build_engine
from core.round_engine import RoundEngine
from core.storage import SqlAlchemyStorage
from services.assignment_service import RoundAssigner

SERVER_ID = "guild-1"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def settings():
    return Settings(database_url="sqlite://", vote_timeout_seconds=5.0)


@pytest.fixture
def storage():
    """Fresh in-memory database per test"""
    storage = SqlAlchemyStorage(build_engine("sqlite://"))
    storage.create_schema()
    return storage


@pytest.fixture
def make_engine(storage, settings):
    """Build and initialize an engine with a seeded assigner"""
    async def _make(server_id=SERVER_ID, engine_storage=None, seed=7):
        engine = RoundEngine(
            server_id,
            engine_storage or storage,
            settings=settings,
            assigner=RoundAssigner(random.Random(seed)),
        )
        await engine.initialize()
        return engine
    return _make


@pytest.fixture
def join_players():
    """Join u1..uN to an engine, returns their ids"""
    async def _join(engine, count):
        ids = [f"u{i}" for i in range(1, count + 1)]
        for user_id in ids:
            await engine.join(user_id, f"Player {user_id}")
        return ids
    return _join
