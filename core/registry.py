"""
EngineRegistry: one RoundEngine per server, created on first use.

Lifecycle:
- get(server_id) builds the engine, loads its state from storage and, when
  a voting round was restored, resumes its collection in the background
- shutdown() stops every engine's voting and resolver tasks

The API layer reaches the registry through app.state and the get_engine
dependency.
"""
import asyncio
import logging
import random
from typing import Dict, Optional

from fastapi import Request

from database import Settings, get_settings
from core.round_engine import RoundEngine
from core.storage import Storage
from services.assignment_service import RoundAssigner

logger = logging.getLogger(__name__)


class EngineRegistry:
    def __init__(
        self,
        storage: Storage,
        settings: Optional[Settings] = None,
        rng: Optional[random.Random] = None,
    ):
        self.storage = storage
        self.settings = settings or get_settings()
        self.rng = rng
        self._engines: Dict[str, RoundEngine] = {}
        self._lock = asyncio.Lock()

    def __contains__(self, server_id: str) -> bool:
        return server_id in self._engines

    def __len__(self) -> int:
        return len(self._engines)

    async def get(self, server_id: str) -> RoundEngine:
        engine = self._engines.get(server_id)
        if engine is not None:
            return engine

        async with self._lock:
            # Another caller may have built it while we waited
            engine = self._engines.get(server_id)
            if engine is not None:
                return engine

            engine = RoundEngine(
                server_id,
                self.storage,
                settings=self.settings,
                assigner=RoundAssigner(self.rng),
            )
            await engine.initialize()
            if engine.collector is not None:
                engine.resolve_in_background()
            self._engines[server_id] = engine
            logger.info(f"Engine ready for server {server_id}")
            return engine

    async def shutdown(self) -> None:
        for server_id, engine in list(self._engines.items()):
            await engine.shutdown()
            logger.info(f"Engine stopped for server {server_id}")
        self._engines.clear()


def get_registry(request: Request) -> EngineRegistry:
    return request.app.state.registry


async def get_engine(server_id: str, request: Request) -> RoundEngine:
    """FastAPI dependency: the engine for the server in the path"""
    return await get_registry(request).get(server_id)
