import logging
import random
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from database import Settings, get_settings
from core.registry import EngineRegistry
from core.storage import SqlAlchemyStorage
from api import players, rounds, servers

logging.basicConfig(
    level=get_settings().log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    storage: Optional[SqlAlchemyStorage] = None,
    rng: Optional[random.Random] = None,
) -> FastAPI:
    settings = settings or get_settings()
    storage = storage or SqlAlchemyStorage()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup: create tables, engines are built per server on first request
        storage.create_schema()
        app.state.registry = EngineRegistry(storage, settings=settings, rng=rng)
        logger.info("Mafia League API started")
        yield
        # Shutdown: stop open voting windows and background resolvers
        await app.state.registry.shutdown()
        logger.info("Mafia League API stopped")

    app = FastAPI(
        title="Mafia League API",
        description="Hidden faction rounds, voting and ratings for game servers",
        version="1.0.0",
        lifespan=lifespan
    )

    # CORS configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure this properly in production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(servers.router)
    app.include_router(players.router)
    app.include_router(rounds.router)

    @app.get("/")
    def root():
        return {"message": "Mafia League API", "status": "ok"}

    @app.get("/health")
    def health():
        return {"status": "healthy"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
