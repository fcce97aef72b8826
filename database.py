from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache, wraps
import logging

from core.exceptions import MafiaLeagueException

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="MAFIA_")

    database_url: str = "sqlite:///./mafia_league.db"
    log_level: str = "INFO"

    # Round rules
    vote_timeout_seconds: float = 60.0
    min_players: int = 4
    default_faction_count: int = 1
    default_max_active: int = 8
    min_max_active: int = 8
    max_max_active: int = 16
    initial_rating: int = 1000


@lru_cache()
def get_settings():
    return Settings()


def build_engine(database_url: str):
    """
    Create a SQLAlchemy engine for the given URL.

    SQLite needs check_same_thread=False because storage work runs in the
    threadpool. An in-memory SQLite URL also needs StaticPool so every
    session sees the same database.
    """
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **kwargs)
    return create_engine(database_url, pool_pre_ping=True)


settings = get_settings()

engine = build_engine(settings.database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def transactional(func):
    """
    Run a storage write as one transaction.

    The wrapped function takes the Session first and never commits itself.
    On return the session is committed. On any exception it is rolled back
    and the exception propagates. Game errors (unknown round, closed vote)
    are expected outcomes and log at WARNING; anything else logs at ERROR.
    """
    @wraps(func)
    def wrapper(db: Session, *args, **kwargs):
        if not isinstance(db, Session):
            raise TypeError(f"@transactional {func.__name__} needs a Session first, got {type(db).__name__}")

        try:
            result = func(db, *args, **kwargs)
            db.commit()
            return result
        except MafiaLeagueException as e:
            db.rollback()
            logger.warning(f"{func.__name__} rolled back: {e}")
            raise
        except Exception as e:
            db.rollback()
            logger.error(f"Transaction failed in {func.__name__}: {e}", exc_info=True)
            raise

    return wrapper
