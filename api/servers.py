"""
Server API Endpoints

Responsibilities:
1. Round status snapshot
2. Server settings (faction size, max active players)
3. Leaderboard and server statistics
"""
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
import logging

from schemas import LeaderboardEntry, ServerStatsView, SettingRequest, StatusView
from core.exceptions import InvalidSetting, PreconditionFailed
from core.registry import get_engine
from core.round_engine import RoundEngine

router = APIRouter(prefix="/api/servers", tags=["servers"])
logger = logging.getLogger(__name__)


@router.get("/{server_id}/status", response_model=StatusView)
async def get_status(server_id: str, engine: RoundEngine = Depends(get_engine)):
    """
    Current round status.

    Returns:
        - status / round_id: round state
        - roster, subs, team_a, team_b: who plays, who waits
        - voters / votes_in / votes_needed: voting progress (no ballots)
    """
    try:
        return engine.status()

    except Exception as e:
        logger.error(f"Failed to get status of server {server_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.put("/{server_id}/settings/faction-count", response_model=StatusView)
async def set_faction_count(server_id: str, data: SettingRequest, engine: RoundEngine = Depends(get_engine)):
    """
    Requested hidden faction size.

    The effective size is still capped by the roster at every start.
    """
    try:
        await engine.set_faction_count(data.value)
        return engine.status()

    except InvalidSetting as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PreconditionFailed as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to set faction count on server {server_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.put("/{server_id}/settings/max-active", response_model=StatusView)
async def set_max_active(server_id: str, data: SettingRequest, engine: RoundEngine = Depends(get_engine)):
    try:
        await engine.set_max_active(data.value)
        return engine.status()

    except InvalidSetting as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PreconditionFailed as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to set max active on server {server_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{server_id}/leaderboard", response_model=List[LeaderboardEntry])
async def get_leaderboard(
    server_id: str,
    limit: int = Query(10, ge=1, le=100),
    engine: RoundEngine = Depends(get_engine)
):
    try:
        return engine.leaderboard(limit)

    except Exception as e:
        logger.error(f"Failed to get leaderboard of server {server_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{server_id}/stats", response_model=ServerStatsView)
async def get_server_stats(server_id: str, engine: RoundEngine = Depends(get_engine)):
    try:
        return await engine.server_stats()

    except Exception as e:
        logger.error(f"Failed to get stats of server {server_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
