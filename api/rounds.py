"""
Round API Endpoints

Key points:
1. All game logic lives in RoundEngine; endpoints only translate errors
2. report starts vote collection in the background; it resolves on its own
   once every roster member voted or the window times out
3. A vote that completes the collection waits for the resolution and
   returns the round summary
"""
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
import logging

from schemas import (
    ActionResponse,
    AbandonRequest,
    ReportRequest,
    RoundHistoryView,
    RoundSummaryView,
    StatusView,
    SubstituteRequest,
    VoteRequest,
    VoteResponse,
)
from core.exceptions import NotFound, PreconditionFailed, VoteRejected
from core.registry import get_engine
from core.round_engine import RoundEngine

router = APIRouter(prefix="/api/servers", tags=["rounds"])
logger = logging.getLogger(__name__)


@router.post("/{server_id}/rounds/start", response_model=StatusView)
async def start_round(server_id: str, engine: RoundEngine = Depends(get_engine)):
    """
    Start a round (Admin endpoint)

    Preconditions:
    - no round in progress
    - at least 4 active players

    Effects:
    - roster, hidden faction and teams are drawn
    - players fetch their own role from /players/{user_id}/role
    """
    try:
        await engine.start()
        return engine.status()

    except PreconditionFailed as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to start round on server {server_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{server_id}/rounds/restart", response_model=StatusView)
async def restart_round(server_id: str, engine: RoundEngine = Depends(get_engine)):
    """
    Re-deal roles and teams over the current roster (Admin endpoint)

    The running round is recorded as abandoned; ratings are not touched.
    """
    try:
        await engine.restart()
        return engine.status()

    except PreconditionFailed as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to restart round on server {server_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{server_id}/rounds/substitute", response_model=StatusView)
async def substitute_player(server_id: str, data: SubstituteRequest, engine: RoundEngine = Depends(get_engine)):
    """
    Swap a player out of the running round.

    The incoming player inherits team, role and votes.
    """
    try:
        await engine.substitute(data.out_id, data.in_id)
        return engine.status()

    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PreconditionFailed as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to substitute {data.out_id} -> {data.in_id} on server {server_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{server_id}/rounds/report", response_model=StatusView)
async def report_outcome(server_id: str, data: ReportRequest, engine: RoundEngine = Depends(get_engine)):
    """
    Report the winning team and open voting.

    Flow:
    1. Round moves ACTIVE -> VOTING
    2. Vote collection runs in the background until all votes are in or
       the window times out, then the round resolves
    """
    try:
        # 1. Open voting
        await engine.report_outcome(data.winning_team)

        # 2. Resolve on its own once collection ends
        engine.resolve_in_background()
        return engine.status()

    except PreconditionFailed as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to report outcome on server {server_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{server_id}/rounds/vote", response_model=VoteResponse)
async def submit_vote(server_id: str, data: VoteRequest, engine: RoundEngine = Depends(get_engine)):
    """
    Cast or change a vote.

    A later vote by the same voter replaces the earlier one. A rejected vote
    does not use up the voter's vote.

    Returns:
        - voting_closed: this vote completed the collection
        - summary: the resolved round when voting_closed
    """
    try:
        closed = await engine.submit_vote(data.voter_id, data.suspect_id)
        if not closed:
            return VoteResponse(status="ok")

        summary = await engine.wait_resolved()
        return VoteResponse(
            status="ok",
            voting_closed=True,
            summary=summary.to_view() if summary else None,
        )

    except VoteRejected as e:
        logger.warning(f"Vote rejected on server {server_id}: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to submit vote on server {server_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{server_id}/rounds/close", response_model=RoundSummaryView)
async def close_voting(server_id: str, engine: RoundEngine = Depends(get_engine)):
    """
    Close voting now and resolve the round (Admin endpoint)

    Used when some players will not vote and waiting for the timeout is
    not wanted.
    """
    try:
        summary = await engine.close_voting()
        return summary.to_view()

    except PreconditionFailed as e:
        raise HTTPException(status_code=409, detail=str(e))
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to close voting on server {server_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{server_id}/rounds/abandon", response_model=ActionResponse)
async def abandon_round(server_id: str, data: AbandonRequest, engine: RoundEngine = Depends(get_engine)):
    """
    Drop the running round (Admin endpoint)

    Effects:
    - round recorded as abandoned with the given reason
    - no rating changes
    """
    try:
        await engine.abandon(data.reason)
        return ActionResponse(status="ok")

    except PreconditionFailed as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to abandon round on server {server_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{server_id}/rounds/history", response_model=List[RoundHistoryView])
async def get_round_history(
    server_id: str,
    limit: int = Query(10, ge=1, le=50),
    engine: RoundEngine = Depends(get_engine)
):
    """Completed rounds, most recent first"""
    try:
        return await engine.recent_rounds(limit)

    except Exception as e:
        logger.error(f"Failed to get round history of server {server_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
