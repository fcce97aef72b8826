"""
Player API Endpoints

Responsibilities:
1. Join / leave a server
2. Activate or bench a player between rounds
3. Player profile and own round role
"""
from fastapi import APIRouter, Depends, HTTPException
import logging

from schemas import ActionResponse, ActiveRequest, JoinRequest, ParticipantView, ProfileView, RoleView
from core.exceptions import NotFound, PreconditionFailed
from core.registry import get_engine
from core.round_engine import RoundEngine

router = APIRouter(prefix="/api/servers", tags=["players"])
logger = logging.getLogger(__name__)


def _participant_view(engine: RoundEngine, participant) -> ParticipantView:
    return ParticipantView(
        user_id=participant.user_id,
        display_name=participant.display_name,
        is_active=participant.is_active,
        in_round=participant.user_id in engine.round.roster,
    )


@router.post("/{server_id}/players", response_model=ParticipantView)
async def join_server(server_id: str, data: JoinRequest, engine: RoundEngine = Depends(get_engine)):
    """
    Join the player pool.

    Preconditions:
    - the user has not joined yet

    The player starts active when there is room and no round is running,
    otherwise benched.
    """
    try:
        participant = await engine.join(data.user_id, data.display_name)
        return _participant_view(engine, participant)

    except PreconditionFailed as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to join server {server_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.delete("/{server_id}/players/{user_id}", response_model=ActionResponse)
async def leave_server(server_id: str, user_id: str, engine: RoundEngine = Depends(get_engine)):
    """
    Leave the server; the rating record is deleted.

    Preconditions:
    - no round in progress
    """
    try:
        await engine.leave(user_id)
        return ActionResponse(status="ok")

    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PreconditionFailed as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to remove player {user_id} from server {server_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.put("/{server_id}/players/{user_id}/active", response_model=ParticipantView)
async def set_player_active(
    server_id: str,
    user_id: str,
    data: ActiveRequest,
    engine: RoundEngine = Depends(get_engine)
):
    """
    Activate or bench a player for the next rounds.

    Preconditions:
    - no round in progress
    - activating needs room under the server's max active players
    """
    try:
        participant = await engine.set_active(user_id, data.active)
        return _participant_view(engine, participant)

    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PreconditionFailed as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to update player {user_id} on server {server_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{server_id}/players/{user_id}", response_model=ProfileView)
async def get_profile(server_id: str, user_id: str, engine: RoundEngine = Depends(get_engine)):
    """Rating, rank and round statistics of one player"""
    try:
        return engine.profile(user_id)

    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to get profile of {user_id} on server {server_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{server_id}/players/{user_id}/role", response_model=RoleView)
async def get_role(server_id: str, user_id: str, engine: RoundEngine = Depends(get_engine)):
    """
    The caller's own role in the running round.

    Only meant for the player themself: hidden faction members also get
    the list of their fellow members.
    """
    try:
        return engine.role(user_id)

    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PreconditionFailed as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to get role of {user_id} on server {server_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
