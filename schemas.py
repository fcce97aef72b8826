"""
Request bodies and read-only views.

Views are built by the RoundEngine and returned unchanged by the API layer.
Public views never carry hidden faction membership; only RoleView (meant
for the participant themself) and RoundSummaryView (after resolution) do.
"""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from models import RoundStatus, Team


# ============ Requests ============

class JoinRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=64)
    display_name: str = Field(min_length=1, max_length=100)


class ActiveRequest(BaseModel):
    active: bool


class SettingRequest(BaseModel):
    value: int


class SubstituteRequest(BaseModel):
    out_id: str
    in_id: str


class ReportRequest(BaseModel):
    winning_team: Team


class VoteRequest(BaseModel):
    voter_id: str
    suspect_id: str


class AbandonRequest(BaseModel):
    reason: str = "Reset by admin"


# ============ Views ============

class ParticipantView(BaseModel):
    user_id: str
    display_name: str
    is_active: bool
    in_round: bool


class StatusView(BaseModel):
    server_id: str
    status: RoundStatus
    in_progress: bool
    round_id: Optional[int] = None
    requested_faction_count: int
    max_active: int
    players: List[ParticipantView]
    roster: List[str]
    subs: List[str]
    team_a: List[str]
    team_b: List[str]
    voters: List[str]
    votes_in: int
    votes_needed: int


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: str
    display_name: str
    rating: int
    peak_rating: int


class ProfileView(BaseModel):
    user_id: str
    display_name: str
    rating: int
    peak_rating: int
    rank: int
    total_rounds: int
    innocent_rounds: int
    faction_rounds: int
    faction_wins: int
    win_rate: float
    correct_votes: int
    total_votes: int
    accuracy: float
    member_since: Optional[datetime] = None


class RoleView(BaseModel):
    user_id: str
    is_hidden_faction: bool
    team: Team
    faction_members: List[str] = Field(default_factory=list)


class TopPlayer(BaseModel):
    user_id: str
    display_name: str
    rating: int


class ServerStatsView(BaseModel):
    total_games: int
    total_players: int
    avg_rating: float
    top_player: Optional[TopPlayer] = None


class RatingDeltaView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    delta: int
    reason: str


class RoundSummaryView(BaseModel):
    round_id: int
    hidden_faction_ids: List[str]
    winning_team: Team
    faction_won: bool
    voted_out: bool
    votes: Dict[str, str]
    deltas: List[RatingDeltaView]
    end_reason: Optional[str] = None


class RoundHistoryView(BaseModel):
    round_id: int
    hidden_faction_ids: List[str]
    winning_team: Optional[Team] = None
    faction_won: Optional[bool] = None
    votes: Dict[str, str]
    rating_changes: Dict[str, int]
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None


class VoteResponse(BaseModel):
    status: str = "ok"
    voting_closed: bool = False
    summary: Optional[RoundSummaryView] = None


class ActionResponse(BaseModel):
    status: str = "ok"
