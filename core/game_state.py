"""
In-memory game state for one server.

Participant mirrors a players row plus the round-ephemeral role and team.
RoundState is the live round; it is replaced by a fresh IDLE instance once
a round resolves or is abandoned.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Set

from models import LIVE_ROUND_STATUSES, RoundStatus, Team
from services.stats_service import accuracy, win_rate


@dataclass
class Participant:
    """
    One registered player on a server.

    Identity is just user_id + display_name; the engine never needs the
    chat platform's member object.
    """
    user_id: str
    display_name: str
    is_active: bool = False

    # Persistent rating ledger
    rating: int = 1000
    peak_rating: int = 1000
    total_rounds: int = 0
    faction_rounds: int = 0
    faction_wins: int = 0
    correct_votes: int = 0
    total_votes: int = 0
    created_at: Optional[datetime] = None

    # Round-ephemeral
    is_hidden_faction: bool = False
    team: Optional[Team] = None

    @classmethod
    def from_record(cls, record) -> "Participant":
        return cls(
            user_id=record.user_id,
            display_name=record.display_name,
            is_active=record.is_active,
            rating=record.rating,
            peak_rating=record.peak_rating,
            total_rounds=record.total_rounds,
            faction_rounds=record.faction_rounds,
            faction_wins=record.faction_wins,
            correct_votes=record.correct_votes,
            total_votes=record.total_votes,
            created_at=record.created_at,
        )

    @property
    def win_rate(self) -> float:
        return win_rate(self.faction_wins, self.faction_rounds)

    @property
    def accuracy(self) -> float:
        return accuracy(self.correct_votes, self.total_votes)

    def reset_round(self) -> None:
        self.is_hidden_faction = False
        self.team = None


@dataclass
class RoundState:
    status: RoundStatus = RoundStatus.IDLE
    round_id: Optional[int] = None
    roster: List[str] = field(default_factory=list)
    hidden_faction_ids: Set[str] = field(default_factory=set)
    teams: Dict[str, Team] = field(default_factory=dict)
    winning_team: Optional[Team] = None

    @property
    def is_live(self) -> bool:
        return self.status in LIVE_ROUND_STATUSES

    def members_of(self, team: Team) -> List[str]:
        return [user_id for user_id in self.roster if self.teams.get(user_id) == team]
