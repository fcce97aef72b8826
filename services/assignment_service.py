"""
Assignment service: pick the active roster, the hidden faction and the teams.

Pure calculation. Every draw goes through one Fisher-Yates shuffle driven by
a cryptographically strong source (secrets.SystemRandom) so role
assignment cannot be predicted from earlier rounds. Tests inject a seeded
random.Random instead.
"""
import math
import random
import secrets
from dataclasses import dataclass
from typing import List, Optional, Sequence, TypeVar

T = TypeVar("T")

MAX_FACTION_SIZE = 2
PLAYERS_PER_FACTION_MEMBER = 3


@dataclass(frozen=True)
class TeamSplit:
    team_a: List[str]
    team_b: List[str]


def effective_faction_count(requested: int, active_count: int) -> int:
    """
    Clamp the configured faction size to what the roster supports.

    Rules:
    - at most 2 members
    - at most one member per 3 active players
    - at least 1 member
    - never more than requested

    Examples:
        effective_faction_count(2, 4) -> 1
        effective_faction_count(2, 6) -> 2
        effective_faction_count(1, 9) -> 1
    """
    ceiling = max(1, min(MAX_FACTION_SIZE, active_count // PLAYERS_PER_FACTION_MEMBER))
    return min(requested, ceiling)


class RoundAssigner:
    """Random roster, faction and team draws for one round"""

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or secrets.SystemRandom()

    def shuffle(self, items: Sequence[T]) -> List[T]:
        """Fisher-Yates shuffle into a new list; the input is left untouched"""
        result = list(items)
        for i in range(len(result) - 1, 0, -1):
            j = self.rng.randrange(i + 1)
            result[i], result[j] = result[j], result[i]
        return result

    def select_roster(self, all_ids: Sequence[str], max_active: int) -> List[str]:
        """
        Choose who plays this round.

        If the pool fits under the cap everyone plays; otherwise a uniform
        random subset of size max_active is drawn.
        """
        if len(all_ids) <= max_active:
            return list(all_ids)
        return self.shuffle(all_ids)[:max_active]

    def assign_hidden_faction(self, active_ids: Sequence[str], count: int) -> List[str]:
        """Uniform random subset of the roster of size count"""
        return self.shuffle(active_ids)[:count]

    def assign_teams(self, active_ids: Sequence[str]) -> TeamSplit:
        """
        Split the roster into two teams whose sizes differ by at most 1.

        Uses its own shuffle, independent of the faction draw, so team
        membership carries no information about roles.
        """
        shuffled = self.shuffle(active_ids)
        team_a_size = math.ceil(len(shuffled) / 2)
        return TeamSplit(team_a=shuffled[:team_a_size], team_b=shuffled[team_a_size:])
