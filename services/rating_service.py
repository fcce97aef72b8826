"""
Rating service: rating deltas for a resolved round.

Pure calculation, no state transitions and no database access.

Rating rules:
┌──────────────────────────────┬────────┐
│ Hidden faction succeeds      │  +30   │
│ Hidden faction fails         │  -30   │
│ Innocent votes for faction   │   +5   │
│ Innocent votes for innocent  │   -3   │
└──────────────────────────────┴────────┘

The faction succeeds only when none of its members is on the winning team
AND none of them was voted out. Votes cast by faction members are ignored
for both exposure and voter scoring.
"""
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Set

from models import Team

FACTION_WIN = 30
FACTION_LOSS = -30
CORRECT_VOTE = 5
INCORRECT_VOTE = -3

REASON_FACTION_WIN = "faction win"
REASON_VOTED_OUT = "voted out"
REASON_TEAM_WON = "team won"
REASON_CORRECT_VOTE = "correct vote"
REASON_INCORRECT_VOTE = "incorrect vote"


@dataclass(frozen=True)
class RatingDelta:
    user_id: str
    delta: int
    reason: str


@dataclass(frozen=True)
class CounterUpdate:
    """Rating delta plus the per-round stat increments for one participant"""
    user_id: str
    delta: int = 0
    total_rounds: int = 0
    faction_rounds: int = 0
    faction_wins: int = 0
    correct_votes: int = 0
    total_votes: int = 0


def was_voted_out(hidden_faction_ids: Set[str], votes: Mapping[str, str]) -> bool:
    """
    Check whether any faction member got a strict majority of innocent votes.

    Only votes cast by non-faction voters are counted. With n counted votes
    a faction member is exposed at floor(n / 2) + 1 votes; floor(n / 2)
    never exposes. With no counted votes nobody is exposed.
    """
    tally: Dict[str, int] = {}
    innocent_vote_count = 0

    for voter_id, suspect_id in votes.items():
        if voter_id in hidden_faction_ids:
            continue
        tally[suspect_id] = tally.get(suspect_id, 0) + 1
        innocent_vote_count += 1

    if innocent_vote_count == 0:
        return False

    majority = innocent_vote_count // 2 + 1
    return any(tally.get(member_id, 0) >= majority for member_id in hidden_faction_ids)


def faction_succeeded(
    hidden_faction_ids: Set[str],
    winning_team: Team,
    team_of: Mapping[str, Team],
    votes: Mapping[str, str],
) -> bool:
    """The faction wins when all its members lost the match and none was voted out"""
    team_lost = all(team_of.get(member_id) != winning_team for member_id in hidden_faction_ids)
    return team_lost and not was_voted_out(hidden_faction_ids, votes)


def compute_deltas(
    hidden_faction_ids: Iterable[str],
    winning_team: Team,
    team_of: Mapping[str, Team],
    votes: Mapping[str, str],
) -> List[RatingDelta]:
    """
    Compute the rating deltas for one resolved round.

    Args:
        hidden_faction_ids: ids of the hidden faction members
        winning_team: team that won the external match
        team_of: user id -> team for every roster member
        votes: voter id -> suspect id at close time

    Returns:
        One entry per faction member (all the same sign), followed by one
        entry per non-faction voter. Participants with nothing to score
        are absent.

    Example:
        faction {m}, m on team A, B wins, no votes
        -> [RatingDelta("m", +30, "faction win")]
    """
    faction = set(hidden_faction_ids)
    results: List[RatingDelta] = []

    # 1. Faction outcome
    voted_out = was_voted_out(faction, votes)
    team_lost = all(team_of.get(member_id) != winning_team for member_id in faction)
    succeeded = team_lost and not voted_out

    for member_id in sorted(faction):
        if succeeded:
            results.append(RatingDelta(member_id, FACTION_WIN, REASON_FACTION_WIN))
        else:
            reason = REASON_VOTED_OUT if voted_out else REASON_TEAM_WON
            results.append(RatingDelta(member_id, FACTION_LOSS, reason))

    # 2. Voter scoring (faction votes are skipped entirely)
    for voter_id, suspect_id in votes.items():
        if voter_id in faction:
            continue
        if suspect_id in faction:
            results.append(RatingDelta(voter_id, CORRECT_VOTE, REASON_CORRECT_VOTE))
        else:
            results.append(RatingDelta(voter_id, INCORRECT_VOTE, REASON_INCORRECT_VOTE))

    return results


def build_counter_updates(
    roster: Iterable[str],
    hidden_faction_ids: Set[str],
    votes: Mapping[str, str],
    deltas: Iterable[RatingDelta],
    succeeded: bool,
) -> Dict[str, CounterUpdate]:
    """
    Merge deltas and stat increments into one update per roster member.

    Every roster member plays the round once; faction members count a
    faction round (and a win on success); non-faction voters count a vote
    (and a correct vote when they named a faction member).
    """
    delta_by_user: Dict[str, int] = {}
    for entry in deltas:
        delta_by_user[entry.user_id] = delta_by_user.get(entry.user_id, 0) + entry.delta

    updates: Dict[str, CounterUpdate] = {}
    for user_id in roster:
        in_faction = user_id in hidden_faction_ids
        suspect_id: Optional[str] = None if in_faction else votes.get(user_id)
        updates[user_id] = CounterUpdate(
            user_id=user_id,
            delta=delta_by_user.get(user_id, 0),
            total_rounds=1,
            faction_rounds=1 if in_faction else 0,
            faction_wins=1 if in_faction and succeeded else 0,
            correct_votes=1 if suspect_id is not None and suspect_id in hidden_faction_ids else 0,
            total_votes=1 if suspect_id is not None else 0,
        )
    return updates


def apply_rating_floor(current_rating: int, delta: int) -> int:
    """New rating after a delta, never below 0"""
    return max(0, current_rating + delta)
