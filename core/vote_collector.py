"""
Vote collection for one round.

The collection window is bounded by a single deadline fixed when the
collector opens. It ends at the earlier of:
- the deadline passing (TIMEOUT)
- every roster member having a vote on file (ALL_VOTES_IN)
- the engine closing it early on request (CLOSED)
- an explicit cancel from the engine (CANCELLED, used by abandon/restart)

Concurrency:
    submit() is plain synchronous code. On the event loop nothing can run
    between its validity checks, the insert and the all-votes-in close
    decision, so a vote racing the timer is either accepted before the
    close or rejected with VotingClosed. It is never half-applied.
    Callers that persist votes run check() first, save, then submit(), so
    a vote only reaches the collector once it is stored.
"""
import asyncio
import enum
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, Mapping, Optional

from core.exceptions import InvalidSuspect, InvalidVote, SelfVote, VotingClosed

logger = logging.getLogger(__name__)


class CollectionEndReason(str, enum.Enum):
    ALL_VOTES_IN = "all_votes_in"
    TIMEOUT = "timeout"
    CLOSED = "closed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class VotingResult:
    votes: Dict[str, str] = field(default_factory=dict)
    reason: CollectionEndReason = CollectionEndReason.TIMEOUT

    @property
    def completed(self) -> bool:
        return self.reason == CollectionEndReason.ALL_VOTES_IN


class VoteCollector:
    """One vote per roster member, last write wins, closed by timer or full house"""

    def __init__(
        self,
        roster: Iterable[str],
        timeout: float,
        initial_votes: Optional[Mapping[str, str]] = None,
    ):
        self.roster = frozenset(roster)
        self.timeout = timeout
        self.deadline = time.monotonic() + timeout
        self._votes: Dict[str, str] = dict(initial_votes or {})
        self._end_reason: Optional[CollectionEndReason] = None
        self._done = asyncio.Event()

        if self.roster and len(self._votes) >= len(self.roster):
            self._close(CollectionEndReason.ALL_VOTES_IN)

    @property
    def is_open(self) -> bool:
        return self._end_reason is None

    @property
    def end_reason(self) -> Optional[CollectionEndReason]:
        return self._end_reason

    @property
    def votes(self) -> Dict[str, str]:
        """Copy of the current vote map"""
        return dict(self._votes)

    def remaining(self) -> float:
        return max(0.0, self.deadline - time.monotonic())

    def check(self, voter_id: str, suspect_id: str) -> None:
        """
        Validate a vote without recording it.

        Raises:
            VotingClosed: the window has closed
            InvalidVote: the voter is not in the roster
            InvalidSuspect: the suspect is not in the roster
            SelfVote: voter and suspect are the same participant
        """
        if not self.is_open:
            raise VotingClosed("Voting has closed", voter_id, suspect_id)
        if voter_id not in self.roster:
            raise InvalidVote("Only active players can vote", voter_id, suspect_id)
        if suspect_id not in self.roster:
            raise InvalidSuspect("You can only vote for active players", voter_id, suspect_id)
        if voter_id == suspect_id:
            raise SelfVote("Cannot vote for yourself", voter_id, suspect_id)

    def submit(self, voter_id: str, suspect_id: str) -> Optional[str]:
        """
        Record a vote; closes the window when the last roster member has voted.

        Returns:
            The voter's previous suspect, None for a first vote

        Raises:
            Same as check(); the checks run again at insert time.
        """
        self.check(voter_id, suspect_id)

        previous = self._votes.get(voter_id)
        self._votes[voter_id] = suspect_id

        if len(self._votes) == len(self.roster):
            self._close(CollectionEndReason.ALL_VOTES_IN)

        return previous

    def replace_participant(self, out_id: str, in_id: str) -> None:
        """Move roster membership and every vote by or against out_id to in_id"""
        self.roster = (self.roster - {out_id}) | {in_id}
        moved: Dict[str, str] = {}
        for voter_id, suspect_id in self._votes.items():
            voter_id = in_id if voter_id == out_id else voter_id
            suspect_id = in_id if suspect_id == out_id else suspect_id
            if voter_id != suspect_id:
                moved[voter_id] = suspect_id
        self._votes = moved

    def close(self) -> None:
        self._close(CollectionEndReason.CLOSED)

    def cancel(self) -> None:
        self._close(CollectionEndReason.CANCELLED)

    def _close(self, reason: CollectionEndReason) -> None:
        if self._end_reason is not None:
            return
        self._end_reason = reason
        self._done.set()
        logger.info(f"Vote collection closed ({reason.value}) with {len(self._votes)}/{len(self.roster)} votes")

    async def wait(self) -> VotingResult:
        """Block until the window closes and return the votes on file at that instant"""
        if self.is_open:
            try:
                await asyncio.wait_for(self._done.wait(), timeout=self.remaining())
            except asyncio.TimeoutError:
                self._close(CollectionEndReason.TIMEOUT)

        return VotingResult(votes=dict(self._votes), reason=self._end_reason)
