"""
RoundEngine: owns the full round lifecycle of one server.

Responsibilities:
1. Player pool (join / leave / bench / activate) and server settings
2. Round start: roster, hidden faction and team draws
3. Mid-round substitution
4. Outcome report and vote collection
5. Resolution: rating deltas applied and history persisted
6. Abandon / restart
7. Read-only views (status, leaderboard, profile, stats)

Rules:
- Every mutation runs under the engine lock, so one server never has two
  transitions interleaving. Vote submission is the exception; it relies
  on the VoteCollector's synchronous accept/close decision instead.
- Preconditions are checked before anything changes.
- Persistence failures roll the in-memory state back to its pre-transition
  snapshot and the error is re-raised to the caller.
"""
import asyncio
import copy
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from database import Settings, get_settings
from models import RoundStatus, Team
from schemas import (
    LeaderboardEntry,
    ParticipantView,
    ProfileView,
    RatingDeltaView,
    RoleView,
    RoundHistoryView,
    RoundSummaryView,
    ServerStatsView,
    StatusView,
    TopPlayer,
)
from core.exceptions import (
    AlreadyInProgress,
    AlreadyJoined,
    InPlayerAlreadyActive,
    InsufficientPlayers,
    InvalidSetting,
    MaxActiveReached,
    NotInProgress,
    OutPlayerInactive,
    PlayerNotFound,
    RoundInProgress,
    VoteRejected,
    VotingClosed,
)
from core.game_state import Participant, RoundState
from core.state_machine import RoundStateMachine
from core.storage import RoundParticipantRecord, Storage
from core.vote_collector import CollectionEndReason, VoteCollector
from services.assignment_service import RoundAssigner, effective_faction_count
from services.rating_service import (
    RatingDelta,
    apply_rating_floor,
    build_counter_updates,
    compute_deltas,
    faction_succeeded,
    was_voted_out,
)
from services import stats_service

logger = logging.getLogger(__name__)

RESTART_REASON = "Round restarted with new assignments"


@dataclass
class RoundSummary:
    round_id: int
    hidden_faction_ids: List[str]
    winning_team: Team
    faction_won: bool
    voted_out: bool
    votes: Dict[str, str]
    deltas: List[RatingDelta] = field(default_factory=list)
    end_reason: Optional[CollectionEndReason] = None

    def to_view(self) -> RoundSummaryView:
        return RoundSummaryView(
            round_id=self.round_id,
            hidden_faction_ids=self.hidden_faction_ids,
            winning_team=self.winning_team,
            faction_won=self.faction_won,
            voted_out=self.voted_out,
            votes=self.votes,
            deltas=[RatingDeltaView.model_validate(d) for d in self.deltas],
            end_reason=self.end_reason.value if self.end_reason else None,
        )


class RoundEngine:
    """Round lifecycle of one server"""

    def __init__(
        self,
        server_id: str,
        storage: Storage,
        settings: Optional[Settings] = None,
        assigner: Optional[RoundAssigner] = None,
    ):
        self.server_id = server_id
        self.storage = storage
        self.settings = settings or get_settings()
        self.assigner = assigner or RoundAssigner()

        self.participants: Dict[str, Participant] = {}
        self.round = RoundState()
        self.requested_faction_count = self.settings.default_faction_count
        self.max_active = self.settings.default_max_active

        self.collector: Optional[VoteCollector] = None
        self._resolver: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """
        Load config, players and any live round from storage.

        A round stored as VOTING (or RESOLVING, which never committed) comes
        back as VOTING with its persisted votes and a fresh collection window.
        """
        async with self._lock:
            server = await self.storage.get_or_create_server(
                self.server_id,
                self.settings.default_faction_count,
                self.settings.default_max_active,
            )
            self.requested_faction_count = server.requested_faction_count
            self.max_active = server.max_active

            records = await self.storage.get_players(self.server_id)
            self.participants = {r.user_id: Participant.from_record(r) for r in records}

            live = await self.storage.get_live_round(self.server_id)
            if live is None:
                logger.info(f"Server {self.server_id} loaded with {len(self.participants)} players")
                return

            status = RoundStatus.ACTIVE if live.status == RoundStatus.ACTIVE else RoundStatus.VOTING
            self.round = RoundState(
                status=status,
                round_id=live.round_id,
                roster=list(live.roster),
                hidden_faction_ids=set(live.hidden_faction_ids),
                teams={p.user_id: p.team for p in live.participants},
                winning_team=live.winning_team,
            )
            for participant in live.participants:
                player = self.participants.get(participant.user_id)
                if player:
                    player.is_hidden_faction = participant.is_hidden_faction
                    player.team = participant.team

            if status == RoundStatus.VOTING:
                self.collector = VoteCollector(
                    self.round.roster,
                    self.settings.vote_timeout_seconds,
                    initial_votes=live.votes,
                )

            logger.info(
                f"Server {self.server_id} restored round {live.round_id} "
                f"in status {status.value} with {len(self.round.roster)} players"
            )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @property
    def in_progress(self) -> bool:
        return self.round.is_live

    def _get(self, user_id: str) -> Participant:
        participant = self.participants.get(user_id)
        if participant is None:
            raise PlayerNotFound(user_id)
        return participant

    def _active_count(self) -> int:
        return sum(1 for p in self.participants.values() if p.is_active)

    def _require_idle(self, action: str) -> None:
        if self.round.is_live:
            raise RoundInProgress(f"Cannot {action} during an active round")

    def _require_live(self) -> None:
        if not self.round.is_live:
            raise NotInProgress("No round in progress")

    @asynccontextmanager
    async def _rollback_on_error(self, action: str):
        """
        Snapshot in-memory state; restore it if the block raises.

        The vote collector is not part of the snapshot.
        """
        snapshot = (
            copy.deepcopy(self.participants),
            copy.deepcopy(self.round),
            self.requested_faction_count,
            self.max_active,
        )
        try:
            yield
        except Exception as e:
            (
                self.participants,
                self.round,
                self.requested_faction_count,
                self.max_active,
            ) = snapshot
            logger.error(
                f"{action} failed on server {self.server_id}, in-memory state rolled back: {e}",
                exc_info=True,
            )
            raise

    def _clear_round(self) -> None:
        for participant in self.participants.values():
            participant.reset_round()
        self.round = RoundState()

    # ------------------------------------------------------------------
    # Player pool and settings
    # ------------------------------------------------------------------

    async def join(self, user_id: str, display_name: str) -> Participant:
        """
        Register a player.

        New players start active while there is room under max_active and
        no round is live; otherwise they start benched.

        Raises:
            AlreadyJoined: the player is already registered
        """
        async with self._lock:
            if user_id in self.participants:
                raise AlreadyJoined(user_id)

            is_active = not self.round.is_live and self._active_count() < self.max_active
            record = await self.storage.upsert_player(
                self.server_id, user_id, display_name, is_active, self.settings.initial_rating
            )
            participant = Participant.from_record(record)
            self.participants[user_id] = participant

            logger.info(
                f"Player {user_id} ({display_name}) joined server {self.server_id} "
                f"({'active' if participant.is_active else 'benched'})"
            )
            return participant

    async def leave(self, user_id: str) -> None:
        """
        Remove a player and their record.

        Raises:
            RoundInProgress: a round is live
            PlayerNotFound: the player never joined
        """
        async with self._lock:
            self._require_idle("leave")
            self._get(user_id)

            await self.storage.delete_player(self.server_id, user_id)
            del self.participants[user_id]

            logger.info(f"Player {user_id} left server {self.server_id}")

    async def set_active(self, user_id: str, active: bool) -> Participant:
        """
        Activate or bench a player for upcoming rounds.

        Raises:
            RoundInProgress: a round is live
            PlayerNotFound: the player never joined
            MaxActiveReached: activating would exceed max_active
        """
        async with self._lock:
            self._require_idle("change the active roster")
            participant = self._get(user_id)
            if participant.is_active == active:
                return participant

            if active and self._active_count() >= self.max_active:
                raise MaxActiveReached(self.max_active)

            await self.storage.set_player_active(self.server_id, user_id, active)
            participant.is_active = active

            logger.info(f"Player {user_id} {'activated' if active else 'benched'} on server {self.server_id}")
            return participant

    async def set_faction_count(self, count: int) -> None:
        """
        Set the requested hidden faction size.

        The request is stored as given; the roster-size clamp is applied
        again at every start and never written back.
        """
        async with self._lock:
            self._require_idle("change settings")
            if count < 1:
                raise InvalidSetting(f"Faction count must be at least 1, got {count}")

            await self.storage.update_server(self.server_id, requested_faction_count=count)
            self.requested_faction_count = count
            logger.info(f"Server {self.server_id} faction count set to {count}")

    async def set_max_active(self, max_active: int) -> None:
        async with self._lock:
            self._require_idle("change settings")
            low, high = self.settings.min_max_active, self.settings.max_max_active
            if not low <= max_active <= high:
                raise InvalidSetting(f"Maximum active players must be between {low} and {high}, got {max_active}")

            await self.storage.update_server(self.server_id, max_active=max_active)
            self.max_active = max_active
            logger.info(f"Server {self.server_id} max active set to {max_active}")

    # ------------------------------------------------------------------
    # Round lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> RoundState:
        """
        Start a round (IDLE -> ACTIVE).

        Flow:
        1. Check no round is live and enough players are active
        2. Draw roster, hidden faction and teams
        3. Persist round + roster snapshot

        Raises:
            AlreadyInProgress: a round is already live
            InsufficientPlayers: fewer than min_players active players
        """
        async with self._lock:
            # 1. Preconditions
            if self.round.is_live:
                raise AlreadyInProgress(self.server_id)

            eligible = [user_id for user_id, p in self.participants.items() if p.is_active]
            if len(eligible) < self.settings.min_players:
                raise InsufficientPlayers(len(eligible), self.settings.min_players)

            roster = self.assigner.select_roster(eligible, self.max_active)
            if len(roster) < self.settings.min_players:
                raise InsufficientPlayers(len(roster), self.settings.min_players)

            RoundStateMachine.validate(self.round.status, RoundStatus.ACTIVE)

            # 2 + 3. Deal and persist
            await self._deal(roster)

            logger.info(
                f"Round {self.round.round_id} started on server {self.server_id}: "
                f"{len(roster)} players, {len(self.round.hidden_faction_ids)} hidden"
            )
            return self.round

    async def _deal(self, roster: List[str], replaces_round_id: Optional[int] = None) -> None:
        count = effective_faction_count(self.requested_faction_count, len(roster))
        faction = set(self.assigner.assign_hidden_faction(roster, count))
        split = self.assigner.assign_teams(roster)
        teams = {user_id: Team.A for user_id in split.team_a}
        teams.update({user_id: Team.B for user_id in split.team_b})

        async with self._rollback_on_error("start round"):
            self._clear_round()
            self.round = RoundState(
                status=RoundStatus.ACTIVE,
                roster=list(roster),
                hidden_faction_ids=faction,
                teams=teams,
            )
            for user_id in roster:
                participant = self.participants[user_id]
                participant.is_hidden_faction = user_id in faction
                participant.team = teams[user_id]

            snapshot_rows = [
                RoundParticipantRecord(user_id, user_id in faction, teams[user_id])
                for user_id in roster
            ]
            self.round.round_id = await self.storage.create_round(
                self.server_id,
                roster,
                snapshot_rows,
                replaces_round_id=replaces_round_id,
                replace_reason=RESTART_REASON if replaces_round_id else None,
            )

    async def restart(self) -> RoundState:
        """
        Re-deal roles and teams over the same roster.

        The current round is recorded as abandoned and a new ACTIVE round
        replaces it in the same storage transaction. Any open vote
        collection is cancelled.

        Raises:
            NotInProgress: no round is live
        """
        async with self._lock:
            self._require_live()
            # Old round ends, the new one starts from IDLE
            RoundStateMachine.validate(self.round.status, RoundStatus.IDLE)
            RoundStateMachine.validate(RoundStatus.IDLE, RoundStatus.ACTIVE)
            roster = list(self.round.roster)
            old_round_id = self.round.round_id

            await self._deal(roster, replaces_round_id=old_round_id)
            self._drop_collector()

            logger.info(f"Round {old_round_id} restarted as round {self.round.round_id} on server {self.server_id}")
            return self.round

    async def substitute(self, out_id: str, in_id: str) -> None:
        """
        Swap a player out of the live round.

        The incoming player takes over the outgoing player's team, faction
        flag and votes (cast and received). The outgoing player is benched.

        Raises:
            NotInProgress: no round is live
            PlayerNotFound: either player never joined
            OutPlayerInactive: out_id is not in the roster
            InPlayerAlreadyActive: in_id is already in the roster
        """
        async with self._lock:
            self._require_live()
            out_player = self._get(out_id)
            in_player = self._get(in_id)
            if out_id not in self.round.roster:
                raise OutPlayerInactive(out_id)
            if in_id in self.round.roster:
                raise InPlayerAlreadyActive(in_id)

            async with self._rollback_on_error("substitute"):
                in_player.is_hidden_faction = out_player.is_hidden_faction
                in_player.team = out_player.team
                in_player.is_active = True
                out_player.reset_round()
                out_player.is_active = False

                self.round.roster = [in_id if user_id == out_id else user_id for user_id in self.round.roster]
                if out_id in self.round.hidden_faction_ids:
                    self.round.hidden_faction_ids.discard(out_id)
                    self.round.hidden_faction_ids.add(in_id)
                self.round.teams[in_id] = self.round.teams.pop(out_id)

                await self.storage.replace_round_participant(self.server_id, self.round.round_id, out_id, in_id)

            if self.collector is not None:
                self.collector.replace_participant(out_id, in_id)

            logger.info(f"Substituted {out_id} -> {in_id} in round {self.round.round_id} on server {self.server_id}")

    async def report_outcome(self, winning_team: Team) -> VoteCollector:
        """
        Record the match winner and open voting (ACTIVE -> VOTING).

        Returns:
            The open VoteCollector; drive it with run_voting() or
            resolve_in_background().

        Raises:
            NotInProgress: no round is in ACTIVE status
        """
        async with self._lock:
            if self.round.status != RoundStatus.ACTIVE:
                raise NotInProgress(
                    f"No round awaiting an outcome (status: {self.round.status.value})"
                )
            winning_team = Team(winning_team)
            RoundStateMachine.validate(self.round.status, RoundStatus.VOTING)

            async with self._rollback_on_error("report outcome"):
                self.round.status = RoundStatus.VOTING
                self.round.winning_team = winning_team
                await self.storage.update_round(
                    self.server_id, self.round.round_id, RoundStatus.VOTING, winning_team
                )

            self.collector = VoteCollector(self.round.roster, self.settings.vote_timeout_seconds)
            self._resolver = None
            logger.info(
                f"Team {winning_team.value} won round {self.round.round_id} on server {self.server_id}, "
                f"voting open for {self.settings.vote_timeout_seconds}s"
            )
            return self.collector

    async def submit_vote(self, voter_id: str, suspect_id: str) -> bool:
        """
        Cast or change a vote.

        Does not take the engine lock. The vote is validated, persisted, and
        only then handed to the collector, whose synchronous submit decides
        acceptance and the all-votes-in close together. A failed save leaves
        the collector untouched. A vote saved after the window shut is
        rejected with VotingClosed; resolution rewrites the vote rows from
        the collector, so the stray row never counts.

        Returns:
            True when this vote closed the collection (all votes in)

        Raises:
            InvalidVote / VotingClosed / InvalidSuspect / SelfVote
        """
        collector = self.collector
        if collector is None or self.round.status != RoundStatus.VOTING:
            raise VotingClosed("No voting in progress", voter_id, suspect_id)

        round_id = self.round.round_id
        collector.check(voter_id, suspect_id)
        try:
            await self.storage.record_vote(round_id, voter_id, suspect_id)
        except VoteRejected:
            raise
        except Exception as e:
            logger.error(f"Failed to persist vote {voter_id} -> {suspect_id} in round {round_id}: {e}", exc_info=True)
            raise

        collector.submit(voter_id, suspect_id)
        return collector.end_reason == CollectionEndReason.ALL_VOTES_IN

    async def run_voting(self) -> Optional[RoundSummary]:
        """
        Wait for the collection window to end, then resolve the round.

        Returns:
            The round summary, or None when the collection was cancelled
            (abandon / restart) or the round was resolved elsewhere.
        """
        collector = self.collector
        if collector is None:
            raise NotInProgress("Voting is not open")

        result = await collector.wait()
        if result.reason == CollectionEndReason.CANCELLED:
            logger.info(f"Voting cancelled on server {self.server_id}")
            return None

        async with self._lock:
            if self.collector is not collector:
                return None
            return await self._resolve()

    def resolve_in_background(self) -> asyncio.Task:
        """Run run_voting() as a task; failures are logged by the done callback"""
        task = asyncio.create_task(self.run_voting())
        task.add_done_callback(self._on_resolver_done)
        self._resolver = task
        return task

    def _on_resolver_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Background resolution failed on server {self.server_id}: {error}", exc_info=error)

    async def wait_resolved(self) -> Optional[RoundSummary]:
        """
        Result of the background resolver for the current voting window.

        None when no resolver was started for it, or when the resolver was
        cancelled or failed.
        """
        task = self._resolver
        if task is None:
            return None
        await asyncio.wait([task])
        if task.cancelled() or task.exception() is not None:
            return None
        return task.result()

    async def close_voting(self) -> RoundSummary:
        """
        Close voting now and resolve the round (VOTING -> RESOLVING -> IDLE).

        Raises:
            NotInProgress: voting is not open
        """
        async with self._lock:
            return await self._resolve()

    async def _resolve(self) -> RoundSummary:
        collector = self.collector
        if collector is None or self.round.status != RoundStatus.VOTING:
            raise NotInProgress("Voting is not open")

        collector.close()
        votes = collector.votes
        RoundStateMachine.validate(self.round.status, RoundStatus.RESOLVING)

        # 1. Pure rating computation
        faction = set(self.round.hidden_faction_ids)
        winning_team = self.round.winning_team
        deltas = compute_deltas(faction, winning_team, self.round.teams, votes)
        voted_out = was_voted_out(faction, votes)
        faction_won = faction_succeeded(faction, winning_team, self.round.teams, votes)
        updates = build_counter_updates(self.round.roster, faction, votes, deltas, faction_won)

        summary = RoundSummary(
            round_id=self.round.round_id,
            hidden_faction_ids=sorted(faction),
            winning_team=winning_team,
            faction_won=faction_won,
            voted_out=voted_out,
            votes=votes,
            deltas=deltas,
            end_reason=collector.end_reason,
        )

        # 2. Apply in memory, persist, then back to IDLE
        async with self._rollback_on_error("resolve round"):
            self.round.status = RoundStatus.RESOLVING
            for user_id, update in updates.items():
                participant = self.participants.get(user_id)
                if participant is None:
                    continue
                participant.rating = apply_rating_floor(participant.rating, update.delta)
                participant.peak_rating = max(participant.peak_rating, participant.rating)
                participant.total_rounds += update.total_rounds
                participant.faction_rounds += update.faction_rounds
                participant.faction_wins += update.faction_wins
                participant.correct_votes += update.correct_votes
                participant.total_votes += update.total_votes

            await self.storage.complete_round(
                self.server_id, self.round.round_id, winning_team, faction_won, votes, updates
            )

            RoundStateMachine.validate(self.round.status, RoundStatus.IDLE)
            self._clear_round()

        self.collector = None
        logger.info(
            f"Round {summary.round_id} resolved on server {self.server_id}: "
            f"faction {'won' if faction_won else 'lost'}"
            f"{' (voted out)' if voted_out else ''}, {len(votes)} votes"
        )
        return summary

    async def abandon(self, reason: str) -> None:
        """
        Drop the live round without touching ratings (ACTIVE|VOTING -> IDLE).

        Raises:
            NotInProgress: no round is live
        """
        async with self._lock:
            self._require_live()
            round_id = self.round.round_id
            RoundStateMachine.validate(self.round.status, RoundStatus.IDLE)

            async with self._rollback_on_error("abandon round"):
                self._clear_round()
                await self.storage.abandon_round(self.server_id, round_id, reason)

            self._drop_collector()
            logger.info(f"Round {round_id} abandoned on server {self.server_id}: {reason}")

    def _drop_collector(self) -> None:
        if self.collector is not None:
            self.collector.cancel()
            self.collector = None

    async def shutdown(self) -> None:
        """Cancel open voting and any background resolver (process shutdown)"""
        if self.collector is not None:
            self.collector.cancel()
        if self._resolver is not None and not self._resolver.done():
            self._resolver.cancel()
            await asyncio.wait([self._resolver])

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    def status(self) -> StatusView:
        roster = set(self.round.roster)
        votes = self.collector.votes if self.collector is not None else {}
        return StatusView(
            server_id=self.server_id,
            status=self.round.status,
            in_progress=self.in_progress,
            round_id=self.round.round_id,
            requested_faction_count=self.requested_faction_count,
            max_active=self.max_active,
            players=[
                ParticipantView(
                    user_id=p.user_id,
                    display_name=p.display_name,
                    is_active=p.is_active,
                    in_round=p.user_id in roster,
                )
                for p in self.participants.values()
            ],
            roster=list(self.round.roster),
            subs=[
                user_id for user_id, p in self.participants.items()
                if p.is_active and user_id not in roster
            ] if self.round.is_live else [],
            team_a=self.round.members_of(Team.A),
            team_b=self.round.members_of(Team.B),
            voters=sorted(votes),
            votes_in=len(votes),
            votes_needed=len(self.round.roster) if self.round.status == RoundStatus.VOTING else 0,
        )

    def leaderboard(self, limit: Optional[int] = None) -> List[LeaderboardEntry]:
        ordered = stats_service.leaderboard_order(self.participants.values())
        if limit is not None:
            ordered = ordered[:limit]
        return [
            LeaderboardEntry(
                rank=rank,
                user_id=p.user_id,
                display_name=p.display_name,
                rating=p.rating,
                peak_rating=p.peak_rating,
            )
            for rank, p in enumerate(ordered, start=1)
        ]

    def profile(self, user_id: str) -> ProfileView:
        participant = self._get(user_id)
        ordered = stats_service.leaderboard_order(self.participants.values())
        return ProfileView(
            user_id=participant.user_id,
            display_name=participant.display_name,
            rating=participant.rating,
            peak_rating=participant.peak_rating,
            rank=stats_service.rank_of(ordered, user_id),
            total_rounds=participant.total_rounds,
            innocent_rounds=participant.total_rounds - participant.faction_rounds,
            faction_rounds=participant.faction_rounds,
            faction_wins=participant.faction_wins,
            win_rate=participant.win_rate,
            correct_votes=participant.correct_votes,
            total_votes=participant.total_votes,
            accuracy=participant.accuracy,
            member_since=participant.created_at,
        )

    def role(self, user_id: str) -> RoleView:
        """
        A participant's own assignment for the live round.

        Faction members also see their fellow members.

        Raises:
            NotInProgress: no round is live
            PlayerNotFound: the player never joined
            OutPlayerInactive: the player is not in the roster
        """
        self._require_live()
        participant = self._get(user_id)
        if user_id not in self.round.roster:
            raise OutPlayerInactive(user_id)
        return RoleView(
            user_id=user_id,
            is_hidden_faction=participant.is_hidden_faction,
            team=participant.team,
            faction_members=sorted(self.round.hidden_faction_ids) if participant.is_hidden_faction else [],
        )

    async def server_stats(self) -> ServerStatsView:
        ordered = stats_service.leaderboard_order(self.participants.values())
        best = stats_service.top_player(ordered)
        return ServerStatsView(
            total_games=await self.storage.count_completed_rounds(self.server_id),
            total_players=len(ordered),
            avg_rating=stats_service.average_rating(ordered, self.settings.initial_rating),
            top_player=TopPlayer(user_id=best.user_id, display_name=best.display_name, rating=best.rating) if best else None,
        )

    async def recent_rounds(self, limit: int = 10) -> List[RoundHistoryView]:
        records = await self.storage.get_recent_rounds(self.server_id, limit)
        return [
            RoundHistoryView(
                round_id=r.round_id,
                hidden_faction_ids=sorted(r.hidden_faction_ids),
                winning_team=r.winning_team,
                faction_won=r.faction_won,
                votes=r.votes,
                rating_changes=r.rating_changes,
                started_at=r.started_at,
                ended_at=r.ended_at,
            )
            for r in records
        ]
