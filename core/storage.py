"""
Storage: the persistence collaborator of the round engine.

The engine only talks to the async Storage protocol. SqlAlchemyStorage
implements it with the blocking SQLAlchemy session API, pushed onto the
threadpool with run_in_threadpool so the event loop never waits on I/O.

Every write that must be atomic is one @transactional function:
- create_round: round row + roster snapshot rows + server status
  (and, on restart, abandoning the round it replaces)
- replace_round_participant: snapshot row + votes + bench flags
- complete_round: rating deltas + counters + history + server status
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol

import logging

from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session, sessionmaker

import database
from database import Base, transactional
from models import (
    LIVE_ROUND_STATUSES,
    EventLog,
    Player,
    Round,
    RoundParticipant,
    RoundStatus,
    ServerConfig,
    Team,
    Vote,
)
from core.exceptions import PlayerNotFound, RoundNotFound, VotingClosed
from core.locks import lock_players, with_round_lock, with_server_lock
from services.rating_service import CounterUpdate, apply_rating_floor

logger = logging.getLogger(__name__)


# ============ Records returned to the engine ============

@dataclass
class ServerRecord:
    server_id: str
    requested_faction_count: int
    max_active: int
    status: RoundStatus


@dataclass
class PlayerRecord:
    user_id: str
    display_name: str
    is_active: bool = False
    rating: int = 1000
    peak_rating: int = 1000
    total_rounds: int = 0
    faction_rounds: int = 0
    faction_wins: int = 0
    correct_votes: int = 0
    total_votes: int = 0
    created_at: Optional[datetime] = None


@dataclass
class RoundParticipantRecord:
    user_id: str
    is_hidden_faction: bool
    team: Team


@dataclass
class RoundRecord:
    round_id: int
    server_id: str
    status: RoundStatus
    roster: List[str] = field(default_factory=list)
    participants: List[RoundParticipantRecord] = field(default_factory=list)
    votes: Dict[str, str] = field(default_factory=dict)
    winning_team: Optional[Team] = None
    faction_won: Optional[bool] = None
    rating_changes: Dict[str, int] = field(default_factory=dict)
    abandon_reason: Optional[str] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None

    @property
    def hidden_faction_ids(self) -> List[str]:
        return [p.user_id for p in self.participants if p.is_hidden_faction]


class Storage(Protocol):
    """Async persistence interface consumed by RoundEngine"""

    async def get_or_create_server(self, server_id: str, faction_count: int, max_active: int) -> ServerRecord: ...

    async def update_server(self, server_id: str, **fields: Any) -> ServerRecord: ...

    async def upsert_player(
        self, server_id: str, user_id: str, display_name: str, is_active: bool, initial_rating: int
    ) -> PlayerRecord: ...

    async def get_player(self, server_id: str, user_id: str) -> Optional[PlayerRecord]: ...

    async def delete_player(self, server_id: str, user_id: str) -> None: ...

    async def get_players(self, server_id: str) -> List[PlayerRecord]: ...

    async def set_player_active(self, server_id: str, user_id: str, is_active: bool) -> None: ...

    async def create_round(
        self,
        server_id: str,
        roster: List[str],
        participants: List[RoundParticipantRecord],
        replaces_round_id: Optional[int] = None,
        replace_reason: Optional[str] = None,
    ) -> int: ...

    async def create_round_participants(self, round_id: int, participants: List[RoundParticipantRecord]) -> None: ...

    async def get_live_round(self, server_id: str) -> Optional[RoundRecord]: ...

    async def update_round(self, server_id: str, round_id: int, status: RoundStatus, winning_team: Optional[Team] = None) -> None: ...

    async def replace_round_participant(self, server_id: str, round_id: int, out_id: str, in_id: str) -> None: ...

    async def record_vote(self, round_id: int, voter_id: str, suspect_id: str) -> None: ...

    async def complete_round(
        self,
        server_id: str,
        round_id: int,
        winning_team: Team,
        faction_won: bool,
        votes: Mapping[str, str],
        updates: Mapping[str, CounterUpdate],
    ) -> None: ...

    async def abandon_round(self, server_id: str, round_id: int, reason: str) -> None: ...

    async def get_recent_rounds(self, server_id: str, limit: int = 10) -> List[RoundRecord]: ...

    async def count_completed_rounds(self, server_id: str) -> int: ...

    async def log_event(self, server_id: str, event_type: str, data: Dict[str, Any], round_id: Optional[int] = None) -> None: ...


# ============ Row -> record conversion ============

def _server_record(row: ServerConfig) -> ServerRecord:
    return ServerRecord(
        server_id=row.server_id,
        requested_faction_count=row.requested_faction_count,
        max_active=row.max_active,
        status=row.status,
    )


def _player_record(row: Player) -> PlayerRecord:
    return PlayerRecord(
        user_id=row.user_id,
        display_name=row.display_name,
        is_active=row.is_active,
        rating=row.rating,
        peak_rating=row.peak_rating,
        total_rounds=row.total_rounds,
        faction_rounds=row.faction_rounds,
        faction_wins=row.faction_wins,
        correct_votes=row.correct_votes,
        total_votes=row.total_votes,
        created_at=row.created_at,
    )


def _round_record(row: Round) -> RoundRecord:
    if row.status == RoundStatus.COMPLETED and row.final_votes is not None:
        votes = dict(row.final_votes)
    else:
        votes = {vote.voter_id: vote.suspect_id for vote in row.votes}
    return RoundRecord(
        round_id=row.id,
        server_id=row.server_id,
        status=row.status,
        roster=list(row.roster or []),
        participants=[
            RoundParticipantRecord(p.user_id, p.is_hidden_faction, p.team)
            for p in row.participants
        ],
        votes=votes,
        winning_team=row.winning_team,
        faction_won=row.faction_won,
        rating_changes=dict(row.rating_changes or {}),
        abandon_reason=row.abandon_reason,
        started_at=row.started_at,
        ended_at=row.ended_at,
    )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============ Synchronous implementations (run in the threadpool) ============

@transactional
def _get_or_create_server(db: Session, server_id: str, faction_count: int, max_active: int) -> ServerRecord:
    server = db.query(ServerConfig).filter(ServerConfig.server_id == server_id).first()
    if not server:
        server = ServerConfig(
            server_id=server_id,
            requested_faction_count=faction_count,
            max_active=max_active,
            status=RoundStatus.IDLE,
        )
        db.add(server)
        db.flush()
        logger.info(f"Created server config for {server_id}")
    return _server_record(server)


@transactional
def _update_server(db: Session, server_id: str, **fields: Any) -> ServerRecord:
    server = with_server_lock(server_id, db).first()
    if not server:
        raise ValueError(f"Server {server_id} has no config row")
    for name, value in fields.items():
        setattr(server, name, value)
    db.flush()
    return _server_record(server)


@transactional
def _upsert_player(
    db: Session, server_id: str, user_id: str, display_name: str, is_active: bool, initial_rating: int
) -> PlayerRecord:
    player = db.query(Player).filter(
        Player.server_id == server_id,
        Player.user_id == user_id
    ).first()
    if player:
        player.display_name = display_name
    else:
        player = Player(
            server_id=server_id,
            user_id=user_id,
            display_name=display_name,
            is_active=is_active,
            rating=initial_rating,
            peak_rating=initial_rating,
        )
        db.add(player)
    db.flush()
    return _player_record(player)


def _get_player(db: Session, server_id: str, user_id: str) -> Optional[PlayerRecord]:
    player = db.query(Player).filter(
        Player.server_id == server_id,
        Player.user_id == user_id
    ).first()
    return _player_record(player) if player else None


@transactional
def _delete_player(db: Session, server_id: str, user_id: str) -> None:
    deleted = db.query(Player).filter(
        Player.server_id == server_id,
        Player.user_id == user_id
    ).delete(synchronize_session=False)
    if not deleted:
        raise PlayerNotFound(user_id)


def _get_players(db: Session, server_id: str) -> List[PlayerRecord]:
    rows = db.query(Player).filter(
        Player.server_id == server_id
    ).order_by(Player.rating.desc(), Player.display_name).all()
    return [_player_record(row) for row in rows]


@transactional
def _set_player_active(db: Session, server_id: str, user_id: str, is_active: bool) -> None:
    player = db.query(Player).filter(
        Player.server_id == server_id,
        Player.user_id == user_id
    ).first()
    if not player:
        raise PlayerNotFound(user_id)
    player.is_active = is_active


def _add_participants(db: Session, round_id: int, participants: List[RoundParticipantRecord]) -> None:
    for participant in participants:
        db.add(RoundParticipant(
            round_id=round_id,
            user_id=participant.user_id,
            is_hidden_faction=participant.is_hidden_faction,
            team=participant.team,
        ))


def _mark_abandoned(db: Session, server_id: str, round_obj: Round, reason: str) -> None:
    round_obj.status = RoundStatus.ABANDONED
    round_obj.abandon_reason = reason
    round_obj.ended_at = _utcnow()
    db.add(EventLog(
        server_id=server_id,
        round_id=round_obj.id,
        event_type="ROUND_ABANDONED",
        data={"reason": reason},
    ))


@transactional
def _create_round(
    db: Session,
    server_id: str,
    roster: List[str],
    participants: List[RoundParticipantRecord],
    replaces_round_id: Optional[int] = None,
    replace_reason: Optional[str] = None,
) -> int:
    # 1. Lock the server row so two processes cannot open rounds at once
    server = with_server_lock(server_id, db).first()
    if not server:
        raise ValueError(f"Server {server_id} has no config row")

    # 2. A restart retires the round it replaces in the same transaction
    if replaces_round_id is not None:
        old_round = with_round_lock(replaces_round_id, db).first()
        if not old_round or old_round.status not in LIVE_ROUND_STATUSES:
            raise RoundNotFound(replaces_round_id)
        _mark_abandoned(db, server_id, old_round, replace_reason or "Round restarted")

    # 3. Round row + roster snapshot
    round_obj = Round(server_id=server_id, status=RoundStatus.ACTIVE, roster=list(roster))
    db.add(round_obj)
    db.flush()  # need round_obj.id
    _add_participants(db, round_obj.id, participants)

    # 4. Server status + audit
    server.status = RoundStatus.ACTIVE
    db.add(EventLog(
        server_id=server_id,
        round_id=round_obj.id,
        event_type="ROUND_STARTED",
        data={"roster": list(roster), "faction_size": sum(p.is_hidden_faction for p in participants)},
    ))
    return round_obj.id


@transactional
def _create_round_participants(db: Session, round_id: int, participants: List[RoundParticipantRecord]) -> None:
    if not with_round_lock(round_id, db).first():
        raise RoundNotFound(round_id)
    _add_participants(db, round_id, participants)


def _get_live_round(db: Session, server_id: str) -> Optional[RoundRecord]:
    row = db.query(Round).filter(
        Round.server_id == server_id,
        Round.status.in_(LIVE_ROUND_STATUSES)
    ).order_by(Round.id.desc()).first()
    return _round_record(row) if row else None


@transactional
def _update_round(db: Session, server_id: str, round_id: int, status: RoundStatus, winning_team: Optional[Team] = None) -> None:
    round_obj = with_round_lock(round_id, db).first()
    if not round_obj:
        raise RoundNotFound(round_id)
    round_obj.status = status
    if winning_team is not None:
        round_obj.winning_team = winning_team

    server = with_server_lock(server_id, db).first()
    if server:
        server.status = status


@transactional
def _replace_round_participant(db: Session, server_id: str, round_id: int, out_id: str, in_id: str) -> None:
    round_obj = with_round_lock(round_id, db).first()
    if not round_obj:
        raise RoundNotFound(round_id)

    # 1. Roster + snapshot row
    round_obj.roster = [in_id if user_id == out_id else user_id for user_id in round_obj.roster]
    for participant in round_obj.participants:
        if participant.user_id == out_id:
            participant.user_id = in_id

    # 2. Votes by or against the outgoing player
    for vote in list(round_obj.votes):
        if vote.voter_id == out_id:
            vote.voter_id = in_id
        if vote.suspect_id == out_id:
            vote.suspect_id = in_id
        if vote.voter_id == vote.suspect_id:
            db.delete(vote)

    # 3. Bench flags
    for player in lock_players(server_id, [out_id, in_id], db).all():
        player.is_active = player.user_id == in_id

    db.add(EventLog(
        server_id=server_id,
        round_id=round_id,
        event_type="PLAYER_SUBSTITUTED",
        data={"out": out_id, "in": in_id},
    ))


@transactional
def _record_vote(db: Session, round_id: int, voter_id: str, suspect_id: str) -> None:
    round_obj = with_round_lock(round_id, db).first()
    if not round_obj:
        raise RoundNotFound(round_id)
    if round_obj.status != RoundStatus.VOTING:
        raise VotingClosed("Voting has closed", voter_id, suspect_id)

    vote = db.query(Vote).filter(
        Vote.round_id == round_id,
        Vote.voter_id == voter_id
    ).first()
    if vote:
        vote.suspect_id = suspect_id
    else:
        db.add(Vote(round_id=round_id, voter_id=voter_id, suspect_id=suspect_id))


@transactional
def _complete_round(
    db: Session,
    server_id: str,
    round_id: int,
    winning_team: Team,
    faction_won: bool,
    votes: Mapping[str, str],
    updates: Mapping[str, CounterUpdate],
) -> None:
    # 1. Lock the round; a round that is no longer live was already settled
    round_obj = with_round_lock(round_id, db).first()
    if not round_obj or round_obj.status not in LIVE_ROUND_STATUSES:
        raise RoundNotFound(round_id)

    # 2. Ratings and counters
    players = {p.user_id: p for p in lock_players(server_id, list(updates), db).all()}
    for user_id, update in updates.items():
        player = players.get(user_id)
        if player is None:
            # Left the server mid-round; nothing to credit
            continue
        player.rating = apply_rating_floor(player.rating, update.delta)
        player.peak_rating = max(player.peak_rating, player.rating)
        player.total_rounds += update.total_rounds
        player.faction_rounds += update.faction_rounds
        player.faction_wins += update.faction_wins
        player.correct_votes += update.correct_votes
        player.total_votes += update.total_votes

    # 3. Final vote rows mirror the closing vote map
    for vote in list(round_obj.votes):
        db.delete(vote)
    db.flush()
    for voter_id, suspect_id in votes.items():
        db.add(Vote(round_id=round_id, voter_id=voter_id, suspect_id=suspect_id))

    # 4. History
    rating_changes = {user_id: u.delta for user_id, u in updates.items() if u.delta}
    round_obj.status = RoundStatus.COMPLETED
    round_obj.winning_team = winning_team
    round_obj.faction_won = faction_won
    round_obj.final_votes = dict(votes)
    round_obj.rating_changes = rating_changes
    round_obj.ended_at = _utcnow()

    server = with_server_lock(server_id, db).first()
    if server:
        server.status = RoundStatus.IDLE

    db.add(EventLog(
        server_id=server_id,
        round_id=round_id,
        event_type="ROUND_COMPLETED",
        data={"winning_team": winning_team.value, "faction_won": faction_won, "rating_changes": rating_changes},
    ))


@transactional
def _abandon_round(db: Session, server_id: str, round_id: int, reason: str) -> None:
    round_obj = with_round_lock(round_id, db).first()
    if not round_obj:
        raise RoundNotFound(round_id)
    _mark_abandoned(db, server_id, round_obj, reason)

    server = with_server_lock(server_id, db).first()
    if server:
        server.status = RoundStatus.IDLE


def _get_recent_rounds(db: Session, server_id: str, limit: int) -> List[RoundRecord]:
    rows = db.query(Round).filter(
        Round.server_id == server_id,
        Round.status == RoundStatus.COMPLETED
    ).order_by(Round.id.desc()).limit(limit).all()
    return [_round_record(row) for row in rows]


def _count_completed_rounds(db: Session, server_id: str) -> int:
    return db.query(Round).filter(
        Round.server_id == server_id,
        Round.status == RoundStatus.COMPLETED
    ).count()


@transactional
def _log_event(db: Session, server_id: str, event_type: str, data: Dict[str, Any], round_id: Optional[int] = None) -> None:
    db.add(EventLog(server_id=server_id, round_id=round_id, event_type=event_type, data=data))


class SqlAlchemyStorage:
    """Storage backed by a SQLAlchemy engine (SQLite by default, any SQL database works)"""

    def __init__(self, engine=None):
        if engine is None:
            self.engine = database.engine
            self.session_factory = database.SessionLocal
        else:
            self.engine = engine
            self.session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def create_schema(self) -> None:
        Base.metadata.create_all(bind=self.engine)

    def _call(self, fn: Callable, *args, **kwargs):
        db = self.session_factory()
        try:
            return fn(db, *args, **kwargs)
        finally:
            db.close()

    async def _execute(self, fn: Callable, *args, **kwargs):
        return await run_in_threadpool(self._call, fn, *args, **kwargs)

    async def get_or_create_server(self, server_id, faction_count, max_active):
        return await self._execute(_get_or_create_server, server_id, faction_count, max_active)

    async def update_server(self, server_id, **fields):
        return await self._execute(_update_server, server_id, **fields)

    async def upsert_player(self, server_id, user_id, display_name, is_active, initial_rating):
        return await self._execute(_upsert_player, server_id, user_id, display_name, is_active, initial_rating)

    async def get_player(self, server_id, user_id):
        return await self._execute(_get_player, server_id, user_id)

    async def delete_player(self, server_id, user_id):
        await self._execute(_delete_player, server_id, user_id)

    async def get_players(self, server_id):
        return await self._execute(_get_players, server_id)

    async def set_player_active(self, server_id, user_id, is_active):
        await self._execute(_set_player_active, server_id, user_id, is_active)

    async def create_round(self, server_id, roster, participants, replaces_round_id=None, replace_reason=None):
        return await self._execute(_create_round, server_id, roster, participants, replaces_round_id, replace_reason)

    async def create_round_participants(self, round_id, participants):
        await self._execute(_create_round_participants, round_id, participants)

    async def get_live_round(self, server_id):
        return await self._execute(_get_live_round, server_id)

    async def update_round(self, server_id, round_id, status, winning_team=None):
        await self._execute(_update_round, server_id, round_id, status, winning_team)

    async def replace_round_participant(self, server_id, round_id, out_id, in_id):
        await self._execute(_replace_round_participant, server_id, round_id, out_id, in_id)

    async def record_vote(self, round_id, voter_id, suspect_id):
        await self._execute(_record_vote, round_id, voter_id, suspect_id)

    async def complete_round(self, server_id, round_id, winning_team, faction_won, votes, updates):
        await self._execute(_complete_round, server_id, round_id, winning_team, faction_won, votes, updates)

    async def abandon_round(self, server_id, round_id, reason):
        await self._execute(_abandon_round, server_id, round_id, reason)

    async def get_recent_rounds(self, server_id, limit=10):
        return await self._execute(_get_recent_rounds, server_id, limit)

    async def count_completed_rounds(self, server_id):
        return await self._execute(_count_completed_rounds, server_id)

    async def log_event(self, server_id, event_type, data, round_id=None):
        await self._execute(_log_event, server_id, event_type, data, round_id)
