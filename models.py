"""
ORM models and shared enums.

Tables:
- servers: per-server configuration and persisted round status
- players: one row per (server, user) with the rating ledger
- rounds: one row per started round (live, completed or abandoned)
- round_participants: snapshot of the roster, roles and teams at start
- votes: one row per (round, voter)
- event_log: audit trail of lifecycle events
"""
import enum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base


class RoundStatus(str, enum.Enum):
    IDLE = "IDLE"
    ACTIVE = "ACTIVE"
    VOTING = "VOTING"
    RESOLVING = "RESOLVING"
    # Terminal statuses, only ever stored on round rows
    COMPLETED = "COMPLETED"
    ABANDONED = "ABANDONED"


LIVE_ROUND_STATUSES = (RoundStatus.ACTIVE, RoundStatus.VOTING, RoundStatus.RESOLVING)


class Team(str, enum.Enum):
    A = "A"
    B = "B"


class ServerConfig(Base):
    __tablename__ = "servers"

    server_id = Column(String(64), primary_key=True)
    requested_faction_count = Column(Integer, nullable=False, default=1)
    max_active = Column(Integer, nullable=False, default=8)
    status = Column(Enum(RoundStatus), nullable=False, default=RoundStatus.IDLE)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class Player(Base):
    __tablename__ = "players"
    __table_args__ = (UniqueConstraint("server_id", "user_id", name="uq_player_server_user"),)

    id = Column(Integer, primary_key=True, index=True)
    server_id = Column(String(64), ForeignKey("servers.server_id"), nullable=False, index=True)
    user_id = Column(String(64), nullable=False)
    display_name = Column(String(100), nullable=False)
    is_active = Column(Boolean, nullable=False, default=False)

    rating = Column(Integer, nullable=False, default=1000)
    peak_rating = Column(Integer, nullable=False, default=1000)
    total_rounds = Column(Integer, nullable=False, default=0)
    faction_rounds = Column(Integer, nullable=False, default=0)
    faction_wins = Column(Integer, nullable=False, default=0)
    correct_votes = Column(Integer, nullable=False, default=0)
    total_votes = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class Round(Base):
    __tablename__ = "rounds"

    id = Column(Integer, primary_key=True, index=True)
    server_id = Column(String(64), ForeignKey("servers.server_id"), nullable=False, index=True)
    status = Column(Enum(RoundStatus), nullable=False, default=RoundStatus.ACTIVE)
    roster = Column(JSON, nullable=False, default=list)
    winning_team = Column(Enum(Team), nullable=True)
    faction_won = Column(Boolean, nullable=True)
    final_votes = Column(JSON, nullable=True)
    rating_changes = Column(JSON, nullable=True)
    abandon_reason = Column(Text, nullable=True)
    started_at = Column(DateTime(timezone=True), server_default=func.now())
    ended_at = Column(DateTime(timezone=True), nullable=True)

    participants = relationship(
        "RoundParticipant", back_populates="round", cascade="all, delete-orphan"
    )
    votes = relationship("Vote", back_populates="round", cascade="all, delete-orphan")


class RoundParticipant(Base):
    __tablename__ = "round_participants"
    __table_args__ = (UniqueConstraint("round_id", "user_id", name="uq_round_participant"),)

    id = Column(Integer, primary_key=True, index=True)
    round_id = Column(Integer, ForeignKey("rounds.id"), nullable=False, index=True)
    user_id = Column(String(64), nullable=False)
    is_hidden_faction = Column(Boolean, nullable=False, default=False)
    team = Column(Enum(Team), nullable=False)

    round = relationship("Round", back_populates="participants")


class Vote(Base):
    __tablename__ = "votes"
    __table_args__ = (UniqueConstraint("round_id", "voter_id", name="uq_vote_round_voter"),)

    id = Column(Integer, primary_key=True, index=True)
    round_id = Column(Integer, ForeignKey("rounds.id"), nullable=False, index=True)
    voter_id = Column(String(64), nullable=False)
    suspect_id = Column(String(64), nullable=False)
    cast_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    round = relationship("Round", back_populates="votes")


class EventLog(Base):
    __tablename__ = "event_log"

    id = Column(Integer, primary_key=True, index=True)
    server_id = Column(String(64), nullable=False, index=True)
    round_id = Column(Integer, nullable=True)
    event_type = Column(String(50), nullable=False)
    data = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
