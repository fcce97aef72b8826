"""
Row-level locking helpers used by the storage layer.

In-memory writes for one server are already serialized by that server's
RoundEngine lock. These helpers cover the database side with
SELECT ... FOR UPDATE, so two processes sharing a database cannot both
complete or abandon the same round. SQLite ignores FOR UPDATE; its
database-level write lock gives the same guarantee there.
"""
from typing import List

from sqlalchemy.orm import Session, Query

from models import Player, Round, ServerConfig


def with_server_lock(server_id: str, db: Session) -> Query:
    """
    Lock a server config row.

    Use when:
    - changing the persisted round status or settings of a server

    Example:
        server = with_server_lock(server_id, db).first()
        server.status = RoundStatus.ACTIVE

    Notes:
        - nowait=False waits for a held lock instead of failing
        - must run inside a transaction (see @transactional)
    """
    return db.query(ServerConfig).filter(
        ServerConfig.server_id == server_id
    ).with_for_update(nowait=False)


def with_round_lock(round_id: int, db: Session) -> Query:
    """
    Lock a round row.

    Use when:
    - completing or abandoning a round (prevents applying ratings twice)
    - rewriting the round's participants or votes

    Example:
        round_obj = with_round_lock(round_id, db).first()
        if round_obj and round_obj.status in LIVE_ROUND_STATUSES:
            ...
    """
    return db.query(Round).filter(
        Round.id == round_id
    ).with_for_update(nowait=False)


def lock_players(server_id: str, user_ids: List[str], db: Session) -> Query:
    """
    Lock several player rows at once (bulk rating updates).

    Returns:
        Query object; call .all() for the rows
    """
    return db.query(Player).filter(
        Player.server_id == server_id,
        Player.user_id.in_(user_ids)
    ).with_for_update(nowait=False)
