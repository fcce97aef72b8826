"""
Tests for SqlAlchemyStorage against in-memory SQLite.
"""
import pytest

from models import EventLog, RoundStatus, Team
from core.exceptions import PlayerNotFound, RoundNotFound, VotingClosed
from core.storage import RoundParticipantRecord
from services.rating_service import CounterUpdate

SERVER_ID = "guild-1"
ROSTER = ["a", "b", "c", "d"]


def snapshot_rows(faction=("a",)):
    return [
        RoundParticipantRecord(user_id, user_id in faction, Team.A if i % 2 == 0 else Team.B)
        for i, user_id in enumerate(ROSTER)
    ]


@pytest.fixture
async def seeded(storage):
    await storage.get_or_create_server(SERVER_ID, 1, 8)
    for user_id in ROSTER + ["e"]:
        await storage.upsert_player(SERVER_ID, user_id, f"Name {user_id}", user_id != "e", 1000)
    return storage


def event_types(storage):
    db = storage.session_factory()
    try:
        return [row.event_type for row in db.query(EventLog).order_by(EventLog.id).all()]
    finally:
        db.close()


class TestServersAndPlayers:
    @pytest.mark.anyio
    async def test_server_created_once(self, storage):
        first = await storage.get_or_create_server(SERVER_ID, 2, 10)
        second = await storage.get_or_create_server(SERVER_ID, 1, 8)
        assert first.requested_faction_count == 2
        assert second.max_active == 10
        assert second.status == RoundStatus.IDLE

    @pytest.mark.anyio
    async def test_update_server(self, seeded):
        record = await seeded.update_server(SERVER_ID, max_active=12)
        assert record.max_active == 12

    @pytest.mark.anyio
    async def test_upsert_keeps_rating(self, seeded):
        again = await seeded.upsert_player(SERVER_ID, "a", "Renamed", False, 1500)
        assert again.display_name == "Renamed"
        assert again.rating == 1000
        assert again.is_active is True

    @pytest.mark.anyio
    async def test_new_player_seeded_with_given_rating(self, seeded):
        record = await seeded.upsert_player(SERVER_ID, "f", "Name f", True, 1200)
        assert (record.rating, record.peak_rating) == (1200, 1200)

    @pytest.mark.anyio
    async def test_delete_player(self, seeded):
        await seeded.delete_player(SERVER_ID, "e")
        assert await seeded.get_player(SERVER_ID, "e") is None
        with pytest.raises(PlayerNotFound):
            await seeded.delete_player(SERVER_ID, "e")

    @pytest.mark.anyio
    async def test_set_player_active(self, seeded):
        await seeded.set_player_active(SERVER_ID, "e", True)
        assert (await seeded.get_player(SERVER_ID, "e")).is_active is True
        with pytest.raises(PlayerNotFound):
            await seeded.set_player_active(SERVER_ID, "nobody", True)


class TestRoundLifecycle:
    @pytest.mark.anyio
    async def test_create_round_writes_snapshot(self, seeded):
        round_id = await seeded.create_round(SERVER_ID, ROSTER, snapshot_rows())

        live = await seeded.get_live_round(SERVER_ID)
        assert live.round_id == round_id
        assert live.status == RoundStatus.ACTIVE
        assert live.roster == ROSTER
        assert live.hidden_faction_ids == ["a"]
        assert "ROUND_STARTED" in event_types(seeded)

    @pytest.mark.anyio
    async def test_create_round_participants(self, seeded):
        round_id = await seeded.create_round(SERVER_ID, ROSTER[:2], snapshot_rows()[:2])
        await seeded.create_round_participants(round_id, snapshot_rows()[2:])

        live = await seeded.get_live_round(SERVER_ID)
        assert sorted(p.user_id for p in live.participants) == sorted(ROSTER)
        with pytest.raises(RoundNotFound):
            await seeded.create_round_participants(999, [])

    @pytest.mark.anyio
    async def test_restart_replaces_live_round(self, seeded):
        old_id = await seeded.create_round(SERVER_ID, ROSTER, snapshot_rows())
        new_id = await seeded.create_round(
            SERVER_ID, ROSTER, snapshot_rows(("b",)),
            replaces_round_id=old_id, replace_reason="restart",
        )

        live = await seeded.get_live_round(SERVER_ID)
        assert live.round_id == new_id
        assert live.hidden_faction_ids == ["b"]
        assert event_types(seeded).count("ROUND_ABANDONED") == 1

    @pytest.mark.anyio
    async def test_votes_upsert_and_move_on_substitute(self, seeded):
        round_id = await seeded.create_round(SERVER_ID, ROSTER, snapshot_rows())
        await seeded.update_round(SERVER_ID, round_id, RoundStatus.VOTING, Team.B)
        await seeded.record_vote(round_id, "b", "a")
        await seeded.record_vote(round_id, "b", "c")
        await seeded.record_vote(round_id, "c", "a")

        await seeded.replace_round_participant(SERVER_ID, round_id, "a", "e")

        live = await seeded.get_live_round(SERVER_ID)
        assert live.status == RoundStatus.VOTING
        assert live.winning_team == Team.B
        assert live.roster == ["e", "b", "c", "d"]
        assert live.hidden_faction_ids == ["e"]
        assert live.votes == {"b": "c", "c": "e"}
        assert (await seeded.get_player(SERVER_ID, "a")).is_active is False
        assert (await seeded.get_player(SERVER_ID, "e")).is_active is True

    @pytest.mark.anyio
    async def test_votes_only_recorded_while_voting(self, seeded):
        round_id = await seeded.create_round(SERVER_ID, ROSTER, snapshot_rows())
        with pytest.raises(VotingClosed):
            await seeded.record_vote(round_id, "b", "a")
        with pytest.raises(RoundNotFound):
            await seeded.record_vote(999, "b", "a")

        await seeded.update_round(SERVER_ID, round_id, RoundStatus.VOTING, Team.A)
        await seeded.complete_round(SERVER_ID, round_id, Team.A, True, {}, {})
        with pytest.raises(VotingClosed):
            await seeded.record_vote(round_id, "b", "a")
        assert (await seeded.get_recent_rounds(SERVER_ID))[0].votes == {}

    @pytest.mark.anyio
    async def test_complete_round_applies_updates_once(self, seeded):
        round_id = await seeded.create_round(SERVER_ID, ROSTER, snapshot_rows())
        updates = {
            "a": CounterUpdate("a", delta=-30, total_rounds=1, faction_rounds=1),
            "b": CounterUpdate("b", delta=5, total_rounds=1, correct_votes=1, total_votes=1),
            "c": CounterUpdate("c", total_rounds=1),
            "d": CounterUpdate("d", total_rounds=1),
        }
        votes = {"b": "a"}

        await seeded.complete_round(SERVER_ID, round_id, Team.A, False, votes, updates)

        a = await seeded.get_player(SERVER_ID, "a")
        b = await seeded.get_player(SERVER_ID, "b")
        assert (a.rating, a.faction_rounds, a.total_rounds) == (970, 1, 1)
        assert (b.rating, b.peak_rating, b.correct_votes) == (1005, 1005, 1)
        assert await seeded.get_live_round(SERVER_ID) is None

        with pytest.raises(RoundNotFound):
            await seeded.complete_round(SERVER_ID, round_id, Team.A, False, votes, updates)
        assert (await seeded.get_player(SERVER_ID, "a")).rating == 970

        history = await seeded.get_recent_rounds(SERVER_ID)
        assert len(history) == 1
        assert history[0].votes == votes
        assert history[0].rating_changes == {"a": -30, "b": 5}
        assert await seeded.count_completed_rounds(SERVER_ID) == 1

    @pytest.mark.anyio
    async def test_rating_floor_in_storage(self, seeded):
        round_id = await seeded.create_round(SERVER_ID, ROSTER, snapshot_rows())
        updates = {"a": CounterUpdate("a", delta=-5000, total_rounds=1)}
        await seeded.complete_round(SERVER_ID, round_id, Team.A, False, {}, updates)
        assert (await seeded.get_player(SERVER_ID, "a")).rating == 0

    @pytest.mark.anyio
    async def test_abandon_round(self, seeded):
        round_id = await seeded.create_round(SERVER_ID, ROSTER, snapshot_rows())

        await seeded.abandon_round(SERVER_ID, round_id, "Reset by admin")

        assert await seeded.get_live_round(SERVER_ID) is None
        assert await seeded.count_completed_rounds(SERVER_ID) == 0
        server = await seeded.get_or_create_server(SERVER_ID, 1, 8)
        assert server.status == RoundStatus.IDLE

    @pytest.mark.anyio
    async def test_log_event(self, seeded):
        await seeded.log_event(SERVER_ID, "CUSTOM", {"k": "v"})
        assert event_types(seeded)[-1] == "CUSTOM"
