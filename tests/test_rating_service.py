"""
Tests for round rating deltas.

Rules under test:
1. Faction success needs every member off the winning team AND nobody
   voted out by a strict majority of innocent votes
2. Faction members all move the same way (+30 / -30)
3. Innocent voters get +5 for naming a faction member, -3 otherwise
4. Faction members' votes are ignored entirely
5. Ratings never drop below 0
"""
import pytest

from models import Team
from services.rating_service import (
    CORRECT_VOTE,
    FACTION_LOSS,
    FACTION_WIN,
    INCORRECT_VOTE,
    REASON_FACTION_WIN,
    REASON_TEAM_WON,
    REASON_VOTED_OUT,
    apply_rating_floor,
    build_counter_updates,
    compute_deltas,
    faction_succeeded,
    was_voted_out,
)


def by_user(deltas):
    return {d.user_id: d for d in deltas}


class TestVotedOut:
    def test_no_votes_exposes_nobody(self):
        assert was_voted_out({"m"}, {}) is False

    def test_strict_majority_exposes(self):
        # 4 innocent votes, 3 on the faction member
        votes = {"a": "m", "b": "m", "c": "m", "d": "a"}
        assert was_voted_out({"m"}, votes) is True

    def test_half_of_votes_never_exposes(self):
        votes = {"a": "m", "b": "m", "c": "a", "d": "b"}
        assert was_voted_out({"m"}, votes) is False

    def test_faction_votes_are_not_counted(self):
        # Only 1 innocent vote counted, and it is not on m1
        votes = {"m2": "a", "a": "b", "m1": "a"}
        assert was_voted_out({"m1", "m2"}, votes) is False

    def test_single_innocent_vote_is_a_majority(self):
        assert was_voted_out({"m"}, {"a": "m"}) is True


class TestComputeDeltas:
    def test_four_players_faction_team_lost_no_votes(self):
        team_of = {"m": Team.A, "a": Team.A, "b": Team.B, "c": Team.B}

        deltas = compute_deltas({"m"}, Team.B, team_of, {})

        assert len(deltas) == 1
        assert deltas[0].user_id == "m"
        assert deltas[0].delta == FACTION_WIN
        assert deltas[0].reason == REASON_FACTION_WIN

    def test_five_players_voted_out(self):
        team_of = {"m": Team.A, "a": Team.A, "b": Team.A, "c": Team.B, "d": Team.B}
        votes = {"a": "m", "b": "m", "c": "m", "d": "a"}

        result = by_user(compute_deltas({"m"}, Team.B, team_of, votes))

        assert result["m"].delta == FACTION_LOSS
        assert result["m"].reason == REASON_VOTED_OUT
        assert result["a"].delta == CORRECT_VOTE
        assert result["b"].delta == CORRECT_VOTE
        assert result["c"].delta == CORRECT_VOTE
        assert result["d"].delta == INCORRECT_VOTE

    def test_faction_on_winning_team_loses(self):
        team_of = {"m": Team.A, "a": Team.A, "b": Team.B, "c": Team.B}

        deltas = compute_deltas({"m"}, Team.A, team_of, {})

        assert by_user(deltas)["m"].delta == FACTION_LOSS
        assert by_user(deltas)["m"].reason == REASON_TEAM_WON

    def test_one_member_on_winning_team_fails_whole_faction(self):
        team_of = {"m1": Team.A, "m2": Team.B, "a": Team.A, "b": Team.B, "c": Team.A, "d": Team.B}

        result = by_user(compute_deltas({"m1", "m2"}, Team.A, team_of, {}))

        assert result["m1"].delta == FACTION_LOSS
        assert result["m2"].delta == FACTION_LOSS

    def test_faction_members_share_one_sign(self):
        team_of = {"m1": Team.B, "m2": Team.B, "a": Team.A, "b": Team.A, "c": Team.A, "d": Team.B}
        for winning_team in (Team.A, Team.B):
            for votes in ({}, {"a": "m1", "b": "m1", "c": "d"}):
                deltas = compute_deltas({"m1", "m2"}, winning_team, team_of, votes)
                signs = {d.delta > 0 for d in deltas if d.user_id in ("m1", "m2")}
                assert len(signs) == 1

    def test_faction_votes_produce_no_voter_entries(self):
        team_of = {"m": Team.A, "a": Team.A, "b": Team.B, "c": Team.B}
        votes = {"m": "a", "b": "c"}

        result = compute_deltas({"m"}, Team.B, team_of, votes)

        assert [d.user_id for d in result] == ["m", "b"]
        assert by_user(result)["b"].delta == INCORRECT_VOTE

    def test_non_voters_are_absent(self):
        team_of = {"m": Team.A, "a": Team.A, "b": Team.B, "c": Team.B}

        result = by_user(compute_deltas({"m"}, Team.B, team_of, {"a": "m"}))

        assert set(result) == {"m", "a"}


class TestFactionSucceeded:
    def test_needs_both_conditions(self):
        team_of = {"m": Team.A, "a": Team.A, "b": Team.B, "c": Team.B}
        assert faction_succeeded({"m"}, Team.B, team_of, {}) is True
        assert faction_succeeded({"m"}, Team.A, team_of, {}) is False
        assert faction_succeeded({"m"}, Team.B, team_of, {"a": "m"}) is False


class TestCounterUpdates:
    @pytest.fixture
    def round_data(self):
        roster = ["m", "a", "b", "c"]
        team_of = {"m": Team.A, "a": Team.A, "b": Team.B, "c": Team.B}
        votes = {"m": "a", "a": "m", "b": "c"}
        return roster, team_of, votes

    def test_every_roster_member_plays_once(self, round_data):
        roster, team_of, votes = round_data
        deltas = compute_deltas({"m"}, Team.B, team_of, votes)

        updates = build_counter_updates(roster, {"m"}, votes, deltas, succeeded=False)

        assert set(updates) == set(roster)
        assert all(u.total_rounds == 1 for u in updates.values())

    def test_faction_and_vote_counters(self, round_data):
        roster, team_of, votes = round_data
        deltas = compute_deltas({"m"}, Team.B, team_of, votes)
        succeeded = faction_succeeded({"m"}, Team.B, team_of, votes)

        updates = build_counter_updates(roster, {"m"}, votes, deltas, succeeded)

        assert updates["m"].faction_rounds == 1
        assert updates["m"].faction_wins == 0
        assert updates["m"].total_votes == 0
        assert updates["a"].total_votes == 1
        assert updates["a"].correct_votes == 1
        assert updates["b"].total_votes == 1
        assert updates["b"].correct_votes == 0
        assert updates["c"].total_votes == 0

    def test_deltas_are_merged_per_user(self, round_data):
        roster, team_of, votes = round_data
        deltas = compute_deltas({"m"}, Team.B, team_of, votes)

        updates = build_counter_updates(roster, {"m"}, votes, deltas, succeeded=False)

        assert updates["m"].delta == FACTION_LOSS
        assert updates["a"].delta == CORRECT_VOTE
        assert updates["b"].delta == INCORRECT_VOTE
        assert updates["c"].delta == 0


class TestRatingFloor:
    @pytest.mark.parametrize("current,delta,expected", [
        (1000, 30, 1030),
        (10, -30, 0),
        (2, -3, 0),
        (0, -30, 0),
        (0, 5, 5),
    ])
    def test_never_below_zero(self, current, delta, expected):
        assert apply_rating_floor(current, delta) == expected
