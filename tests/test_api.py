"""
End-to-end tests through the HTTP API.
"""
import random

import pytest
from fastapi.testclient import TestClient

from main import create_app

BASE = "/api/servers/guild-1"


@pytest.fixture
def client(settings, storage):
    app = create_app(settings=settings, storage=storage, rng=random.Random(7))
    with TestClient(app) as client:
        yield client


def join(client, count):
    ids = [f"u{i}" for i in range(1, count + 1)]
    for user_id in ids:
        response = client.post(f"{BASE}/players", json={"user_id": user_id, "display_name": f"Player {user_id}"})
        assert response.status_code == 200
    return ids


def roles(client, ids):
    return {user_id: client.get(f"{BASE}/players/{user_id}/role").json() for user_id in ids}


class TestHealth:
    def test_root_and_health(self, client):
        assert client.get("/").json()["status"] == "ok"
        assert client.get("/health").json() == {"status": "healthy"}


class TestPlayers:
    def test_join_and_duplicate(self, client):
        response = client.post(f"{BASE}/players", json={"user_id": "u1", "display_name": "One"})
        assert response.json() == {"user_id": "u1", "display_name": "One", "is_active": True, "in_round": False}

        again = client.post(f"{BASE}/players", json={"user_id": "u1", "display_name": "One"})
        assert again.status_code == 409

    def test_bench_and_leave(self, client):
        join(client, 2)
        benched = client.put(f"{BASE}/players/u2/active", json={"active": False})
        assert benched.json()["is_active"] is False

        assert client.delete(f"{BASE}/players/u2").status_code == 200
        assert client.delete(f"{BASE}/players/u2").status_code == 404

    def test_unknown_profile(self, client):
        assert client.get(f"{BASE}/players/ghost").status_code == 404


class TestSettings:
    def test_max_active_range(self, client):
        assert client.put(f"{BASE}/settings/max-active", json={"value": 20}).status_code == 400
        response = client.put(f"{BASE}/settings/max-active", json={"value": 12})
        assert response.json()["max_active"] == 12

    def test_faction_count(self, client):
        response = client.put(f"{BASE}/settings/faction-count", json={"value": 2})
        assert response.json()["requested_faction_count"] == 2
        assert client.put(f"{BASE}/settings/faction-count", json={"value": 0}).status_code == 400


class TestRoundFlow:
    def test_start_needs_four_players(self, client):
        join(client, 3)
        response = client.post(f"{BASE}/rounds/start")
        assert response.status_code == 409
        assert client.get(f"{BASE}/status").json()["status"] == "IDLE"

    def test_full_round(self, client):
        ids = join(client, 4)

        status = client.post(f"{BASE}/rounds/start").json()
        assert status["status"] == "ACTIVE"
        assert sorted(status["roster"]) == ids
        assert "hidden_faction_ids" not in status

        assignments = roles(client, ids)
        member = next(u for u, r in assignments.items() if r["is_hidden_faction"])
        innocents = [u for u in ids if u != member]
        winning_team = "B" if assignments[member]["team"] == "A" else "A"

        status = client.post(f"{BASE}/rounds/report", json={"winning_team": winning_team}).json()
        assert status["status"] == "VOTING"
        assert status["votes_needed"] == 4

        self_vote = client.post(f"{BASE}/rounds/vote", json={"voter_id": member, "suspect_id": member})
        assert self_vote.status_code == 400

        response = client.post(f"{BASE}/rounds/vote", json={"voter_id": member, "suspect_id": innocents[0]})
        assert response.json()["voting_closed"] is False
        for voter in innocents:
            response = client.post(f"{BASE}/rounds/vote", json={"voter_id": voter, "suspect_id": member})

        body = response.json()
        assert body["voting_closed"] is True
        assert body["summary"]["voted_out"] is True
        assert body["summary"]["hidden_faction_ids"] == [member]

        assert client.get(f"{BASE}/status").json()["status"] == "IDLE"
        board = client.get(f"{BASE}/leaderboard").json()
        assert board[-1]["user_id"] == member
        assert board[-1]["rating"] == 970
        assert board[0]["rating"] == 1005

        profile = client.get(f"{BASE}/players/{innocents[0]}").json()
        assert profile["accuracy"] == 100.0
        assert client.get(f"{BASE}/stats").json()["total_games"] == 1
        history = client.get(f"{BASE}/rounds/history").json()
        assert history[0]["rating_changes"][member] == -30

    def test_close_and_abandon(self, client):
        join(client, 4)
        assert client.post(f"{BASE}/rounds/close").status_code == 409
        assert client.post(f"{BASE}/rounds/abandon", json={}).status_code == 409

        client.post(f"{BASE}/rounds/start")
        client.post(f"{BASE}/rounds/report", json={"winning_team": "A"})
        summary = client.post(f"{BASE}/rounds/close").json()
        assert summary["end_reason"] == "closed"

        client.post(f"{BASE}/rounds/start")
        assert client.post(f"{BASE}/rounds/abandon", json={"reason": "Reset by admin"}).json() == {"status": "ok"}
        assert client.get(f"{BASE}/stats").json()["total_games"] == 1

    def test_substitute_and_restart(self, client):
        join(client, 5)
        client.put(f"{BASE}/players/u5/active", json={"active": False})
        client.post(f"{BASE}/rounds/start")

        status = client.post(f"{BASE}/rounds/substitute", json={"out_id": "u1", "in_id": "u5"}).json()
        assert "u5" in status["roster"]
        assert "u1" not in status["roster"]
        missing = client.post(f"{BASE}/rounds/substitute", json={"out_id": "u2", "in_id": "ghost"})
        assert missing.status_code == 404

        first_id = status["round_id"]
        restarted = client.post(f"{BASE}/rounds/restart").json()
        assert restarted["round_id"] != first_id
        assert sorted(restarted["roster"]) == sorted(status["roster"])
