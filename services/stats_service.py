"""
Player and server statistics.

Pure helpers behind the leaderboard, profile and server stats views so the
ordering and the percentages are computed the same way everywhere.
"""
from typing import Any, Iterable, List, Optional, Sequence


def win_rate(faction_wins: int, faction_rounds: int) -> float:
    """Faction win percentage (0-100), 0 when the player was never in the faction"""
    if faction_rounds <= 0:
        return 0.0
    return round(faction_wins / faction_rounds * 100, 1)


def accuracy(correct_votes: int, total_votes: int) -> float:
    """Correct vote percentage (0-100), 0 when the player never voted"""
    if total_votes <= 0:
        return 0.0
    return round(correct_votes / total_votes * 100, 1)


def leaderboard_order(players: Iterable[Any]) -> List[Any]:
    """
    Sort players for the leaderboard.

    Highest rating first; ties by display name then user id so repeated
    calls always return the same order.
    """
    return sorted(players, key=lambda p: (-p.rating, p.display_name, p.user_id))


def rank_of(ordered_players: Sequence[Any], user_id: str) -> int:
    """1-based position in an already ordered leaderboard, 0 when absent"""
    for index, player in enumerate(ordered_players, start=1):
        if player.user_id == user_id:
            return index
    return 0


def average_rating(players: Sequence[Any], default: float) -> float:
    if not players:
        return float(default)
    return round(sum(p.rating for p in players) / len(players), 1)


def top_player(ordered_players: Sequence[Any]) -> Optional[Any]:
    return ordered_players[0] if ordered_players else None
