# rinksim/mock_data.py
"""
Deterministic synthetic rosters for tests, calibration runs and the CLI.
"""
import numpy as np
import pandas as pd

from .profiles import GOALIE_RATINGS, RATING_MAX, RATING_MIN, SKATER_RATINGS

# (position, line) for the 18 dressed skaters.
_FORWARD_SLOTS = [(pos, f"F{line}") for line in range(1, 5) for pos in ("C", "LW", "RW")]
_DEFENSE_SLOTS = [(pos, f"D{pair}") for pair in range(1, 4) for pos in ("LD", "RD")]


def _ratings(rng, names, rating, spread):
    if spread <= 0:
        return {name: int(rating) for name in names}
    values = np.clip(np.round(rng.normal(rating, spread, len(names))), RATING_MIN, RATING_MAX).astype(int)
    return dict(zip(names, (int(v) for v in values)))


def _st_roles(position, line):
    roles = []
    if line in ("F1", "D1"):
        roles.append("PP1")
    elif line in ("F2", "D2"):
        roles.append("PP2")
    if line == "D3" or (line == "F3" and position in ("C", "LW")):
        roles.append("PK1")
    elif line == "D2" or (line == "F4" and position in ("C", "LW")):
        roles.append("PK2")
    return roles


def create_mock_team_data(team_id: int, team_name: str, rating: int = 62, spread: float = 0.0,
                          coach_effectiveness: int = 62) -> dict:
    """
    Generates a complete team dictionary: 12 forwards on four lines, six
    defensemen in three pairs and two goalies, all rated around `rating`.
    Player ids are `team_id * 1000 + n`, so two mock teams never clash.
    With `spread` > 0 ratings are drawn around `rating` from a generator
    seeded by `team_id`.
    """
    if not RATING_MIN <= rating <= RATING_MAX:
        raise ValueError(f"rating must be within [{RATING_MIN}, {RATING_MAX}]")
    rng = np.random.default_rng(team_id)
    player_id_start = team_id * 1000
    players = []

    for i, (pos, line) in enumerate(_FORWARD_SLOTS + _DEFENSE_SLOTS):
        players.append({
            'player_id': player_id_start + i,
            'full_name': f"{team_name} Skater {i + 1}",
            'position': pos,
            'line': line,
            'st_roles': _st_roles(pos, line),
            **_ratings(rng, SKATER_RATINGS, rating, spread),
        })

    for slot in ("G1", "G2"):
        players.append({
            'player_id': player_id_start + 100 + int(slot[1]),
            'full_name': f"{team_name} Goalie {slot[1]}",
            'position': 'G',
            'line': slot,
            'st_roles': [],
            **_ratings(rng, GOALIE_RATINGS, rating, spread),
        })

    return {
        'team_id': team_id,
        'name': team_name,
        'lineup': pd.DataFrame(players),
        'coach': {'name': f"{team_name} Coach", 'effectiveness': coach_effectiveness},
    }


def create_mock_matchup(rating_home: int = 62, rating_away: int = 62, spread: float = 0.0):
    """Two mock teams with distinct ids (home 10, away 20)."""
    return (
        create_mock_team_data(10, "Home Blues", rating_home, spread),
        create_mock_team_data(20, "Away Reds", rating_away, spread),
    )
