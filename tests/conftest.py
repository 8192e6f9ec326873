"""
Shared fixtures: mock rosters, tuning configs and a few finished games
that several test modules read from.
"""
import logging

import pytest

from rinksim.definitions import AWAY, HOME
from rinksim.mock_data import create_mock_matchup, create_mock_team_data
from rinksim.profiles import GOALIE_RATINGS, SKATER_RATINGS, GoalieProfile, SkaterProfile, TeamRoster
from rinksim.simulation_constants import SimulationConfig
from rinksim.simulation_engine import simulate_game

NO_PENALTIES = {'penalty_by_defense': 0.0, 'penalty_by_offense': 0.0, 'fight': 0.0}


def pytest_addoption(parser):
    parser.addoption(
        "--update-golden", action="store_true", default=False,
        help="Rewrite the golden game snapshots under tests/golden.",
    )


# ============================================================================
# PLAYER / ROSTER FIXTURES
# ============================================================================

@pytest.fixture
def skater_factory():
    def make(player_id, position='C', rating=62, **overrides):
        ratings = {name: rating for name in SKATER_RATINGS}
        ratings.update(overrides)
        return SkaterProfile(player_id=player_id, position=position, **ratings)
    return make


@pytest.fixture
def goalie_factory():
    def make(player_id, rating=62, **overrides):
        ratings = {name: rating for name in GOALIE_RATINGS}
        ratings.update(overrides)
        return GoalieProfile(player_id=player_id, **ratings)
    return make


@pytest.fixture
def matchup():
    """(home, away) team dictionaries of league-average players."""
    return create_mock_matchup()


@pytest.fixture
def rosters(matchup):
    home, away = matchup
    return {
        HOME: TeamRoster.from_dataframe(home['team_id'], home['name'], home['lineup']),
        AWAY: TeamRoster.from_dataframe(away['team_id'], away['name'], away['lineup']),
    }


# ============================================================================
# CONFIG FIXTURES
# ============================================================================

@pytest.fixture
def config():
    return SimulationConfig()


@pytest.fixture
def no_penalty_config():
    return SimulationConfig.from_overrides({'hazard_rates': NO_PENALTIES})


@pytest.fixture
def scoreless_config():
    """Nobody shoots and nobody takes a penalty: every game is 0-0 after overtime."""
    return SimulationConfig.from_overrides({'hazard_rates': {**NO_PENALTIES, 'shot_attempt': 0.0}})


# ============================================================================
# FINISHED GAMES
# ============================================================================

@pytest.fixture(scope="session")
def average_game():
    home, away = create_mock_matchup()
    return simulate_game(home, away, seed=11)


@pytest.fixture(scope="session")
def spread_games():
    """A handful of games between rosters with varied ratings."""
    home = create_mock_team_data(30, "Home Spread", rating=64, spread=8.0)
    away = create_mock_team_data(40, "Away Spread", rating=60, spread=8.0)
    return [simulate_game(home, away, seed=seed) for seed in (1, 2, 3)]


# ============================================================================
# LOGGING
# ============================================================================

@pytest.fixture
def restore_root_logger():
    """setup_logging replaces the root handlers; put pytest's back afterwards."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
