import pytest

from rinksim.definitions import AWAY, HOME, GamePhase, PenaltyType
from rinksim.game_state import GameState
from rinksim.ratings import RatingTranslator
from rinksim.simulation_constants import SIMULATION_PARAMETERS
from rinksim.special_situations import NORMAL, OVERTIME, PENALTY_KILL, POWER_PLAY, SituationModel
from rinksim.strategy import StrategyModifiers

NEUTRAL = {HOME: StrategyModifiers(), AWAY: StrategyModifiers()}


@pytest.fixture
def model():
    return SituationModel(SIMULATION_PARAMETERS, RatingTranslator(SIMULATION_PARAMETERS))


@pytest.fixture
def state(config, rosters):
    state = GameState(config, rosters[HOME], rosters[AWAY])
    state.start_period()
    return state


def test_even_strength_uses_normal_table(model, state):
    assert model.table_kind(state, HOME) == NORMAL
    assert model.multipliers(state, HOME, NEUTRAL)['shot_rate'] == 1.0


def test_power_play_and_penalty_kill_tables(model, state, rosters):
    state.add_penalty(AWAY, rosters[AWAY].skaters[0].player_id, PenaltyType.MINOR, "tripping", 120, True)
    assert model.table_kind(state, HOME) == POWER_PLAY
    assert model.table_kind(state, AWAY) == PENALTY_KILL
    pp = model.multipliers(state, HOME, NEUTRAL)
    assert pp['shot_rate'] == pytest.approx(SIMULATION_PARAMETERS['power_play']['shot_rate'])
    assert pp['fight'] == 0.0
    assert model.multipliers(state, AWAY, NEUTRAL)['fight'] == 0.0


def test_two_man_advantage(model, state, rosters):
    for player in rosters[AWAY].skaters[:2]:
        state.add_penalty(AWAY, player.player_id, PenaltyType.MINOR, "hooking", 120, True)
    pp = model.multipliers(state, HOME, NEUTRAL)
    assert pp['shot_rate'] == pytest.approx(SIMULATION_PARAMETERS['power_play']['shot_rate_5v3'])


def test_overtime_table(model, config, rosters):
    state = GameState(config, rosters[HOME], rosters[AWAY])
    state.period = 3
    state.phase = GamePhase.INTERMISSION
    state.start_period()
    assert model.table_kind(state, HOME) == OVERTIME
    assert model.multipliers(state, HOME, NEUTRAL)['shot_rate'] == pytest.approx(
        SIMULATION_PARAMETERS['overtime']['shot_rate']
    )
