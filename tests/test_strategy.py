import copy
from dataclasses import fields

import pytest

from rinksim.errors import ConfigurationError
from rinksim.profiles import CoachProfile
from rinksim.simulation_constants import STRATEGY_EFFECTS, STRATEGY_FACTOR_BOUNDS
from rinksim.strategy import (
    GoaltenderUsage,
    OffensiveStyle,
    ScoreContext,
    StrategyModifiers,
    StrategyResolver,
    TeamStrategy,
)

TIED = ScoreContext(goal_differential=0, period=1, seconds_remaining=1200)


@pytest.fixture
def resolver():
    return StrategyResolver()


def test_default_strategy_is_neutral(resolver):
    modifiers = resolver.resolve(TeamStrategy(), CoachProfile(), TIED)
    for f in fields(StrategyModifiers):
        assert getattr(modifiers, f.name) == pytest.approx(1.0)


def test_aggressive_offense_shoots_more(resolver):
    modifiers = resolver.resolve(TeamStrategy(offensive_style='aggressive'), CoachProfile(), TIED)
    assert modifiers.shot_rate > 1.0
    assert modifiers.opponent_shot_rate > 1.0


def test_strings_are_coerced_and_validated():
    assert TeamStrategy(offensive_style='possession').offensive_style == OffensiveStyle.POSSESSION
    with pytest.raises(ConfigurationError):
        TeamStrategy(offensive_style='reckless')
    with pytest.raises(ConfigurationError):
        TeamStrategy.from_dict({'offensive_style': 'balanced', 'line_matching': 'hard'})


def test_coach_realization_scales_adjustment(resolver):
    strategy = TeamStrategy(offensive_style='aggressive')
    weak = resolver.resolve(strategy, CoachProfile(effectiveness=25), TIED)
    strong = resolver.resolve(strategy, CoachProfile(effectiveness=99), TIED)
    nominal = STRATEGY_EFFECTS['offensive_style']['aggressive']['shot_rate']
    assert strong.shot_rate == pytest.approx(nominal)
    assert 1.0 < weak.shot_rate < strong.shot_rate
    assert resolver.coach_realization(CoachProfile(effectiveness=25)) == pytest.approx(0.35)


def test_factors_are_bounded():
    effects = copy.deepcopy(STRATEGY_EFFECTS)
    effects['offensive_style']['aggressive'] = {'shot_rate': 10.0, 'giveaway_rate': 0.01}
    resolver = StrategyResolver(strategy_effects=effects)
    modifiers = resolver.resolve(TeamStrategy(offensive_style='aggressive'), CoachProfile(effectiveness=99), TIED)
    low, high = STRATEGY_FACTOR_BOUNDS
    assert modifiers.shot_rate == pytest.approx(high)
    assert modifiers.giveaway_rate == pytest.approx(low)


def test_unknown_effect_factor_rejected():
    effects = copy.deepcopy(STRATEGY_EFFECTS)
    effects['risk_tolerance']['high'] = {'teleport': 1.2}
    resolver = StrategyResolver(strategy_effects=effects)
    with pytest.raises(ConfigurationError):
        resolver.resolve(TeamStrategy(risk_tolerance='high'), CoachProfile(), TIED)


def test_score_effects_late_in_regulation(resolver):
    trailing = ScoreContext(goal_differential=-1, period=3, seconds_remaining=600)
    leading = ScoreContext(goal_differential=1, period=3, seconds_remaining=600)
    early = ScoreContext(goal_differential=-1, period=1, seconds_remaining=600)
    strategy, coach = TeamStrategy(), CoachProfile()
    assert resolver.resolve(strategy, coach, trailing).shot_rate > 1.0
    assert resolver.resolve(strategy, coach, leading).shot_rate < 1.0
    assert resolver.resolve(strategy, coach, early).shot_rate == pytest.approx(1.0)


def test_goalie_pull_timing_by_usage(resolver):
    conservative = resolver.goalie_pull_seconds(TeamStrategy(goaltender_usage=GoaltenderUsage.CONSERVATIVE))
    aggressive = resolver.goalie_pull_seconds(TeamStrategy(goaltender_usage='aggressive'))
    assert aggressive > conservative
