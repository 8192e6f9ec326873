# rinksim/strategy.py
"""
Team strategy and the modifiers it produces.

A TeamStrategy is a fixed set of enumerated coaching choices. The resolver
turns it, the coach and the current score/time situation into bounded
multiplicative factors that sit on top of the rating-derived
probabilities.
"""
from dataclasses import dataclass, fields
from enum import Enum

import numpy as np

from .errors import ConfigurationError
from .profiles import RATING_MAX, RATING_MIN, CoachProfile
from .simulation_constants import SIMULATION_PARAMETERS, STRATEGY_EFFECTS, STRATEGY_FACTOR_BOUNDS


class OffensiveStyle(str, Enum):
    BALANCED = "balanced"
    AGGRESSIVE = "aggressive"
    POSSESSION = "possession"
    DUMP_AND_CHASE = "dump_and_chase"


class DefensiveStyle(str, Enum):
    BALANCED = "balanced"
    TRAP = "trap"
    COLLAPSE = "collapse"
    PRESSURE = "pressure"


class ForecheckIntensity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class PowerPlayEmphasis(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class PenaltyKillStyle(str, Enum):
    PASSIVE = "passive"
    BALANCED = "balanced"
    AGGRESSIVE = "aggressive"


class GoaltenderUsage(str, Enum):
    CONSERVATIVE = "conservative"
    STANDARD = "standard"
    AGGRESSIVE = "aggressive"


class RiskTolerance(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class TeamStrategy:
    offensive_style: OffensiveStyle = OffensiveStyle.BALANCED
    defensive_style: DefensiveStyle = DefensiveStyle.BALANCED
    forechecking: ForecheckIntensity = ForecheckIntensity.MEDIUM
    power_play_emphasis: PowerPlayEmphasis = PowerPlayEmphasis.NORMAL
    penalty_kill_style: PenaltyKillStyle = PenaltyKillStyle.BALANCED
    goaltender_usage: GoaltenderUsage = GoaltenderUsage.STANDARD
    risk_tolerance: RiskTolerance = RiskTolerance.MEDIUM

    def __post_init__(self):
        for f in fields(self):
            try:
                object.__setattr__(self, f.name, f.type(getattr(self, f.name)))
            except ValueError as e:
                raise ConfigurationError(f"Invalid {f.name}: {e}") from e

    @classmethod
    def from_dict(cls, data):
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(f"Unknown strategy settings: {sorted(unknown)}")
        return cls(**data)


@dataclass(frozen=True)
class StrategyModifiers:
    """Multiplicative factors; 1.0 everywhere means 'no adjustment'."""
    shot_rate: float = 1.0
    shot_quality: float = 1.0
    opponent_shot_rate: float = 1.0
    opponent_shot_quality: float = 1.0
    block: float = 1.0
    hit_rate: float = 1.0
    takeaway_rate: float = 1.0
    giveaway_rate: float = 1.0
    penalty_rate: float = 1.0
    power_play: float = 1.0
    penalty_kill: float = 1.0
    shorthanded_threat: float = 1.0


@dataclass(frozen=True)
class ScoreContext:
    """Score and clock from one team's point of view."""
    goal_differential: int = 0
    period: int = 1
    seconds_remaining: int = 1200
    regulation_periods: int = 3

    @property
    def trailing(self):
        return self.goal_differential < 0

    @property
    def leading(self):
        return self.goal_differential > 0

    @property
    def final_regulation_period(self):
        return self.period == self.regulation_periods


class StrategyResolver:
    def __init__(self, strategy_effects=None, params=None):
        self.effects = strategy_effects or STRATEGY_EFFECTS
        self.params = params or SIMULATION_PARAMETERS
        self._lo, self._hi = STRATEGY_FACTOR_BOUNDS

    def coach_realization(self, coach: CoachProfile) -> float:
        """Share of a strategy's nominal adjustment a coach actually gets out of the team."""
        floor = self.params['coaching']['min_realization']
        skill = (coach.effectiveness - RATING_MIN) / (RATING_MAX - RATING_MIN)
        return floor + (1 - floor) * skill

    def style_factors(self, strategy: TeamStrategy, coach: CoachProfile):
        realization = self.coach_realization(coach)
        factors = {f.name: 1.0 for f in fields(StrategyModifiers)}
        for setting, choice in (
            ('offensive_style', strategy.offensive_style),
            ('defensive_style', strategy.defensive_style),
            ('forechecking', strategy.forechecking),
            ('power_play_emphasis', strategy.power_play_emphasis),
            ('penalty_kill_style', strategy.penalty_kill_style),
            ('risk_tolerance', strategy.risk_tolerance),
        ):
            for name, nominal in self.effects[setting].get(choice.value, {}).items():
                if name not in factors:
                    raise ConfigurationError(f"Strategy effect '{setting}.{choice.value}' names unknown factor '{name}'")
                factors[name] *= 1 + (nominal - 1) * realization
        return factors

    def score_effects(self, strategy: TeamStrategy, context: ScoreContext):
        """Trailing teams push late in regulation, leading teams sit back."""
        se = self.params['score_effects']
        if not context.final_regulation_period or context.goal_differential == 0:
            return {}
        margin = min(abs(context.goal_differential), se['max_goal_differential'])
        scale = se['risk_scale'][strategy.risk_tolerance.value]
        if context.seconds_remaining <= se['late_game_seconds']:
            scale *= se['late_game_amplifier']
        if context.trailing:
            boost = se['trailing_shot_boost'] * margin * scale
            return {'shot_rate': 1 + boost, 'opponent_shot_rate': 1 + boost / 2}
        drop = se['leading_shot_drop'] * margin * scale
        return {'shot_rate': 1 - drop, 'block': 1 + se['leading_block_boost'] * scale}

    def resolve(self, strategy: TeamStrategy, coach: CoachProfile, context: ScoreContext) -> StrategyModifiers:
        factors = self.style_factors(strategy, coach)
        for name, value in self.score_effects(strategy, context).items():
            factors[name] *= value
        bounded = {name: float(np.clip(value, self._lo, self._hi)) for name, value in factors.items()}
        return StrategyModifiers(**bounded)

    def goalie_pull_seconds(self, strategy: TeamStrategy) -> int:
        return int(self.params['goalie_pull']['seconds_remaining'][strategy.goaltender_usage.value])

