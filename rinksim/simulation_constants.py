# rinksim/simulation_constants.py
import copy
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import toml

from .definitions import OvertimeFormat
from .errors import ConfigurationError

# All rates are in "events per 60 minutes" of the relevant state.
# Possession-driven categories are per 60 minutes of the possessing team
# holding the puck, so an evenly matched team sees roughly half of them.
BASE_HAZARD_RATES = {
    # Puck possession
    'shot_attempt': 110.0,
    'giveaway': 19.0,
    'takeaway': 15.0,
    'hit': 44.0,

    # Stoppages (icing, offside, puck out of play)
    'stoppage': 14.0,

    # Penalties
    'penalty_by_defense': 5.2,
    'penalty_by_offense': 1.6,
    'fight': 0.25,

    'line_change': 50.0,
}

# Global parameters for simulation logic and tuning
SIMULATION_PARAMETERS = {
    'ratings': {
        'league_average': 0.62,
        'std_dev': 0.20,
        'impact_factor': 0.275,
        'min_modifier': 0.1,
    },
    'probability_bounds': {
        'floor': 0.02,
        'ceiling': 0.95,
    },
    'rate_bounds': {
        'floor': 0.25,
        'ceiling': 3.0,
    },
    'shot_resolution': {
        'base_block_prob': 0.24,
        'base_miss_prob': 0.30,
        'base_goal_prob': 0.100,
        'empty_net_goal_prob': 0.85,
        'base_rebound_prob': 0.08,
        'base_freeze_prob': 0.50,
        'block_turnover_prob': 0.55,
        'miss_turnover_prob': 0.50,
        'primary_assist_prob': 0.85,
        'secondary_assist_prob_es': 0.50,
        'secondary_assist_prob_pp': 0.70,
        'recent_possession_weight': 2.0,
        'defense_shooter_weight': 0.6,
        'pressure_poise_weight': 0.5,
    },
    'goalie_logic': {
        'movement_weight': 0.30,
        'rebound_control_weight': 0.20,
        'vision_weight': 0.30,
        'flexibility_weight': 0.20,
        'aggressiveness_save_swing': 0.04,
        'aggressiveness_rebound_swing': 0.30,
    },
    'power_play': {
        'shot_rate': 1.85,
        'shot_rate_5v3': 2.6,
        'goal_prob': 1.30,
        'giveaway_rate': 0.70,
        'hit_rate': 0.50,
        'penalty_rate': 0.80,
    },
    'penalty_kill': {
        'shot_rate': 0.40,
        'giveaway_rate': 1.30,
        'hit_rate': 0.60,
        'block_prob': 1.15,
        'shorthanded_rush_prob': 0.25,
        'rush_goal_multiplier': 1.8,
    },
    'overtime': {
        'shot_rate': 1.35,
        'goal_prob': 1.25,
        'skater_advantage_shot_rate': 1.30,
        'hit_rate': 0.40,
        'penalty_rate': 0.60,
        'length_seconds': 300,
        'skaters': 3,
    },
    'extra_attacker': {
        'shot_rate': 1.25,
    },
    'shootout': {
        'base_goal_prob': 0.32,
        'minimum_rounds': 3,
    },
    'penalties': {
        'distribution': {'minor': 0.86, 'double_minor': 0.05, 'major': 0.05, 'misconduct': 0.04},
        'max_running_per_team': 2,
        'released_by_goal': ['minor', 'double_minor', 'major'],
    },
    'fatigue': {
        'on_ice_base_seconds': 40.0,
        'on_ice_rating_seconds': 80.0,
        'bench_recovery_seconds': 150.0,
        'cumulative_base_seconds': 3000.0,
        'cumulative_rating_seconds': 3000.0,
        'performance_impact': 0.08,
        'max_level': 1.5,
    },
    'faceoffs': {
        'rating_swing': 0.25,
        'min_prob': 0.30,
        'max_prob': 0.70,
    },
    'score_effects': {
        'trailing_shot_boost': 0.08,
        'leading_shot_drop': 0.06,
        'leading_block_boost': 0.05,
        'max_goal_differential': 2,
        'late_game_seconds': 300,
        'late_game_amplifier': 1.5,
        'risk_scale': {'low': 0.6, 'medium': 1.0, 'high': 1.4},
    },
    'goalie_pull': {
        'seconds_remaining': {'conservative': 60, 'standard': 90, 'aggressive': 150},
        'max_deficit': 2,
    },
    'coaching': {
        'min_realization': 0.35,
    },
    'general_logic': {
        'shift_fatigue_seconds': 45.0,
        'faceoff_change_seconds': 20.0,
        'table_refresh_ticks': 10,
        'recent_handlers': 3,
    },
}

# Multiplicative style adjustments; an empty dict means "no change".
STRATEGY_EFFECTS = {
    'offensive_style': {
        'balanced': {},
        'aggressive': {'shot_rate': 1.12, 'opponent_shot_rate': 1.08, 'giveaway_rate': 1.10},
        'possession': {'shot_rate': 0.95, 'shot_quality': 1.06, 'giveaway_rate': 0.85},
        'dump_and_chase': {'shot_rate': 1.04, 'giveaway_rate': 1.15, 'hit_rate': 1.15},
    },
    'defensive_style': {
        'balanced': {},
        'trap': {'opponent_shot_rate': 0.90, 'shot_rate': 0.94, 'takeaway_rate': 1.10},
        'collapse': {'block': 1.20, 'opponent_shot_quality': 0.95, 'shot_rate': 0.97},
        'pressure': {'takeaway_rate': 1.15, 'hit_rate': 1.10, 'penalty_rate': 1.10, 'opponent_shot_quality': 1.05},
    },
    'forechecking': {
        'low': {'hit_rate': 0.85, 'takeaway_rate': 0.92, 'opponent_shot_rate': 0.97},
        'medium': {},
        'high': {'hit_rate': 1.20, 'takeaway_rate': 1.10, 'penalty_rate': 1.10, 'opponent_shot_rate': 1.04},
    },
    'power_play_emphasis': {
        'low': {'power_play': 0.90},
        'normal': {},
        'high': {'power_play': 1.12},
    },
    'penalty_kill_style': {
        'passive': {'penalty_kill': 0.92, 'shorthanded_threat': 0.70},
        'balanced': {},
        'aggressive': {'penalty_kill': 1.05, 'shorthanded_threat': 1.40},
    },
    'risk_tolerance': {
        'low': {'giveaway_rate': 0.92, 'shot_rate': 0.96, 'penalty_rate': 0.95},
        'medium': {},
        'high': {'shot_rate': 1.05, 'giveaway_rate': 1.08, 'opponent_shot_rate': 1.04},
    },
}

STRATEGY_FACTOR_BOUNDS = (0.5, 1.5)

# Acceptable batch averages for two league-average teams.
CALIBRATION_BANDS = {
    'goals_per_game': (5.0, 7.5),
    'overtime_rate': (0.15, 0.35),
    'shots_per_team': (24.0, 38.0),
    'save_pct': (0.880, 0.930),
}


def merge_parameters(base: Dict[str, Any], overrides: Dict[str, Any], path: str = "") -> Dict[str, Any]:
    """Returns a deep copy of `base` with `overrides` applied. Unknown keys are rejected."""
    merged = copy.deepcopy(base)
    for key, value in overrides.items():
        where = f"{path}.{key}" if path else key
        if key not in merged:
            raise ConfigurationError(f"Unknown simulation parameter '{where}'")
        if isinstance(merged[key], dict):
            if not isinstance(value, dict):
                raise ConfigurationError(f"Parameter '{where}' must be a table")
            merged[key] = merge_parameters(merged[key], value, where)
        else:
            merged[key] = value
    return merged


def load_parameter_overrides(path) -> Dict[str, Any]:
    """
    Reads a TOML file of tuning overrides. Top-level tables are
    `hazard_rates`, `parameters` and `strategy_effects`.
    """
    try:
        with open(path, 'r') as f:
            overrides = toml.load(f)
    except (OSError, toml.TomlDecodeError) as e:
        raise ConfigurationError(f"Could not read simulation overrides from {path}: {e}") from e
    unknown = set(overrides) - {'hazard_rates', 'parameters', 'strategy_effects', 'simulation'}
    if unknown:
        raise ConfigurationError(f"Unknown override sections: {sorted(unknown)}")
    return overrides


@dataclass
class SimulationConfig:
    tick_seconds: int = 1
    regulation_periods: int = 3
    period_length: int = 1200
    overtime_format: OvertimeFormat = OvertimeFormat.REGULAR_SEASON
    allow_overtime: bool = True
    hazard_rates: Dict[str, float] = field(default_factory=lambda: copy.deepcopy(BASE_HAZARD_RATES))
    params: Dict[str, Any] = field(default_factory=lambda: copy.deepcopy(SIMULATION_PARAMETERS))
    strategy_effects: Dict[str, Any] = field(default_factory=lambda: copy.deepcopy(STRATEGY_EFFECTS))

    def __post_init__(self):
        try:
            self.overtime_format = OvertimeFormat(self.overtime_format)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e
        if self.tick_seconds <= 0:
            raise ConfigurationError("tick_seconds must be positive")
        if self.period_length <= 0 or self.period_length % self.tick_seconds:
            raise ConfigurationError("period_length must be a positive multiple of tick_seconds")
        if self.regulation_periods < 1:
            raise ConfigurationError("regulation_periods must be at least 1")
        if self.overtime_length % self.tick_seconds:
            raise ConfigurationError("overtime length must be a multiple of tick_seconds")

    @property
    def overtime_length(self) -> int:
        if self.overtime_format == OvertimeFormat.PLAYOFF:
            return self.period_length
        return int(self.params['overtime']['length_seconds'])

    def period_length_for(self, period: int) -> int:
        return self.period_length if period <= self.regulation_periods else self.overtime_length

    def elapsed_before(self, period: int) -> int:
        """Game seconds played before `period` starts."""
        regulation = min(period - 1, self.regulation_periods)
        overtimes = max(0, period - 1 - self.regulation_periods)
        return regulation * self.period_length + overtimes * self.overtime_length

    @classmethod
    def from_overrides(cls, overrides: Optional[Dict[str, Any]] = None, **kwargs) -> "SimulationConfig":
        overrides = overrides or {}
        settings = dict(overrides.get('simulation', {}))
        settings.update(kwargs)
        unknown = set(settings) - {'tick_seconds', 'regulation_periods', 'period_length', 'overtime_format', 'allow_overtime'}
        if unknown:
            raise ConfigurationError(f"Unknown simulation settings: {sorted(unknown)}")
        return cls(
            hazard_rates=merge_parameters(BASE_HAZARD_RATES, overrides.get('hazard_rates', {}), 'hazard_rates'),
            params=merge_parameters(SIMULATION_PARAMETERS, overrides.get('parameters', {}), 'parameters'),
            strategy_effects=merge_parameters(STRATEGY_EFFECTS, overrides.get('strategy_effects', {}), 'strategy_effects'),
            **settings,
        )

    @classmethod
    def from_toml(cls, path, **kwargs) -> "SimulationConfig":
        return cls.from_overrides(load_parameter_overrides(path), **kwargs)
