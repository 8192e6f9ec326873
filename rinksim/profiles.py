import dataclasses
from dataclasses import dataclass, field
from functools import cached_property
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from .definitions import (
    DEFENSE_PAIRS,
    FORWARD_LINES,
    PK_UNITS,
    PP_UNITS,
    Position,
)
from .errors import ConfigurationError

RATING_MIN, RATING_MAX = 25, 99

SKATER_RATINGS = (
    'discipline', 'injury_resistance', 'fatigue', 'passing', 'shooting',
    'defense', 'puck_control', 'checking', 'fighting', 'poise',
)
GOALIE_RATINGS = (
    'discipline', 'injury_resistance', 'fatigue', 'poise', 'movement',
    'rebound_control', 'vision', 'aggressiveness', 'puck_control', 'flexibility',
)

MIN_FORWARDS, MIN_DEFENSE = 4, 2


def _validate_ratings(profile, rating_names):
    for name in rating_names:
        value = getattr(profile, name)
        # DataFrame columns with gaps arrive as floats.
        if isinstance(value, (float, np.floating)) and float(value).is_integer():
            value = int(value)
        if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
            raise ConfigurationError(f"Player {profile.player_id}: rating '{name}' must be an integer, got {value!r}")
        if not RATING_MIN <= value <= RATING_MAX:
            raise ConfigurationError(
                f"Player {profile.player_id}: rating '{name}'={value} outside [{RATING_MIN}, {RATING_MAX}]"
            )
        object.__setattr__(profile, name, int(value))


def _coerce_position(profile):
    try:
        object.__setattr__(profile, 'position', Position(profile.position))
    except ValueError as e:
        raise ConfigurationError(f"Player {profile.player_id}: unknown position {profile.position!r}") from e


@dataclass(frozen=True)
class SkaterProfile:
    player_id: int
    position: Position
    discipline: int
    injury_resistance: int
    fatigue: int
    passing: int
    shooting: int
    defense: int
    puck_control: int
    checking: int
    fighting: int
    poise: int
    full_name: Optional[str] = None
    line: Optional[str] = None
    st_roles: Tuple[str, ...] = ()
    injured: bool = False

    def __post_init__(self):
        _coerce_position(self)
        if self.position == Position.GOALIE:
            raise ConfigurationError(f"Player {self.player_id}: goaltenders need a GoalieProfile")
        _validate_ratings(self, SKATER_RATINGS)
        object.__setattr__(self, 'st_roles', tuple(self.st_roles or ()))

    @property
    def overall(self) -> float:
        return sum(getattr(self, name) for name in SKATER_RATINGS) / len(SKATER_RATINGS)

    @property
    def is_goalie(self) -> bool:
        return False


@dataclass(frozen=True)
class GoalieProfile:
    player_id: int
    discipline: int
    injury_resistance: int
    fatigue: int
    poise: int
    movement: int
    rebound_control: int
    vision: int
    aggressiveness: int
    puck_control: int
    flexibility: int
    full_name: Optional[str] = None
    position: Position = Position.GOALIE
    line: Optional[str] = None
    st_roles: Tuple[str, ...] = ()
    injured: bool = False

    def __post_init__(self):
        _coerce_position(self)
        if self.position != Position.GOALIE:
            raise ConfigurationError(f"Player {self.player_id}: GoalieProfile must have position G")
        _validate_ratings(self, GOALIE_RATINGS)
        object.__setattr__(self, 'st_roles', tuple(self.st_roles or ()))

    @property
    def overall(self) -> float:
        return sum(getattr(self, name) for name in GOALIE_RATINGS) / len(GOALIE_RATINGS)

    @property
    def is_goalie(self) -> bool:
        return True


def profile_from_record(record: Dict) -> "SkaterProfile | GoalieProfile":
    """
    Builds the right profile type from a flat record (a dict or a DataFrame
    row). Keys that are not fields of the profile are ignored, missing
    ratings are a configuration error.
    """
    data = {k: v for k, v in record.items() if not _is_missing(v)}
    if 'st_roles' in data and isinstance(data['st_roles'], str):
        data['st_roles'] = [r.strip() for r in data['st_roles'].split(',') if r.strip()]
    profile_cls = GoalieProfile if str(data.get('position', '')).upper() == Position.GOALIE.value else SkaterProfile
    profile_fields = {f.name for f in dataclasses.fields(profile_cls)}
    filtered = {k: v for k, v in data.items() if k in profile_fields}
    try:
        return profile_cls(**filtered)
    except TypeError as e:
        raise ConfigurationError(f"Incomplete player record {data.get('player_id')!r}: {e}") from e


def _is_missing(value):
    if isinstance(value, (list, tuple, np.ndarray)):
        return False
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


@dataclass(frozen=True)
class CoachProfile:
    name: Optional[str] = None
    effectiveness: int = 62
    toi_profile: Dict[str, Dict[str, float]] = field(default_factory=lambda: {
        'forwards': {'F1': 0.35, 'F2': 0.30, 'F3': 0.22, 'F4': 0.13},
        'defense': {'D1': 0.40, 'D2': 0.34, 'D3': 0.26},
    })
    pp_unit_shares: Dict[str, float] = field(default_factory=lambda: {'PP1': 0.60, 'PP2': 0.40})
    pk_unit_shares: Dict[str, float] = field(default_factory=lambda: {'PK1': 0.55, 'PK2': 0.45})

    def __post_init__(self):
        if not RATING_MIN <= self.effectiveness <= RATING_MAX:
            raise ConfigurationError(f"Coach effectiveness {self.effectiveness} outside [{RATING_MIN}, {RATING_MAX}]")


@dataclass(frozen=True)
class TeamRoster:
    team_id: int
    name: str
    skaters: Tuple[SkaterProfile, ...]
    goalies: Tuple[GoalieProfile, ...]
    coach: CoachProfile = field(default_factory=CoachProfile)

    def __post_init__(self):
        object.__setattr__(self, 'skaters', tuple(self.skaters))
        object.__setattr__(self, 'goalies', tuple(self.goalies))

    @classmethod
    def from_players(cls, team_id, name, players, coach=None) -> "TeamRoster":
        skaters = [p for p in players if not p.is_goalie]
        goalies = [p for p in players if p.is_goalie]
        return cls(team_id=team_id, name=name, skaters=skaters, goalies=goalies, coach=coach or CoachProfile())

    @classmethod
    def from_dataframe(cls, team_id, name, lineup_df: pd.DataFrame, coach=None) -> "TeamRoster":
        players = [profile_from_record(row.to_dict()) for _, row in lineup_df.iterrows()]
        return cls.from_players(team_id, name, players, coach)

    def validate(self):
        ids = [p.player_id for p in self.skaters + self.goalies]
        if len(ids) != len(set(ids)):
            raise ConfigurationError(f"Team {self.name}: duplicate player ids in roster")
        if not self.healthy_goalies:
            raise ConfigurationError(f"Team {self.name}: no healthy goaltender dressed")
        forwards = [p for p in self.healthy_skaters if p.position.is_forward]
        defense = [p for p in self.healthy_skaters if p.position.is_defense]
        if len(forwards) < MIN_FORWARDS or len(defense) < MIN_DEFENSE:
            raise ConfigurationError(
                f"Team {self.name}: needs at least {MIN_FORWARDS} forwards and {MIN_DEFENSE} defensemen, "
                f"has {len(forwards)} and {len(defense)}"
            )
        return self

    @property
    def healthy_skaters(self) -> List[SkaterProfile]:
        return [p for p in self.skaters if not p.injured]

    @property
    def healthy_goalies(self) -> List[GoalieProfile]:
        return [g for g in self.goalies if not g.injured]

    @cached_property
    def players(self) -> Dict[int, "SkaterProfile | GoalieProfile"]:
        return {p.player_id: p for p in self.skaters + self.goalies}

    @cached_property
    def starting_goalie(self) -> GoalieProfile:
        healthy = self.healthy_goalies
        if not healthy:
            raise ConfigurationError(f"Team {self.name}: no healthy goaltender dressed")
        starters = [g for g in healthy if g.line == 'G1']
        return starters[0] if starters else max(healthy, key=lambda g: (g.overall, -g.player_id))

    @cached_property
    def lines(self) -> Dict[str, List[int]]:
        """
        Forward lines, defense pairs and special-teams units. Uses the
        assigned `line`/`st_roles` where present and fills the rest by
        overall rating.
        """
        forwards = [p for p in self.healthy_skaters if p.position.is_forward]
        defense = [p for p in self.healthy_skaters if p.position.is_defense]
        lines = {}
        lines.update(_fill_slots(forwards, FORWARD_LINES, 3))
        lines.update(_fill_slots(defense, DEFENSE_PAIRS, 2))

        pp_f = sorted(forwards, key=lambda p: (-(p.shooting + p.passing), p.player_id))
        pp_d = sorted(defense, key=lambda p: (-(p.passing + p.shooting), p.player_id))
        pk_f = sorted(forwards, key=lambda p: (-(p.defense + p.discipline), p.player_id))
        pk_d = sorted(defense, key=lambda p: (-(p.defense + p.discipline), p.player_id))
        for i, unit in enumerate(PP_UNITS):
            lines[unit] = _special_unit(self.healthy_skaters, unit, pp_f, pp_d, 3, 2, i)
        for i, unit in enumerate(PK_UNITS):
            lines[unit] = _special_unit(self.healthy_skaters, unit, pk_f, pk_d, 2, 2, i)
        return lines


def _fill_slots(players, slots, size):
    assigned = {slot: [p.player_id for p in players if p.line == slot][:size] for slot in slots}
    used = {pid for ids in assigned.values() for pid in ids}
    pool = [p for p in sorted(players, key=lambda p: (-p.overall, p.player_id)) if p.player_id not in used]
    for slot in slots:
        while len(assigned[slot]) < size and pool:
            assigned[slot].append(pool.pop(0).player_id)
    # Thin rosters reuse the top players so every slot can be dressed.
    ranked = [p.player_id for p in sorted(players, key=lambda p: (-p.overall, p.player_id))]
    for slot in slots:
        for pid in ranked:
            if len(assigned[slot]) >= size:
                break
            if pid not in assigned[slot]:
                assigned[slot].append(pid)
    return assigned


def _special_unit(skaters, unit, ranked_f, ranked_d, n_f, n_d, index):
    tagged = [p for p in skaters if unit in p.st_roles]
    if tagged:
        return [p.player_id for p in tagged]
    start_f, start_d = index * n_f, index * n_d
    chosen_f = ranked_f[start_f:start_f + n_f] or ranked_f[:n_f]
    chosen_d = ranked_d[start_d:start_d + n_d] or ranked_d[:n_d]
    return [p.player_id for p in chosen_f + chosen_d]
