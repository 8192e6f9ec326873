# rinksim/events.py
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

from .definitions import HOME, EventType, Zone

# Bumped whenever an event field or detail key changes meaning.
EVENT_SCHEMA_VERSION = "1.0"


@dataclass(frozen=True)
class GameEvent:
    """
    One thing that happened in a game.

    `primary` is the acting player (shooter, scorer, penalized player,
    faceoff winner, hitter), `secondary` the player acted on or assisting
    (goalie, blocker, faceoff loser, player hit, primary assist) and
    `tertiary` the second assist. The goalie beaten on a goal is in
    `detail['goalie']`.
    """
    sequence: int
    period: int
    time_remaining: float
    elapsed_seconds: float
    event_type: EventType
    team: Optional[str] = None
    primary: Optional[int] = None
    secondary: Optional[int] = None
    tertiary: Optional[int] = None
    strength: Tuple[int, int] = (5, 5)
    situation: Tuple[str, str] = ("ES", "ES")
    zone: Zone = Zone.NEUTRAL
    detail: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, 'event_type', EventType(self.event_type))
        object.__setattr__(self, 'zone', Zone(self.zone))
        object.__setattr__(self, 'strength', tuple(self.strength))
        object.__setattr__(self, 'situation', tuple(self.situation))
        object.__setattr__(self, 'detail', MappingProxyType(dict(self.detail)))

    def situation_for(self, team) -> str:
        """Manpower label (ES/PP/PK) from `team`'s point of view."""
        return self.situation[0] if team == HOME else self.situation[1]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'sequence': self.sequence,
            'period': self.period,
            'time_remaining': self.time_remaining,
            'elapsed_seconds': self.elapsed_seconds,
            'event_type': self.event_type.value,
            'team': self.team,
            'primary': self.primary,
            'secondary': self.secondary,
            'tertiary': self.tertiary,
            'home_skaters': self.strength[0],
            'away_skaters': self.strength[1],
            'home_situation': self.situation[0],
            'away_situation': self.situation[1],
            'zone': self.zone.value,
            'detail': dict(self.detail),
        }

    @classmethod
    def from_dict(cls, data) -> "GameEvent":
        return cls(
            sequence=data['sequence'],
            period=data['period'],
            time_remaining=data['time_remaining'],
            elapsed_seconds=data['elapsed_seconds'],
            event_type=data['event_type'],
            team=data.get('team'),
            primary=data.get('primary'),
            secondary=data.get('secondary'),
            tertiary=data.get('tertiary'),
            strength=(data['home_skaters'], data['away_skaters']),
            situation=(data['home_situation'], data['away_situation']),
            zone=data.get('zone', Zone.NEUTRAL.value),
            detail=data.get('detail') or {},
        )


@dataclass(frozen=True)
class GameResult:
    events: Tuple[GameEvent, ...]
    final_state: Mapping[str, Any]
    boxscore: Any
    seed: Optional[int]
    schema_version: str = EVENT_SCHEMA_VERSION

    def __post_init__(self):
        object.__setattr__(self, 'events', tuple(self.events))
        object.__setattr__(self, 'final_state', MappingProxyType(dict(self.final_state)))

    @property
    def score(self) -> Dict[str, int]:
        return dict(self.final_state['score'])

    @property
    def decision(self) -> Dict[str, Any]:
        return dict(self.final_state['decision'] or {})

    @property
    def winner(self) -> Optional[str]:
        return self.decision.get('winner')

    def events_of(self, *event_types):
        wanted = {EventType(t) for t in event_types}
        return [e for e in self.events if e.event_type in wanted]
