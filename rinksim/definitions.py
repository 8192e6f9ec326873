from enum import Enum


class Position(str, Enum):
    CENTER = "C"
    LEFT_WING = "LW"
    RIGHT_WING = "RW"
    LEFT_DEFENSE = "LD"
    RIGHT_DEFENSE = "RD"
    GOALIE = "G"

    @property
    def is_forward(self):
        return self in (Position.CENTER, Position.LEFT_WING, Position.RIGHT_WING)

    @property
    def is_defense(self):
        return self in (Position.LEFT_DEFENSE, Position.RIGHT_DEFENSE)


class EventType(str, Enum):
    GOAL = "goal"
    ASSIST = "assist"
    SHOT = "shot"
    MISSED_SHOT = "missed_shot"
    BLOCKED_SHOT = "blocked_shot"
    SAVE = "save"
    PENALTY = "penalty"
    FACEOFF = "faceoff"
    HIT = "hit"
    GIVEAWAY = "giveaway"
    TAKEAWAY = "takeaway"
    PERIOD_START = "period_start"
    PERIOD_END = "period_end"
    GAME_START = "game_start"
    GAME_END = "game_end"
    # Bookkeeping events that let a consumer replay on-ice state.
    LINE_CHANGE = "line_change"
    PENALTY_END = "penalty_end"
    SHOOTOUT_ATTEMPT = "shootout_attempt"


class PenaltyType(str, Enum):
    MINOR = "minor"
    DOUBLE_MINOR = "double_minor"
    MAJOR = "major"
    MISCONDUCT = "misconduct"


PENALTY_DURATIONS = {
    PenaltyType.MINOR: 120,
    PenaltyType.DOUBLE_MINOR: 240,
    PenaltyType.MAJOR: 300,
    PenaltyType.MISCONDUCT: 600,
}

PENALTY_MINUTES = {
    PenaltyType.MINOR: 2,
    PenaltyType.DOUBLE_MINOR: 4,
    PenaltyType.MAJOR: 5,
    PenaltyType.MISCONDUCT: 10,
}

INFRACTIONS = {
    PenaltyType.MINOR: ["hooking", "tripping", "holding", "interference", "slashing", "high-sticking", "roughing", "delay of game"],
    PenaltyType.DOUBLE_MINOR: ["high-sticking", "roughing", "spearing"],
    PenaltyType.MAJOR: ["boarding", "charging", "cross-checking", "elbowing"],
    PenaltyType.MISCONDUCT: ["unsportsmanlike conduct", "abuse of officials"],
}


class GamePhase(str, Enum):
    PRE_GAME = "pre_game"
    PERIOD = "period"
    INTERMISSION = "intermission"
    OVERTIME = "overtime"
    SHOOTOUT = "shootout"
    FINAL = "final"


class Situation(str, Enum):
    """Manpower situation from one team's point of view."""
    EVEN_STRENGTH = "ES"
    POWER_PLAY = "PP"
    PENALTY_KILL = "PK"


class OvertimeFormat(str, Enum):
    REGULAR_SEASON = "regular_season"
    PLAYOFF = "playoff"


class Decision(str, Enum):
    REGULATION = "REG"
    OVERTIME = "OT"
    SHOOTOUT = "SO"


class SimulationMode(str, Enum):
    INSTANT = "instant"
    REAL_TIME = "real_time"


class Zone(str, Enum):
    OFFENSIVE = "offensive"
    NEUTRAL = "neutral"
    DEFENSIVE = "defensive"


HOME, AWAY = "home", "away"
TEAMS = (HOME, AWAY)


def other_team(team):
    return AWAY if team == HOME else HOME


FORWARD_LINES = ["F1", "F2", "F3", "F4"]
DEFENSE_PAIRS = ["D1", "D2", "D3"]
PP_UNITS = ["PP1", "PP2"]
PK_UNITS = ["PK1", "PK2"]

# Forwards / defensemen dressed for a given number of skaters on the ice.
UNIT_SHAPES = {
    3: (2, 1),
    4: (2, 2),
    5: (3, 2),
    6: (4, 2),
}

MIN_SKATERS, MAX_SKATERS = 3, 6
