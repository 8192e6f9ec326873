"""rinksim: tick-based Monte Carlo hockey game simulation."""
from .boxscore import Boxscore, build_boxscore
from .definitions import AWAY, HOME, EventType, GamePhase, OvertimeFormat, PenaltyType, Position, SimulationMode
from .errors import ConfigurationError, InvariantViolation, SimulationCancelled, SimulationError
from .events import EVENT_SCHEMA_VERSION, GameEvent, GameResult
from .profiles import CoachProfile, GoalieProfile, SkaterProfile, TeamRoster
from .simulation_constants import SimulationConfig
from .simulation_engine import GameSimulator, replay, run_multiple_simulations, simulate_game
from .strategy import TeamStrategy

__version__ = "0.1.0"
