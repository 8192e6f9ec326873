class SimulationError(Exception):
    """Base class for every error raised by the game engine."""


class ConfigurationError(SimulationError):
    """Invalid or incomplete input: roster, ratings, strategy or tuning config."""


class InvariantViolation(SimulationError):
    """
    The engine reached an impossible state.

    Carries a snapshot of the game state at the moment of detection so the
    failing game can be diagnosed; the simulation is abandoned.
    """

    def __init__(self, message, state_snapshot=None):
        super().__init__(message)
        self.state_snapshot = state_snapshot or {}

    def __str__(self):
        base = super().__str__()
        if not self.state_snapshot:
            return base
        return (
            f"{base} (period={self.state_snapshot.get('period')}, "
            f"clock={self.state_snapshot.get('clock')}, "
            f"strength={self.state_snapshot.get('strength')})"
        )


class SimulationCancelled(SimulationError):
    """The caller abandoned an in-progress game."""
