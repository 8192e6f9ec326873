# rinksim/game_state.py
"""
Authoritative mutable state for one simulated game.

Only the event engine mutates a GameState. Every mutation that can break a
rule of the game goes through a method here so the invariants are checked
in one place: skaters per side stay within [3, 6], the clock never goes
negative, the score never decreases and the game is decided exactly once.
"""
from dataclasses import asdict, dataclass
from typing import Dict, List, Optional

from .definitions import (
    AWAY,
    HOME,
    MAX_SKATERS,
    MIN_SKATERS,
    TEAMS,
    Decision,
    GamePhase,
    OvertimeFormat,
    PenaltyType,
    Situation,
    Zone,
    other_team,
)
from .errors import InvariantViolation

_TRANSITIONS = {
    GamePhase.PRE_GAME: {GamePhase.PERIOD},
    GamePhase.PERIOD: {GamePhase.INTERMISSION, GamePhase.FINAL},
    GamePhase.INTERMISSION: {GamePhase.PERIOD, GamePhase.OVERTIME, GamePhase.SHOOTOUT},
    GamePhase.OVERTIME: {GamePhase.INTERMISSION, GamePhase.FINAL},
    GamePhase.SHOOTOUT: {GamePhase.FINAL},
    GamePhase.FINAL: set(),
}


@dataclass
class ActivePenalty:
    penalty_id: int
    team: str
    player_id: int
    penalty_type: PenaltyType
    infraction: str
    duration: int
    remaining: float
    affects_strength: bool
    running: bool = False


class FatigueTracker:
    """
    Game-local fatigue per skater.

    Levels are piecewise linear in game time, so they are only materialized
    when a player changes between ice and bench or when someone asks.
    On the ice a level climbs at a rate set by the player's fatigue rating;
    on the bench it recovers, but never below a floor that grows with
    cumulative ice time.
    """

    def __init__(self, fatigue_ratings: Dict[int, int], params):
        self.params = params
        self._gain = {}
        self._floor_scale = {}
        for pid, rating in fatigue_ratings.items():
            norm = rating / 100.0
            self._gain[pid] = 1.0 / (params['on_ice_base_seconds'] + params['on_ice_rating_seconds'] * norm)
            self._floor_scale[pid] = 1.0 / (params['cumulative_base_seconds'] + params['cumulative_rating_seconds'] * norm)
        self._recovery = 1.0 / params['bench_recovery_seconds']
        # pid -> [level at `since`, since, on_ice, toi before `since`]
        self._state = {pid: [0.0, 0.0, False, 0.0] for pid in fatigue_ratings}

    def level(self, pid, now):
        entry = self._state.get(pid)
        if entry is None:
            return 0.0
        level, since, on_ice, toi = entry
        if on_ice:
            return level + self._gain[pid] * (now - since)
        return max(toi * self._floor_scale[pid], level - self._recovery * (now - since))

    def time_on_ice(self, pid, now):
        entry = self._state.get(pid)
        if entry is None:
            return 0.0
        level, since, on_ice, toi = entry
        return toi + (now - since if on_ice else 0.0)

    def go_on(self, pid, now):
        entry = self._state.get(pid)
        if entry is None or entry[2]:
            return
        self._state[pid] = [self.level(pid, now), now, True, entry[3]]

    def go_off(self, pid, now):
        entry = self._state.get(pid)
        if entry is None or not entry[2]:
            return
        level = self.level(pid, now)
        self._state[pid] = [level, now, False, entry[3] + (now - entry[1])]

    def intermission(self, now):
        """Everyone heads to the room; recovery takes them to their floor."""
        for pid in self._state:
            self.go_off(pid, now)
            toi = self._state[pid][3]
            self._state[pid] = [toi * self._floor_scale[pid], now, False, toi]

    def levels(self, pids, now):
        return {pid: self.level(pid, now) for pid in pids}


class GameState:
    def __init__(self, config, home_roster, away_roster):
        self.config = config
        self.rosters = {HOME: home_roster, AWAY: away_roster}
        self.phase = GamePhase.PRE_GAME
        self.period = 0
        self.clock = float(config.period_length)
        self.elapsed = 0.0
        self.score = {HOME: 0, AWAY: 0}
        self.shootout_goals = {HOME: 0, AWAY: 0}
        self.penalties: List[ActivePenalty] = []
        self._penalty_seq = 0
        self.possession: Optional[str] = None
        self.puck_carrier: Optional[int] = None
        self.zone = Zone.NEUTRAL
        self.on_ice: Dict[str, List[int]] = {HOME: [], AWAY: []}
        self.goalie_in_net = {team: self.rosters[team].starting_goalie.player_id for team in TEAMS}
        self.goalie_pulled = {HOME: False, AWAY: False}
        self.shift_time = {HOME: 0.0, AWAY: 0.0}
        self.decision: Optional[Dict] = None
        self.revision = 0
        skater_fatigue = {
            p.player_id: p.fatigue for roster in (home_roster, away_roster) for p in roster.skaters
        }
        self.fatigue = FatigueTracker(skater_fatigue, config.params['fatigue'])

    # --- Phase machine ---

    def transition(self, phase: GamePhase):
        if phase not in _TRANSITIONS[self.phase]:
            raise InvariantViolation(f"Illegal phase transition {self.phase.value} -> {phase.value}", self.snapshot())
        self.phase = phase
        self.revision += 1

    def start_period(self):
        self.period += 1
        overtime = self.period > self.config.regulation_periods
        self.transition(GamePhase.OVERTIME if overtime else GamePhase.PERIOD)
        self.clock = float(self.config.period_length_for(self.period))
        self.elapsed = float(self.config.elapsed_before(self.period))
        self.possession, self.puck_carrier, self.zone = None, None, Zone.NEUTRAL
        self.goalie_pulled = {HOME: False, AWAY: False}

    def end_period(self):
        if self.clock > 0 and not self.is_sudden_death_goal():
            raise InvariantViolation("Period ended with time on the clock", self.snapshot())
        for team in TEAMS:
            for pid in self.on_ice[team]:
                self.fatigue.go_off(pid, self.elapsed)
            self.on_ice[team] = []
        self.fatigue.intermission(self.elapsed)
        self.goalie_pulled = {HOME: False, AWAY: False}
        self.revision += 1

    def is_sudden_death_goal(self):
        return self.in_overtime and self.score[HOME] != self.score[AWAY]

    def finish(self, winner: Optional[str], method: Optional[Decision]):
        if self.decision is not None:
            raise InvariantViolation("Game decided twice", self.snapshot())
        self.transition(GamePhase.FINAL)
        self.decision = {'winner': winner, 'method': method.value if method else None}

    @property
    def in_overtime(self):
        return self.period > self.config.regulation_periods

    @property
    def three_on_three(self):
        return self.in_overtime and self.config.overtime_format == OvertimeFormat.REGULAR_SEASON

    # --- Clock ---

    def advance_clock(self, seconds):
        if seconds < 0 or seconds > self.clock:
            raise InvariantViolation(f"Clock step of {seconds}s with {self.clock}s remaining", self.snapshot())
        self.clock -= seconds
        self.elapsed += seconds
        for team in TEAMS:
            self.shift_time[team] += seconds

    # --- Score ---

    def add_goal(self, team):
        before = dict(self.score)
        self.score[team] += 1
        if any(self.score[t] < before[t] for t in TEAMS):
            raise InvariantViolation("Score decreased", self.snapshot())
        self.revision += 1

    def leader(self):
        if self.score[HOME] == self.score[AWAY]:
            return None
        return HOME if self.score[HOME] > self.score[AWAY] else AWAY

    def goal_differential(self, team):
        return self.score[team] - self.score[other_team(team)]

    # --- Strength state ---

    def running_strength_penalties(self, team):
        return sum(1 for p in self.penalties if p.team == team and p.affects_strength and p.running)

    def _skaters_for(self, own, opp):
        if self.three_on_three:
            skaters = self.config.params['overtime']['skaters'] + max(0, opp - own)
            return min(skaters, 5)
        return max(MIN_SKATERS, 5 - own)

    def base_skaters(self, team):
        """Skaters dictated by penalties alone (no extra attacker)."""
        return self._skaters_for(self.running_strength_penalties(team), self.running_strength_penalties(other_team(team)))

    def skaters(self, team):
        return self.base_skaters(team) + (1 if self.goalie_pulled[team] else 0)

    def strength(self):
        return (self.skaters(HOME), self.skaters(AWAY))

    def situation(self, team):
        own, opp = self.base_skaters(team), self.base_skaters(other_team(team))
        if own > opp:
            return Situation.POWER_PLAY
        if own < opp:
            return Situation.PENALTY_KILL
        return Situation.EVEN_STRENGTH

    def situations(self):
        return (self.situation(HOME).value, self.situation(AWAY).value)

    # --- Penalty box ---

    def add_penalty(self, team, player_id, penalty_type, infraction, duration, affects_strength):
        self._penalty_seq += 1
        penalty = ActivePenalty(
            penalty_id=self._penalty_seq,
            team=team,
            player_id=player_id,
            penalty_type=penalty_type,
            infraction=infraction,
            duration=duration,
            remaining=float(duration),
            affects_strength=affects_strength,
        )
        max_running = self.config.params['penalties']['max_running_per_team']
        penalty.running = not affects_strength or self.running_strength_penalties(team) < max_running
        self.penalties.append(penalty)
        self.revision += 1
        return penalty

    def tick_penalties(self, seconds):
        """Runs penalty clocks. Returns (expired, started) penalties."""
        expired = []
        for p in self.penalties:
            if p.running:
                p.remaining -= seconds
                if p.remaining <= 1e-9:
                    expired.append(p)
        if not expired:
            return [], []
        for p in expired:
            self.penalties.remove(p)
        started = self._start_queued()
        self.revision += 1
        return expired, started

    def _start_queued(self):
        started = []
        max_running = self.config.params['penalties']['max_running_per_team']
        for team in TEAMS:
            for p in self.penalties:
                if p.team == team and not p.running and self.running_strength_penalties(team) < max_running:
                    p.running = True
                    started.append(p)
        return started

    def release_penalty_on_goal(self, shorthanded_team):
        """
        A power-play goal frees the shorthanded team's running penalty with
        the least time left. A double minor only loses its current
        two-minute half. Returns (penalty, released, started).
        """
        releasable = set(self.config.params['penalties']['released_by_goal'])
        candidates = [
            p for p in self.penalties
            if p.team == shorthanded_team and p.affects_strength and p.running and p.penalty_type.value in releasable
        ]
        if not candidates:
            return None, False, []
        penalty = min(candidates, key=lambda p: (p.remaining, p.penalty_id))
        self.revision += 1
        if penalty.penalty_type == PenaltyType.DOUBLE_MINOR and penalty.remaining > 120:
            penalty.remaining = 120.0
            return penalty, False, []
        self.penalties.remove(penalty)
        return penalty, True, self._start_queued()

    def players_in_box(self, team):
        return {p.player_id for p in self.penalties if p.team == team}

    def bench_available(self, team):
        """Healthy skaters not serving a penalty."""
        in_box = self.players_in_box(team)
        return sum(1 for p in self.rosters[team].healthy_skaters if p.player_id not in in_box)

    def can_sit(self, team, affects_strength=True):
        """
        Whether `team` can send one more skater to the box with both benches
        still able to dress the resulting strength. Queued, misconduct and
        coincidental penalties take a player away without lowering it.
        """
        max_running = self.config.params['penalties']['max_running_per_team']
        own = self.running_strength_penalties(team)
        opp = self.running_strength_penalties(other_team(team))
        if affects_strength and own < max_running:
            own += 1
        needed = {
            team: self._skaters_for(own, opp),
            other_team(team): self._skaters_for(opp, own),
        }
        for t, n in needed.items():
            available = self.bench_available(t) - (1 if t == team else 0)
            if available < n + (1 if self.goalie_pulled[t] else 0):
                return False
        return True

    # --- Lines ---

    def set_on_ice(self, team, player_ids):
        for pid in self.on_ice[team]:
            if pid not in player_ids:
                self.fatigue.go_off(pid, self.elapsed)
        for pid in player_ids:
            self.fatigue.go_on(pid, self.elapsed)
        self.on_ice[team] = list(player_ids)
        self.shift_time[team] = 0.0
        self.revision += 1

    def pull_goalie(self, team):
        self.goalie_pulled[team] = True
        self.revision += 1

    def return_goalie(self, team):
        self.goalie_pulled[team] = False
        self.revision += 1

    def active_goalie(self, team):
        return None if self.goalie_pulled[team] else self.goalie_in_net[team]

    # --- Invariants ---

    def check_invariants(self):
        for team in TEAMS:
            skaters = self.skaters(team)
            if not MIN_SKATERS <= skaters <= MAX_SKATERS:
                raise InvariantViolation(f"{team} has {skaters} skaters on the ice", self.snapshot())
            if self.phase in (GamePhase.PERIOD, GamePhase.OVERTIME) and self.on_ice[team] and len(self.on_ice[team]) != skaters:
                raise InvariantViolation(
                    f"{team} dressed {len(self.on_ice[team])} skaters for a {skaters}-skater strength state",
                    self.snapshot(),
                )
        if self.clock < 0:
            raise InvariantViolation("Negative clock", self.snapshot())

    def snapshot(self):
        return {
            'phase': self.phase.value,
            'period': self.period,
            'clock': self.clock,
            'elapsed': self.elapsed,
            'score': dict(self.score),
            'shootout_goals': dict(self.shootout_goals),
            'strength': list(self.strength()) if self.phase != GamePhase.PRE_GAME else [5, 5],
            'situation': list(self.situations()),
            'possession': self.possession,
            'zone': self.zone.value,
            'on_ice': {team: list(ids) for team, ids in self.on_ice.items()},
            'goalie_in_net': dict(self.goalie_in_net),
            'goalie_pulled': dict(self.goalie_pulled),
            'penalties': [
                {**asdict(p), 'penalty_type': p.penalty_type.value} for p in self.penalties
            ],
            'fatigue': {
                pid: round(level, 4)
                for team in TEAMS
                for pid, level in self.fatigue.levels([p.player_id for p in self.rosters[team].skaters], self.elapsed).items()
            },
            'decision': dict(self.decision) if self.decision else None,
        }
