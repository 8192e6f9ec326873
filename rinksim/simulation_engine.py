# rinksim/simulation_engine.py
import logging
import multiprocessing
import time
from collections import deque, namedtuple

import numpy as np
import pandas as pd

from .boxscore import build_boxscore, finalize_player_stats
from .calculations import calibration_report, summarize_games
from .definitions import (
    AWAY,
    DEFENSE_PAIRS,
    FORWARD_LINES,
    HOME,
    INFRACTIONS,
    PENALTY_DURATIONS,
    PENALTY_MINUTES,
    PK_UNITS,
    PP_UNITS,
    TEAMS,
    UNIT_SHAPES,
    Decision,
    EventType,
    GamePhase,
    OvertimeFormat,
    PenaltyType,
    SimulationMode,
    Situation,
    Zone,
    other_team,
)
from .errors import ConfigurationError, InvariantViolation, SimulationCancelled
from .events import EVENT_SCHEMA_VERSION, GameEvent, GameResult
from .game_state import GameState
from .profiles import CoachProfile, TeamRoster
from .ratings import RatingTranslator
from .simulation_constants import SimulationConfig
from .special_situations import GoaliePullPolicy, Shootout, SituationModel
from .strategy import ScoreContext, StrategyResolver, TeamStrategy

logger = logging.getLogger(__name__)

# Priority order: the first category drawn in a tick is the one that happens.
CATEGORIES = (
    'penalty_by_defense',
    'penalty_by_offense',
    'fight',
    'shot_attempt',
    'hit',
    'takeaway',
    'giveaway',
    'stoppage',
)

ProbabilityTable = namedtuple('ProbabilityTable', ['key', 'probabilities', 'situational', 'modifiers'])


def _as_roster(team_data, default_id):
    """Accepts a TeamRoster or a {'lineup': DataFrame, 'coach': {...}} team dict."""
    if isinstance(team_data, TeamRoster):
        return team_data
    if isinstance(team_data, dict) and 'lineup' in team_data:
        coach = team_data.get('coach') or {}
        if isinstance(coach, dict):
            coach = CoachProfile(**coach)
        return TeamRoster.from_dataframe(
            team_data.get('team_id', default_id),
            team_data.get('name', default_id),
            team_data['lineup'],
            coach=coach,
        )
    raise ConfigurationError(f"Unsupported team input of type {type(team_data).__name__}")


def _as_strategy(strategy):
    if strategy is None:
        return TeamStrategy()
    if isinstance(strategy, TeamStrategy):
        return strategy
    if isinstance(strategy, dict):
        return TeamStrategy.from_dict(strategy)
    raise ConfigurationError(f"Unsupported strategy input of type {type(strategy).__name__}")


class GameSimulator:
    """
    Tick-based Monte Carlo simulation of one game.

    Each tick draws a single uniform vector against the current probability
    table (one entry per event category plus one line-change draw per team)
    and applies the highest-priority category that occurred. All randomness
    comes from one numpy Generator seeded at construction, so the same
    inputs always produce the same event stream.
    """

    def __init__(self, home_team, away_team, home_strategy=None, away_strategy=None, seed=None,
                 config=None, should_cancel=None):
        self.config = config or SimulationConfig()
        self.rosters = {HOME: _as_roster(home_team, HOME), AWAY: _as_roster(away_team, AWAY)}
        for roster in self.rosters.values():
            roster.validate()
        shared = set(self.rosters[HOME].players) & set(self.rosters[AWAY].players)
        if shared:
            raise ConfigurationError(f"Player ids dressed for both teams: {sorted(shared)[:5]}")
        self.strategies = {HOME: _as_strategy(home_strategy), AWAY: _as_strategy(away_strategy)}
        self.seed = seed
        self.rng = np.random.default_rng(seed)
        self.should_cancel = should_cancel

        self.params = self.config.params
        self.translator = RatingTranslator(self.params)
        self.resolver = StrategyResolver(self.config.strategy_effects, self.params)
        self.situations = SituationModel(self.params, self.translator)
        self.goalie_policy = GoaliePullPolicy(self.params, self.resolver)
        self.state = GameState(self.config, self.rosters[HOME], self.rosters[AWAY])

        self.events = []
        self.recent_handlers = deque(maxlen=self.params['general_logic']['recent_handlers'])
        self._table = None
        self._ticks = 0

    # --- Lookups ---

    def _player(self, team, player_id):
        return self.rosters[team].players[player_id]

    def _skaters_on_ice(self, team):
        return [self._player(team, pid) for pid in self.state.on_ice[team]]

    def _weighted_choice(self, items, weights):
        w = np.asarray(weights, dtype=float)
        total = w.sum()
        if total <= 0:
            return items[int(self.rng.integers(len(items)))]
        return items[int(self.rng.choice(len(items), p=w / total))]

    def _zone_for(self, team):
        state = self.state
        if team is None or state.possession is None or team == state.possession:
            return state.zone
        return {Zone.OFFENSIVE: Zone.DEFENSIVE, Zone.DEFENSIVE: Zone.OFFENSIVE}.get(state.zone, state.zone)

    def _emit(self, event_type, team=None, primary=None, secondary=None, tertiary=None, **detail):
        """Appends an event carrying the state in force right after it was applied."""
        state = self.state
        event = GameEvent(
            sequence=len(self.events) + 1,
            period=state.period,
            time_remaining=float(state.clock),
            elapsed_seconds=float(state.elapsed),
            event_type=event_type,
            team=team,
            primary=primary,
            secondary=secondary,
            tertiary=tertiary,
            strength=state.strength(),
            situation=state.situations(),
            zone=self._zone_for(team),
            detail=detail,
        )
        self.events.append(event)
        return event

    # --- Probability table ---

    def _modifiers(self):
        state = self.state
        modifiers = {}
        for team in TEAMS:
            context = ScoreContext(
                goal_differential=state.goal_differential(team),
                period=state.period,
                seconds_remaining=int(state.clock),
                regulation_periods=self.config.regulation_periods,
            )
            modifiers[team] = self.resolver.resolve(self.strategies[team], self.rosters[team].coach, context)
        return modifiers

    def _unit_fatigue(self, team):
        state = self.state
        levels = state.fatigue.levels(state.on_ice[team], state.elapsed)
        if not levels:
            return 1.0
        return float(np.mean([self.translator.fatigue_multiplier(level) for level in levels.values()]))

    def _probability_table(self):
        state = self.state
        refresh = self.params['general_logic']['table_refresh_ticks']
        key = (state.revision, state.possession, self._ticks // refresh)
        if self._table is not None and self._table.key == key:
            return self._table

        offense = state.possession
        defense = other_team(offense)
        modifiers = self._modifiers()
        situational = self.situations.multipliers(state, offense, modifiers)
        if state.in_overtime:
            situational['fight'] = 0.0
        attackers, defenders = self._skaters_on_ice(offense), self._skaters_on_ice(defense)
        rates = self.config.hazard_rates
        t = self.translator
        per_60 = np.array([
            rates['penalty_by_defense'] * t.penalty_rate_modifier(defenders) * modifiers[defense].penalty_rate * situational['penalty'],
            rates['penalty_by_offense'] * t.penalty_rate_modifier(attackers) * modifiers[offense].penalty_rate * situational['penalty'],
            rates['fight'] * situational['fight'],
            rates['shot_attempt'] * t.shot_attempt_modifier(attackers, defenders, self._unit_fatigue(offense))
            * modifiers[offense].shot_rate * modifiers[defense].opponent_shot_rate * situational['shot_rate'],
            rates['hit'] * t.hit_rate_modifier(defenders) * modifiers[defense].hit_rate * situational['hit'],
            rates['takeaway'] * t.takeaway_rate_modifier(defenders, attackers) * modifiers[defense].takeaway_rate,
            rates['giveaway'] * t.giveaway_rate_modifier(attackers) * modifiers[offense].giveaway_rate * situational['giveaway'],
            rates['stoppage'],
        ])
        probabilities = np.clip(per_60 / 3600.0 * self.config.tick_seconds, 0.0, 1.0)
        self._table = ProbabilityTable(key, probabilities, situational, modifiers)
        return self._table

    def _line_change_probability(self, team):
        gl = self.params['general_logic']
        rate = self.config.hazard_rates['line_change'] * (1 + self.state.shift_time[team] / gl['shift_fatigue_seconds'])
        return min(1.0, rate / 3600.0 * self.config.tick_seconds)

    # --- Lines ---

    def _select_unit(self, team):
        state = self.state
        roster = self.rosters[team]
        coach = roster.coach
        skaters = state.skaters(team)
        n_forwards, n_defense = UNIT_SHAPES[skaters]
        in_box = state.players_in_box(team)
        situation = state.situation(team)

        if situation == Situation.POWER_PLAY and not state.three_on_three:
            unit = self._weighted_choice(PP_UNITS, [coach.pp_unit_shares.get(u, 0.0) for u in PP_UNITS])
            preferred = roster.lines[unit]
        elif situation == Situation.PENALTY_KILL and not state.three_on_three:
            unit = self._weighted_choice(PK_UNITS, [coach.pk_unit_shares.get(u, 0.0) for u in PK_UNITS])
            preferred = roster.lines[unit]
        else:
            forwards = coach.toi_profile.get('forwards', {})
            defense = coach.toi_profile.get('defense', {})
            f_line = self._weighted_choice(FORWARD_LINES, [forwards.get(l, 0.25) for l in FORWARD_LINES])
            d_pair = self._weighted_choice(DEFENSE_PAIRS, [defense.get(l, 0.33) for l in DEFENSE_PAIRS])
            preferred = roster.lines[f_line] + roster.lines[d_pair]

        available = [p for p in roster.healthy_skaters if p.player_id not in in_box]
        levels = state.fatigue.levels([p.player_id for p in available], state.elapsed)
        by_freshness = sorted(available, key=lambda p: (round(levels[p.player_id], 3), -p.overall, p.player_id))
        preferred_set = set(preferred)
        ordered = [roster.players[pid] for pid in preferred if pid not in in_box and pid in roster.players]
        ordered += [p for p in by_freshness if p.player_id not in preferred_set]

        chosen_f = [p for p in ordered if p.position.is_forward][:n_forwards]
        chosen_d = [p for p in ordered if p.position.is_defense][:n_defense]
        chosen = chosen_f + chosen_d
        # Out of one position: dress whoever is freshest.
        for p in ordered:
            if len(chosen) >= skaters:
                break
            if p not in chosen:
                chosen.append(p)
        if len(chosen) < skaters:
            raise InvariantViolation(
                f"{roster.name} cannot dress {skaters} skaters with {len(available)} available", state.snapshot()
            )
        return [p.player_id for p in chosen]

    def _change_lines(self, team, reason):
        state = self.state
        new_unit = self._select_unit(team)
        old_unit = list(state.on_ice[team])
        state.set_on_ice(team, new_unit)
        if state.puck_carrier is not None and state.possession == team and state.puck_carrier not in new_unit:
            state.puck_carrier = None
        if set(old_unit) == set(new_unit) and reason == 'on_the_fly':
            return
        self._emit(
            EventType.LINE_CHANGE,
            team=team,
            on_ice=list(new_unit),
            on=[pid for pid in new_unit if pid not in old_unit],
            off=[pid for pid in old_unit if pid not in new_unit],
            goalie=state.active_goalie(team),
            reason=reason,
        )

    def _dress_if_needed(self):
        state = self.state
        for team in TEAMS:
            on_ice = state.on_ice[team]
            if len(on_ice) != state.skaters(team) or state.players_in_box(team) & set(on_ice):
                self._change_lines(team, 'strength_change')

    def _manage_goalies(self):
        state = self.state
        for team in TEAMS:
            wants = self.goalie_policy.wants_extra_attacker(state, team, self.strategies[team])
            if (wants and not state.goalie_pulled[team] and state.possession == team
                    and state.bench_available(team) > state.skaters(team)):
                state.pull_goalie(team)
                self._change_lines(team, 'extra_attacker')
            elif not wants and state.goalie_pulled[team]:
                state.return_goalie(team)
                self._change_lines(team, 'goalie_returns')

    # --- Event resolution ---

    def _center(self, team):
        skaters = self._skaters_on_ice(team)
        centers = [p for p in skaters if p.position.value == 'C']
        if centers:
            return centers[0]
        forwards = [p for p in skaters if p.position.is_forward] or skaters
        return max(forwards, key=lambda p: (p.puck_control, -p.player_id))

    def _faceoff(self, attacking_team=None, reason='stoppage'):
        state = self.state
        change_after = self.params['general_logic']['faceoff_change_seconds']
        for team in TEAMS:
            if not state.on_ice[team] or state.shift_time[team] >= change_after:
                self._change_lines(team, 'faceoff')
        self._dress_if_needed()

        home_c, away_c = self._center(HOME), self._center(AWAY)
        winner = HOME if self.rng.random() < self.translator.faceoff_win_probability(home_c, away_c) else AWAY
        won, lost = (home_c, away_c) if winner == HOME else (away_c, home_c)
        if attacking_team is None:
            zone = Zone.NEUTRAL
        else:
            zone = Zone.OFFENSIVE if winner == attacking_team else Zone.DEFENSIVE
        state.possession, state.puck_carrier, state.zone = winner, won.player_id, zone
        self.recent_handlers.clear()
        self.recent_handlers.append(won.player_id)
        self._emit(EventType.FACEOFF, team=winner, primary=won.player_id, secondary=lost.player_id, reason=reason)

    def _turnover(self, gaining_team, player_id=None):
        """Possession flips. Returns True if a shorthanded rush then stopped play."""
        state = self.state
        if player_id is None:
            defenders = self._skaters_on_ice(gaining_team)
            player_id = self._weighted_choice(defenders, self.translator.takeaway_weights(defenders)).player_id
        state.possession, state.puck_carrier, state.zone = gaining_team, player_id, Zone.NEUTRAL
        self.recent_handlers.clear()
        self.recent_handlers.append(player_id)

        table = self._probability_table()
        rush = self.situations.shorthanded_rush_probability(state, gaining_team, table.modifiers)
        if rush > 0 and self.rng.random() < rush:
            return self._resolve_shot(table, rush=True)
        return False

    def _pressure_moment(self):
        state = self.state
        if state.in_overtime:
            return True
        late = self.params['score_effects']['late_game_seconds']
        return (
            state.period == self.config.regulation_periods
            and state.clock <= late
            and abs(state.goal_differential(HOME)) <= 1
        )

    def _resolve_shot(self, table, rush=False):
        state = self.state
        offense = state.possession
        defense = other_team(offense)
        attackers, defenders = self._skaters_on_ice(offense), self._skaters_on_ice(defense)
        sr = self.params['shot_resolution']
        levels = state.fatigue.levels(state.on_ice[offense], state.elapsed)
        shooter = self._weighted_choice(attackers, self.translator.shooter_weights(attackers, levels))
        state.puck_carrier, state.zone = shooter.player_id, Zone.OFFENSIVE

        block = self.translator.block_probability(defenders, table.situational['block'] * table.modifiers[defense].block)
        if self.rng.random() < block:
            blocker = self._weighted_choice(defenders, self.translator.blocker_weights(defenders))
            self._emit(EventType.BLOCKED_SHOT, team=offense, primary=shooter.player_id, secondary=blocker.player_id, rush=rush)
            self.recent_handlers.append(shooter.player_id)
            if self.rng.random() < sr['block_turnover_prob']:
                return self._turnover(defense, blocker.player_id)
            return False

        goalie_id = state.active_goalie(defense)
        multiplier = (
            table.situational['goal']
            * table.modifiers[offense].shot_quality
            * table.modifiers[defense].opponent_shot_quality
        )
        if rush:
            multiplier *= self.situations.rush_goal_multiplier()

        if goalie_id is None:
            if self.rng.random() < self.translator.shot_conversion(shooter, None, multiplier):
                self._emit(EventType.SHOT, team=offense, primary=shooter.player_id, rush=rush, empty_net=True)
                self._score_goal(offense, shooter, None)
                return True
            self._emit(EventType.MISSED_SHOT, team=offense, primary=shooter.player_id, rush=rush, empty_net=True)
            return self._turnover(defense)

        if self.rng.random() < self.translator.miss_probability(shooter):
            self._emit(EventType.MISSED_SHOT, team=offense, primary=shooter.player_id, rush=rush)
            self.recent_handlers.append(shooter.player_id)
            if self.rng.random() < sr['miss_turnover_prob']:
                return self._turnover(defense)
            return False

        goalie = self._player(defense, goalie_id)
        fatigue = self.translator.fatigue_multiplier(levels.get(shooter.player_id, 0.0))
        conversion = self.translator.shot_conversion(shooter, goalie, multiplier, fatigue, self._pressure_moment())
        self._emit(EventType.SHOT, team=offense, primary=shooter.player_id, secondary=goalie_id, rush=rush,
                   goal_probability=round(conversion, 4))
        if self.rng.random() < conversion:
            self._score_goal(offense, shooter, goalie_id)
            return True

        if self.rng.random() < self.translator.rebound_probability(goalie):
            self._emit(EventType.SAVE, team=defense, primary=goalie_id, secondary=shooter.player_id, result='rebound')
            self.recent_handlers.append(shooter.player_id)
            others = [p for p in attackers if p.player_id != shooter.player_id] or attackers
            state.puck_carrier = self._weighted_choice(others, [p.puck_control for p in others]).player_id
            return False
        if self.rng.random() < self.translator.freeze_probability(goalie):
            self._emit(EventType.SAVE, team=defense, primary=goalie_id, secondary=shooter.player_id, result='freeze')
            self._faceoff(attacking_team=offense, reason='freeze')
            return True

        self._emit(EventType.SAVE, team=defense, primary=goalie_id, secondary=shooter.player_id, result='played')
        d_men = [p for p in defenders if p.position.is_defense] or defenders
        receiver = self._weighted_choice(d_men, [p.puck_control for p in d_men])
        state.possession, state.puck_carrier, state.zone = defense, receiver.player_id, Zone.DEFENSIVE
        self.recent_handlers.clear()
        self.recent_handlers.append(receiver.player_id)
        return False

    def _draw_assists(self, teammates, situation):
        sr = self.params['shot_resolution']
        if not teammates:
            return []
        if self.rng.random() >= self.translator.assist_probability(teammates, sr['primary_assist_prob']):
            return []
        recent = set(self.recent_handlers)
        first = self._weighted_choice(teammates, self.translator.assist_weights(teammates, recent))
        assists = [first]
        remaining = [p for p in teammates if p.player_id != first.player_id]
        base = sr['secondary_assist_prob_pp'] if situation == Situation.POWER_PLAY else sr['secondary_assist_prob_es']
        if remaining and self.rng.random() < self.translator.assist_probability(remaining, base):
            assists.append(self._weighted_choice(remaining, self.translator.assist_weights(remaining, recent)))
        return assists

    def _score_goal(self, team, shooter, goalie_id):
        state = self.state
        situation = state.situation(team)
        teammates = [p for p in self._skaters_on_ice(team) if p.player_id != shooter.player_id]
        assists = self._draw_assists(teammates, situation)
        state.add_goal(team)
        ids = [a.player_id for a in assists] + [None, None]
        self._emit(
            EventType.GOAL,
            team=team,
            primary=shooter.player_id,
            secondary=ids[0],
            tertiary=ids[1],
            goalie=goalie_id,
            empty_net=goalie_id is None,
            situation=situation.value,
            score=dict(state.score),
        )
        for number, assister in enumerate(assists, start=1):
            self._emit(EventType.ASSIST, team=team, primary=assister.player_id, secondary=shooter.player_id,
                       assist_number=number)

        if situation == Situation.POWER_PLAY:
            shorthanded = other_team(team)
            penalty, released, _ = state.release_penalty_on_goal(shorthanded)
            if penalty is not None and released:
                self._emit(EventType.PENALTY_END, team=shorthanded, primary=penalty.player_id,
                           penalty_id=penalty.penalty_id, reason='power_play_goal')
        if state.is_sudden_death_goal():
            return
        self._faceoff(reason='goal')

    def impose_penalty(self, team, player_id, penalty_type, infraction=None, drawn_by=None, coincidental=False, **detail):
        """Puts a player in the box and adjusts the strength state."""
        state = self.state
        penalty_type = PenaltyType(penalty_type)
        affects_strength = penalty_type != PenaltyType.MISCONDUCT and not coincidental
        penalty = state.add_penalty(
            team,
            player_id,
            penalty_type,
            infraction or INFRACTIONS[penalty_type][0],
            PENALTY_DURATIONS[penalty_type],
            affects_strength,
        )
        self._emit(
            EventType.PENALTY,
            team=team,
            primary=player_id,
            secondary=drawn_by,
            penalty_id=penalty.penalty_id,
            penalty_type=penalty_type.value,
            infraction=penalty.infraction,
            minutes=PENALTY_MINUTES[penalty_type],
            running=penalty.running,
            affects_strength=affects_strength,
            creates_power_play=affects_strength and state.situation(other_team(team)) == Situation.POWER_PLAY,
            **detail,
        )
        self._dress_if_needed()
        return penalty

    def _resolve_penalty(self, team):
        state = self.state
        skaters = self._skaters_on_ice(team)
        player = self._weighted_choice(skaters, self.translator.penalty_weights(skaters))
        distribution = self.params['penalties']['distribution']
        names = list(distribution)
        penalty_type = PenaltyType(self._weighted_choice(names, [distribution[n] for n in names]))
        if not state.can_sit(team, penalty_type != PenaltyType.MISCONDUCT):
            logger.debug(f"Penalty on {team} waved off: bench too short to serve it")
            return False
        options = INFRACTIONS[penalty_type]
        infraction = options[int(self.rng.integers(len(options)))]
        drawn_by = state.puck_carrier if state.possession != team else None
        self.impose_penalty(team, player.player_id, penalty_type, infraction, drawn_by=drawn_by)
        self._faceoff(attacking_team=other_team(team), reason='penalty')
        return True

    def _resolve_fight(self):
        if not all(self.state.can_sit(team, affects_strength=False) for team in TEAMS):
            return False
        fighters = {}
        for team in TEAMS:
            skaters = self._skaters_on_ice(team)
            fighters[team] = self._weighted_choice(skaters, self.translator.fighter_weights(skaters))
        p_home = self.translator.fight_win_probability(fighters[HOME], fighters[AWAY])
        winner = HOME if self.rng.random() < p_home else AWAY
        for team in TEAMS:
            self.impose_penalty(
                team,
                fighters[team].player_id,
                PenaltyType.MAJOR,
                'fighting',
                drawn_by=fighters[other_team(team)].player_id,
                coincidental=True,
                fight_won=team == winner,
            )
        self._faceoff(reason='fight')
        return True

    def _resolve(self, category, table):
        """Applies one drawn category. Returns True when play stopped."""
        state = self.state
        offense = state.possession
        defense = other_team(offense)
        if category == 'penalty_by_defense':
            return self._resolve_penalty(defense)
        if category == 'penalty_by_offense':
            return self._resolve_penalty(offense)
        if category == 'fight':
            return self._resolve_fight()
        if category == 'shot_attempt':
            return self._resolve_shot(table)
        if category == 'hit':
            defenders, attackers = self._skaters_on_ice(defense), self._skaters_on_ice(offense)
            hitter = self._weighted_choice(defenders, self.translator.hitter_weights(defenders))
            if state.puck_carrier in state.on_ice[offense]:
                target = state.puck_carrier
            else:
                target = attackers[int(self.rng.integers(len(attackers)))].player_id
            self._emit(EventType.HIT, team=defense, primary=hitter.player_id, secondary=target)
            return False
        if category == 'takeaway':
            defenders = self._skaters_on_ice(defense)
            taker = self._weighted_choice(defenders, self.translator.takeaway_weights(defenders))
            victim = state.puck_carrier if state.puck_carrier in state.on_ice[offense] else None
            self._emit(EventType.TAKEAWAY, team=defense, primary=taker.player_id, secondary=victim)
            return self._turnover(defense, taker.player_id)
        if category == 'giveaway':
            attackers = self._skaters_on_ice(offense)
            giver = self._weighted_choice(attackers, self.translator.giveaway_weights(attackers))
            self._emit(EventType.GIVEAWAY, team=offense, primary=giver.player_id)
            return self._turnover(defense)
        if category == 'stoppage':
            attacking = offense if state.zone == Zone.OFFENSIVE else None
            self._faceoff(attacking_team=attacking, reason='stoppage')
            return True
        raise InvariantViolation(f"Unknown event category '{category}'", state.snapshot())

    # --- Game flow ---

    def _check_cancelled(self):
        if self.should_cancel is not None and self.should_cancel():
            raise SimulationCancelled(f"Game cancelled at period {self.state.period}, {self.state.clock:.0f}s remaining")

    def _run_penalty_clocks(self, seconds):
        expired, _ = self.state.tick_penalties(seconds)
        for penalty in expired:
            self._emit(EventType.PENALTY_END, team=penalty.team, primary=penalty.player_id,
                       penalty_id=penalty.penalty_id, reason='expired')
        if expired:
            self._dress_if_needed()

    def step(self):
        """Advances the game by one tick."""
        state = self.state
        self._check_cancelled()
        self._ticks += 1
        self._manage_goalies()
        if state.possession is None:
            self._faceoff(reason='stoppage')

        table = self._probability_table()
        n = len(CATEGORIES)
        draws = self.rng.random(n + len(TEAMS))
        occurred = np.flatnonzero(draws[:n] < table.probabilities)
        play_stopped = False
        if occurred.size:
            play_stopped = self._resolve(CATEGORIES[occurred[0]], table)
        if state.is_sudden_death_goal():
            return
        if not play_stopped:
            for i, team in enumerate(TEAMS):
                if draws[n + i] < self._line_change_probability(team):
                    self._change_lines(team, 'on_the_fly')

        seconds = min(self.config.tick_seconds, state.clock)
        state.advance_clock(seconds)
        self._run_penalty_clocks(seconds)
        state.check_invariants()

    def begin_game(self):
        state = self.state
        rosters = {
            team: {
                'team_id': roster.team_id,
                'name': roster.name,
                'skaters': [
                    {'player_id': p.player_id, 'full_name': p.full_name, 'position': p.position.value}
                    for p in roster.skaters
                ],
                'goalie': {
                    'player_id': roster.starting_goalie.player_id,
                    'full_name': roster.starting_goalie.full_name,
                },
            }
            for team, roster in self.rosters.items()
        }
        self._emit(
            EventType.GAME_START,
            seed=self.seed,
            overtime_format=self.config.overtime_format.value,
            schema_version=EVENT_SCHEMA_VERSION,
            rosters=rosters,
        )
        logger.debug(f"Game start: {self.rosters[AWAY].name} at {self.rosters[HOME].name} (seed={self.seed})")
        return state

    def begin_period(self):
        state = self.state
        state.start_period()
        logger.debug(f"Period {state.period} start ({state.phase.value}), score {state.score[HOME]}-{state.score[AWAY]}")
        self._emit(EventType.PERIOD_START)
        for team in TEAMS:
            self._change_lines(team, 'period_start')
        self._faceoff(reason='period_start')

    def end_period(self):
        state = self.state
        self._emit(EventType.PERIOD_END, score=dict(state.score))
        state.end_period()
        logger.debug(f"Period {state.period} end, score {state.score[HOME]}-{state.score[AWAY]}")

    def play_period(self):
        self.begin_period()
        state = self.state
        while state.clock > 0:
            self.step()
            if state.is_sudden_death_goal():
                break
        self.end_period()

    def _shootout(self):
        state = self.state
        state.transition(GamePhase.SHOOTOUT)
        goalies = {team: self._player(team, state.goalie_in_net[team]) for team in TEAMS}
        shootout = Shootout(self.params, self.translator, self.rosters, goalies)
        winner, _, attempts = shootout.run(self.rng)
        for attempt in attempts:
            state.shootout_goals[attempt.team] += int(attempt.scored)
            self._emit(
                EventType.SHOOTOUT_ATTEMPT,
                team=attempt.team,
                primary=attempt.shooter_id,
                secondary=attempt.goalie_id,
                round=attempt.round,
                scored=attempt.scored,
            )
        # The shootout winner is credited one goal in the final score.
        state.add_goal(winner)
        return winner

    def _finish(self, winner, method):
        state = self.state
        state.finish(winner, method)
        self._emit(
            EventType.GAME_END,
            team=winner,
            score=dict(state.score),
            decision=method.value if method else None,
            shootout_goals=dict(state.shootout_goals),
        )
        logger.info(
            f"Game complete: {self.rosters[AWAY].name} {state.score[AWAY]} at "
            f"{self.rosters[HOME].name} {state.score[HOME]} "
            f"({method.value if method else 'tie'}, {len(self.events)} events)"
        )

    def run(self) -> GameResult:
        state = self.state
        regulation = self.config.regulation_periods
        self.begin_game()
        while True:
            self.play_period()
            leader = state.leader()
            if state.period < regulation:
                state.transition(GamePhase.INTERMISSION)
                continue
            if leader is not None:
                self._finish(leader, Decision.REGULATION if state.period == regulation else Decision.OVERTIME)
                break
            if not self.config.allow_overtime:
                self._finish(None, None)
                break
            state.transition(GamePhase.INTERMISSION)
            if state.period > regulation and self.config.overtime_format == OvertimeFormat.REGULAR_SEASON:
                self._finish(self._shootout(), Decision.SHOOTOUT)
                break
        return GameResult(
            events=self.events,
            final_state=state.snapshot(),
            boxscore=build_boxscore(self.events),
            seed=self.seed,
        )


def replay(result, mode=SimulationMode.INSTANT, sleep=time.sleep, time_scale=1.0):
    """
    Yields the events of a finished game. In real-time mode the gaps
    between events are slept through, scaled by `time_scale`.
    """
    mode = SimulationMode(mode)
    previous = 0.0
    for event in result.events:
        if mode == SimulationMode.REAL_TIME:
            delay = (event.elapsed_seconds - previous) * time_scale
            if delay > 0:
                sleep(delay)
            previous = event.elapsed_seconds
        yield event


def simulate_game(home_team, away_team, home_strategy=None, away_strategy=None, seed=None,
                  mode=SimulationMode.INSTANT, config=None, should_cancel=None, on_event=None,
                  sleep=time.sleep, time_scale=1.0) -> GameResult:
    mode = SimulationMode(mode)
    sim = GameSimulator(home_team, away_team, home_strategy, away_strategy, seed, config, should_cancel)
    result = sim.run()
    if mode == SimulationMode.REAL_TIME or on_event is not None:
        for event in replay(result, mode, sleep, time_scale):
            if should_cancel is not None and should_cancel():
                raise SimulationCancelled(f"Game cancelled during playback at event {event.sequence}")
            if on_event is not None:
                on_event(event)
    return result


def spawn_seeds(num_sims, base_seed=None):
    """Independent integer seeds for a batch, derived from one SeedSequence."""
    children = np.random.SeedSequence(base_seed).spawn(num_sims)
    return [int(child.generate_state(1)[0]) for child in children]


def _simulate_summary(task):
    home_team, away_team, home_strategy, away_strategy, seed, config = task
    result = GameSimulator(home_team, away_team, home_strategy, away_strategy, seed, config).run()
    box = result.boxscore
    return {
        'seed': seed,
        'players': box.players,
        'goalies': box.goalies,
        'teams': box.teams,
        'decision': result.decision.get('method'),
        'winner': result.winner,
        'events': len(result.events),
    }


def run_multiple_simulations(num_sims, home_team_data, away_team_data, home_strategy=None, away_strategy=None,
                             base_seed=None, config=None, processes=1):
    """
    Runs many independent games and aggregates the results.
    With `processes` > 1 the games are spread over a multiprocessing pool;
    every game still gets its own seed, so the output does not depend on
    the worker count.
    """
    if num_sims < 1:
        raise ConfigurationError("num_sims must be at least 1")
    seeds = spawn_seeds(num_sims, base_seed)
    tasks = [(home_team_data, away_team_data, home_strategy, away_strategy, seed, config) for seed in seeds]

    start = time.perf_counter()
    all_results = []
    if processes == 1:
        logger.info(f"Running {num_sims} simulations in a single process...")
        iterator = map(_simulate_summary, tasks)
        pool = None
    else:
        workers = processes or multiprocessing.cpu_count()
        pool = multiprocessing.Pool(workers)
        logger.info(f"Running {num_sims} simulations on {workers} workers...")
        iterator = pool.imap(_simulate_summary, tasks, chunksize=max(1, num_sims // (4 * workers)))
    try:
        for i, res in enumerate(iterator):
            all_results.append(res)
            if (i + 1) % 100 == 0:
                logger.info(f"...completed {i + 1}/{num_sims} simulations")
    finally:
        if pool is not None:
            pool.close()
            pool.join()
    logger.info(f"All simulations completed in {time.perf_counter() - start:.1f}s. Aggregating results...")

    games = summarize_games(all_results)
    full_players = pd.concat([res['players'] for res in all_results], ignore_index=True)
    full_goalies = pd.concat([res['goalies'] for res in all_results], ignore_index=True)
    full_teams = pd.concat([res['teams'] for res in all_results], ignore_index=True)

    keys = ['team', 'player_id', 'Player', 'Position']
    avg_players = (full_players.groupby(keys, dropna=False).sum(numeric_only=True) / num_sims).reset_index()
    avg_players = finalize_player_stats(avg_players)
    avg_goalies = (full_goalies.groupby(['team', 'player_id', 'Player'], dropna=False).sum(numeric_only=True) / num_sims).reset_index()
    avg_teams = (full_teams.groupby('team').sum(numeric_only=True) / num_sims).reset_index()

    return {
        'games': games,
        'home_players': avg_players[avg_players['team'] == HOME].round(2).fillna(0).reset_index(drop=True),
        'away_players': avg_players[avg_players['team'] == AWAY].round(2).fillna(0).reset_index(drop=True),
        'goalies': avg_goalies.round(3).fillna(0),
        'teams': avg_teams.round(3).fillna(0),
        'all_game_scores': list(zip(games['home_goals'].astype(int), games['away_goals'].astype(int))),
        'calibration': calibration_report(games),
    }
