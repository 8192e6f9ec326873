# rinksim/special_situations.py
"""
Situation-specific overrides of the normal event table: power play,
penalty kill, 3-on-3 overtime, the extra attacker, and the shootout.
"""
import logging
from collections import namedtuple
from itertools import cycle

from .definitions import HOME, AWAY, Situation, other_team

logger = logging.getLogger(__name__)

NORMAL, POWER_PLAY, PENALTY_KILL, OVERTIME = 'normal', 'power_play', 'penalty_kill', 'overtime'

ShootoutAttempt = namedtuple('ShootoutAttempt', ['round', 'team', 'shooter_id', 'goalie_id', 'scored', 'probability'])


class SituationModel:
    """
    Multipliers layered on the base hazard rates for the team in
    possession, chosen by the strength state the game state reports.
    """

    def __init__(self, params, translator):
        self.params = params
        self.translator = translator

    def table_kind(self, state, team):
        if state.three_on_three:
            return OVERTIME
        situation = state.situation(team)
        if situation == Situation.POWER_PLAY:
            return POWER_PLAY
        if situation == Situation.PENALTY_KILL:
            return PENALTY_KILL
        return NORMAL

    def multipliers(self, state, team, modifiers):
        """
        Returns rate and probability multipliers for `team` attacking.
        `modifiers` maps team -> StrategyModifiers.
        """
        defense = other_team(team)
        own, opp = modifiers[team], modifiers[defense]
        m = {'shot_rate': 1.0, 'goal': 1.0, 'giveaway': 1.0, 'hit': 1.0, 'penalty': 1.0, 'block': 1.0, 'fight': 1.0}
        kind = self.table_kind(state, team)

        if kind == OVERTIME:
            ot = self.params['overtime']
            m['shot_rate'] = ot['shot_rate']
            m['goal'] = ot['goal_prob']
            m['hit'] = ot['hit_rate']
            m['penalty'] = ot['penalty_rate']
            m['fight'] = 0.0
            if state.base_skaters(team) > state.base_skaters(defense):
                m['shot_rate'] *= ot['skater_advantage_shot_rate']
        elif kind == POWER_PLAY:
            pp = self.params['power_play']
            two_man = state.base_skaters(team) - state.base_skaters(defense) >= 2
            m['shot_rate'] = (pp['shot_rate_5v3'] if two_man else pp['shot_rate']) * own.power_play / opp.penalty_kill
            m['goal'] = pp['goal_prob'] * own.power_play / opp.penalty_kill
            m['giveaway'] = pp['giveaway_rate']
            m['hit'] = pp['hit_rate']
            m['penalty'] = pp['penalty_rate']
            m['block'] = self.params['penalty_kill']['block_prob'] * opp.penalty_kill
            m['fight'] = 0.0
        elif kind == PENALTY_KILL:
            pk = self.params['penalty_kill']
            m['shot_rate'] = pk['shot_rate'] * own.shorthanded_threat
            m['giveaway'] = pk['giveaway_rate']
            m['hit'] = pk['hit_rate']
            m['fight'] = 0.0

        if state.goalie_pulled[team]:
            m['shot_rate'] *= self.params['extra_attacker']['shot_rate']
        return m

    def shorthanded_rush_probability(self, state, team, modifiers):
        """Chance a shorthanded team turns a fresh takeaway into a rush shot."""
        if state.three_on_three or state.situation(team) != Situation.PENALTY_KILL:
            return 0.0
        pk = self.params['penalty_kill']
        return self.translator.clamp_probability(pk['shorthanded_rush_prob'] * modifiers[team].shorthanded_threat)

    def rush_goal_multiplier(self):
        return self.params['penalty_kill']['rush_goal_multiplier']


class GoaliePullPolicy:
    """Extra attacker timing from the coach's goaltender usage."""

    def __init__(self, params, resolver):
        self.params = params['goalie_pull']
        self.resolver = resolver

    def wants_extra_attacker(self, state, team, strategy):
        if state.in_overtime or state.period != state.config.regulation_periods:
            return False
        deficit = -state.goal_differential(team)
        if not 1 <= deficit <= self.params['max_deficit']:
            return False
        return state.clock <= self.resolver.goalie_pull_seconds(strategy)


class Shootout:
    """
    Alternating one-on-one attempts. At least `minimum_rounds` full rounds
    are shot; after that the shootout ends with the first completed round
    that leaves the teams unequal.
    """

    def __init__(self, params, translator, rosters, goalies):
        self.minimum_rounds = params['shootout']['minimum_rounds']
        self.translator = translator
        self.rosters = rosters
        self.goalies = goalies

    @staticmethod
    def shooting_order(roster):
        skaters = sorted(roster.healthy_skaters, key=lambda p: (-(p.shooting + p.poise), p.player_id))
        return cycle(skaters)

    def run(self, rng):
        orders = {team: self.shooting_order(self.rosters[team]) for team in (HOME, AWAY)}
        goals = {HOME: 0, AWAY: 0}
        attempts = []
        round_number = 0
        while True:
            round_number += 1
            for team in (HOME, AWAY):
                shooter = next(orders[team])
                goalie = self.goalies[other_team(team)]
                probability = self.translator.shootout_conversion(shooter, goalie)
                scored = bool(rng.random() < probability)
                goals[team] += int(scored)
                attempts.append(ShootoutAttempt(round_number, team, shooter.player_id, goalie.player_id, scored, probability))
            if round_number >= self.minimum_rounds and goals[HOME] != goals[AWAY]:
                break
        winner = HOME if goals[HOME] > goals[AWAY] else AWAY
        logger.debug(f"Shootout decided after {round_number} rounds: {goals[HOME]}-{goals[AWAY]}")
        return winner, goals, attempts
