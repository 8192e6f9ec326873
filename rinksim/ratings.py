# rinksim/ratings.py
"""
Rating translation.

Turns raw 25-99 attribute values into the modifiers and success
probabilities consumed by the event engine. Everything here is a pure
function of its inputs and the tuning parameters; nothing touches game
state or randomness.

A rating at the league average (0.62 after normalization) maps to a
modifier of exactly 1.0, so a roster of average players reproduces the
base rates in `simulation_constants`.
"""
import math

import numpy as np

from .simulation_constants import SIMULATION_PARAMETERS


class RatingTranslator:
    def __init__(self, params=None):
        self.params = params or SIMULATION_PARAMETERS
        ratings = self.params['ratings']
        self._average = ratings['league_average']
        self._std_dev = ratings['std_dev']
        self._impact = ratings['impact_factor']
        self._min_modifier = ratings['min_modifier']
        self._floor = self.params['probability_bounds']['floor']
        self._ceiling = self.params['probability_bounds']['ceiling']
        self._rate_floor = self.params['rate_bounds']['floor']
        self._rate_ceiling = self.params['rate_bounds']['ceiling']
        self._shots = self.params['shot_resolution']
        self._goalie = self.params['goalie_logic']
        self._fatigue = self.params['fatigue']

    # --- Core conversions ---

    @staticmethod
    def normalize(rating):
        # Divide by 100, not 99, so a maxed-out rating keeps headroom.
        return rating / 100.0

    def modifier(self, rating, is_defensive=False):
        z_score = (self.normalize(rating) - self._average) / self._std_dev
        modifier = 1 - (z_score * self._impact) if is_defensive else 1 + (z_score * self._impact)
        return max(self._min_modifier, modifier)

    def clamp_probability(self, probability):
        return float(np.clip(probability, self._floor, self._ceiling))

    def clamp_rate(self, multiplier):
        return float(np.clip(multiplier, self._rate_floor, self._rate_ceiling))

    def fatigue_multiplier(self, fatigue_level):
        """Performance penalty for a fatigue level (0 = fresh)."""
        level = min(max(fatigue_level, 0.0), self._fatigue['max_level'])
        return 1.0 - self._fatigue['performance_impact'] * level

    @staticmethod
    def _average_rating(players, attribute):
        if not players:
            return None
        return float(np.mean([getattr(p, attribute) for p in players]))

    def _unit_modifier(self, players, attribute, is_defensive=False):
        avg = self._average_rating(players, attribute)
        return 1.0 if avg is None else self.modifier(avg, is_defensive)

    # --- Event rates (multipliers on hazard rates) ---

    def shot_attempt_modifier(self, shooters, defenders, fatigue=1.0):
        if not shooters:
            return self.clamp_rate(1.0)
        shooting = self._average_rating(shooters, 'shooting')
        control = self._average_rating(shooters, 'puck_control')
        offense = self.modifier(0.6 * shooting + 0.4 * control)
        defense = self._unit_modifier(defenders, 'defense', is_defensive=True)
        return self.clamp_rate(offense * defense * fatigue)

    def penalty_rate_modifier(self, offenders):
        return self.clamp_rate(self._unit_modifier(offenders, 'discipline', is_defensive=True))

    def hit_rate_modifier(self, hitters):
        return self.clamp_rate(self._unit_modifier(hitters, 'checking'))

    def takeaway_rate_modifier(self, defenders, carriers):
        return self.clamp_rate(
            self._unit_modifier(defenders, 'defense') * self._unit_modifier(carriers, 'puck_control', is_defensive=True)
        )

    def giveaway_rate_modifier(self, carriers):
        poise = self._unit_modifier(carriers, 'poise', is_defensive=True)
        return self.clamp_rate(self._unit_modifier(carriers, 'puck_control', is_defensive=True) * math.sqrt(poise))

    # --- Shot outcomes ---

    def block_probability(self, defenders, multiplier=1.0):
        return self.clamp_probability(
            self._shots['base_block_prob'] * self._unit_modifier(defenders, 'defense') * multiplier
        )

    def miss_probability(self, shooter):
        return self.clamp_probability(self._shots['base_miss_prob'] / self.modifier(shooter.shooting))

    def goalie_effectiveness(self, goalie):
        """
        Save-side modifier: weighted movement, rebound control, vision and
        flexibility. Aggressiveness nudges it upward (the goalie challenges
        more shooters) at the price of more rebounds, see
        `rebound_probability`.
        """
        g = self._goalie
        composite = (
            goalie.movement * g['movement_weight']
            + goalie.rebound_control * g['rebound_control_weight']
            + goalie.vision * g['vision_weight']
            + goalie.flexibility * g['flexibility_weight']
        ) / (g['movement_weight'] + g['rebound_control_weight'] + g['vision_weight'] + g['flexibility_weight'])
        aggression = (self.normalize(goalie.aggressiveness) - self._average) / self._std_dev
        return self.modifier(composite) * (1 + aggression * g['aggressiveness_save_swing'])

    def pressure_modifier(self, rating):
        return self.modifier(rating) ** self._shots['pressure_poise_weight']

    def shot_conversion(self, shooter, goalie, multiplier=1.0, fatigue=1.0, pressure=False):
        """Probability that a shot on goal beats the goaltender (None = empty net)."""
        if goalie is None:
            return self.clamp_probability(self._shots['empty_net_goal_prob'] * multiplier)
        probability = self._shots['base_goal_prob'] * self.modifier(shooter.shooting) * fatigue * multiplier
        if pressure:
            probability *= self.pressure_modifier(shooter.poise) / self.pressure_modifier(goalie.poise)
        return self.clamp_probability(probability / self.goalie_effectiveness(goalie))

    def rebound_probability(self, goalie):
        aggression = (self.normalize(goalie.aggressiveness) - self._average) / self._std_dev
        risk = max(0.1, 1 + aggression * self._goalie['aggressiveness_rebound_swing'])
        return self.clamp_probability(
            self._shots['base_rebound_prob'] * self.modifier(goalie.rebound_control, is_defensive=True) * risk
        )

    def freeze_probability(self, goalie):
        # Good puck handlers play it out instead of covering up.
        return self.clamp_probability(
            self._shots['base_freeze_prob'] * self.modifier(goalie.puck_control, is_defensive=True)
        )

    def assist_probability(self, teammates, base):
        return self.clamp_probability(base * self._unit_modifier(teammates, 'passing'))

    # --- Player selection weights ---

    def shooter_weights(self, skaters, fatigue_levels):
        d_weight = self._shots['defense_shooter_weight']
        return [
            p.shooting * (1.0 if p.position.is_forward else d_weight) * self.fatigue_multiplier(fatigue_levels.get(p.player_id, 0.0))
            for p in skaters
        ]

    def assist_weights(self, teammates, recent_handlers):
        bonus = self._shots['recent_possession_weight']
        return [p.passing * (bonus if p.player_id in recent_handlers else 1.0) for p in teammates]

    @staticmethod
    def penalty_weights(players):
        # Inverse discipline; 100 keeps a 99-rated player selectable.
        return [100 - p.discipline for p in players]

    @staticmethod
    def hitter_weights(players):
        return [p.checking for p in players]

    @staticmethod
    def takeaway_weights(players):
        return [p.defense for p in players]

    @staticmethod
    def giveaway_weights(players):
        return [100 - p.puck_control for p in players]

    @staticmethod
    def blocker_weights(players):
        return [p.defense for p in players]

    @staticmethod
    def fighter_weights(players):
        return [p.fighting + 0.5 * p.checking for p in players]

    # --- Head-to-head resolutions ---

    def faceoff_win_probability(self, center, opponent):
        f = self.params['faceoffs']
        own = self.modifier(0.7 * center.puck_control + 0.3 * center.poise)
        opp = self.modifier(0.7 * opponent.puck_control + 0.3 * opponent.poise)
        return float(np.clip(0.5 + f['rating_swing'] * (own - opp), f['min_prob'], f['max_prob']))

    def fight_win_probability(self, fighter, opponent):
        """Fighting is inert outside this method."""
        return self.clamp_probability(fighter.fighting / (fighter.fighting + opponent.fighting))

    def shootout_conversion(self, shooter, goalie):
        base = self.params['shootout']['base_goal_prob']
        probability = base * self.modifier(shooter.shooting) * self.pressure_modifier(shooter.poise)
        return self.clamp_probability(probability / (self.goalie_effectiveness(goalie) * self.pressure_modifier(goalie.poise)))
