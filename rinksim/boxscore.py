# rinksim/boxscore.py
"""
Statistics aggregation.

`build_boxscore` is a pure fold over a GameEvent sequence: it never looks
at engine internals, so the same stream always produces the same frames.
Time on ice is recovered by replaying LINE_CHANGE events; each gap between
two events is credited to whoever was on the ice under the manpower
situation carried by the earlier event.
"""
from dataclasses import dataclass

import numpy as np
import pandas as pd

from .definitions import AWAY, HOME, TEAMS, other_team

STATES = ['ES', 'PP', 'PK']
SKATER_STATS = [
    'TOI', 'Goals', 'Assists', 'Shots', 'Shot Attempts', 'Missed Shots', 'Blocked Against',
    'Hits', 'Blocks', 'Giveaways', 'Takeaways', 'Penalty Minutes', 'Faceoffs_Won', 'Faceoffs_Taken', '+/-',
]
TEAM_COUNTERS = [
    'Goals', 'Shots', 'Shot Attempts', 'Shots Against', 'Goals Against', 'PP Goals', 'PP Opportunities',
    'PP Goals Against', 'Times Shorthanded', 'SH Goals', 'Hits', 'Blocks', 'Giveaways', 'Takeaways',
    'Penalty Minutes', 'Faceoffs_Won', 'Faceoffs_Taken', 'Shootout Goals', 'Shootout Attempts',
]


@dataclass(frozen=True)
class Boxscore:
    players: pd.DataFrame
    goalies: pd.DataFrame
    teams: pd.DataFrame


def _pct(numerator, denominator):
    numerator = np.asarray(numerator, dtype=float)
    denominator = np.asarray(denominator, dtype=float)
    safe = np.where(denominator > 0, denominator, 1.0)
    return np.where(denominator > 0, numerator / safe * 100, 0.0)


class _Fold:
    def __init__(self):
        self._template = lambda: {name: 0 for name in SKATER_STATS}
        self.player_stats = {HOME: {}, AWAY: {}}
        self.goalie_stats = {HOME: {}, AWAY: {}}
        self.team_stats = {team: {name: 0 for name in TEAM_COUNTERS} for team in TEAMS}
        self.team_names = {HOME: HOME, AWAY: AWAY}
        self.starters = {HOME: None, AWAY: None}
        self.on_ice = {HOME: [], AWAY: []}
        self.goalie = {HOME: None, AWAY: None}
        self.final = {'score': None, 'winner': None, 'decision': None}

    # --- Registration ---

    def _skater(self, team, player_id, name=None, position=None):
        stats = self.player_stats[team]
        if player_id not in stats:
            stats[player_id] = {
                'Player': name, 'Position': position,
                'Total': self._template(), 'ES': self._template(), 'PP': self._template(), 'PK': self._template(),
            }
        return stats[player_id]

    def _goalie(self, team, player_id, name=None):
        stats = self.goalie_stats[team]
        if player_id not in stats:
            stats[player_id] = {
                'Player': name, 'TOI': 0.0, 'Shots Against': 0, 'Saves': 0, 'Goals Against': 0,
                'Rebounds Allowed': 0, 'Freezes': 0,
            }
        return stats[player_id]

    def _increment_stat(self, team, player_id, stat, value, game_state):
        if player_id is None:
            return
        entry = self._skater(team, player_id)
        entry[game_state][stat] += value
        entry['Total'][stat] += value

    # --- Fold ---

    def credit_time(self, previous, seconds):
        for team in TEAMS:
            label = previous.situation_for(team)
            for pid in self.on_ice[team]:
                self._increment_stat(team, pid, 'TOI', seconds, label)
            if self.goalie[team] is not None:
                self._goalie(team, self.goalie[team])['TOI'] += seconds

    def apply(self, event):
        handler = getattr(self, f"_on_{event.event_type.value}", None)
        if handler is not None:
            handler(event)

    def _on_game_start(self, event):
        for team, roster in event.detail.get('rosters', {}).items():
            self.team_names[team] = roster.get('name', team)
            for p in roster.get('skaters', []):
                self._skater(team, p['player_id'], p.get('full_name'), p.get('position'))
            goalie = roster.get('goalie')
            if goalie:
                self.starters[team] = goalie['player_id']
                self._goalie(team, goalie['player_id'], goalie.get('full_name'))

    def _on_line_change(self, event):
        self.on_ice[event.team] = list(event.detail.get('on_ice', []))
        self.goalie[event.team] = event.detail.get('goalie')

    def _on_period_end(self, event):
        self.on_ice = {HOME: [], AWAY: []}
        self.goalie = {HOME: None, AWAY: None}

    def _on_faceoff(self, event):
        winner, loser = event.team, other_team(event.team)
        self._increment_stat(winner, event.primary, 'Faceoffs_Won', 1, event.situation_for(winner))
        self._increment_stat(winner, event.primary, 'Faceoffs_Taken', 1, event.situation_for(winner))
        self._increment_stat(loser, event.secondary, 'Faceoffs_Taken', 1, event.situation_for(loser))
        self.team_stats[winner]['Faceoffs_Won'] += 1
        for team in TEAMS:
            self.team_stats[team]['Faceoffs_Taken'] += 1

    def _on_shot(self, event):
        team, label = event.team, event.situation_for(event.team)
        self._increment_stat(team, event.primary, 'Shots', 1, label)
        self._increment_stat(team, event.primary, 'Shot Attempts', 1, label)
        self.team_stats[team]['Shots'] += 1
        self.team_stats[team]['Shot Attempts'] += 1
        self.team_stats[other_team(team)]['Shots Against'] += 1
        if event.secondary is not None:
            self._goalie(other_team(team), event.secondary)['Shots Against'] += 1

    def _on_missed_shot(self, event):
        label = event.situation_for(event.team)
        self._increment_stat(event.team, event.primary, 'Shot Attempts', 1, label)
        self._increment_stat(event.team, event.primary, 'Missed Shots', 1, label)
        self.team_stats[event.team]['Shot Attempts'] += 1

    def _on_blocked_shot(self, event):
        team, defense = event.team, other_team(event.team)
        label = event.situation_for(team)
        self._increment_stat(team, event.primary, 'Shot Attempts', 1, label)
        self._increment_stat(team, event.primary, 'Blocked Against', 1, label)
        self._increment_stat(defense, event.secondary, 'Blocks', 1, event.situation_for(defense))
        self.team_stats[team]['Shot Attempts'] += 1
        self.team_stats[defense]['Blocks'] += 1

    def _on_save(self, event):
        goalie = self._goalie(event.team, event.primary)
        goalie['Saves'] += 1
        result = event.detail.get('result')
        if result == 'rebound':
            goalie['Rebounds Allowed'] += 1
        elif result == 'freeze':
            goalie['Freezes'] += 1

    def _on_goal(self, event):
        team, defense = event.team, other_team(event.team)
        label = event.detail.get('situation', event.situation_for(team))
        self._increment_stat(team, event.primary, 'Goals', 1, label)
        self.team_stats[team]['Goals'] += 1
        self.team_stats[defense]['Goals Against'] += 1
        if label == 'PP':
            self.team_stats[team]['PP Goals'] += 1
            self.team_stats[defense]['PP Goals Against'] += 1
        elif label == 'PK':
            self.team_stats[team]['SH Goals'] += 1
        goalie_id = event.detail.get('goalie')
        if goalie_id is not None:
            self._goalie(defense, goalie_id)['Goals Against'] += 1
        if label != 'PP':
            for pid in self.on_ice[team]:
                self._increment_stat(team, pid, '+/-', 1, event.situation_for(team))
            for pid in self.on_ice[defense]:
                self._increment_stat(defense, pid, '+/-', -1, event.situation_for(defense))

    def _on_assist(self, event):
        self._increment_stat(event.team, event.primary, 'Assists', 1, event.situation_for(event.team))

    def _on_hit(self, event):
        self._increment_stat(event.team, event.primary, 'Hits', 1, event.situation_for(event.team))
        self.team_stats[event.team]['Hits'] += 1

    def _on_takeaway(self, event):
        self._increment_stat(event.team, event.primary, 'Takeaways', 1, event.situation_for(event.team))
        self.team_stats[event.team]['Takeaways'] += 1

    def _on_giveaway(self, event):
        self._increment_stat(event.team, event.primary, 'Giveaways', 1, event.situation_for(event.team))
        self.team_stats[event.team]['Giveaways'] += 1

    def _on_penalty(self, event):
        team = event.team
        minutes = event.detail.get('minutes', 0)
        self._increment_stat(team, event.primary, 'Penalty Minutes', minutes, event.situation_for(team))
        self.team_stats[team]['Penalty Minutes'] += minutes
        if event.detail.get('creates_power_play'):
            self.team_stats[other_team(team)]['PP Opportunities'] += 1
            self.team_stats[team]['Times Shorthanded'] += 1

    def _on_shootout_attempt(self, event):
        self.team_stats[event.team]['Shootout Attempts'] += 1
        self.team_stats[event.team]['Shootout Goals'] += int(bool(event.detail.get('scored')))

    def _on_game_end(self, event):
        self.final = {
            'score': dict(event.detail.get('score') or {}),
            'winner': event.team,
            'decision': event.detail.get('decision'),
        }

    # --- Frames ---

    def _result_for(self, team):
        winner, decision = self.final['winner'], self.final['decision']
        if self.final['score'] is None:
            return ''
        if winner is None:
            return 'T'
        if winner == team:
            return 'W'
        return 'L' if decision == 'REG' else 'OTL'

    def players_frame(self):
        rows = []
        for team in TEAMS:
            for pid, data in self.player_stats[team].items():
                flat = {f"{stat}_{state}": data[state][stat] for state in STATES + ['Total'] for stat in SKATER_STATS}
                rows.append({'team': team, 'player_id': pid, 'Player': data['Player'], 'Position': data['Position'], **flat})
        columns = ['team', 'player_id', 'Player', 'Position'] + [f"{s}_{st}" for st in STATES + ['Total'] for s in SKATER_STATS]
        return finalize_player_stats(pd.DataFrame(rows, columns=columns))

    def goalies_frame(self):
        rows = []
        for team in TEAMS:
            for pid, data in self.goalie_stats[team].items():
                decision = self._result_for(team) if pid == self.starters[team] else ''
                rows.append({'team': team, 'player_id': pid, **data, 'Decision': decision})
        df = pd.DataFrame(rows, columns=[
            'team', 'player_id', 'Player', 'TOI', 'Shots Against', 'Saves', 'Goals Against',
            'Rebounds Allowed', 'Freezes', 'Decision',
        ])
        df['Save_Pct'] = _pct(df['Saves'], df['Shots Against']) / 100
        return df

    def teams_frame(self):
        rows = []
        score = self.final['score'] or {}
        for team in TEAMS:
            stats = self.team_stats[team]
            rows.append({
                'team': team,
                'Team': self.team_names[team],
                **stats,
                'Final Score': score.get(team, stats['Goals']),
                'Result': self._result_for(team),
                'Decision': self.final['decision'] or '',
            })
        df = pd.DataFrame(rows)
        df['Shooting_Pct'] = _pct(df['Goals'], df['Shots'])
        df['Save_Pct'] = _pct(df['Shots Against'] - df['Goals Against'], df['Shots Against']) / 100
        df['PP_Pct'] = _pct(df['PP Goals'], df['PP Opportunities'])
        df['PK_Pct'] = np.where(
            df['Times Shorthanded'] > 0,
            100 - _pct(df['PP Goals Against'], df['Times Shorthanded']),
            0.0,
        )
        df['Faceoff_Pct'] = _pct(df['Faceoffs_Won'], df['Faceoffs_Taken'])
        return df


def finalize_player_stats(df):
    """Points and derived percentages with zero-denominator guards."""
    if df.empty:
        return df
    df = df.copy()
    for state in STATES + ['Total']:
        df[f'Points_{state}'] = df[f'Goals_{state}'] + df[f'Assists_{state}']
    df['Sim_Shooting_Pct'] = _pct(df['Goals_Total'], df['Shots_Total'])
    df['Sim_ShotAccuracy_Pct'] = _pct(df['Shots_Total'], df['Shot Attempts_Total'])
    df['Sim_Faceoff_Pct'] = _pct(df['Faceoffs_Won_Total'], df['Faceoffs_Taken_Total'])
    toi_minutes = df['TOI_Total'] / 60
    df['Sim_Points_per_60'] = np.where(toi_minutes > 0, df['Points_Total'] / np.where(toi_minutes > 0, toi_minutes, 1) * 60, 0.0)
    numeric = df.select_dtypes(include="number").columns
    df[numeric] = df[numeric].fillna(0)
    return df


def build_boxscore(events) -> Boxscore:
    fold = _Fold()
    previous = None
    for event in events:
        if previous is not None:
            seconds = event.elapsed_seconds - previous.elapsed_seconds
            if seconds > 0:
                fold.credit_time(previous, seconds)
        fold.apply(event)
        previous = event
    return Boxscore(players=fold.players_frame(), goalies=fold.goalies_frame(), teams=fold.teams_frame())
