# rinksim/narrative.py
"""
Play-by-play text for a finished event stream. Pure post-processing:
names come from the GAME_START roster payload, nothing from the engine.
"""
from .definitions import AWAY, HOME, EventType


def _clock(seconds):
    seconds = max(0, int(round(seconds)))
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


def _period_label(period, regulation_periods=3):
    if period <= regulation_periods:
        return {1: "1st", 2: "2nd", 3: "3rd"}.get(period, f"{period}th")
    extra = period - regulation_periods
    return "OT" if extra == 1 else f"{extra}OT"


class PlayByPlay:
    def __init__(self, events, regulation_periods=3):
        self.events = list(events)
        self.regulation_periods = regulation_periods
        self.names = {}
        self.teams = {HOME: HOME.title(), AWAY: AWAY.title()}
        start = next((e for e in self.events if e.event_type == EventType.GAME_START), None)
        if start is not None:
            for team, roster in start.detail.get('rosters', {}).items():
                self.teams[team] = roster.get('name') or self.teams[team]
                for p in roster.get('skaters', []):
                    self.names[p['player_id']] = p.get('full_name') or f"#{p['player_id']}"
                goalie = roster.get('goalie') or {}
                if goalie:
                    self.names[goalie['player_id']] = goalie.get('full_name') or f"#{goalie['player_id']}"

    def name(self, player_id):
        if player_id is None:
            return "unknown"
        return self.names.get(player_id, f"#{player_id}")

    def describe(self, event):
        """One line of text, or None for bookkeeping events."""
        team = self.teams.get(event.team, event.team)
        et = event.event_type
        d = event.detail
        if et == EventType.GAME_START:
            return f"{self.teams[AWAY]} at {self.teams[HOME]}"
        if et == EventType.PERIOD_START:
            return f"Start of the {_period_label(event.period, self.regulation_periods)} period"
        if et == EventType.PERIOD_END:
            score = d.get('score', {})
            return (f"End of the {_period_label(event.period, self.regulation_periods)} period. "
                    f"{self.teams[AWAY]} {score.get(AWAY, 0)}, {self.teams[HOME]} {score.get(HOME, 0)}")
        if et == EventType.FACEOFF:
            return f"{self.name(event.primary)} wins the faceoff against {self.name(event.secondary)}"
        if et == EventType.SHOT:
            if d.get('empty_net'):
                return f"{self.name(event.primary)} ({team}) shoots at the empty net"
            return f"{self.name(event.primary)} ({team}) shot on goal, {self.name(event.secondary)} faces it"
        if et == EventType.SAVE:
            result = {'rebound': 'gives up a rebound', 'freeze': 'freezes the puck', 'played': 'steers it away'}
            return f"Save {self.name(event.primary)}, {result.get(d.get('result'), 'makes the stop')}"
        if et == EventType.MISSED_SHOT:
            return f"{self.name(event.primary)} ({team}) misses the net"
        if et == EventType.BLOCKED_SHOT:
            return f"{self.name(event.primary)} ({team}) shot blocked by {self.name(event.secondary)}"
        if et == EventType.GOAL:
            assists = [self.name(pid) for pid in (event.secondary, event.tertiary) if pid is not None]
            helpers = f", assisted by {' and '.join(assists)}" if assists else ", unassisted"
            tag = {'PP': ' (power play)', 'PK': ' (shorthanded)'}.get(d.get('situation'), '')
            if d.get('empty_net'):
                tag += ' (empty net)'
            score = d.get('score', {})
            return (f"GOAL {team}{tag}! {self.name(event.primary)}{helpers}. "
                    f"{self.teams[AWAY]} {score.get(AWAY, 0)}, {self.teams[HOME]} {score.get(HOME, 0)}")
        if et == EventType.PENALTY:
            minutes = d.get('minutes', 0)
            return f"{self.name(event.primary)} ({team}) {minutes} minutes for {d.get('infraction', 'a penalty')}"
        if et == EventType.HIT:
            return f"{self.name(event.primary)} ({team}) hits {self.name(event.secondary)}"
        if et == EventType.TAKEAWAY:
            return f"Takeaway by {self.name(event.primary)} ({team})"
        if et == EventType.GIVEAWAY:
            return f"Giveaway by {self.name(event.primary)} ({team})"
        if et == EventType.SHOOTOUT_ATTEMPT:
            outcome = "scores" if d.get('scored') else "is stopped by " + self.name(event.secondary)
            return f"Shootout round {d.get('round')}: {self.name(event.primary)} ({team}) {outcome}"
        if et == EventType.GAME_END:
            score = d.get('score', {})
            suffix = {'OT': ' (OT)', 'SO': ' (SO)'}.get(d.get('decision'), '')
            return f"Final{suffix}: {self.teams[AWAY]} {score.get(AWAY, 0)}, {self.teams[HOME]} {score.get(HOME, 0)}"
        return None

    def lines(self, event_types=None):
        wanted = {EventType(t) for t in event_types} if event_types else None
        for event in self.events:
            if wanted is not None and event.event_type not in wanted:
                continue
            text = self.describe(event)
            if text is None:
                continue
            if event.event_type in (EventType.GAME_START, EventType.GAME_END, EventType.SHOOTOUT_ATTEMPT):
                yield text
            else:
                yield f"[{_period_label(event.period, self.regulation_periods)} {_clock(event.time_remaining)}] {text}"


def play_by_play(result, event_types=None, regulation_periods=3):
    """Play-by-play lines for a GameResult (or any event sequence)."""
    events = getattr(result, 'events', result)
    return list(PlayByPlay(events, regulation_periods).lines(event_types))


def scoring_summary(result, regulation_periods=3):
    return play_by_play(result, [EventType.GOAL], regulation_periods)
