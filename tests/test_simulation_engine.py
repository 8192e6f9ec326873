from collections import Counter

import pandas as pd
import pytest

from rinksim.definitions import AWAY, HOME, EventType, OvertimeFormat, PenaltyType
from rinksim.errors import SimulationCancelled
from rinksim.mock_data import create_mock_matchup
from rinksim.profiles import TeamRoster
from rinksim.simulation_constants import SimulationConfig
from rinksim.simulation_engine import (
    GameSimulator,
    replay,
    run_multiple_simulations,
    simulate_game,
    spawn_seeds,
)


def _goals_by_team(result):
    counts = Counter(e.team for e in result.events_of(EventType.GOAL))
    return {HOME: counts.get(HOME, 0), AWAY: counts.get(AWAY, 0)}


class TestGameInvariants:
    def test_strength_always_in_range(self, average_game, spread_games):
        for result in [average_game] + spread_games:
            for event in result.events:
                assert all(3 <= n <= 6 for n in event.strength), event

    def test_stream_is_ordered_and_terminates(self, average_game):
        events = average_game.events
        assert events[0].event_type == EventType.GAME_START
        assert events[-1].event_type == EventType.GAME_END
        assert [e.sequence for e in events] == list(range(1, len(events) + 1))
        elapsed = [e.elapsed_seconds for e in events]
        assert elapsed == sorted(elapsed)
        assert all(e.time_remaining >= 0 for e in events)
        assert average_game.final_state['phase'] == 'final'

    def test_score_matches_goal_events(self, average_game, spread_games):
        for result in [average_game] + spread_games:
            goals = _goals_by_team(result)
            if result.decision['method'] == 'SO':
                goals[result.winner] += 1
            assert goals == result.score
            loser = AWAY if result.winner == HOME else HOME
            assert result.score[result.winner] > result.score[loser]

    def test_decision_is_consistent(self, average_game):
        decision = average_game.decision
        assert decision['method'] in ('REG', 'OT', 'SO')
        periods = max(e.period for e in average_game.events)
        if decision['method'] == 'REG':
            assert periods == 3
        else:
            assert periods == 4

    def test_assists_follow_goals(self, average_game):
        events = average_game.events
        for i, event in enumerate(events):
            if event.event_type != EventType.ASSIST:
                continue
            goal = next(e for e in reversed(events[:i]) if e.event_type == EventType.GOAL)
            assert event.secondary == goal.primary
            assert event.primary in (goal.secondary, goal.tertiary)
            assert event.primary != goal.primary

    def test_goal_player_slots(self, average_game, spread_games):
        for result in [average_game] + spread_games:
            for goal in result.events_of(EventType.GOAL):
                if goal.tertiary is not None:
                    assert goal.secondary is not None
                    assert goal.tertiary != goal.detail['goalie']
                if goal.detail['goalie'] is not None:
                    assert goal.detail['goalie'] not in (goal.primary, goal.secondary)

    def test_regulation_periods_are_full_length(self, average_game):
        period_ends = [e for e in average_game.events_of(EventType.PERIOD_END) if e.period <= 3]
        assert [e.elapsed_seconds for e in period_ends] == [1200, 2400, 3600]

    def test_penalized_players_sit_out(self, spread_games):
        for result in spread_games:
            box = {}
            for event in result.events:
                if event.event_type == EventType.PENALTY:
                    box[event.detail['penalty_id']] = (event.team, event.primary)
                elif event.event_type == EventType.PENALTY_END:
                    box.pop(event.detail['penalty_id'])
                elif event.event_type == EventType.LINE_CHANGE:
                    sitting = {pid for team, pid in box.values() if team == event.team}
                    assert not sitting & set(event.detail['on_ice']), event


class TestDeterminism:
    def test_same_seed_same_stream(self, matchup):
        home, away = matchup
        first = simulate_game(home, away, seed=7)
        second = simulate_game(home, away, seed=7)
        assert [e.to_dict() for e in first.events] == [e.to_dict() for e in second.events]
        assert dict(first.final_state) == dict(second.final_state)
        pd.testing.assert_frame_equal(first.boxscore.players, second.boxscore.players)

    def test_different_seeds_differ(self, matchup):
        home, away = matchup
        first = simulate_game(home, away, seed=7)
        second = simulate_game(home, away, seed=8)
        assert [e.to_dict() for e in first.events] != [e.to_dict() for e in second.events]

    def test_seed_spawning(self):
        assert spawn_seeds(5, 99) == spawn_seeds(5, 99)
        assert len(set(spawn_seeds(50, 99))) == 50


class TestForcedMajor:
    def test_major_holds_team_to_four_skaters(self, matchup, no_penalty_config):
        home, away = matchup
        sim = GameSimulator(home, away, seed=3, config=no_penalty_config)
        sim.begin_game()
        sim.begin_period()
        offender = sim.state.on_ice[HOME][0]
        penalty = sim.impose_penalty(HOME, offender, PenaltyType.MAJOR, 'boarding')
        start = sim.state.elapsed
        assert sim.state.skaters(HOME) == 4
        assert offender not in sim.state.on_ice[HOME]
        penalty_event = next(e for e in reversed(sim.events) if e.event_type == EventType.PENALTY)
        assert penalty_event.strength == (4, 5)

        end_event = None
        for _ in range(400):
            sim.step()
            end_event = next(
                (e for e in sim.events
                 if e.event_type == EventType.PENALTY_END and e.detail['penalty_id'] == penalty.penalty_id),
                None,
            )
            if end_event is not None:
                break
        assert end_event is not None
        assert sim.state.skaters(HOME) == 5
        assert end_event.strength[0] == 5

        between = [e for e in sim.events if penalty_event.sequence <= e.sequence < end_event.sequence]
        assert all(e.strength[0] == 4 for e in between)

        if end_event.detail['reason'] == 'expired':
            assert end_event.elapsed_seconds - start == pytest.approx(300)
            assert not [e for e in between if e.event_type == EventType.GOAL and e.team == AWAY]
        else:
            assert end_event.detail['reason'] == 'power_play_goal'
            goal = next(e for e in reversed(between) if e.event_type == EventType.GOAL)
            assert goal.team == AWAY
            assert goal.detail['situation'] == 'PP'
            assert goal.elapsed_seconds == end_event.elapsed_seconds
            assert end_event.elapsed_seconds - start < 300

    def test_major_outlasts_first_power_play_window(self, matchup):
        # Without shot attempts the power play cannot score, so the major runs its full five minutes.
        home, away = matchup
        config = SimulationConfig.from_overrides({
            'hazard_rates': {'penalty_by_defense': 0.0, 'penalty_by_offense': 0.0, 'fight': 0.0, 'shot_attempt': 0.0},
        })
        sim = GameSimulator(home, away, seed=5, config=config)
        sim.begin_game()
        sim.begin_period()
        sim.impose_penalty(AWAY, sim.state.on_ice[AWAY][0], 'major')
        for _ in range(299):
            sim.step()
        assert sim.state.strength() == (5, 4)
        sim.step()
        assert sim.state.strength() == (5, 5)
        assert sim.events[-1].event_type in (EventType.PENALTY_END, EventType.LINE_CHANGE)


class TestShootout:
    def test_tied_game_goes_to_shootout(self, matchup, scoreless_config):
        home, away = matchup
        result = simulate_game(home, away, seed=21, config=scoreless_config)
        assert not result.events_of(EventType.GOAL)
        assert result.decision['method'] == 'SO'

        attempts = result.events_of(EventType.SHOOTOUT_ATTEMPT)
        rounds = max(a.detail['round'] for a in attempts)
        assert rounds >= 3
        assert len(attempts) == 2 * rounds
        assert [a.team for a in attempts] == [HOME, AWAY] * rounds

        totals = {HOME: 0, AWAY: 0}
        for r in range(1, rounds + 1):
            for a in attempts:
                if a.detail['round'] == r:
                    totals[a.team] += int(a.detail['scored'])
            if 3 <= r < rounds:
                assert totals[HOME] == totals[AWAY]
        assert totals[HOME] != totals[AWAY]

        winner = HOME if totals[HOME] > totals[AWAY] else AWAY
        assert result.winner == winner
        assert result.score == {winner: 1, (AWAY if winner == HOME else HOME): 0}
        teams = result.boxscore.teams.set_index('team')
        assert teams.loc[winner, 'Final Score'] == 1
        assert teams.loc[winner, 'Goals'] == 0
        assert teams.loc[HOME, 'Shootout Goals'] == totals[HOME]

    def test_shooters_do_not_repeat_until_roster_used(self, matchup, scoreless_config):
        home, away = matchup
        result = simulate_game(home, away, seed=4, config=scoreless_config)
        for team in (HOME, AWAY):
            shooters = [a.primary for a in result.events_of(EventType.SHOOTOUT_ATTEMPT) if a.team == team]
            first_pass = shooters[:18]
            assert len(set(first_pass)) == len(first_pass)

    def test_regulation_only_allows_ties(self, matchup, scoreless_config):
        home, away = matchup
        config = SimulationConfig.from_overrides(
            {'hazard_rates': dict(scoreless_config.hazard_rates)}, allow_overtime=False,
        )
        result = simulate_game(home, away, seed=2, config=config)
        assert result.decision == {'winner': None, 'method': None}
        assert max(e.period for e in result.events) == 3
        assert set(result.boxscore.teams['Result']) == {'T'}

    def test_playoff_overtime_never_shoots_out(self, matchup):
        home, away = matchup
        config = SimulationConfig(overtime_format=OvertimeFormat.PLAYOFF)
        for seed in range(3):
            result = simulate_game(home, away, seed=seed, config=config)
            assert not result.events_of(EventType.SHOOTOUT_ATTEMPT)
            assert result.decision['method'] in ('REG', 'OT')
            assert result.score[HOME] != result.score[AWAY]


class TestExecutionModes:
    def test_cancellation(self, matchup):
        home, away = matchup
        calls = {'n': 0}

        def cancel_after_a_minute():
            calls['n'] += 1
            return calls['n'] > 60

        with pytest.raises(SimulationCancelled):
            simulate_game(home, away, seed=1, should_cancel=cancel_after_a_minute)

    def test_real_time_replay_paces_events(self, average_game):
        sleeps = []
        replayed = list(replay(average_game, 'real_time', sleep=sleeps.append, time_scale=0.5))
        assert len(replayed) == len(average_game.events)
        assert all(s > 0 for s in sleeps)
        assert sum(sleeps) == pytest.approx(average_game.events[-1].elapsed_seconds * 0.5)

    def test_instant_replay_never_sleeps(self, average_game):
        def fail(_):
            raise AssertionError("instant replay slept")
        assert len(list(replay(average_game, 'instant', sleep=fail))) == len(average_game.events)

    def test_on_event_callback(self, matchup):
        home, away = matchup
        seen = []
        result = simulate_game(home, away, seed=9, on_event=seen.append)
        assert [e.sequence for e in seen] == [e.sequence for e in result.events]

    def test_strategy_dict_accepted(self, matchup):
        home, away = matchup
        result = simulate_game(home, away, {'offensive_style': 'aggressive'}, {'defensive_style': 'trap'}, seed=12)
        assert result.events[-1].event_type == EventType.GAME_END


class TestBatch:
    def test_batch_aggregates(self, matchup):
        home, away = matchup
        results = run_multiple_simulations(4, home, away, base_seed=5)
        assert len(results['games']) == 4
        assert len(results['all_game_scores']) == 4
        assert len(results['home_players']) == 18
        assert len(results['away_players']) == 18
        assert set(results['calibration']['metric']) == {'goals_per_game', 'overtime_rate', 'shots_per_team', 'save_pct'}
        assert (results['games']['home_goals'] != results['games']['away_goals']).all()

    def test_batch_is_reproducible_across_workers(self):
        home, away = create_mock_matchup()
        serial = run_multiple_simulations(3, home, away, base_seed=17)
        parallel = run_multiple_simulations(3, home, away, base_seed=17, processes=2)
        pd.testing.assert_frame_equal(serial['games'], parallel['games'])
        pd.testing.assert_frame_equal(serial['home_players'], parallel['home_players'])


class TestThinRosters:
    @pytest.fixture
    def thin_teams(self, skater_factory, goalie_factory):
        teams = []
        for base, name in ((100, "Home Skeleton"), (200, "Away Skeleton")):
            players = [
                skater_factory(base + i, position, discipline=30, fighting=90)
                for i, position in enumerate(('C', 'LW', 'RW', 'C', 'LD', 'RD'))
            ]
            players.append(goalie_factory(base + 50))
            teams.append(TeamRoster.from_players(base, name, players).validate())
        return teams

    @pytest.fixture
    def penalty_heavy_config(self):
        return SimulationConfig.from_overrides({
            'hazard_rates': {'penalty_by_defense': 30.0, 'penalty_by_offense': 10.0, 'fight': 4.0},
        })

    def test_smallest_legal_roster_always_finishes(self, thin_teams, penalty_heavy_config):
        home, away = thin_teams
        for seed in range(40):
            result = simulate_game(home, away, seed=seed, config=penalty_heavy_config)
            assert result.events[-1].event_type == EventType.GAME_END
            for event in result.events_of(EventType.LINE_CHANGE):
                index = 0 if event.team == HOME else 1
                assert len(event.detail['on_ice']) == event.strength[index], (seed, event)

    def test_short_bench_waves_off_penalties(self, thin_teams, penalty_heavy_config):
        home, away = thin_teams
        sim = GameSimulator(home, away, seed=0, config=penalty_heavy_config)
        sim.begin_game()
        sim.begin_period()
        on_ice = list(sim.state.on_ice[HOME])
        sim.impose_penalty(HOME, on_ice[0], PenaltyType.MISCONDUCT)
        # Five healthy skaters left for five spots: nobody else can go to the box unless it lowers the strength.
        assert not sim.state.can_sit(HOME, affects_strength=False)
        assert sim.state.can_sit(HOME, affects_strength=True)
        before = len(sim.events)
        assert sim._resolve_fight() is False
        assert len(sim.events) == before
