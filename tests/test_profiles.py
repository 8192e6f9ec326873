import pandas as pd
import pytest

from rinksim.definitions import AWAY, HOME, Position
from rinksim.errors import ConfigurationError
from rinksim.mock_data import create_mock_team_data
from rinksim.profiles import CoachProfile, TeamRoster, profile_from_record
from rinksim.simulation_engine import GameSimulator


class TestPlayerProfiles:
    def test_ratings_must_be_within_bounds(self, skater_factory, goalie_factory):
        with pytest.raises(ConfigurationError):
            skater_factory(1, shooting=24)
        with pytest.raises(ConfigurationError):
            skater_factory(1, passing=100)
        with pytest.raises(ConfigurationError):
            goalie_factory(2, vision=10)

    def test_boundary_ratings_are_valid(self, skater_factory, goalie_factory):
        assert skater_factory(1, rating=25).shooting == 25
        assert goalie_factory(2, rating=99).movement == 99

    def test_non_integer_rating_rejected(self, skater_factory):
        with pytest.raises(ConfigurationError):
            skater_factory(1, shooting=61.5)

    def test_position_must_match_profile_type(self, skater_factory):
        with pytest.raises(ConfigurationError):
            skater_factory(1, position='G')
        with pytest.raises(ConfigurationError):
            skater_factory(1, position='X')

    def test_overall_is_mean_of_position_ratings(self, skater_factory, goalie_factory):
        skater = skater_factory(1, rating=60, shooting=80)
        assert skater.overall == pytest.approx((60 * 9 + 80) / 10)
        assert goalie_factory(2, rating=70).overall == pytest.approx(70)

    def test_record_with_float_ratings(self):
        record = pd.DataFrame(create_mock_team_data(10, "Test")['lineup']).iloc[0].to_dict()
        record['shooting'] = 70.0
        profile = profile_from_record(record)
        assert profile.shooting == 70
        assert isinstance(profile.shooting, int)
        assert profile.position == Position.CENTER

    def test_record_missing_rating(self):
        record = create_mock_team_data(10, "Test")['lineup'].iloc[0].to_dict()
        del record['shooting']
        with pytest.raises(ConfigurationError):
            profile_from_record(record)

    def test_goalie_record_ignores_skater_columns(self):
        lineup = create_mock_team_data(10, "Test")['lineup']
        goalie_row = lineup[lineup['position'] == 'G'].iloc[0].to_dict()
        profile = profile_from_record(goalie_row)
        assert profile.is_goalie
        assert profile.position == Position.GOALIE


class TestTeamRoster:
    def test_mock_roster_lines(self, rosters):
        roster = rosters[HOME]
        lines = roster.lines
        assert len(roster.skaters) == 18
        assert len(roster.goalies) == 2
        for slot in ('F1', 'F2', 'F3', 'F4'):
            assert len(lines[slot]) == 3
        for slot in ('D1', 'D2', 'D3'):
            assert len(lines[slot]) == 2
        assert len(lines['PP1']) == 5
        assert len(lines['PK1']) == 4
        assert roster.starting_goalie.line == 'G1'

    def test_validate_requires_goalie(self, matchup):
        home, _ = matchup
        lineup = home['lineup']
        skaters_only = lineup[lineup['position'] != 'G']
        roster = TeamRoster.from_dataframe(10, "No Goalie", skaters_only)
        with pytest.raises(ConfigurationError):
            roster.validate()

    def test_injured_goalies_do_not_count(self, matchup):
        home, _ = matchup
        lineup = home['lineup'].copy()
        lineup['injured'] = lineup['position'] == 'G'
        with pytest.raises(ConfigurationError):
            TeamRoster.from_dataframe(10, "Hurt", lineup).validate()

    def test_validate_requires_minimum_skaters(self, matchup):
        home, _ = matchup
        lineup = home['lineup']
        thin = lineup[lineup['position'].isin(['C', 'G'])]
        with pytest.raises(ConfigurationError):
            TeamRoster.from_dataframe(10, "Thin", thin).validate()

    def test_duplicate_player_ids_rejected(self, matchup):
        home, _ = matchup
        lineup = pd.concat([home['lineup'], home['lineup'].iloc[[0]]], ignore_index=True)
        with pytest.raises(ConfigurationError):
            TeamRoster.from_dataframe(10, "Dupes", lineup).validate()

    def test_same_players_on_both_teams_rejected(self):
        team = create_mock_team_data(10, "Mirror")
        with pytest.raises(ConfigurationError):
            GameSimulator(team, team, seed=1)

    def test_coach_effectiveness_bounds(self):
        with pytest.raises(ConfigurationError):
            CoachProfile(effectiveness=120)

    def test_simulator_accepts_rosters_and_dicts(self, rosters, matchup):
        _, away = matchup
        sim = GameSimulator(rosters[HOME], away, seed=1)
        assert sim.rosters[AWAY].name == "Away Reds"
        assert sim.rosters[AWAY].coach.name == "Away Reds Coach"
