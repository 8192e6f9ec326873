import pytest

from rinksim.mock_data import create_mock_matchup, create_mock_team_data
from rinksim.profiles import TeamRoster


def test_mock_team_shape():
    team = create_mock_team_data(7, "Testers")
    lineup = team['lineup']
    assert len(lineup) == 20
    assert (lineup['position'] == 'G').sum() == 2
    assert lineup['player_id'].is_unique
    assert lineup['player_id'].min() == 7000
    assert team['coach'] == {'name': "Testers Coach", 'effectiveness': 62}
    roster = TeamRoster.from_dataframe(team['team_id'], team['name'], lineup)
    assert len(roster.skaters) == 18


def test_spread_is_reproducible_and_bounded():
    first = create_mock_team_data(3, "A", rating=95, spread=10.0)['lineup']
    second = create_mock_team_data(3, "A", rating=95, spread=10.0)['lineup']
    assert first.equals(second)
    assert first['shooting'].max() <= 99
    assert first['shooting'].nunique() > 1


def test_rating_out_of_range():
    with pytest.raises(ValueError):
        create_mock_team_data(1, "Bad", rating=10)


def test_matchup_ids_do_not_clash():
    home, away = create_mock_matchup()
    assert not set(home['lineup']['player_id']) & set(away['lineup']['player_id'])
