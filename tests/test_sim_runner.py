import json

import pytest

from sim_runner import main

pytestmark = pytest.mark.usefixtures("restore_root_logger")


def test_single_game(capsys):
    assert main(['--seed', '3']) == 0
    out = capsys.readouterr().out
    assert "TEAM TOTALS" in out
    assert "Final:" in out


def test_single_game_json(capsys):
    assert main(['--seed', '3', '--json', '--regulation-only']) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload['seed'] == 3
    assert max(e['period'] for e in payload['events']) == 3


def test_batch(capsys):
    assert main(['--games', '2', '--seed', '5']) == 0
    assert "Calibration" in capsys.readouterr().out


def test_bad_rating_is_reported(capsys):
    assert main(['--home-rating', '150']) == 1
    assert "rating must be within" in capsys.readouterr().err


def test_bad_config_file_is_reported(tmp_path, capsys):
    path = tmp_path / "bad.toml"
    path.write_text("[hazard_rates]\nslapshot = 1.0\n")
    assert main(['--config', str(path)]) == 1
    assert "slapshot" in capsys.readouterr().err
