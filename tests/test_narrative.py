from rinksim.definitions import EventType
from rinksim.narrative import PlayByPlay, _clock, _period_label, play_by_play, scoring_summary


def test_clock_and_period_labels():
    assert _clock(1200) == "20:00"
    assert _clock(61.4) == "01:01"
    assert _period_label(2) == "2nd"
    assert _period_label(4) == "OT"
    assert _period_label(6) == "3OT"


def test_play_by_play_frames_the_game(average_game):
    lines = play_by_play(average_game)
    assert lines[0] == "Away Reds at Home Blues"
    assert lines[-1].startswith("Final")
    assert any(line.startswith("[1st 20:00] Start of the 1st period") for line in lines)


def test_scoring_summary_has_one_line_per_goal(average_game, spread_games):
    for result in [average_game] + spread_games:
        summary = scoring_summary(result)
        assert len(summary) == len(result.events_of(EventType.GOAL))
        assert all("GOAL" in line for line in summary)


def test_bookkeeping_events_are_silent(average_game):
    pbp = PlayByPlay(average_game.events)
    change = average_game.events_of(EventType.LINE_CHANGE)[0]
    assert pbp.describe(change) is None
    assert play_by_play(average_game, [EventType.LINE_CHANGE]) == []


def test_names_come_from_rosters(average_game):
    pbp = PlayByPlay(average_game.events)
    faceoff = average_game.events_of(EventType.FACEOFF)[0]
    assert "Skater" in pbp.describe(faceoff)
    assert pbp.name(None) == "unknown"
    assert pbp.name(-5) == "#-5"
