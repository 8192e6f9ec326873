import argparse
import sys

from rinksim.data_processing import result_to_json
from rinksim.definitions import AWAY, HOME, OvertimeFormat, SimulationMode
from rinksim.errors import SimulationError
from rinksim.logging_config import setup_logging
from rinksim.mock_data import create_mock_team_data
from rinksim.narrative import play_by_play, scoring_summary
from rinksim.simulation_constants import SimulationConfig
from rinksim.simulation_engine import run_multiple_simulations, simulate_game


def _build_config(args):
    settings = {
        'overtime_format': args.overtime,
        'allow_overtime': not args.regulation_only,
    }
    if args.config:
        return SimulationConfig.from_toml(args.config, **settings)
    return SimulationConfig.from_overrides(None, **settings)


def _run_single(args, config, home_team, away_team):
    result = simulate_game(
        home_team, away_team,
        seed=args.seed,
        mode=args.mode,
        config=config,
        on_event=(lambda e: print(e.to_dict())) if args.stream else None,
        time_scale=args.time_scale,
    )
    if args.json:
        print(result_to_json(result, indent=2))
        return
    lines = play_by_play(result) if args.play_by_play else scoring_summary(result)
    print("\n".join(lines))
    teams = result.boxscore.teams
    print("\n--- TEAM TOTALS ---")
    print(teams[['Team', 'Final Score', 'Shots', 'Hits', 'PP Goals', 'PP Opportunities', 'Faceoff_Pct']].to_string(index=False))
    players = result.boxscore.players
    display_cols = ['Player', 'Goals_Total', 'Assists_Total', 'Shots_Total', 'TOI_Total', '+/-_Total']
    print("\n--- TOP SCORERS ---")
    print(players.sort_values(by=['Points_Total', 'Goals_Total'], ascending=False).head(5)[display_cols].to_string(index=False))
    print(f"\nFinal: {result.score[AWAY]}-{result.score[HOME]} ({result.decision.get('method') or 'tie'}), "
          f"{len(result.events)} events")


def _run_batch(args, config, home_team, away_team):
    results = run_multiple_simulations(
        args.games, home_team, away_team,
        base_seed=args.seed,
        config=config,
        processes=args.processes,
    )
    games = results['games']
    print("\n--- AGGREGATED SIMULATION RESULTS ---")
    print(f"Games: {len(games)}  Home wins: {(games['winner'] == HOME).mean():.3f}  "
          f"Overtime: {games['overtime'].mean():.3f}  Goals/game: {games['total_goals'].mean():.2f}")
    print("\nCalibration:")
    print(results['calibration'].to_string(index=False))
    print("\nHome Players (Top 5 by Goals):")
    display_cols = ['Player', 'Goals_Total', 'Assists_Total', 'Shots_Total', 'TOI_Total']
    print(results['home_players'].sort_values(by='Goals_Total', ascending=False).head(5)[display_cols].to_string(index=False))


def main(argv=None):
    """
    Command-line harness: one game with a box score, or a batch of games
    with calibration output, between two mock rosters.
    """
    parser = argparse.ArgumentParser(description="Simulate hockey games between two mock rosters.")
    parser.add_argument("--games", type=int, default=1, help="Number of games; more than 1 runs a batch.")
    parser.add_argument("--seed", type=int, default=None, help="Game seed (batch: base seed).")
    parser.add_argument("--home-rating", type=int, default=62)
    parser.add_argument("--away-rating", type=int, default=62)
    parser.add_argument("--spread", type=float, default=0.0, help="Std dev of mock ratings around the team rating.")
    parser.add_argument("--config", type=str, default=None, help="TOML file of tuning overrides.")
    parser.add_argument("--overtime", choices=[f.value for f in OvertimeFormat], default=OvertimeFormat.REGULAR_SEASON.value)
    parser.add_argument("--regulation-only", action="store_true", help="Stop after regulation, ties allowed.")
    parser.add_argument("--processes", type=int, default=1, help="Worker processes for batches (0 = all cores).")
    parser.add_argument("--mode", choices=[m.value for m in SimulationMode], default=SimulationMode.INSTANT.value)
    parser.add_argument("--time-scale", type=float, default=1.0, help="Real-time playback speed factor.")
    parser.add_argument("--stream", action="store_true", help="Print each event as it is played back.")
    parser.add_argument("--play-by-play", action="store_true")
    parser.add_argument("--json", action="store_true", help="Print the full result as JSON.")
    parser.add_argument("--log-level", default="WARNING")
    parser.add_argument("--log-dir", default=None, help="Also write rotating log files here.")
    args = parser.parse_args(argv)

    setup_logging(level=args.log_level, log_dir=args.log_dir or "logs", enable_file=args.log_dir is not None)

    try:
        home_team = create_mock_team_data(10, "Home Blues", args.home_rating, args.spread)
        away_team = create_mock_team_data(20, "Away Reds", args.away_rating, args.spread)
        config = _build_config(args)
        if args.games > 1:
            _run_batch(args, config, home_team, away_team)
        else:
            _run_single(args, config, home_team, away_team)
    except (SimulationError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
