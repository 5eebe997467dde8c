import argparse
import dataclasses
import logging
import os
import sys

# === add src to PYTHONPATH ===
BASE_DIR = os.path.dirname(os.path.abspath(__file__))
SRC_DIR = os.path.join(BASE_DIR, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from load_config import ALGORITHMS, ContactParams, TrackerConfig, load_config_from_file
from footprint_tracker import FootprintTracker
from frame_report import frames_to_dataframe, print_frame_report, summarize_frames, write_frame_report
from scenarios import SCENARIOS, build_scenario


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='replay a synthetic contact scene through the footprint pipeline',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''examples: python main.py rigid_slide --frames 120
          python main.py soft_blob --config soft.json --plot'''
    )

    parser.add_argument('scenario', choices=sorted(SCENARIOS), help='scene to replay')
    parser.add_argument('--frames', type=int, default=60, help='number of frames (default 60)')
    parser.add_argument('--config', help='path to a JSON tracker configuration')
    parser.add_argument('--algorithm', choices=ALGORITHMS, help='box fitting algorithm')
    parser.add_argument('--seed', type=int, help='random seed of the scene')
    parser.add_argument('--output', help='directory for frames.csv and summary.txt')
    parser.add_argument('--plot', action='store_true', help='show the last frame and the box track')
    parser.add_argument('--verbose', '-v', action='store_true', help='debug logging')
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s',
    )

    try:
        if args.frames <= 0:
            raise ValueError(f"--frames must be positive, got {args.frames}")

        scenario = build_scenario(args.scenario, args.frames, args.seed)
        print(f"scene '{scenario.name}': {len(scenario.frames)} frames, body '{scenario.body}' ({scenario.body_kind})")

        if args.config:
            print(f"loading configuration from: {args.config}")
            config = load_config_from_file(args.config)
            if config.params.body_kind != scenario.body_kind:
                print(f"warning: config is for {config.params.body_kind} bodies, scene body is {scenario.body_kind}")
        else:
            config = TrackerConfig(params=ContactParams.for_kind(scenario.body_kind))
        if args.algorithm:
            config = dataclasses.replace(config, algorithm=args.algorithm)
        print(f"box algorithm: {config.algorithm}")
        print()

        tracker = FootprintTracker(scenario.body, config)
        results = [tracker.step(engine, scenario.dt) for engine in scenario.frames]

        df = frames_to_dataframe(results)
        summary = summarize_frames(df)
        print_frame_report(df, summary)

        if args.output:
            csv_path = write_frame_report(df, args.output)
            print(f"report written to {csv_path}")

        if args.plot:
            from visualization import FootprintVisualizer

            visualizer = FootprintVisualizer()
            visualizer.visualize_frame(results[-1], title=f'{scenario.name}: frame {results[-1].frame}')
            visualizer.plot_track(results, title=scenario.name)

        return 0

    except FileNotFoundError as e:
        print(f"error: {e}")
        sys.exit(1)
    except ValueError as e:
        print(f"configuration error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
