"""Command line entry point.

    vbreplay replay augmented-blobs.csv
    vbreplay optimize augmented-blobs.csv --max-evaluations 10
    vbreplay simulate out.csv --frames 120 --trajectory circle
"""

from __future__ import annotations

import argparse
import json
import logging
import sys

from .camera import load_camera_parameters, nominal_camera_parameters
from .config import TrackerConfig, load_tracker_config
from .measurements import load_measurement_log
from .optimizer import DEFAULT_MAX_EVALUATIONS, DEFAULT_RADIUS_BOUNDS, run_optimizer
from .replay import print_frame, print_summary, replay
from .sim import TRAJECTORIES, generate_log
from .strategies import STRATEGIES, create_strategy
from .tracking import build_tracking_system


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="vbreplay", description="Replay and tune beacon tracking logs")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p_replay = sub.add_parser("replay", help="Run strategies over a measurement log")
    p_replay.add_argument("log", help="Measurement log file")
    p_replay.add_argument("--delimiter", default=",", help="Field separator")
    p_replay.add_argument("--camera", default=None, help="Camera calibration JSON (default: nominal, undistorted)")
    p_replay.add_argument("--config", default=None, help="Tracker config JSON overrides")
    p_replay.add_argument(
        "--strategy",
        action="append",
        choices=sorted(STRATEGIES),
        default=None,
        help="Strategy to run; repeat for several (default: full, ransac)",
    )
    p_replay.add_argument("--quiet", action="store_true", help="Only print the summary")
    p_replay.add_argument("--summary-json", default=None, help="Write the summary to this file")

    p_opt = sub.add_parser("optimize", help="Search tracker parameters over a log")
    p_opt.add_argument("log", help="Measurement log file")
    p_opt.add_argument("--delimiter", default=",", help="Field separator")
    p_opt.add_argument("--config", default=None, help="Tracker config JSON overrides")
    p_opt.add_argument("--max-evaluations", type=int, default=DEFAULT_MAX_EVALUATIONS)
    p_opt.add_argument("--rho-begin", type=float, default=DEFAULT_RADIUS_BOUNDS[1])
    p_opt.add_argument("--rho-end", type=float, default=DEFAULT_RADIUS_BOUNDS[0])

    p_sim = sub.add_parser("simulate", help="Write a synthetic measurement log")
    p_sim.add_argument("out", help="Output log file")
    p_sim.add_argument("--frames", type=int, required=True, help="Number of frames (>0)")
    p_sim.add_argument("--fps", type=float, default=60.0, help="Frames per second (>0)")
    p_sim.add_argument("--noise-px", type=float, default=0.0, help="Pixel noise stddev")
    p_sim.add_argument("--outlier-rate", type=float, default=0.0, help="Outlier probability [0,1]")
    p_sim.add_argument("--trajectory", default="static", help="Trajectory: static|linear|circle")
    p_sim.add_argument("--seed", type=int, default=0, help="RNG seed")

    return parser


def _load_config(path: str | None) -> TrackerConfig:
    return load_tracker_config(path) if path else TrackerConfig()


def _run_replay(args) -> int:
    camera_params = (
        load_camera_parameters(args.camera)
        if args.camera
        else nominal_camera_parameters().create_undistorted_variant()
    )
    log = load_measurement_log(args.log, delimiter=args.delimiter)
    if log.is_empty:
        print("Nothing to replay: log has no valid rows")
        return 0

    system = build_tracking_system(_load_config(args.config))
    target = system.get_body(0).get_target(0)
    strategies = [create_strategy(name) for name in (args.strategy or ["full", "ransac"])]

    result = replay(
        log,
        camera_params,
        system,
        target,
        strategies,
        on_frame=None if args.quiet else print_frame,
    )

    summary = result.summary()
    print_summary(summary)
    if args.summary_json:
        with open(args.summary_json, "w", encoding="utf-8") as f:
            json.dump(summary, f, indent=2, sort_keys=True)
            f.write("\n")
    return 0


def _run_optimize(args) -> int:
    params, value = run_optimizer(
        args.log,
        rho=(args.rho_begin, args.rho_end),
        max_evaluations=args.max_evaluations,
        base_config=_load_config(args.config),
        delimiter=args.delimiter,
    )
    print(f"objective: {value}")
    for k, v in params.to_dict().items():
        print(f"{k}: {v}")
    return 0


def _run_simulate(args) -> int:
    count = generate_log(
        args.out,
        frames=args.frames,
        fps=args.fps,
        noise_px=args.noise_px,
        outlier_rate=args.outlier_rate,
        trajectory=args.trajectory,
        seed=args.seed,
    )
    print(f"rows: {count}")
    print(f"log: {args.out}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        try:
            return int(e.code)
        except Exception:
            return 2

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    def _err(msg: str) -> int:
        print(f"error: {msg}", file=sys.stderr)
        return 2

    if args.command == "optimize":
        if args.max_evaluations <= 0:
            return _err("--max-evaluations must be > 0")
        if args.rho_begin <= 0 or args.rho_end <= 0:
            return _err("trust-region radii must be > 0")
    if args.command == "simulate":
        if args.frames <= 0:
            return _err("--frames must be > 0")
        if args.fps <= 0:
            return _err("--fps must be > 0")
        if args.noise_px < 0.0:
            return _err("--noise-px must be >= 0")
        if not (0.0 <= args.outlier_rate <= 1.0):
            return _err("--outlier-rate must be in [0, 1]")
        if args.trajectory not in TRAJECTORIES:
            return _err("--trajectory must be one of: static, linear, circle")

    handlers = {
        "replay": _run_replay,
        "optimize": _run_optimize,
        "simulate": _run_simulate,
    }
    try:
        return handlers[args.command](args)
    except ValueError as e:
        return _err(str(e))
    except Exception as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
