#!/usr/bin/env python3
"""
Headless Replay CLI

Run the tracker over a binary observation log or a synthetic trajectory.

Usage:
    python replay.py                                  # Default synthetic run
    python replay.py --log output/observations.bin    # Replay a recorded log
    python replay.py --config config/tracker.yaml     # Tracker settings from file

Examples:
    # Eastbound target at 15 m/s, one fix every 5 s for 10 minutes
    python replay.py --speed 15 --heading 90 --duration 600 --period 5

    # Save the final track and an HDF5 recording
    python replay.py --track-log output/tracks.bin --record output
"""

import argparse
import logging
import math
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from geotrack.errors import ConfigError, LogFormatError
from geotrack.io.config_loader import TrackerConfig, load_config
from geotrack.io.logs import ObservationLogWriter, TrackLogWriter
from geotrack.io.recorder import TrackRecorder
from geotrack.simulation.runner import ReplayRunner
from geotrack.simulation.trajectory import ConstantVelocityTrajectory, generate_observations


def main():
    parser = argparse.ArgumentParser(description="Run headless tracker replay")

    # Input
    parser.add_argument("--config", type=str, default=None, help="YAML tracker configuration")
    parser.add_argument(
        "--log", type=str, default=None, help="Binary observation log to replay"
    )

    # Synthetic trajectory
    parser.add_argument("--lat", type=float, default=45.0, help="Start latitude in deg (default: 45)")
    parser.add_argument("--lon", type=float, default=-75.0, help="Start longitude in deg (default: -75)")
    parser.add_argument("--speed", type=float, default=10.0, help="Target speed in m/s (default: 10)")
    parser.add_argument(
        "--heading", type=float, default=90.0, help="Target heading in deg from north (default: 90)"
    )
    parser.add_argument(
        "--duration", type=float, default=300.0, help="Run duration in seconds (default: 300)"
    )
    parser.add_argument(
        "--period", type=float, default=None, help="Fix period in seconds (default: update rate)"
    )
    parser.add_argument(
        "--dropout", type=float, default=0.0, help="Probability of a lost fix (default: 0)"
    )
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    parser.add_argument(
        "--save-observations", type=str, default=None, help="Write the synthetic observations here"
    )

    # Output
    parser.add_argument("--track-log", type=str, default=None, help="Append the final track here")
    parser.add_argument("--record", type=str, default=None, help="HDF5 output directory")

    # Options
    parser.add_argument("--quiet", action="store_true", help="Suppress output")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")

    args = parser.parse_args()

    # Load config
    try:
        config = load_config(args.config) if args.config else TrackerConfig()
    except FileNotFoundError:
        print(f"Error: Config file not found: {args.config}")
        return 1
    except ConfigError as e:
        print(f"Error: Invalid config: {e}")
        return 1

    level = logging.DEBUG if args.verbose else getattr(logging, config.log_level, logging.INFO)
    if args.quiet and not args.verbose:
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logger = logging.getLogger("geotrack.replay")

    period_s = args.period if args.period is not None else config.update_rate_s
    truth = None

    if args.log:
        if not os.path.exists(args.log):
            print(f"Error: Observation log not found: {args.log}")
            return 1
        source = f"log {args.log}"
    else:
        trajectory = ConstantVelocityTrajectory.from_degrees(
            args.lat, args.lon, args.speed, args.heading
        )
        run = generate_observations(
            trajectory,
            args.duration,
            period_s,
            config.position_accuracy_m,
            seed=args.seed,
            dropout_probability=args.dropout,
        )
        observations, truth = run.observations, run.truth
        source = f"synthetic {args.speed:.1f} m/s @ {args.heading:.1f} deg"

        if args.save_observations:
            with ObservationLogWriter(args.save_observations) as writer:
                for observation in observations:
                    writer.write(observation)

    if not args.quiet:
        print("=" * 60)
        print("GeoTrack Headless Replay")
        print("=" * 60)
        print(f"Source: {source}")
        print(f"Position accuracy: {config.position_accuracy_m:.1f} m")
        print(f"Velocity accuracy: {config.velocity_accuracy_mps:.2f} m/s")
        print(f"Process noise: {config.process_noise:g}")
        if not args.log:
            print(f"Duration: {args.duration:.1f} s, period: {period_s:.1f} s")
        print("=" * 60)

    recorder = TrackRecorder(args.record) if args.record else None
    if recorder is not None:
        recorder.start_recording(config.to_dict())

    runner = ReplayRunner(config, logger=logger, recorder=recorder)
    try:
        if args.log:
            result = runner.run_file(args.log)
        else:
            result = runner.run(observations, truth)
    except LogFormatError as e:
        print(f"Error: Corrupt observation log: {e}")
        return 1

    record_path = recorder.stop_recording() if recorder is not None else None

    if args.track_log:
        track = runner.session.track_copy()
        if track is not None:
            with TrackLogWriter(args.track_log, append=True) as writer:
                writer.write(track)

    if not args.quiet:
        print("\n--- RESULTS ---")
        print(f"Observations: {result.num_observations:,} ({result.num_time_only:,} time-only)")
        print(f"Updates: {result.num_updates:,}")
        print(f"Failed steps: {result.failed_steps:,}")
        if result.has_track:
            view = result.final_view
            print(f"Final position: {view.lat_deg:.6f}, {view.lon_deg:.6f}")
            print(f"Speed: {view.speed_mps:.2f} m/s")
            print(f"Heading: {math.degrees(view.heading_rad) % 360.0:.1f} deg")
        else:
            print("No track started")
        print(f"Mean NIS: {result.mean_nis:.3f} (consistent: {result.nis_consistent})")
        if not math.isnan(result.rms_error_m):
            print(f"RMS position error: {result.rms_error_m:.2f} m")
        if record_path:
            print(f"Recording: {record_path}")
        print(f"Runtime: {result.runtime_s * 1000:.1f} ms")
        print("=" * 60)
    elif result.has_track:
        # Machine-readable output
        print(f"{result.final_view.speed_mps:.4f}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
