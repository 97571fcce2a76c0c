#!/usr/bin/env python3
"""Demo script for monocular visual odometry on a EuRoC sequence.

Usage:
    uv run python examples/vo_demo.py data/euroc/MH_01_easy/mav0
    uv run python examples/vo_demo.py data/euroc/MH_01_easy/mav0 --config vo.yaml --no-viewer
"""

import argparse
import logging
from pathlib import Path

import numpy as np

from monovo import (
    DatasetReader,
    OdometryAnalyzer,
    QueuePositionListener,
    VOConfig,
    load_config,
    load_intrinsics,
)
from monovo.visualization import RerunVisualizer


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Monocular visual odometry demo")
    parser.add_argument(
        "dataset_path",
        nargs="?",
        default="data/euroc/MH_01_easy/mav0",
        help="Path to mav0 directory",
    )
    parser.add_argument("--config", type=Path, help="Optional VO config YAML")
    parser.add_argument("--max-frames", type=int, default=None)
    parser.add_argument("--no-viewer", action="store_true", help="Do not spawn Rerun")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args()


def main() -> None:
    """Run the visual odometry demo."""
    args = parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )

    config = load_config(args.config) if args.config else VOConfig()

    print("Initializing visual odometry pipeline...")
    reader = DatasetReader(args.dataset_path)
    if config.intrinsics is None:
        sensor_yaml = Path(args.dataset_path) / "cam0" / "sensor.yaml"
        config.intrinsics = load_intrinsics(sensor_yaml, target_resolution=reader.image_size)

    if args.no_viewer:
        listener = QueuePositionListener()
    else:
        listener = RerunVisualizer("monovo-demo")

    analyzer = OdometryAnalyzer.from_config(config, listener=listener)
    analyzer.start(reset_position=True)

    print(f"Processing {len(reader)} frames...")
    print()
    print(f"{'Frame':>6} {'Processed':>9} {'Poses':>6} | Position")
    print("-" * 60)

    for i, frame in enumerate(reader):
        if args.max_frames is not None and i >= args.max_frames:
            frame.close()
            break

        if analyzer.on_frame(frame):
            x, y, z = analyzer.position
            print(
                f"{i:6d} {analyzer.frames_processed:9d} {analyzer.poses_recovered:6d} | "
                f"[{x:7.2f}, {y:7.2f}, {z:7.2f}]"
            )

    # Final statistics
    print()
    print("=" * 60)
    print("SUMMARY")
    print("=" * 60)
    print(f"Frames read:       {len(reader)}")
    print(f"Frames processed:  {analyzer.frames_processed}")
    print(f"Poses recovered:   {analyzer.poses_recovered}")

    if isinstance(listener, QueuePositionListener):
        positions = np.array(listener.drain())
    else:
        positions = listener.positions
    if len(positions) > 1:
        path_length = float(np.sum(np.linalg.norm(np.diff(positions, axis=0), axis=1)))
        print(f"Path length:       {path_length:.2f} (unit steps, scale unknown)")

    x, y, z = analyzer.position
    print(f"Final position:    [{x:.2f}, {y:.2f}, {z:.2f}]")


if __name__ == "__main__":
    main()
