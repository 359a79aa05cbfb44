#!/usr/bin/env python3
"""Localize a sequence of LiDAR scans against a prior map.

Registers every scan against the map and against recent scans, fuses the
results in a sliding-window pose graph, and writes the trajectory as CSV.

Usage:
    uv run python examples/run_pipeline.py data/map.pcd data/kitti/velodyne \\
        results/poses.csv --initial-pose 0 0 0 0 0 0 1
    uv run python examples/run_pipeline.py data/map.pcd data/kitti/velodyne \\
        results/poses.csv --imu-dir data/kitti/oxts --config config.yaml
"""

import argparse
import logging
import time

import numpy as np

from lidarmap import (
    InitializationError,
    LidarMapConfig,
    LidarMapPipeline,
    OxtsReader,
    RerunVisualizer,
    load_config,
    make_pose,
)
from lidarmap.io import load_map_cloud
from lidarmap.pipeline import FrameProcessor


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="LiDAR map localization")
    parser.add_argument("map", help="Prior map point cloud (.pcd, .ply, .npy, .bin)")
    parser.add_argument("scans", help="Directory of scans (KITTI .bin)")
    parser.add_argument("output", help="Output trajectory CSV")
    parser.add_argument(
        "--initial-pose",
        nargs=7,
        type=float,
        default=[0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 1.0],
        metavar=("X", "Y", "Z", "QX", "QY", "QZ", "QW"),
        help="Initial pose guess of the first scan in the map frame",
    )
    parser.add_argument("--config", help="YAML configuration file")
    parser.add_argument("--imu-dir", help="KITTI oxts directory for roll/pitch constraints")
    parser.add_argument("--no-viz", action="store_true", help="Disable Rerun visualization")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser.parse_args()


def main() -> None:
    """Run the localization pipeline."""
    args = parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = load_config(args.config) if args.config else LidarMapConfig()
    imu_reader = OxtsReader(args.imu_dir) if args.imu_dir else None
    initial_pose = make_pose(args.initial_pose[:3], args.initial_pose[3:])

    print("Initializing LiDAR localization pipeline...")
    print("=" * 80)
    processor = FrameProcessor(config, imu_reader=imu_reader)

    visualizer = None
    if not args.no_viz:
        visualizer = RerunVisualizer()
        visualizer.log_map(load_map_cloud(args.map))

    start = time.perf_counter()
    with LidarMapPipeline(config, processor=processor) as pipeline:
        try:
            pipeline.initialize(args.map, args.scans, args.output, initial_pose)
        except InitializationError as e:
            print(f"Initialization failed: {e}")
            raise SystemExit(1)

        print(f"Scans:         {processor.num_scans}")
        print(f"IMU records:   {len(imu_reader) if imu_reader is not None else 'none'}")
        print(f"Window size:   {config.solver.sliding_window_size}")
        print()

        completed = pipeline.run(visualizer)

    elapsed = time.perf_counter() - start
    graph = processor.pose_graph
    positions = np.array([p[:3] for p in processor.trajectory])
    distance = float(np.sum(np.linalg.norm(np.diff(positions, axis=0), axis=1)))

    print()
    print("=" * 80)
    print("SUMMARY")
    print("=" * 80)
    print(f"Status:               {'completed' if completed else 'stopped early'}")
    print(f"Scans processed:      {processor.frame_count}/{processor.num_scans}")
    print(f"Optimized poses:      {processor.current_index}")
    print(f"Output rows:          {len(processor.trajectory)}")
    print(f"Active constraints:   {graph.num_constraints()}")
    print(f"Distance traveled:    {distance:.2f} m")
    print(f"Total time:           {elapsed:.1f} s ({processor.frame_count / max(elapsed, 1e-9):.1f} Hz)")
    print(f"Trajectory written:   {args.output}")


if __name__ == "__main__":
    main()
