"""Per-frame controller feeding registrations into the pose graph.

For every scan after the first, the processor:

1. registers the scan against the scan-to-scan local map,
2. gates stationary frames (no optimization, pose recorded as is),
3. registers the scan against the prior map,
4. adds a relative constraint, an absolute constraint when the map
   registration has enough inliers, and an IMU constraint when available,
5. optimizes the sliding window,
6. folds the scan into the local map at its optimized pose,
7. predicts the seed pose for the next scan.
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from pathlib import Path
from typing import Callable

import numpy as np

from ..backend.motion_predictor import ConstantDistancePredictor
from ..backend.pose_graph import ConstraintKind, PoseGraph
from ..config import LidarMapConfig
from ..exceptions import EmptyFrameError, InitializationError, PipelineError, SolverError
from ..io.imu_reader import IMUSample, OxtsReader
from ..io.point_cloud_io import (
    list_scan_files,
    load_map_cloud,
    load_scan_cloud,
    write_trajectory_csv,
)
from ..pose import SE3, identity_pose, is_moving, relative_pose
from ..registration.base import Registration, RegistrationResult
from ..registration.gicp import GICPRegistration
from .messages import FrameSnapshot
from .run_state import RunState

logger = logging.getLogger(__name__)


class FrameOutcome(Enum):
    STATIONARY = "stationary"
    OPTIMIZED = "optimized"
    SKIPPED = "skipped"


class FrameProcessor:
    """Owns the pose arena, the pose graph and both registrations.

    Example usage:
        processor = FrameProcessor(LidarMapConfig())
        processor.initialize("map.pcd", "velodyne/", "poses.csv", initial_pose)
        processor.run(RunState())
    """

    def __init__(
        self,
        config: LidarMapConfig | None = None,
        scan2map: Registration | None = None,
        scan2scan: Registration | None = None,
        imu_reader: OxtsReader | None = None,
    ) -> None:
        """Initialize frame processor.

        Args:
            config: Full configuration
            scan2map: Registration against the prior map (GICP by default)
            scan2scan: Registration against recent scans (GICP by default)
            imu_reader: Source of per-frame IMU samples
        """
        self._config = config or LidarMapConfig()
        self._scan2map = scan2map or GICPRegistration(self._config.scan2map)
        self._scan2scan = scan2scan or GICPRegistration(self._config.scan2scan)
        self._imu_reader = imu_reader
        self._predictor = ConstantDistancePredictor()

        self._poses: list[np.ndarray] = []
        self._pose_graph = PoseGraph(self._poses, self._config.solver)
        self._trajectory: list[np.ndarray] = []
        self._scan_files: list[Path] = []
        self._output_path: Path | None = None

        self._current_index = 0
        self._frame_count = 0
        self._processing_time_ms = 0.0

    def initialize(
        self,
        map_path: str | Path,
        scans_dir: str | Path,
        output_path: str | Path | None,
        initial_pose: np.ndarray | None = None,
    ) -> None:
        """Load the map and bootstrap the first two poses.

        Scan 0 is registered against the map (anchored by an absolute
        constraint); scan 1 is registered against scan 0 to give the motion
        predictor its second pose.

        Args:
            map_path: Prior map point cloud
            scans_dir: Directory of scans, processed in lexicographic order
            output_path: CSV trajectory destination (None disables writing)
            initial_pose: Rough pose of scan 0 in the map frame

        Raises:
            InitializationError: If loading or bootstrapping fails
        """
        if initial_pose is None:
            initial_pose = identity_pose()

        try:
            map_cloud = load_map_cloud(map_path)
            scan_files = list_scan_files(scans_dir)
        except (OSError, ValueError) as e:
            raise InitializationError(f"Failed to load inputs: {e}") from e

        if len(scan_files) < 2:
            raise InitializationError(
                f"Need at least 2 scans in {scans_dir}, found {len(scan_files)}"
            )

        if not self._scan2map.initialize(map_cloud, identity_pose()):
            raise InitializationError(f"Scan-to-map registration rejected the map {map_path}")

        first_frame = self._load_bootstrap_frame(scan_files[0])
        first_pose = self._bootstrap_pose(
            self._scan2map.register(first_frame, initial_pose), "Scan-to-map", "first"
        )

        self._poses.clear()
        self._pose_graph = PoseGraph(self._poses, self._config.solver)
        self._trajectory = []

        self._poses.append(np.array(first_pose, dtype=np.float64))
        self._pose_graph.add_constraint(0, 0, first_pose, ConstraintKind.ABSOLUTE)
        self._trajectory.append(self._poses[0].copy())

        imu_sample = self._imu_sample(0)
        if imu_sample is not None:
            self._pose_graph.add_imu_constraint(0, imu_sample)

        if not self._scan2scan.initialize(first_frame, self._poses[0]):
            raise InitializationError("Scan-to-scan registration could not use the first scan")

        second_frame = self._load_bootstrap_frame(scan_files[1])
        second_pose = self._bootstrap_pose(
            self._scan2scan.register(second_frame, self._poses[0]), "Scan-to-scan", "second"
        )
        self._poses.append(np.array(second_pose, dtype=np.float64))

        self._scan_files = scan_files
        self._output_path = Path(output_path) if output_path is not None else None
        self._current_index = 1
        self._frame_count = 1

        logger.info(
            "Initialized with %d scans, first pose at %s",
            len(scan_files),
            np.round(self._poses[0][:3], 3),
        )

    @staticmethod
    def _bootstrap_pose(result: RegistrationResult, registration: str, scan: str) -> np.ndarray:
        if result.num_inliers == 0 or not np.all(np.isfinite(result.pose)):
            raise InitializationError(
                f"{registration} registration of the {scan} scan failed "
                f"({result.num_inliers} inliers)"
            )
        return result.pose

    def _load_bootstrap_frame(self, path: Path) -> np.ndarray:
        try:
            frame = load_scan_cloud(path)
        except (OSError, ValueError) as e:
            raise InitializationError(f"Failed to load scan {path}: {e}") from e
        if len(frame) == 0:
            raise InitializationError(f"Bootstrap scan is empty: {path}")
        return frame

    def _imu_sample(self, file_position: int) -> IMUSample | None:
        if self._imu_reader is None or not self._config.pipeline.use_imu:
            return None
        return self._imu_reader.sample_at(file_position)

    def process_frame(
        self, frame: np.ndarray | None, imu_sample: IMUSample | None = None
    ) -> FrameOutcome:
        """Process one scan in sequence order.

        Args:
            frame: Nx3 scan in the sensor frame
            imu_sample: IMU sample recorded with this scan

        Returns:
            FrameOutcome.STATIONARY if the motion gate held the frame back,
            FrameOutcome.OPTIMIZED otherwise

        Raises:
            EmptyFrameError: If the frame is None or has no points
            SolverError: If the optimizer produced an unusable solution
        """
        if frame is None or len(frame) == 0:
            raise EmptyFrameError(f"Empty frame at pose index {self._current_index}")

        index = self._current_index
        pipeline_config = self._config.pipeline

        scan2scan_result = self._scan2scan.register(frame, self._poses[index])
        if not is_moving(
            scan2scan_result.pose,
            self._poses[index - 1],
            pipeline_config.translation_threshold,
            pipeline_config.rotation_threshold,
        ):
            self._trajectory.append(np.array(scan2scan_result.pose, dtype=np.float64))
            return FrameOutcome.STATIONARY

        scan2map_result = self._scan2map.register(frame, self._poses[index])

        self._pose_graph.add_constraint(
            index - 1,
            index,
            relative_pose(self._poses[index - 1], scan2scan_result.pose),
            ConstraintKind.RELATIVE,
        )
        if scan2map_result.num_inliers > pipeline_config.min_inliers:
            self._pose_graph.add_constraint(
                index, index, scan2map_result.pose, ConstraintKind.ABSOLUTE
            )
        else:
            logger.debug(
                "Skipping absolute constraint at %d: %d inliers",
                index,
                scan2map_result.num_inliers,
            )

        if imu_sample is not None:
            self._pose_graph.add_imu_constraint(index, imu_sample)

        if not self._pose_graph.optimize():
            summary = self._pose_graph.last_summary
            raise SolverError(
                f"Pose graph optimization failed at pose {index}: "
                f"{summary.message if summary else 'no summary'}"
            )

        self._scan2scan.get_local_map().fold_in(frame, self._poses[index])

        self._poses.append(self._predictor.predict(self._poses[index], self._poses[index - 1]))
        self._current_index += 1
        self._trajectory.append(self._poses[index].copy())

        return FrameOutcome.OPTIMIZED

    def run(
        self,
        run_state: RunState,
        publish: Callable[[FrameSnapshot], None] | None = None,
    ) -> bool:
        """Process every remaining scan in order.

        Pause and stop requests are honored between frames only. Errors end
        the run with a stop request; the accumulated trajectory is written in
        every case.

        Args:
            run_state: Shared pause/stop state
            publish: Called with a snapshot after each processed frame

        Returns:
            True if every scan was processed
        """
        if not self._scan_files:
            raise InitializationError("initialize() must be called before run()")

        completed = False
        position = 1
        try:
            for position in range(1, len(self._scan_files)):
                if not run_state.wait_if_paused():
                    logger.info("Stop requested before scan %d", position)
                    break

                start = time.perf_counter()
                frame = load_scan_cloud(self._scan_files[position])
                try:
                    outcome = self.process_frame(frame, self._imu_sample(position))
                except EmptyFrameError:
                    if self._config.pipeline.empty_frame_policy != "skip":
                        raise
                    logger.warning("Skipping empty scan %s", self._scan_files[position])
                    outcome = FrameOutcome.SKIPPED

                self._processing_time_ms = (time.perf_counter() - start) * 1000.0
                self._frame_count += 1

                if publish is not None and outcome != FrameOutcome.SKIPPED:
                    publish(self._snapshot(frame, outcome))
            else:
                completed = True
        except (PipelineError, OSError, ValueError) as e:
            logger.error("Processing stopped at scan %d: %s", position, e)
            run_state.request_stop()
        finally:
            if self._output_path is not None:
                try:
                    self.write_results()
                except OSError as e:
                    logger.error("Failed to write trajectory to %s: %s", self._output_path, e)

        logger.info(
            "Processed %d/%d scans, %d poses",
            self._frame_count,
            len(self._scan_files),
            len(self._poses),
        )
        return completed

    def _snapshot(self, frame: np.ndarray, outcome: FrameOutcome) -> FrameSnapshot:
        pose = self._trajectory[-1].copy()
        points = SE3.from_pose_vector(pose).transform_points(frame)
        return FrameSnapshot(
            frame_count=self._frame_count,
            pose_index=self._current_index - 1,
            pose=pose,
            points=points,
            trajectory=np.array([p[:3] for p in self._trajectory], dtype=np.float64),
            progress=self.progress,
            processing_time_ms=self._processing_time_ms,
            stationary=outcome == FrameOutcome.STATIONARY,
        )

    def write_results(self) -> None:
        """Write the output trajectory as CSV.

        Raises:
            ValueError: If no output path was configured
        """
        if self._output_path is None:
            raise ValueError("No output path configured")
        write_trajectory_csv(self._output_path, self._trajectory)

    @property
    def poses(self) -> list[np.ndarray]:
        """Pose arena (optimized poses plus the predicted seed at the end)."""
        return self._poses

    @property
    def trajectory(self) -> list[np.ndarray]:
        """Output poses, one per processed scan."""
        return self._trajectory

    @property
    def pose_graph(self) -> PoseGraph:
        return self._pose_graph

    @property
    def current_index(self) -> int:
        """Pose slot the next moving frame fills."""
        return self._current_index

    @property
    def num_scans(self) -> int:
        return len(self._scan_files)

    @property
    def frame_count(self) -> int:
        """Scans consumed so far, including the first scan."""
        return self._frame_count

    @property
    def progress(self) -> float:
        """Fraction of scans consumed, in [0, 1]."""
        if not self._scan_files:
            return 0.0
        return self._frame_count / len(self._scan_files)

    @property
    def processing_time_ms(self) -> float:
        """Wall time of the most recent frame."""
        return self._processing_time_ms
