"""Rerun-based visualization for LiDAR map localization."""

from __future__ import annotations

import numpy as np
import rerun as rr
import rerun.blueprint as rrb

from ..pipeline.messages import FrameSnapshot
from ..pose import SE3


class RerunVisualizer:
    """Rerun-based visualization of localization progress.

    Entity hierarchy:
        world/
            map             - Prior map (logged once, static)
            scan            - Current scan in the world frame (colored by height)
            sensor          - Current sensor pose
            trajectory      - Output trajectory (yellow line strip)
        status              - Frame counter, progress and timing
    """

    def __init__(self, app_name: str = "python-lidarmap", spawn: bool = True) -> None:
        """Start a Rerun recording.

        Args:
            app_name: Recording name shown in the viewer
            spawn: Launch a local viewer process
        """
        rr.init(app_name, spawn=spawn)
        self._setup_coordinate_system()
        self._setup_layout()

    def _setup_coordinate_system(self) -> None:
        """LiDAR frames are right-handed with Z up (X forward, Y left)."""
        rr.log("world", rr.ViewCoordinates.RIGHT_HAND_Z_UP, static=True)

    def _setup_layout(self) -> None:
        blueprint = rrb.Blueprint(
            rrb.Horizontal(
                contents=[
                    rrb.Spatial3DView(name="Localization", origin="world"),
                    rrb.TextDocumentView(name="Status", origin="status"),
                ],
                column_shares=[4, 1],
            )
        )
        rr.send_blueprint(blueprint)

    def log_snapshot(self, snapshot: FrameSnapshot) -> None:
        """Log the state after one processed frame.

        Args:
            snapshot: Snapshot published by the processing thread
        """
        rr.set_time("frame", sequence=snapshot.frame_count)

        self.log_scan(snapshot.points)
        self.log_sensor_pose(snapshot.pose)
        self.log_trajectory(snapshot.trajectory)
        self._log_status(snapshot)

    def log_map(self, points: np.ndarray, max_points: int = 500_000) -> None:
        """Log the prior map once.

        Args:
            points: Nx3 map points
            max_points: Points beyond this are subsampled uniformly
        """
        if len(points) == 0:
            return

        if len(points) > max_points:
            step = int(np.ceil(len(points) / max_points))
            points = points[::step]

        rr.log(
            "world/map",
            rr.Points3D(points, colors=[[128, 128, 128]], radii=0.03),
            static=True,
        )

    def log_scan(self, points: np.ndarray, entity_path: str = "world/scan") -> None:
        """Log a world-frame scan with height-based coloring."""
        if len(points) == 0:
            return

        finite = points[np.isfinite(points).all(axis=1)]
        if len(finite) == 0:
            return

        rr.log(entity_path, rr.Points3D(finite, colors=_height_colors(finite[:, 2]), radii=0.05))

    def log_sensor_pose(self, pose: np.ndarray, entity_path: str = "world/sensor") -> None:
        """Log the sensor pose as a transform with axes.

        Args:
            pose: Pose vector [x, y, z, qx, qy, qz, qw]
            entity_path: Rerun entity path for the sensor
        """
        T = SE3.from_pose_vector(pose)
        rr.log(
            entity_path,
            rr.Transform3D(translation=T.translation, mat3x3=T.rotation),
        )
        rr.log(
            f"{entity_path}/axes",
            rr.Arrows3D(
                vectors=np.eye(3) * 2.0,
                colors=[[255, 0, 0], [0, 255, 0], [0, 0, 255]],
            ),
        )

    def log_trajectory(
        self,
        positions: np.ndarray,
        entity_path: str = "world/trajectory",
    ) -> None:
        """Log the trajectory as a 3D line strip.

        Args:
            positions: Nx3 array of sensor positions in world frame
            entity_path: Rerun entity path for the trajectory
        """
        if len(positions) < 2:
            return

        rr.log(
            entity_path,
            rr.LineStrips3D([positions], colors=[[255, 255, 0]], radii=0.1),
        )

    def _log_status(self, snapshot: FrameSnapshot) -> None:
        state = "stationary" if snapshot.stationary else "moving"
        text = (
            f"Frame: {snapshot.frame_count}\n"
            f"Pose index: {snapshot.pose_index}\n"
            f"Progress: {snapshot.progress * 100:.1f}%\n"
            f"Processing time: {snapshot.processing_time_ms:.2f} ms\n"
            f"Motion: {state}"
        )
        rr.log("status", rr.TextDocument(text))


def _height_colors(z: np.ndarray) -> np.ndarray:
    """Map heights to a blue-green-red ramp, clipped to the 5th-95th percentile."""
    low, high = np.percentile(z, [5, 95])
    t = np.clip((z - low) / max(high - low, 0.1), 0.0, 1.0)
    ramp = np.stack([t, 1.0 - np.abs(2.0 * t - 1.0), 1.0 - t], axis=1)
    return (ramp * 255).astype(np.uint8)
