"""Messages passed from the processing thread to the control thread.

Snapshots hold copies of every array so that the consumer never observes
state the processing thread is still mutating.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class FrameSnapshot:
    """State after one processed frame.

    Attributes:
        frame_count: Scans consumed so far, including the first scan
        pose_index: Index of the latest optimized pose
        pose: Latest output pose [x, y, z, qx, qy, qz, qw]
        points: Current scan transformed into the world frame (Nx3)
        trajectory: Output trajectory positions so far (Mx3)
        progress: Fraction of scans processed in [0, 1]
        processing_time_ms: Wall time spent on this frame
        stationary: True if the frame was gated as stationary
    """

    frame_count: int
    pose_index: int
    pose: np.ndarray
    points: np.ndarray
    trajectory: np.ndarray
    progress: float
    processing_time_ms: float
    stationary: bool = False
