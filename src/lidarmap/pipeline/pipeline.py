"""Background processing thread with pause/stop control.

The frame processor runs in a worker thread while the calling thread polls
for snapshots and forwards them to an optional viewer. Snapshots travel
through a bounded queue; when the consumer falls behind, new snapshots are
dropped rather than blocking the processing thread.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from pathlib import Path
from typing import Protocol

import numpy as np

from ..config import LidarMapConfig
from .frame_processor import FrameProcessor
from .messages import FrameSnapshot
from .run_state import RunState

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.01  # seconds


class SnapshotViewer(Protocol):
    def log_snapshot(self, snapshot: FrameSnapshot) -> None: ...


class LidarMapPipeline:
    """Owns a frame processor and the thread that drives it.

    Example usage:
        with LidarMapPipeline(config) as pipeline:
            pipeline.initialize("map.pcd", "velodyne/", "poses.csv", initial_pose)
            pipeline.run(visualizer)
    """

    def __init__(
        self,
        config: LidarMapConfig | None = None,
        processor: FrameProcessor | None = None,
    ) -> None:
        """Initialize pipeline.

        Args:
            config: Full configuration
            processor: Frame processor to drive (built from config if None)
        """
        self._config = config or LidarMapConfig()
        self._processor = processor or FrameProcessor(self._config)
        self._run_state = RunState()
        self._snapshots: queue.Queue[FrameSnapshot] = queue.Queue(
            maxsize=self._config.pipeline.snapshot_queue_size
        )
        self._thread: threading.Thread | None = None
        self._completed = False
        self._closed = False

    def initialize(
        self,
        map_path: str | Path,
        scans_dir: str | Path,
        output_path: str | Path | None,
        initial_pose: np.ndarray | None = None,
    ) -> None:
        """Bootstrap the processor (see FrameProcessor.initialize)."""
        self._processor.initialize(map_path, scans_dir, output_path, initial_pose)

    def start(self) -> None:
        """Start the processing thread."""
        if self._thread is not None:
            return

        self._thread = threading.Thread(
            target=self._processing_main,
            name="lidarmap-processing",
            daemon=True,
        )
        self._thread.start()

    def _processing_main(self) -> None:
        try:
            self._completed = self._processor.run(self._run_state, self._publish)
        finally:
            # Releases the control loop
            self._run_state.request_stop()

    def _publish(self, snapshot: FrameSnapshot) -> None:
        try:
            self._snapshots.put_nowait(snapshot)
        except queue.Full:
            logger.debug("Snapshot queue full, dropping frame %d", snapshot.frame_count)

    def pause(self) -> None:
        self._run_state.pause()

    def resume(self) -> None:
        self._run_state.resume()

    def toggle_pause(self) -> None:
        self._run_state.toggle_pause()

    def stop(self) -> None:
        """Request a stop; the current frame is finished first."""
        self._run_state.request_stop()

    def join(self, timeout: float | None = None) -> None:
        """Wait for the processing thread to exit."""
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)

    def get_snapshot(self, timeout: float = 0.0) -> FrameSnapshot | None:
        """Get the next snapshot.

        Args:
            timeout: Time to wait (0 = non-blocking)

        Returns:
            FrameSnapshot or None if none is available
        """
        try:
            if timeout > 0:
                return self._snapshots.get(timeout=timeout)
            return self._snapshots.get_nowait()
        except queue.Empty:
            return None

    def _drain(self, visualizer: SnapshotViewer | None) -> None:
        while (snapshot := self.get_snapshot()) is not None:
            if visualizer is not None:
                visualizer.log_snapshot(snapshot)

    def run(self, visualizer: SnapshotViewer | None = None) -> bool:
        """Run to completion, forwarding snapshots to the viewer.

        Starts the processing thread if needed and polls every 10 ms until it
        exits. Ctrl-C requests a stop instead of abandoning the thread.

        Args:
            visualizer: Receives every snapshot in order

        Returns:
            True if every scan was processed
        """
        self.start()
        try:
            while self._thread is not None and self._thread.is_alive():
                self._drain(visualizer)
                time.sleep(POLL_INTERVAL)
        except KeyboardInterrupt:
            logger.info("Interrupted, stopping after the current frame")
            self.stop()
        finally:
            self.join()

        self._drain(visualizer)
        return self._completed

    def close(self) -> None:
        """Stop processing and wait for the thread. Safe to call repeatedly."""
        if self._closed:
            return
        self._closed = True
        self.stop()
        self.join()

    @property
    def processor(self) -> FrameProcessor:
        return self._processor

    @property
    def run_state(self) -> RunState:
        return self._run_state

    @property
    def is_running(self) -> bool:
        """Return True if the processing thread is alive."""
        return self._thread is not None and self._thread.is_alive()

    @property
    def completed(self) -> bool:
        return self._completed

    def __enter__(self) -> LidarMapPipeline:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __del__(self) -> None:
        if hasattr(self, "_closed"):
            self.close()
