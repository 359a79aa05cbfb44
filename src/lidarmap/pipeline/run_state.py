"""Run/pause/stop state shared by the control and processing threads."""

from __future__ import annotations

import threading
from enum import Enum


class RunStatus(Enum):
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"


class RunState:
    """Thread-safe run status with a blocking pause.

    A stop request is final: once STOPPED, pause() and resume() have no
    effect and every waiter is released.
    """

    def __init__(self) -> None:
        self._status = RunStatus.RUNNING
        self._condition = threading.Condition()

    @property
    def status(self) -> RunStatus:
        with self._condition:
            return self._status

    @property
    def is_paused(self) -> bool:
        return self.status == RunStatus.PAUSED

    @property
    def stop_requested(self) -> bool:
        return self.status == RunStatus.STOPPED

    def pause(self) -> None:
        with self._condition:
            if self._status == RunStatus.RUNNING:
                self._status = RunStatus.PAUSED

    def resume(self) -> None:
        with self._condition:
            if self._status == RunStatus.PAUSED:
                self._status = RunStatus.RUNNING
                self._condition.notify_all()

    def toggle_pause(self) -> None:
        with self._condition:
            if self._status == RunStatus.RUNNING:
                self._status = RunStatus.PAUSED
            elif self._status == RunStatus.PAUSED:
                self._status = RunStatus.RUNNING
                self._condition.notify_all()

    def request_stop(self) -> None:
        """Request the processing loop to stop and wake any paused waiter."""
        with self._condition:
            self._status = RunStatus.STOPPED
            self._condition.notify_all()

    def wait_if_paused(self, timeout: float | None = None) -> bool:
        """Block while paused.

        Args:
            timeout: Maximum time to wait in seconds; None waits indefinitely

        Returns:
            True if processing may continue, False if a stop was requested
            or the timeout expired while still paused
        """
        with self._condition:
            self._condition.wait_for(
                lambda: self._status != RunStatus.PAUSED, timeout=timeout
            )
            return self._status == RunStatus.RUNNING
