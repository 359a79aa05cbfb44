"""Frame processing and the threaded pipeline around it."""

from .frame_processor import FrameOutcome, FrameProcessor
from .messages import FrameSnapshot
from .pipeline import LidarMapPipeline
from .run_state import RunState, RunStatus

__all__ = [
    "FrameOutcome",
    "FrameProcessor",
    "FrameSnapshot",
    "LidarMapPipeline",
    "RunState",
    "RunStatus",
]
