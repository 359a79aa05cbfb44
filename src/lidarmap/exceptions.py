"""Exception types raised by the mapping pipeline."""

from __future__ import annotations


class PipelineError(RuntimeError):
    """Base class for errors that end a mapping run."""


class InitializationError(PipelineError):
    """The map or the first scans could not be loaded or registered."""


class SolverError(PipelineError):
    """The optimizer reported an unusable solution."""


class EmptyFrameError(PipelineError):
    """A scan without points reached the frame processor."""
