"""Visualization of localization snapshots."""

from .rerun_visualizer import RerunVisualizer

__all__ = ["RerunVisualizer"]
