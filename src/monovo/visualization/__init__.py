"""Visualization of odometry output."""

from .rerun_visualizer import RerunVisualizer

__all__ = ["RerunVisualizer"]
