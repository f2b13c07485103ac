"""Tracker components for the job runner."""

from .progress_tracker import ProgressTracker

__all__ = ["ProgressTracker"]
