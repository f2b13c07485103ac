"""Archival components for finished jobs."""

from .archive_manager import ArchiveError, ArchiveManager

__all__ = ["ArchiveError", "ArchiveManager"]
