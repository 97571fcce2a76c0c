"""I/O utilities for frame sources."""

from .frame_source import DatasetReader, Frame

__all__ = ["DatasetReader", "Frame"]
