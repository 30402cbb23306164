"""Task tracking and progress streaming backend for media-processing jobs."""

__version__ = "0.1.0"
