"""Video delivery and ffmpeg thumbnail extraction."""

__version__ = "1.0.0"
