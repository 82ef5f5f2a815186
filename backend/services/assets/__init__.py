"""Asset records, folders, blobs and version history."""

__version__ = "1.0.0"
