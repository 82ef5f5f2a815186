"""Caption file handling.

- CSV and SRT parsing into segments, and export back to both formats
- Filename analysis: group keys, match keys and version suffixes
"""

__version__ = "1.0.0"
