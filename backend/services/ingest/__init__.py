"""Upload ingest service.

This service handles:
- Pairing uploaded captions with videos by normalized name
- Stacking versioned uploads onto existing assets
- Reporting created, matched, stacked, unmatched and failed files per batch
"""

__version__ = "1.0.0"
