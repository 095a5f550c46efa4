"""
HAR Explorer - Incremental exploration of recorded HTTP traffic.

This package provides tools for:
- Streaming ingestion of HAR files into an append-only, indexed entry store
- Category classification of requests (including CORS failure detection)
- Composable filter queries over the indexed entries
- Time-scaled waterfall projection of the filtered requests
- Export of the filtered entries as a HAR document
"""

__version__ = "1.0.0"
