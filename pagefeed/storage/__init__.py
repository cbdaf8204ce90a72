"""
PageFeed Storage Layer
======================

Repository implementations over the SQLite cache database:
- CacheStore for HTTP validators per source URL
- OutputLedger for the last output written per feed filename
"""

from .cache_repository import CacheStore
from .output_repository import OutputLedger

__all__ = [
    "CacheStore",
    "OutputLedger",
]
