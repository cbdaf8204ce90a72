"""
PageFeed Processing Module
==========================

Fetching, extraction, date normalization, feed building and the
orchestrator that ties them together.
"""

from .dates import DateNormalizer
from .extractor import CssExtractor, ExtractedItem
from .feed_builder import FeedBuilder, FeedDocument
from .fetcher import PageFetcher, NotModified, Modified, Failed
from .pipeline import FeedOrchestrator, FeedState, RunSummary

__all__ = [
    "DateNormalizer",
    "CssExtractor",
    "ExtractedItem",
    "FeedBuilder",
    "FeedDocument",
    "PageFetcher",
    "NotModified",
    "Modified",
    "Failed",
    "FeedOrchestrator",
    "FeedState",
    "RunSummary",
]
