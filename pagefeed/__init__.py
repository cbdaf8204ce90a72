"""
PageFeed - RSS Feeds From Web Pages
===================================

Generates RSS feeds for websites that do not publish one, by extracting
items from their HTML with CSS selectors.

Main Components:
- Configuration: feeds file (TOML) + environment settings with Pydantic validation
- Fetching: conditional HTTP requests with cached validators
- Processing: CSS extraction, date normalization, RSS serialization
- Storage: SQLite cache of validators and written outputs
"""

__version__ = "0.9.0"
__author__ = "PageFeed Development Team"
__description__ = "Generate RSS feeds from web pages with CSS selectors"

from .config.settings import get_settings
from .utils.logging import configure_application_logging, get_logger_for_component
from .utils.exceptions import PageFeedError

__all__ = [
    "get_settings",
    "configure_application_logging",
    "get_logger_for_component",
    "PageFeedError",
]
