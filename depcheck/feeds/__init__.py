"""Feed ingestion: sources, schema parsers and the update pipeline."""

from .parsers import FeedFormatError, iter_current_feed, parse_prior_feed
from .pipeline import (
    FeedIngestionPipeline,
    FeedOutcome,
    FeedResult,
    FeedState,
    IngestionReport,
    is_stale,
)
from .source import DirectoryFeedSource, FeedSource, HttpFeedSource
from .version_check import EngineVersionCheck

__all__ = [
    "DirectoryFeedSource",
    "EngineVersionCheck",
    "FeedFormatError",
    "FeedIngestionPipeline",
    "FeedOutcome",
    "FeedResult",
    "FeedSource",
    "FeedState",
    "HttpFeedSource",
    "IngestionReport",
    "is_stale",
    "iter_current_feed",
    "parse_prior_feed",
]
