"""
Scrapers package
"""

from jobpipe.scrapers.extractor import (
    Extractor,
    PageExtractor,
    SourceConfig,
    SelectorMap,
    PaginationConfig,
    NavigationError,
    BlockedError,
)
from jobpipe.scrapers.manager import ExtractionManager, UnknownSourceError
from jobpipe.scrapers.sources import SOURCES, build_extractors

__all__ = [
    "Extractor",
    "PageExtractor",
    "SourceConfig",
    "SelectorMap",
    "PaginationConfig",
    "NavigationError",
    "BlockedError",
    "ExtractionManager",
    "UnknownSourceError",
    "SOURCES",
    "build_extractors",
]
