"""
Core infrastructure for the menu scan backend: exceptions, retry policy,
concurrency limits, caching, error handling and the scan pipeline.
"""

from .exceptions import (
    ErrorCode,
    MenuScanException,
    InvalidInputError,
    UpstreamTransientError,
    UpstreamFatalError,
    ExtractionParseError,
    TranslationConsistencyError,
    CacheGenerationFailure,
)
from .retry import RetryPolicy, call_with_retry
from .concurrency_manager import ConcurrencyManager
from .cache_client import CacheClient

__all__ = [
    "ErrorCode",
    "MenuScanException",
    "InvalidInputError",
    "UpstreamTransientError",
    "UpstreamFatalError",
    "ExtractionParseError",
    "TranslationConsistencyError",
    "CacheGenerationFailure",
    "RetryPolicy",
    "call_with_retry",
    "ConcurrencyManager",
    "CacheClient",
]
