"""eliza-cache: layered, advisory caching for agent runtimes."""

from .cache import (
    CacheManager,
    CacheOptions,
    DbCacheAdapter,
    ExpirySweeper,
    FsCacheAdapter,
    IDatabaseCacheAdapter,
    KeyValueStore,
    MalformedEnvelopeError,
    MemoryCacheAdapter,
    expires_in,
    now_ms,
)
from .runtime import open_cache
from .services import CacheService

__version__ = "0.1.0"

__all__ = [
    "CacheManager",
    "CacheOptions",
    "CacheService",
    "DbCacheAdapter",
    "ExpirySweeper",
    "FsCacheAdapter",
    "IDatabaseCacheAdapter",
    "KeyValueStore",
    "MalformedEnvelopeError",
    "MemoryCacheAdapter",
    "expires_in",
    "now_ms",
    "open_cache",
]
