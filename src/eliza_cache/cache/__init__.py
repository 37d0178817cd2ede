"""Layered cache: raw key/value stores plus the typed expiring manager.

Stores:
- MemoryCacheAdapter: dict in process memory
- FsCacheAdapter: one file per key under a root directory
- DbCacheAdapter: rows of the ``cache`` table, scoped to one agent
"""

from .base import CacheOptions, KeyValueStore, SupportsKeys
from .database import DbCacheAdapter, IDatabaseCacheAdapter, SupportsCacheKeyListing
from .filesystem import FsCacheAdapter
from .manager import CacheManager, MalformedEnvelopeError, expires_in, now_ms
from .memory import MemoryCacheAdapter
from .sweeper import ExpirySweeper

__all__ = [
    "CacheManager",
    "CacheOptions",
    "DbCacheAdapter",
    "ExpirySweeper",
    "FsCacheAdapter",
    "IDatabaseCacheAdapter",
    "KeyValueStore",
    "MalformedEnvelopeError",
    "MemoryCacheAdapter",
    "SupportsCacheKeyListing",
    "SupportsKeys",
    "expires_in",
    "now_ms",
]
