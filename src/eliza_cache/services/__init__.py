"""Database-facing services for eliza-cache."""

from .cache_service import CacheService

__all__ = [
    "CacheService",
]
