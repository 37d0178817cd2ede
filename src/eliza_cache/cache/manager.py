"""Typed, expiring cache layer over a raw key/value store.

Values are wrapped in a JSON envelope ``{"value": ..., "expires": ...}``
where ``expires`` is an absolute epoch-millisecond timestamp and ``0`` means
the entry never expires. Expiry is enforced lazily: an expired entry reads
as a miss and a detached task deletes it from the store.
"""

import asyncio
import json
import time
from collections.abc import Mapping
from typing import Any, Generic, TypeVar

import structlog

from .base import CacheOptions, KeyValueStore

logger = structlog.get_logger()

StoreT = TypeVar("StoreT", bound=KeyValueStore)


class MalformedEnvelopeError(ValueError):
    """A stored value decoded as JSON but is not a cache envelope."""


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


def expires_in(seconds: float) -> int:
    """Absolute expiry timestamp ``seconds`` from now."""
    return now_ms() + int(seconds * 1000)


def encode_envelope(value: Any, expires: float = 0) -> str:
    return json.dumps({"value": value, "expires": expires})


def decode_envelope(raw: str) -> dict[str, Any]:
    """Parse a raw stored value.

    Raises:
        json.JSONDecodeError: If ``raw`` is not JSON
        MalformedEnvelopeError: If it is JSON but not an envelope object
    """
    envelope = json.loads(raw)
    if not isinstance(envelope, dict):
        raise MalformedEnvelopeError(f"Cache envelope must be a JSON object, got {type(envelope).__name__}")

    expires = envelope.get("expires")
    if expires is not None and (isinstance(expires, bool) or not isinstance(expires, (int, float))):
        raise MalformedEnvelopeError(f"Cache envelope 'expires' must be a number, got {expires!r}")
    return envelope


def is_expired(envelope: Mapping[str, Any]) -> bool:
    expires = envelope.get("expires")
    return bool(expires) and expires <= now_ms()


class CacheManager(Generic[StoreT]):
    """Typed cache over exactly one store, fixed for the manager's lifetime.

    Example:
        ```python
        cache = CacheManager(FsCacheAdapter("/tmp/c"))
        await cache.set("twitter/tweet_generation_42.txt", "hello", {"expires": expires_in(60)})
        text = await cache.get("twitter/tweet_generation_42.txt")
        ```
    """

    def __init__(self, store: StoreT):
        self._store = store
        self._cleanup_tasks: set[asyncio.Task] = set()

    @property
    def store(self) -> StoreT:
        return self._store

    @property
    def pending_cleanups(self) -> int:
        return len(self._cleanup_tasks)

    async def get(self, key: str) -> Any | None:
        """Return the cached value, or None on a miss or an expired entry.

        Raises:
            json.JSONDecodeError: If the stored value is not JSON
            MalformedEnvelopeError: If the stored value is not an envelope
        """
        raw = await self._store.get(key)
        if not raw:
            return None

        envelope = decode_envelope(raw)
        if not is_expired(envelope):
            return envelope.get("value")

        self._schedule_cleanup(key)
        return None

    async def set(self, key: str, value: Any, opts: CacheOptions | Mapping[str, Any] | None = None) -> None:
        """Store ``value`` under ``key``.

        Args:
            key: Cache key
            value: Any JSON-serializable value
            opts: ``CacheOptions`` or a mapping with an ``expires`` timestamp

        Raises:
            TypeError: If ``value`` is not JSON-serializable
        """
        if opts is None:
            options = CacheOptions()
        elif isinstance(opts, CacheOptions):
            options = opts
        else:
            options = CacheOptions.model_validate(dict(opts))

        if not await self._store.set(key, encode_envelope(value, options.expires or 0)):
            logger.debug("Cache write not persisted", key=key)

    async def delete(self, key: str) -> None:
        await self._store.delete(key)

    async def wait_for_cleanup(self) -> None:
        """Wait for every scheduled expiry cleanup to finish."""
        while self._cleanup_tasks:
            await asyncio.gather(*self._cleanup_tasks, return_exceptions=True)

    def _schedule_cleanup(self, key: str) -> None:
        task = asyncio.get_running_loop().create_task(self._discard(key))
        self._cleanup_tasks.add(task)
        task.add_done_callback(self._cleanup_tasks.discard)

    async def _discard(self, key: str) -> None:
        try:
            await self._store.delete(key)
        except Exception as e:
            logger.debug("Expired entry cleanup failed", key=key, error=str(e))

    def __repr__(self) -> str:
        return f"CacheManager(store={self._store!r})"
