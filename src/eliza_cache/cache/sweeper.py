"""Optional background purge of expired cache entries."""

import asyncio
import json

import structlog

from .base import SupportsKeys
from .manager import MalformedEnvelopeError, decode_envelope, is_expired

logger = structlog.get_logger("cache_sweeper")


class ExpirySweeper:
    """Periodically deletes expired entries from a store that can list its keys.

    Reads never depend on the sweeper; it only reclaims space held by
    entries nobody has read since they expired.

    Args:
        store: Store implementing ``SupportsKeys`` as well as get/delete
        interval: Seconds between sweeps
    """

    def __init__(self, store: SupportsKeys, interval: float = 300.0):
        if not isinstance(store, SupportsKeys):
            raise TypeError(f"{type(store).__name__} cannot list its keys")
        if interval <= 0:
            raise ValueError("Sweep interval must be positive")
        self.store = store
        self.interval = interval
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sweep_once(self) -> int:
        """Delete every expired entry currently in the store.

        Returns:
            Number of entries purged
        """
        purged = 0
        for key in await self.store.keys():
            raw = await self.store.get(key)
            if not raw:
                continue
            try:
                envelope = decode_envelope(raw)
            except (json.JSONDecodeError, MalformedEnvelopeError) as e:
                logger.warning("Skipping malformed cache entry", key=key, error=str(e))
                continue
            if is_expired(envelope) and await self.store.delete(key):
                purged += 1

        logger.debug("Cache sweep finished", purged=purged)
        return purged

    async def start(self) -> None:
        """Start sweeping in the background."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info("Cache sweeper started", interval=self.interval)

    async def stop(self) -> None:
        """Cancel the background sweep and wait for it to exit."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Cache sweeper stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.sweep_once()
            except Exception as e:
                logger.error("Cache sweep failed", error=str(e))
