"""Protocols and options shared by every cache store."""

from typing import Annotated, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field


@runtime_checkable
class KeyValueStore(Protocol):
    """Raw string key/value capability behind a ``CacheManager``.

    Implementations never raise for a missing key and convert their own I/O
    failures into ``None`` (reads) or ``False`` (writes).
    """

    async def get(self, key: str) -> str | None:
        """Return the raw value stored under ``key``, or None."""
        ...

    async def set(self, key: str, value: str) -> bool:
        """Store ``value`` under ``key``. Returns False if the write failed."""
        ...

    async def delete(self, key: str) -> bool:
        """Remove ``key``. Deleting a missing key succeeds."""
        ...


@runtime_checkable
class SupportsKeys(Protocol):
    """Stores that can list the keys they currently hold."""

    async def keys(self) -> list[str]:
        ...


class CacheOptions(BaseModel):
    """Per-write cache options."""

    model_config = ConfigDict(extra="forbid")

    expires: Annotated[int | float | None, Field(
        description="Absolute expiry as epoch milliseconds; 0 or None never expires",
        default=0,
    )]
