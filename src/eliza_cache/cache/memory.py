"""In-process cache store."""


class MemoryCacheAdapter:
    """Keeps raw cache values in a plain dict.

    Contents live as long as the process. Passing ``initial_data`` seeds the
    store with (and shares) an existing mapping.
    """

    def __init__(self, initial_data: dict[str, str] | None = None):
        self.data: dict[str, str] = initial_data if initial_data is not None else {}

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> bool:
        self.data[key] = value
        return True

    async def delete(self, key: str) -> bool:
        self.data.pop(key, None)
        return True

    async def keys(self) -> list[str]:
        return list(self.data)

    def __len__(self) -> int:
        return len(self.data)

    def __repr__(self) -> str:
        return f"MemoryCacheAdapter(entries={len(self.data)})"
