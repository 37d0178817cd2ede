"""Filesystem-backed cache store.

Each key is a relative path under the store's root directory and each file
holds exactly one raw value, UTF-8 encoded. Keys containing ``/`` create
subdirectories on demand.
"""

import asyncio
import uuid
from pathlib import Path

import aiofiles
import aiofiles.os
import structlog

logger = structlog.get_logger()

TMP_SUFFIX = ".tmp"


class FsCacheAdapter:
    """Stores raw cache values as files under ``data_dir``.

    Writes go to a temporary sibling file which is then renamed over the
    target, so readers only ever see a complete value. Read failures look
    like misses and write failures return False; both are logged.

    Args:
        data_dir: Root directory of the cache
        timeout: Optional deadline in seconds for each file operation
    """

    def __init__(self, data_dir: str | Path, timeout: float | None = None):
        self.data_dir = Path(data_dir)
        self.timeout = timeout

    def _resolve(self, key: str) -> Path | None:
        """Map a key to its file, or None if it would escape the root."""
        try:
            root = self.data_dir.resolve()
            path = (root / key).resolve()
        except (ValueError, OSError) as e:
            logger.warning("Rejected unusable cache key", key=key, error=str(e))
            return None
        if path == root or not path.is_relative_to(root):
            logger.warning("Rejected cache key outside cache root", key=key, root=str(root))
            return None
        return path

    async def get(self, key: str) -> str | None:
        path = self._resolve(key)
        if path is None:
            return None

        try:
            async with asyncio.timeout(self.timeout):
                async with aiofiles.open(path, encoding="utf-8") as f:
                    return await f.read()
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError, TimeoutError) as e:
            logger.warning("Failed to read cache file", key=key, file_path=str(path), error=str(e))
            return None

    async def set(self, key: str, value: str) -> bool:
        path = self._resolve(key)
        if path is None:
            return False

        # Fixed-length name so long final key segments still fit NAME_MAX
        tmp_path = path.parent / f".{uuid.uuid4().hex[:12]}{TMP_SUFFIX}"
        try:
            async with asyncio.timeout(self.timeout):
                await aiofiles.os.makedirs(path.parent, exist_ok=True)
                async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                    await f.write(value)
                await aiofiles.os.replace(tmp_path, path)
            return True
        except (OSError, TimeoutError) as e:
            logger.error("Failed to write cache file", key=key, file_path=str(path), error=str(e))
            await self._remove_quietly(tmp_path)
            return False

    async def delete(self, key: str) -> bool:
        path = self._resolve(key)
        if path is None:
            return False

        try:
            async with asyncio.timeout(self.timeout):
                await aiofiles.os.remove(path)
            return True
        except FileNotFoundError:
            return True
        except (OSError, TimeoutError) as e:
            logger.error("Failed to delete cache file", key=key, file_path=str(path), error=str(e))
            return False

    async def keys(self) -> list[str]:
        """List every stored key as a relative POSIX path."""
        return await asyncio.to_thread(self._scan_keys)

    def _scan_keys(self) -> list[str]:
        if not self.data_dir.is_dir():
            return []
        keys = []
        for file_path in self.data_dir.rglob("*"):
            if not file_path.is_file():
                continue
            if file_path.name.startswith(".") and file_path.name.endswith(TMP_SUFFIX):
                continue  # in-flight write
            keys.append(file_path.relative_to(self.data_dir).as_posix())
        return sorted(keys)

    @staticmethod
    async def _remove_quietly(path: Path) -> None:
        try:
            await aiofiles.os.remove(path)
        except OSError:
            pass

    def __repr__(self) -> str:
        return f"FsCacheAdapter(data_dir={str(self.data_dir)!r})"
