"""
Atomic JSON file persistence shared by the task and poll state stores.

Each record lives in its own JSON file. Writes go to a temporary file in the
same directory which is then renamed over the target, so a reader sees
either the previous or the new content and never a partial write.

Concurrency Model:
    Each record key has its own asyncio lock. A read-modify-write done under
    ``locked(key)`` is the unit of atomicity for the stores built on top of
    this class; no operation spans more than one record.
"""

import asyncio
import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import aiofiles
import structlog

log = structlog.get_logger(__name__)


def repo_slug(repo: str) -> str:
    """Filesystem-safe form of an ``owner/name`` repository."""
    return repo.replace("/", "__")


class JsonFileStore:
    """Base class for stores that keep one JSON document per record.

    Attributes:
        root: Directory holding this store's documents.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self._locks: dict[str, asyncio.Lock] = {}
        self._locks_lock = asyncio.Lock()

    async def _get_lock(self, key: str) -> asyncio.Lock:
        async with self._locks_lock:
            if key not in self._locks:
                self._locks[key] = asyncio.Lock()
            return self._locks[key]

    @asynccontextmanager
    async def locked(self, key: str) -> AsyncIterator[None]:
        """Hold the lock for one record key."""
        lock = await self._get_lock(key)
        async with lock:
            yield

    async def read_document(self, path: Path) -> dict[str, Any] | None:
        """Load a document, or None if it does not exist yet.

        Caller must hold the record lock.
        """
        if not path.exists():
            return None
        async with aiofiles.open(path) as f:
            content = await f.read()
        data: dict[str, Any] = json.loads(content)
        return data

    async def write_document(self, path: Path, document: dict[str, Any]) -> None:
        """Write a document atomically using a temporary file.

        Caller must hold the record lock.
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".tmp")

        async with aiofiles.open(tmp_path, "w") as f:
            await f.write(json.dumps(document, indent=2))

        # Atomic on POSIX when source and target share a filesystem
        tmp_path.replace(path)
