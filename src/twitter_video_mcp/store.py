"""Persistent key-value storage for cached environments."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, Optional, Protocol

import anyio

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str) -> None: ...

    async def clear(self) -> None: ...


class MemoryStore:
    """Process-local store, used by tests and one-shot runs."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self.data: Dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        self.data[key] = value

    async def clear(self) -> None:
        self.data.clear()


class JsonFileStore:
    """Store backed by a single JSON object on disk.

    Every write rewrites the whole file. The lock only serializes file access
    within this process; writes to one key stay last-write-wins.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = anyio.Path(Path(path).expanduser())
        self._lock = anyio.Lock()

    async def _read(self) -> Dict[str, str]:
        if not await self._path.exists():
            return {}
        text = await self._path.read_text(encoding="utf-8")
        if not text.strip():
            return {}
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError(f"Store file {self._path} does not hold a JSON object")
        return data

    async def _write(self, data: Dict[str, str]) -> None:
        await self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_name(self._path.name + ".tmp")
        await tmp.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
        await tmp.replace(self._path)

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            return (await self._read()).get(key)

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            data = await self._read()
            data[key] = value
            await self._write(data)

    async def clear(self) -> None:
        async with self._lock:
            logger.info("Clearing store %s", self._path)
            await self._write({})
