"""
Memory object store - ephemeral, test-friendly.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Dict, List, Optional

from .base import ObjectStore


class MemoryObjectStore(ObjectStore):
    """
    In-memory object store.

    Args:
        latency: Seconds every operation sleeps before touching the data.
            Zero still yields to the event loop, so concurrent tasks
            interleave at store calls exactly as they would against a
            remote store.
        clock: Source of write timestamps (epoch seconds).
    """

    __slots__ = ("_objects", "_written", "_latency", "_clock")

    def __init__(
        self,
        latency: float = 0.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._objects: Dict[str, bytes] = {}
        self._written: Dict[str, float] = {}
        self._latency = latency
        self._clock = clock

    @property
    def name(self) -> str:
        return "memory"

    async def _tick(self) -> None:
        await asyncio.sleep(self._latency)

    async def get(self, key: str) -> Optional[bytes]:
        await self._tick()
        return self._objects.get(key)

    async def put(self, key: str, data: bytes) -> None:
        await self._tick()
        self._objects[key] = bytes(data)
        self._written[key] = self._clock()

    async def exists(self, key: str) -> bool:
        await self._tick()
        return key in self._objects

    async def delete(self, key: str) -> bool:
        await self._tick()
        self._written.pop(key, None)
        return self._objects.pop(key, None) is not None

    async def list(self, prefix: str = "") -> List[str]:
        await self._tick()
        return sorted(k for k in self._objects if k.startswith(prefix))

    async def modified(self, key: str) -> Optional[float]:
        await self._tick()
        return self._written.get(key)

    def __len__(self) -> int:
        return len(self._objects)

    def __contains__(self, key: object) -> bool:
        return key in self._objects

    def clear(self) -> None:
        self._objects.clear()
        self._written.clear()

    def snapshot(self) -> Dict[str, bytes]:
        """Copy of every stored object, keyed by store key."""
        return dict(self._objects)
