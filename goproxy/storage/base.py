"""
Base object store - abstract interface for the backing key/blob store.

Keys are ``/``-separated strings such as ``example.com/foo/@v/list``.
Adapters are stateless conduits: they translate I/O failures into
:class:`~goproxy.faults.StoreReadFault` / :class:`~goproxy.faults.StoreWriteFault`
and report missing objects as ``None`` rather than as errors.
"""

from __future__ import annotations

import abc
from typing import List, Optional


class ObjectStore(abc.ABC):
    """Abstract base for object store backends."""

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Backend name for diagnostics."""

    @abc.abstractmethod
    async def get(self, key: str) -> Optional[bytes]:
        """Read an object, or ``None`` if it does not exist."""

    @abc.abstractmethod
    async def put(self, key: str, data: bytes) -> None:
        """Write (create or replace) an object atomically."""

    @abc.abstractmethod
    async def exists(self, key: str) -> bool:
        """Check if an object exists."""

    @abc.abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete an object. Returns True if it existed."""

    @abc.abstractmethod
    async def list(self, prefix: str = "") -> List[str]:
        """List keys starting with *prefix*, sorted."""

    @abc.abstractmethod
    async def modified(self, key: str) -> Optional[float]:
        """Last write time of an object (epoch seconds), or ``None`` if missing."""

    async def close(self) -> None:
        """Release backend resources."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.name}>"
