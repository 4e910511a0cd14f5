"""
Version Catalog: the append-only, per-module list of published versions.

The catalog of a module is one listing object (``<module>/@v/list``) with
one canonical version per line, in publish order. It is maintained by
read-modify-write; the update coordinator guarantees those cycles never
interleave for the same module.

Usage::

    catalog = VersionCatalog(store)
    await catalog.append("example.com/foo/bar", "0.0.123")
    await catalog.list("example.com/foo/bar")            # ["v0.0.123"]
    await catalog.resolve_latest("example.com/foo/bar")  # "v0.0.123"
"""

from __future__ import annotations

import logging
from typing import List, Optional

from .faults import AlreadyPublishedFault, NoVersionsFault
from .protocol.paths import ModuleKeys
from .retry import NO_RETRY, RetryPolicy
from .semver import canonical, is_valid, select_latest
from .storage.base import ObjectStore

logger = logging.getLogger("goproxy.catalog")


def parse_listing(data: bytes) -> List[str]:
    """
    Parse a listing object into versions in publish order.

    Blank lines and surrounding whitespace are ignored, valid versions are
    canonicalized and repeated entries collapse onto their first occurrence.
    Unparseable lines are kept verbatim so a rewrite never drops them.
    """
    versions: List[str] = []
    seen = set()
    for raw in data.decode("utf-8", errors="replace").splitlines():
        line = raw.strip()
        if not line:
            continue
        if is_valid(line):
            line = canonical(line)
        else:
            logger.warning("Listing contains an invalid version line: %r", line)
        if line in seen:
            continue
        seen.add(line)
        versions.append(line)
    return versions


def render_listing(versions: List[str]) -> bytes:
    return "".join(f"{v}\n" for v in versions).encode("utf-8")


class VersionCatalog:
    """
    Per-module version catalog on top of an :class:`ObjectStore`.

    Args:
        store: Backing object store.
        retry: Retry policy for transient store faults.
    """

    __slots__ = ("_store", "_retry")

    def __init__(self, store: ObjectStore, retry: Optional[RetryPolicy] = None) -> None:
        self._store = store
        self._retry = retry or NO_RETRY

    @property
    def store(self) -> ObjectStore:
        return self._store

    # ── Read ─────────────────────────────────────────────────────────

    async def read(self, module: str) -> Optional[List[str]]:
        """Versions of *module*, or ``None`` if it has no listing object."""
        key = ModuleKeys(module).list
        data = await self._retry.run(f"read {key}", self._store.get, key)
        if data is None:
            return None
        return parse_listing(data)

    async def list(self, module: str) -> List[str]:
        """Versions of *module* in publish order (empty if unknown)."""
        return await self.read(module) or []

    async def exists(self, module: str) -> bool:
        """True once *module* has a listing object."""
        return await self.read(module) is not None

    async def contains(self, module: str, version: str) -> bool:
        return canonical(version) in await self.list(module)

    # ── Write ────────────────────────────────────────────────────────

    async def append(self, module: str, version: str) -> List[str]:
        """
        Append *version* to the catalog of *module*.

        Returns:
            The updated version list.

        Raises:
            AlreadyPublishedFault: If the version is already listed.
            InvalidVersionFault: If *version* is not a semantic version.
            StoreReadFault / StoreWriteFault: After retries are exhausted.
        """
        version = canonical(version)
        versions = await self.list(module)
        if version in versions:
            raise AlreadyPublishedFault(module, version)
        versions.append(version)
        key = ModuleKeys(module).list
        await self._retry.run(f"write {key}", self._store.put, key, render_listing(versions))
        logger.info("Catalog %s += %s (%d version(s))", module, version, len(versions))
        return versions

    # ── Latest ───────────────────────────────────────────────────────

    async def resolve_latest(self, module: str) -> str:
        """
        Resolve the latest version of *module*.

        The highest-precedence release wins, ties going to the entry
        appended last; with no release the most recent entry wins.

        Raises:
            NoVersionsFault: If the catalog is empty or missing.
        """
        return latest_of(module, await self.list(module))


def latest_of(module: str, versions: List[str]) -> str:
    """Apply latest-resolution to an already loaded version list."""
    latest = select_latest([v for v in versions if is_valid(v)])
    if latest is None:
        raise NoVersionsFault(module)
    return latest
