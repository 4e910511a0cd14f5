"""
Update Coordinator: the single writer path for publishing versions.

A publish is serialized per module and commits by appending to the module's
catalog *after* every artifact object has been written. Readers only serve
catalogued versions, so they see either the complete artifact set of a
version or nothing at all.

Usage::

    coordinator = UpdateCoordinator(store)
    result = await coordinator.publish(
        "example.com/foo/bar", "0.0.123", DirectorySource("./checkout"),
    )
    result.version          # "v0.0.123"
    result.latest_updated   # True

Different modules publish concurrently; publishes of the same module queue
on that module's lock in arrival order.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Callable, Dict, List, Optional

from .artifacts.builder import ArtifactBuilder
from .artifacts.core import ArtifactSet
from .catalog import VersionCatalog, latest_of
from .faults import AlreadyPublishedFault, Fault, InvalidVersionFault, StoreReadFault
from .protocol.paths import ModuleKeys, check_module_path
from .retry import NO_RETRY, RetryPolicy
from .semver import canonical
from .sources import SourceTree
from .storage.base import ObjectStore

logger = logging.getLogger("goproxy.coordinator")

DEFAULT_SWEEP_GRACE = 900.0


class ModuleLocks:
    """
    One :class:`asyncio.Lock` per module path.

    Locks are reference-counted and dropped once no task holds or waits on
    them, so the table only grows with the number of modules currently being
    written.
    """

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, module: str) -> AsyncIterator[None]:
        lock = self._locks.get(module)
        if lock is None:
            lock = self._locks[module] = asyncio.Lock()
        self._users[module] = self._users.get(module, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[module] -= 1
            if not self._users[module]:
                del self._users[module]
                del self._locks[module]

    def locked(self, module: str) -> bool:
        lock = self._locks.get(module)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)


@dataclass
class PublishResult:
    """
    Outcome of :meth:`UpdateCoordinator.publish`.

    ``created`` is False when the version was already published and the
    caller passed ``exist_ok=True``; ``artifacts`` is then ``None``.
    """

    module: str
    version: str
    created: bool = True
    artifacts: Optional[ArtifactSet] = field(default=None, repr=False)
    latest_updated: bool = False

    def to_dict(self) -> dict:
        return {
            "module": self.module,
            "version": self.version,
            "created": self.created,
            "latest_updated": self.latest_updated,
            "sums": self.artifacts.sums.to_dict() if self.artifacts else None,
        }


class UpdateCoordinator:
    """
    Publishes versions and keeps catalogs consistent with stored artifacts.

    Args:
        store: Backing object store.
        builder: Artifact builder (a default one if omitted).
        retry: Retry policy for transient store faults.
        write_latest: Maintain the ``@latest`` pointer object.
        sweep_grace: Minimum age in seconds of an uncatalogued version's
            objects before :meth:`sweep` deletes them.
        clock: Current time in epoch seconds, compared with object write times.
    """

    def __init__(
        self,
        store: ObjectStore,
        builder: Optional[ArtifactBuilder] = None,
        retry: Optional[RetryPolicy] = None,
        write_latest: bool = True,
        sweep_grace: float = DEFAULT_SWEEP_GRACE,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._builder = builder or ArtifactBuilder()
        self._retry = retry or NO_RETRY
        self._catalog = VersionCatalog(store, retry=self._retry)
        # Single-shot catalog for commits; the commit loop owns the retries.
        self._committer = VersionCatalog(store)
        self._write_latest = write_latest
        self._sweep_grace = sweep_grace
        self._clock = clock
        self._locks = ModuleLocks()

    @property
    def store(self) -> ObjectStore:
        return self._store

    @property
    def catalog(self) -> VersionCatalog:
        return self._catalog

    @property
    def locks(self) -> ModuleLocks:
        return self._locks

    # ── Publish ──────────────────────────────────────────────────────

    async def publish(
        self,
        module_path: str,
        version: str,
        source: SourceTree,
        *,
        exist_ok: bool = False,
    ) -> PublishResult:
        """
        Build and publish ``module_path@version`` from *source*.

        Raises:
            AlreadyPublishedFault: The version is already catalogued (unless
                ``exist_ok``); nothing is built or written.
            BuildFault: The artifacts could not be built; nothing is written.
            StoreWriteFault: Artifacts or catalog could not be written after
                retries. Artifacts written so far are orphans until
                :meth:`sweep` removes them.
            StoreReadFault: The catalog could not be read.
        """
        check_module_path(module_path)
        try:
            version = canonical(version)
        except InvalidVersionFault as fault:
            raise InvalidVersionFault(version, fault.metadata.get("reason", ""), module=module_path)

        async with self._locks.hold(module_path):
            if await self._catalog.contains(module_path, version):
                if exist_ok:
                    logger.info("%s@%s already published; skipping", module_path, version)
                    return PublishResult(module_path, version, created=False)
                raise AlreadyPublishedFault(module_path, version)

            artifacts = self._builder.build(module_path, version, source)
            await self._write_artifacts(artifacts)
            versions = await self._commit(module_path, version)
            logger.info(
                "Published %s@%s (%d bytes, %s)",
                module_path, version, artifacts.size_bytes, artifacts.sums.zip,
            )

            latest_updated = False
            if self._write_latest:
                latest_updated = await self._refresh_latest(module_path, versions)

        return PublishResult(
            module=module_path,
            version=version,
            created=True,
            artifacts=artifacts,
            latest_updated=latest_updated,
        )

    async def _write_artifacts(self, artifacts: ArtifactSet) -> None:
        keys = ModuleKeys(artifacts.module)
        for ext, data in artifacts.files():
            key = keys.artifact(artifacts.version, ext)
            await self._retry.run(f"write {key}", self._store.put, key, data)

    async def _commit(self, module_path: str, version: str) -> List[str]:
        attempts = 0

        async def attempt() -> List[str]:
            nonlocal attempts
            attempts += 1
            try:
                return await self._committer.append(module_path, version)
            except AlreadyPublishedFault:
                # Only reachable on a retry: the lock keeps other writers out,
                # so the earlier attempt's write landed after all.
                if attempts == 1:
                    raise
                logger.info("Catalog append of %s@%s had already landed", module_path, version)
                return await self._committer.list(module_path)

        return await self._retry.run(f"commit {module_path}@{version}", attempt)

    async def _refresh_latest(self, module_path: str, versions: List[str]) -> bool:
        keys = ModuleKeys(module_path)
        try:
            latest = latest_of(module_path, versions)
            info = await self._store.get(keys.info(latest))
            if info is None:
                raise StoreReadFault(keys.info(latest), "info document missing", backend=self._store.name)
            await self._store.put(keys.latest, info)
        except Fault as fault:
            logger.warning("Could not refresh %s: %s", keys.latest, fault.message)
            return False
        logger.debug("%s -> %s", keys.latest, latest)
        return True

    # ── Sweep ────────────────────────────────────────────────────────

    async def sweep(self, module_path: str, *, grace: Optional[float] = None) -> List[str]:
        """
        Delete artifact objects of *module_path* whose version is not in the
        catalog (left behind by failed publishes).

        The lock only excludes publishers in this process, so a version is
        left alone while any of its objects is younger than *grace* seconds
        (the coordinator's ``sweep_grace`` if omitted): it may belong to a
        publish still in flight elsewhere. Objects of a version that gets
        committed while they are being deleted are written back.

        Returns:
            The deleted keys.
        """
        check_module_path(module_path)
        grace = self._sweep_grace if grace is None else grace
        keys = ModuleKeys(module_path)
        deleted: List[str] = []
        async with self._locks.hold(module_path):
            listed = set(await self._catalog.list(module_path))
            stored = await self._retry.run(
                f"list {keys.version_prefix}", self._store.list, keys.version_prefix,
            )
            orphans: Dict[str, List[str]] = {}
            for key in stored:
                try:
                    version = keys.version_of(key)
                except ValueError:
                    continue
                if version not in listed:
                    orphans.setdefault(version, []).append(key)

            cutoff = self._clock() - grace
            for version, candidates in orphans.items():
                deleted.extend(await self._sweep_version(module_path, version, candidates, cutoff))
        if deleted:
            logger.info("Swept %d orphaned object(s) of %s", len(deleted), module_path)
        return deleted

    async def _sweep_version(
        self, module_path: str, version: str, candidates: List[str], cutoff: float,
    ) -> List[str]:
        for key in candidates:
            written = await self._retry.run(f"stat {key}", self._store.modified, key)
            if written is not None and written > cutoff:
                logger.info("Keeping %s@%s: %s is within the grace period", module_path, version, key)
                return []

        removed: Dict[str, bytes] = {}
        for key in candidates:
            data = await self._retry.run(f"read {key}", self._store.get, key)
            if data is None:
                continue
            if await self._retry.run(f"delete {key}", self._store.delete, key):
                removed[key] = data

        if removed and await self._catalog.contains(module_path, version):
            logger.warning(
                "%s@%s was committed during sweep; restoring %d object(s)",
                module_path, version, len(removed),
            )
            for key, data in removed.items():
                await self._retry.run(f"restore {key}", self._store.put, key, data)
            return []
        return list(removed)
