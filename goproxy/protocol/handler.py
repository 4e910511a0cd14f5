"""
Read Protocol Handler: answers Go module proxy requests from the store.

Readers take no locks. A version is served only once it is in the module's
catalog, so artifacts of an in-flight or abandoned publish stay invisible
even though their objects may already exist.

Usage::

    handler = ProtocolHandler(store)
    await handler.list_versions("example.com/foo/bar")   # "v0.0.123\\n"
    await handler.get_zip("example.com/foo/bar", "v0.0.123")
    await handler.resolve("example.com/foo/bar/@latest")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..artifacts.core import ArtifactSums, decode_info
from ..catalog import VersionCatalog, latest_of, render_listing
from ..faults import BuildFault, NotFoundFault, StoreReadFault
from ..retry import NO_RETRY, RetryPolicy
from ..semver import canonical, is_valid
from ..storage.base import ObjectStore
from .paths import (
    ARTIFACT_EXTENSIONS,
    LATEST_SUFFIX,
    LIST_SUFFIX,
    VERSION_DIR,
    ModuleKeys,
    check_module_path,
    unescape,
)

logger = logging.getLogger("goproxy.protocol.handler")

CONTENT_TYPES = {
    "list": "text/plain; charset=utf-8",
    ".mod": "text/plain; charset=utf-8",
    ".info": "application/json",
    ".zip": "application/zip",
    "latest": "application/json",
}


@dataclass(frozen=True)
class ProtocolResponse:
    """Body and content type of a resolved protocol request."""

    body: bytes
    content_type: str


class ProtocolHandler:
    """
    Serves the read operations of the module proxy protocol.

    Args:
        store: Backing object store.
        retry: Retry policy for transient store read faults.
    """

    def __init__(self, store: ObjectStore, retry: Optional[RetryPolicy] = None) -> None:
        self._store = store
        self._retry = retry or NO_RETRY
        self._catalog = VersionCatalog(store, retry=self._retry)

    @property
    def store(self) -> ObjectStore:
        return self._store

    @property
    def catalog(self) -> VersionCatalog:
        return self._catalog

    # ── Operations ───────────────────────────────────────────────────

    async def list_versions(self, module: str) -> str:
        versions = await self._versions(module)
        return render_listing(versions).decode("utf-8")

    async def get_info(self, module: str, version: str) -> bytes:
        return await self._artifact(module, version, ".info")

    async def get_mod(self, module: str, version: str) -> bytes:
        return await self._artifact(module, version, ".mod")

    async def get_zip(self, module: str, version: str) -> bytes:
        return await self._artifact(module, version, ".zip")

    async def get_latest(self, module: str) -> bytes:
        """Info document of the latest version of *module*."""
        latest = latest_of(module, await self._versions(module))
        return await self._load(module, latest, ".info")

    async def verify(self, module: str, version: str) -> Dict[str, Any]:
        """
        Recompute the digests of a stored version and compare them with the
        ones recorded in its info document.
        """
        version = await self._listed(module, version)
        mod = await self._load(module, version, ".mod")
        archive = await self._load(module, version, ".zip")
        info = await self._load(module, version, ".info")
        try:
            recorded = ArtifactSums.from_dict(decode_info(info).get("Sums") or {})
        except ValueError as exc:
            raise StoreReadFault(ModuleKeys(module).info(version), f"corrupt info document: {exc}")
        actual = ArtifactSums.compute(mod, archive)
        ok = recorded == actual
        if not ok:
            logger.warning("Digest mismatch for %s@%s", module, version)
        return {
            "module": module,
            "version": version,
            "ok": ok,
            "recorded": recorded.to_dict(),
            "actual": actual.to_dict(),
        }

    async def resolve(self, path: str) -> ProtocolResponse:
        """
        Answer a raw protocol path (module path and version case-encoded).

        Raises:
            NotFoundFault: Unknown module, unknown version, or a path that
                is not a protocol request.
        """
        path = path.lstrip("/")
        if path.endswith("/" + LATEST_SUFFIX):
            module = self._decode_module(path[: -len(LATEST_SUFFIX) - 1])
            return ProtocolResponse(await self.get_latest(module), CONTENT_TYPES["latest"])

        if path.endswith("/" + LIST_SUFFIX):
            module = self._decode_module(path[: -len(LIST_SUFFIX) - 1])
            body = (await self.list_versions(module)).encode("utf-8")
            return ProtocolResponse(body, CONTENT_TYPES["list"])

        marker = "/" + VERSION_DIR
        if marker in path:
            escaped_module, name = path.rsplit(marker, 1)
            module = self._decode_module(escaped_module)
            for ext in ARTIFACT_EXTENSIONS:
                if name.endswith(ext) and len(name) > len(ext):
                    try:
                        version = unescape(name[: -len(ext)])
                    except ValueError:
                        raise NotFoundFault(module, name, reason="version")
                    body = await self._artifact(module, version, ext)
                    return ProtocolResponse(body, CONTENT_TYPES[ext])

        raise NotFoundFault(path, message=f"not a module proxy request: /{path}")

    # ── Internals ────────────────────────────────────────────────────

    @staticmethod
    def _decode_module(escaped: str) -> str:
        try:
            return unescape(escaped)
        except ValueError as exc:
            raise NotFoundFault(escaped, message=f"invalid module path {escaped!r}: {exc}")

    async def _versions(self, module: str) -> List[str]:
        try:
            check_module_path(module)
        except BuildFault as fault:
            raise NotFoundFault(module, message=f"invalid module path {module!r}: {fault.message}")
        versions = await self._catalog.read(module)
        if versions is None:
            raise NotFoundFault(module, reason="module")
        return versions

    async def _listed(self, module: str, version: str) -> str:
        versions = await self._versions(module)
        if not is_valid(version):
            raise NotFoundFault(module, version, reason="version")
        version = canonical(version)
        if version not in versions:
            raise NotFoundFault(module, version, reason="version")
        return version

    async def _artifact(self, module: str, version: str, ext: str) -> bytes:
        version = await self._listed(module, version)
        return await self._load(module, version, ext)

    async def _load(self, module: str, version: str, ext: str) -> bytes:
        key = ModuleKeys(module).artifact(version, ext)
        data = await self._retry.run(f"read {key}", self._store.get, key)
        if data is None:
            raise StoreReadFault(key, "object of a published version is missing", backend=self._store.name)
        return data
