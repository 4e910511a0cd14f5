"""
Filesystem object store - objects as files under a root directory.

The on-disk layout is exactly the proxy layout, so the root directory can
be handed to Go tooling directly (``GOPROXY=file:///path/to/root``)::

    <root>/
      example.com/foo/bar/@v/list
      example.com/foo/bar/@v/v0.0.123.info
      example.com/foo/bar/@v/v0.0.123.mod
      example.com/foo/bar/@v/v0.0.123.zip
      example.com/foo/bar/@latest

Writes go to a temporary sibling file that is renamed into place, so a
reader never sees a partially written object.
"""

from __future__ import annotations

import logging
import os
import uuid
from pathlib import Path
from typing import List, Optional

from ..faults import StoreReadFault, StoreWriteFault
from .base import ObjectStore

logger = logging.getLogger("goproxy.storage.filesystem")

_TMP_SUFFIX = ".tmp"


class FilesystemObjectStore(ObjectStore):
    """Persistent filesystem object store."""

    __slots__ = ("root",)

    def __init__(self, root: str = "goproxy-store") -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    @property
    def name(self) -> str:
        return f"filesystem:{self.root}"

    # ── Helpers ──────────────────────────────────────────────────────

    def _path(self, key: str) -> Path:
        parts = key.split("/")
        if not key or any(part in ("", ".", "..") for part in parts):
            raise ValueError(f"Invalid object key: {key!r}")
        return self.root.joinpath(*parts)

    @staticmethod
    def _is_temp(name: str) -> bool:
        return name.startswith(".") and name.endswith(_TMP_SUFFIX)

    # ── CRUD ─────────────────────────────────────────────────────────

    async def get(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        try:
            return path.read_bytes()
        except (FileNotFoundError, NotADirectoryError):
            return None
        except OSError as exc:
            raise StoreReadFault(key, str(exc), backend=self.name)

    async def put(self, key: str, data: bytes) -> None:
        path = self._path(key)
        tmp = path.with_name(f".{path.name}.{uuid.uuid4().hex}{_TMP_SUFFIX}")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_bytes(data)
            tmp.replace(path)  # atomic on POSIX
        except OSError as exc:
            if tmp.exists():
                tmp.unlink()
            raise StoreWriteFault(key, str(exc), backend=self.name)
        logger.debug("Wrote %s (%d bytes)", key, len(data))

    async def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    async def delete(self, key: str) -> bool:
        path = self._path(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise StoreWriteFault(key, str(exc), backend=self.name)
        logger.debug("Deleted %s", key)
        return True

    async def modified(self, key: str) -> Optional[float]:
        try:
            return self._path(key).stat().st_mtime
        except (FileNotFoundError, NotADirectoryError):
            return None
        except OSError as exc:
            raise StoreReadFault(key, str(exc), backend=self.name)

    async def list(self, prefix: str = "") -> List[str]:
        # Walk only the deepest directory the prefix fully names.
        head = prefix.rsplit("/", 1)[0] if "/" in prefix else ""
        start = self.root.joinpath(*head.split("/")) if head else self.root
        if not start.is_dir():
            return []
        keys: List[str] = []
        try:
            for dirpath, _dirnames, filenames in os.walk(start):
                for filename in filenames:
                    if self._is_temp(filename):
                        continue
                    key = Path(dirpath, filename).relative_to(self.root).as_posix()
                    if key.startswith(prefix):
                        keys.append(key)
        except OSError as exc:
            raise StoreReadFault(prefix, str(exc), backend=self.name)
        return sorted(keys)

    @property
    def size_bytes(self) -> int:
        """Total size of all stored objects in bytes."""
        total = 0
        for dirpath, _dirs, files in os.walk(self.root):
            for f in files:
                total += os.path.getsize(os.path.join(dirpath, f))
        return total
