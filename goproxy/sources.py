"""
Source trees: the input capability of the artifact builder.

A source tree exposes two operations:

- ``entries()``: relative, ``/``-separated names of every regular file
- ``read(name)``: the bytes of one entry

Concrete sources: :class:`DirectorySource` (a checkout on local disk) and
:class:`MemorySource` (an in-memory mapping, also used to snapshot sources
kept in an object store).
"""

from __future__ import annotations

import abc
import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Iterable, List, Mapping, Union

if TYPE_CHECKING:
    from .storage.base import ObjectStore

logger = logging.getLogger("goproxy.sources")


class SourceTree(abc.ABC):
    """Read-only view of a module's file tree."""

    @abc.abstractmethod
    def entries(self) -> List[str]:
        """List all regular files as relative ``/``-separated names."""

    @abc.abstractmethod
    def read(self, name: str) -> bytes:
        """Read one entry. Raises ``KeyError`` or ``OSError`` on failure."""

    def has(self, name: str) -> bool:
        return name in self.entries()


class DirectorySource(SourceTree):
    """
    Source tree rooted at a directory on disk.

    Symlinks and other non-regular files are skipped.
    """

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def entries(self) -> List[str]:
        if not self.root.is_dir():
            raise NotADirectoryError(f"Source root is not a directory: {self.root}")
        names: List[str] = []
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames[:] = [d for d in dirnames if not os.path.islink(os.path.join(dirpath, d))]
            for filename in filenames:
                full = os.path.join(dirpath, filename)
                if os.path.islink(full) or not os.path.isfile(full):
                    continue
                names.append(Path(full).relative_to(self.root).as_posix())
        return sorted(names)

    def read(self, name: str) -> bytes:
        return (self.root / name).read_bytes()

    def has(self, name: str) -> bool:
        return (self.root / name).is_file()

    def __repr__(self) -> str:
        return f"<DirectorySource {self.root}>"


class MemorySource(SourceTree):
    """Source tree held in memory: ``{"go.mod": b"...", "pkg/a.go": b"..."}``."""

    def __init__(self, files: Mapping[str, Union[bytes, str]] = None):
        self._files: Dict[str, bytes] = {}
        for name, data in (files or {}).items():
            self._files[name] = data.encode("utf-8") if isinstance(data, str) else bytes(data)

    def entries(self) -> List[str]:
        return sorted(self._files)

    def read(self, name: str) -> bytes:
        return self._files[name]

    def has(self, name: str) -> bool:
        return name in self._files

    def __len__(self) -> int:
        return len(self._files)

    def __repr__(self) -> str:
        return f"<MemorySource files={len(self._files)}>"

    @classmethod
    async def from_store(
        cls,
        store: "ObjectStore",
        prefix: str,
        *,
        exclude: Iterable[str] = ("@v/", "@latest"),
    ) -> "MemorySource":
        """
        Snapshot the objects under *prefix* into a source tree.

        Keys are made relative to *prefix*; keys whose relative name starts
        with one of *exclude* (the proxy's own artifacts) are skipped.
        """
        base = prefix.rstrip("/") + "/"
        skip = tuple(exclude)
        files: Dict[str, bytes] = {}
        for key in await store.list(base):
            name = key[len(base):]
            if not name or name.startswith(skip):
                continue
            data = await store.get(key)
            if data is not None:
                files[name] = data
        logger.debug("Snapshot %d source file(s) from %s", len(files), base)
        return cls(files)
