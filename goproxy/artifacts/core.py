"""
Artifact Core: the artifact set published for one module version.

Every published version is exactly three objects::

    <module>/@v/<version>.info   {"Version": "v1.2.0", "Time": "...", "Sums": {...}}
    <module>/@v/<version>.mod    go.mod contents
    <module>/@v/<version>.zip    module archive, entries under <module>@<version>/

Integrity uses Go's ``h1:`` directory hash: SHA-256 over the sorted lines
``"<sha256 hex>  <name>\\n"``, base64-encoded.
"""

from __future__ import annotations

import base64
import hashlib
import io
import json
import zipfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Tuple

HASH1_PREFIX = "h1:"


# ── Integrity ───────────────────────────────────────────────────────────


def hash1(files: Iterable[Tuple[str, bytes]]) -> str:
    """
    Compute the ``h1:`` hash of named file contents.

    Raises:
        ValueError: If a file name contains a newline.
    """
    summary = hashlib.sha256()
    for name, data in sorted(files, key=lambda item: item[0]):
        if "\n" in name:
            raise ValueError(f"file name contains a newline: {name!r}")
        line = f"{hashlib.sha256(data).hexdigest()}  {name}\n"
        summary.update(line.encode("utf-8"))
    return HASH1_PREFIX + base64.b64encode(summary.digest()).decode("ascii")


def mod_sum(mod: bytes) -> str:
    """``h1:`` hash of a go.mod file, as recorded in ``go.sum``."""
    return hash1([("go.mod", mod)])


def zip_sum(archive: bytes) -> str:
    """
    ``h1:`` hash over the entries of a module archive.

    Raises:
        zipfile.BadZipFile: If *archive* is not a zip file.
    """
    with zipfile.ZipFile(io.BytesIO(archive)) as zf:
        files = [(info.filename, zf.read(info)) for info in zf.infolist() if not info.is_dir()]
    return hash1(files)


def format_time(moment: datetime) -> str:
    """RFC 3339 UTC timestamp with second precision."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass(frozen=True)
class ArtifactSums:
    """Content digests of a version's manifest and archive."""

    mod: str = ""
    zip: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {"mod": self.mod, "zip": self.zip}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ArtifactSums":
        return cls(mod=d.get("mod", ""), zip=d.get("zip", ""))

    @classmethod
    def compute(cls, mod: bytes, archive: bytes) -> "ArtifactSums":
        return cls(mod=mod_sum(mod), zip=zip_sum(archive))

    def verify(self, mod: bytes, archive: bytes) -> bool:
        """Verify that *mod* and *archive* match these digests."""
        return self == self.__class__.compute(mod, archive)


# ── Artifact Set ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ArtifactSet:
    """
    Immutable artifacts of one (module, version) pair.

    ``info``, ``mod`` and ``zip`` are the exact bytes written to the store
    and served back by the read protocol.
    """

    module: str
    version: str
    time: str
    mod: bytes = field(repr=False)
    zip: bytes = field(repr=False)
    sums: ArtifactSums = field(default_factory=ArtifactSums)

    def info_document(self) -> Dict[str, Any]:
        return {
            "Version": self.version,
            "Time": self.time,
            "Sums": self.sums.to_dict(),
        }

    @property
    def info(self) -> bytes:
        return encode_info(self.info_document())

    def files(self) -> List[Tuple[str, bytes]]:
        """``(extension, bytes)`` pairs in store write order."""
        return [(".mod", self.mod), (".zip", self.zip), (".info", self.info)]

    def go_sum_lines(self) -> List[str]:
        """The two ``go.sum`` lines a client records for this version."""
        return [
            f"{self.module} {self.version} {self.sums.zip}",
            f"{self.module} {self.version}/go.mod {self.sums.mod}",
        ]

    @property
    def size_bytes(self) -> int:
        return len(self.mod) + len(self.zip) + len(self.info)

    def __repr__(self) -> str:
        return f"<ArtifactSet {self.module}@{self.version} zip={self.sums.zip or '<none>'}>"


def encode_info(document: Dict[str, Any]) -> bytes:
    return json.dumps(document, separators=(",", ":")).encode("utf-8")


def decode_info(data: bytes) -> Dict[str, Any]:
    """
    Parse an info document.

    Raises:
        ValueError: If *data* is not a JSON object with a ``Version`` field.
    """
    document = json.loads(data.decode("utf-8"))
    if not isinstance(document, dict) or "Version" not in document:
        raise ValueError("info document has no Version field")
    return document


def now_rfc3339() -> str:
    return format_time(datetime.now(timezone.utc))
