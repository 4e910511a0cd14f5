"""
Artifact Builder: turns a source tree into a version's artifact set.

Usage::

    builder = ArtifactBuilder()
    artifacts = builder.build(
        "example.com/foo/bar",
        "0.0.123",
        DirectorySource("./checkout"),
    )
    artifacts.info   # b'{"Version":"v0.0.123","Time":...}'
    artifacts.mod    # go.mod bytes (or a synthesized "module ..." line)
    artifacts.zip    # deterministic archive

``build()`` is pure: it reads the source tree and nothing else. Identical
trees always yield byte-identical archives (sorted entries, fixed
timestamps, permissions and compression).
"""

from __future__ import annotations

import io
import logging
import re
import zipfile
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from ..faults import (
    InvalidVersionFault,
    PackagingFault,
    SourceUnreadableFault,
)
from ..protocol.paths import check_module_path
from ..semver import Version
from ..sources import SourceTree
from .core import ArtifactSet, ArtifactSums, format_time, now_rfc3339

logger = logging.getLogger("goproxy.artifacts.builder")

MANIFEST_NAME = "go.mod"
ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)
VCS_DIRS = frozenset({".git", ".hg", ".svn", ".bzr"})

_MODULE_DIRECTIVE = re.compile(r'^module\s+(?:"([^"]+)"|`([^`]+)`|(\S+))\s*$')
_MAJOR_SUFFIX = re.compile(r"/v(\d+)$")
_GOPKG_SUFFIX = re.compile(r"\.v(\d+)(?:-unstable)?$")


@dataclass(frozen=True)
class ArchiveLimits:
    """Size limits enforced on module archives (bytes, uncompressed)."""

    max_zip_size: int = 500 << 20
    max_mod_size: int = 16 << 20
    max_license_size: int = 16 << 20


# ── Helpers ─────────────────────────────────────────────────────────────


def parse_module_directive(manifest: bytes) -> Optional[str]:
    """Return the path named by the ``module`` directive, if any."""
    try:
        text = manifest.decode("utf-8")
    except UnicodeDecodeError:
        return None
    for raw in text.splitlines():
        line = raw.split("//", 1)[0].strip()
        match = _MODULE_DIRECTIVE.match(line)
        if match:
            return next(g for g in match.groups() if g)
    return None


def synthesize_manifest(module_path: str) -> bytes:
    """Minimal go.mod for modules that ship without one."""
    return f"module {module_path}\n".encode("utf-8")


def is_vendored_package(name: str) -> bool:
    """True for files inside a package below a ``vendor/`` directory."""
    if name.startswith("vendor/"):
        rest = name[len("vendor/"):]
    elif "/vendor/" in name:
        rest = name[name.index("/vendor/") + len("/vendor/"):]
    else:
        return False
    return "/" in rest


def check_major_version(module_path: str, version: Version, has_manifest: bool) -> None:
    """
    Enforce the major-version suffix rule.

    v2+ modules live at a path ending in ``/vN``; a v2+ version of a path
    without the suffix is only valid as ``+incompatible`` and only for
    sources without a go.mod.
    """
    text = str(version)
    if module_path.startswith("gopkg.in/"):
        match = _GOPKG_SUFFIX.search(module_path)
        if match is None:
            raise InvalidVersionFault(text, "gopkg.in path lacks a .vN suffix", module=module_path)
        wanted = int(match.group(1))
        if version.major != wanted and not (wanted == 1 and version.major == 0):
            raise InvalidVersionFault(
                text, f"major version does not match path suffix .v{wanted}", module=module_path,
            )
        return

    match = _MAJOR_SUFFIX.search(module_path)
    if match is not None:
        suffix = int(match.group(1))
        if suffix < 2 or version.major != suffix:
            raise InvalidVersionFault(
                text, f"major version does not match path suffix /v{suffix}", module=module_path,
            )
        if version.is_incompatible:
            raise InvalidVersionFault(
                text, "+incompatible is not allowed with a major-version suffix", module=module_path,
            )
        return

    if version.major >= 2:
        if not version.is_incompatible:
            raise InvalidVersionFault(
                text, f"module path must end in /v{version.major}", module=module_path,
            )
        if has_manifest:
            raise InvalidVersionFault(
                text, "+incompatible is not allowed for a module with a go.mod", module=module_path,
            )
    elif version.is_incompatible:
        raise InvalidVersionFault(
            text, "+incompatible is only valid for v2 and above", module=module_path,
        )


# ── Builder ─────────────────────────────────────────────────────────────


class ArtifactBuilder:
    """
    Builds the ``.info`` / ``.mod`` / ``.zip`` artifact set of a version.

    Args:
        clock: Zero-argument callable returning the publish timestamp as an
            RFC 3339 string or ``datetime``. Defaults to the current UTC time.
        limits: Archive size limits.
    """

    __slots__ = ("_clock", "_limits")

    def __init__(
        self,
        *,
        clock: Optional[Callable[[], object]] = None,
        limits: Optional[ArchiveLimits] = None,
    ) -> None:
        self._clock = clock or now_rfc3339
        self._limits = limits or ArchiveLimits()

    @property
    def limits(self) -> ArchiveLimits:
        return self._limits

    def build(self, module_path: str, version: str, source: SourceTree) -> ArtifactSet:
        """
        Produce the artifact set for ``module_path@version``.

        Raises:
            InvalidModulePathFault: Malformed module path.
            InvalidVersionFault: Malformed version, or one that breaks the
                major-version suffix rule.
            SourceUnreadableFault: The tree could not be listed or read.
            PackagingFault: Bad go.mod, bad file names, size limits, or an
                empty tree.
        """
        check_module_path(module_path)
        try:
            parsed = Version.parse(version)
        except InvalidVersionFault as fault:
            raise InvalidVersionFault(version, fault.metadata.get("reason", ""), module=module_path)
        canonical = str(parsed)

        names = self._list(module_path, canonical, source)
        manifest = self._manifest(module_path, canonical, source, names)
        check_major_version(module_path, parsed, has_manifest=manifest is not None)
        mod = manifest if manifest is not None else synthesize_manifest(module_path)

        files = self._collect(module_path, canonical, source, names)
        archive = self._archive(module_path, canonical, files)
        sums = ArtifactSums.compute(mod, archive)

        artifacts = ArtifactSet(
            module=module_path,
            version=canonical,
            time=self._timestamp(),
            mod=mod,
            zip=archive,
            sums=sums,
        )
        logger.debug(
            "Built %s@%s: %d file(s), %d archive bytes",
            module_path, canonical, len(files), len(archive),
        )
        return artifacts

    # ── Steps ────────────────────────────────────────────────────────

    def _timestamp(self) -> str:
        value = self._clock()
        if isinstance(value, datetime):
            return format_time(value)
        return str(value)

    @staticmethod
    def _list(module_path: str, version: str, source: SourceTree) -> List[str]:
        try:
            names = list(source.entries())
        except (OSError, KeyError) as exc:
            raise SourceUnreadableFault(module_path, version, str(exc))
        for name in names:
            if (
                not name
                or name.startswith("/")
                or "\\" in name
                or any(part in ("", ".", "..") for part in name.split("/"))
            ):
                raise PackagingFault(module_path, version, f"invalid file name {name!r}")
        return sorted(set(names))

    @staticmethod
    def _read(module_path: str, version: str, source: SourceTree, name: str) -> bytes:
        try:
            return source.read(name)
        except (OSError, KeyError) as exc:
            raise SourceUnreadableFault(module_path, version, str(exc), entry=name)

    def _manifest(
        self,
        module_path: str,
        version: str,
        source: SourceTree,
        names: List[str],
    ) -> Optional[bytes]:
        if MANIFEST_NAME not in names:
            logger.info(
                "%s@%s has no %s; synthesizing a minimal manifest",
                module_path, version, MANIFEST_NAME,
            )
            return None
        manifest = self._read(module_path, version, source, MANIFEST_NAME)
        if len(manifest) > self._limits.max_mod_size:
            raise PackagingFault(
                module_path, version,
                f"{MANIFEST_NAME} is {len(manifest)} bytes (limit {self._limits.max_mod_size})",
            )
        declared = parse_module_directive(manifest)
        if declared is None:
            raise PackagingFault(module_path, version, f"{MANIFEST_NAME} has no module directive")
        if declared != module_path:
            raise PackagingFault(
                module_path, version, f"{MANIFEST_NAME} declares module path '{declared}'",
            )
        return manifest

    def _collect(
        self,
        module_path: str,
        version: str,
        source: SourceTree,
        names: List[str],
    ) -> List[Tuple[str, bytes]]:
        nested = {
            name[: -len(MANIFEST_NAME) - 1]
            for name in names
            if name.endswith("/" + MANIFEST_NAME)
        }

        def excluded(name: str) -> bool:
            parts = name.split("/")
            if any(part in VCS_DIRS for part in parts[:-1]):
                return True
            if is_vendored_package(name):
                return True
            return any(name.startswith(prefix + "/") for prefix in nested)

        files: List[Tuple[str, bytes]] = []
        folded: Dict[str, str] = {}
        total = 0
        for name in names:
            if excluded(name):
                continue
            key = name.lower()
            if key in folded:
                raise PackagingFault(
                    module_path, version,
                    f"file names '{folded[key]}' and '{name}' differ only in case",
                )
            folded[key] = name
            data = self._read(module_path, version, source, name)
            if name == "LICENSE" and len(data) > self._limits.max_license_size:
                raise PackagingFault(
                    module_path, version,
                    f"LICENSE is {len(data)} bytes (limit {self._limits.max_license_size})",
                )
            total += len(data)
            if total > self._limits.max_zip_size:
                raise PackagingFault(
                    module_path, version,
                    f"module source exceeds {self._limits.max_zip_size} bytes",
                )
            files.append((name, data))

        if not files:
            raise PackagingFault(module_path, version, "source tree has no files to package")
        return files

    @staticmethod
    def _archive(module_path: str, version: str, files: List[Tuple[str, bytes]]) -> bytes:
        prefix = f"{module_path}@{version}/"
        buffer = io.BytesIO()
        try:
            with zipfile.ZipFile(buffer, mode="w") as zf:
                for name, data in files:
                    info = zipfile.ZipInfo(prefix + name, date_time=ZIP_EPOCH)
                    info.compress_type = zipfile.ZIP_DEFLATED
                    info.create_system = 3
                    info.external_attr = 0o644 << 16
                    zf.writestr(info, data, compresslevel=6)
        except (zipfile.LargeZipFile, ValueError, OSError) as exc:
            raise PackagingFault(module_path, version, f"archive creation failed: {exc}")
        return buffer.getvalue()
