"""
Module path validation, case-encoding and store key layout.

Module paths and versions are case-encoded before they become store keys
or URL paths: every upper-case letter is replaced by ``!`` followed by its
lower-case form (``github.com/Azure/go`` → ``github.com/!azure/go``), so
keys stay unique on case-insensitive stores.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from ..faults import InvalidModulePathFault

_ELEMENT_RE = re.compile(r"^[A-Za-z0-9._~-]+$")

LIST_SUFFIX = "@v/list"
LATEST_SUFFIX = "@latest"
VERSION_DIR = "@v/"
ARTIFACT_EXTENSIONS = (".info", ".mod", ".zip")


def check_module_path(path: str) -> str:
    """
    Validate a module path and return it unchanged.

    Raises:
        InvalidModulePathFault: On empty paths, leading or trailing slashes,
            empty, ``.`` or ``..`` elements, or characters outside ``[A-Za-z0-9._~-]``.
    """
    if not isinstance(path, str) or not path:
        raise InvalidModulePathFault(str(path), "empty path")
    if path.startswith("/") or path.endswith("/"):
        raise InvalidModulePathFault(path, "leading or trailing slash")
    for element in path.split("/"):
        if not element:
            raise InvalidModulePathFault(path, "empty path element")
        if element in (".", ".."):
            raise InvalidModulePathFault(path, f"relative path element '{element}'")
        if not _ELEMENT_RE.match(element):
            raise InvalidModulePathFault(path, f"invalid characters in element '{element}'")
        if element.startswith(".") or element.endswith("."):
            raise InvalidModulePathFault(path, f"element '{element}' starts or ends with a dot")
    return path


def escape(text: str) -> str:
    """Case-encode *text* (module path or version)."""
    if "!" in text:
        raise ValueError(f"'!' is not allowed in '{text}'")
    out = []
    for ch in text:
        if "A" <= ch <= "Z":
            out.append("!" + ch.lower())
        else:
            out.append(ch)
    return "".join(out)


def unescape(text: str) -> str:
    """
    Reverse :func:`escape`.

    Raises:
        ValueError: If *text* contains upper-case letters or a dangling ``!``.
    """
    out = []
    bang = False
    for ch in text:
        if bang:
            if not ("a" <= ch <= "z"):
                raise ValueError(f"invalid escape sequence in '{text}'")
            out.append(ch.upper())
            bang = False
        elif ch == "!":
            bang = True
        elif "A" <= ch <= "Z":
            raise ValueError(f"unescaped upper-case letter in '{text}'")
        else:
            out.append(ch)
    if bang:
        raise ValueError(f"dangling '!' in '{text}'")
    return "".join(out)


@dataclass(frozen=True)
class ModuleKeys:
    """Store keys of one module's namespace."""

    module: str

    @property
    def root(self) -> str:
        return escape(self.module)

    @property
    def list(self) -> str:
        return f"{self.root}/{LIST_SUFFIX}"

    @property
    def latest(self) -> str:
        return f"{self.root}/{LATEST_SUFFIX}"

    @property
    def version_prefix(self) -> str:
        return f"{self.root}/{VERSION_DIR}"

    def artifact(self, version: str, ext: str) -> str:
        if ext not in ARTIFACT_EXTENSIONS:
            raise ValueError(f"unknown artifact extension {ext!r}")
        return f"{self.version_prefix}{escape(version)}{ext}"

    def info(self, version: str) -> str:
        return self.artifact(version, ".info")

    def mod(self, version: str) -> str:
        return self.artifact(version, ".mod")

    def zip(self, version: str) -> str:
        return self.artifact(version, ".zip")

    def version_of(self, key: str) -> str:
        """
        Recover the (unescaped) version from an artifact key.

        Raises:
            ValueError: If *key* is not an artifact key of this module.
        """
        if not key.startswith(self.version_prefix):
            raise ValueError(f"'{key}' is outside {self.version_prefix}")
        name = key[len(self.version_prefix):]
        for ext in ARTIFACT_EXTENSIONS:
            if name.endswith(ext):
                return unescape(name[: -len(ext)])
        raise ValueError(f"'{key}' is not an artifact key")
