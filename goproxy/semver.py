"""
Semantic versions as the module proxy protocol understands them.

Versions follow semver 2.0 with Go's mandatory ``v`` prefix::

    v1.4.2
    v0.9.0-beta.1
    v2.0.0+incompatible

Publish requests may omit the prefix (``0.0.123``); :func:`canonical`
always returns the prefixed form. Build metadata is preserved in the
canonical string but ignored for precedence.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from .faults import InvalidVersionFault

_NUMERIC = r"0|[1-9]\d*"
_IDENT = r"[0-9A-Za-z-]+"

_VERSION_RE = re.compile(
    rf"^v?(?P<major>{_NUMERIC})\.(?P<minor>{_NUMERIC})\.(?P<patch>{_NUMERIC})"
    rf"(?:-(?P<prerelease>{_IDENT}(?:\.{_IDENT})*))?"
    rf"(?:\+(?P<build>{_IDENT}(?:\.{_IDENT})*))?$"
)


@dataclass(frozen=True)
class Version:
    """Parsed semantic version."""

    major: int
    minor: int
    patch: int
    prerelease: Tuple[str, ...] = ()
    build: Tuple[str, ...] = ()

    @classmethod
    def parse(cls, text: str) -> "Version":
        """
        Parse *text*, with or without the ``v`` prefix.

        Raises:
            InvalidVersionFault: If *text* is not a full semantic version.
        """
        if not isinstance(text, str) or not text:
            raise InvalidVersionFault(str(text), "empty version")
        match = _VERSION_RE.match(text)
        if match is None:
            raise InvalidVersionFault(text, "expected vMAJOR.MINOR.PATCH[-PRERELEASE][+BUILD]")

        prerelease: Tuple[str, ...] = ()
        if match.group("prerelease"):
            prerelease = tuple(match.group("prerelease").split("."))
            for ident in prerelease:
                if ident.isdigit() and len(ident) > 1 and ident.startswith("0"):
                    raise InvalidVersionFault(
                        text, f"numeric pre-release identifier '{ident}' has a leading zero",
                    )

        build: Tuple[str, ...] = ()
        if match.group("build"):
            build = tuple(match.group("build").split("."))

        return cls(
            major=int(match.group("major")),
            minor=int(match.group("minor")),
            patch=int(match.group("patch")),
            prerelease=prerelease,
            build=build,
        )

    @property
    def is_prerelease(self) -> bool:
        return bool(self.prerelease)

    @property
    def is_incompatible(self) -> bool:
        """``+incompatible`` marks a v2+ release of a module without a major-version suffix."""
        return self.build == ("incompatible",)

    def precedence_key(self) -> tuple:
        """
        Sort key implementing semver precedence.

        A release sorts above any of its pre-releases; numeric pre-release
        identifiers sort below alphanumeric ones; build metadata is ignored.
        """
        if not self.prerelease:
            return (self.major, self.minor, self.patch, 1, ())
        idents = tuple(
            (0, int(ident), "") if ident.isdigit() else (1, 0, ident)
            for ident in self.prerelease
        )
        return (self.major, self.minor, self.patch, 0, idents)

    def __str__(self) -> str:
        text = f"v{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += "-" + ".".join(self.prerelease)
        if self.build:
            text += "+" + ".".join(self.build)
        return text


def canonical(text: str) -> str:
    """Return the ``v``-prefixed canonical form of *text*."""
    return str(Version.parse(text))


def is_valid(text: str) -> bool:
    try:
        Version.parse(text)
    except InvalidVersionFault:
        return False
    return True


def compare(a: str, b: str) -> int:
    """Compare two versions by precedence: -1, 0 or 1."""
    ka = Version.parse(a).precedence_key()
    kb = Version.parse(b).precedence_key()
    return (ka > kb) - (ka < kb)


def select_latest(versions: Iterable[str]) -> Optional[str]:
    """
    Pick the latest version from *versions* given in publish order.

    The highest-precedence release wins; among releases of equal precedence
    (differing only in build metadata) the one appended last wins. When no
    release exists the most recently published entry is returned.
    """
    best: Optional[str] = None
    best_key: Optional[tuple] = None
    last: Optional[str] = None
    for text in versions:
        last = text
        parsed = Version.parse(text)
        if parsed.is_prerelease:
            continue
        key = parsed.precedence_key()
        if best_key is None or key >= best_key:
            best, best_key = text, key
    return best if best is not None else last
