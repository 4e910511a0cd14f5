"""
goproxy faults - Domain-specific fault types.

Fault Taxonomy::

    Fault
    ├── ConfigFault
    │   └── ConfigInvalidFault
    ├── BuildFault                  (BuildFailed)
    │   ├── InvalidVersionFault
    │   ├── InvalidModulePathFault
    │   ├── SourceUnreadableFault
    │   └── PackagingFault
    ├── AlreadyPublishedFault
    ├── NotFoundFault
    │   └── NoVersionsFault
    └── StoreFault
        ├── StoreReadFault
        └── StoreWriteFault
"""

from typing import Any, Optional

from .core import Fault, FaultDomain, Severity


def _meta(module: str = "", version: str = "", **extra: Any) -> dict[str, Any]:
    meta: dict[str, Any] = {}
    if module:
        meta["module"] = module
    if version:
        meta["version"] = version
    meta.update(extra)
    return meta


# ============================================================================
# CONFIG Faults
# ============================================================================

class ConfigFault(Fault):
    """Base class for configuration faults."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.CONFIG,
            severity=Severity.FATAL,
            retryable=False,
            metadata=metadata,
        )


class ConfigInvalidFault(ConfigFault):
    """Configuration value is invalid."""

    def __init__(self, key: str, reason: str):
        super().__init__(
            code="CONFIG_INVALID",
            message=f"Configuration key '{key}' is invalid: {reason}",
            metadata={"key": key, "reason": reason},
        )


# ============================================================================
# BUILD Faults
# ============================================================================

class BuildFault(Fault):
    """
    Base class for artifact build failures.

    Build faults describe a bad publish request, never a transient
    condition, so they are not retryable.
    """

    def __init__(
        self,
        code: str = "BUILD_FAILED",
        message: str = "Artifact build failed",
        *,
        module: str = "",
        version: str = "",
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.BUILD,
            severity=Severity.ERROR,
            retryable=False,
            public=True,
            metadata=_meta(module, version, **(metadata or {})),
        )
        self.module = module
        self.version = version


class InvalidVersionFault(BuildFault):
    """Version string is not a well-formed semantic version."""

    def __init__(self, version: str, reason: str = "not a semantic version", *, module: str = ""):
        super().__init__(
            code="INVALID_VERSION",
            message=f"Invalid version '{version}': {reason}",
            module=module,
            version=version,
            metadata={"reason": reason},
        )


class InvalidModulePathFault(BuildFault):
    """Module path is malformed."""

    def __init__(self, module: str, reason: str):
        super().__init__(
            code="INVALID_MODULE_PATH",
            message=f"Invalid module path '{module}': {reason}",
            module=module,
            metadata={"reason": reason},
        )


class SourceUnreadableFault(BuildFault):
    """The source tree could not be listed or read."""

    def __init__(self, module: str, version: str, reason: str, *, entry: str = ""):
        where = f" (entry '{entry}')" if entry else ""
        super().__init__(
            code="SOURCE_UNREADABLE",
            message=f"Cannot read source of {module}@{version}{where}: {reason}",
            module=module,
            version=version,
            metadata={"reason": reason, "entry": entry},
        )


class PackagingFault(BuildFault):
    """Manifest or archive could not be produced from the source tree."""

    def __init__(self, module: str, version: str, reason: str):
        super().__init__(
            code="PACKAGING_FAILED",
            message=f"Cannot package {module}@{version}: {reason}",
            module=module,
            version=version,
            metadata={"reason": reason},
        )


# ============================================================================
# CATALOG Faults
# ============================================================================

class AlreadyPublishedFault(Fault):
    """
    Version is already in the module's catalog.

    A result variant rather than a failure for callers that republish
    idempotently; the stored artifacts are never overwritten.
    """

    def __init__(self, module: str, version: str):
        super().__init__(
            code="ALREADY_PUBLISHED",
            message=f"{module}@{version} is already published",
            domain=FaultDomain.CATALOG,
            severity=Severity.INFO,
            retryable=False,
            public=True,
            metadata=_meta(module, version),
        )
        self.module = module
        self.version = version


# ============================================================================
# PROTOCOL Faults
# ============================================================================

class NotFoundFault(Fault):
    """
    Requested module or version is unknown.

    ``reason`` is ``"module"`` when the module was never published and
    ``"version"`` when the module exists but the version does not. The
    distinction is diagnostic only.
    """

    def __init__(
        self,
        module: str,
        version: str = "",
        *,
        reason: str = "module",
        code: str = "NOT_FOUND",
        message: str = "",
    ):
        if not message:
            if reason == "module":
                message = f"module {module} has never been published"
            else:
                message = f"version {version} of module {module} has never been published"
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.PROTOCOL,
            severity=Severity.WARN,
            retryable=False,
            public=True,
            metadata=_meta(module, version, reason=reason),
        )
        self.module = module
        self.version = version
        self.reason = reason


class NoVersionsFault(NotFoundFault):
    """Catalog holds no versions, so there is no latest version."""

    def __init__(self, module: str):
        super().__init__(
            module,
            reason="module",
            code="NO_VERSIONS",
            message=f"module {module} has no published versions",
        )


# ============================================================================
# STORAGE Faults
# ============================================================================

class StoreFault(Fault):
    """Base class for backing store failures (transient by default)."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        key: str,
        backend: str = "",
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.STORAGE,
            severity=Severity.WARN,
            retryable=True,
            public=False,
            metadata={"key": key, "backend": backend, **(metadata or {})},
        )
        self.key = key
        self.backend = backend


class StoreReadFault(StoreFault):
    """Reading or listing an object failed."""

    def __init__(self, key: str, reason: str, *, backend: str = ""):
        super().__init__(
            code="STORE_READ_FAILED",
            message=f"Store read of '{key}' failed ({backend or 'store'}): {reason}",
            key=key,
            backend=backend,
            metadata={"reason": reason},
        )


class StoreWriteFault(StoreFault):
    """Writing or deleting an object failed."""

    def __init__(self, key: str, reason: str, *, backend: str = ""):
        super().__init__(
            code="STORE_WRITE_FAILED",
            message=f"Store write of '{key}' failed ({backend or 'store'}): {reason}",
            key=key,
            backend=backend,
            metadata={"reason": reason},
        )
