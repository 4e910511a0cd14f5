"""
goproxy faults - typed fault signals for the proxy engine.

Every failure surfaced by the builder, the catalog, the coordinator, the
store adapters and the read handler is a :class:`Fault` carrying a stable
code, a domain, a severity and retry semantics.
"""

from .core import (
    DOMAIN_DEFAULTS,
    Fault,
    FaultDomain,
    Severity,
)

from .domains import (
    AlreadyPublishedFault,
    BuildFault,
    ConfigFault,
    ConfigInvalidFault,
    InvalidModulePathFault,
    InvalidVersionFault,
    NotFoundFault,
    NoVersionsFault,
    PackagingFault,
    SourceUnreadableFault,
    StoreFault,
    StoreReadFault,
    StoreWriteFault,
)

__all__ = [
    # Core types
    "DOMAIN_DEFAULTS",
    "Fault",
    "FaultDomain",
    "Severity",
    # Config
    "ConfigFault",
    "ConfigInvalidFault",
    # Build
    "BuildFault",
    "InvalidVersionFault",
    "InvalidModulePathFault",
    "SourceUnreadableFault",
    "PackagingFault",
    # Catalog
    "AlreadyPublishedFault",
    # Protocol
    "NotFoundFault",
    "NoVersionsFault",
    # Storage
    "StoreFault",
    "StoreReadFault",
    "StoreWriteFault",
]
