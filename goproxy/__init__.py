"""
goproxy - a Go module proxy store.

Publishes Go module versions as immutable artifact sets (``.info``,
``.mod``, ``.zip``) into an object store and serves them back through the
module proxy protocol:

- Artifacts: deterministic builder turning a source tree into an artifact set
- Catalog: append-only per-module version list with latest resolution
- Coordinator: per-module serialized, commit-last publishing
- Protocol: lock-free read handler and an ASGI read surface
- Storage: memory, filesystem and S3 object store adapters
- Faults: structured error handling with fault domains
"""

__version__ = "0.1.0"

from .artifacts import ArtifactBuilder, ArtifactSet, ArtifactSums
from .catalog import VersionCatalog
from .config import ConfigLoader, ProxyConfig
from .coordinator import ModuleLocks, PublishResult, UpdateCoordinator
from .faults import (
    AlreadyPublishedFault,
    BuildFault,
    Fault,
    InvalidModulePathFault,
    InvalidVersionFault,
    NotFoundFault,
    NoVersionsFault,
    PackagingFault,
    SourceUnreadableFault,
    StoreReadFault,
    StoreWriteFault,
)
from .protocol.handler import ProtocolHandler, ProtocolResponse
from .retry import RetryPolicy
from .server import ProxyApp
from .sources import DirectorySource, MemorySource, SourceTree
from .storage import FilesystemObjectStore, MemoryObjectStore, ObjectStore, S3ObjectStore

__all__ = [
    "__version__",
    # Artifacts
    "ArtifactBuilder",
    "ArtifactSet",
    "ArtifactSums",
    # Catalog & publishing
    "VersionCatalog",
    "ModuleLocks",
    "PublishResult",
    "UpdateCoordinator",
    # Reading
    "ProtocolHandler",
    "ProtocolResponse",
    "ProxyApp",
    # Sources & storage
    "SourceTree",
    "DirectorySource",
    "MemorySource",
    "ObjectStore",
    "MemoryObjectStore",
    "FilesystemObjectStore",
    "S3ObjectStore",
    # Config
    "ConfigLoader",
    "ProxyConfig",
    "RetryPolicy",
    # Faults
    "Fault",
    "BuildFault",
    "InvalidVersionFault",
    "InvalidModulePathFault",
    "SourceUnreadableFault",
    "PackagingFault",
    "AlreadyPublishedFault",
    "NotFoundFault",
    "NoVersionsFault",
    "StoreReadFault",
    "StoreWriteFault",
]
