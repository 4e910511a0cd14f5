"""
goproxy storage - adapters for the backing object store.

- **MemoryObjectStore**: ephemeral, test-friendly
- **FilesystemObjectStore**: files laid out as a ``file://`` GOPROXY
- **S3ObjectStore**: S3 / MinIO bucket (requires ``boto3``)
"""

from .base import ObjectStore
from .memory import MemoryObjectStore
from .filesystem import FilesystemObjectStore
from .s3 import S3ObjectStore

__all__ = [
    "ObjectStore",
    "MemoryObjectStore",
    "FilesystemObjectStore",
    "S3ObjectStore",
]
