"""
goproxy artifacts: the per-version artifact set and its builder.

Quick start::

    from goproxy.artifacts import ArtifactBuilder
    from goproxy.sources import MemorySource

    artifacts = ArtifactBuilder().build(
        "example.com/foo/bar",
        "v0.0.123",
        MemorySource({"go.mod": "module example.com/foo/bar\\n", "bar.go": "package bar\\n"}),
    )
    artifacts.sums.zip   # h1:...
"""

from .core import (
    ArtifactSet,
    ArtifactSums,
    decode_info,
    encode_info,
    format_time,
    hash1,
    mod_sum,
    zip_sum,
)
from .builder import (
    ArchiveLimits,
    ArtifactBuilder,
    parse_module_directive,
    synthesize_manifest,
)

__all__ = [
    # Core
    "ArtifactSet",
    "ArtifactSums",
    "decode_info",
    "encode_info",
    "format_time",
    "hash1",
    "mod_sum",
    "zip_sum",
    # Builder
    "ArchiveLimits",
    "ArtifactBuilder",
    "parse_module_directive",
    "synthesize_manifest",
]
