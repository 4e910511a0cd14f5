"""
goproxy protocol - the Go module proxy read surface.

``paths`` holds the key layout shared by the writer and reader sides;
``handler`` (imported explicitly, as ``goproxy.protocol.handler``) answers
protocol requests from the store.
"""

from .paths import (
    ARTIFACT_EXTENSIONS,
    LATEST_SUFFIX,
    LIST_SUFFIX,
    VERSION_DIR,
    ModuleKeys,
    check_module_path,
    escape,
    unescape,
)

__all__ = [
    "ARTIFACT_EXTENSIONS",
    "LATEST_SUFFIX",
    "LIST_SUFFIX",
    "VERSION_DIR",
    "ModuleKeys",
    "check_module_path",
    "escape",
    "unescape",
]
