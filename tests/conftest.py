"""
Shared test fixtures and helpers for the goproxy test suite.
"""

from typing import Dict, List, Optional

import pytest

from goproxy.artifacts import ArtifactBuilder
from goproxy.faults import StoreReadFault, StoreWriteFault
from goproxy.sources import MemorySource
from goproxy.storage import MemoryObjectStore, ObjectStore


MODULE = "example.com/foo/bar"
FIXED_TIME = "2024-01-02T03:04:05Z"


def module_source(module: str = MODULE, **extra) -> MemorySource:
    """A small, valid module tree for *module*."""
    files = {
        "go.mod": f"module {module}\n\ngo 1.21\n",
        "bar.go": "package bar\n\nfunc Bar() string { return \"bar\" }\n",
        "internal/util/util.go": "package util\n",
    }
    files.update(extra)
    return MemorySource(files)


class FlakyStore(ObjectStore):
    """
    Wraps a store and fails selected operations a fixed number of times.

    ``fail_puts={"…/@v/list": 1}`` makes the first put of that key raise a
    StoreWriteFault; ``apply_failed_puts`` lets the failing put land anyway
    (a lost acknowledgement).
    """

    def __init__(
        self,
        inner: ObjectStore,
        fail_puts: Optional[Dict[str, int]] = None,
        fail_gets: Optional[Dict[str, int]] = None,
        apply_failed_puts: bool = False,
    ):
        self.inner = inner
        self.fail_puts = dict(fail_puts or {})
        self.fail_gets = dict(fail_gets or {})
        self.apply_failed_puts = apply_failed_puts
        self.puts: List[str] = []

    @property
    def name(self) -> str:
        return f"flaky:{self.inner.name}"

    async def get(self, key):
        if self.fail_gets.get(key, 0) > 0:
            self.fail_gets[key] -= 1
            raise StoreReadFault(key, "injected read failure")
        return await self.inner.get(key)

    async def put(self, key, data):
        self.puts.append(key)
        if self.fail_puts.get(key, 0) > 0:
            self.fail_puts[key] -= 1
            if self.apply_failed_puts:
                await self.inner.put(key, data)
            raise StoreWriteFault(key, "injected write failure")
        await self.inner.put(key, data)

    async def exists(self, key):
        return await self.inner.exists(key)

    async def delete(self, key):
        return await self.inner.delete(key)

    async def list(self, prefix=""):
        return await self.inner.list(prefix)

    async def modified(self, key):
        return await self.inner.modified(key)


@pytest.fixture
def store():
    return MemoryObjectStore()


@pytest.fixture
def builder():
    return ArtifactBuilder(clock=lambda: FIXED_TIME)


@pytest.fixture
def source():
    return module_source()
