"""
Tests for the update coordinator.

Covers:
- Publish round-trip through the read handler
- Re-publish behaviour
- Commit-last ordering and orphan sweeping
- Retries of transient store faults
- Per-module serialization and cross-module independence
- The two-version publish scenario
"""

import asyncio
import json

import pytest

from goproxy.coordinator import ModuleLocks, PublishResult, UpdateCoordinator
from goproxy.faults import (
    AlreadyPublishedFault,
    InvalidModulePathFault,
    InvalidVersionFault,
    NotFoundFault,
    PackagingFault,
    StoreReadFault,
    StoreWriteFault,
)
from goproxy.protocol.handler import ProtocolHandler
from goproxy.protocol.paths import ModuleKeys
from goproxy.retry import RetryPolicy
from goproxy.sources import MemorySource
from goproxy.storage import MemoryObjectStore

from tests.conftest import MODULE, FlakyStore, module_source


KEYS = ModuleKeys(MODULE)
OTHER = "example.com/other"


class ListReadFails(FlakyStore):
    """Fails only the n-th read of the module listing."""

    def __init__(self, inner, failing_read, **kwargs):
        super().__init__(inner, **kwargs)
        self.failing_read = failing_read
        self.list_reads = 0

    async def get(self, key):
        if key == KEYS.list:
            self.list_reads += 1
            if self.list_reads == self.failing_read:
                raise StoreReadFault(key, "injected read failure")
        return await super().get(key)


class PausedCommitStore(FlakyStore):
    """Holds the listing write until released."""

    def __init__(self, inner):
        super().__init__(inner)
        self.committing = asyncio.Event()
        self.release = asyncio.Event()

    async def put(self, key, data):
        if key == KEYS.list:
            self.committing.set()
            await self.release.wait()
        await super().put(key, data)


class CommitOnDelete(FlakyStore):
    """Another writer commits *listing* just before the first delete."""

    def __init__(self, inner, listing):
        super().__init__(inner)
        self.listing = listing

    async def delete(self, key):
        if not await self.inner.exists(KEYS.list):
            await self.inner.put(KEYS.list, self.listing)
        return await super().delete(key)


@pytest.fixture
def coordinator(store, builder):
    return UpdateCoordinator(store, builder=builder)


class TestPublish:

    @pytest.mark.asyncio
    async def test_round_trip(self, coordinator, store, source):
        result = await coordinator.publish(MODULE, "0.0.123", source)
        assert isinstance(result, PublishResult)
        assert result.created and result.latest_updated
        assert result.version == "v0.0.123"

        handler = ProtocolHandler(store)
        assert await handler.get_mod(MODULE, "v0.0.123") == result.artifacts.mod
        assert await handler.get_zip(MODULE, "v0.0.123") == result.artifacts.zip
        assert await handler.get_info(MODULE, "v0.0.123") == result.artifacts.info

    @pytest.mark.asyncio
    async def test_writes_exactly_the_artifact_set(self, coordinator, store, source):
        await coordinator.publish(MODULE, "v1.0.0", source)
        assert sorted(store.snapshot()) == sorted([
            KEYS.list, KEYS.latest, KEYS.info("v1.0.0"), KEYS.mod("v1.0.0"), KEYS.zip("v1.0.0"),
        ])

    @pytest.mark.asyncio
    async def test_latest_pointer(self, coordinator, store):
        await coordinator.publish(MODULE, "v1.0.0", module_source())
        await coordinator.publish(MODULE, "v0.9.0", module_source())
        assert await store.get(KEYS.latest) == await store.get(KEYS.info("v1.0.0"))

    @pytest.mark.asyncio
    async def test_latest_pointer_disabled(self, store, builder, source):
        coordinator = UpdateCoordinator(store, builder=builder, write_latest=False)
        result = await coordinator.publish(MODULE, "v1.0.0", source)
        assert not result.latest_updated
        assert KEYS.latest not in store

    @pytest.mark.asyncio
    async def test_to_dict(self, coordinator, source):
        result = await coordinator.publish(MODULE, "v1.0.0", source)
        data = result.to_dict()
        assert data["created"] is True
        assert data["sums"]["zip"] == result.artifacts.sums.zip
        assert json.dumps(data)


class TestRepublish:

    @pytest.mark.asyncio
    async def test_already_published(self, coordinator, store):
        await coordinator.publish(MODULE, "v1.0.0", module_source())
        before = store.snapshot()
        changed = module_source(**{"extra.go": "package bar\n"})
        with pytest.raises(AlreadyPublishedFault):
            await coordinator.publish(MODULE, "1.0.0", changed)
        assert store.snapshot() == before

    @pytest.mark.asyncio
    async def test_exist_ok(self, coordinator, store, source):
        await coordinator.publish(MODULE, "v1.0.0", source)
        before = store.snapshot()
        result = await coordinator.publish(MODULE, "v1.0.0", source, exist_ok=True)
        assert result.created is False
        assert result.artifacts is None
        assert store.snapshot() == before


class TestBuildFailures:

    @pytest.mark.asyncio
    async def test_nothing_written(self, coordinator, store):
        with pytest.raises(PackagingFault):
            await coordinator.publish(MODULE, "v1.0.0", MemorySource({}))
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_invalid_input(self, coordinator, store, source):
        with pytest.raises(InvalidVersionFault) as exc:
            await coordinator.publish(MODULE, "latest", source)
        assert exc.value.module == MODULE
        with pytest.raises(InvalidModulePathFault):
            await coordinator.publish("bad//path", "v1.0.0", source)
        assert len(store) == 0


class TestStoreFailures:

    @pytest.mark.asyncio
    async def test_artifact_write_retried(self, builder, source):
        flaky = FlakyStore(MemoryObjectStore(), fail_puts={KEYS.zip("v1.0.0"): 2})
        coordinator = UpdateCoordinator(flaky, builder=builder, retry=RetryPolicy(max_attempts=3, base_delay=0))
        result = await coordinator.publish(MODULE, "v1.0.0", source)
        assert result.created
        assert flaky.puts.count(KEYS.zip("v1.0.0")) == 3

    @pytest.mark.asyncio
    async def test_failed_write_leaves_invisible_orphans(self, builder, source):
        inner = MemoryObjectStore()
        flaky = FlakyStore(inner, fail_puts={KEYS.info("v1.0.0"): 5})
        coordinator = UpdateCoordinator(flaky, builder=builder, retry=RetryPolicy(max_attempts=2, base_delay=0))
        with pytest.raises(StoreWriteFault):
            await coordinator.publish(MODULE, "v1.0.0", source)

        assert KEYS.zip("v1.0.0") in inner
        assert KEYS.list not in inner
        handler = ProtocolHandler(inner)
        with pytest.raises(NotFoundFault):
            await handler.get_zip(MODULE, "v1.0.0")

        deleted = await UpdateCoordinator(inner).sweep(MODULE, grace=0)
        assert sorted(deleted) == sorted([KEYS.mod("v1.0.0"), KEYS.zip("v1.0.0")])
        assert len(inner) == 0

    @pytest.mark.asyncio
    async def test_commit_lost_acknowledgement(self, builder, source):
        flaky = FlakyStore(MemoryObjectStore(), fail_puts={KEYS.list: 2}, apply_failed_puts=True)
        coordinator = UpdateCoordinator(flaky, builder=builder, retry=RetryPolicy(max_attempts=2, base_delay=0))
        result = await coordinator.publish(MODULE, "v1.0.0", source)
        assert result.created
        assert await flaky.get(KEYS.list) == b"v1.0.0\n"

    @pytest.mark.asyncio
    async def test_commit_failure_surfaces(self, builder, source):
        flaky = FlakyStore(MemoryObjectStore(), fail_puts={KEYS.list: 10})
        coordinator = UpdateCoordinator(flaky, builder=builder, retry=RetryPolicy(max_attempts=2, base_delay=0))
        with pytest.raises(StoreWriteFault):
            await coordinator.publish(MODULE, "v1.0.0", source)
        assert await ProtocolHandler(flaky).catalog.list(MODULE) == []

    @pytest.mark.asyncio
    async def test_commit_attempts_bounded(self, builder, source):
        flaky = FlakyStore(MemoryObjectStore(), fail_puts={KEYS.list: 100})
        coordinator = UpdateCoordinator(flaky, builder=builder, retry=RetryPolicy(max_attempts=3, base_delay=0))
        with pytest.raises(StoreWriteFault):
            await coordinator.publish(MODULE, "v1.0.0", source)
        assert flaky.puts.count(KEYS.list) == 3

    @pytest.mark.asyncio
    async def test_read_after_lost_acknowledgement_retried(self, builder, source):
        flaky = ListReadFails(MemoryObjectStore(), failing_read=4, fail_puts={KEYS.list: 1}, apply_failed_puts=True)
        coordinator = UpdateCoordinator(flaky, builder=builder, retry=RetryPolicy(max_attempts=3, base_delay=0))
        result = await coordinator.publish(MODULE, "v1.0.0", source)
        assert result.created
        assert flaky.puts.count(KEYS.list) == 1
        assert await flaky.get(KEYS.list) == b"v1.0.0\n"

    @pytest.mark.asyncio
    async def test_latest_refresh_is_best_effort(self, builder, source):
        flaky = FlakyStore(MemoryObjectStore(), fail_puts={KEYS.latest: 10})
        coordinator = UpdateCoordinator(flaky, builder=builder)
        result = await coordinator.publish(MODULE, "v1.0.0", source)
        assert result.created
        assert result.latest_updated is False
        assert await ProtocolHandler(flaky).get_latest(MODULE) == result.artifacts.info


class TestSweep:

    @pytest.mark.asyncio
    async def test_keeps_catalogued_versions(self, coordinator, store, source):
        await coordinator.publish(MODULE, "v1.0.0", source)
        await store.put(KEYS.zip("v1.0.1"), b"orphan")
        deleted = await coordinator.sweep(MODULE, grace=0)
        assert deleted == [KEYS.zip("v1.0.1")]
        assert KEYS.zip("v1.0.0") in store
        assert KEYS.list in store
        assert await coordinator.sweep(MODULE, grace=0) == []

    @pytest.mark.asyncio
    async def test_keeps_recent_orphans(self):
        now = [1000.0]
        store = MemoryObjectStore(clock=lambda: now[0])
        for key in (KEYS.info("v1.0.1"), KEYS.mod("v1.0.1"), KEYS.zip("v1.0.1")):
            await store.put(key, b"orphan")
        coordinator = UpdateCoordinator(store, sweep_grace=900, clock=lambda: now[0])

        now[0] = 1100.0
        assert await coordinator.sweep(MODULE) == []
        assert len(store) == 3

        now[0] = 2000.0
        assert len(await coordinator.sweep(MODULE)) == 3
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_one_recent_object_keeps_the_version(self):
        now = [1000.0]
        store = MemoryObjectStore(clock=lambda: now[0])
        await store.put(KEYS.info("v1.0.1"), b"orphan")
        now[0] = 1950.0
        await store.put(KEYS.zip("v1.0.1"), b"orphan")
        coordinator = UpdateCoordinator(store, sweep_grace=900, clock=lambda: now[0])
        assert await coordinator.sweep(MODULE) == []
        assert KEYS.info("v1.0.1") in store

    @pytest.mark.asyncio
    async def test_publish_in_another_coordinator_survives(self, builder, source):
        inner = MemoryObjectStore()
        paused = PausedCommitStore(inner)
        publish = asyncio.create_task(
            UpdateCoordinator(paused, builder=builder).publish(MODULE, "v1.0.0", source)
        )
        await paused.committing.wait()

        assert await UpdateCoordinator(inner).sweep(MODULE) == []

        paused.release.set()
        result = await publish
        handler = ProtocolHandler(inner)
        assert await handler.list_versions(MODULE) == "v1.0.0\n"
        assert await handler.get_zip(MODULE, "v1.0.0") == result.artifacts.zip

    @pytest.mark.asyncio
    async def test_restores_version_committed_during_sweep(self):
        inner = MemoryObjectStore()
        objects = {
            KEYS.info("v1.0.1"): b"info",
            KEYS.mod("v1.0.1"): b"mod",
            KEYS.zip("v1.0.1"): b"zip",
        }
        for key, data in objects.items():
            await inner.put(key, data)

        deleted = await UpdateCoordinator(CommitOnDelete(inner, b"v1.0.1\n")).sweep(MODULE, grace=0)

        assert deleted == []
        for key, data in objects.items():
            assert await inner.get(key) == data


class TestConcurrency:

    @pytest.mark.asyncio
    async def test_same_module_serializes(self, builder):
        inner = MemoryObjectStore(latency=0.001)
        flaky = FlakyStore(inner)
        coordinator = UpdateCoordinator(flaky, builder=builder)

        results = await asyncio.gather(
            coordinator.publish(MODULE, "0.0.125", module_source()),
            coordinator.publish(MODULE, "0.0.126", module_source()),
        )
        assert all(r.created for r in results)
        assert sorted(await coordinator.catalog.list(MODULE)) == ["v0.0.125", "v0.0.126"]

        # Every write of the first publish precedes every write of the second
        owners = [("v0.0.125" in key, "v0.0.126" in key) for key in flaky.puts]
        first = [i for i, (a, _) in enumerate(owners) if a]
        second = [i for i, (_, b) in enumerate(owners) if b]
        assert max(first) < min(second) or max(second) < min(first)
        assert len(coordinator.locks) == 0

    @pytest.mark.asyncio
    async def test_many_concurrent_publishes_lose_nothing(self, builder):
        coordinator = UpdateCoordinator(MemoryObjectStore(latency=0.0005), builder=builder)
        versions = [f"v0.1.{n}" for n in range(8)]
        await asyncio.gather(*(
            coordinator.publish(MODULE, version, module_source()) for version in versions
        ))
        assert sorted(await coordinator.catalog.list(MODULE)) == sorted(versions)

    @pytest.mark.asyncio
    async def test_concurrent_duplicate_publish(self, coordinator):
        results = await asyncio.gather(
            coordinator.publish(MODULE, "v1.0.0", module_source()),
            coordinator.publish(MODULE, "v1.0.0", module_source()),
            return_exceptions=True,
        )
        assert sum(isinstance(r, PublishResult) for r in results) == 1
        assert sum(isinstance(r, AlreadyPublishedFault) for r in results) == 1
        assert await coordinator.catalog.list(MODULE) == ["v1.0.0"]

    @pytest.mark.asyncio
    async def test_different_modules_do_not_block(self, coordinator):
        async with coordinator.locks.hold(MODULE):
            result = await asyncio.wait_for(
                coordinator.publish(OTHER, "v1.0.0", module_source(OTHER)), timeout=5,
            )
            assert result.created
            with pytest.raises(asyncio.TimeoutError):
                await asyncio.wait_for(
                    coordinator.publish(MODULE, "v1.0.0", module_source()), timeout=0.05,
                )
        assert len(coordinator.locks) == 0
        assert await coordinator.catalog.list(MODULE) == []


class TestModuleLocks:

    @pytest.mark.asyncio
    async def test_released_when_idle(self):
        locks = ModuleLocks()
        async with locks.hold("a"):
            assert locks.locked("a")
            assert not locks.locked("b")
            assert len(locks) == 1
        assert len(locks) == 0


class TestScenario:

    @pytest.mark.asyncio
    async def test_two_versions(self, coordinator, store):
        handler = ProtocolHandler(store)

        first = await coordinator.publish(MODULE, "0.0.123", module_source())
        zip_123 = await handler.get_zip(MODULE, "v0.0.123")
        assert zip_123 == first.artifacts.zip
        assert await handler.list_versions(MODULE) == "v0.0.123\n"

        await coordinator.publish(MODULE, "0.0.124", module_source(**{"new.go": "package bar\n"}))
        assert await handler.list_versions(MODULE) == "v0.0.123\nv0.0.124\n"
        assert await coordinator.catalog.resolve_latest(MODULE) == "v0.0.124"
        assert json.loads(await handler.get_latest(MODULE))["Version"] == "v0.0.124"
        assert await handler.get_zip(MODULE, "v0.0.123") == zip_123
