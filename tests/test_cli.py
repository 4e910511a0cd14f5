"""
Tests for the goproxy command-line interface.
"""

import asyncio
import json

import pytest
from click.testing import CliRunner

from goproxy.cli.__main__ import cli
from goproxy.coordinator import UpdateCoordinator
from goproxy.protocol.paths import ModuleKeys
from goproxy.storage import FilesystemObjectStore

from tests.conftest import MODULE, module_source


@pytest.fixture
def store_root(tmp_path, builder):
    root = tmp_path / "store"
    coordinator = UpdateCoordinator(FilesystemObjectStore(str(root)), builder=builder)

    async def seed():
        await coordinator.publish(MODULE, "v0.0.123", module_source())
        await coordinator.publish(MODULE, "v0.0.124", module_source())

    asyncio.run(seed())
    return root


def invoke(store_root, *args):
    runner = CliRunner()
    return runner.invoke(cli, ["--backend", "filesystem", "--store", str(store_root), *args])


class TestReadCommands:

    def test_list(self, store_root):
        result = invoke(store_root, "list", MODULE)
        assert result.exit_code == 0, result.output
        assert "v0.0.123\nv0.0.124\n" in result.output

    def test_list_json(self, store_root):
        result = invoke(store_root, "list", MODULE, "--json-output")
        assert result.exit_code == 0, result.output
        payload = json.loads(result.output[result.output.index("{"):])
        assert payload["versions"] == ["v0.0.123", "v0.0.124"]

    def test_latest(self, store_root):
        result = invoke(store_root, "latest", MODULE)
        assert result.exit_code == 0, result.output
        assert result.output.startswith("v0.0.124")

    def test_info(self, store_root):
        result = invoke(store_root, "info", MODULE, "0.0.123")
        assert result.exit_code == 0, result.output
        assert json.loads(result.output)["Version"] == "v0.0.123"

    def test_verify(self, store_root):
        result = invoke(store_root, "verify", MODULE, "v0.0.123")
        assert result.exit_code == 0, result.output
        assert "Integrity OK" in result.output

    def test_verify_detects_tampering(self, store_root):
        keys = ModuleKeys(MODULE)
        store = FilesystemObjectStore(str(store_root))
        other = asyncio.run(store.get(keys.zip("v0.0.124")))
        asyncio.run(store.put(keys.zip("v0.0.123"), other))
        result = invoke(store_root, "verify", MODULE, "v0.0.123")
        assert result.exit_code == 1
        assert "Integrity FAILED" in result.output


class TestFailures:

    def test_unknown_module(self, store_root):
        result = invoke(store_root, "list", "example.com/none")
        assert result.exit_code == 1
        assert "never been published" in result.output

    def test_unknown_version(self, store_root):
        result = invoke(store_root, "info", MODULE, "v9.9.9")
        assert result.exit_code == 1

    def test_bad_config(self, tmp_path):
        path = tmp_path / "goproxy.yaml"
        path.write_text("bogus: 1\n")
        result = CliRunner().invoke(cli, ["--config", str(path), "list", MODULE])
        assert result.exit_code == 1
        assert "bogus" in result.output


class TestSweep:

    def test_sweep_removes_orphans(self, store_root):
        keys = ModuleKeys(MODULE)
        store = FilesystemObjectStore(str(store_root))
        asyncio.run(store.put(keys.zip("v0.0.125"), b"orphan"))
        result = invoke(store_root, "sweep", MODULE, "--grace", "0")
        assert result.exit_code == 0, result.output
        assert keys.zip("v0.0.125") in result.output
        assert "1 orphaned object(s) removed" in result.output
        assert asyncio.run(store.get(keys.zip("v0.0.123"))) is not None

    def test_sweep_keeps_fresh_orphans(self, store_root):
        keys = ModuleKeys(MODULE)
        store = FilesystemObjectStore(str(store_root))
        asyncio.run(store.put(keys.zip("v0.0.125"), b"in flight"))
        result = invoke(store_root, "sweep", MODULE)
        assert result.exit_code == 0, result.output
        assert "0 orphaned object(s) removed" in result.output
        assert asyncio.run(store.get(keys.zip("v0.0.125"))) == b"in flight"
