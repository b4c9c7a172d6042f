import os
import shutil
import threading
import time

import pytest

from fsgen_util.common import RemoteExecutionError
from fsgen_util.config_util import FsgenSettings, SSHSettings, ToolSettings
from fsgen_util.inventory_util import Inventory
from fsgen_util.remote_util import RemoteResult


class RecordingExecutor:
    """Stands in for RemoteExecutor; records calls and fails chosen nodes."""

    def __init__(self, fail_nodes=(), delay=0.0):
        self.fail_nodes = set(fail_nodes)
        self.delay = delay
        self.calls = []
        self._lock = threading.Lock()
        self.active = 0
        self.max_active = 0

    def _enter(self):
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)

    def _leave(self):
        with self._lock:
            self.active -= 1

    def copy_tree(self, source, node, dest):
        self._enter()
        try:
            with self._lock:
                self.calls.append(("copy", node, source, dest))
            if self.delay:
                time.sleep(self.delay)
            if node in self.fail_nodes:
                raise RemoteExecutionError(node, ["rsync", source, dest], output="connection refused", returncode=255)
            return RemoteResult(node, ["rsync"], 0, "", "")
        finally:
            self._leave()

    def run_command(self, node, argv):
        with self._lock:
            self.calls.append(("run", node, tuple(argv)))
        if node in self.fail_nodes:
            raise RemoteExecutionError(node, argv, output="connection refused", returncode=255)
        return RemoteResult(node, list(argv), 0, f"{node}\n", "")

    def nodes_touched(self):
        return [call[1] for call in self.calls]


class LocalDiskExecutor:
    """Runs rm/mkdir against a per-node directory under a local root."""

    def __init__(self, root):
        self.root = root
        self.calls = []

    def local_path(self, node, path):
        return os.path.join(self.root, node, path.lstrip("/"))

    def run_command(self, node, argv):
        self.calls.append((node, tuple(argv)))
        cmd, flag, *paths = argv
        for path in paths:
            local = self.local_path(node, path)
            if cmd == "rm" and flag == "-rf":
                shutil.rmtree(local, ignore_errors=True)
            elif cmd == "mkdir" and flag == "-p":
                os.makedirs(local, exist_ok=True)
            else:
                raise AssertionError(f"unexpected command {argv}")
        return RemoteResult(node, list(argv), 0, "", "")


@pytest.fixture
def recording_executor():
    return RecordingExecutor()


@pytest.fixture
def settings(tmp_path):
    return FsgenSettings(
        datanodes="h1 h2",
        storage_dirs="/dfs/dn1 /dfs/dn2",
        ssh=SSHSettings(),
        tools=ToolSettings(),
        namenode_dir=str(tmp_path / "nn"),
        progress=False,
    )


def stage_fsgen_tree(root, node_count, slot_count):
    for node_idx in range(1, node_count + 1):
        for slot_idx in range(1, slot_count + 1):
            slot = root / f"datanode{node_idx:02d}" / f"storage{slot_idx:02d}" / "current"
            slot.mkdir(parents=True)
            (slot / "VERSION").write_text("storageType=DATA_NODE\n")
    return root


@pytest.fixture
def staged_fsgen(tmp_path):
    """fsgen output for six datanodes with two storage slots each."""
    return stage_fsgen_tree(tmp_path / "fsgen", 6, 2)


@pytest.fixture
def six_node_inventory():
    return Inventory(nodes=("A", "B", "C", "D", "E", "F"), storage_dirs=("/dfs/dn1", "/dfs/dn2"))
