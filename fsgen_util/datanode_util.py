import logging
import os
from dataclasses import dataclass

from fsgen_util.common import ConfigurationError, RemoteExecutionError
from fsgen_util.inventory_util import require_nonempty_dir

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncJob:
    source_path: str
    node: str
    target_path: str
    post_action: tuple


def node_index(nodes, node):
    """1-based position of the first datanode named ``node``."""
    for idx, candidate in enumerate(nodes, start=1):
        if candidate == node:
            return idx
    raise ConfigurationError(f"no such datanode as '{node}' configured in $DATANODES")


def staged_storage_path(fsgen_root, node_idx, slot_idx):
    # fsgen lays out datanodeXX/storageYY under its output directory
    return os.path.join(fsgen_root, f"datanode{node_idx:02d}", f"storage{slot_idx:02d}") + "/"


def build_jobs(node, node_idx, fsgen_root, storage_dirs, service_user="hdfs"):
    jobs = []
    for slot_idx, storage_dir in enumerate(storage_dirs, start=1):
        jobs.append(
            SyncJob(
                source_path=staged_storage_path(fsgen_root, node_idx, slot_idx),
                node=node,
                target_path=storage_dir,
                post_action=("chown", "-R", service_user, storage_dir),
            )
        )
    return jobs


def validate_jobs(jobs):
    for job in jobs:
        require_nonempty_dir(job.source_path, f"fsgen storage directory for {job.node}")


def jobs_for_node(inventory, node, fsgen_root, service_user="hdfs"):
    node = node.strip()
    if not node:
        raise ConfigurationError("You must supply a target datanode")
    idx = node_index(inventory.nodes, node)
    jobs = build_jobs(node, idx, fsgen_root, inventory.storage_dirs, service_user)
    validate_jobs(jobs)
    return jobs


def run_jobs(executor, jobs):
    """Run one node's jobs in slot order, each copy before its chown."""
    outputs = []
    for job in jobs:
        outputs.append(executor.copy_tree(job.source_path, job.node, job.target_path).output)
        outputs.append(executor.run_command(job.node, list(job.post_action)).output)
    return "".join(outputs)


def format_datanodes(executor, nodes, storage_dirs):
    """Wipe and recreate every storage directory on every datanode, in order.

    Stops at the first failing node.
    """
    for node in nodes:
        executor.run_command(node, ["rm", "-rf", *storage_dirs])
        executor.run_command(node, ["mkdir", "-p", *storage_dirs])
        logger.info(f"[datanode {node}] formatted {len(storage_dirs)} storage dirs")


def check_datanodes(executor, nodes):
    failed = []
    for node in nodes:
        try:
            result = executor.run_command(node, ["hostname"])
        except RemoteExecutionError as e:
            logger.error(f"[datanode {node}] unreachable: {e}")
            failed.append(node)
            continue
        logger.info(f"[datanode {node}] ok, hostname {result.stdout.strip()}")
    return failed
