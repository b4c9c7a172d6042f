import logging
import os
import shutil
from dataclasses import dataclass

from fsgen_util.common import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Inventory:
    nodes: tuple
    storage_dirs: tuple


def required_tools(settings):
    tools = [
        settings.tools.remote_shell,
        settings.tools.mirror_copy,
        settings.tools.image_conversion,
    ]
    if settings.ssh.use_password:
        # production clusters should use key files; sshpass is for test rigs
        tools.append(settings.tools.password_delegation)
    return tools


def check_tool_installed(tool):
    if shutil.which(tool) is None:
        raise ConfigurationError(
            f"Failed to locate {tool}: did you install it and make it available on the path?"
        )


def parse_datanodes(value):
    nodes = tuple((value or "").split())
    if not nodes:
        raise ConfigurationError(
            "You must set DATANODES to a whitespace-separated list of datanode hostnames."
        )
    return nodes


def parse_storage_dirs(value):
    storage_dirs = tuple((value or "").split())
    if not storage_dirs:
        raise ConfigurationError(
            "You must set STORAGE_DIRS to a whitespace-separated list of datanode storage directories."
        )
    for storage_dir in storage_dirs:
        if not os.path.isabs(storage_dir):
            raise ConfigurationError(
                f"storage directory '{storage_dir}' in STORAGE_DIRS is not an absolute path"
            )
    return storage_dirs


def resolve_inventory(settings) -> Inventory:
    for tool in required_tools(settings):
        check_tool_installed(tool)
    inventory = Inventory(
        nodes=parse_datanodes(settings.datanodes),
        storage_dirs=parse_storage_dirs(settings.storage_dirs),
    )
    logger.debug(
        f"{len(inventory.nodes)} datanodes, {len(inventory.storage_dirs)} storage dirs per node"
    )
    return inventory


def require_file(path, what):
    if not os.path.isfile(path):
        raise ConfigurationError(f"failed to find {what} at {path}")


def require_nonempty_dir(path, what):
    if not os.path.isdir(path):
        raise ConfigurationError(f"failed to find {what} at {path}")
    with os.scandir(path) as entries:
        if next(entries, None) is None:
            raise ConfigurationError(f"{what} at {path} is empty")
