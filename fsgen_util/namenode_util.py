import logging
import os

from fsgen_util.common import FSIMAGE_NAME_FORMAT, ConfigurationError
from fsgen_util.inventory_util import require_file
from fsgen_util.remote_util import run_local

logger = logging.getLogger(__name__)


def human_size(num_bytes):
    size = float(num_bytes)
    for unit in ["B", "K", "M", "G", "T"]:
        if size < 1024 or unit == "T":
            return f"{size:.0f}{unit}" if unit == "B" else f"{size:.1f}{unit}"
        size /= 1024


def fsimage_paths(fsgen_dir, txid):
    name = FSIMAGE_NAME_FORMAT.format(txid=txid)
    xml_path = os.path.join(fsgen_dir, f"{name}.xml")
    bin_path = os.path.join(fsgen_dir, "name", "current", name)
    return xml_path, bin_path


def list_image_files(storage_dir):
    current = os.path.join(storage_dir, "current")
    listing = []
    for root, _, files in os.walk(current):
        for filename in sorted(files):
            path = os.path.join(root, filename)
            listing.append((path, os.path.getsize(path)))
    return listing


def load_namenode(fsgen_dir, settings, run=run_local):
    """Convert the fsgen XML image and install it as the namenode's only storage dir."""
    if not fsgen_dir:
        raise ConfigurationError("load_fsgen_nn: you must specify the fsgen directory to use.")
    xml_path, bin_path = fsimage_paths(fsgen_dir, settings.fsimage_txid)
    require_file(xml_path, "fsimage XML file")
    os.makedirs(os.path.dirname(bin_path), exist_ok=True)

    tools = settings.tools
    storage_dir = settings.namenode_dir
    run([tools.image_conversion, "oiv", "-p", "ReverseXML", "-i", xml_path, "-o", bin_path])
    run([tools.mirror_copy, "-ai", "--delete", os.path.join(fsgen_dir, "name") + "/", storage_dir])
    run(["chown", "-R", settings.service_user, storage_dir])
    logger.info(f"[namenode] created new fsimage directory {storage_dir}")

    listing = list_image_files(storage_dir)
    for path, size in listing:
        logger.info(f"[namenode] {human_size(size):>8} {path}")
    return listing
