import logging
import os
from dataclasses import dataclass, field

from hydra import compose, initialize_config_dir
from hydra.errors import HydraException
from omegaconf import DictConfig
from omegaconf.errors import OmegaConfBaseException

from fsgen_util.common import ConfigurationError

CONFIG_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "configs")
CONFIG_NAME = "fsgen"
LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'


@dataclass(frozen=True)
class SSHSettings:
    user: str = None
    password: str = field(default=None, repr=False)
    port: int = None
    config_file: str = None
    insecure_skip_host_verification: bool = True

    @property
    def use_password(self):
        return self.password is not None


@dataclass(frozen=True)
class ToolSettings:
    remote_shell: str = "ssh"
    mirror_copy: str = "rsync"
    password_delegation: str = "sshpass"
    image_conversion: str = "hdfs"


@dataclass(frozen=True)
class FsgenSettings:
    datanodes: str
    storage_dirs: str
    ssh: SSHSettings
    tools: ToolSettings
    namenode_dir: str = "/dfs/nn"
    fsimage_txid: int = 1
    service_user: str = "hdfs"
    max_concurrency: int = 5
    progress: bool = True
    log_level: str = "INFO"
    log_file: str = None


def load_config(overrides=None) -> DictConfig:
    """Compose the fsgen config, applying hydra-style ``key=value`` overrides."""
    try:
        with initialize_config_dir(version_base=None, config_dir=CONFIG_DIR):
            return compose(config_name=CONFIG_NAME, overrides=list(overrides or []))
    except HydraException as e:
        raise ConfigurationError(f"bad configuration override: {e}") from e


def _blank_to_none(value):
    if value is None:
        return None
    value = str(value)
    return value if value.strip() else None


def _as_int(value, key, allow_none=False):
    if value is None and allow_none:
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{key} must be an integer, got {value!r}") from e


def settings_from_config(cfg: DictConfig) -> FsgenSettings:
    try:
        return _build_settings(cfg)
    except OmegaConfBaseException as e:
        raise ConfigurationError(f"cannot resolve configuration: {e}") from e


def _build_settings(cfg):
    max_concurrency = _as_int(cfg.deploy.max_concurrency, "deploy.max_concurrency")
    if max_concurrency < 1:
        raise ConfigurationError(
            f"deploy.max_concurrency must be at least 1, got {max_concurrency}"
        )
    ssh = SSHSettings(
        user=_blank_to_none(cfg.ssh.user),
        password=_blank_to_none(cfg.ssh.password),
        port=_as_int(cfg.ssh.port, "ssh.port", allow_none=True),
        insecure_skip_host_verification=bool(cfg.ssh.insecure_skip_host_verification),
        config_file=_blank_to_none(cfg.ssh.config_file),
    )
    tools = ToolSettings(
        remote_shell=cfg.tools.remote_shell,
        mirror_copy=cfg.tools.mirror_copy,
        password_delegation=cfg.tools.password_delegation,
        image_conversion=cfg.tools.image_conversion,
    )
    return FsgenSettings(
        datanodes=cfg.inventory.datanodes or "",
        storage_dirs=cfg.inventory.storage_dirs or "",
        ssh=ssh,
        tools=tools,
        namenode_dir=cfg.namenode.storage_dir,
        fsimage_txid=_as_int(cfg.namenode.fsimage_txid, "namenode.fsimage_txid"),
        service_user=cfg.deploy.service_user,
        max_concurrency=max_concurrency,
        progress=bool(cfg.deploy.progress),
        log_level=str(cfg.logging.level).upper(),
        log_file=_blank_to_none(cfg.logging.file),
    )


def setup_logger(level="INFO", log_file=None):
    logger = logging.getLogger("fsgen_util")
    logger.setLevel(getattr(logging, level, logging.INFO))
    formatter = logging.Formatter(LOG_FORMAT)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if log_file:
        handler = logging.FileHandler(log_file, mode='w')
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)
    return logger
