import logging
import os
import shlex
import subprocess
from dataclasses import dataclass

import paramiko

from fsgen_util.common import CommandFailedError, RemoteExecutionError
from fsgen_util.config_util import SSHSettings, ToolSettings

logger = logging.getLogger(__name__)


@dataclass
class RemoteResult:
    node: str
    command: list
    returncode: int
    stdout: str
    stderr: str

    @property
    def success(self):
        return self.returncode == 0

    @property
    def output(self):
        return "".join(part for part in (self.stdout, self.stderr) if part)


def run_local(argv):
    """Run a command on this host; raise CommandFailedError on a non-zero exit."""
    argv = [str(arg) for arg in argv]
    logger.info(f"[local] running {shlex.join(argv)}")
    try:
        proc = subprocess.run(argv, capture_output=True, text=True)
    except OSError as e:
        raise CommandFailedError(argv, output=str(e)) from e
    result = RemoteResult(None, argv, proc.returncode, proc.stdout, proc.stderr)
    if not result.success:
        raise CommandFailedError(argv, output=result.output, returncode=proc.returncode)
    return result


class RemoteExecutor:
    """Runs commands on, and mirrors directory trees to, cluster nodes.

    Commands go over paramiko; tree copies shell out to rsync with ssh as
    its transport. The authentication mode is fixed by ``ssh_settings`` for
    the lifetime of the executor: a password means password auth everywhere
    (rsync gets it through ``sshpass -e``), no password means key/agent auth.

    OpenSSH reads ``~/.ssh/config`` for rsync, so paramiko connections look
    the node up in ``ssh_settings.config_file`` too and honour its HostName,
    User, Port, IdentityFile and ProxyCommand. ProxyJump is not supported by
    paramiko; write it as a ProxyCommand instead.
    """

    def __init__(self, ssh_settings: SSHSettings, tools: ToolSettings = None):
        self.ssh = ssh_settings
        self.tools = tools or ToolSettings()
        self._ssh_config = None

    def target(self, node):
        if self.ssh.user:
            return f"{self.ssh.user}@{node}"
        return node

    def ssh_options(self):
        options = []
        if self.ssh.port:
            options += ["-p", str(self.ssh.port)]
        if self.ssh.insecure_skip_host_verification:
            options += ["-o", "StrictHostKeyChecking=no"]
        return options

    def host_config(self, node):
        if not self.ssh.config_file:
            return {}
        if self._ssh_config is None:
            path = os.path.expanduser(self.ssh.config_file)
            if not os.path.isfile(path):
                return {}
            self._ssh_config = paramiko.SSHConfig.from_path(path)
        return self._ssh_config.lookup(node)

    def _connect(self, client, node):
        if self.ssh.insecure_skip_host_verification:
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        else:
            client.load_system_host_keys()
            client.set_missing_host_key_policy(paramiko.RejectPolicy())

        host = self.host_config(node)
        kwargs = {}
        if host.get("identityfile"):
            kwargs["key_filename"] = host["identityfile"]
        if host.get("proxycommand"):
            kwargs["sock"] = paramiko.ProxyCommand(host["proxycommand"])
        client.connect(
            host.get("hostname", node),
            port=self.ssh.port or int(host.get("port", 22)),
            username=self.ssh.user or host.get("user"),
            password=self.ssh.password,
            allow_agent=not self.ssh.use_password,
            look_for_keys=not self.ssh.use_password,
            **kwargs,
        )

    def run_command(self, node, argv) -> RemoteResult:
        argv = [str(arg) for arg in argv]
        command = shlex.join(argv)
        logger.info(f"[datanode {node}] running {command}")
        client = paramiko.SSHClient()
        try:
            self._connect(client, node)
            channel = client.get_transport().open_session()
            # one stream, so unread stderr can never stall the channel window
            channel.set_combine_stderr(True)
            channel.exec_command(command)
            with channel.makefile("rb") as stream:
                out = stream.read().decode("utf-8", errors="replace")
            status = channel.recv_exit_status()
        except (paramiko.SSHException, OSError) as e:
            raise RemoteExecutionError(node, argv, output=str(e)) from e
        finally:
            client.close()

        result = RemoteResult(node, argv, status, out, "")
        if not result.success:
            raise RemoteExecutionError(node, argv, output=result.output, returncode=status)
        return result

    def copy_tree_argv(self, source, node, dest):
        source = str(source).rstrip("/") + "/"
        remote_shell = " ".join([self.tools.remote_shell] + self.ssh_options())
        argv = [
            self.tools.mirror_copy, "-aq", "--delete",
            "-e", remote_shell,
            source, f"{self.target(node)}:{dest}",
        ]
        if self.ssh.use_password:
            argv = [self.tools.password_delegation, "-e"] + argv
        return argv

    def copy_tree(self, source, node, dest) -> RemoteResult:
        argv = self.copy_tree_argv(source, node, dest)
        env = None
        if self.ssh.use_password:
            env = dict(os.environ, SSHPASS=self.ssh.password)
        logger.info(f"[datanode {node}] running {shlex.join(argv)}")
        try:
            proc = subprocess.run(argv, capture_output=True, text=True, env=env)
        except OSError as e:
            raise RemoteExecutionError(node, argv, output=str(e)) from e

        result = RemoteResult(node, argv, proc.returncode, proc.stdout, proc.stderr)
        if not result.success:
            raise RemoteExecutionError(node, argv, output=result.output, returncode=proc.returncode)
        return result
