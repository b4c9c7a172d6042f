FSIMAGE_NAME_FORMAT = "fsimage_{txid:019d}"
DEFAULT_MAX_CONCURRENCY = 5
DEFAULT_SERVICE_USER = "hdfs"


class FsgenError(Exception):
    pass


class ConfigurationError(FsgenError):
    """Bad or missing configuration. Always raised before anything is changed."""


class CommandFailedError(FsgenError):
    def __init__(self, command, output="", node=None, returncode=None):
        self.command = list(command)
        self.output = output
        self.node = node
        self.returncode = returncode
        where = f" on {node}" if node else ""
        msg = f"command failed{where}: {' '.join(self.command)}"
        if returncode is not None:
            msg += f" (exit {returncode})"
        if output:
            msg += f"\n{output.rstrip()}"
        super().__init__(msg)


class RemoteExecutionError(CommandFailedError):
    def __init__(self, node, command, output="", returncode=None):
        super().__init__(command, output=output, node=node, returncode=returncode)
