import argparse
import logging
import sys

from fsgen_util.common import ConfigurationError, FsgenError
from fsgen_util.config_util import load_config, settings_from_config, setup_logger
from fsgen_util.datanode_util import check_datanodes, format_datanodes, jobs_for_node
from fsgen_util.dispatch_util import DispatchMode, dispatch_all
from fsgen_util.inventory_util import resolve_inventory
from fsgen_util.namenode_util import load_namenode
from fsgen_util.remote_util import RemoteExecutor

logger = logging.getLogger(__name__)

DESCRIPTION = """\
Install an HDFS fsimage generated by the fsgen programmatic image generation
tool. Run it on the NameNode machine of the cluster."""

EPILOG = """\
environment variables:
  DATANODES      A whitespace-separated list of datanode hostnames.
  STORAGE_DIRS   A whitespace-separated list of datanode storage directories.
  SSH_USER       The username to use for ssh (leave unset for no username).
  SSH_PASS       The password to use for ssh (leave unset for key-based auth).

Any other setting can be overridden hydra-style, e.g.
  -o deploy.max_concurrency=10 -o namenode.storage_dir=/data/nn"""


class FsgenArgumentParser(argparse.ArgumentParser):
    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def build_parser():
    parser = FsgenArgumentParser(
        prog="fsgen",
        description=DESCRIPTION,
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-o", "--override", action="append", default=[], metavar="KEY=VALUE",
        help="hydra-style config override, may be repeated",
    )
    actions = parser.add_subparsers(dest="action", metavar="action")

    actions.add_parser("check", help="check that we can ssh to all datanodes")
    actions.add_parser(
        "format_dn",
        help="format the datanode storage directories, clearing all existing data",
    )
    nn = actions.add_parser(
        "load_fsgen_nn",
        help="load the fsgen fsimage into the namenode's (single) storage directory",
    )
    nn.add_argument("fsgen_dir")
    dn = actions.add_parser(
        "load_fsgen_dn", help="load the fsgen output for one datanode",
    )
    dn.add_argument("fsgen_dir")
    dn.add_argument("datanode")
    dns = actions.add_parser("load_fsgen_dns", help="load all datanodes, one after another")
    dns.add_argument("fsgen_dir")
    par = actions.add_parser("load_fsgen_dns_par", help="load all datanodes in parallel")
    par.add_argument("fsgen_dir")
    return parser


def _require_fsgen_dir(args):
    if not args.fsgen_dir:
        raise ConfigurationError(f"{args.action}: you must specify the fsgen directory to use.")
    return args.fsgen_dir


def _finish(report):
    for result in report.results:
        status = "ok" if result.success else "FAILED"
        logger.info(f"[datanode {result.node}] {status}")
    for node in report.skipped:
        logger.info(f"[datanode {node}] skipped")
    if not report.success:
        logger.error(f"failed datanodes: {' '.join(report.failed)}")
        return 1
    return 0


def run_check(args, settings, inventory, executor):
    failed = check_datanodes(executor, inventory.nodes)
    if failed:
        logger.error(f"cannot reach datanodes: {' '.join(failed)}")
        return 1
    return 0


def run_format_dn(args, settings, inventory, executor):
    format_datanodes(executor, inventory.nodes, inventory.storage_dirs)
    return 0


def run_load_fsgen_nn(args, settings, inventory, executor):
    load_namenode(_require_fsgen_dir(args), settings)
    return 0


def _load_datanodes(args, settings, inventory, executor, nodes, mode):
    fsgen_dir = _require_fsgen_dir(args)
    report = dispatch_all(
        nodes,
        lambda node: jobs_for_node(inventory, node, fsgen_dir, settings.service_user),
        executor,
        mode=mode,
        max_concurrency=settings.max_concurrency,
        progress=settings.progress,
    )
    return _finish(report)


def run_load_fsgen_dn(args, settings, inventory, executor):
    return _load_datanodes(
        args, settings, inventory, executor, [args.datanode.strip()], DispatchMode.SEQUENTIAL
    )


def run_load_fsgen_dns(args, settings, inventory, executor):
    return _load_datanodes(
        args, settings, inventory, executor, inventory.nodes, DispatchMode.SEQUENTIAL
    )


def run_load_fsgen_dns_par(args, settings, inventory, executor):
    return _load_datanodes(
        args, settings, inventory, executor, inventory.nodes, DispatchMode.PARALLEL
    )


ACTIONS = {
    "check": run_check,
    "format_dn": run_format_dn,
    "load_fsgen_nn": run_load_fsgen_nn,
    "load_fsgen_dn": run_load_fsgen_dn,
    "load_fsgen_dns": run_load_fsgen_dns,
    "load_fsgen_dns_par": run_load_fsgen_dns_par,
}


def entrypoint(argv=None, executor_factory=RemoteExecutor):
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.action is None:
        parser.print_help()
        return 0

    setup_logger()
    try:
        settings = settings_from_config(load_config(args.override))
        setup_logger(settings.log_level, settings.log_file)
        # tools and environment are verified before any action runs
        inventory = resolve_inventory(settings)
        executor = executor_factory(settings.ssh, settings.tools)
        return ACTIONS[args.action](args, settings, inventory, executor)
    except FsgenError as e:
        logger.error(str(e))
        return 1


def main():
    sys.exit(entrypoint())


if __name__ == "__main__":
    main()
