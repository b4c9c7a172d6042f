import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum

from tqdm import tqdm

from fsgen_util.common import DEFAULT_MAX_CONCURRENCY, CommandFailedError
from fsgen_util.datanode_util import run_jobs

logger = logging.getLogger(__name__)


class DispatchMode(Enum):
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


@dataclass
class DispatchResult:
    node: str
    success: bool
    output: str = ""
    error: str = None


@dataclass
class DispatchReport:
    results: list = field(default_factory=list)
    skipped: list = field(default_factory=list)

    @property
    def success(self):
        return not self.skipped and all(r.success for r in self.results)

    @property
    def failed(self):
        return [r.node for r in self.results if not r.success]


def _run_node(executor, node, jobs):
    try:
        output = run_jobs(executor, jobs)
    except CommandFailedError as e:
        logger.error(f"[datanode {node}] {e}")
        return DispatchResult(node, False, output=e.output, error=str(e))
    logger.info(f"[datanode {node}] loaded {len(jobs)} storage dirs")
    return DispatchResult(node, True, output=output)


def dispatch_all(
    nodes,
    job_builder,
    executor,
    mode=DispatchMode.SEQUENTIAL,
    max_concurrency=DEFAULT_MAX_CONCURRENCY,
    progress=False,
) -> DispatchReport:
    """Run every node's sync jobs and collect one result per node.

    Args:
        nodes: datanodes, in configured order.
        job_builder: ``node -> list[SyncJob]``. Called for every node before
            anything is copied, so a bad node or missing source aborts the run
            with ConfigurationError while the cluster is still untouched.
        executor: a RemoteExecutor (or anything with run_command/copy_tree).
        mode: SEQUENTIAL stops at the first failed node and reports the rest
            as skipped; PARALLEL runs up to ``max_concurrency`` nodes at once
            and lets every node finish regardless of its siblings.
        max_concurrency: worker count for PARALLEL.
        progress: show a tqdm bar in PARALLEL mode.

    Returns:
        DispatchReport with per-node results.
    """
    plan = [(node, job_builder(node)) for node in nodes]
    report = DispatchReport()

    if mode is DispatchMode.SEQUENTIAL:
        for i, (node, jobs) in enumerate(plan):
            result = _run_node(executor, node, jobs)
            report.results.append(result)
            if not result.success:
                report.skipped = [n for n, _ in plan[i + 1:]]
                if report.skipped:
                    logger.error(f"aborting, not loading {' '.join(report.skipped)}")
                break
        return report

    by_node = {}
    with ThreadPoolExecutor(max_workers=max_concurrency) as pool:
        futures = {
            pool.submit(_run_node, executor, node, jobs): idx
            for idx, (node, jobs) in enumerate(plan)
        }
        for future in tqdm(as_completed(futures), total=len(futures), desc="datanodes", disable=not progress):
            by_node[futures[future]] = future.result()
    report.results = [by_node[idx] for idx in sorted(by_node)]
    return report
