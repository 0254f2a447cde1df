"""GPU metrics collector for SLURM.

Compares the GPUs allocated to running jobs (from sacct AllocTRES) with
the GPUs installed on nodes (from sinfo GRES) and exports allocated, idle
and total counts, utilization, and the per-board-type breakdown.
"""

from collections.abc import Iterator
from dataclasses import dataclass, field

from prometheus_client.metrics_core import Metric

from .. import parsing, slurmcli
from ..collector import ClusterSnapshot, MetricDescriptor

BOARD_PREFIX = "board:"

ALLOC = MetricDescriptor("slurm_gpus_alloc", "Allocated GPUs")
IDLE = MetricDescriptor("slurm_gpus_idle", "Idle GPUs")
TOTAL = MetricDescriptor("slurm_gpus_total", "Total GPUs")
UTILIZATION = MetricDescriptor("slurm_gpus_utilization", "Total GPU utilization")
ALLOC_BY_TYPE = MetricDescriptor(
    "slurm_gpus_alloc_by_type",
    "Allocated GPUs per board type",
    labels=("type",),
)
TOTAL_BY_TYPE = MetricDescriptor(
    "slurm_gpus_total_by_type",
    "Total GPUs per board type",
    labels=("type",),
)

DESCRIPTORS = (ALLOC, IDLE, TOTAL, UTILIZATION, ALLOC_BY_TYPE, TOTAL_BY_TYPE)


@dataclass
class GPUsMetric:
    """GPU usage of one cluster.

    Utilization is allocated/total, or 0.0 when the cluster has no GPUs.
    """

    allocated: float = 0.0
    idle: float = 0.0
    total: float = 0.0
    utilization: float = 0.0
    allocated_by_type: dict[str, float] = field(default_factory=dict)
    total_by_type: dict[str, float] = field(default_factory=dict)


def parse_allocated_gpus(output: bytes) -> tuple[dict[str, float], float]:
    """Sum GPUs per board type from sacct AllocTRES output.

    One running job per line, e.g. ``board:a100:2``.
    """
    return parsing.parse_tagged_counts(output, BOARD_PREFIX)


def parse_total_gpus(output: bytes) -> tuple[dict[str, float], float]:
    """Sum GPUs per board type from sinfo ``%n %G`` output.

    One node per line, e.g. ``node01 board:a100:4``.
    """
    return parsing.parse_tagged_counts(output, BOARD_PREFIX, field=1)


def build_metric(
    allocated: tuple[dict[str, float], float],
    total: tuple[dict[str, float], float],
) -> GPUsMetric:
    """Derive GPU usage from allocated and installed counts.

    Args:
        allocated: Parsed sacct result (count per type, total).
        total: Parsed sinfo result (count per type, total).

    Returns:
        GPUsMetric for the cluster.
    """
    allocated_by_type, total_allocated = allocated
    total_by_type, total_gpus = total
    utilization = total_allocated / total_gpus if total_gpus > 0 else 0.0
    return GPUsMetric(
        allocated=total_allocated,
        idle=max(total_gpus - total_allocated, 0.0),
        total=total_gpus,
        utilization=utilization,
        allocated_by_type=allocated_by_type,
        total_by_type=total_by_type,
    )


def fetch(runner: slurmcli.CommandRunner, cluster: slurmcli.ClusterInfo) -> GPUsMetric:
    """Fetch GPU metrics for one cluster.

    Runs exactly two commands: sinfo for installed GPUs and sacct for
    GPUs allocated to running jobs.

    Args:
        runner: Command runner to use.
        cluster: Cluster to query.

    Returns:
        GPU metrics of the cluster.
    """
    total = parse_total_gpus(
        runner.execute("sinfo", ["-h", "-o", "%n %G", *cluster.cmdargs]),
    )
    allocated = parse_allocated_gpus(
        runner.execute(
            "sacct",
            [
                "-a",
                "-X",
                "--format=AllocTRES",
                "--state=RUNNING",
                "--noheader",
                "--parsable2",
                *cluster.cmdargs,
            ],
        ),
    )
    return build_metric(allocated, total)


def generate_metrics(snapshots: list[ClusterSnapshot[GPUsMetric]]) -> Iterator[Metric]:
    """Generate Prometheus metrics from per-cluster GPU data.

    Args:
        snapshots: GPU metrics of each cluster.

    Yields:
        Prometheus Metric objects.
    """
    alloc = ALLOC.family()
    idle = IDLE.family()
    total = TOTAL.family()
    utilization = UTILIZATION.family()
    alloc_by_type = ALLOC_BY_TYPE.family()
    total_by_type = TOTAL_BY_TYPE.family()

    for snapshot in snapshots:
        cluster = snapshot.cluster.name
        gpus = snapshot.data
        alloc.add_metric([cluster], gpus.allocated)
        idle.add_metric([cluster], gpus.idle)
        total.add_metric([cluster], gpus.total)
        utilization.add_metric([cluster], gpus.utilization)
        for board_type, count in gpus.allocated_by_type.items():
            alloc_by_type.add_metric([cluster, board_type], count)
        for board_type, count in gpus.total_by_type.items():
            total_by_type.add_metric([cluster, board_type], count)

    yield alloc
    yield idle
    yield total
    yield utilization
    yield alloc_by_type
    yield total_by_type
