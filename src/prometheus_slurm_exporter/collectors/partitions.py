"""Partition metrics collector for SLURM.

Exports CPU usage per partition from ``sinfo -o %R,%C`` and the number of
pending jobs per partition from squeue.
"""

from collections.abc import Iterator
from dataclasses import dataclass, field

from prometheus_client.metrics_core import Metric

from .. import parsing, slurmcli
from ..collector import ClusterSnapshot, MetricDescriptor

PARTITION_LABELS = ("partition",)

CPUS_ALLOCATED = MetricDescriptor(
    "slurm_partition_cpus_allocated",
    "Allocated CPUs for partition",
    PARTITION_LABELS,
)
CPUS_IDLE = MetricDescriptor(
    "slurm_partition_cpus_idle",
    "Idle CPUs for partition",
    PARTITION_LABELS,
)
CPUS_OTHER = MetricDescriptor(
    "slurm_partition_cpus_other",
    "Other CPUs for partition",
    PARTITION_LABELS,
)
CPUS_TOTAL = MetricDescriptor(
    "slurm_partition_cpus_total",
    "Total CPUs for partition",
    PARTITION_LABELS,
)
JOBS_PENDING = MetricDescriptor(
    "slurm_partition_jobs_pending",
    "Pending jobs for partition",
    PARTITION_LABELS,
)

DESCRIPTORS = (CPUS_ALLOCATED, CPUS_IDLE, CPUS_OTHER, CPUS_TOTAL, JOBS_PENDING)


@dataclass
class PartitionMetric:
    """CPU usage and pending jobs of one partition."""

    cpus: parsing.CPUStates = field(default_factory=parsing.CPUStates)
    pending: float = 0.0


def parse_partitions(
    cpus_output: bytes,
    pending_output: bytes,
) -> dict[str, PartitionMetric]:
    """Combine partition CPU states with pending job counts.

    Args:
        cpus_output: sinfo lines of ``partition,a/i/o/t``.
        pending_output: squeue lines with the partition list of each
            pending job; a job pending on ``p1,p2`` counts for both.

    Returns:
        Mapping of partition name to its metrics.
    """
    partitions: dict[str, PartitionMetric] = {}

    for line in parsing.decode_lines(cpus_output):
        if "," not in line:
            continue
        name, states = parsing.split_fields(line, ",")[:2]
        partitions[name] = PartitionMetric(cpus=parsing.parse_cpu_states(states))

    for line in parsing.decode_lines(pending_output):
        for name in parsing.split_fields(line, ","):
            if not name:
                continue
            partitions.setdefault(name, PartitionMetric()).pending += 1

    return partitions


def fetch(
    runner: slurmcli.CommandRunner,
    cluster: slurmcli.ClusterInfo,
) -> dict[str, PartitionMetric]:
    """Fetch partition metrics for one cluster."""
    cpus_output = runner.execute("sinfo", ["-h", "-o", "%R,%C", *cluster.cmdargs])
    pending_output = runner.execute(
        "squeue",
        ["-a", "-r", "-h", "-o", "%P", "--states=PENDING", *cluster.cmdargs],
    )
    return parse_partitions(cpus_output, pending_output)


def generate_metrics(
    snapshots: list[ClusterSnapshot[dict[str, PartitionMetric]]],
) -> Iterator[Metric]:
    """Generate per-partition gauges labelled by cluster and partition."""
    cpus_allocated = CPUS_ALLOCATED.family()
    cpus_idle = CPUS_IDLE.family()
    cpus_other = CPUS_OTHER.family()
    cpus_total = CPUS_TOTAL.family()
    jobs_pending = JOBS_PENDING.family()

    for snapshot in snapshots:
        for name, partition in snapshot.data.items():
            labels = [snapshot.cluster.name, name]
            cpus_allocated.add_metric(labels, partition.cpus.alloc)
            cpus_idle.add_metric(labels, partition.cpus.idle)
            cpus_other.add_metric(labels, partition.cpus.other)
            cpus_total.add_metric(labels, partition.cpus.total)
            jobs_pending.add_metric(labels, partition.pending)

    yield cpus_allocated
    yield cpus_idle
    yield cpus_other
    yield cpus_total
    yield jobs_pending
