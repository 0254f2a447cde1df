"""CPU metrics collector for SLURM.

Exports allocated, idle, other and total CPU counts from ``sinfo -o %C``.
"""

from collections.abc import Iterator

from prometheus_client.metrics_core import Metric

from .. import parsing, slurmcli
from ..collector import ClusterSnapshot, MetricDescriptor

ALLOC = MetricDescriptor("slurm_cpus_alloc", "Allocated CPUs")
IDLE = MetricDescriptor("slurm_cpus_idle", "Idle CPUs")
OTHER = MetricDescriptor("slurm_cpus_other", "Mix CPUs")
TOTAL = MetricDescriptor("slurm_cpus_total", "Total CPUs")

DESCRIPTORS = (ALLOC, IDLE, OTHER, TOTAL)


def parse_cpus(output: bytes) -> parsing.CPUStates:
    """Parse the ``alloc/idle/other/total`` line printed by sinfo.

    Only the first line is used; empty output yields all zeros.
    """
    lines = parsing.decode_lines(output)
    if not lines:
        return parsing.CPUStates()
    return parsing.parse_cpu_states(lines[0])


def fetch(
    runner: slurmcli.CommandRunner,
    cluster: slurmcli.ClusterInfo,
) -> parsing.CPUStates:
    """Fetch CPU metrics for one cluster."""
    return parse_cpus(runner.execute("sinfo", ["-h", "-o", "%C", *cluster.cmdargs]))


def generate_metrics(
    snapshots: list[ClusterSnapshot[parsing.CPUStates]],
) -> Iterator[Metric]:
    """Generate Prometheus metrics from per-cluster CPU data."""
    alloc = ALLOC.family()
    idle = IDLE.family()
    other = OTHER.family()
    total = TOTAL.family()

    for snapshot in snapshots:
        cluster = snapshot.cluster.name
        alloc.add_metric([cluster], snapshot.data.alloc)
        idle.add_metric([cluster], snapshot.data.idle)
        other.add_metric([cluster], snapshot.data.other)
        total.add_metric([cluster], snapshot.data.total)

    yield alloc
    yield idle
    yield other
    yield total
