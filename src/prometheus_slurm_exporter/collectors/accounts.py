"""Account metrics collector for SLURM.

Counts pending, running and suspended jobs and running CPUs per account
from ``squeue -o %A|%a|%T|%C``. The same grammar, keyed by user instead
of account, is used by the users collector.
"""

from collections.abc import Iterator
from dataclasses import dataclass

from prometheus_client.metrics_core import Metric

from .. import parsing, slurmcli
from ..collector import ClusterSnapshot, MetricDescriptor

MIN_FIELDS = 4

JOBS_PENDING = MetricDescriptor(
    "slurm_account_jobs_pending",
    "Pending jobs for account",
    ("account",),
)
JOBS_RUNNING = MetricDescriptor(
    "slurm_account_jobs_running",
    "Running jobs for account",
    ("account",),
)
CPUS_RUNNING = MetricDescriptor(
    "slurm_account_cpus_running",
    "Running cpus for account",
    ("account",),
)
JOBS_SUSPENDED = MetricDescriptor(
    "slurm_account_jobs_suspended",
    "Suspended jobs for account",
    ("account",),
)

DESCRIPTORS = (JOBS_PENDING, JOBS_RUNNING, CPUS_RUNNING, JOBS_SUSPENDED)


@dataclass
class OwnerJobsMetric:
    """Job counts of one job owner (account or user)."""

    pending: float = 0.0
    running: float = 0.0
    running_cpus: float = 0.0
    suspended: float = 0.0


def parse_owner_jobs(output: bytes) -> dict[str, OwnerJobsMetric]:
    """Parse ``job_id|owner|STATE|cpus`` lines into per-owner job counts.

    Jobs in other states still register their owner with zero counts.

    Returns:
        Mapping of owner name to its job counts.
    """
    owners: dict[str, OwnerJobsMetric] = {}
    for line in parsing.decode_lines(output):
        parts = parsing.split_fields(line, "|")
        if len(parts) < MIN_FIELDS:
            continue
        _, owner, state, cpus = parts[:MIN_FIELDS]
        metric = owners.setdefault(owner, OwnerJobsMetric())
        state = state.upper()
        if state == "PENDING":
            metric.pending += 1
        elif state == "RUNNING":
            metric.running += 1
            metric.running_cpus += parsing.parse_float(cpus)
        elif state == "SUSPENDED":
            metric.suspended += 1
    return owners


def fetch(
    runner: slurmcli.CommandRunner,
    cluster: slurmcli.ClusterInfo,
) -> dict[str, OwnerJobsMetric]:
    """Fetch per-account job metrics for one cluster."""
    return parse_owner_jobs(
        runner.execute("squeue", ["-a", "-r", "-h", "-o", "%A|%a|%T|%C", *cluster.cmdargs]),
    )


def generate_owner_metrics(
    snapshots: list[ClusterSnapshot[dict[str, OwnerJobsMetric]]],
    descriptors: tuple[MetricDescriptor, ...],
) -> Iterator[Metric]:
    """Generate per-owner gauges in pending, running, cpus, suspended order."""
    pending, running, running_cpus, suspended = (d.family() for d in descriptors)

    for snapshot in snapshots:
        for owner, metric in snapshot.data.items():
            labels = [snapshot.cluster.name, owner]
            pending.add_metric(labels, metric.pending)
            running.add_metric(labels, metric.running)
            running_cpus.add_metric(labels, metric.running_cpus)
            suspended.add_metric(labels, metric.suspended)

    yield pending
    yield running
    yield running_cpus
    yield suspended


def generate_metrics(
    snapshots: list[ClusterSnapshot[dict[str, OwnerJobsMetric]]],
) -> Iterator[Metric]:
    """Generate per-account gauges labelled by cluster and account."""
    return generate_owner_metrics(snapshots, DESCRIPTORS)
