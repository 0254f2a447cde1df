"""User metrics collector for SLURM.

Counts pending, running and suspended jobs and running CPUs per user from
``squeue -o %A|%u|%T|%C``.
"""

from collections.abc import Iterator

from prometheus_client.metrics_core import Metric

from .. import slurmcli
from ..collector import ClusterSnapshot, MetricDescriptor
from .accounts import OwnerJobsMetric, generate_owner_metrics, parse_owner_jobs

DESCRIPTORS = (
    MetricDescriptor("slurm_user_jobs_pending", "Pending jobs for user", ("user",)),
    MetricDescriptor("slurm_user_jobs_running", "Running jobs for user", ("user",)),
    MetricDescriptor("slurm_user_cpus_running", "Running cpus for user", ("user",)),
    MetricDescriptor("slurm_user_jobs_suspended", "Suspended jobs for user", ("user",)),
)


def fetch(
    runner: slurmcli.CommandRunner,
    cluster: slurmcli.ClusterInfo,
) -> dict[str, OwnerJobsMetric]:
    """Fetch per-user job metrics for one cluster."""
    return parse_owner_jobs(
        runner.execute("squeue", ["-a", "-r", "-h", "-o", "%A|%u|%T|%C", *cluster.cmdargs]),
    )


def generate_metrics(
    snapshots: list[ClusterSnapshot[dict[str, OwnerJobsMetric]]],
) -> Iterator[Metric]:
    """Generate Prometheus metrics from per-cluster user job data."""
    return generate_owner_metrics(snapshots, DESCRIPTORS)
