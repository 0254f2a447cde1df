"""Job queue metrics collector for SLURM.

Counts jobs per state from ``squeue -o %A,%T,%r --states=all``. Pending
jobs held back by a dependency are counted separately.
"""

from collections.abc import Iterator
from dataclasses import dataclass, fields

from prometheus_client.metrics_core import Metric

from .. import parsing, slurmcli
from ..collector import ClusterSnapshot, MetricDescriptor

DEPENDENCY_REASON = "Dependency"


@dataclass
class QueueMetric:
    """Number of jobs per state in one cluster."""

    pending: float = 0.0
    pending_dependency: float = 0.0
    running: float = 0.0
    suspended: float = 0.0
    cancelled: float = 0.0
    completing: float = 0.0
    completed: float = 0.0
    configuring: float = 0.0
    failed: float = 0.0
    timeout: float = 0.0
    preempted: float = 0.0
    node_fail: float = 0.0


_DOCUMENTATION = {
    "pending_dependency": "Pending jobs because of dependency in queue",
    "node_fail": "Jobs terminated due to node failure",
}

DESCRIPTORS = tuple(
    MetricDescriptor(
        f"slurm_queue_{f.name}",
        _DOCUMENTATION.get(f.name, f"{f.name.capitalize()} jobs in queue"),
    )
    for f in fields(QueueMetric)
)

# squeue state name -> QueueMetric field
_STATES = {
    f.name.upper(): f.name for f in fields(QueueMetric) if f.name != "pending_dependency"
}


def parse_queue(output: bytes) -> QueueMetric:
    """Parse ``job_id,STATE,reason`` lines into job counts per state.

    Unknown states and malformed lines are ignored.
    """
    metric = QueueMetric()
    for line in parsing.decode_lines(output):
        parts = parsing.split_fields(line, ",")
        if len(parts) < 2:  # noqa: PLR2004
            continue
        state = _STATES.get(parts[1].upper())
        if state is None:
            continue
        reason = parts[2] if len(parts) > 2 else ""  # noqa: PLR2004
        if state == "pending" and reason == DEPENDENCY_REASON:
            state = "pending_dependency"
        setattr(metric, state, getattr(metric, state) + 1)
    return metric


def fetch(runner: slurmcli.CommandRunner, cluster: slurmcli.ClusterInfo) -> QueueMetric:
    """Fetch job queue metrics for one cluster."""
    return parse_queue(
        runner.execute(
            "squeue",
            ["-a", "-r", "-h", "-o", "%A,%T,%r", "--states=all", *cluster.cmdargs],
        ),
    )


def generate_metrics(snapshots: list[ClusterSnapshot[QueueMetric]]) -> Iterator[Metric]:
    """Generate one gauge per job state, labelled by cluster."""
    for descriptor, state_field in zip(DESCRIPTORS, fields(QueueMetric), strict=True):
        family = descriptor.family()
        for snapshot in snapshots:
            family.add_metric(
                [snapshot.cluster.name],
                getattr(snapshot.data, state_field.name),
            )
        yield family
