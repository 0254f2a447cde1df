"""Scheduler metrics collector for SLURM.

Parses ``sdiag`` output into slurmctld scheduler statistics: server
threads, agent queues, main scheduler and backfill cycle times, and
backfilled job totals.

sdiag prints ``Last cycle`` and ``Mean cycle`` twice, once for the main
scheduler and once under the backfill header, so the parser tracks which
section it is in.
"""

from collections.abc import Iterator
from dataclasses import dataclass

from prometheus_client.metrics_core import Metric

from .. import parsing, slurmcli
from ..collector import ClusterSnapshot, MetricDescriptor

BACKFILL_HEADER = "Backfilling stats"


@dataclass
class SchedulerMetric:
    """slurmctld scheduler statistics of one cluster."""

    threads: float = 0.0
    queue_size: float = 0.0
    dbd_queue_size: float = 0.0
    last_cycle: float = 0.0
    mean_cycle: float = 0.0
    cycle_per_minute: float = 0.0
    backfill_last_cycle: float = 0.0
    backfill_mean_cycle: float = 0.0
    backfill_depth_mean: float = 0.0
    total_backfilled_jobs_since_start: float = 0.0
    total_backfilled_jobs_since_cycle: float = 0.0
    total_backfilled_heterogeneous: float = 0.0


# sdiag key -> field, outside and inside the backfill section
_MAIN_KEYS = {
    "Server thread count": "threads",
    "Agent queue size": "queue_size",
    "DBD Agent queue size": "dbd_queue_size",
    "Last cycle": "last_cycle",
    "Mean cycle": "mean_cycle",
    "Cycles per minute": "cycle_per_minute",
}
_BACKFILL_KEYS = {
    "Last cycle": "backfill_last_cycle",
    "Mean cycle": "backfill_mean_cycle",
    "Depth Mean": "backfill_depth_mean",
    "Total backfilled jobs (since last slurm start)": "total_backfilled_jobs_since_start",
    "Total backfilled jobs (since last stats cycle start)": (
        "total_backfilled_jobs_since_cycle"
    ),
    "Total backfilled heterogeneous job components": "total_backfilled_heterogeneous",
}

THREADS = MetricDescriptor(
    "slurm_scheduler_threads",
    "Information provided by the Slurm sdiag command, number of scheduler threads",
)
QUEUE_SIZE = MetricDescriptor(
    "slurm_scheduler_queue_size",
    "Information provided by the Slurm sdiag command, length of the scheduler queue",
)
DBD_QUEUE_SIZE = MetricDescriptor(
    "slurm_scheduler_dbd_queue_size",
    "Information provided by the Slurm sdiag command, length of the DBD agent queue",
)
LAST_CYCLE = MetricDescriptor(
    "slurm_scheduler_last_cycle",
    "Information provided by the Slurm sdiag command, scheduler last cycle time in "
    "(microseconds)",
)
MEAN_CYCLE = MetricDescriptor(
    "slurm_scheduler_mean_cycle",
    "Information provided by the Slurm sdiag command, scheduler mean cycle time in "
    "(microseconds)",
)
CYCLE_PER_MINUTE = MetricDescriptor(
    "slurm_scheduler_cycle_per_minute",
    "Information provided by the Slurm sdiag command, number scheduler cycles per "
    "minute",
)
BACKFILL_LAST_CYCLE = MetricDescriptor(
    "slurm_scheduler_backfill_last_cycle",
    "Information provided by the Slurm sdiag command, scheduler backfill last cycle "
    "time in (microseconds)",
)
BACKFILL_MEAN_CYCLE = MetricDescriptor(
    "slurm_scheduler_backfill_mean_cycle",
    "Information provided by the Slurm sdiag command, scheduler backfill mean cycle "
    "time in (microseconds)",
)
BACKFILL_DEPTH_MEAN = MetricDescriptor(
    "slurm_scheduler_backfill_depth_mean",
    "Information provided by the Slurm sdiag command, scheduler backfill mean depth",
)
BACKFILLED_JOBS_SINCE_START = MetricDescriptor(
    "slurm_scheduler_backfilled_jobs_since_start_total",
    "Information provided by the Slurm sdiag command, number of jobs started thanks "
    "to backfilling since last slurm start",
)
BACKFILLED_JOBS_SINCE_CYCLE = MetricDescriptor(
    "slurm_scheduler_backfilled_jobs_since_cycle_total",
    "Information provided by the Slurm sdiag command, number of jobs started thanks "
    "to backfilling since last time stats where reset",
)
BACKFILLED_HETEROGENEOUS = MetricDescriptor(
    "slurm_scheduler_backfilled_heterogeneous_total",
    "Information provided by the Slurm sdiag command, number of heterogeneous job "
    "components started thanks to backfilling since last Slurm start",
)

# Descriptor per SchedulerMetric field
_FIELD_DESCRIPTORS = {
    "threads": THREADS,
    "queue_size": QUEUE_SIZE,
    "dbd_queue_size": DBD_QUEUE_SIZE,
    "last_cycle": LAST_CYCLE,
    "mean_cycle": MEAN_CYCLE,
    "cycle_per_minute": CYCLE_PER_MINUTE,
    "backfill_last_cycle": BACKFILL_LAST_CYCLE,
    "backfill_mean_cycle": BACKFILL_MEAN_CYCLE,
    "backfill_depth_mean": BACKFILL_DEPTH_MEAN,
    "total_backfilled_jobs_since_start": BACKFILLED_JOBS_SINCE_START,
    "total_backfilled_jobs_since_cycle": BACKFILLED_JOBS_SINCE_CYCLE,
    "total_backfilled_heterogeneous": BACKFILLED_HETEROGENEOUS,
}

DESCRIPTORS = tuple(_FIELD_DESCRIPTORS.values())


def parse_scheduler(output: bytes) -> SchedulerMetric:
    """Parse sdiag output into scheduler statistics.

    Lines are ``<key>: <value>``; the value may be followed by extra text
    which is ignored. Unknown keys and malformed values are skipped or
    read as zero.
    """
    metric = SchedulerMetric()
    keys = _MAIN_KEYS
    for line in parsing.decode_lines(output):
        if line.startswith(BACKFILL_HEADER):
            keys = _BACKFILL_KEYS
            continue
        if ":" not in line:
            continue
        key, value = line.split(":", 1)
        field_name = keys.get(key.strip())
        if field_name is None:
            continue
        tokens = value.split()
        setattr(metric, field_name, parsing.parse_float(tokens[0]) if tokens else 0.0)
    return metric


def fetch(
    runner: slurmcli.CommandRunner,
    cluster: slurmcli.ClusterInfo,
) -> SchedulerMetric:
    """Fetch scheduler statistics for one cluster."""
    return parse_scheduler(runner.execute("sdiag", list(cluster.cmdargs)))


def generate_metrics(
    snapshots: list[ClusterSnapshot[SchedulerMetric]],
) -> Iterator[Metric]:
    """Generate one gauge per scheduler statistic, labelled by cluster."""
    for field_name, descriptor in _FIELD_DESCRIPTORS.items():
        family = descriptor.family()
        for snapshot in snapshots:
            family.add_metric([snapshot.cluster.name], getattr(snapshot.data, field_name))
        yield family
