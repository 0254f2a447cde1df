"""Node state metrics collector for SLURM.

Counts nodes per state family (allocated, idle, draining, down, ...) from
``sinfo -o %D|%T``. SLURM reports states with suffixes and flag
characters (``drained*``, ``idle~``, ``mixed-``), so states are grouped by
prefix.
"""

from collections.abc import Iterator
from dataclasses import dataclass, fields

from prometheus_client.metrics_core import Metric

from .. import parsing, slurmcli
from ..collector import ClusterSnapshot, MetricDescriptor

# State flags SLURM appends to node states (e.g. "idle*" not responding)
STATE_FLAGS = "*~#!%$@^-+"

# Prefix of each state family; the first match wins
STATE_PREFIXES = (
    ("alloc", "alloc"),
    ("comp", "comp"),
    ("down", "down"),
    ("drain", "drain"),
    ("err", "err"),
    ("fail", "fail"),
    ("idle", "idle"),
    ("maint", "maint"),
    ("mix", "mix"),
    ("resv", "res"),
)


@dataclass
class NodesMetric:
    """Number of nodes per state family in one cluster."""

    alloc: float = 0.0
    comp: float = 0.0
    down: float = 0.0
    drain: float = 0.0
    err: float = 0.0
    fail: float = 0.0
    idle: float = 0.0
    maint: float = 0.0
    mix: float = 0.0
    resv: float = 0.0


DESCRIPTORS = tuple(
    MetricDescriptor(f"slurm_nodes_{f.name}", f"{f.name.capitalize()} nodes")
    for f in fields(NodesMetric)
)


def _state_family(state: str) -> str | None:
    normalized = state.lower().rstrip(STATE_FLAGS)
    for family, prefix in STATE_PREFIXES:
        if normalized.startswith(prefix):
            return family
    return None


def parse_nodes(output: bytes) -> NodesMetric:
    """Parse ``count|state`` lines into node counts per state family.

    Unknown states and lines without a separator are ignored.
    """
    metric = NodesMetric()
    for line in parsing.decode_lines(output):
        if "|" not in line:
            continue
        count, state = parsing.split_fields(line, "|")[:2]
        family = _state_family(state)
        if family is None:
            continue
        setattr(metric, family, getattr(metric, family) + parsing.parse_float(count))
    return metric


def fetch(runner: slurmcli.CommandRunner, cluster: slurmcli.ClusterInfo) -> NodesMetric:
    """Fetch node state counts for one cluster."""
    return parse_nodes(
        runner.execute("sinfo", ["-h", "-o", "%D|%T", *cluster.cmdargs]),
    )


def generate_metrics(snapshots: list[ClusterSnapshot[NodesMetric]]) -> Iterator[Metric]:
    """Generate one gauge per state family, labelled by cluster."""
    for descriptor, state_field in zip(DESCRIPTORS, fields(NodesMetric), strict=True):
        family = descriptor.family()
        for snapshot in snapshots:
            family.add_metric(
                [snapshot.cluster.name],
                getattr(snapshot.data, state_field.name),
            )
        yield family
