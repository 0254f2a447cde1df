"""Per-node metrics collector for SLURM.

Exports CPU and memory allocation of every node, labelled with the node
name and its state, from ``sinfo -N -O NodeList,AllocMem,Memory,CPUsState,StateLong``.
"""

from collections.abc import Iterator
from dataclasses import dataclass

from prometheus_client.metrics_core import Metric

from .. import parsing, slurmcli
from ..collector import ClusterSnapshot, MetricDescriptor

NODE_LABELS = ("node", "status")

CPU_ALLOC = MetricDescriptor("slurm_node_cpu_alloc", "Allocated CPUs per node", NODE_LABELS)
CPU_IDLE = MetricDescriptor("slurm_node_cpu_idle", "Idle CPUs per node", NODE_LABELS)
CPU_OTHER = MetricDescriptor("slurm_node_cpu_other", "Other CPUs per node", NODE_LABELS)
CPU_TOTAL = MetricDescriptor("slurm_node_cpu_total", "Total CPUs per node", NODE_LABELS)
MEM_ALLOC = MetricDescriptor("slurm_node_mem_alloc", "Allocated memory per node", NODE_LABELS)
MEM_TOTAL = MetricDescriptor("slurm_node_mem_total", "Total memory per node", NODE_LABELS)

DESCRIPTORS = (CPU_ALLOC, CPU_IDLE, CPU_OTHER, CPU_TOTAL, MEM_ALLOC, MEM_TOTAL)

MIN_FIELDS = 5


@dataclass
class NodeMetric:
    """CPU and memory usage of a single node. Memory is in MB."""

    status: str
    cpus: parsing.CPUStates
    mem_alloc: float = 0.0
    mem_total: float = 0.0


def parse_node(output: bytes) -> dict[str, NodeMetric]:
    """Parse per-node sinfo output.

    Each line holds ``name alloc_mem total_mem a/i/o/t state``. Nodes in
    several partitions are listed once per partition; the last line for a
    node wins.

    Returns:
        Mapping of node name to its metrics.
    """
    nodes: dict[str, NodeMetric] = {}
    for line in parsing.decode_lines(output):
        fields = line.split()
        if len(fields) < MIN_FIELDS:
            continue
        name, mem_alloc, mem_total, cpu_states, status = fields[:MIN_FIELDS]
        nodes[name] = NodeMetric(
            status=status,
            cpus=parsing.parse_cpu_states(cpu_states),
            mem_alloc=parsing.parse_float(mem_alloc),
            mem_total=parsing.parse_float(mem_total),
        )
    return nodes


def fetch(
    runner: slurmcli.CommandRunner,
    cluster: slurmcli.ClusterInfo,
) -> dict[str, NodeMetric]:
    """Fetch per-node metrics for one cluster."""
    return parse_node(
        runner.execute(
            "sinfo",
            [
                "-h",
                "-N",
                "-O",
                "NodeList,AllocMem,Memory,CPUsState,StateLong",
                *cluster.cmdargs,
            ],
        ),
    )


def generate_metrics(
    snapshots: list[ClusterSnapshot[dict[str, NodeMetric]]],
) -> Iterator[Metric]:
    """Generate per-node gauges labelled by cluster, node and status."""
    cpu_alloc = CPU_ALLOC.family()
    cpu_idle = CPU_IDLE.family()
    cpu_other = CPU_OTHER.family()
    cpu_total = CPU_TOTAL.family()
    mem_alloc = MEM_ALLOC.family()
    mem_total = MEM_TOTAL.family()

    for snapshot in snapshots:
        for name, node in snapshot.data.items():
            labels = [snapshot.cluster.name, name, node.status]
            cpu_alloc.add_metric(labels, node.cpus.alloc)
            cpu_idle.add_metric(labels, node.cpus.idle)
            cpu_other.add_metric(labels, node.cpus.other)
            cpu_total.add_metric(labels, node.cpus.total)
            mem_alloc.add_metric(labels, node.mem_alloc)
            mem_total.add_metric(labels, node.mem_total)

    yield cpu_alloc
    yield cpu_idle
    yield cpu_other
    yield cpu_total
    yield mem_alloc
    yield mem_total
