"""SLURM command line package.

Runs the SLURM command line tools and describes the clusters they are
run against. Parsing and metric generation are handled by collector
modules.

Exports:
    CommandRunner: Subprocess runner with timeout and typed errors.
    CommandError: Raised when a command fails.
    ClusterInfo: Name and selector arguments of one cluster.
    UnknownClusterError: Raised for clusters that are not available.
    discover_clusters: Lists clusters from sacctmgr.
    resolve_clusters: Validates requested clusters.
    DEFAULT_TIMEOUT: Default command timeout.
"""

from . import types
from .clusters import UnknownClusterError, discover_clusters, resolve_clusters
from .runner import DEFAULT_TIMEOUT, CommandError, CommandRunner
from .types import LOCAL_CLUSTER, ClusterInfo

__all__ = [
    "DEFAULT_TIMEOUT",
    "LOCAL_CLUSTER",
    "ClusterInfo",
    "CommandError",
    "CommandRunner",
    "UnknownClusterError",
    "discover_clusters",
    "resolve_clusters",
    "types",
]
