"""Cluster discovery and selection.

Discovers the clusters known to the SLURM accounting database and resolves
the clusters requested in the configuration into :class:`ClusterInfo`
objects.
"""

from collections.abc import Iterable, Mapping

import structlog

from .runner import CommandRunner
from .types import LOCAL_CLUSTER, ClusterInfo

logger = structlog.get_logger(__name__)


class UnknownClusterError(ValueError):
    """Raised when a requested cluster is not among the available ones."""

    def __init__(self, name: str, available: Iterable[str]):
        self.name = name
        self.available = sorted(available)
        super().__init__(
            f"Unknown cluster '{name}' specified. "
            f"Available: {', '.join(self.available)}",
        )


def discover_clusters(runner: CommandRunner) -> dict[str, tuple[str, ...]]:
    """List clusters from sacctmgr and keep the ones that answer.

    sacctmgr can list clusters that are gone or unreachable, so each one
    is probed with ``sshare -M <cluster>`` and dropped if that fails.

    Args:
        runner: Command runner used for sacctmgr and the probes.

    Returns:
        Mapping of cluster name to the arguments selecting it. Always
        contains the local cluster with no extra arguments.

    Raises:
        CommandError: If sacctmgr itself fails.
    """
    available: dict[str, tuple[str, ...]] = {LOCAL_CLUSTER: ()}

    output = runner.execute(
        "sacctmgr",
        ["list", "cluster", "format=Cluster", "-n", "-P"],
    )
    for line in output.decode("utf-8", errors="replace").splitlines():
        name = line.strip()
        if not name or name in available:
            continue
        cmdargs = ("-M", name)
        if runner.probe("sshare", cmdargs):
            available[name] = cmdargs
        else:
            logger.warning("Dropping unreachable cluster", cluster=name)

    logger.info("Discovered clusters", clusters=",".join(available))
    return available


def resolve_clusters(
    requested: Iterable[str],
    available: Mapping[str, tuple[str, ...]],
) -> tuple[ClusterInfo, ...]:
    """Turn requested cluster names into ClusterInfo objects.

    Args:
        requested: Cluster names in the order they should be reported.
        available: Known clusters, as returned by :func:`discover_clusters`.

    Returns:
        ClusterInfo objects in requested order, without duplicates.

    Raises:
        UnknownClusterError: If a requested name is not available.
    """
    clusters: list[ClusterInfo] = []
    seen: set[str] = set()
    for name in requested:
        if name not in available:
            raise UnknownClusterError(name, available)
        if name in seen:
            continue
        seen.add(name)
        clusters.append(ClusterInfo(name=name, cmdargs=available[name]))
    return tuple(clusters)
