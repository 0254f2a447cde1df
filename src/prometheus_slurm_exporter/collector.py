"""Prometheus collector implementation using composition pattern.

Provides a reusable collector that runs a per-cluster fetcher over every
configured cluster and hands the results to a metric generator. Each SLURM
resource domain only supplies its fetcher, generator and descriptors.
"""

import time
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from typing import Generic, TypeAlias, TypeVar

import structlog
from prometheus_client.core import GaugeMetricFamily
from prometheus_client.metrics_core import Metric
from prometheus_client.registry import Collector

from .slurmcli import ClusterInfo, CommandError

logger = structlog.get_logger(__name__)

T = TypeVar("T")

CLUSTER_LABEL = "cluster"


class FatalScrapeError(RuntimeError):
    """Raised by a fail-fast collector when a SLURM command fails."""


@dataclass(frozen=True)
class MetricDescriptor:
    """Static description of one exported gauge.

    Every gauge is labelled with the cluster name first, followed by any
    domain-specific labels.
    """

    name: str
    documentation: str
    labels: tuple[str, ...] = ()

    def family(self) -> GaugeMetricFamily:
        """Create an empty gauge family for this descriptor."""
        return GaugeMetricFamily(
            self.name,
            self.documentation,
            labels=[CLUSTER_LABEL, *self.labels],
        )


@dataclass(frozen=True)
class ClusterSnapshot(Generic[T]):
    """Data fetched for one cluster during one scrape."""

    cluster: ClusterInfo
    data: T


Fetcher: TypeAlias = Callable[[ClusterInfo], T]
MetricsGenerator: TypeAlias = Callable[[list[ClusterSnapshot[T]]], Iterator[Metric]]


class SlurmCollector(Collector, Generic[T]):
    """Prometheus collector for one SLURM resource domain.

    Separates concerns through dependency injection:
    - Running commands and parsing output for one cluster (via Fetcher,
      with the command runner pre-injected)
    - Metric generation across clusters (via MetricsGenerator)
    - Cluster iteration, scrape metadata and error handling (managed here)

    Clusters are fetched sequentially and every cluster is fetched before
    any metric is yielded, so a scrape never mixes fresh and missing data
    for the same domain.
    """

    def __init__(
        self,
        fetcher: Fetcher[T],
        generator: MetricsGenerator[T],
        descriptors: Iterable[MetricDescriptor],
        clusters: Iterable[ClusterInfo],
        metric_prefix: str,
        fail_fast: bool = True,
    ):
        """Initialize the SLURM collector.

        Args:
            fetcher: Function that runs and parses the domain's commands
                for one cluster.
            generator: Function that generates Prometheus metrics from the
                snapshots of all clusters.
            descriptors: Gauges the generator yields, reported by describe().
            clusters: Clusters to collect, in reporting order.
            metric_prefix: Metric name prefix for scrape metadata
                (e.g., "gpus", "queue").
            fail_fast: Raise FatalScrapeError when a command fails instead
                of skipping the domain's metrics for that scrape.
        """
        self._fetcher = fetcher
        self._generator = generator
        self._descriptors = tuple(descriptors)
        self._clusters = tuple(clusters)
        self._metric_prefix = metric_prefix
        self._fail_fast = fail_fast

    @property
    def metric_prefix(self) -> str:
        return self._metric_prefix

    def fetch_metrics(self) -> tuple[list[ClusterSnapshot[T]], float]:
        """Fetch data for every configured cluster.

        Returns:
            Tuple of (snapshots in cluster order, fetch duration in seconds).

        Raises:
            CommandError: If any command fails.
        """
        start = time.time()
        snapshots = []
        for cluster in self._clusters:
            log = logger.bind(metric_prefix=self._metric_prefix, cluster=cluster.name)
            log.debug("Fetching cluster metrics")
            snapshots.append(ClusterSnapshot(cluster=cluster, data=self._fetcher(cluster)))
        return snapshots, time.time() - start

    def _metadata(self, duration: float, success: bool) -> Iterator[Metric]:
        scrape_duration = GaugeMetricFamily(
            f"slurm_{self._metric_prefix}_scrape_duration",
            f"time spent running slurm {self._metric_prefix} commands in seconds, "
            f"-1 indicates error",
        )
        scrape_duration.add_metric([], duration)
        yield scrape_duration

        scrape_success = GaugeMetricFamily(
            f"slurm_{self._metric_prefix}_scrape_success",
            f"whether the last slurm {self._metric_prefix} scrape succeeded",
        )
        scrape_success.add_metric([], 1.0 if success else 0.0)
        yield scrape_success

    def describe(self) -> Iterator[Metric]:
        """Describe the metrics this collector yields.

        Called by the registry at registration time so it does not have to
        run a full collect(). Performs no I/O.

        Yields:
            Empty metric families for scrape metadata and domain gauges.
        """
        yield from self._metadata(-1.0, False)
        for descriptor in self._descriptors:
            yield descriptor.family()

    def collect(self) -> Iterator[Metric]:
        """Collect metrics for Prometheus scrape.

        Called by Prometheus client during each scrape. Yields scrape
        metadata followed by domain-specific metrics from the configured
        generator function.

        Yields:
            Prometheus Metric objects (metadata + domain metrics).

        Raises:
            FatalScrapeError: If a command fails and fail_fast is set.
        """
        snapshots: list[ClusterSnapshot[T]] | None = None
        try:
            snapshots, duration_value = self.fetch_metrics()
        except CommandError as exc:
            logger.exception(
                "Failed to fetch metrics for collection",
                metric_prefix=self._metric_prefix,
            )
            if self._fail_fast:
                msg = f"slurm {self._metric_prefix} collector failed: {exc}"
                raise FatalScrapeError(msg) from exc
            duration_value = -1.0

        yield from self._metadata(duration_value, snapshots is not None)

        # Generate metrics from data using the injected generator (skip if error)
        if snapshots is not None:
            yield from self._generator(snapshots)
