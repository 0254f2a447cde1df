"""Tests for SlurmCollector wired with real collector pipelines.

These tests exercise the full pipeline through the public collect() method:
raw command output -> parse -> per-cluster snapshot -> Prometheus metric
families. The GPU pipeline is used because it is the richest domain; the
other domains are covered by their own modules under tests/collectors.

SlurmCollector-specific concerns (cluster iteration, describe(), scrape
metadata and both failure policies) are tested here as well.
"""

import math
from collections.abc import Callable
from unittest.mock import MagicMock

import pytest
from prometheus_client.core import CollectorRegistry

from prometheus_slurm_exporter import collector, slurmcli
from prometheus_slurm_exporter.collectors import gpus

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def _gpu_collector(
    runner: MagicMock,
    clusters: list[slurmcli.ClusterInfo],
    fail_fast: bool = True,
) -> collector.SlurmCollector:
    return collector.SlurmCollector(
        fetcher=lambda cluster: gpus.fetch(runner, cluster),
        generator=gpus.generate_metrics,
        descriptors=gpus.DESCRIPTORS,
        clusters=clusters,
        metric_prefix="gpus",
        fail_fast=fail_fast,
    )


@pytest.fixture
def gpu_collector(
    mock_runner: MagicMock,
    local_cluster: slurmcli.ClusterInfo,
) -> collector.SlurmCollector:
    """SlurmCollector wired with the real GPU pipeline for the local cluster."""
    return _gpu_collector(mock_runner, [local_cluster])


def _values(metric_families, name: str) -> dict[str, float]:
    """Sample values of one family keyed by cluster label."""
    family = {m.name: m for m in metric_families}[name]
    return {s.labels["cluster"]: s.value for s in family.samples}


# ---------------------------------------------------------------------------
# End-to-end GPU scenarios
# ---------------------------------------------------------------------------


def test_collect_gpus_half_allocated(
    outputs_by_command: Callable[[dict[str, bytes]], None],
    gpu_collector: collector.SlurmCollector,
):
    """4 of 8 GPUs allocated gives idle 4 and utilization 0.5."""
    outputs_by_command({"sacct": b'"board:gpu:4"\n', "sinfo": b'node1 board:gpu:8"\n'})
    metrics = list(gpu_collector.collect())

    assert _values(metrics, "slurm_gpus_alloc") == {"local": 4.0}
    assert _values(metrics, "slurm_gpus_total") == {"local": 8.0}
    assert _values(metrics, "slurm_gpus_idle") == {"local": 4.0}
    assert _values(metrics, "slurm_gpus_utilization") == {"local": 0.5}


def test_collect_gpus_nothing_allocated(
    outputs_by_command: Callable[[dict[str, bytes]], None],
    gpu_collector: collector.SlurmCollector,
):
    """Empty accounting output means every GPU is idle."""
    outputs_by_command({"sacct": b"", "sinfo": b"node1 board:gpu:8\n"})
    metrics = list(gpu_collector.collect())

    assert _values(metrics, "slurm_gpus_alloc") == {"local": 0.0}
    assert _values(metrics, "slurm_gpus_idle") == {"local": 8.0}
    assert _values(metrics, "slurm_gpus_utilization") == {"local": 0.0}


def test_collect_gpus_no_gpus_at_all(
    outputs_by_command: Callable[[dict[str, bytes]], None],
    gpu_collector: collector.SlurmCollector,
):
    """With no GPUs installed every value is zero and utilization is finite."""
    outputs_by_command({})
    metrics = list(gpu_collector.collect())

    assert _values(metrics, "slurm_gpus_total") == {"local": 0.0}
    assert _values(metrics, "slurm_gpus_alloc") == {"local": 0.0}
    assert _values(metrics, "slurm_gpus_idle") == {"local": 0.0}
    utilization = _values(metrics, "slurm_gpus_utilization")["local"]
    assert math.isfinite(utilization)
    assert utilization == 0.0


def test_collect_gpus_breakdown_by_type(
    outputs_by_command: Callable[[dict[str, bytes]], None],
    gpu_collector: collector.SlurmCollector,
):
    """Per board type gauges carry cluster and type labels."""
    outputs_by_command(
        {
            "sacct": b"board:a100:2\nboard:a100:1\n",
            "sinfo": b"n1 board:a100:4\nn2 board:v100:2\n",
        },
    )
    families = {m.name: m for m in gpu_collector.collect()}

    total_by_type = {
        s.labels["type"]: s.value for s in families["slurm_gpus_total_by_type"].samples
    }
    alloc_by_type = {
        s.labels["type"]: s.value for s in families["slurm_gpus_alloc_by_type"].samples
    }
    assert total_by_type == {"a100": 4.0, "v100": 2.0}
    assert alloc_by_type == {"a100": 3.0}


# ---------------------------------------------------------------------------
# Cluster iteration
# ---------------------------------------------------------------------------


def test_collect_one_sample_per_cluster(
    mock_runner: MagicMock,
    local_cluster: slurmcli.ClusterInfo,
    remote_cluster: slurmcli.ClusterInfo,
):
    """Each cluster is fetched with its own selector and labelled by name."""

    def execute(command: str, arguments: list[str]) -> bytes:
        remote = "-M" in arguments
        if command == "sinfo":
            return b"n1 board:gpu:16\n" if remote else b"n1 board:gpu:8\n"
        return b"board:gpu:2\n" if remote else b""

    mock_runner.execute.side_effect = execute
    c = _gpu_collector(mock_runner, [local_cluster, remote_cluster])

    metrics = list(c.collect())

    assert _values(metrics, "slurm_gpus_total") == {"local": 8.0, "remote": 16.0}
    assert _values(metrics, "slurm_gpus_alloc") == {"local": 0.0, "remote": 2.0}


def test_collect_appends_cluster_args(
    mock_runner: MagicMock,
    remote_cluster: slurmcli.ClusterInfo,
):
    """Cluster selector arguments are appended to every invocation."""
    mock_runner.execute.return_value = b""
    list(_gpu_collector(mock_runner, [remote_cluster]).collect())

    assert mock_runner.execute.call_count == 2
    for call in mock_runner.execute.call_args_list:
        _command, arguments = call.args
        assert list(arguments[-2:]) == ["-M", "remote"]


def test_collect_without_clusters_yields_empty_families(mock_runner: MagicMock):
    """No clusters means no commands and no samples."""
    metrics = {m.name: m for m in _gpu_collector(mock_runner, []).collect()}
    mock_runner.execute.assert_not_called()
    assert metrics["slurm_gpus_total"].samples == []


# ---------------------------------------------------------------------------
# describe()
# ---------------------------------------------------------------------------


def test_describe_performs_no_io(
    mock_runner: MagicMock,
    gpu_collector: collector.SlurmCollector,
):
    """describe() lists every family without running commands."""
    names = {m.name for m in gpu_collector.describe()}

    mock_runner.execute.assert_not_called()
    assert {d.name for d in gpus.DESCRIPTORS} <= names
    assert "slurm_gpus_scrape_duration" in names
    assert "slurm_gpus_scrape_success" in names


def test_register_does_not_run_commands(
    mock_runner: MagicMock,
    gpu_collector: collector.SlurmCollector,
):
    """Registering in a registry relies on describe(), not collect()."""
    registry = CollectorRegistry()
    registry.register(gpu_collector)
    mock_runner.execute.assert_not_called()


def test_descriptor_family_has_cluster_label_first():
    descriptor = collector.MetricDescriptor("slurm_test", "test", ("type",))
    family = descriptor.family()
    family.add_metric(["c1", "a100"], 1.0)
    assert family.samples[0].labels == {"cluster": "c1", "type": "a100"}


# ---------------------------------------------------------------------------
# Scrape metadata
# ---------------------------------------------------------------------------


def test_collect_reports_success(
    mock_runner: MagicMock,
    gpu_collector: collector.SlurmCollector,
):
    """A healthy scrape reports success 1 and a non-negative duration."""
    mock_runner.execute.return_value = b""
    metrics = {m.name: m for m in gpu_collector.collect()}
    assert metrics["slurm_gpus_scrape_success"].samples[0].value == 1.0
    assert metrics["slurm_gpus_scrape_duration"].samples[0].value >= 0.0


# ---------------------------------------------------------------------------
# Failure policies
# ---------------------------------------------------------------------------


def test_collect_fail_fast_raises(
    mock_runner: MagicMock,
    gpu_collector: collector.SlurmCollector,
):
    """With fail_fast a command failure becomes FatalScrapeError."""
    mock_runner.execute.side_effect = slurmcli.CommandError("sinfo", [], "exit status 1")
    with pytest.raises(collector.FatalScrapeError) as exc_info:
        list(gpu_collector.collect())
    assert isinstance(exc_info.value.__cause__, slurmcli.CommandError)


def test_collect_resilient_omits_domain_metrics(
    mock_runner: MagicMock,
    local_cluster: slurmcli.ClusterInfo,
):
    """Without fail_fast only scrape metadata is yielded on failure."""
    mock_runner.execute.side_effect = slurmcli.CommandError("sinfo", [], "timed out")
    c = _gpu_collector(mock_runner, [local_cluster], fail_fast=False)

    metrics = {m.name: m for m in c.collect()}

    assert "slurm_gpus_total" not in metrics
    assert metrics["slurm_gpus_scrape_success"].samples[0].value == 0.0
    assert metrics["slurm_gpus_scrape_duration"].samples[0].value == -1.0


def test_collect_resilient_no_partial_clusters(
    mock_runner: MagicMock,
    local_cluster: slurmcli.ClusterInfo,
    remote_cluster: slurmcli.ClusterInfo,
):
    """A failure on one cluster drops the domain for all clusters."""

    def execute(command: str, arguments: list[str]) -> bytes:
        if "-M" in arguments:
            raise slurmcli.CommandError(command, arguments, "exit status 1")
        return b"n1 board:gpu:8\n"

    mock_runner.execute.side_effect = execute
    c = _gpu_collector(mock_runner, [local_cluster, remote_cluster], fail_fast=False)

    metrics = {m.name: m for m in c.collect()}

    assert "slurm_gpus_total" not in metrics


def test_collect_resilient_recovers(
    mock_runner: MagicMock,
    local_cluster: slurmcli.ClusterInfo,
):
    """Domain metrics reappear once commands stop failing."""
    c = _gpu_collector(mock_runner, [local_cluster], fail_fast=False)
    mock_runner.execute.side_effect = slurmcli.CommandError("sinfo", [], "down")
    list(c.collect())

    mock_runner.execute.side_effect = None
    mock_runner.execute.return_value = b""
    metrics = {m.name: m for m in c.collect()}

    assert "slurm_gpus_total" in metrics
    assert metrics["slurm_gpus_scrape_success"].samples[0].value == 1.0
