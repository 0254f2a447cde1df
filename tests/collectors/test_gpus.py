"""Tests for the GPU collector module.

The collect() pipeline and the end-to-end scenarios are covered in
test_collector.py; these tests focus on the two parsers and the derived
snapshot.
"""

from unittest.mock import MagicMock

from prometheus_slurm_exporter import slurmcli
from prometheus_slurm_exporter.collectors import gpus

SACCT_OUTPUT = b"""billing=8,cpu=8,mem=32G,node=1
board:a100:2
"board:a100:1"
board:v100:4
"""

SINFO_OUTPUT = b"""node01 board:a100:4
node02 board:a100:4
node03 board:v100:8
node04 (null)
"""


def test_parse_allocated_gpus():
    counts, total = gpus.parse_allocated_gpus(SACCT_OUTPUT)
    assert counts == {"a100": 3.0, "v100": 4.0}
    assert total == 7.0


def test_parse_total_gpus():
    counts, total = gpus.parse_total_gpus(SINFO_OUTPUT)
    assert counts == {"a100": 8.0, "v100": 8.0}
    assert total == 16.0


def test_build_metric_derives_idle_and_utilization():
    metric = gpus.build_metric(({"a100": 4.0}, 4.0), ({"a100": 16.0}, 16.0))
    assert metric.allocated == 4.0
    assert metric.idle == 12.0
    assert metric.total == 16.0
    assert metric.utilization == 0.25


def test_build_metric_zero_total_utilization_is_zero():
    """Zero capacity reports zero utilization, not NaN."""
    metric = gpus.build_metric(({}, 0.0), ({}, 0.0))
    assert metric.utilization == 0.0
    assert metric.idle == 0.0


def test_build_metric_negative_inventory_stays_non_negative():
    """A negative inventory count parses as zero and idle never drops below it."""
    metric = gpus.build_metric(
        gpus.parse_allocated_gpus(b"board:a100:2\n"),
        gpus.parse_total_gpus(b"n1 board:a100:-4\n"),
    )
    assert metric.total == 0.0
    assert metric.total_by_type == {"a100": 0.0}
    assert metric.idle == 0.0
    assert metric.utilization == 0.0


def test_fetch_runs_sinfo_and_sacct(
    mock_runner: MagicMock,
    local_cluster: slurmcli.ClusterInfo,
):
    """A GPU fetch runs exactly one sinfo and one sacct."""
    mock_runner.execute.side_effect = lambda command, arguments: {
        "sinfo": SINFO_OUTPUT,
        "sacct": SACCT_OUTPUT,
    }[command]

    metric = gpus.fetch(mock_runner, local_cluster)

    commands = [call.args[0] for call in mock_runner.execute.call_args_list]
    assert sorted(commands) == ["sacct", "sinfo"]
    assert metric.allocated == 7.0
    assert metric.total == 16.0
    assert metric.idle == 9.0


def test_fetch_sacct_only_counts_running_jobs(
    mock_runner: MagicMock,
    local_cluster: slurmcli.ClusterInfo,
):
    mock_runner.execute.return_value = b""
    gpus.fetch(mock_runner, local_cluster)
    sacct_args = next(
        call.args[1]
        for call in mock_runner.execute.call_args_list
        if call.args[0] == "sacct"
    )
    assert "--state=RUNNING" in sacct_args
    assert "--format=AllocTRES" in sacct_args
