"""Tests for the fair-share collector module."""

from unittest.mock import MagicMock

from prometheus_slurm_exporter import collector, slurmcli
from prometheus_slurm_exporter.collectors import fairshare

SSHARE_OUTPUT = b"""root|0.500000
 physics|0.750000
  physics|0.700000
   alice|0.650000
 chemistry|abc
"""


def test_parse_fairshare_top_level_accounts():
    """Accounts indented by two or more spaces are skipped."""
    accounts = fairshare.parse_fairshare(SSHARE_OUTPUT)
    assert accounts == {"root": 0.5, "physics": 0.75, "chemistry": 0.0}


def test_parse_fairshare_empty_output():
    assert fairshare.parse_fairshare(b"") == {}


def test_generate_metrics(mock_runner: MagicMock, local_cluster: slurmcli.ClusterInfo):
    mock_runner.execute.return_value = b"physics|0.25\n"
    data = fairshare.fetch(mock_runner, local_cluster)
    (family,) = fairshare.generate_metrics([collector.ClusterSnapshot(local_cluster, data)])

    assert family.name == "slurm_account_fairshare"
    assert family.samples[0].labels == {"cluster": "local", "account": "physics"}
    assert family.samples[0].value == 0.25
