"""Shared fixtures: fake command runner and clusters."""

from collections.abc import Callable
from unittest.mock import MagicMock

import pytest

from prometheus_slurm_exporter import slurmcli


@pytest.fixture
def mock_runner() -> MagicMock:
    """Mock CommandRunner with no pre-configured return values."""
    return MagicMock(spec=slurmcli.CommandRunner)


@pytest.fixture
def outputs_by_command(mock_runner: MagicMock) -> Callable[[dict[str, bytes]], None]:
    """Configure mock_runner to answer each command with fixed output.

    Commands missing from the mapping return empty output.
    """

    def configure(outputs: dict[str, bytes]) -> None:
        mock_runner.execute.side_effect = lambda command, arguments: outputs.get(
            command,
            b"",
        )

    return configure


@pytest.fixture
def local_cluster() -> slurmcli.ClusterInfo:
    return slurmcli.ClusterInfo(name="local")


@pytest.fixture
def remote_cluster() -> slurmcli.ClusterInfo:
    return slurmcli.ClusterInfo(name="remote", cmdargs=("-M", "remote"))
