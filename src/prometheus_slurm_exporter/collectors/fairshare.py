"""Fair-share metrics collector for SLURM.

Exports the fair-share factor of each top-level account from
``sshare -n -P -o account,fairshare``.
"""

from collections.abc import Iterator

from prometheus_client.metrics_core import Metric

from .. import parsing, slurmcli
from ..collector import ClusterSnapshot, MetricDescriptor

# sshare indents child accounts and users by at least this prefix
CHILD_INDENT = "  "

FAIRSHARE = MetricDescriptor(
    "slurm_account_fairshare",
    "FairShare for account",
    ("account",),
)

DESCRIPTORS = (FAIRSHARE,)


def parse_fairshare(output: bytes) -> dict[str, float]:
    """Parse ``account|fairshare`` lines of top-level accounts.

    Indented lines belong to child accounts or users and are skipped.
    Indentation is significant, so lines are not stripped before the
    check.
    """
    accounts: dict[str, float] = {}
    if not output:
        return accounts

    for line in output.decode("utf-8", errors="replace").splitlines():
        if line.startswith(CHILD_INDENT) or "|" not in line:
            continue
        account, fairshare = parsing.split_fields(line, "|")[:2]
        if not account:
            continue
        accounts[account] = parsing.parse_float(fairshare)
    return accounts


def fetch(runner: slurmcli.CommandRunner, cluster: slurmcli.ClusterInfo) -> dict[str, float]:
    """Fetch fair-share factors for one cluster."""
    return parse_fairshare(
        runner.execute("sshare", ["-n", "-P", "-o", "account,fairshare", *cluster.cmdargs]),
    )


def generate_metrics(snapshots: list[ClusterSnapshot[dict[str, float]]]) -> Iterator[Metric]:
    """Generate the fair-share gauge labelled by cluster and account."""
    fairshare = FAIRSHARE.family()
    for snapshot in snapshots:
        for account, value in snapshot.data.items():
            fairshare.add_metric([snapshot.cluster.name, account], value)
    yield fairshare
