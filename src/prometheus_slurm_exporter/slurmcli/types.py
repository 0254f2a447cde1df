"""Types shared by the SLURM command line layer.

Pydantic models describing the clusters the exporter reports on. These are
created once at startup and shared read-only by every collector.
"""

from pydantic import BaseModel, ConfigDict

LOCAL_CLUSTER = "local"


class ClusterInfo(BaseModel):
    """Identity of one logical SLURM cluster.

    ``cmdargs`` holds the extra arguments appended to every command run for
    this cluster (e.g. ``("-M", "cluster1")``). It is empty for the local
    cluster.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    cmdargs: tuple[str, ...] = ()
