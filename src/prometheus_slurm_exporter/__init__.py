"""Prometheus Slurm Exporter.

Prometheus exporter for the SLURM workload manager that runs the SLURM
command line tools (sinfo, squeue, sacct, sdiag, sshare) per cluster and
exports CPU, GPU, node, queue, partition, account, user, scheduler and
fair-share metrics.
"""

__version__ = "0.1.0"
