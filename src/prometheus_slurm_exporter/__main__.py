"""Command line entry point for the Prometheus Slurm Exporter."""

import argparse
import sys

import pydantic
import structlog
import uvicorn

from . import server, slurmcli

logger = structlog.get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="prometheus-slurm-exporter",
        description="Export SLURM metrics for Prometheus",
    )
    parser.add_argument("--config", help="Path to JSON configuration file")
    parser.add_argument(
        "--listen-address",
        help="The address to listen on for HTTP requests (default: :9341)",
    )
    parser.add_argument(
        "--clusters",
        help="Comma-separated list of clusters to export (default: local). "
        "Run with --list-clusters to see the available names",
    )
    parser.add_argument(
        "--list-clusters",
        action="store_true",
        help="Print the clusters known to sacctmgr that answer, then exit",
    )
    parser.add_argument(
        "--gpus-acct",
        action="store_true",
        default=None,
        help="Enable GPUs accounting",
    )
    parser.add_argument("--metrics-path", help="URL path for metrics (default: /metrics)")
    parser.add_argument(
        "--command-timeout",
        type=float,
        help="Timeout for SLURM commands in seconds (default: 30)",
    )
    parser.add_argument(
        "--no-fail-fast",
        dest="fail_fast",
        action="store_false",
        default=None,
        help="Skip a collector's metrics for one scrape instead of exiting "
        "when a SLURM command fails",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    return parser


def build_config(args: argparse.Namespace) -> server.ExporterConfig:
    """Merge command line flags over the optional config file.

    Raises:
        FileNotFoundError: If --config points to a missing file.
        pydantic.ValidationError: If the merged values are invalid.
    """
    values = server.read_config_file(args.config) if args.config else {}
    overrides = {
        "listen_address": args.listen_address,
        "clusters": args.clusters,
        "gpus_acct": args.gpus_acct,
        "metrics_path": args.metrics_path,
        "command_timeout": args.command_timeout,
        "fail_fast": args.fail_fast,
        "log_level": args.log_level,
    }
    values.update({key: value for key, value in overrides.items() if value is not None})
    return server.ExporterConfig(**values)


def list_clusters(config: server.ExporterConfig) -> int:
    """Print every reachable cluster name, one per line."""
    runner = slurmcli.CommandRunner(timeout=config.command_timeout)
    try:
        available = slurmcli.discover_clusters(runner)
    except slurmcli.CommandError as exc:
        logger.error("Failed to list clusters", error=str(exc))
        return 1
    for name in sorted(available):
        print(name)
    return 0


def main(argv: list[str] | None = None) -> int:
    """Entry point for the Prometheus Slurm Exporter."""
    args = build_parser().parse_args(argv)

    try:
        config = build_config(args)
    except (FileNotFoundError, pydantic.ValidationError) as exc:
        server.configure_logging("INFO")
        logger.error("Invalid configuration", error=str(exc))
        return 1

    server.configure_logging(config.log_level)

    if args.list_clusters:
        return list_clusters(config)

    try:
        app = server.create_exporter(config)
    except (slurmcli.UnknownClusterError, slurmcli.CommandError) as exc:
        logger.error("Failed to start exporter", error=str(exc))
        return 1

    logger.info(
        "Starting Server",
        listen_address=config.listen_address,
        gpus_acct=config.gpus_acct,
    )
    uvicorn.run(app, host=config.host, port=config.port, access_log=False)
    return 0


if __name__ == "__main__":
    sys.exit(main())
