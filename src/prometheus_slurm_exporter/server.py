"""HTTP server for the Prometheus Slurm Exporter."""

import json
import logging
import os
import pathlib
from collections.abc import Callable, Iterable
from types import ModuleType

import prometheus_client
import prometheus_client.core
import pydantic
import starlette.applications
import starlette.requests
import starlette.responses
import starlette.routing
import structlog

from . import collector, slurmcli
from .collectors import (
    accounts,
    cpus,
    fairshare,
    gpus,
    node,
    nodes,
    partitions,
    queue,
    scheduler,
    users,
)

CONFIG_ENV_VAR = "SLURM_EXPORTER_CONFIG_PATH"
logger = structlog.get_logger(__name__)

# Collectors registered on every exporter, by metric prefix
DEFAULT_COLLECTORS: dict[str, ModuleType] = {
    "accounts": accounts,
    "cpus": cpus,
    "nodes": nodes,
    "node": node,
    "partitions": partitions,
    "queue": queue,
    "scheduler": scheduler,
    "fairshare": fairshare,
    "users": users,
}


class ExporterConfig(pydantic.BaseModel):
    """Configuration for the Prometheus Slurm Exporter."""

    listen_address: str = pydantic.Field(
        ":9341",
        description="Address to listen on for HTTP requests, as [host]:port",
    )
    metrics_path: str = pydantic.Field(
        "/metrics",
        description="URL path for metrics endpoint",
    )
    clusters: list[str] = pydantic.Field(
        default_factory=lambda: [slurmcli.LOCAL_CLUSTER],
        description="Clusters to export, as a list or comma-separated string",
        min_length=1,
    )
    gpus_acct: bool = pydantic.Field(False, description="Enable GPUs accounting")
    command_timeout: float = pydantic.Field(
        slurmcli.DEFAULT_TIMEOUT,
        description="Timeout for SLURM commands in seconds",
        gt=0,
    )
    fail_fast: bool = pydantic.Field(
        True,
        description="Exit the process when a SLURM command fails during a scrape",
    )
    log_level: str = pydantic.Field("INFO", description="Logging level")

    @pydantic.field_validator("clusters", mode="before")
    @classmethod
    def split_clusters(cls, value):
        """Accept the comma-separated form used on the command line."""
        if isinstance(value, str):
            return [name.strip() for name in value.split(",") if name.strip()]
        return value

    @pydantic.field_validator("listen_address")
    @classmethod
    def check_listen_address(cls, value: str) -> str:
        _host, sep, port = value.rpartition(":")
        if not sep or not port.isdigit() or not 0 < int(port) < 65536:  # noqa: PLR2004
            msg = f"listen_address must be [host]:port, got {value!r}"
            raise ValueError(msg)
        return value

    @property
    def host(self) -> str:
        """Host part of listen_address; empty means all interfaces."""
        return self.listen_address.rpartition(":")[0].strip("[]") or "0.0.0.0"  # noqa: S104

    @property
    def port(self) -> int:
        return int(self.listen_address.rpartition(":")[2])


def configure_logging(log_level_name: str) -> None:
    """Configure structlog for logfmt output."""
    log_level = getattr(logging, log_level_name.upper(), logging.INFO)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.EventRenamer("msg"),
            structlog.processors.format_exc_info,
            structlog.processors.LogfmtRenderer(
                key_order=("timestamp", "level", "msg"),
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def load_config(config_path: str) -> ExporterConfig:
    """Load configuration from JSON file."""
    return ExporterConfig(**read_config_file(config_path))


def read_config_file(config_path: str) -> dict:
    """Read raw configuration values from a JSON file."""
    path = pathlib.Path(config_path)
    if not path.exists():
        msg = f"Configuration file not found: {config_path}"
        raise FileNotFoundError(msg)

    with path.open("r") as f:
        return json.load(f)


def resolve_cluster_set(
    runner: slurmcli.CommandRunner,
    requested: Iterable[str],
) -> tuple[slurmcli.ClusterInfo, ...]:
    """Validate requested clusters, discovering remote ones if needed.

    sacctmgr is only queried when a cluster other than the local one is
    requested.

    Raises:
        UnknownClusterError: If a requested cluster is not available.
        CommandError: If cluster discovery fails.
    """
    requested = list(requested)
    if all(name == slurmcli.LOCAL_CLUSTER for name in requested):
        available: dict[str, tuple[str, ...]] = {slurmcli.LOCAL_CLUSTER: ()}
    else:
        available = slurmcli.discover_clusters(runner)
    return slurmcli.resolve_clusters(requested, available)


def create_registry_with_collectors(
    runner: slurmcli.CommandRunner,
    clusters: Iterable[slurmcli.ClusterInfo],
    gpus_acct: bool = False,
    fail_fast: bool = True,
) -> prometheus_client.core.CollectorRegistry:
    """Create a Prometheus registry with SLURM collectors.

    Creates a custom registry (not the global one) and registers one
    collector per resource domain. The runner is injected into each
    domain's fetcher at build time.

    Args:
        runner: Shared command runner for all collectors.
        clusters: Clusters every collector reports on.
        gpus_acct: Also register the GPU accounting collector.
        fail_fast: Passed to every collector.

    Returns:
        Configured Prometheus registry with injected dependencies.
    """
    registry = prometheus_client.core.CollectorRegistry()
    clusters = tuple(clusters)

    domains = dict(DEFAULT_COLLECTORS)
    if gpus_acct:
        domains["gpus"] = gpus

    for prefix, module in domains.items():
        # Default argument binds the current module, creating a one-argument fetcher
        domain_collector = collector.SlurmCollector(
            fetcher=lambda cluster, module=module: module.fetch(runner, cluster),
            generator=module.generate_metrics,
            descriptors=module.DESCRIPTORS,
            clusters=clusters,
            metric_prefix=prefix,
            fail_fast=fail_fast,
        )
        registry.register(domain_collector)
        logger.info("Registered collector", collector=prefix)

    return registry


def create_starlette_app(
    metrics_path: str,
    registry: prometheus_client.core.CollectorRegistry,
    terminate: Callable[[int], None] = os._exit,
) -> starlette.applications.Starlette:
    """Create a Starlette application for serving Prometheus metrics.

    Args:
        metrics_path: URL path for metrics endpoint (e.g., "/metrics").
        registry: Prometheus collector registry.
        terminate: Called with exit status 1 when a fail-fast collector
            reports a fatal error.

    Returns:
        Configured Starlette application.
    """

    def metrics_endpoint(
        request: starlette.requests.Request,
    ) -> starlette.responses.Response:
        """Generate and serve Prometheus metrics.

        Args:
            request: The incoming HTTP request.

        Returns:
            PlainTextResponse with metrics in Prometheus exposition format.
        """
        try:
            metrics_output = prometheus_client.generate_latest(registry)
        except collector.FatalScrapeError as exc:
            logger.critical("Fatal scrape error, exiting", error=str(exc))
            terminate(1)
            return starlette.responses.PlainTextResponse(
                content=str(exc),
                status_code=500,
            )
        logger.info(
            "HTTP request",
            client_ip=request.client.host if request.client else "unknown",
            method=request.method,
            path=request.url.path,
        )
        return starlette.responses.PlainTextResponse(
            content=metrics_output,
            media_type="text/plain; version=0.0.4; charset=utf-8",
        )

    routes = [
        starlette.routing.Route(metrics_path, metrics_endpoint, methods=["GET"]),
    ]

    return starlette.applications.Starlette(routes=routes)


def create_exporter(config: ExporterConfig) -> starlette.applications.Starlette:
    """Construct the exporter ASGI app from validated config.

    Raises:
        UnknownClusterError: If a configured cluster is not available.
    """
    runner = slurmcli.CommandRunner(timeout=config.command_timeout)
    clusters = resolve_cluster_set(runner, config.clusters)
    logger.info(
        "Resolved clusters",
        clusters=",".join(cluster.name for cluster in clusters),
        gpus_acct=config.gpus_acct,
    )

    registry = create_registry_with_collectors(
        runner=runner,
        clusters=clusters,
        gpus_acct=config.gpus_acct,
        fail_fast=config.fail_fast,
    )

    return create_starlette_app(
        metrics_path=config.metrics_path,
        registry=registry,
    )


def create_app(config_path: str | None = None) -> starlette.applications.Starlette:
    """Create the exporter ASGI app using a config path or environment default."""
    resolved_path = config_path or os.environ.get(CONFIG_ENV_VAR, "/config.json")
    config = load_config(resolved_path)
    configure_logging(config.log_level)
    return create_exporter(config)
