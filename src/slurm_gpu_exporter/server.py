"""HTTP server for the Slurm GPU Exporter."""

import json
import logging
import os
import pathlib

import prometheus_client
import prometheus_client.core
import pydantic
import starlette.applications
import starlette.requests
import starlette.responses
import starlette.routing
import structlog

from . import collector, slurmcli
from .collectors import gpus, gres_gpu

CONFIG_ENV_VAR = "SLURM_GPU_EXPORTER_CONFIG_PATH"
METRICS_MEDIA_TYPE = "text/plain; version=0.0.4; charset=utf-8"
logger = structlog.get_logger(__name__)


class ExporterConfig(pydantic.BaseModel):
    """Configuration for the Slurm GPU Exporter."""

    sinfo_path: str = pydantic.Field(
        "sinfo",
        description="Name or path of the sinfo executable",
        min_length=1,
    )
    squeue_path: str = pydantic.Field(
        "squeue",
        description="Name or path of the squeue executable",
        min_length=1,
    )
    command_timeout: float | None = pydantic.Field(
        None,
        description="Seconds to wait for each command, unset waits forever",
        gt=0,
    )
    metrics_path: str = pydantic.Field(
        "/metrics",
        description="URL path for metrics endpoint",
    )
    log_level: str = pydantic.Field("INFO", description="Logging level")


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
    path = pathlib.Path(config_path)
    if not path.exists():
        msg = f"Configuration file not found: {config_path}"
        raise FileNotFoundError(msg)

    with path.open("r") as f:
        data = json.load(f)

    return ExporterConfig(**data)


def create_registry_with_collectors(
    command_client: slurmcli.SlurmCommandClient,
) -> prometheus_client.core.CollectorRegistry:
    """Create a Prometheus registry with SLURM GPU collectors.

    Creates a custom registry (not the global one) and registers the GPU
    inventory and GPU job queue collectors. The command client is injected
    into the fetcher functions at build time.

    Args:
        command_client: Shared command client for all collectors.

    Returns:
        Configured Prometheus registry with injected dependencies.
    """
    registry = prometheus_client.core.CollectorRegistry()

    # Lambda captures command_client in closure, creating a zero-argument fetcher
    gpus_collector = collector.SlurmCollector(
        fetcher=lambda: gpus.fetch(command_client),
        generator=gpus.generate_metrics,
        metric_prefix="gpus",
        scraper_description=command_client.sinfo_path,
    )
    registry.register(gpus_collector)
    logger.info("Registered collector", collector="gpus", metric_prefix="gpus")

    gres_gpu_collector = collector.SlurmCollector(
        fetcher=lambda: gres_gpu.fetch(command_client),
        generator=gres_gpu.generate_metrics,
        metric_prefix="gres_gpu",
        scraper_description=command_client.squeue_path,
    )
    registry.register(gres_gpu_collector)
    logger.info(
        "Registered collector",
        collector="gres_gpu",
        metric_prefix="gres_gpu",
    )

    return registry


def create_starlette_app(
    metrics_path: str,
    registry: prometheus_client.core.CollectorRegistry,
) -> starlette.applications.Starlette:
    """Create a Starlette application for serving Prometheus metrics.

    Args:
        metrics_path: URL path for metrics endpoint (e.g., "/metrics").
        registry: Prometheus collector registry.

    Returns:
        Configured Starlette application.
    """

    def metrics_endpoint(
        request: starlette.requests.Request,
    ) -> starlette.responses.Response:
        """Generate and serve Prometheus metrics.

        A failed SLURM command aborts the scrape with a 503 and no metrics.

        Args:
            request: The incoming HTTP request.

        Returns:
            PlainTextResponse with metrics in Prometheus exposition format.
        """
        client_ip = request.client.host if request.client else "unknown"
        try:
            metrics_output = prometheus_client.generate_latest(registry)
        except slurmcli.SlurmCommandError as exc:
            logger.error(
                "Scrape aborted",
                client_ip=client_ip,
                path=request.url.path,
                error=str(exc),
            )
            return starlette.responses.PlainTextResponse(
                content=f"scrape failed: {exc}\n",
                status_code=503,
            )

        logger.info(
            "HTTP request",
            client_ip=client_ip,
            method=request.method,
            path=request.url.path,
        )
        return starlette.responses.PlainTextResponse(
            content=metrics_output,
            media_type=METRICS_MEDIA_TYPE,
        )

    routes = [
        starlette.routing.Route(metrics_path, metrics_endpoint, methods=["GET"]),
    ]

    return starlette.applications.Starlette(routes=routes)


def create_exporter(config: ExporterConfig) -> starlette.applications.Starlette:
    """Construct the exporter ASGI app from validated config."""
    command_client = slurmcli.SlurmCommandClient(
        sinfo_path=config.sinfo_path,
        squeue_path=config.squeue_path,
        timeout=config.command_timeout,
    )
    logger.info(
        "Created command client",
        sinfo=config.sinfo_path,
        squeue=config.squeue_path,
        timeout=config.command_timeout,
    )

    registry = create_registry_with_collectors(command_client=command_client)

    return create_starlette_app(
        metrics_path=config.metrics_path,
        registry=registry,
    )


def create_app(config_path: str | None = None) -> starlette.applications.Starlette:
    """Create the exporter ASGI app using a config path or environment default.

    Without a config path or environment variable the defaults are used.
    """
    resolved_path = config_path or os.environ.get(CONFIG_ENV_VAR)
    config = load_config(resolved_path) if resolved_path else ExporterConfig()
    configure_logging(config.log_level)
    return create_exporter(config)
