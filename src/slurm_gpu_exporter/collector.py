"""Prometheus collector implementation using composition pattern.

Provides a reusable collector that separates data fetching from metric
generation through dependency injection. Every scrape fetches fresh data.
"""

import time
from collections.abc import Callable, Iterator
from threading import Lock
from typing import Generic, TypeAlias, TypeVar

import structlog
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily
from prometheus_client.metrics_core import Metric
from prometheus_client.registry import Collector

logger = structlog.get_logger(__name__)

T = TypeVar("T")


Fetcher: TypeAlias = Callable[[], T]
MetricsGenerator: TypeAlias = Callable[[T], Iterator[Metric]]


class SlurmCollector(Collector, Generic[T]):
    """Prometheus collector for SLURM metrics using composition pattern.

    Separates concerns through dependency injection:
    - Data fetching and parsing (via Fetcher function with injected dependencies)
    - Metric generation (via MetricsGenerator function)
    - Scrape timing and error accounting (managed internally)

    Each collector instance is configured with specific fetcher and generator
    functions, making it reusable for different metric types (GPU inventory,
    GPU job queue). A failed fetch aborts the whole scrape: the exception is
    counted, logged and re-raised so that no partial metrics are exposed.
    """

    def __init__(
        self,
        fetcher: Fetcher[T],
        generator: MetricsGenerator[T],
        metric_prefix: str,
        scraper_description: str,
    ):
        """Initialize the SLURM collector.

        Args:
            fetcher: Function that fetches and parses data (with
                dependencies pre-injected).
            generator: Function that generates Prometheus metrics from data.
            metric_prefix: Metric name prefix (e.g., "gpus", "gres_gpu").
            scraper_description: Description of the scraper for logging
                (e.g., the command being run).
        """
        self._fetcher = fetcher
        self._generator = generator
        self._metric_prefix = metric_prefix

        # Track errors manually (no global Counter registration)
        self._error_count = 0
        self._error_lock = Lock()

        self._scraper_desc = scraper_description

    def fetch_metrics(self) -> tuple[T, float]:
        """Fetch fresh data.

        Returns:
            Tuple of (data, fetch_duration) where fetch_duration is in
            seconds.

        Raises:
            Exception: Whatever the fetcher raises, after it has been
                logged and counted.
        """
        start = time.time()
        try:
            data = self._fetcher()
        except Exception:
            with self._error_lock:
                self._error_count += 1
                error_count = self._error_count
            logger.exception(
                "Failed to fetch metrics for collection",
                metric_prefix=self._metric_prefix,
                scraper=self._scraper_desc,
                error_count=error_count,
            )
            raise
        duration = time.time() - start
        logger.debug(
            "Fetched fresh data",
            metric_prefix=self._metric_prefix,
            duration_seconds=round(duration, 3),
        )
        return data, duration

    def collect(self) -> Iterator[Metric]:
        """Collect metrics for Prometheus scrape.

        Called by Prometheus client during each scrape. Yields scrape metadata
        (duration and error count) followed by domain-specific metrics from the
        configured generator function.

        Yields:
            Prometheus Metric objects (metadata + domain metrics).
        """
        data, fetch_duration = self.fetch_metrics()
        with self._error_lock:
            error_count = self._error_count

        scrape_duration = GaugeMetricFamily(
            f"slurm_{self._metric_prefix}_scrape_duration",
            f"scrape duration from {self._scraper_desc} in seconds",
        )
        scrape_duration.add_metric([], fetch_duration)
        yield scrape_duration

        error_counter = CounterMetricFamily(
            f"slurm_{self._metric_prefix}_scrape_error",
            f"slurm {self._metric_prefix} scrape errors",
        )
        error_counter.add_metric([], error_count)
        yield error_counter

        yield from self._generator(data)
