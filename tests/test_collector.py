"""Tests for SlurmCollector wired with real collector pipelines.

These tests exercise the full pipeline through the public collect() method:
raw command output → parse → Prometheus metric families. Scrape metadata and
the all-or-nothing error handling are covered here with the real collector
wiring rather than synthetic stubs.
"""

import threading
from unittest.mock import MagicMock

import pytest

from slurm_gpu_exporter import collector
from slurm_gpu_exporter.collectors import gpus, gres_gpu
from slurm_gpu_exporter.slurmcli import client

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_client() -> MagicMock:
    """Mock SlurmCommandClient with no pre-configured return values."""
    return MagicMock(spec=client.SlurmCommandClient)


@pytest.fixture
def gpus_collector(mock_client: MagicMock) -> collector.SlurmCollector:
    """SlurmCollector wired with the real GPU inventory pipeline."""
    return collector.SlurmCollector(
        fetcher=lambda: gpus.fetch(mock_client),
        generator=gpus.generate_metrics,
        metric_prefix="gpus",
        scraper_description="sinfo",
    )


@pytest.fixture
def gres_gpu_collector(mock_client: MagicMock) -> collector.SlurmCollector:
    """SlurmCollector wired with the real GPU job queue pipeline."""
    return collector.SlurmCollector(
        fetcher=lambda: gres_gpu.fetch(mock_client),
        generator=gres_gpu.generate_metrics,
        metric_prefix="gres_gpu",
        scraper_description="squeue",
    )


# ---------------------------------------------------------------------------
# Scrape metadata
# ---------------------------------------------------------------------------


def test_collect_yields_scrape_duration(
    mock_client: MagicMock,
    gpus_collector: collector.SlurmCollector,
):
    """Scrape duration gauge is present and non-negative."""
    mock_client.get_node_gres.return_value = b""
    metrics = {m.name: m for m in gpus_collector.collect()}
    assert metrics["slurm_gpus_scrape_duration"].samples[0].value >= 0.0


def test_collect_error_count_starts_at_zero(
    mock_client: MagicMock,
    gpus_collector: collector.SlurmCollector,
):
    """Error counter is 0 on a healthy scrape."""
    mock_client.get_node_gres.return_value = b""
    metrics = {m.name: m for m in gpus_collector.collect()}
    assert metrics["slurm_gpus_scrape_error"].samples[0].value == 0


def test_collect_metric_prefix_in_metadata_names(
    mock_client: MagicMock,
    gres_gpu_collector: collector.SlurmCollector,
):
    """Metadata metric names incorporate the configured metric_prefix."""
    mock_client.get_job_tres.return_value = b""
    metrics = {m.name: m for m in gres_gpu_collector.collect()}
    assert "slurm_gres_gpu_scrape_duration" in metrics
    assert "slurm_gres_gpu_scrape_error" in metrics


def test_collect_fetches_on_every_scrape(
    mock_client: MagicMock,
    gpus_collector: collector.SlurmCollector,
):
    """Nothing is cached: each collect() runs the command again."""
    mock_client.get_node_gres.return_value = b""

    list(gpus_collector.collect())
    list(gpus_collector.collect())
    list(gpus_collector.collect())

    assert mock_client.get_node_gres.call_count == 3


def test_collect_reflects_new_data_each_scrape(
    mock_client: MagicMock,
    gpus_collector: collector.SlurmCollector,
):
    """Values are recomputed from scratch rather than accumulated."""
    mock_client.get_node_gres.return_value = b"node1 gpu:4 gpu:1\n"
    list(gpus_collector.collect())

    mock_client.get_node_gres.return_value = b"node1 gpu:2 gpu:2\n"
    metrics = {m.name: m for m in gpus_collector.collect()}
    assert metrics["slurm_gpus_total"].samples[0].value == 2.0
    assert metrics["slurm_gpus_idle"].samples[0].value == 0.0


# ---------------------------------------------------------------------------
# Error handling
# ---------------------------------------------------------------------------


def test_collect_raises_on_fetch_failure(
    mock_client: MagicMock,
    gpus_collector: collector.SlurmCollector,
):
    """A failed command aborts the collection with the original error."""
    mock_client.get_node_gres.side_effect = client.SlurmCommandError("sinfo")
    with pytest.raises(client.SlurmCommandError):
        list(gpus_collector.collect())


def test_collect_yields_nothing_on_fetch_failure(
    mock_client: MagicMock,
    gpus_collector: collector.SlurmCollector,
):
    """No metric family is produced before the failure is raised."""
    mock_client.get_node_gres.side_effect = client.SlurmCommandError("sinfo")
    produced = []
    with pytest.raises(client.SlurmCommandError):
        produced.extend(gpus_collector.collect())
    assert produced == []


def test_collect_error_count_visible_after_recovery(
    mock_client: MagicMock,
    gres_gpu_collector: collector.SlurmCollector,
):
    """Failed scrapes are counted and reported once the command recovers."""
    mock_client.get_job_tres.side_effect = client.SlurmCommandError("squeue")
    for _ in range(2):
        with pytest.raises(client.SlurmCommandError):
            list(gres_gpu_collector.collect())

    mock_client.get_job_tres.side_effect = None
    mock_client.get_job_tres.return_value = b"1 RUNNING gres/gpu=1\n"
    metrics = {m.name: m for m in gres_gpu_collector.collect()}

    assert metrics["slurm_gres_gpu_scrape_error"].samples[0].value == 2
    assert metrics["slurm_gres_gpu_running"].samples[0].value == 1.0


def test_collect_concurrent_failures_all_counted(
    mock_client: MagicMock,
    gpus_collector: collector.SlurmCollector,
):
    """Failed scrapes racing on separate threads are each counted."""
    mock_client.get_node_gres.side_effect = client.SlurmCommandError("sinfo")
    thread_count = 20
    barrier = threading.Barrier(thread_count)

    def worker():
        barrier.wait()
        with pytest.raises(client.SlurmCommandError):
            list(gpus_collector.collect())

    threads = [threading.Thread(target=worker) for _ in range(thread_count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    mock_client.get_node_gres.side_effect = None
    mock_client.get_node_gres.return_value = b""
    metrics = {m.name: m for m in gpus_collector.collect()}
    assert metrics["slurm_gpus_scrape_error"].samples[0].value == thread_count


# ---------------------------------------------------------------------------
# Pipeline integration
# ---------------------------------------------------------------------------


def test_collect_gpus_end_to_end(
    mock_client: MagicMock,
    gpus_collector: collector.SlurmCollector,
):
    """Raw sinfo output becomes the three GPU gauges."""
    mock_client.get_node_gres.return_value = (
        b"node1 gpu:4 gpu:1\nnode2 gpu:2 gpu:0\n"
    )
    metrics = {m.name: m for m in gpus_collector.collect()}

    assert metrics["slurm_gpus_alloc"].samples[0].value == 1.0
    assert metrics["slurm_gpus_total"].samples[0].value == 6.0
    assert metrics["slurm_gpus_idle"].samples[0].value == 5.0


def test_collect_gres_gpu_end_to_end(
    mock_client: MagicMock,
    gres_gpu_collector: collector.SlurmCollector,
):
    """Raw squeue output becomes the per-state job gauges."""
    mock_client.get_job_tres.return_value = (
        b"101 RUNNING gres/gpu=2\n102 PENDING gres/gpu=1\n103 RUNNING mem=10G\n"
    )
    metrics = {m.name: m for m in gres_gpu_collector.collect()}

    assert metrics["slurm_gres_gpu_running"].samples[0].value == 1.0
    assert metrics["slurm_gres_gpu_pending"].samples[0].value == 1.0
    assert metrics["slurm_gres_gpu_completed"].samples[0].value == 0.0
