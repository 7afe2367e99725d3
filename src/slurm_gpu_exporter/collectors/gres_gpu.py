"""GPU job queue collector for SLURM.

Parses the squeue job listing (jobid, state, tres-alloc) and counts jobs
per state, restricted to jobs whose allocated TRES include gres/gpu.
"""

from collections.abc import Iterator
from dataclasses import dataclass

import structlog
from prometheus_client.metrics_core import Metric

from .. import slurmcli
from . import common

logger = structlog.get_logger(__name__)

GPU_TRES_MARKER = "gres/gpu"

# squeue state label -> GresGPUMetric attribute
_STATE_COUNTERS = {
    "PENDING": "pending",
    "RUNNING": "running",
    "SUSPENDED": "suspended",
    "CANCELLED": "cancelled",
    "COMPLETING": "completing",
    "COMPLETED": "completed",
    "CONFIGURING": "configuring",
    "FAILED": "failed",
    "TIMEOUT": "timeout",
    "PREEMPTED": "preempted",
    "NODE_FAIL": "node_fail",
}

GRES_GPU_GAUGES = (
    common.GaugeDesc(
        "slurm_gres_gpu_pending",
        "Pending gres/gpu jobs in queue",
        "pending",
    ),
    common.GaugeDesc(
        "slurm_gres_gpu_pending_dependency",
        "Pending gres/gpu jobs because of dependency in queue",
        "pending_dependency",
    ),
    common.GaugeDesc(
        "slurm_gres_gpu_running",
        "Running gres/gpu jobs in the cluster",
        "running",
    ),
    common.GaugeDesc(
        "slurm_gres_gpu_suspended",
        "Suspended gres/gpu jobs in the cluster",
        "suspended",
    ),
    common.GaugeDesc(
        "slurm_gres_gpu_cancelled",
        "Cancelled gres/gpu jobs in the cluster",
        "cancelled",
    ),
    common.GaugeDesc(
        "slurm_gres_gpu_completing",
        "Completing gres/gpu jobs in the cluster",
        "completing",
    ),
    common.GaugeDesc(
        "slurm_gres_gpu_completed",
        "Completed gres/gpu jobs in the cluster",
        "completed",
    ),
    common.GaugeDesc(
        "slurm_gres_gpu_configuring",
        "Configuring gres/gpu jobs in the cluster",
        "configuring",
    ),
    common.GaugeDesc(
        "slurm_gres_gpu_failed",
        "Number of failed gres/gpu jobs",
        "failed",
    ),
    common.GaugeDesc(
        "slurm_gres_gpu_timeout",
        "gres/gpu Jobs stopped by timeout",
        "timeout",
    ),
    common.GaugeDesc(
        "slurm_gres_gpu_preempted",
        "Number of preempted gres/gpu jobs",
        "preempted",
    ),
    common.GaugeDesc(
        "slurm_gres_gpu_node_fail",
        "Number of gres/gpu jobs stopped due to node fail",
        "node_fail",
    ),
)


@dataclass
class JobTres:
    """A single row of the squeue job listing."""

    job_id: str
    state: str
    tres_alloc: str


@dataclass
class GresGPUMetric:
    """Counts of gres/gpu jobs per state.

    pending_dependency is a subset of pending, not a separate state.
    """

    pending: float = 0.0
    pending_dependency: float = 0.0
    running: float = 0.0
    suspended: float = 0.0
    cancelled: float = 0.0
    completing: float = 0.0
    completed: float = 0.0
    configuring: float = 0.0
    failed: float = 0.0
    timeout: float = 0.0
    preempted: float = 0.0
    node_fail: float = 0.0


def _parse_job_listing(data: bytes) -> list[JobTres]:
    """Parse squeue output into rows of jobs that were allocated a GPU.

    Args:
        data: Raw squeue output.

    Returns:
        Job rows whose tres-alloc field mentions gres/gpu.
    """
    return [
        JobTres(job_id=job_id, state=state, tres_alloc=tres_alloc)
        for job_id, state, tres_alloc in common.iter_fields(data)
        if GPU_TRES_MARKER in tres_alloc
    ]


def _count_jobs_by_state(jobs: list[JobTres]) -> GresGPUMetric:
    """Count jobs per state. Unknown states are ignored.

    Args:
        jobs: List of job rows.

    Returns:
        Per-state job counts.
    """
    summary = GresGPUMetric()

    for job in jobs:
        attr = _STATE_COUNTERS.get(job.state)
        if attr is None:
            continue
        setattr(summary, attr, getattr(summary, attr) + 1)

        # The listing has no reason column, so this compares the tres-alloc
        # field and only matches a row whose allocation reads "Dependency".
        if job.state == "PENDING" and job.tres_alloc == "Dependency":
            summary.pending_dependency += 1

    return summary


def parse_gres_gpu_metrics(data: bytes) -> GresGPUMetric:
    """Parse raw squeue output into per-state gres/gpu job counts."""
    jobs = _parse_job_listing(data)
    logger.debug("Parsed job TRES listing", gpu_jobs=len(jobs))
    return _count_jobs_by_state(jobs)


def fetch(client: slurmcli.SlurmCommandClient) -> GresGPUMetric:
    """Fetch gres/gpu job queue metrics using squeue.

    Args:
        client: Command client to use for fetching.

    Returns:
        Per-state job counts.

    Raises:
        SlurmCommandError: If squeue fails.
    """
    return parse_gres_gpu_metrics(client.get_job_tres())


def generate_metrics(jobs: GresGPUMetric) -> Iterator[Metric]:
    """Generate Prometheus metrics from gres/gpu job counts.

    Args:
        jobs: Per-state job counts.

    Yields:
        One unlabeled gauge per job state.
    """
    yield from common.generate_gauges(jobs, GRES_GPU_GAUGES)
