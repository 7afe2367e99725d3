"""GPU inventory collector for SLURM.

Parses the sinfo node listing (nodehost, gres, gresused) and generates
cluster-wide allocated, idle and total GPU gauges. Nodes that belong to
several partitions appear once per partition and are counted once.
"""

import re
from collections.abc import Iterator
from dataclasses import dataclass

import structlog
from prometheus_client.metrics_core import Metric

from .. import slurmcli
from . import common

logger = structlog.get_logger(__name__)

# gpu:<type>:<count>, gpu:<count> or gpu:<type>, optionally followed by
# socket info such as "(S:0-1)".
_GPU_GRES_PATTERN = re.compile(r"^gpu:([^:]+):?(\d+)?", re.ASCII)
_COUNT_PATTERN = re.compile(r"[0-9]+")

GPUS_GAUGES = (
    common.GaugeDesc("slurm_gpus_alloc", "Allocated GPUs", "alloc"),
    common.GaugeDesc("slurm_gpus_idle", "Idle GPUs", "idle"),
    common.GaugeDesc("slurm_gpus_total", "Total GPUs", "total"),
)


@dataclass
class NodeGres:
    """A single row of the sinfo node listing."""

    hostname: str
    gres: str
    gres_used: str


@dataclass
class GPUsMetric:
    """Aggregated GPU counts across all nodes."""

    alloc: float = 0.0
    idle: float = 0.0
    total: float = 0.0


def _parse_gres_gpus(gres_string: str) -> float:
    """Parse the GPU count from a GRES string.

    Only comma-separated items starting with ``gpu:`` are considered. The
    count is the trailing number when present, otherwise the type field if
    it is itself a number. If several GPU items are present the last one
    wins; counts are not summed.

    GRES format examples:
        "gpu:tesla:4" -> 4.0
        "gpu:4" -> 4.0
        "gpu:tesla" -> 0.0
        "cpu:10,gpu:2" -> 2.0
        "gpu:a:1,gpu:b:3" -> 3.0
        "(null)" -> 0.0

    Args:
        gres_string: GRES or GRES-used string from sinfo.

    Returns:
        GPU count, 0.0 if none could be parsed.
    """
    value = 0.0

    for gres_item in gres_string.split(","):
        if not gres_item.startswith("gpu:"):
            continue

        match = _GPU_GRES_PATTERN.match(gres_item)
        if match is None:
            continue

        gpu_type, count = match.groups()
        if count is None:
            count = gpu_type
        value = float(count) if _COUNT_PATTERN.fullmatch(count) else 0.0

    return value


def _parse_node_listing(data: bytes) -> list[NodeGres]:
    """Parse sinfo output into node rows, keeping the first row per host.

    Args:
        data: Raw sinfo output.

    Returns:
        One NodeGres per distinct hostname, in first-seen order.
    """
    seen: set[str] = set()
    nodes = []

    for hostname, gres, gres_used in common.iter_fields(data):
        if hostname in seen:
            continue
        seen.add(hostname)
        nodes.append(NodeGres(hostname=hostname, gres=gres, gres_used=gres_used))

    return nodes


def _aggregate_gpu_metrics(nodes: list[NodeGres]) -> GPUsMetric:
    """Aggregate GPU counts across all nodes.

    Idle GPUs are computed per node and summed.

    Args:
        nodes: List of node rows.

    Returns:
        Aggregated GPU metrics.
    """
    summary = GPUsMetric()

    for node in nodes:
        # GPUs configured on the node
        avail = _parse_gres_gpus(node.gres)
        # GPUs allocated on the node
        alloc = _parse_gres_gpus(node.gres_used)

        summary.alloc += alloc
        summary.total += avail
        summary.idle += avail - alloc

    return summary


def parse_gpus_metrics(data: bytes) -> GPUsMetric:
    """Parse raw sinfo output into aggregated GPU metrics."""
    nodes = _parse_node_listing(data)
    summary = _aggregate_gpu_metrics(nodes)
    logger.debug("Parsed node GRES listing", nodes=len(nodes), total=summary.total)
    return summary


def fetch(client: slurmcli.SlurmCommandClient) -> GPUsMetric:
    """Fetch GPU inventory metrics using sinfo.

    Args:
        client: Command client to use for fetching.

    Returns:
        Aggregated GPU metrics.

    Raises:
        SlurmCommandError: If sinfo fails.
    """
    return parse_gpus_metrics(client.get_node_gres())


def generate_metrics(gpus: GPUsMetric) -> Iterator[Metric]:
    """Generate Prometheus metrics from GPU inventory data.

    Args:
        gpus: Aggregated GPU metrics.

    Yields:
        Unlabeled gauges for allocated, idle and total GPUs.
    """
    yield from common.generate_gauges(gpus, GPUS_GAUGES)
