"""Plumbing shared by the collector modules.

Line tokenization for the fixed-width SLURM listings and the mapping from
a counter record to unlabeled Prometheus gauges.
"""

from collections.abc import Iterator
from dataclasses import dataclass

from prometheus_client.core import GaugeMetricFamily
from prometheus_client.metrics_core import Metric


@dataclass(frozen=True)
class GaugeDesc:
    """Name and help text of a gauge, bound to a counter record attribute."""

    name: str
    documentation: str
    attr: str


def iter_fields(data: bytes, count: int = 3) -> Iterator[list[str]]:
    """Split command output into whitespace-delimited fields.

    Rows are separated by newlines only; any other whitespace, including
    carriage returns, separates fields. Lines that do not have exactly
    ``count`` fields (blank lines, headers, truncated rows) are skipped.

    Args:
        data: Raw command output.
        count: Number of fields a usable line must have.

    Yields:
        The fields of each usable line.
    """
    for line in data.decode(errors="replace").split("\n"):
        fields = line.split()
        if len(fields) != count:
            continue
        yield fields


def generate_gauges(
    record: object,
    descs: tuple[GaugeDesc, ...],
) -> Iterator[Metric]:
    """Yield one unlabeled gauge per descriptor, valued from the record."""
    for desc in descs:
        gauge = GaugeMetricFamily(desc.name, desc.documentation)
        gauge.add_metric([], getattr(record, desc.attr))
        yield gauge
