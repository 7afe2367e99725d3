"""Slurm GPU Exporter.

Prometheus exporter for the SLURM workload manager that reports cluster GPU
inventory and the state of GPU-requesting jobs, parsed from sinfo and squeue.
"""

__version__ = "0.1.0"
