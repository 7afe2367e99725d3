"""Collectors package for SLURM GPU metrics.

Contains the GPU inventory and GPU job queue collectors. Each collector
module provides fetch and generate_metrics functions that can be composed
with the SlurmCollector class.
"""
