"""SLURM command-line data source package.

Runs the SLURM client tools and hands their raw stdout to the collectors.
Parsing and metric generation are handled by collector modules.

Exports:
    SlurmCommandClient: Runs sinfo/squeue and returns raw output.
    SlurmCommandError: Raised when a command cannot be run or fails.
    SINFO_GRES_ARGS: Arguments for the node GRES listing.
    SQUEUE_TRES_ARGS: Arguments for the job TRES listing.
"""

from .client import (
    SINFO_GRES_ARGS,
    SQUEUE_TRES_ARGS,
    SlurmCommandClient,
    SlurmCommandError,
)

__all__ = [
    "SINFO_GRES_ARGS",
    "SQUEUE_TRES_ARGS",
    "SlurmCommandClient",
    "SlurmCommandError",
]
