"""SLURM command-line client.

Runs sinfo and squeue as subprocesses and returns their raw stdout. Any
failure to obtain the output is raised as SlurmCommandError; nothing is
retried.
"""

import subprocess
import time

import structlog

logger = structlog.get_logger(__name__)

# Node listing: one row per node/partition pair, so hostnames may repeat.
SINFO_GRES_ARGS = ("-h", "--Node", "--Format=nodehost,gres,gresused")

# Job listing for all jobs in all states, tres-alloc truncated to 90 chars.
SQUEUE_TRES_ARGS = (
    "-a",
    "-r",
    "-h",
    "--Format=jobid,state,tres-alloc:90",
    "--states=all",
)


class SlurmCommandError(RuntimeError):
    """Raised when a SLURM command cannot be launched or exits non-zero."""


class SlurmCommandClient:
    """Client for the SLURM command-line tools.

    Each call starts a fresh process and blocks until it exits. No output is
    cached between calls.
    """

    def __init__(
        self,
        sinfo_path: str = "sinfo",
        squeue_path: str = "squeue",
        timeout: float | None = None,
    ):
        """Initialize the command client.

        Args:
            sinfo_path: Name or path of the sinfo executable.
            squeue_path: Name or path of the squeue executable.
            timeout: Optional seconds to wait for each command. None waits
                until the command exits.

        Raises:
            ValueError: If a command path is empty or timeout is not positive.
        """
        if not sinfo_path or not squeue_path:
            msg = "command paths cannot be empty"
            raise ValueError(msg)
        if timeout is not None and timeout <= 0:
            msg = "timeout must be positive"
            raise ValueError(msg)

        self.sinfo_path = sinfo_path
        self.squeue_path = squeue_path
        self._timeout = timeout

    def _run_command(self, argv: list[str]) -> bytes:
        """Run a command and return its stdout.

        Args:
            argv: Command and arguments.

        Returns:
            Raw stdout bytes.

        Raises:
            SlurmCommandError: If the command cannot be started, exits
                non-zero or times out.
        """
        start_time = time.time()

        try:
            logger.debug("Running command", argv=argv)
            result = subprocess.run(  # noqa: S603
                argv,
                capture_output=True,
                check=True,
                timeout=self._timeout,
            )
        except subprocess.CalledProcessError as exc:
            duration = time.time() - start_time
            logger.error(
                "Command exited with error",
                command=argv[0],
                returncode=exc.returncode,
                stderr=(exc.stderr or b"").decode(errors="replace").strip(),
                duration_seconds=round(duration, 3),
            )
            msg = f"{argv[0]} exited with status {exc.returncode}"
            raise SlurmCommandError(msg) from exc
        except (OSError, subprocess.SubprocessError) as exc:
            duration = time.time() - start_time
            logger.error(
                "Command failed",
                command=argv[0],
                error=str(exc),
                duration_seconds=round(duration, 3),
            )
            msg = f"{argv[0]} could not be run: {exc}"
            raise SlurmCommandError(msg) from exc

        duration = time.time() - start_time
        logger.debug(
            "Command completed",
            command=argv[0],
            duration_seconds=round(duration, 3),
            output_bytes=len(result.stdout),
        )
        return result.stdout

    def get_node_gres(self) -> bytes:
        """List every node with its configured and used GRES.

        Returns:
            Raw sinfo output, one ``nodehost gres gresused`` row per line.

        Raises:
            SlurmCommandError: If sinfo fails.
        """
        return self._run_command([self.sinfo_path, *SINFO_GRES_ARGS])

    def get_job_tres(self) -> bytes:
        """List every job with its state and allocated TRES.

        Returns:
            Raw squeue output, one ``jobid state tres-alloc`` row per line.

        Raises:
            SlurmCommandError: If squeue fails.
        """
        return self._run_command([self.squeue_path, *SQUEUE_TRES_ARGS])
