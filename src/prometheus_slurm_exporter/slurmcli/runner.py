"""SLURM command runner.

Runs SLURM command line tools as subprocesses and returns their raw
output. Failures are raised as :class:`CommandError`; deciding whether a
failure is fatal is left to the caller.
"""

import subprocess
import time
from collections.abc import Sequence

import structlog

logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT = 30.0


class CommandError(RuntimeError):
    """Raised when a SLURM command cannot be started, fails or times out."""

    def __init__(self, command: str, arguments: Sequence[str], reason: str):
        self.command = command
        self.arguments = tuple(arguments)
        self.reason = reason
        super().__init__(f"{command} {' '.join(self.arguments)}: {reason}")


class CommandRunner:
    """Runs external commands with a timeout and captures stdout.

    Stateless apart from its timeout, so a single instance is shared by
    all collectors.
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT):
        """Initialize the runner.

        Args:
            timeout: Seconds to wait for a command before killing it.

        Raises:
            ValueError: If timeout is not positive.
        """
        if timeout <= 0:
            msg = "timeout must be positive"
            raise ValueError(msg)
        self.timeout = timeout

    def execute(self, command: str, arguments: Sequence[str]) -> bytes:
        """Run a command and return its standard output.

        Args:
            command: Program name, resolved through PATH.
            arguments: Ordered argument list.

        Returns:
            Raw stdout bytes, possibly empty.

        Raises:
            CommandError: If the program cannot be started, exits with a
                non-zero status or exceeds the timeout.
        """
        start_time = time.time()
        logger.debug("Running command", command=command, arguments=list(arguments))

        try:
            result = subprocess.run(
                [command, *arguments],
                capture_output=True,
                check=True,
                timeout=self.timeout,
            )
        except OSError as exc:
            logger.exception("Failed to start command", command=command)
            raise CommandError(command, arguments, str(exc)) from exc
        except subprocess.CalledProcessError as exc:
            stderr = (exc.stderr or b"").decode("utf-8", errors="replace").strip()
            logger.exception(
                "Command exited with error",
                command=command,
                returncode=exc.returncode,
                stderr=stderr,
            )
            msg = f"exit status {exc.returncode}"
            raise CommandError(command, arguments, msg) from exc
        except subprocess.TimeoutExpired as exc:
            logger.exception(
                "Command timed out",
                command=command,
                timeout_seconds=self.timeout,
            )
            msg = f"timed out after {self.timeout}s"
            raise CommandError(command, arguments, msg) from exc

        duration = time.time() - start_time
        logger.debug(
            "Command completed",
            command=command,
            duration_seconds=round(duration, 3),
        )
        return result.stdout

    def probe(self, command: str, arguments: Sequence[str]) -> bool:
        """Run a command only for its exit status.

        Returns:
            True if the command ran and exited with status 0.
        """
        try:
            subprocess.run(
                [command, *arguments],
                capture_output=True,
                check=True,
                timeout=self.timeout,
            )
        except (OSError, subprocess.SubprocessError):
            logger.debug("Probe failed", command=command, arguments=list(arguments))
            return False
        return True
