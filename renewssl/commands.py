"""
External command execution.

Every certbot, systemctl and hostname call in a renewal run goes
through :class:`CommandRunner`.
"""

import shlex
import subprocess
from typing import List, Optional, Sequence, Union

from .logger import get_logger

Command = Union[str, Sequence[str]]


class CommandError(Exception):
    """Raised when an external command fails to start, times out or exits non-zero."""

    def __init__(self, command: str, stderr: str, returncode: Optional[int] = None):
        self.command = command
        self.stderr = stderr
        self.returncode = returncode
        super().__init__(stderr or f"Command failed: {command}")


def _to_argv(command: Command) -> List[str]:
    if isinstance(command, str):
        return shlex.split(command)
    return list(command)


class CommandRunner:
    """
    Runs commands synchronously and returns their trimmed stdout.

    Args:
        timeout: Seconds to wait for each command before giving up
    """

    def __init__(self, timeout: int = 300):
        self.timeout = timeout
        self.logger = get_logger()

    def run(self, command: Command) -> str:
        """
        Run a command and wait for it to finish.

        Args:
            command: Command line string or argument list

        Returns:
            Standard output with surrounding whitespace removed

        Raises:
            CommandError: On spawn failure, timeout or non-zero exit
        """
        argv = _to_argv(command)
        display = " ".join(argv)
        self.logger.debug(f"Running: {display}")

        try:
            result = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            raise CommandError(display, f"Command timed out after {self.timeout}s: {display}")
        except OSError as e:
            raise CommandError(display, f"Failed to start {display}: {e}")

        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            self.logger.debug(f"Command exited {result.returncode}: {display}")
            raise CommandError(display, stderr, result.returncode)

        return (result.stdout or "").strip()

    def succeeds(self, command: Command) -> bool:
        """
        Probe form of :meth:`run`: report whether the command exits 0.

        Failures are expected here and are not logged as errors.
        """
        try:
            self.run(command)
        except CommandError:
            return False
        return True
