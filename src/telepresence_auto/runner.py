"""External command execution.

This module provides the CommandRunner used by every component that
shells out to kubectl, kubelogin or telepresence, plus the ``try_in_order``
combinator for commands that have degraded fallbacks.
"""

import logging
import shutil
import subprocess
from collections.abc import Callable, Iterable
from typing import TypeVar

from icecream import ic

from telepresence_auto.exceptions import CommandFailedError

T = TypeVar("T")

DEFAULT_TIMEOUT = 60.0


class CommandRunner:
    """Runs short-lived commands and returns their standard output.

    Attributes:
        timeout: Seconds before a command is abandoned.

    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, logger: logging.Logger | None = None) -> None:
        self.timeout = timeout
        self._log = logger or logging.getLogger(__name__)

    def run(self, command: list[str]) -> str:
        """Execute a command and return its stdout.

        Args:
            command: Command vector; no shell is involved.

        Returns:
            The captured standard output.

        Raises:
            CommandFailedError: If the command exits non-zero, times out or
                cannot be started.

        """
        ic(command)
        self._log.debug("Executing: %s", " ".join(command))
        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                errors="replace",
                timeout=self.timeout,
                check=True,
            )
        except subprocess.CalledProcessError as err:
            message = (err.stderr or err.stdout or "").strip() or f"exit code {err.returncode}"
            self._log.debug("Command failed: %s: %s", " ".join(command), message)
            raise CommandFailedError(command, message) from err
        except subprocess.TimeoutExpired as err:
            raise CommandFailedError(command, f"timed out after {self.timeout:g}s") from err
        except OSError as err:
            raise CommandFailedError(command, str(err)) from err

        if result.stderr:
            self._log.warning("%s: %s", command[0], result.stderr.strip())
        return result.stdout

    def is_installed(self, binary: str, *version_args: str) -> bool:
        """Check whether a binary is on PATH and answers its version probe.

        Args:
            binary: Executable name.
            version_args: Arguments of the version probe, e.g. ``"version"``.

        Returns:
            True if the binary was found and the probe succeeded.

        """
        if shutil.which(binary) is None:
            return False
        if not version_args:
            return True
        try:
            self.run([binary, *version_args])
        except CommandFailedError:
            return False
        return True


def try_in_order(
    attempts: Iterable[tuple[str, Callable[[], T]]],
    logger: logging.Logger | None = None,
) -> tuple[bool, T | None]:
    """Run fallback attempts in order until one succeeds.

    Args:
        attempts: Ordered ``(label, callable)`` pairs.
        logger: Logger for failed attempts.

    Returns:
        ``(True, result)`` for the first attempt that did not raise
        CommandFailedError, or ``(False, None)`` if all of them failed.
        An attempt may itself return None.

    """
    log = logger or logging.getLogger(__name__)
    for label, attempt in attempts:
        try:
            result = attempt()
        except CommandFailedError as err:
            log.warning("%s failed: %s", label, err.message)
            continue
        log.debug("%s succeeded", label)
        return True, result
    return False, None
