"""Telepresence CLI wrapper.

This module provides the Telepresence class, which builds every
``telepresence`` command used by the orchestrator and runs the short-lived
ones through a CommandRunner.
"""

import logging
import os
import signal

import psutil
from icecream import ic

from telepresence_auto.models import DaemonState, InterceptionRecord
from telepresence_auto.parsing import DEFAULT_TARGET_PORT, parse_daemon_status, parse_interception_list
from telepresence_auto.runner import CommandRunner, try_in_order

BINARY = "telepresence"

# Process names used by the telepresence client and its daemons
_DAEMON_PROCESS_NAMES = ("telepresence", "telepresence.exe", "telepresence-daemon", "telepresence-daemon.exe")


class Telepresence:
    """Thin wrapper around the telepresence binary.

    Attributes:
        runner: CommandRunner executing the commands.
        binary: Name or path of the telepresence executable.

    """

    def __init__(
        self,
        runner: CommandRunner | None = None,
        binary: str = BINARY,
        logger: logging.Logger | None = None,
    ) -> None:
        self.runner = runner or CommandRunner()
        self.binary = binary
        self._log = logger or logging.getLogger(__name__)

    def __repr__(self) -> str:
        """Return a detailed string representation for debugging."""
        return f"Telepresence(binary={self.binary!r})"

    def is_installed(self) -> bool:
        """Return True if the telepresence binary answers ``telepresence version``."""
        return self.runner.is_installed(self.binary, "version")

    def quit(self) -> str:
        """Stop the connected daemon."""
        return self.runner.run([self.binary, "quit"])

    def connect(self, namespace: str) -> str:
        """Connect the daemon to a namespace."""
        return self.runner.run([self.binary, "connect", "-n", namespace])

    def status(self) -> DaemonState:
        """Return the parsed ``telepresence status`` output."""
        return parse_daemon_status(self.runner.run([self.binary, "status"]))

    def list_raw(self, daemon: str) -> str:
        """Return the raw ``telepresence list`` output for a daemon."""
        return self.runner.run([self.binary, "list", "--use", daemon])

    def list_interceptions(
        self,
        daemon: str,
        namespace: str,
        target_port: int = DEFAULT_TARGET_PORT,
    ) -> list[InterceptionRecord]:
        """List deployments and their interception state.

        Args:
            daemon: Daemon selector.
            namespace: Namespace the daemon is connected to.
            target_port: Application port reported for intercepted deployments.

        Returns:
            Parsed records.

        """
        return parse_interception_list(self.list_raw(daemon), namespace, target_port)

    def replace_args(self, daemon: str, deployment: str, local_port: int, target_port: int, env_file: str) -> list[str]:
        """Build the argument vector of the long-running replace command.

        Args:
            daemon: Daemon selector.
            deployment: Full deployment name.
            local_port: Local port receiving the traffic.
            target_port: Application port inside the cluster.
            env_file: File receiving the pod environment.

        Returns:
            Command vector starting with the telepresence binary.

        """
        cmd = [
            self.binary,
            "replace",
            "--use",
            daemon,
            "--port",
            f"{local_port}:{target_port}",
            "--env-file",
            env_file,
            deployment,
            "--mount=false",
        ]
        ic(cmd)
        return cmd

    def leave(self, deployment: str, daemon: str | None = None) -> bool:
        """End the interception of a deployment.

        Tries the daemon-qualified form, then the unqualified form, then a
        bare ``telepresence leave``. Failures are logged, never raised.

        Args:
            deployment: Full deployment name.
            daemon: Daemon selector, if known.

        Returns:
            True if one of the forms succeeded.

        """
        attempts = []
        if daemon:
            attempts.append(
                (
                    f"leave --use {daemon} {deployment}",
                    lambda: self.runner.run([self.binary, "leave", "--use", daemon, deployment]),
                )
            )
        attempts.append((f"leave {deployment}", lambda: self.runner.run([self.binary, "leave", deployment])))
        attempts.append(("bare leave", lambda: self.runner.run([self.binary, "leave"])))

        succeeded, _ = try_in_order(attempts, logger=self._log)
        if not succeeded:
            self._log.error("All leave attempts failed for %s", deployment)
            return False
        return True

    def kill_daemons(self) -> int:
        """Force-kill every telepresence process owned by this machine.

        Used after ``telepresence quit`` failed. Never raises.

        Returns:
            Number of processes that were signalled.

        """
        killed = 0
        own_pid = os.getpid()
        for proc in psutil.process_iter(["pid", "name", "cmdline"]):
            try:
                if proc.info["pid"] == own_pid or not self._is_daemon_process(proc.info):
                    continue
                proc.send_signal(signal.SIGKILL if hasattr(signal, "SIGKILL") else signal.SIGTERM)
                killed += 1
                self._log.info("Killed telepresence process %d (%s)", proc.info["pid"], proc.info["name"])
            except psutil.NoSuchProcess:
                continue
            except psutil.AccessDenied:
                self._log.warning("Permission denied killing process %d", proc.info["pid"])
        if not killed:
            self._log.info("No telepresence processes found")
        return killed

    @staticmethod
    def _is_daemon_process(info: dict) -> bool:
        name = (info.get("name") or "").lower()
        if name in _DAEMON_PROCESS_NAMES:
            return True
        cmdline = info.get("cmdline") or []
        return bool(cmdline) and os.path.basename(cmdline[0]).lower() in _DAEMON_PROCESS_NAMES
