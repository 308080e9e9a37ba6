"""Supervision of the long-running ``telepresence replace`` processes."""

import logging
import subprocess
import threading
from collections.abc import Callable
from typing import IO

from telepresence_auto.cluster import Cluster
from telepresence_auto.exceptions import CommandFailedError, ProcessTerminationIncomplete
from telepresence_auto.models import daemon_name
from telepresence_auto.parsing import DEFAULT_TARGET_PORT
from telepresence_auto.telepresence import Telepresence


class ProcessSupervisor:
    """Spawns replace processes and shuts them down.

    Output and exit observers only log; session state is owned by the
    session manager.

    Attributes:
        grace_timeout: Seconds to wait after SIGTERM.
        kill_timeout: Seconds to wait after SIGKILL.

    """

    grace_timeout: float = 2.0
    kill_timeout: float = 1.0

    def __init__(
        self,
        cluster: Cluster,
        telepresence: Telepresence,
        *,
        target_port: int = DEFAULT_TARGET_PORT,
        env_file: str = ".env",
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
        logger: logging.Logger | None = None,
    ) -> None:
        self.cluster = cluster
        self.telepresence = telepresence
        self.target_port = target_port
        self.env_file = env_file
        self._popen = popen
        self._log = logger or logging.getLogger(__name__)

    def launch(self, deployment: str, namespace: str, local_port: int) -> subprocess.Popen:
        """Start intercepting a deployment.

        Returns as soon as the process is spawned; the command keeps running
        for as long as the interception lasts.

        Args:
            deployment: Full deployment name.
            namespace: Namespace the daemon is connected to.
            local_port: Local port receiving the traffic.

        Returns:
            The spawned process.

        Raises:
            CommandFailedError: If the process cannot be started.
            ClusterConnectionError: If the current context cannot be read.

        """
        daemon = daemon_name(self.cluster.current_context(), namespace)
        cmd = self.telepresence.replace_args(daemon, deployment, local_port, self.target_port, self.env_file)
        self._log.info("Starting interception: %s", " ".join(cmd))

        try:
            process = self._popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
                bufsize=1,
            )
        except OSError as err:
            raise CommandFailedError(cmd, str(err)) from err

        self._log.info("Replace process for %s started with PID %d", deployment, process.pid)
        self._observe(process, deployment)
        return process

    def _observe(self, process: subprocess.Popen, deployment: str) -> None:
        """Attach logging observers to the process streams and exit."""
        for stream, level in ((process.stdout, logging.DEBUG), (process.stderr, logging.WARNING)):
            if stream is not None:
                threading.Thread(
                    target=self._pump,
                    args=(stream, level, deployment),
                    name=f"replace-{deployment}-{level}",
                    daemon=True,
                ).start()
        threading.Thread(
            target=self._await_exit,
            args=(process, deployment),
            name=f"replace-{deployment}-exit",
            daemon=True,
        ).start()

    def _pump(self, stream: IO[str], level: int, deployment: str) -> None:
        try:
            for line in iter(stream.readline, ""):
                if line.strip():
                    self._log.log(level, "[%s] %s", deployment, line.rstrip())
        except ValueError:
            # Stream closed underneath us during shutdown
            pass

    def _await_exit(self, process: subprocess.Popen, deployment: str) -> None:
        code = process.wait()
        self._log.info("Replace process for %s exited with code %s", deployment, code)

    def terminate(self, process: subprocess.Popen) -> None:
        """Stop a replace process, escalating from SIGTERM to SIGKILL.

        Never raises; a process that survives is only logged because the
        subsequent ``telepresence leave`` is the authoritative cleanup.

        Args:
            process: Process returned by launch().

        """
        if process.poll() is not None:
            self._log.debug("Process %d already exited with code %s", process.pid, process.returncode)
            return

        try:
            self._log.info("Sending SIGTERM to process %d", process.pid)
            process.terminate()
            try:
                process.wait(timeout=self.grace_timeout)
                return
            except subprocess.TimeoutExpired:
                self._log.warning("Process %d still alive after SIGTERM, sending SIGKILL", process.pid)

            process.kill()
            try:
                process.wait(timeout=self.kill_timeout)
            except subprocess.TimeoutExpired:
                self._log.error(
                    "Process %d survived SIGKILL",
                    process.pid,
                    extra={"error_type": ProcessTerminationIncomplete.__name__},
                )
        except OSError as err:
            self._log.error("Failed to terminate process %d: %s", process.pid, err)
