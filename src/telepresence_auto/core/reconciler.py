"""Reconciliation of the session registry with the daemon's view.

The daemon is the ground truth for what is intercepted: sessions are created
for intercepts this process did not start and dropped for intercepts that
disappeared.
"""

import dataclasses
import logging
import time
from collections.abc import Callable

from telepresence_auto.cluster import Cluster
from telepresence_auto.core.state import State
from telepresence_auto.exceptions import ClusterConnectionError, CommandFailedError, TelepresenceAutoError
from telepresence_auto.models import (
    ConnectionStatus,
    DaemonStatus,
    InterceptionRecord,
    InterceptionSession,
    SessionStatus,
    StatusReport,
    daemon_name,
    utcnow,
)
from telepresence_auto.parsing import (
    DEFAULT_ENV_SUFFIX_PATTERN,
    DEFAULT_TARGET_PORT,
    derive_service_name,
    parse_interception_list,
)
from telepresence_auto.telepresence import Telepresence


class Reconciler:
    """Keeps the session registry in line with ``telepresence list``.

    Attributes:
        state: Shared connection and session state.
        cluster: Cluster adapter used for the current context.
        telepresence: Telepresence CLI wrapper.
        suppression_window: Seconds after a manual disconnect during which
            background passes are skipped.

    """

    def __init__(
        self,
        state: State,
        cluster: Cluster,
        telepresence: Telepresence,
        *,
        fallback_namespace: str = "",
        target_port: int = DEFAULT_TARGET_PORT,
        default_local_port: int = 5002,
        env_suffix_pattern: str = DEFAULT_ENV_SUFFIX_PATTERN,
        suppression_window: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
        logger: logging.Logger | None = None,
    ) -> None:
        self.state = state
        self.cluster = cluster
        self.telepresence = telepresence
        self.fallback_namespace = fallback_namespace
        self.target_port = target_port
        self.default_local_port = default_local_port
        self.env_suffix_pattern = env_suffix_pattern
        self.suppression_window = suppression_window
        self._clock = clock
        self._log = logger or logging.getLogger(__name__)

    def reconcile(self, records: list[InterceptionRecord]) -> None:
        """Apply a fresh listing to the session registry.

        Sessions still CONNECTING are kept even when the listing does not
        show them yet; start() owns them until launch returns.

        Args:
            records: Parsed ``telepresence list`` output.

        """
        intercepted = {record.deployment: record for record in records if record.is_intercepted}

        with self.state.lock:
            for deployment, record in intercepted.items():
                if deployment in self.state.sessions:
                    continue
                session = InterceptionSession(
                    id=deployment,
                    namespace=record.namespace,
                    deployment=deployment,
                    original_service_name=derive_service_name(deployment, self.env_suffix_pattern),
                    local_port=record.local_port or self.default_local_port,
                    status=SessionStatus.CONNECTED,
                )
                self.state.sessions.add(session)
                self._log.info("Adopted existing interception of %s", deployment)

            for session in self.state.sessions:
                if session.id in intercepted or session.status is SessionStatus.CONNECTING:
                    continue
                self.state.sessions.remove(session.id, expected=session)
                if session.process is not None and session.process.poll() is None:
                    self._log.warning("Dropped session %s while its replace process is still running", session.id)
                else:
                    self._log.info("Dropped session %s, no longer intercepted", session.id)

    def derive_status(self, records: list[InterceptionRecord]) -> tuple[ConnectionStatus, DaemonStatus]:
        """Work out the connection and daemon state to report.

        The raw ``telepresence status`` probe can only turn a disconnected
        result into a connected one, never the reverse.

        Args:
            records: Parsed ``telepresence list`` output.

        Returns:
            The (connection, daemon) status pair.

        """
        with self.state.lock:
            connected = self.state.is_connected
        if connected or any(record.is_intercepted for record in records):
            return ConnectionStatus.CONNECTED, DaemonStatus.RUNNING

        try:
            daemon = self.telepresence.status()
        except CommandFailedError as err:
            self._log.debug("Status probe failed: %s", err.message)
            return ConnectionStatus.DISCONNECTED, DaemonStatus.STOPPED

        if daemon.connected:
            self._log.warning("Daemon reports a connection this process does not know about")
            return ConnectionStatus.CONNECTED, DaemonStatus.RUNNING
        return ConnectionStatus.DISCONNECTED, DaemonStatus.STOPPED

    def _snapshot(self) -> StatusReport:
        with self.state.lock:
            connection = dataclasses.replace(self.state.connection) if self.state.connection else None
            connected = self.state.is_connected
        return StatusReport(
            interceptions=[],
            connection_status=ConnectionStatus.CONNECTED if connected else ConnectionStatus.DISCONNECTED,
            daemon_status=DaemonStatus.RUNNING if connected else DaemonStatus.STOPPED,
            timestamp=utcnow(),
            namespace_connection=connection,
        )

    def _with_replicas(self, records: list[InterceptionRecord], namespace: str) -> list[InterceptionRecord]:
        try:
            replicas = self.cluster.deployment_replicas(namespace)
        except ClusterConnectionError as err:
            self._log.warning("Could not read replica counts: %s", err)
            return records
        return [
            dataclasses.replace(record, replicas=replicas[record.deployment][1]) if record.deployment in replicas else record
            for record in records
        ]

    def report(self, *, background: bool = False, include_replicas: bool = False) -> StatusReport:
        """Refresh from the daemon and build a status report.

        Never raises; failures are reported in the ``error`` field.

        Args:
            background: True for timer-driven refreshes, which are skipped
                within the suppression window.
            include_replicas: Also query replica counts from the cluster.

        Returns:
            The StatusReport.

        """
        with self.state.lock:
            suppressed = background and self.state.suppressed(self._clock(), self.suppression_window)
        if suppressed:
            self._log.debug("Skipping background refresh right after a manual disconnect")
            return self._snapshot()

        try:
            with self.state.lock:
                namespace = self.state.namespace_or(self.fallback_namespace)
            daemon = daemon_name(self.cluster.current_context(), namespace)

            records: list[InterceptionRecord] = []
            try:
                raw_output = self.telepresence.list_raw(daemon)
            except CommandFailedError as err:
                self._log.warning("List command failed: %s", err.message)
                raw_output = f"Error getting telepresence list: {err.message}"
            else:
                records = parse_interception_list(raw_output, namespace, self.target_port)
                self.reconcile(records)
                if include_replicas:
                    records = self._with_replicas(records, namespace)

            connection_status, daemon_status = self.derive_status(records)
        except TelepresenceAutoError as err:
            self._log.error("Error building status report: %s", err)
            with self.state.lock:
                connection = dataclasses.replace(self.state.connection) if self.state.connection else None
            return StatusReport(
                interceptions=[],
                connection_status=ConnectionStatus.ERROR,
                daemon_status=DaemonStatus.UNKNOWN,
                timestamp=utcnow(),
                namespace_connection=connection,
                raw_output="Error getting telepresence status",
                error=str(err),
            )

        with self.state.lock:
            connection = dataclasses.replace(self.state.connection) if self.state.connection else None
        return StatusReport(
            interceptions=records,
            connection_status=connection_status,
            daemon_status=daemon_status,
            timestamp=utcnow(),
            namespace_connection=connection,
            raw_output=raw_output,
        )
