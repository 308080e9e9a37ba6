"""Namespace connection state machine.

The connection moves ``absent -> connecting -> connected -> disconnecting
-> absent``; ``connecting`` and ``disconnecting`` may end in ``error``.
"""

import logging
import time
from collections.abc import Callable

from telepresence_auto.cluster import Cluster
from telepresence_auto.core.sessions import SessionManager
from telepresence_auto.core.state import State
from telepresence_auto.exceptions import (
    AuthenticationRequiredError,
    CommandFailedError,
    PrerequisiteMissingError,
)
from telepresence_auto.models import AuthKind, ConnectionStatus, NamespaceConnection
from telepresence_auto.telepresence import Telepresence

# Namespaces a freshly started daemon reports before the user picks one
_UNMANAGED_NAMESPACES = frozenset({"default", "ambassador"})


class ConnectionManager:
    """Connects the telepresence daemon to a namespace and tears it down.

    Attributes:
        state: Shared connection and session state.
        cluster: Cluster adapter used for context and auth checks.
        telepresence: Telepresence CLI wrapper.
        sessions: Session manager, used to stop sessions on disconnect.
        suppression_window: Seconds after a manual disconnect during which
            daemon state is not adopted.

    """

    def __init__(
        self,
        state: State,
        cluster: Cluster,
        telepresence: Telepresence,
        sessions: SessionManager,
        *,
        suppression_window: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
        logger: logging.Logger | None = None,
    ) -> None:
        self.state = state
        self.cluster = cluster
        self.telepresence = telepresence
        self.sessions = sessions
        self.suppression_window = suppression_window
        self._clock = clock
        self._log = logger or logging.getLogger(__name__)

    def _check_prerequisites(self) -> None:
        if not self.telepresence.is_installed():
            raise PrerequisiteMissingError("Telepresence is not installed")
        if not self.cluster.runner.is_installed("kubectl", "version", "--client"):
            raise PrerequisiteMissingError("kubectl is not installed")

        context = self.cluster.current_context()
        self._log.info("Current context: %s", context)
        if not context:
            return

        auth = self.cluster.cluster_auth_info()
        if auth.auth_kind is AuthKind.KUBELOGIN and not self.cluster.runner.is_installed("kubelogin", "--version"):
            raise PrerequisiteMissingError("kubelogin is required for Azure contexts but is not installed")
        if auth.needs_auth:
            message, hint = auth.remediation()
            raise AuthenticationRequiredError(message, hint, auth.auth_kind.value, auth.provider.value)

    def connect(self, namespace: str) -> NamespaceConnection:
        """Connect the daemon to a namespace.

        Any running daemon is stopped first; that step is best effort.

        Args:
            namespace: Namespace to connect to.

        Returns:
            The connected NamespaceConnection.

        Raises:
            PrerequisiteMissingError: If telepresence, kubectl or kubelogin is missing.
            AuthenticationRequiredError: If the cluster needs an interactive login.
            CommandFailedError: If ``telepresence connect`` fails.

        """
        self._check_prerequisites()

        connection = NamespaceConnection(namespace=namespace, status=ConnectionStatus.CONNECTING)
        with self.state.lock:
            self.state.connection = connection

        try:
            self.telepresence.quit()
        except CommandFailedError as err:
            self._log.info("telepresence quit before connect failed: %s", err.message)

        try:
            self.telepresence.connect(namespace)
        except CommandFailedError as err:
            with self.state.lock:
                connection.status = ConnectionStatus.ERROR
                connection.last_error = err.message
            self._log.error("Failed to connect to namespace %s: %s", namespace, err.message)
            raise

        with self.state.lock:
            connection.status = ConnectionStatus.CONNECTED
        self._log.info("Connected to namespace %s", namespace)
        return connection

    def disconnect(self) -> None:
        """Stop all sessions and the daemon.

        Safe to call without a connection; it then only cleans up whatever the
        daemon still has.
        """
        with self.state.lock:
            connection = self.state.connection
            if connection is None and not len(self.state.sessions):
                self._log.info("No active connection, performing general cleanup")
            if connection is not None:
                connection.status = ConnectionStatus.DISCONNECTING

        try:
            failures = self.sessions.stop_all()
            for session_id, err in failures.items():
                self._log.warning("Interception %s was not stopped cleanly: %s", session_id, err)

            try:
                self.telepresence.quit()
            except CommandFailedError as err:
                self._log.warning("telepresence quit failed, killing daemons: %s", err.message)
                self.telepresence.kill_daemons()
        except Exception as err:
            with self.state.lock:
                if self.state.connection is not None:
                    self.state.connection.status = ConnectionStatus.ERROR
                    self.state.connection.last_error = str(err)
            raise

        with self.state.lock:
            self.state.manual_disconnect_at = self._clock()
            self.state.connection = None
        self._log.info("Disconnected from namespace %s", connection.namespace if connection else "(none)")

    def force_reset(self) -> None:
        """Forget the connection record without touching sessions or processes."""
        with self.state.lock:
            self.state.connection = None
        self._log.info("Connection state reset")

    def detect_existing(self) -> NamespaceConnection | None:
        """Adopt a daemon connection made outside this process.

        Skipped within the suppression window after a manual disconnect.

        Returns:
            The resulting connection record, if any.

        """
        with self.state.lock:
            if self.state.suppressed(self._clock(), self.suppression_window):
                self._log.info("Skipping daemon detection right after a manual disconnect")
                return self.state.connection

        try:
            daemon = self.telepresence.status()
        except CommandFailedError as err:
            with self.state.lock:
                if self.state.is_connected:
                    self._log.warning(
                        "Status command failed, keeping connection to %s: %s",
                        self.state.connection.namespace,
                        err.message,
                    )
                    return self.state.connection
                self._log.info("No telepresence connection found: %s", err.message)
                self.state.connection = None
            return None

        with self.state.lock:
            if daemon.connected and daemon.namespace and daemon.namespace not in _UNMANAGED_NAMESPACES:
                self.state.connection = NamespaceConnection(
                    namespace=daemon.namespace,
                    status=ConnectionStatus.CONNECTED,
                )
                self._log.info("Detected existing connection to namespace %s", daemon.namespace)
            else:
                self._log.info("No managed telepresence connection detected (namespace: %s)", daemon.namespace)
                self.state.connection = None
            return self.state.connection
