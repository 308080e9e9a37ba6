"""Orchestrator facade class.

This module provides the Orchestrator class which serves as the main entry
point for connection and interception operations, wiring the cluster
adapter, the telepresence wrapper, the process supervisor and the state
machines around one shared, lock-guarded state.
"""

import contextlib
import logging
import time
from collections.abc import Callable
from types import TracebackType

from telepresence_auto.cluster import Cluster
from telepresence_auto.core.connection import ConnectionManager
from telepresence_auto.core.reconciler import Reconciler
from telepresence_auto.core.sessions import SessionManager
from telepresence_auto.core.state import State
from telepresence_auto.exceptions import TelepresenceAutoError
from telepresence_auto.models import (
    InterceptionSession,
    NamespaceConnection,
    PrerequisiteReport,
    StatusReport,
)
from telepresence_auto.runner import CommandRunner
from telepresence_auto.settings import Settings
from telepresence_auto.supervisor import ProcessSupervisor
from telepresence_auto.telepresence import Telepresence


class Orchestrator:
    """Session and connection orchestrator.

    All mutable state lives in one State object; both the timer-driven
    status refresh and user actions may call in from different threads.

    Attributes:
        settings: Active settings.
        state: Connection record and session registry.
        runner: CommandRunner shared by all components.
        cluster: Cluster adapter.
        telepresence: Telepresence CLI wrapper.
        supervisor: Replace process supervisor.
        sessions: Session state machine.
        connection: Connection state machine.
        reconciler: Registry reconciler and status reporter.

    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        runner: CommandRunner | None = None,
        cluster: Cluster | None = None,
        telepresence: Telepresence | None = None,
        supervisor: ProcessSupervisor | None = None,
        clock: Callable[[], float] = time.monotonic,
        logger: logging.Logger | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self._log = logger or logging.getLogger(__name__)
        self.state = State()
        self.runner = runner or CommandRunner(timeout=self.settings.command_timeout, logger=logger)
        self.cluster = cluster or Cluster(self.runner, logger=logger)
        self.telepresence = telepresence or Telepresence(self.runner, logger=logger)
        self.supervisor = supervisor or ProcessSupervisor(
            self.cluster,
            self.telepresence,
            target_port=self.settings.target_port,
            env_file=self.settings.env_file,
            logger=logger,
        )
        self.sessions = SessionManager(
            self.state,
            self.cluster,
            self.telepresence,
            self.supervisor,
            fallback_namespace=self.settings.default_namespace,
            target_port=self.settings.target_port,
            logger=logger,
        )
        self.connection = ConnectionManager(
            self.state,
            self.cluster,
            self.telepresence,
            self.sessions,
            suppression_window=self.settings.suppression_window,
            clock=clock,
            logger=logger,
        )
        self.reconciler = Reconciler(
            self.state,
            self.cluster,
            self.telepresence,
            fallback_namespace=self.settings.default_namespace,
            target_port=self.settings.target_port,
            default_local_port=self.settings.default_local_port,
            env_suffix_pattern=self.settings.env_suffix_pattern,
            suppression_window=self.settings.suppression_window,
            clock=clock,
            logger=logger,
        )

    def __enter__(self) -> "Orchestrator":
        """Enter context manager.

        Returns:
            The Orchestrator instance.

        """
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Exit context manager, stopping the interceptions started here."""
        self.shutdown()

    def __repr__(self) -> str:
        """Return a detailed string representation for debugging."""
        return f"Orchestrator(namespace={self.connected_namespace()!r}, sessions={len(self.state.sessions)})"

    # Connection

    def connect(self, namespace: str) -> NamespaceConnection:
        """Connect the daemon to a namespace."""
        return self.connection.connect(namespace)

    def disconnect(self) -> None:
        """Stop all interceptions and the daemon."""
        self.connection.disconnect()

    def force_reset(self) -> None:
        """Forget the connection record."""
        self.connection.force_reset()

    def detect_existing_connection(self) -> NamespaceConnection | None:
        """Adopt a daemon connection made outside this process."""
        return self.connection.detect_existing()

    def is_connected(self) -> bool:
        with self.state.lock:
            return self.state.is_connected

    def connected_namespace(self) -> str | None:
        with self.state.lock:
            return self.state.connection.namespace if self.state.is_connected else None

    # Sessions

    def start_interception(self, search_term: str, local_port: int | None = None) -> InterceptionSession:
        """Intercept the deployment matching ``search_term``."""
        port = local_port if local_port is not None else self.settings.default_local_port
        return self.sessions.start(search_term, port)

    def stop_interception(self, session_id: str) -> None:
        """End an interception."""
        self.sessions.stop(session_id)

    def stop_all(self) -> dict[str, Exception]:
        """Stop every interception, returning failures keyed by session id."""
        return self.sessions.stop_all()

    def connect_session(self, namespace: str, search_term: str, local_port: int | None = None) -> InterceptionSession:
        """Connect to ``namespace`` if needed, then start an interception.

        A connection to a different namespace is torn down first.

        Args:
            namespace: Namespace holding the deployment.
            search_term: Part of the deployment name.
            local_port: Local port receiving the traffic.

        Returns:
            The connected session.

        """
        current = self.connected_namespace()
        if current != namespace:
            if current is not None:
                self.disconnect()
            self.connect(namespace)
        return self.start_interception(search_term, local_port)

    def disconnect_all(self) -> None:
        """Stop every interception, then disconnect if connected."""
        self.stop_all()
        if self.is_connected():
            self.disconnect()

    def get_sessions(self) -> list[InterceptionSession]:
        with self.state.lock:
            return list(self.state.sessions)

    def get_session(self, session_id: str) -> InterceptionSession | None:
        with self.state.lock:
            return self.state.sessions.get(session_id)

    # Status

    def get_formatted_status(self, *, background: bool = False, include_replicas: bool = False) -> StatusReport:
        """Refresh from the daemon and report the current status."""
        return self.reconciler.report(background=background, include_replicas=include_replicas)

    def check_prerequisites(self) -> PrerequisiteReport:
        """Report installed tools, contexts and cluster authentication."""
        context: str | None = None
        auth = None
        with contextlib.suppress(TelepresenceAutoError):
            context = self.cluster.current_context()
        if context:
            auth = self.cluster.cluster_auth_info()
        return PrerequisiteReport(
            telepresence_installed=self.telepresence.is_installed(),
            kubectl_installed=self.runner.is_installed("kubectl", "version", "--client"),
            kubelogin_installed=self.runner.is_installed("kubelogin", "--version"),
            current_context=context,
            required_context=self.settings.required_context,
            auth=auth,
        )

    def shutdown(self) -> None:
        """Stop the interceptions whose replace process this instance started."""
        for session in self.get_sessions():
            if session.process is None:
                continue
            try:
                self.sessions.stop(session.id)
            except TelepresenceAutoError as err:
                self._log.error("Error during cleanup of %s: %s", session.id, err)
