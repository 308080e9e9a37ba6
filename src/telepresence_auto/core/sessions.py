"""Interception session state machine.

Sessions move ``connecting -> connected -> disconnecting -> (removed)``;
any step may land in ``error``, in which case the session stays registered
so its ``last_error`` can be inspected.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed

from telepresence_auto.cluster import Cluster
from telepresence_auto.core.state import State
from telepresence_auto.exceptions import (
    ClusterConnectionError,
    CommandFailedError,
    DeploymentNotFoundError,
    NotConnectedError,
)
from telepresence_auto.models import InterceptionSession, SessionStatus, daemon_name
from telepresence_auto.parsing import DEFAULT_TARGET_PORT
from telepresence_auto.supervisor import ProcessSupervisor
from telepresence_auto.telepresence import Telepresence


class SessionManager:
    """Starts and stops traffic interceptions.

    Attributes:
        state: Shared connection and session state.
        cluster: Cluster adapter used to resolve deployments.
        telepresence: Telepresence CLI wrapper.
        supervisor: Supervisor of the replace processes.

    """

    def __init__(
        self,
        state: State,
        cluster: Cluster,
        telepresence: Telepresence,
        supervisor: ProcessSupervisor,
        *,
        fallback_namespace: str = "",
        target_port: int = DEFAULT_TARGET_PORT,
        logger: logging.Logger | None = None,
    ) -> None:
        self.state = state
        self.cluster = cluster
        self.telepresence = telepresence
        self.supervisor = supervisor
        self.fallback_namespace = fallback_namespace
        self.target_port = target_port
        self._log = logger or logging.getLogger(__name__)

    def start(self, search_term: str, local_port: int) -> InterceptionSession:
        """Intercept the deployment matching ``search_term``.

        Args:
            search_term: Part of the deployment name, usually the service name.
            local_port: Local port receiving the traffic.

        Returns:
            The connected session.

        Raises:
            NotConnectedError: If no namespace is connected.
            DeploymentNotFoundError: If no deployment matches.
            SessionAlreadyExistsError: If the deployment is already intercepted.

        """
        with self.state.lock:
            if not self.state.is_connected:
                raise NotConnectedError("Must be connected to a namespace first")
            namespace = self.state.connection.namespace

        deployment = self.cluster.find_matching_deployment(namespace, search_term)
        if deployment is None:
            raise DeploymentNotFoundError(f"No deployment found in namespace '{namespace}' containing '{search_term}'")

        session = InterceptionSession(
            id=deployment,
            namespace=namespace,
            deployment=deployment,
            original_service_name=search_term,
            local_port=local_port,
        )
        with self.state.lock:
            self.state.sessions.add(session)
        self._log.info("Intercepting %s on local port %d", deployment, local_port)

        try:
            process = self.supervisor.launch(deployment, namespace, local_port)
        except Exception as err:
            with self.state.lock:
                session.status = SessionStatus.ERROR
                session.last_error = str(err)
            self._log.error("Failed to start interception of %s: %s", deployment, err)
            raise

        with self.state.lock:
            session.process = process
            session.status = SessionStatus.CONNECTED
            if self.state.sessions.get(session.id) is not session:
                # Dropped or replaced while launching; this session owns the process
                self.state.sessions.remove(session.id)
                self.state.sessions.add(session)
                self._log.warning("Session %s was dropped during launch, registering it again", session.id)
        return session

    def stop(self, session_id: str) -> None:
        """End an interception.

        The replace process is terminated first, then the deployment is left
        on the daemon. Leave failures are logged only; anything else marks the
        session as errored and propagates.

        Args:
            session_id: Full deployment name.

        Raises:
            SessionNotFoundError: If the session does not exist.

        """
        with self.state.lock:
            session = self.state.sessions.require(session_id)
            session.status = SessionStatus.DISCONNECTING

        self._log.info("Stopping interception of %s", session.deployment)
        try:
            if session.process is not None:
                self.supervisor.terminate(session.process)
            daemon = daemon_name(self.cluster.current_context(), session.namespace)
            self.telepresence.leave(session.deployment, daemon)
        except Exception as err:
            with self.state.lock:
                session.status = SessionStatus.ERROR
                session.last_error = str(err)
            self._log.error("Failed to stop interception of %s: %s", session.deployment, err)
            raise

        with self.state.lock:
            self.state.sessions.remove(session_id, expected=session)

    def stop_all(self) -> dict[str, Exception]:
        """Stop every registered session concurrently.

        A failing session does not prevent the others from being stopped.
        Afterwards every deployment the daemon still reports as intercepted
        is left as well.

        Returns:
            Failures keyed by session id.

        """
        with self.state.lock:
            session_ids = self.state.sessions.ids()

        failures: dict[str, Exception] = {}
        if session_ids:
            self._log.info("Stopping %d interceptions", len(session_ids))
            with ThreadPoolExecutor(max_workers=len(session_ids), thread_name_prefix="stop") as pool:
                futures = {pool.submit(self.stop, session_id): session_id for session_id in session_ids}
                for future in as_completed(futures):
                    session_id = futures[future]
                    try:
                        future.result()
                    except Exception as err:
                        self._log.warning("Failed to stop interception %s: %s", session_id, err)
                        failures[session_id] = err

        self._leave_untracked(set(session_ids))
        return failures

    def _leave_untracked(self, handled: set[str]) -> None:
        """Leave intercepts reported by the daemon that were not in the registry."""
        try:
            with self.state.lock:
                namespace = self.state.namespace_or(self.fallback_namespace)
            daemon = daemon_name(self.cluster.current_context(), namespace)
            records = self.telepresence.list_interceptions(daemon, namespace, self.target_port)
        except (CommandFailedError, ClusterConnectionError) as err:
            self._log.warning("Cleanup of remaining interceptions failed: %s", err)
            return

        for record in records:
            if record.is_intercepted and record.deployment not in handled:
                self._log.info("Leaving untracked interception of %s", record.deployment)
                self.telepresence.leave(record.deployment, daemon)
