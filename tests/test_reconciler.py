"""Tests for reconciliation and status reporting."""

import logging

from conftest import LIST_OUTPUT, fake_process, make_session

from telepresence_auto.exceptions import ClusterConnectionError, CommandFailedError
from telepresence_auto.models import (
    ConnectionStatus,
    DaemonState,
    DaemonStatus,
    InterceptionRecord,
    InterceptionStatus,
    SessionStatus,
)


def _intercepted(name, local_port=None):
    return InterceptionRecord(name, "payments", InterceptionStatus.INTERCEPTED, local_port=local_port)


class TestReconcile:
    """Tests for applying a listing to the registry."""

    def test_converges_both_ways(self, orchestrator):
        """Test that unknown intercepts are adopted and vanished ones dropped."""
        orchestrator.state.sessions.add(make_session("b-devend1"))

        orchestrator.reconciler.reconcile([_intercepted("a-devend1", local_port=5007)])

        sessions = orchestrator.get_sessions()
        assert [s.id for s in sessions] == ["a-devend1"]
        adopted = sessions[0]
        assert adopted.original_service_name == "a"
        assert adopted.local_port == 5007
        assert adopted.status is SessionStatus.CONNECTED
        assert adopted.process is None

    def test_keeps_existing_session_object(self, orchestrator):
        """Test that a tracked intercept keeps its session and process."""
        process = fake_process()
        session = make_session("a-devend1", process=process)
        orchestrator.state.sessions.add(session)

        orchestrator.reconciler.reconcile([_intercepted("a-devend1")])

        assert orchestrator.get_session("a-devend1") is session
        assert session.process is process

    def test_default_local_port_for_adopted(self, orchestrator):
        """Test that adopted sessions without a port line get the default port."""
        orchestrator.reconciler.reconcile([_intercepted("a-devend1")])

        assert orchestrator.get_session("a-devend1").local_port == 5002

    def test_available_records_are_not_sessions(self, orchestrator):
        """Test that available deployments never create sessions."""
        orchestrator.reconciler.reconcile([InterceptionRecord("a", "payments", InterceptionStatus.AVAILABLE)])

        assert orchestrator.get_sessions() == []

    def test_warns_when_dropping_live_process(self, orchestrator, caplog):
        """Test that dropping a session with a running process is logged as a warning."""
        orchestrator.state.sessions.add(make_session("a-devend1", process=fake_process()))

        with caplog.at_level(logging.WARNING, logger="telepresence_auto.core.reconciler"):
            orchestrator.reconciler.reconcile([])

        assert orchestrator.get_sessions() == []
        assert "still running" in caplog.text

    def test_connecting_session_is_kept(self, orchestrator):
        """Test that a session still being launched survives a listing without it."""
        session = make_session("a-devend1", status=SessionStatus.CONNECTING)
        orchestrator.state.sessions.add(session)

        orchestrator.reconciler.reconcile([])

        assert orchestrator.get_session("a-devend1") is session


class TestDeriveStatus:
    """Tests for the connection and daemon status derivation."""

    def test_connected_state_wins(self, connected):
        """Test that a known connection is reported without probing."""
        connected.telepresence.status.return_value = DaemonState(False, None)

        assert connected.reconciler.derive_status([]) == (ConnectionStatus.CONNECTED, DaemonStatus.RUNNING)
        connected.telepresence.status.assert_not_called()

    def test_intercepted_record_means_connected(self, orchestrator):
        """Test that an intercept implies a running daemon."""
        status = orchestrator.reconciler.derive_status([_intercepted("a")])

        assert status == (ConnectionStatus.CONNECTED, DaemonStatus.RUNNING)

    def test_probe_can_upgrade(self, orchestrator):
        """Test that the raw probe turns disconnected into connected."""
        orchestrator.telepresence.status.return_value = DaemonState(True, "payments")

        assert orchestrator.reconciler.derive_status([]) == (ConnectionStatus.CONNECTED, DaemonStatus.RUNNING)

    def test_disconnected(self, orchestrator):
        """Test the fully disconnected case."""
        assert orchestrator.reconciler.derive_status([]) == (ConnectionStatus.DISCONNECTED, DaemonStatus.STOPPED)

    def test_probe_failure_means_stopped(self, orchestrator):
        """Test that a failing probe reports a stopped daemon."""
        orchestrator.telepresence.status.side_effect = CommandFailedError(["telepresence", "status"], "no daemon")

        assert orchestrator.reconciler.derive_status([]) == (ConnectionStatus.DISCONNECTED, DaemonStatus.STOPPED)


class TestStatusReport:
    """Tests for the full status refresh."""

    def test_report_adopts_intercepts(self, connected):
        """Test that a refresh reconciles and reports the listing."""
        connected.telepresence.list_raw.return_value = LIST_OUTPUT

        report = connected.get_formatted_status()

        connected.telepresence.list_raw.assert_called_once_with("test-context-payments")
        assert report.connection_status is ConnectionStatus.CONNECTED
        assert report.daemon_status is DaemonStatus.RUNNING
        assert report.namespace_connection.namespace == "payments"
        assert report.raw_output == LIST_OUTPUT
        assert [r.deployment for r in report.interceptions] == ["orders-devend74761", "payrollapi-devend74761"]
        session = connected.get_session("payrollapi-devend74761")
        assert session.original_service_name == "payrollapi"
        assert session.local_port == 5001

    def test_report_uses_fallback_namespace(self, orchestrator):
        """Test that the configured namespace is used without a connection."""
        orchestrator.get_formatted_status()

        orchestrator.telepresence.list_raw.assert_called_once_with("test-context-payments")

    def test_listing_failure_keeps_sessions(self, connected):
        """Test that a failed listing does not wipe the registry."""
        connected.state.sessions.add(make_session("orders-devend74761"))
        connected.telepresence.list_raw.side_effect = CommandFailedError(["telepresence", "list"], "daemon busy")

        report = connected.get_formatted_status()

        assert report.raw_output == "Error getting telepresence list: daemon busy"
        assert report.interceptions == []
        assert report.error is None
        assert len(connected.get_sessions()) == 1

    def test_unexpected_failure_is_reported(self, orchestrator):
        """Test that a failing refresh is reported instead of raised."""
        orchestrator.cluster.current_context.side_effect = ClusterConnectionError("Invalid or missing kubeconfig")

        report = orchestrator.get_formatted_status()

        assert report.connection_status is ConnectionStatus.ERROR
        assert report.daemon_status is DaemonStatus.UNKNOWN
        assert "Invalid or missing kubeconfig" in report.error

    def test_include_replicas(self, connected):
        """Test that desired replica counts are attached on request."""
        connected.telepresence.list_raw.return_value = LIST_OUTPUT
        connected.cluster.deployment_replicas.return_value = {"orders-devend74761": (1, 3)}

        report = connected.get_formatted_status(include_replicas=True)

        assert report.interceptions[0].replicas == 3
        assert report.interceptions[1].replicas is None

    def test_replica_failure_is_tolerated(self, connected):
        """Test that replica lookup failures leave the records untouched."""
        connected.telepresence.list_raw.return_value = LIST_OUTPUT
        connected.cluster.deployment_replicas.side_effect = ClusterConnectionError("unreachable")

        report = connected.get_formatted_status(include_replicas=True)

        assert len(report.interceptions) == 2
        assert report.error is None


class TestSuppressionWindow:
    """Tests for the quiet period after a manual disconnect."""

    def test_background_refresh_is_suppressed(self, connected, clock):
        """Test that intercepts are not re-adopted shortly after a disconnect."""
        connected.disconnect()
        connected.telepresence.list_raw.return_value = LIST_OUTPUT
        clock.advance(10)

        report = connected.get_formatted_status(background=True)

        assert connected.get_sessions() == []
        assert report.connection_status is ConnectionStatus.DISCONNECTED
        assert report.namespace_connection is None
        connected.telepresence.list_raw.assert_not_called()

    def test_background_refresh_resumes(self, connected, clock):
        """Test that refreshes resume once the window has passed."""
        connected.disconnect()
        connected.telepresence.list_raw.return_value = LIST_OUTPUT
        clock.advance(31)

        connected.get_formatted_status(background=True)

        assert [s.id for s in connected.get_sessions()] == ["payrollapi-devend74761"]

    def test_user_refresh_ignores_window(self, connected, clock):
        """Test that explicit refreshes are never suppressed."""
        connected.disconnect()
        connected.telepresence.list_raw.return_value = LIST_OUTPUT
        clock.advance(1)

        connected.get_formatted_status()

        connected.telepresence.list_raw.assert_called_once()
