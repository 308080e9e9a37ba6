"""Tests for console.py module."""

from unittest.mock import patch

from rich.panel import Panel
from rich.table import Table

from telepresence_auto import console
from telepresence_auto.models import (
    ConnectionStatus,
    DaemonStatus,
    InterceptionRecord,
    InterceptionSession,
    InterceptionStatus,
    NamespaceConnection,
    SessionStatus,
    StatusReport,
    utcnow,
)


def _report(records, status=ConnectionStatus.CONNECTED, error=None):
    return StatusReport(
        interceptions=records,
        connection_status=status,
        daemon_status=DaemonStatus.RUNNING,
        timestamp=utcnow(),
        namespace_connection=NamespaceConnection("payments", ConnectionStatus.CONNECTED),
        error=error,
    )


class TestConsoleOutput:
    """Tests for console output functions."""

    def test_info_message(self):
        """Test info message format."""
        with patch.object(console.console, "print") as mock_print:
            console.info("Test message")
            mock_print.assert_called_once()
            call_arg = mock_print.call_args[0][0]
            assert "ℹ" in call_arg
            assert "Test message" in call_arg

    def test_success_message(self):
        """Test success message format."""
        with patch.object(console.console, "print") as mock_print:
            console.success("Connected")
            call_arg = mock_print.call_args[0][0]
            assert "✓" in call_arg
            assert "Connected" in call_arg

    def test_warning_message(self):
        """Test warning message format."""
        with patch.object(console.console, "print") as mock_print:
            console.warning("Be careful")
            call_arg = mock_print.call_args[0][0]
            assert "⚠" in call_arg
            assert "Be careful" in call_arg

    def test_error_message(self):
        """Test error message format."""
        with patch.object(console.console, "print") as mock_print:
            console.error("Something failed")
            call_arg = mock_print.call_args[0][0]
            assert "✗" in call_arg
            assert "Something failed" in call_arg

    def test_highlight_returns_markup(self):
        """Test highlight returns Rich markup."""
        assert console.highlight("payments") == "[highlight]payments[/highlight]"

    def test_styled_status(self):
        """Test that statuses map to theme styles."""
        assert console.styled_status("intercepted") == "[success]intercepted[/success]"
        assert console.styled_status("error") == "[error]error[/error]"
        assert console.styled_status("mystery") == "[info]mystery[/info]"


class TestConsoleSpinner:
    """Tests for spinner context manager."""

    def test_spinner_context_manager(self):
        """Test spinner works as context manager."""
        with patch.object(console.console, "status") as mock_status:
            mock_status.return_value.__enter__ = lambda x: None
            mock_status.return_value.__exit__ = lambda x, *args: None
            with console.spinner("Connecting..."):
                pass
            mock_status.assert_called_once()


class TestStatusReport:
    """Tests for status rendering."""

    def test_panel_and_table(self):
        """Test that deployments are printed as a table after the summary."""
        records = [
            InterceptionRecord("orders", "payments", InterceptionStatus.AVAILABLE, replicas=2),
            InterceptionRecord("payroll", "payments", InterceptionStatus.INTERCEPTED, "10.0.0.5", 5001, 8080),
        ]
        with patch.object(console.console, "print") as mock_print:
            console.status_report(_report(records))

        assert mock_print.call_count == 2
        assert isinstance(mock_print.call_args_list[0][0][0], Panel)
        table = mock_print.call_args_list[1][0][0]
        assert isinstance(table, Table)
        assert table.row_count == 2

    def test_connected_without_deployments(self):
        """Test the hint printed for an empty listing."""
        with patch.object(console.console, "print") as mock_print:
            console.status_report(_report([]))

        assert "No deployments" in mock_print.call_args_list[-1][0][0]

    def test_disconnected_without_deployments(self):
        """Test that only the summary is printed when disconnected."""
        with patch.object(console.console, "print") as mock_print:
            console.status_report(_report([], status=ConnectionStatus.DISCONNECTED))

        mock_print.assert_called_once()


class TestSessionPanel:
    """Tests for session rendering."""

    def test_session_panel(self):
        """Test session panel renders."""
        session = InterceptionSession(
            id="payroll-devend1",
            namespace="payments",
            deployment="payroll-devend1",
            original_service_name="payroll",
            local_port=5002,
            status=SessionStatus.ERROR,
            last_error="spawn failed",
        )
        with patch.object(console, "summary_panel") as mock_panel:
            console.session_panel(session)

        title, items = mock_panel.call_args[0]
        assert title == "Interception"
        assert items["Local port"] == "5002"
        assert "spawn failed" in items["Error"]


class TestConsoleSummaryPanel:
    """Tests for summary panel."""

    def test_summary_panel(self):
        """Test summary panel renders."""
        with patch.object(console.console, "print") as mock_print:
            console.summary_panel("Test Summary", {"Key1": "Value1", "Key2": "Value2"})
            mock_print.assert_called_once()
