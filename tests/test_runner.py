"""Tests for runner.py module."""

import logging
import subprocess
import sys
from unittest.mock import MagicMock, patch

import pytest

from telepresence_auto.exceptions import CommandFailedError
from telepresence_auto.runner import CommandRunner, try_in_order


class TestCommandRunnerRun:
    """Tests for CommandRunner.run."""

    def test_returns_stdout(self):
        """Test that stdout is returned on success."""
        with patch("telepresence_auto.runner.subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=0, stdout="Connected\n", stderr="")

            output = CommandRunner(timeout=5).run(["telepresence", "status"])

            assert output == "Connected\n"
            mock_run.assert_called_once_with(
                ["telepresence", "status"],
                capture_output=True,
                text=True,
                errors="replace",
                timeout=5,
                check=True,
            )

    def test_undecodable_output_is_replaced(self):
        """Test that bytes which are not valid text do not break decoding."""
        command = [sys.executable, "-c", "import sys; sys.stdout.buffer.write(b'ok \\xff')"]

        output = CommandRunner(timeout=30).run(command)

        assert output == "ok \ufffd"

    def test_undecodable_stderr_in_failure_message(self):
        """Test that a failing command with binary stderr still raises CommandFailedError."""
        command = [sys.executable, "-c", "import sys; sys.stderr.buffer.write(b'\\xfe'); sys.exit(2)"]

        with pytest.raises(CommandFailedError) as exc_info:
            CommandRunner(timeout=30).run(command)

        assert exc_info.value.message == "\ufffd"

    def test_non_zero_exit_raises(self):
        """Test that a non-zero exit becomes CommandFailedError with stderr."""
        with patch("telepresence_auto.runner.subprocess.run") as mock_run:
            mock_run.side_effect = subprocess.CalledProcessError(
                1, ["telepresence", "connect"], output="", stderr="connector.Connect: timeout\n"
            )

            with pytest.raises(CommandFailedError) as exc_info:
                CommandRunner().run(["telepresence", "connect"])

            assert exc_info.value.message == "connector.Connect: timeout"
            assert exc_info.value.command == ["telepresence", "connect"]
            assert "Command failed: telepresence connect" in str(exc_info.value)

    def test_non_zero_exit_without_output(self):
        """Test the message when the command printed nothing."""
        with patch("telepresence_auto.runner.subprocess.run") as mock_run:
            mock_run.side_effect = subprocess.CalledProcessError(3, ["kubectl"], output="", stderr="")

            with pytest.raises(CommandFailedError) as exc_info:
                CommandRunner().run(["kubectl"])

            assert exc_info.value.message == "exit code 3"

    def test_timeout_raises(self):
        """Test that a timeout becomes CommandFailedError."""
        with patch("telepresence_auto.runner.subprocess.run") as mock_run:
            mock_run.side_effect = subprocess.TimeoutExpired(["telepresence", "list"], 2)

            with pytest.raises(CommandFailedError) as exc_info:
                CommandRunner(timeout=2).run(["telepresence", "list"])

            assert "timed out after 2s" in exc_info.value.message

    def test_missing_binary_raises(self):
        """Test that a missing executable becomes CommandFailedError."""
        with patch("telepresence_auto.runner.subprocess.run") as mock_run:
            mock_run.side_effect = FileNotFoundError("No such file or directory: 'telepresence'")

            with pytest.raises(CommandFailedError):
                CommandRunner().run(["telepresence", "version"])

    def test_stderr_on_success_is_logged(self, caplog):
        """Test that warnings printed by a successful command are logged."""
        with patch("telepresence_auto.runner.subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=0, stdout="ok", stderr="deprecated flag\n")

            with caplog.at_level(logging.WARNING, logger="telepresence_auto.runner"):
                CommandRunner().run(["telepresence", "list"])

            assert "deprecated flag" in caplog.text


class TestCommandRunnerIsInstalled:
    """Tests for CommandRunner.is_installed."""

    def test_not_on_path(self):
        """Test a binary that is not on PATH."""
        with patch("telepresence_auto.runner.shutil.which", return_value=None):
            assert CommandRunner().is_installed("kubelogin", "--version") is False

    def test_version_probe_succeeds(self):
        """Test a binary that answers its version probe."""
        runner = CommandRunner()
        with (
            patch("telepresence_auto.runner.shutil.which", return_value="/usr/bin/kubectl"),
            patch.object(runner, "run", return_value="Client Version: v1.30.0") as mock_run,
        ):
            assert runner.is_installed("kubectl", "version", "--client") is True
            mock_run.assert_called_once_with(["kubectl", "version", "--client"])

    def test_version_probe_fails(self):
        """Test a binary whose version probe fails."""
        runner = CommandRunner()
        with (
            patch("telepresence_auto.runner.shutil.which", return_value="/usr/bin/telepresence"),
            patch.object(runner, "run", side_effect=CommandFailedError(["telepresence", "version"], "boom")),
        ):
            assert runner.is_installed("telepresence", "version") is False


class TestTryInOrder:
    """Tests for the fallback combinator."""

    def test_first_success_wins(self):
        """Test that later attempts are not run after a success."""
        second = MagicMock(return_value="second")
        third = MagicMock(return_value="third")

        def first():
            raise CommandFailedError(["a"], "nope")

        assert try_in_order([("first", first), ("second", second), ("third", third)]) == (True, "second")
        second.assert_called_once()
        third.assert_not_called()

    def test_success_returning_none(self):
        """Test that an attempt returning None still counts as a success."""
        fallback = MagicMock()

        assert try_in_order([("quiet", lambda: None), ("fallback", fallback)]) == (True, None)
        fallback.assert_not_called()

    def test_all_fail(self, caplog):
        """Test that failure is reported and every failure is logged."""

        def failing():
            raise CommandFailedError(["telepresence", "leave"], "no such intercept")

        with caplog.at_level(logging.WARNING):
            assert try_in_order([("one", failing), ("two", failing)]) == (False, None)

        assert caplog.text.count("no such intercept") == 2

    def test_other_errors_propagate(self):
        """Test that only CommandFailedError triggers the fallback."""

        def broken():
            raise RuntimeError("bug")

        with pytest.raises(RuntimeError):
            try_in_order([("broken", broken), ("never", MagicMock())])
