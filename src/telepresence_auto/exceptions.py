"""Custom exceptions for telepresence-auto.

This module defines the exception hierarchy used throughout the application
to provide meaningful error messages and proper error handling.
"""


class TelepresenceAutoError(Exception):
    """Base exception for all telepresence-auto errors.

    All custom exceptions in this package inherit from this class,
    allowing callers to catch all telepresence-auto errors with a single
    except clause if desired.
    """

    pass


class PrerequisiteMissingError(TelepresenceAutoError):
    """Raised when a required external tool is not installed.

    The message names the missing tool (telepresence, kubectl, kubelogin)
    and is meant to be shown to the user verbatim.
    """

    pass


class AuthenticationRequiredError(TelepresenceAutoError):
    """Raised when the cluster requires an interactive login.

    Attributes:
        message: Human readable description of the problem.
        hint: Provider-specific remediation hint.
        auth_kind: Detected authentication mechanism.
        provider: Detected cloud provider.

    """

    def __init__(self, message: str, hint: str, auth_kind: str = "generic", provider: str = "unknown") -> None:
        super().__init__(f"{message}. {hint}")
        self.message = message
        self.hint = hint
        self.auth_kind = auth_kind
        self.provider = provider


class ClusterConnectionError(TelepresenceAutoError):
    """Raised when connection to the Kubernetes cluster fails.

    This can occur when:
    - The kubeconfig is invalid or missing
    - The cluster is unreachable
    """

    pass


class ConfigurationError(TelepresenceAutoError):
    """Raised when the configuration file cannot be loaded."""

    pass


class NotConnectedError(TelepresenceAutoError):
    """Raised when an interception is requested without a namespace connection."""

    pass


class DeploymentNotFoundError(TelepresenceAutoError):
    """Raised when no deployment in the namespace matches the search term."""

    pass


class SessionAlreadyExistsError(TelepresenceAutoError):
    """Raised when a deployment is already being intercepted."""

    pass


class SessionNotFoundError(TelepresenceAutoError):
    """Raised when an unknown session id is referenced."""

    pass


class CommandFailedError(TelepresenceAutoError):
    """Raised when an external command exits non-zero, times out or cannot start.

    Attributes:
        command: The command vector that was executed.
        message: Captured error output or failure reason.

    """

    def __init__(self, command: list[str], message: str) -> None:
        super().__init__(f"Command failed: {' '.join(command)}\n{message}")
        self.command = command
        self.message = message


class ProcessTerminationIncomplete(TelepresenceAutoError):
    """Names a replace process that survived the kill sequence.

    Never raised. The supervisor logs the condition at ERROR and tags the
    record with this class name in ``error_type``; the following
    ``telepresence leave`` is the authoritative cleanup.
    """

    pass
