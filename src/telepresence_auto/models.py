"""Data models for telepresence-auto.

This module provides type-safe data structures for connection state,
interception sessions and the records parsed from the telepresence CLI.
"""

import subprocess
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import NamedTuple


class ConnectionStatus(str, Enum):
    """States of the namespace connection.

    Inherits from str to allow direct use in string contexts
    (e.g., log lines, status tables).
    """

    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"
    DISCONNECTED = "disconnected"
    ERROR = "error"


class SessionStatus(str, Enum):
    """States of a traffic interception session."""

    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"
    ERROR = "error"


class InterceptionStatus(str, Enum):
    """Deployment state as reported by ``telepresence list``."""

    INTERCEPTED = "intercepted"
    AVAILABLE = "available"
    ERROR = "error"


class DaemonStatus(str, Enum):
    """Derived state of the telepresence daemon."""

    RUNNING = "running"
    STOPPED = "stopped"
    UNKNOWN = "unknown"


class AuthKind(str, Enum):
    """Authentication mechanism configured for the current context."""

    KUBELOGIN = "kubelogin"
    AWS = "aws"
    GCP = "gcp"
    GENERIC = "generic"


class Provider(str, Enum):
    """Cloud provider hosting the current cluster."""

    AZURE = "azure"
    AWS = "aws"
    GCP = "gcp"
    UNKNOWN = "unknown"


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(UTC)


def daemon_name(context: str | None, namespace: str) -> str:
    """Build the daemon selector passed to ``telepresence --use``.

    Args:
        context: Current kubeconfig context name.
        namespace: Namespace the daemon is connected to.

    Returns:
        The ``{context}-{namespace}`` selector string.

    """
    return f"{context}-{namespace}"


@dataclass
class NamespaceConnection:
    """The single binding of this tool to one cluster namespace.

    Attributes:
        namespace: Connected namespace.
        status: Current connection state.
        started_at: When the connection attempt began.
        last_error: Message of the last failure, if any.

    """

    namespace: str
    status: ConnectionStatus = ConnectionStatus.CONNECTING
    started_at: datetime | None = field(default_factory=utcnow)
    last_error: str | None = None


@dataclass
class InterceptionSession:
    """A deployment whose traffic is redirected to a local port.

    The session id is the full deployment name, so the registry can hold at
    most one session per deployment.

    Attributes:
        id: Full deployment name.
        namespace: Namespace of the deployment.
        deployment: Full deployment name.
        original_service_name: Short name the user searched for.
        local_port: Local port receiving the traffic.
        status: Current session state.
        process: Replace subprocess, absent for sessions adopted from the cluster.
        started_at: When the session was created.
        last_error: Message of the last failure, if any.

    """

    id: str
    namespace: str
    deployment: str
    original_service_name: str
    local_port: int
    status: SessionStatus = SessionStatus.CONNECTING
    process: subprocess.Popen | None = field(default=None, repr=False, compare=False)
    started_at: datetime = field(default_factory=utcnow)
    last_error: str | None = None


@dataclass(frozen=True, slots=True)
class InterceptionRecord:
    """One deployment block parsed from ``telepresence list`` output.

    Attributes:
        deployment: Full deployment name.
        namespace: Namespace the listing was requested for.
        status: Interception state of the deployment.
        cluster_ip: Cluster-side IP routed to loopback, when intercepted.
        local_port: Local port receiving traffic, when intercepted.
        target_port: Application port inside the cluster, when intercepted.
        replicas: Desired replica count, when known.

    """

    deployment: str
    namespace: str
    status: InterceptionStatus
    cluster_ip: str | None = None
    local_port: int | None = None
    target_port: int | None = None
    replicas: int | None = None

    @property
    def is_intercepted(self) -> bool:
        """Whether the deployment is currently replaced by a local process."""
        return self.status is InterceptionStatus.INTERCEPTED


class DaemonState(NamedTuple):
    """Parsed ``telepresence status`` output.

    Attributes:
        connected: Whether the user daemon reports a live connection.
        namespace: Namespace the daemon is connected to, if reported.

    """

    connected: bool
    namespace: str | None


class AuthInfo(NamedTuple):
    """Result of probing the current context for authentication.

    Attributes:
        needs_auth: Whether an interactive login is required.
        auth_kind: Detected authentication mechanism.
        provider: Detected cloud provider.
        error: Probe failure message, if any.

    """

    needs_auth: bool
    auth_kind: AuthKind
    provider: Provider
    error: str | None = None

    def remediation(self) -> tuple[str, str]:
        """Return a (message, hint) pair describing how to log in."""
        match self.auth_kind:
            case AuthKind.KUBELOGIN:
                return (
                    "You are not authenticated to the Azure cluster",
                    'Run "az login" followed by "kubelogin convert-kubeconfig -l azurecli"',
                )
            case AuthKind.AWS:
                return (
                    "You are not authenticated to the AWS cluster",
                    'Configure the AWS CLI with "aws configure" or use environment variables',
                )
            case AuthKind.GCP:
                return (
                    "You are not authenticated to the GCP cluster",
                    'Run "gcloud auth login" and "gcloud container clusters get-credentials"',
                )
            case _:
                return (
                    "You are not authenticated to the Kubernetes cluster",
                    "Verify your kubectl configuration and credentials",
                )


class PrerequisiteReport(NamedTuple):
    """Snapshot of the local tooling and cluster access."""

    telepresence_installed: bool
    kubectl_installed: bool
    kubelogin_installed: bool
    current_context: str | None
    required_context: str | None
    auth: AuthInfo | None

    @property
    def context_matches(self) -> bool:
        """Whether the current context satisfies the configured requirement."""
        return self.required_context is None or self.required_context == self.current_context


@dataclass(frozen=True)
class StatusReport:
    """Snapshot handed to status renderers.

    Attributes:
        interceptions: Parsed records from the latest listing.
        connection_status: Derived connection state.
        daemon_status: Derived daemon state.
        timestamp: When the report was produced.
        namespace_connection: Copy of the connection record, if any.
        raw_output: Unparsed listing text or the listing failure message.
        error: Set when the report could not be produced normally.

    """

    interceptions: list[InterceptionRecord]
    connection_status: ConnectionStatus
    daemon_status: DaemonStatus
    timestamp: datetime
    namespace_connection: NamespaceConnection | None
    raw_output: str = ""
    error: str | None = None
