"""telepresence-auto: Orchestrates telepresence traffic interceptions.

This package connects the telepresence daemon to a Kubernetes namespace,
redirects traffic of single deployments to local processes, and keeps its
view of active interceptions in line with what the daemon reports.

Example usage:
    from telepresence_auto import Orchestrator

    with Orchestrator() as orchestrator:
        orchestrator.connect("payments")
        session = orchestrator.start_interception("payroll", local_port=5002)
        report = orchestrator.get_formatted_status()
"""

__version__ = "0.1.0"

from telepresence_auto.core.orchestrator import Orchestrator
from telepresence_auto.exceptions import (
    AuthenticationRequiredError,
    ClusterConnectionError,
    CommandFailedError,
    ConfigurationError,
    DeploymentNotFoundError,
    NotConnectedError,
    PrerequisiteMissingError,
    ProcessTerminationIncomplete,
    SessionAlreadyExistsError,
    SessionNotFoundError,
    TelepresenceAutoError,
)
from telepresence_auto.settings import Settings, load_settings

__all__ = [
    # Version
    "__version__",
    # Classes
    "Orchestrator",
    "Settings",
    "load_settings",
    # Exceptions
    "TelepresenceAutoError",
    "AuthenticationRequiredError",
    "ClusterConnectionError",
    "CommandFailedError",
    "ConfigurationError",
    "DeploymentNotFoundError",
    "NotConnectedError",
    "PrerequisiteMissingError",
    "ProcessTerminationIncomplete",
    "SessionAlreadyExistsError",
    "SessionNotFoundError",
]
