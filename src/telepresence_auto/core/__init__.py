"""Core orchestration subpackage.

This package contains the Orchestrator facade along with the connection
and session state machines and the reconciler they share state with.
"""

from telepresence_auto.core.connection import ConnectionManager
from telepresence_auto.core.orchestrator import Orchestrator
from telepresence_auto.core.reconciler import Reconciler
from telepresence_auto.core.sessions import SessionManager
from telepresence_auto.core.state import SessionRegistry, State

__all__ = [
    "ConnectionManager",
    "Orchestrator",
    "Reconciler",
    "SessionManager",
    "SessionRegistry",
    "State",
]
