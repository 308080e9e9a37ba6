"""Mutable state shared by the connection and session state machines."""

import threading
from collections.abc import Iterator
from dataclasses import dataclass, field

from telepresence_auto.exceptions import SessionAlreadyExistsError, SessionNotFoundError
from telepresence_auto.models import ConnectionStatus, InterceptionSession, NamespaceConnection


class SessionRegistry:
    """Sessions keyed by full deployment name.

    Not thread-safe on its own; callers hold ``State.lock``.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, InterceptionSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __iter__(self) -> Iterator[InterceptionSession]:
        return iter(list(self._sessions.values()))

    def add(self, session: InterceptionSession) -> None:
        """Register a session.

        Raises:
            SessionAlreadyExistsError: If the deployment already has a session.

        """
        if session.id in self._sessions:
            raise SessionAlreadyExistsError(f"Deployment '{session.id}' is already being intercepted")
        self._sessions[session.id] = session

    def get(self, session_id: str) -> InterceptionSession | None:
        return self._sessions.get(session_id)

    def require(self, session_id: str) -> InterceptionSession:
        """Return a session or raise SessionNotFoundError."""
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"No interception session '{session_id}'")
        return session

    def remove(self, session_id: str, expected: InterceptionSession | None = None) -> InterceptionSession | None:
        """Drop a session.

        Args:
            session_id: Session to remove.
            expected: Only remove if the registered object is this one.

        Returns:
            The removed session, or None if nothing was removed.

        """
        current = self._sessions.get(session_id)
        if current is None or (expected is not None and current is not expected):
            return None
        return self._sessions.pop(session_id)

    def ids(self) -> list[str]:
        return list(self._sessions)


@dataclass
class State:
    """Connection record, session registry and the lock guarding both.

    Attributes:
        lock: Guards every read-modify-write of the fields below.
        connection: The namespace connection, if any.
        sessions: Registry of interception sessions.
        manual_disconnect_at: Clock reading of the last explicit disconnect.

    """

    lock: threading.RLock = field(default_factory=threading.RLock)
    connection: NamespaceConnection | None = None
    sessions: SessionRegistry = field(default_factory=SessionRegistry)
    manual_disconnect_at: float | None = None

    @property
    def is_connected(self) -> bool:
        return self.connection is not None and self.connection.status is ConnectionStatus.CONNECTED

    def namespace_or(self, fallback: str) -> str:
        """Return the connected namespace, or ``fallback`` (then ``default``)."""
        if self.connection is not None:
            return self.connection.namespace
        return fallback or "default"

    def suppressed(self, now: float, window: float) -> bool:
        """Whether ``now`` falls within ``window`` seconds of a manual disconnect."""
        return self.manual_disconnect_at is not None and now - self.manual_disconnect_at < window
