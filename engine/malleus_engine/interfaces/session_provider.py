"""
SessionProvider interface.

Defines the contract for synthetic participant implementations (a browser
driven through WebDriver, a headless media client, or the in-process
simulator). All calls are blocking and are made from the owning session's
worker thread.
"""

from abc import ABC, abstractmethod

from malleus_engine.domain import ConnectivityState, SessionOptions


class SessionHandle(ABC):
    """
    One synthetic participant's connection to a conference room.

    Errors are reported with the exceptions from ``malleus_engine.errors``.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Participant identity this handle was created with."""
        pass

    @abstractmethod
    def join(self, room_url: str) -> None:
        """
        Join the conference at ``room_url``.

        Raises:
            JoinError: If the room could not be joined.
        """
        pass

    @abstractmethod
    def poll_connectivity(self, timeout_s: float = 0) -> ConnectivityState:
        """
        Check media connectivity.

        Args:
            timeout_s: 0 returns the current state immediately; a positive
                value waits up to that long for the session to be connected.

        Raises:
            PollError: If ``timeout_s`` > 0 and the wait expired disconnected.
        """
        pass

    @abstractmethod
    def current_backend_node(self) -> str:
        """
        Identify the backend node (bridge) carrying this session's media.

        Raises:
            NodeQueryError: If the node cannot be determined.
        """
        pass

    @abstractmethod
    def leave_conference(self) -> None:
        """Hang up. Raises LeaveError on failure."""
        pass

    @abstractmethod
    def release(self) -> None:
        """Release the underlying resource. Raises ReleaseError on failure."""
        pass

    @abstractmethod
    def open_page(self, url: str) -> None:
        """
        Open an arbitrary page (used by load-test participants).

        Raises:
            JoinError: If the page could not be opened.
        """
        pass


class SessionProvider(ABC):
    """Factory for session handles."""

    @abstractmethod
    def create(self, identity: str, options: SessionOptions) -> SessionHandle:
        """
        Create a new session handle.

        Raises:
            JoinError: If the participant could not be created.
        """
        pass
