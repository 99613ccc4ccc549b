"""
Error taxonomy for the Malleus engine.

Session-local errors (join, node query, connectivity) are fatal to one
session only. Injection errors fail the run. Leave/release errors are
always logged and swallowed by the caller.
"""


class MalleusError(Exception):
    """Base class for all engine errors."""

    pass


class ConfigurationError(MalleusError):
    """Raised at startup when settings cannot be parsed or are inconsistent."""

    pass


class SessionError(MalleusError):
    """Base class for errors raised by a session handle."""

    def __init__(self, message: str, identity: str | None = None):
        super().__init__(message)
        self.identity = identity


class JoinError(SessionError):
    """Raised when a session cannot be created or cannot join its room."""

    pass


class NodeQueryError(SessionError):
    """Raised when a joined session cannot report its backend node."""

    pass


class PollError(SessionError):
    """Raised when a bounded connectivity wait expires while disconnected."""

    pass


class LeaveError(SessionError):
    """Raised when leaving the conference fails. Never fatal."""

    pass


class ReleaseError(SessionError):
    """Raised when releasing the session resource fails. Never fatal."""

    pass


class InjectionError(MalleusError):
    """Raised when the fault-injection provider fails to disrupt bridges."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
