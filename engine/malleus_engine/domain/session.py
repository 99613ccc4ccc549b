"""
Session domain model.

One SessionDescriptor per participant slot. The failure tolerance is the
only field written by more than one thread (the owning driver decrements,
the disruption coordinator grants once), so it sits behind a lock.
"""

import threading
from dataclasses import dataclass, field
from enum import Enum

from malleus_engine.rooms import RoomUrl


class ConnectivityState(str, Enum):
    """Result of a connectivity poll."""

    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class SessionRole(str, Enum):
    """Application role tag used as a node-placement hint."""

    SENDER = "malleusSender"
    RECEIVER = "malleusReceiver"


class OutcomeKind(str, Enum):
    """How a session's run ended."""

    COMPLETED = "completed"
    JOIN_FAILED = "join_failed"
    NODE_QUERY_FAILED = "node_query_failed"
    TOLERANCE_EXHAUSTED = "tolerance_exhausted"
    INTERRUPTED = "interrupted"

    @property
    def is_early_failure(self) -> bool:
        """Failed before monitoring started (never had a tolerance to spend)."""
        return self in (OutcomeKind.JOIN_FAILED, OutcomeKind.NODE_QUERY_FAILED)

    @property
    def is_failure(self) -> bool:
        return self is not OutcomeKind.COMPLETED


@dataclass(frozen=True)
class SessionOptions:
    """Options handed to the session provider when creating a handle."""

    mute_video: bool = False
    mute_audio: bool = False
    role: SessionRole | None = None
    region: str | None = None


@dataclass
class SessionDescriptor:
    """
    Per-participant session state.

    Owned by its SessionDriver. ``backend_node`` is set once after join;
    ``failure_tolerance`` goes through grant_tolerance()/consume_tolerance().
    """

    index: int
    room: RoomUrl
    mute_video: bool = False
    mute_audio: bool = False
    region: str | None = None
    backend_node: str | None = None
    _failure_tolerance: int = 0
    _granted: bool = False
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def identity(self) -> str:
        """Participant identity, 1-based like the conference UI shows it."""
        return f"web.participant{self.index + 1}"

    @property
    def failure_tolerance(self) -> int:
        with self._lock:
            return self._failure_tolerance

    @property
    def tolerance_granted(self) -> bool:
        with self._lock:
            return self._granted

    def options(self, use_node_types: bool = False) -> SessionOptions:
        """Build provider options for this session."""
        role = None
        if use_node_types:
            # Audio-only senders are placed with receivers.
            role = SessionRole.RECEIVER if self.mute_video else SessionRole.SENDER
        return SessionOptions(
            mute_video=self.mute_video,
            mute_audio=self.mute_audio,
            role=role,
            region=self.region,
        )

    def grant_tolerance(self, amount: int) -> bool:
        """
        Set the failure tolerance to ``amount``.

        Only the first grant takes effect. Returns True if applied.
        """
        with self._lock:
            if self._granted:
                return False
            self._failure_tolerance = amount
            self._granted = True
            return True

    def consume_tolerance(self) -> int:
        """Record one lost-connectivity event and return the remaining tolerance."""
        with self._lock:
            self._failure_tolerance -= 1
            return self._failure_tolerance


@dataclass
class SessionOutcome:
    """Final result of one session driver."""

    index: int
    identity: str
    kind: OutcomeKind
    failure_tolerance: int = 0
    backend_node: str | None = None
    error: str | None = None
    disconnects: int = 0
    ticks: int = 0
    duration_s: float = 0.0

    @property
    def ok(self) -> bool:
        return not self.kind.is_failure

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "identity": self.identity,
            "kind": self.kind.value,
            "failure_tolerance": self.failure_tolerance,
            "backend_node": self.backend_node,
            "error": self.error,
            "disconnects": self.disconnects,
            "ticks": self.ticks,
            "duration_s": round(self.duration_s, 3),
        }
