"""
Run context for one conference run.

Owns everything the sessions of a run share: the teardown barrier, the
node-report latch, the tolerance-grant gate, the abort signal, and the
discovery-ordered list of reported backend nodes. One instance per run,
passed explicitly to every driver and to the disruption coordinator.
"""

import threading
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from malleus_engine.domain import RunConfiguration
from malleus_engine.runtime.sync import CountDownLatch, TeardownBarrier


def generate_run_id(prefix: str = "run") -> str:
    """
    Generate a unique run ID.

    Format: {prefix}_{timestamp}_{uuid8}
    Example: conf_20240115_143022_a1b2c3d4

    Args:
        prefix: ID prefix (e.g., "conf", "matrix")

    Returns:
        Unique run ID string.
    """
    timestamp = datetime.now(UTC).strftime("%Y%m%d_%H%M%S")
    short_uuid = uuid4().hex[:8]
    return f"{prefix}_{timestamp}_{short_uuid}"


@dataclass
class RunContext:
    """Shared, run-scoped coordination state."""

    run_id: str
    config: RunConfiguration
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    barrier: TeardownBarrier = field(default_factory=TeardownBarrier)
    node_reports: CountDownLatch = field(init=False)

    _started_monotonic: float = field(default_factory=time.monotonic, repr=False)
    _grants_ready: threading.Event = field(default_factory=threading.Event, repr=False)
    _abort: threading.Event = field(default_factory=threading.Event, repr=False)
    _nodes_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _reported: list[tuple[int, str | None]] = field(default_factory=list, repr=False)

    # Status
    is_completed: bool = False
    completed_at: datetime | None = None
    error: str | None = None

    def __post_init__(self) -> None:
        self.node_reports = CountDownLatch(self.config.participants)

    @classmethod
    def create(cls, config: RunConfiguration) -> "RunContext":
        return cls(run_id=generate_run_id("conf"), config=config)

    # -------------------------------------------------------------------------
    # Node discovery
    # -------------------------------------------------------------------------

    def report_node(self, index: int, node: str | None) -> None:
        """
        Record a session's backend node and count down the report latch.

        Called exactly once per session; ``node`` is None when the session
        failed before it could discover its node.
        """
        with self._nodes_lock:
            self._reported.append((index, node))
        self.node_reports.count_down()

    def reported_nodes(self) -> list[str]:
        """Distinct reported nodes, in discovery order."""
        with self._nodes_lock:
            reports = list(self._reported)
        seen: dict[str, None] = {}
        for _, node in reports:
            if node:
                seen.setdefault(node, None)
        return list(seen)

    # -------------------------------------------------------------------------
    # Tolerance grant gate
    # -------------------------------------------------------------------------

    def open_grants(self) -> None:
        """Release drivers waiting to start monitoring."""
        self._grants_ready.set()

    def wait_for_grants(self, timeout: float | None = None) -> bool:
        return self._grants_ready.wait(timeout)

    @property
    def grants_open(self) -> bool:
        return self._grants_ready.is_set()

    # -------------------------------------------------------------------------
    # Abort / timing
    # -------------------------------------------------------------------------

    def abort(self) -> None:
        """Interrupt every session's monitor and unblock the grant gate."""
        self._abort.set()
        self._grants_ready.set()

    @property
    def aborted(self) -> bool:
        return self._abort.is_set()

    def wait_abort(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds. Returns True if the run was aborted."""
        return self._abort.wait(timeout)

    def elapsed_s(self) -> float:
        return time.monotonic() - self._started_monotonic

    def remaining_s(self) -> float:
        """Seconds left of the configured run duration."""
        return max(0.0, self.config.duration_ms / 1000.0 - self.elapsed_s())

    def mark_completed(self, error: str | None = None) -> None:
        """Mark the run as completed."""
        self.is_completed = True
        self.completed_at = datetime.now(UTC)
        self.error = error

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "run_id": self.run_id,
            "room_name": self.config.room_name,
            "room_url": self.config.room.to_url(),
            "created_at": self.created_at.isoformat(),
            "participants": self.config.participants,
            "reported_nodes": self.reported_nodes(),
            "is_completed": self.is_completed,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "error": self.error,
        }
