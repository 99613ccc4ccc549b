"""
In-process session simulation for dry runs and tests.

Simulates participants with scriptable behaviour:
- Bridge placement round-robin across a simulated bridge cluster
- Join / node-query / leave / release failures
- Scripted connectivity sequences and reconnect success
- One lost poll per session whenever its bridge is disrupted

Every lifecycle call is recorded so tests can assert teardown ordering.
"""

import re
import threading
import time
from dataclasses import dataclass, field

from malleus_engine.domain import ConnectivityState, SessionOptions
from malleus_engine.errors import JoinError, LeaveError, NodeQueryError, PollError, ReleaseError
from malleus_engine.interfaces import SessionHandle, SessionProvider
from malleus_engine.logging import get_logger

logger = get_logger(__name__)

_TRAILING_NUMBER = re.compile(r"(\d+)$")


class SimulatedBridgeCluster:
    """
    Simulated set of bridges.

    Each disrupt() bumps a per-bridge generation counter; sessions placed on
    that bridge see one lost poll per generation.
    """

    def __init__(self, nodes: tuple[str, ...] = ("bridge-1",)):
        if not nodes:
            raise ValueError("at least one bridge is required")
        self.nodes = tuple(nodes)
        self._lock = threading.Lock()
        self._generations: dict[str, int] = {n: 0 for n in self.nodes}
        self._assigned = 0

    def node_for(self, identity: str) -> str:
        """Place a participant on a bridge, round-robin by participant number."""
        m = _TRAILING_NUMBER.search(identity)
        with self._lock:
            if m:
                slot = int(m.group(1)) - 1
            else:
                slot = self._assigned
                self._assigned += 1
        return self.nodes[slot % len(self.nodes)]

    def disrupt(self, node_ids: frozenset[str]) -> None:
        with self._lock:
            for node in node_ids:
                self._generations[node] = self._generations.get(node, 0) + 1

    def generation(self, node: str) -> int:
        with self._lock:
            return self._generations.get(node, 0)


@dataclass
class SessionScript:
    """Scripted behaviour for one simulated participant."""

    backend_node: str | None = None
    create_error: str | None = None
    join_error: str | None = None
    node_query_error: str | None = None
    connectivity: list[ConnectivityState] = field(default_factory=list)
    reconnects: bool = True
    leave_error: str | None = None
    release_error: str | None = None
    join_delay_s: float = 0.0


class SimulatedSessionHandle(SessionHandle):
    """A simulated participant."""

    def __init__(
        self,
        identity: str,
        options: SessionOptions,
        script: SessionScript,
        provider: "SimulatedSessionProvider",
    ):
        self._identity = identity
        self.options = options
        self._script = script
        self._provider = provider
        self._connectivity = list(script.connectivity)
        self._node: str | None = None
        self._seen_generation = 0
        self.joined_url: str | None = None
        self.opened_url: str | None = None

    @property
    def name(self) -> str:
        return self._identity

    def join(self, room_url: str) -> None:
        self._provider.record(self._identity, "join")
        if self._script.join_delay_s:
            time.sleep(self._script.join_delay_s)
        if self._script.join_error:
            raise JoinError(self._script.join_error, self._identity)
        self.joined_url = room_url
        self._node = self._script.backend_node or self._provider.cluster.node_for(self._identity)
        self._seen_generation = self._provider.cluster.generation(self._node)

    def poll_connectivity(self, timeout_s: float = 0) -> ConnectivityState:
        self._provider.record(self._identity, "poll" if timeout_s == 0 else "reconnect")
        if timeout_s > 0:
            if self._script.reconnects:
                return ConnectivityState.CONNECTED
            raise PollError(f"not connected after {timeout_s}s", self._identity)

        if self._node is not None:
            generation = self._provider.cluster.generation(self._node)
            if generation > self._seen_generation:
                self._seen_generation = generation
                return ConnectivityState.DISCONNECTED

        if self._connectivity:
            return self._connectivity.pop(0)
        return ConnectivityState.CONNECTED

    def current_backend_node(self) -> str:
        self._provider.record(self._identity, "node")
        if self._script.node_query_error:
            raise NodeQueryError(self._script.node_query_error, self._identity)
        if self._node is None:
            raise NodeQueryError("not joined", self._identity)
        return self._node

    def leave_conference(self) -> None:
        self._provider.record(self._identity, "leave")
        if self._script.leave_error:
            raise LeaveError(self._script.leave_error, self._identity)

    def release(self) -> None:
        self._provider.record(self._identity, "release")
        if self._script.release_error:
            raise ReleaseError(self._script.release_error, self._identity)

    def open_page(self, url: str) -> None:
        self._provider.record(self._identity, "open")
        if self._script.join_error:
            raise JoinError(self._script.join_error, self._identity)
        self.opened_url = url


class SimulatedSessionProvider(SessionProvider):
    """
    Session provider backed by a simulated bridge cluster.

    Usage:
        cluster = SimulatedBridgeCluster(("jvb-1", "jvb-2"))
        provider = SimulatedSessionProvider(cluster, scripts={
            "web.participant2": SessionScript(join_error="room full"),
        })
    """

    def __init__(
        self,
        cluster: SimulatedBridgeCluster | None = None,
        scripts: dict[str, SessionScript] | None = None,
    ):
        self.cluster = cluster or SimulatedBridgeCluster()
        self._scripts = scripts or {}
        self._lock = threading.Lock()
        self.events: list[tuple[str, str]] = []
        self.handles: dict[str, SimulatedSessionHandle] = {}

    def create(self, identity: str, options: SessionOptions) -> SessionHandle:
        script = self._scripts.get(identity, SessionScript())
        self.record(identity, "create")
        if script.create_error:
            raise JoinError(script.create_error, identity)
        handle = SimulatedSessionHandle(identity, options, script, self)
        with self._lock:
            self.handles[identity] = handle
        return handle

    def record(self, identity: str, event: str) -> None:
        with self._lock:
            self.events.append((identity, event))
        logger.debug("sim %s: %s", identity, event)

    def events_for(self, identity: str) -> list[str]:
        with self._lock:
            return [e for i, e in self.events if i == identity]

    def event_names(self) -> list[str]:
        with self._lock:
            return [e for _, e in self.events]
