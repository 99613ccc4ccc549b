"""
Simulated and no-op fault injectors.
"""

import threading

from malleus_engine.errors import InjectionError
from malleus_engine.interfaces import FaultInjector
from malleus_engine.logging import get_logger
from malleus_engine.sessions.simulated import SimulatedBridgeCluster

logger = get_logger(__name__)


class NullFaultInjector(FaultInjector):
    """Logs the request and returns immediately."""

    def disrupt(self, node_ids: frozenset[str], duration_s: int) -> None:
        logger.warning(
            "No fault injector configured; not disrupting %s for %ds",
            ", ".join(sorted(node_ids)),
            duration_s,
        )


class SimulatedFaultInjector(FaultInjector):
    """
    Fault injector for simulated clusters and tests.

    Records every call, marks the bridges disrupted on the simulated cluster
    (if given) and optionally holds for the disruption window.
    """

    def __init__(
        self,
        cluster: SimulatedBridgeCluster | None = None,
        hold: bool = False,
        fail_with: str | None = None,
    ):
        self._cluster = cluster
        self._hold = hold
        self._fail_with = fail_with
        self._stop = threading.Event()
        self._lock = threading.Lock()
        self.calls: list[tuple[frozenset[str], int]] = []

    def disrupt(self, node_ids: frozenset[str], duration_s: int) -> None:
        with self._lock:
            self.calls.append((frozenset(node_ids), duration_s))
        if self._fail_with:
            raise InjectionError(self._fail_with)
        if self._cluster is not None:
            self._cluster.disrupt(frozenset(node_ids))
        logger.info("Simulated disruption of %s for %ds", ", ".join(sorted(node_ids)), duration_s)
        if self._hold:
            self._stop.wait(duration_s)

    def stop(self) -> None:
        """End any disruption window being held."""
        self._stop.set()
