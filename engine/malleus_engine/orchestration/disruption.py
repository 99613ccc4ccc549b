"""
Bridge disruption coordinator.

Once every session has reported its backend node, picks a bounded share of
the distinct nodes, grants the sessions on them one forgiven disconnect,
and asks the fault injector to take those nodes down for the rest of the
run.
"""

import math
from collections.abc import Iterable, Sequence

from malleus_engine.domain import DisruptionOutcome, SessionDescriptor
from malleus_engine.interfaces import FaultInjector
from malleus_engine.logging import bind_run, get_logger
from malleus_engine.runtime.run_context import RunContext

logger = get_logger(__name__)

# Disconnects forgiven for a session whose bridge is disrupted.
DISRUPTED_SESSION_TOLERANCE = 1


def disruption_set_size(distinct_nodes: int, max_pct: float) -> int:
    """ceil(distinct_nodes * max_pct / 100), capped at distinct_nodes."""
    if distinct_nodes <= 0 or max_pct <= 0:
        return 0
    return min(distinct_nodes, math.ceil(distinct_nodes * max_pct / 100))


def select_disruption_set(nodes: Iterable[str], max_pct: float) -> list[str]:
    """
    Pick the nodes to disrupt.

    Takes the first k distinct nodes in the given (discovery) order, so the
    choice is reproducible for a fixed reporting order.
    """
    distinct = list(dict.fromkeys(n for n in nodes if n))
    return distinct[: disruption_set_size(len(distinct), max_pct)]


class BridgeDisruptionCoordinator:
    """Runs once per conference run, concurrently with the session drivers."""

    def __init__(self, context: RunContext, injector: FaultInjector):
        self._ctx = context
        self._injector = injector

    def disrupt(
        self,
        sessions: Sequence[SessionDescriptor],
        max_pct: float,
        duration_s: int,
    ) -> DisruptionOutcome:
        """
        Select and disrupt bridges.

        Args:
            sessions: Descriptors of every session in the run
            max_pct: Maximum percentage of distinct bridges to disrupt
            duration_s: Configured run duration in seconds

        Returns:
            DisruptionOutcome; ``success`` is False if injection failed.
        """
        bind_run(self._ctx.run_id, self._ctx.config.room_name)
        outcome = DisruptionOutcome()

        if max_pct <= 0:
            self._ctx.open_grants()
            return outcome

        try:
            self._ctx.node_reports.wait()
            outcome.reported_nodes = self._ctx.reported_nodes()
            outcome.disrupted_nodes = select_disruption_set(outcome.reported_nodes, max_pct)

            chosen = set(outcome.disrupted_nodes)
            for d in sessions:
                if d.backend_node in chosen and d.grant_tolerance(DISRUPTED_SESSION_TOLERANCE):
                    outcome.affected_sessions.append(d.index)
        finally:
            self._ctx.open_grants()

        if not outcome.disrupted_nodes:
            logger.warning("No bridges reported, nothing to disrupt")
            return outcome

        window_s = min(duration_s, math.ceil(self._ctx.remaining_s()))
        if window_s <= 0:
            logger.warning("Run duration already elapsed, skipping bridge disruption")
            return outcome

        outcome.attempted = True
        outcome.duration_s = window_s
        logger.info(
            "Disrupting %d/%d bridges for %ds: %s (%d sessions affected)",
            len(outcome.disrupted_nodes),
            len(outcome.reported_nodes),
            window_s,
            ", ".join(outcome.disrupted_nodes),
            len(outcome.affected_sessions),
        )

        try:
            self._injector.disrupt(frozenset(outcome.disrupted_nodes), window_s)
        except Exception as e:
            logger.exception("Bridge disruption failed")
            outcome.success = False
            outcome.error = f"{type(e).__name__}: {e}"
            return outcome

        logger.info("Bridge disruption window finished")
        return outcome
