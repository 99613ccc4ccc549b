"""
Per-session connectivity health monitor.

Polls a session's connectivity on a fixed cadence for the configured run
duration, spending the session's failure tolerance on lost polls.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from malleus_engine.domain import ConnectivityState, SessionDescriptor
from malleus_engine.errors import PollError
from malleus_engine.interfaces import SessionHandle
from malleus_engine.logging import get_logger

logger = get_logger(__name__)

HEALTH_CHECK_INTERVAL_MS = 5000
RECONNECT_TIMEOUT_S = 20.0


class MonitorStatus(str, Enum):
    """Why the monitor loop ended."""

    COMPLETED = "completed"
    TOLERANCE_EXHAUSTED = "tolerance_exhausted"
    INTERRUPTED = "interrupted"


@dataclass
class MonitorReport:
    """Result of one monitor loop."""

    status: MonitorStatus
    ticks: int = 0
    disconnects: int = 0
    elapsed_ms: float = 0.0
    error: str | None = None


class HealthMonitor:
    """
    Connectivity loop for one session.

    Each tick sleeps min(interval, remaining), polls with no timeout and,
    on a lost poll, spends one unit of tolerance and waits a bounded time
    for reconnection. The remaining duration is reduced by the measured
    tick time, not the nominal interval.
    """

    def __init__(
        self,
        handle: SessionHandle,
        descriptor: SessionDescriptor,
        duration_ms: float,
        interval_ms: float = HEALTH_CHECK_INTERVAL_MS,
        reconnect_timeout_s: float = RECONNECT_TIMEOUT_S,
        wait: Callable[[float], bool] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize monitor.

        Args:
            handle: Session to poll
            descriptor: Session state holding the failure tolerance
            duration_ms: Total monitoring time
            interval_ms: Poll interval
            reconnect_timeout_s: Bounded wait after a lost poll
            wait: Interruptible sleep; returns True if the run was aborted
            clock: Monotonic clock in seconds
        """
        self._handle = handle
        self._descriptor = descriptor
        self._duration_ms = duration_ms
        self._interval_ms = interval_ms
        self._reconnect_timeout_s = reconnect_timeout_s
        self._wait = wait or _plain_sleep
        self._clock = clock

    def run(self) -> MonitorReport:
        """Run the loop to completion, exhaustion or interruption."""
        d = self._descriptor
        report = MonitorReport(status=MonitorStatus.COMPLETED)
        remaining_ms = self._duration_ms

        while remaining_ms > 0:
            sleep_ms = min(self._interval_ms, remaining_ms)
            tick_start = self._clock()

            if self._wait(sleep_ms / 1000.0):
                report.status = MonitorStatus.INTERRUPTED
                logger.info("Participant %d interrupted", d.index)
                break

            report.ticks += 1
            if self._connected_now():
                logger.info(
                    "Participant %d is connected (tolerance=%d).",
                    d.index,
                    d.failure_tolerance,
                )
            else:
                logger.warning(
                    "Participant %d is NOT connected (tolerance=%d).",
                    d.index,
                    d.failure_tolerance,
                )
                report.disconnects += 1
                if not self._recover(report):
                    report.status = MonitorStatus.TOLERANCE_EXHAUSTED
                    break

            elapsed_ms = (self._clock() - tick_start) * 1000.0
            report.elapsed_ms += elapsed_ms
            remaining_ms -= elapsed_ms

        return report

    def _connected_now(self) -> bool:
        try:
            return self._handle.poll_connectivity(0) == ConnectivityState.CONNECTED
        except PollError:
            return False

    def _recover(self, report: MonitorReport) -> bool:
        """
        Spend tolerance on a lost poll and wait for reconnection.

        A reconnection wait that expires is another lost-connectivity event.
        Returns False once the tolerance is negative.
        """
        d = self._descriptor
        while True:
            tolerance = d.consume_tolerance()
            if tolerance < 0:
                report.error = f"connectivity lost with no tolerance left ({report.disconnects} disconnects)"
                logger.error(
                    "Participant %d exhausted its failure tolerance (tolerance=%d).",
                    d.index,
                    tolerance,
                )
                return False
            try:
                state = self._handle.poll_connectivity(self._reconnect_timeout_s)
            except PollError as e:
                logger.warning(
                    "Participant %d did not reconnect within %.0fs: %s",
                    d.index,
                    self._reconnect_timeout_s,
                    e,
                )
                report.disconnects += 1
                continue
            if state == ConnectivityState.CONNECTED:
                logger.info(
                    "Participant %d reconnected (tolerance=%d).",
                    d.index,
                    tolerance,
                )
                return True
            report.disconnects += 1


def _plain_sleep(seconds: float) -> bool:
    time.sleep(seconds)
    return False
