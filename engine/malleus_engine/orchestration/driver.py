"""
Session driver.

Owns one participant's full lifecycle: create, join, node discovery,
health monitoring and barrier-synchronized teardown.
"""

import time

from malleus_engine.domain import (
    OutcomeKind,
    RunConfiguration,
    SessionDescriptor,
    SessionOutcome,
)
from malleus_engine.errors import JoinError, NodeQueryError
from malleus_engine.interfaces import SessionHandle, SessionProvider
from malleus_engine.logging import bind_run, get_logger
from malleus_engine.orchestration.health import HealthMonitor, MonitorReport, MonitorStatus
from malleus_engine.rooms import region_fragment
from malleus_engine.runtime.run_context import RunContext

logger = get_logger(__name__)

_MONITOR_OUTCOMES = {
    MonitorStatus.COMPLETED: OutcomeKind.COMPLETED,
    MonitorStatus.TOLERANCE_EXHAUSTED: OutcomeKind.TOLERANCE_EXHAUSTED,
    MonitorStatus.INTERRUPTED: OutcomeKind.INTERRUPTED,
}


class SessionDriver:
    """
    Drives one session through its lifecycle.

    The driver registers with the run's teardown barrier when constructed,
    so the supervisor can register every party before any driver starts.
    run() never raises for session failures; they come back as a
    SessionOutcome.
    """

    def __init__(
        self,
        descriptor: SessionDescriptor,
        config: RunConfiguration,
        context: RunContext,
        provider: SessionProvider,
    ):
        self.descriptor = descriptor
        self._config = config
        self._ctx = context
        self._provider = provider
        self._handle: SessionHandle | None = None
        self._started_at = 0.0
        self._ctx.barrier.register()

    @property
    def room_url(self) -> str:
        """Room URL with this session's config fragments."""
        d = self.descriptor
        room = d.room
        if d.mute_video:
            room = room.with_config("config.startWithVideoMuted=true")
        if d.mute_audio:
            room = room.with_config("config.startWithAudioMuted=true")
        if d.region is not None:
            room = room.with_config(region_fragment(d.region))
        return room.to_url()

    def run(self) -> SessionOutcome:
        """Run the session to completion."""
        bind_run(self._ctx.run_id, self._ctx.config.room_name, participant=self.descriptor.index)
        self._started_at = time.monotonic()
        d = self.descriptor

        failure = self._join_and_discover()
        if failure is not None:
            return failure

        # Tolerance grants from the coordinator must land before the first read.
        self._ctx.wait_for_grants()

        try:
            monitor = HealthMonitor(
                handle=self._handle,
                descriptor=d,
                duration_ms=self._config.duration_ms,
                interval_ms=self._config.health_check_interval_ms,
                reconnect_timeout_s=self._config.reconnect_timeout_s,
                wait=self._ctx.wait_abort,
            )
            report = monitor.run()
        except Exception as e:
            logger.exception("Participant %d health monitor failed", d.index)
            report = MonitorReport(status=MonitorStatus.INTERRUPTED, error=f"monitor error: {e}")
        finally:
            self._teardown()

        return self._outcome(
            _MONITOR_OUTCOMES[report.status],
            error=report.error,
            disconnects=report.disconnects,
            ticks=report.ticks,
        )

    def _join_and_discover(self) -> SessionOutcome | None:
        """
        Create and join the session, then record its backend node.

        Reports to the node latch exactly once on every path. Returns a
        failure outcome, or None on success.
        """
        d = self.descriptor
        node: str | None = None
        try:
            try:
                self._handle = self._provider.create(
                    d.identity, d.options(self._config.use_node_types)
                )
                self._handle.join(self.room_url)
            except Exception as e:
                return self._fail_early(OutcomeKind.JOIN_FAILED, e, JoinError)

            try:
                node = self._handle.current_backend_node()
            except Exception as e:
                return self._fail_early(OutcomeKind.NODE_QUERY_FAILED, e, NodeQueryError)

            if not node:
                return self._fail_early(
                    OutcomeKind.NODE_QUERY_FAILED,
                    NodeQueryError("empty backend node", d.identity),
                    NodeQueryError,
                )

            d.backend_node = node
            logger.info("Participant %d joined %s on bridge %s", d.index, d.room.room_name, node)
            return None
        finally:
            self._ctx.report_node(d.index, node)

    def _fail_early(
        self,
        kind: OutcomeKind,
        error: Exception,
        expected: type[Exception],
    ) -> SessionOutcome:
        """Deregister from the barrier and release whatever was created."""
        d = self.descriptor
        if isinstance(error, expected):
            logger.error("Participant %d %s: %s", d.index, kind.value, error)
        else:
            logger.exception("Participant %d %s (unexpected error)", d.index, kind.value)

        # Don't block the other sessions from hanging up.
        self._ctx.barrier.arrive_and_deregister()

        if self._handle is not None:
            self._release()
        return self._outcome(kind, error=str(error))

    def _teardown(self) -> None:
        """Leave, wait for every session to finish, then release."""
        d = self.descriptor
        try:
            self._handle.leave_conference()
        except Exception:
            logger.exception("Exception hanging up participant %d", d.index)

        # No release until every session has finished its run phase.
        self._ctx.barrier.arrive_and_await_advance()
        self._release()

    def _release(self) -> None:
        try:
            self._handle.release()
        except Exception:
            logger.exception("Exception closing participant %d", self.descriptor.index)

    def _outcome(
        self,
        kind: OutcomeKind,
        error: str | None = None,
        disconnects: int = 0,
        ticks: int = 0,
    ) -> SessionOutcome:
        d = self.descriptor
        return SessionOutcome(
            index=d.index,
            identity=d.identity,
            kind=kind,
            failure_tolerance=d.failure_tolerance,
            backend_node=d.backend_node,
            error=error,
            disconnects=disconnects,
            ticks=ticks,
            duration_s=time.monotonic() - self._started_at,
        )
