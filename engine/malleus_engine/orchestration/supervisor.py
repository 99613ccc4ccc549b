"""
Run supervisor.

Runs one conference: one worker thread per participant plus one for the
bridge disruption coordinator, then aggregates everything into a verdict.
"""

import time
from concurrent.futures import Future, ThreadPoolExecutor

from malleus_engine.domain import (
    DisruptionOutcome,
    OutcomeKind,
    RunConfiguration,
    RunVerdict,
    SessionOutcome,
)
from malleus_engine.interfaces import FaultInjector, SessionProvider
from malleus_engine.logging import get_logger
from malleus_engine.orchestration.disruption import BridgeDisruptionCoordinator
from malleus_engine.orchestration.driver import SessionDriver
from malleus_engine.orchestration.load_test import LoadTestParticipant
from malleus_engine.runtime.run_context import RunContext

logger = get_logger(__name__)


class RunSupervisor:
    """
    Supervises a single conference run.

    Usage:
        supervisor = RunSupervisor(provider, injector)
        verdict = supervisor.run_once(config)
    """

    def __init__(self, provider: SessionProvider, injector: FaultInjector):
        self._provider = provider
        self._injector = injector
        self._context: RunContext | None = None

    @property
    def context(self) -> RunContext | None:
        """Context of the run in progress (or the last run)."""
        return self._context

    def abort(self) -> None:
        """Interrupt the run in progress. Sessions still tear down normally."""
        if self._context is not None:
            self._context.abort()

    def run_once(self, config: RunConfiguration, context: RunContext | None = None) -> RunVerdict:
        """
        Run one conference and return its verdict.

        Args:
            config: Conference run configuration
            context: Optional pre-built run context (a fresh one by default)
        """
        ctx = context or RunContext.create(config)
        self._context = ctx
        started = time.monotonic()

        logger.info(
            "Starting run %s: room=%s participants=%d senders=%d audio_senders=%d "
            "duration=%dms max_disrupted_pct=%.1f load_test=%s",
            ctx.run_id,
            config.room_name,
            config.participants,
            config.senders,
            config.audio_senders,
            config.duration_ms,
            config.max_disrupted_pct,
            config.use_load_test,
        )

        descriptors = config.build_descriptors()

        if config.use_load_test:
            workers = [LoadTestParticipant(d, config, ctx, self._provider) for d in descriptors]
            disruption = DisruptionOutcome()
            with ThreadPoolExecutor(
                max_workers=len(workers), thread_name_prefix=f"{config.room_name}-lt"
            ) as pool:
                futures = [pool.submit(w.run) for w in workers]
                outcomes = [self._collect(f, d.index, d.identity) for f, d in zip(futures, descriptors)]
        else:
            # Every driver registers with the barrier here, before any starts.
            drivers = [SessionDriver(d, config, ctx, self._provider) for d in descriptors]
            coordinator = BridgeDisruptionCoordinator(ctx, self._injector)
            with ThreadPoolExecutor(
                max_workers=len(drivers) + 1, thread_name_prefix=config.room_name
            ) as pool:
                futures = [pool.submit(drv.run) for drv in drivers]
                coord_future = pool.submit(
                    coordinator.disrupt, descriptors, config.max_disrupted_pct, config.duration_s
                )
                disruption = self._collect_disruption(coord_future)
                outcomes = [self._collect(f, d.index, d.identity) for f, d in zip(futures, descriptors)]

        verdict = RunVerdict.from_outcomes(
            run_id=ctx.run_id,
            room_name=config.room_name,
            sessions=outcomes,
            disruption=disruption,
            duration_s=time.monotonic() - started,
        )
        ctx.mark_completed(error=verdict.reason.value if verdict.reason else None)

        if verdict.success:
            logger.info(
                "Run %s PASSED (min tolerance=%s, %.1fs)",
                ctx.run_id,
                verdict.min_tolerance,
                verdict.duration_s,
            )
        else:
            logger.error(
                "Run %s FAILED: %s (counts=%s, min tolerance=%s)",
                ctx.run_id,
                verdict.reason.value if verdict.reason else "negative tolerance",
                verdict.reason_counts,
                verdict.min_tolerance,
            )
        return verdict

    @staticmethod
    def _collect(future: Future, index: int, identity: str) -> SessionOutcome:
        try:
            return future.result()
        except Exception as e:
            logger.exception("Session worker %d crashed", index)
            return SessionOutcome(
                index=index,
                identity=identity,
                kind=OutcomeKind.INTERRUPTED,
                error=f"{type(e).__name__}: {e}",
            )

    @staticmethod
    def _collect_disruption(future: Future) -> DisruptionOutcome:
        try:
            return future.result()
        except Exception as e:
            logger.exception("Bridge disruption coordinator crashed")
            return DisruptionOutcome(attempted=True, success=False, error=f"{type(e).__name__}: {e}")
