"""
Conference matrix runner.

Features:
- Expands settings into one run configuration per conference
- Runs every conference concurrently (one supervisor thread each)
- Progress reporting through an optional callback
- Atomic JSON artefacts plus a CSV verdict table per matrix run

The per-conference engine lives in ``malleus_engine.orchestration``.
"""

import importlib
import json
import os
import sys
import tempfile
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pandas as pd
from pydantic import ValidationError

from malleus_engine.config import Settings
from malleus_engine.domain import DisruptionOutcome, FailureReason, RunConfiguration, RunVerdict
from malleus_engine.errors import ConfigurationError
from malleus_engine.interfaces import FaultInjector, SessionProvider
from malleus_engine.logging import bind_run, get_logger, redact_sensitive, setup_logging
from malleus_engine.orchestration import RunSupervisor
from malleus_engine.rooms import conference_room
from malleus_engine.runtime.run_context import RunContext, generate_run_id

logger = get_logger(__name__)


def build_conference_plan(settings: Settings) -> list[RunConfiguration]:
    """One run configuration per conference, rooms named ``<prefix><i>``."""
    regions = settings.region_list
    plan = []
    for i in range(settings.conferences):
        plan.append(
            RunConfiguration(
                room=conference_room(
                    settings.base_url,
                    f"{settings.room_name_prefix}{i}",
                    settings.enable_p2p,
                ),
                participants=settings.participants,
                senders=settings.senders,
                audio_senders=settings.audio_senders,
                duration_ms=settings.duration_ms,
                regions=tuple(regions) if regions else None,
                enable_p2p=settings.enable_p2p,
                max_disrupted_pct=settings.max_disrupted_bridges_pct,
                use_node_types=settings.use_node_types,
                use_load_test=settings.use_load_test,
                health_check_interval_ms=settings.health_check_interval_ms,
                reconnect_timeout_s=settings.reconnect_timeout_s,
            )
        )
    return plan


def atomic_write_json(path: Path, data: dict) -> None:
    """Write JSON atomically using temp file + rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "w") as f:
            json.dump(data, f, indent=2, default=str)
        os.replace(tmp_path, path)
    except Exception:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


@dataclass
class MatrixResult:
    """Aggregate result over every conference in a matrix run."""

    matrix_id: str
    verdicts: list[RunVerdict] = field(default_factory=list)
    duration_s: float = 0.0
    matrix_dir: Path | None = None

    @property
    def ok(self) -> bool:
        return bool(self.verdicts) and all(v.success for v in self.verdicts)

    @property
    def passed(self) -> int:
        return sum(1 for v in self.verdicts if v.success)

    @property
    def failed(self) -> int:
        return len(self.verdicts) - self.passed

    def to_dict(self) -> dict[str, Any]:
        return {
            "matrix_id": self.matrix_id,
            "ok": self.ok,
            "conferences": len(self.verdicts),
            "passed": self.passed,
            "failed": self.failed,
            "duration_s": round(self.duration_s, 3),
            "failure_reasons": {
                v.room_name: v.reason.value for v in self.verdicts if v.reason is not None
            },
        }


class MatrixRunner:
    """
    Runs a conference plan with one supervisor per conference.

    Usage:
        runner = MatrixRunner(provider_factory, injector, data_dir=Path("./data"))
        result = runner.run(build_conference_plan(settings))
    """

    def __init__(
        self,
        provider_factory: Callable[[], SessionProvider],
        injector: FaultInjector,
        data_dir: Path | None = None,
        progress_callback: Callable[[dict], None] | None = None,
    ):
        """
        Initialize matrix runner.

        Args:
            provider_factory: Builds a session provider per conference
            injector: Fault injector shared by all conferences
            data_dir: Root directory for artefacts (None: write nothing)
            progress_callback: Optional callback for progress events
        """
        self._provider_factory = provider_factory
        self._injector = injector
        self.data_dir = Path(data_dir) if data_dir is not None else None
        self.progress_callback = progress_callback
        self._contexts: list[RunContext] = []

    def abort(self) -> None:
        """Interrupt every conference in progress."""
        for ctx in self._contexts:
            ctx.abort()

    def run(
        self,
        plan: list[RunConfiguration],
        config_snapshot: dict[str, Any] | None = None,
    ) -> MatrixResult:
        """Run every conference in ``plan`` concurrently."""
        matrix_id = generate_run_id("matrix")
        bind_run(matrix_id)
        started = time.monotonic()
        result = MatrixResult(matrix_id=matrix_id)

        if not plan:
            logger.warning("Empty conference plan, nothing to run")
            return result

        self._emit_progress({
            "type": "matrix_started",
            "matrix_id": matrix_id,
            "conferences": len(plan),
            "participants": sum(c.participants for c in plan),
        })
        logger.info("Starting matrix %s: %d conferences", matrix_id, len(plan))

        self._contexts = [RunContext.create(config) for config in plan]

        with ThreadPoolExecutor(max_workers=len(plan), thread_name_prefix="conference") as executor:
            future_to_config = {
                executor.submit(self._run_conference, config, ctx): config
                for config, ctx in zip(plan, self._contexts)
            }

            try:
                for future in as_completed(future_to_config):
                    self._record(result, future, future_to_config[future], len(plan))
            except KeyboardInterrupt:
                logger.warning("Interrupted, aborting %d conferences", len(plan))
                self.abort()
                raise

        result.verdicts.sort(key=lambda v: v.room_name)
        result.duration_s = time.monotonic() - started

        if self.data_dir is not None:
            result.matrix_dir = self._write_results(result, config_snapshot or {})

        self._emit_progress({
            "type": "matrix_completed",
            "matrix_id": matrix_id,
            "ok": result.ok,
            "passed": result.passed,
            "failed": result.failed,
            "duration_s": round(result.duration_s, 1),
        })
        logger.info(
            "Matrix %s completed: %d/%d conferences passed in %.1fs",
            matrix_id,
            result.passed,
            len(result.verdicts),
            result.duration_s,
        )
        return result

    def _run_conference(self, config: RunConfiguration, ctx: RunContext) -> RunVerdict:
        bind_run(ctx.run_id, config.room_name)
        return RunSupervisor(self._provider_factory(), self._injector).run_once(config, ctx)

    def _record(self, result: MatrixResult, future: Future, config: RunConfiguration, total: int) -> None:
        """Append one conference verdict and report progress."""
        try:
            verdict = future.result()
        except Exception as e:
            logger.exception("Conference %s crashed", config.room_name)
            verdict = RunVerdict(
                run_id="",
                room_name=config.room_name,
                success=False,
                reason=FailureReason.INTERRUPTED,
                disruption=DisruptionOutcome(error=f"{type(e).__name__}: {e}"),
            )
        result.verdicts.append(verdict)

        self._emit_progress({
            "type": "conference_completed",
            "matrix_id": result.matrix_id,
            "room_name": verdict.room_name,
            "success": verdict.success,
            "reason": verdict.reason.value if verdict.reason else None,
            "completed": len(result.verdicts),
            "total": total,
        })

    def _write_results(self, result: MatrixResult, config_snapshot: dict[str, Any]) -> Path:
        """Write manifest, per-conference verdicts and the CSV table."""
        matrix_dir = self.data_dir / "runs" / result.matrix_id
        matrix_dir.mkdir(parents=True, exist_ok=True)

        atomic_write_json(matrix_dir / "manifest.json", {
            "matrix_id": result.matrix_id,
            "created_at": datetime.now(UTC).isoformat(),
            "config": redact_sensitive(config_snapshot),
        })
        atomic_write_json(matrix_dir / "summary.json", {
            **result.to_dict(),
            "verdicts": [v.to_dict() for v in result.verdicts],
        })

        df = pd.DataFrame([v.summary_row() for v in result.verdicts])
        df.to_csv(matrix_dir / "verdicts.csv", index=False)
        return matrix_dir

    def _emit_progress(self, data: dict) -> None:
        """Emit progress event."""
        if self.progress_callback:
            self.progress_callback({
                "ts": datetime.now(UTC).isoformat(),
                **data,
            })


def load_provider_factory(spec: str) -> Callable[[], SessionProvider]:
    """Resolve ``module:attribute`` to a session provider factory."""
    module_name, _, attr = spec.partition(":")
    if not module_name or not attr:
        raise ConfigurationError(f"provider must be 'module:factory', got {spec!r}")
    try:
        module = importlib.import_module(module_name)
        return getattr(module, attr)
    except (ImportError, AttributeError) as e:
        raise ConfigurationError(f"cannot load provider {spec!r}: {e}") from e


def _load_settings(overrides: dict[str, Any]) -> Settings:
    try:
        return Settings(**overrides)
    except ValidationError as e:
        raise ConfigurationError(f"invalid settings:\n{e}") from e


def run_matrix_cli(argv: list[str] | None = None) -> int:
    """CLI entrypoint for a matrix run. Returns the process exit code."""
    import argparse

    from malleus_engine.faults import HttpFaultInjector, NullFaultInjector, SimulatedFaultInjector
    from malleus_engine.sessions import SimulatedBridgeCluster, SimulatedSessionProvider

    parser = argparse.ArgumentParser(
        description="Run a load/chaos test across one or more conferences",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Settings come from MALLEUS_* environment variables (or .env); flags override.

Examples:
  # Dry run against the simulator, 2 conferences x 5 participants for 30s
  python -m malleus_engine.matrix --simulate --conferences 2 --participants 5 --duration 30

  # Disrupt up to half the bridges mid-run
  python -m malleus_engine.matrix --provider mylab.browsers:make_provider --max-disrupted-pct 50
        """,
    )
    parser.add_argument("--conferences", type=int, help="Number of conferences")
    parser.add_argument("--participants", type=int, help="Participants per conference")
    parser.add_argument("--senders", type=int, help="Video senders per conference")
    parser.add_argument("--audio-senders", type=int, help="Audio senders per conference")
    parser.add_argument("--duration", type=int, help="Run duration in seconds")
    parser.add_argument("--room-name-prefix", type=str, help="Room name prefix")
    parser.add_argument("--regions", type=str, help="Comma-separated region list")
    parser.add_argument("--max-disrupted-pct", type=float, help="Max percentage of bridges to disrupt")
    parser.add_argument("--load-test", action="store_true", default=None, help="Use load-test participants")
    parser.add_argument(
        "--provider",
        type=str,
        default=None,
        help="Session provider factory as module:callable",
    )
    parser.add_argument(
        "--simulate",
        action="store_true",
        help="Use the in-process simulator instead of a real provider",
    )
    parser.add_argument(
        "--bridges",
        type=int,
        default=2,
        help="Simulated bridge count (with --simulate, default: 2)",
    )
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON log lines")
    parser.add_argument("--no-artefacts", action="store_true", help="Don't write run artefacts")

    args = parser.parse_args(argv)

    overrides = {
        "conferences": args.conferences,
        "participants": args.participants,
        "senders": args.senders,
        "audio_senders": args.audio_senders,
        "duration_s": args.duration,
        "room_name_prefix": args.room_name_prefix,
        "regions": args.regions,
        "max_disrupted_bridges_pct": args.max_disrupted_pct,
        "use_load_test": args.load_test,
    }
    try:
        settings = _load_settings({k: v for k, v in overrides.items() if v is not None})
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    setup_logging(settings.log_level, json_output=args.json_logs)
    snapshot = settings.get_redacted_config()
    logger.info("will run with: %s", snapshot)

    try:
        if args.simulate:
            cluster = SimulatedBridgeCluster(tuple(f"bridge-{i + 1}" for i in range(max(1, args.bridges))))
            provider_factory: Callable[[], SessionProvider] = lambda: SimulatedSessionProvider(cluster)
            injector: FaultInjector = SimulatedFaultInjector(cluster)
        else:
            if args.provider is None:
                raise ConfigurationError("--provider is required unless --simulate is given")
            provider_factory = load_provider_factory(args.provider)
            if settings.has_fault_injector:
                injector = HttpFaultInjector.from_settings(settings)
            else:
                injector = NullFaultInjector()
    except ConfigurationError as e:
        logger.error("%s", e)
        return 2

    runner = MatrixRunner(
        provider_factory=provider_factory,
        injector=injector,
        data_dir=None if args.no_artefacts else settings.data_dir,
    )
    try:
        result = runner.run(build_conference_plan(settings), config_snapshot=snapshot)
    except KeyboardInterrupt:
        return 130

    print(f"\n{'=' * 60}")
    print(f"MATRIX {result.matrix_id}: {'PASSED' if result.ok else 'FAILED'}")
    print(f"{'=' * 60}")
    for v in result.verdicts:
        status = "PASS" if v.success else f"FAIL ({v.reason.value if v.reason else 'negative tolerance'})"
        print(f"{v.room_name:<24} {status:<32} min_tolerance={v.min_tolerance}")
    if result.matrix_dir is not None:
        print(f"Artefacts: {result.matrix_dir}")

    return 0 if result.ok else 1


def main() -> None:
    sys.exit(run_matrix_cli())


if __name__ == "__main__":
    main()
