"""
Run-level domain models.

Defines the per-conference run configuration, the disruption outcome and
the final verdict aggregated over all sessions.
"""

import math
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from malleus_engine.domain.session import SessionDescriptor, SessionOutcome
from malleus_engine.rooms import RoomUrl


class FailureReason(str, Enum):
    """Reason class reported for a failed run."""

    INJECTION_FAILED = "injection_failed"
    JOIN_FAILED = "join_failed"
    NODE_QUERY_FAILED = "node_query_failed"
    TOLERANCE_EXHAUSTED = "tolerance_exhausted"
    INTERRUPTED = "interrupted"


# Tie-break order when two session failure kinds are equally frequent.
_REASON_PRECEDENCE = (
    FailureReason.JOIN_FAILED,
    FailureReason.NODE_QUERY_FAILED,
    FailureReason.TOLERANCE_EXHAUSTED,
    FailureReason.INTERRUPTED,
)


class RunConfiguration(BaseModel):
    """Immutable configuration of one conference run."""

    model_config = ConfigDict(frozen=True)

    room: RoomUrl
    participants: int = Field(ge=1, description="Number of participants")
    senders: int = Field(ge=0, description="Participants sending video")
    audio_senders: int = Field(ge=0, description="Participants sending audio")
    duration_ms: int = Field(ge=0, description="Run duration in milliseconds")
    regions: tuple[str, ...] | None = Field(default=None, description="Round-robin regions")
    enable_p2p: bool = True
    max_disrupted_pct: float = Field(default=0.0, ge=0, le=100)
    use_node_types: bool = False
    use_load_test: bool = False
    health_check_interval_ms: int = Field(default=5000, gt=0)
    reconnect_timeout_s: float = Field(default=20.0, gt=0)

    @model_validator(mode="after")
    def check_regions(self) -> "RunConfiguration":
        if self.regions is not None and len(self.regions) == 0:
            raise ValueError("regions must be None or non-empty")
        return self

    @property
    def room_name(self) -> str:
        return self.room.room_name

    @property
    def duration_s(self) -> int:
        """Run duration in whole seconds, rounded up."""
        return math.ceil(self.duration_ms / 1000)

    def build_descriptors(self) -> list[SessionDescriptor]:
        """
        Build one descriptor per participant slot.

        Indices at or past the sender count start video-muted, indices at or
        past the audio-sender count start audio-muted, and regions are
        assigned round-robin.
        """
        descriptors = []
        for i in range(self.participants):
            mute_video = i >= self.senders
            mute_audio = i >= self.audio_senders
            region = self.regions[i % len(self.regions)] if self.regions else None
            descriptors.append(
                SessionDescriptor(
                    index=i,
                    room=self.room,
                    mute_video=mute_video,
                    mute_audio=mute_audio,
                    region=region,
                )
            )
        return descriptors


@dataclass
class DisruptionOutcome:
    """Result of the bridge disruption coordinator."""

    attempted: bool = False
    success: bool = True
    reported_nodes: list[str] = field(default_factory=list)
    disrupted_nodes: list[str] = field(default_factory=list)
    affected_sessions: list[int] = field(default_factory=list)
    duration_s: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempted": self.attempted,
            "success": self.success,
            "reported_nodes": self.reported_nodes,
            "disrupted_nodes": self.disrupted_nodes,
            "affected_sessions": self.affected_sessions,
            "duration_s": self.duration_s,
            "error": self.error,
        }


@dataclass
class RunVerdict:
    """
    Pass/fail verdict of one conference run.

    Early join/query failures are counted separately and never folded into
    ``min_tolerance``, which only covers sessions that reached monitoring.
    """

    run_id: str
    room_name: str
    success: bool
    reason: FailureReason | None = None
    reason_counts: dict[str, int] = field(default_factory=dict)
    min_tolerance: int | None = None
    sessions: list[SessionOutcome] = field(default_factory=list)
    disruption: DisruptionOutcome = field(default_factory=DisruptionOutcome)
    duration_s: float = 0.0

    @classmethod
    def from_outcomes(
        cls,
        run_id: str,
        room_name: str,
        sessions: list[SessionOutcome],
        disruption: DisruptionOutcome,
        duration_s: float = 0.0,
    ) -> "RunVerdict":
        """Aggregate session and disruption outcomes into a verdict."""
        monitored = [s for s in sessions if not s.kind.is_early_failure]
        min_tolerance = min((s.failure_tolerance for s in monitored), default=None)

        counts: Counter[FailureReason] = Counter()
        for s in sessions:
            if s.kind.is_failure:
                counts[FailureReason(s.kind.value)] += 1
        if not disruption.success:
            counts[FailureReason.INJECTION_FAILED] += 1

        reason = cls._dominant_reason(counts, disruption)
        success = reason is None and (min_tolerance is None or min_tolerance >= 0)

        return cls(
            run_id=run_id,
            room_name=room_name,
            success=success,
            reason=reason,
            reason_counts={r.value: n for r, n in counts.items()},
            min_tolerance=min_tolerance,
            sessions=sessions,
            disruption=disruption,
            duration_s=duration_s,
        )

    @staticmethod
    def _dominant_reason(
        counts: Counter[FailureReason],
        disruption: DisruptionOutcome,
    ) -> FailureReason | None:
        if not disruption.success:
            return FailureReason.INJECTION_FAILED
        session_counts = [(r, counts[r]) for r in _REASON_PRECEDENCE if counts[r] > 0]
        if not session_counts:
            return None
        # max() keeps the first of equal counts, so precedence breaks ties
        return max(session_counts, key=lambda rc: rc[1])[0]

    @property
    def failed_sessions(self) -> list[SessionOutcome]:
        return [s for s in self.sessions if not s.ok]

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "room_name": self.room_name,
            "success": self.success,
            "reason": self.reason.value if self.reason else None,
            "reason_counts": self.reason_counts,
            "min_tolerance": self.min_tolerance,
            "duration_s": round(self.duration_s, 3),
            "disruption": self.disruption.to_dict(),
            "sessions": [s.to_dict() for s in self.sessions],
        }

    def summary_row(self) -> dict[str, Any]:
        """Flat row for tabular verdict reports."""
        return {
            "run_id": self.run_id,
            "room_name": self.room_name,
            "success": self.success,
            "reason": self.reason.value if self.reason else "",
            "min_tolerance": self.min_tolerance,
            "sessions": len(self.sessions),
            "failed_sessions": len(self.failed_sessions),
            "disrupted_nodes": ",".join(self.disruption.disrupted_nodes),
            "duration_s": round(self.duration_s, 3),
        }
