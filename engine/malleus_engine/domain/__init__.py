"""
Domain models for the Malleus engine.

Plain data describing sessions, runs, and their outcomes.
"""

from malleus_engine.domain.run import (
    DisruptionOutcome,
    FailureReason,
    RunConfiguration,
    RunVerdict,
)
from malleus_engine.domain.session import (
    ConnectivityState,
    OutcomeKind,
    SessionDescriptor,
    SessionOptions,
    SessionOutcome,
    SessionRole,
)

__all__ = [
    # Session
    "ConnectivityState",
    "OutcomeKind",
    "SessionDescriptor",
    "SessionOptions",
    "SessionOutcome",
    "SessionRole",
    # Run
    "DisruptionOutcome",
    "FailureReason",
    "RunConfiguration",
    "RunVerdict",
]
