"""
Runtime utilities for the Malleus engine.

Provides:
- Run ID generation and the run-scoped context shared by sessions
- Teardown barrier and count-down latch primitives
"""

from malleus_engine.runtime.run_context import RunContext, generate_run_id
from malleus_engine.runtime.sync import CountDownLatch, TeardownBarrier

__all__ = [
    # Run context
    "RunContext",
    "generate_run_id",
    # Synchronization
    "CountDownLatch",
    "TeardownBarrier",
]
