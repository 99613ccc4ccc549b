"""
Session provider implementations.

Real browser-backed providers live outside this package and are loaded
through ``--provider module:factory``; the simulated provider ships here.
"""

from malleus_engine.sessions.simulated import (
    SessionScript,
    SimulatedBridgeCluster,
    SimulatedSessionHandle,
    SimulatedSessionProvider,
)

__all__ = [
    "SessionScript",
    "SimulatedBridgeCluster",
    "SimulatedSessionHandle",
    "SimulatedSessionProvider",
]
