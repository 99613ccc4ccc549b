"""
Fault injector implementations.
"""

from malleus_engine.faults.http import HttpFaultInjector
from malleus_engine.faults.simulated import NullFaultInjector, SimulatedFaultInjector

__all__ = [
    "HttpFaultInjector",
    "NullFaultInjector",
    "SimulatedFaultInjector",
]
