"""
Interface definitions for the Malleus engine.

These abstract base classes define the contracts with the external
collaborators: synthetic session providers and bridge fault injectors.
"""

from malleus_engine.interfaces.fault_injector import FaultInjector
from malleus_engine.interfaces.session_provider import SessionHandle, SessionProvider

__all__ = [
    "FaultInjector",
    "SessionHandle",
    "SessionProvider",
]
