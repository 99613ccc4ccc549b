"""
Conference run orchestration.

Provides:
- Per-session drivers and health monitoring
- Bridge disruption coordination
- The run supervisor that ties one conference run together
"""

from malleus_engine.orchestration.disruption import (
    BridgeDisruptionCoordinator,
    disruption_set_size,
    select_disruption_set,
)
from malleus_engine.orchestration.driver import SessionDriver
from malleus_engine.orchestration.health import HealthMonitor, MonitorReport, MonitorStatus
from malleus_engine.orchestration.load_test import LoadTestParticipant
from malleus_engine.orchestration.supervisor import RunSupervisor

__all__ = [
    # Sessions
    "HealthMonitor",
    "LoadTestParticipant",
    "MonitorReport",
    "MonitorStatus",
    "SessionDriver",
    # Disruption
    "BridgeDisruptionCoordinator",
    "disruption_set_size",
    "select_disruption_set",
    # Supervisor
    "RunSupervisor",
]
