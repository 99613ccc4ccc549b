"""
Chaos testing configuration and shared fixtures.

Runs here are real (threads and wall-clock waits), so durations are kept
short while leaving enough ticks for a disruption to be observed.
"""

from collections.abc import Callable

import pytest

from malleus_engine.domain import RunConfiguration
from malleus_engine.sessions import SimulatedBridgeCluster, SimulatedSessionProvider
from tests.chaos.fixtures.bridge_chaos import split_scripts


@pytest.fixture
def chaos_config(make_config) -> Callable[..., RunConfiguration]:
    """Run configuration long enough for a mid-run disruption."""

    def _make(**overrides) -> RunConfiguration:
        values = {"duration_ms": 500, "health_check_interval_ms": 20}
        values.update(overrides)
        return make_config(**values)

    return _make


@pytest.fixture
def split_provider(cluster: SimulatedBridgeCluster) -> Callable[..., SimulatedSessionProvider]:
    """Provider with participants 1-2 on bridge A and 3-4 on bridge B."""

    def _make(**overrides: dict) -> SimulatedSessionProvider:
        return SimulatedSessionProvider(cluster, split_scripts(overrides))

    return _make
