"""
Pytest configuration and shared fixtures.
"""

import os
from collections.abc import Callable, Generator

import pytest

from malleus_engine.config import get_settings
from malleus_engine.domain import RunConfiguration
from malleus_engine.faults import SimulatedFaultInjector
from malleus_engine.rooms import conference_room
from malleus_engine.runtime import RunContext
from malleus_engine.sessions import SimulatedBridgeCluster, SimulatedSessionProvider


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure no local MALLEUS_* settings leak into tests."""
    for var in list(os.environ):
        if var.upper().startswith("MALLEUS_"):
            monkeypatch.delenv(var, raising=False)
    # Keep a developer's .env out of Settings()
    monkeypatch.chdir(os.path.dirname(__file__))


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Reset the cached settings singleton between tests."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def make_config() -> Callable[..., RunConfiguration]:
    """
    Factory for short run configurations.

    Defaults give a few ticks per session (10ms interval over 30ms).
    """

    def _make(**overrides) -> RunConfiguration:
        participants = overrides.pop("participants", 3)
        values = {
            "room": conference_room("https://meet.test", overrides.pop("room_name", "anvil-0"), True),
            "participants": participants,
            "senders": participants,
            "audio_senders": participants,
            "duration_ms": 30,
            "health_check_interval_ms": 10,
            "reconnect_timeout_s": 0.01,
        }
        values.update(overrides)
        return RunConfiguration(**values)

    return _make


@pytest.fixture
def cluster() -> SimulatedBridgeCluster:
    """Two simulated bridges."""
    return SimulatedBridgeCluster(("bridge-a", "bridge-b"))


@pytest.fixture
def provider(cluster: SimulatedBridgeCluster) -> SimulatedSessionProvider:
    return SimulatedSessionProvider(cluster)


@pytest.fixture
def injector(cluster: SimulatedBridgeCluster) -> SimulatedFaultInjector:
    return SimulatedFaultInjector(cluster)


@pytest.fixture
def make_context(make_config) -> Callable[..., RunContext]:
    def _make(config: RunConfiguration | None = None, **overrides) -> RunContext:
        return RunContext.create(config or make_config(**overrides))

    return _make
