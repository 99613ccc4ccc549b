"""
Tests for the per-session health monitor.

Uses a fake clock: each wait advances time by exactly the requested sleep,
so tick counts are deterministic.
"""

import pytest

from malleus_engine.domain import ConnectivityState, SessionDescriptor
from malleus_engine.interfaces import SessionHandle
from malleus_engine.orchestration.health import HealthMonitor, MonitorStatus
from malleus_engine.rooms import RoomUrl
from malleus_engine.sessions import SessionScript, SimulatedSessionProvider

UP = ConnectivityState.CONNECTED
DOWN = ConnectivityState.DISCONNECTED


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []
        self.abort_after: int | None = None

    def __call__(self) -> float:
        return self.now

    def wait(self, seconds: float) -> bool:
        if self.abort_after is not None and len(self.sleeps) >= self.abort_after:
            return True
        self.sleeps.append(seconds)
        self.now += seconds
        return False


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def _monitor(
    clock: FakeClock,
    script: SessionScript,
    duration_ms: float = 30000,
    interval_ms: float = 5000,
    tolerance: int = 0,
) -> tuple[HealthMonitor, SessionDescriptor, SimulatedSessionProvider]:
    descriptor = SessionDescriptor(index=0, room=RoomUrl(server_url="https://meet.test", room_name="r"))
    if tolerance:
        descriptor.grant_tolerance(tolerance)
    provider = SimulatedSessionProvider(scripts={descriptor.identity: script})
    handle = provider.create(descriptor.identity, descriptor.options())
    handle.join(descriptor.room.to_url())
    monitor = HealthMonitor(
        handle=handle,
        descriptor=descriptor,
        duration_ms=duration_ms,
        interval_ms=interval_ms,
        reconnect_timeout_s=20,
        wait=clock.wait,
        clock=clock,
    )
    return monitor, descriptor, provider


class TestTicks:
    """Tick accounting."""

    def test_ticks_over_full_duration(self, clock: FakeClock) -> None:
        monitor, descriptor, _ = _monitor(clock, SessionScript())

        report = monitor.run()

        assert report.status is MonitorStatus.COMPLETED
        assert report.ticks == 6
        assert report.disconnects == 0
        assert descriptor.failure_tolerance == 0

    def test_last_sleep_is_truncated(self, clock: FakeClock) -> None:
        monitor, _, _ = _monitor(clock, SessionScript(), duration_ms=12000)

        report = monitor.run()

        assert report.ticks == 3
        assert clock.sleeps == [5.0, 5.0, 2.0]

    def test_zero_duration_never_polls(self, clock: FakeClock) -> None:
        monitor, _, provider = _monitor(clock, SessionScript(), duration_ms=0)

        report = monitor.run()

        assert report.ticks == 0
        assert "poll" not in provider.event_names()

    def test_interrupted(self, clock: FakeClock) -> None:
        clock.abort_after = 2
        monitor, _, _ = _monitor(clock, SessionScript())

        report = monitor.run()

        assert report.status is MonitorStatus.INTERRUPTED
        assert report.ticks == 2


class TestTolerance:
    """Spending the failure tolerance on lost polls."""

    def test_disconnect_within_tolerance(self, clock: FakeClock) -> None:
        monitor, descriptor, provider = _monitor(
            clock, SessionScript(connectivity=[UP, DOWN]), tolerance=1
        )

        report = monitor.run()

        assert report.status is MonitorStatus.COMPLETED
        assert report.disconnects == 1
        assert descriptor.failure_tolerance == 0
        assert provider.event_names().count("reconnect") == 1

    def test_disconnect_beyond_tolerance(self, clock: FakeClock) -> None:
        monitor, descriptor, provider = _monitor(clock, SessionScript(connectivity=[UP, DOWN, DOWN]), tolerance=1)

        report = monitor.run()

        assert report.status is MonitorStatus.TOLERANCE_EXHAUSTED
        assert report.ticks == 3
        assert report.disconnects == 2
        assert descriptor.failure_tolerance == -1
        assert report.error is not None

    def test_ungranted_session_fails_first_disconnect(self, clock: FakeClock) -> None:
        monitor, descriptor, provider = _monitor(clock, SessionScript(connectivity=[DOWN]))

        report = monitor.run()

        assert report.status is MonitorStatus.TOLERANCE_EXHAUSTED
        assert report.ticks == 1
        assert descriptor.failure_tolerance == -1
        assert "reconnect" not in provider.event_names()

    def test_reconnect_timeout_spends_more_tolerance(self, clock: FakeClock) -> None:
        monitor, descriptor, provider = _monitor(
            clock, SessionScript(connectivity=[DOWN], reconnects=False), tolerance=1
        )

        report = monitor.run()

        assert report.status is MonitorStatus.TOLERANCE_EXHAUSTED
        assert report.disconnects == 2
        assert descriptor.failure_tolerance == -1
        assert provider.event_names().count("reconnect") == 1


class SlowReconnectHandle(SessionHandle):
    """Handle whose reconnect wait takes 10s of fake time."""

    def __init__(self, clock: FakeClock, connectivity: list[ConnectivityState]) -> None:
        self._clock = clock
        self._connectivity = list(connectivity)

    @property
    def name(self) -> str:
        return "web.participant0"

    def join(self, room_url: str) -> None:
        pass

    def poll_connectivity(self, timeout_s: float = 0) -> ConnectivityState:
        if timeout_s > 0:
            self._clock.now += 10
            return UP
        return self._connectivity.pop(0) if self._connectivity else UP

    def current_backend_node(self) -> str:
        return "bridge-a"

    def leave_conference(self) -> None:
        pass

    def release(self) -> None:
        pass

    def open_page(self, url: str) -> None:
        pass


class TestMeasuredTime:
    """Remaining duration shrinks by measured tick time."""

    def test_slow_reconnect_counts_against_duration(self, clock: FakeClock) -> None:
        descriptor = SessionDescriptor(index=0, room=RoomUrl(server_url="https://meet.test", room_name="r"))
        descriptor.grant_tolerance(5)
        monitor = HealthMonitor(
            handle=SlowReconnectHandle(clock, [DOWN]),
            descriptor=descriptor,
            duration_ms=30000,
            interval_ms=5000,
            reconnect_timeout_s=20,
            wait=clock.wait,
            clock=clock,
        )

        report = monitor.run()

        # 5s + 10s reconnect, then three 5s ticks
        assert report.status is MonitorStatus.COMPLETED
        assert report.ticks == 4
        assert report.disconnects == 1
        assert clock.now == 30.0
        assert report.elapsed_ms == 30000
