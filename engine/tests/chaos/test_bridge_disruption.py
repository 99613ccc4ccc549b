"""
Bridge disruption scenarios, end to end against the simulator.
"""

import pytest

from malleus_engine.domain import ConnectivityState, FailureReason, OutcomeKind
from malleus_engine.faults import SimulatedFaultInjector
from malleus_engine.orchestration import RunSupervisor
from tests.chaos.fixtures.bridge_chaos import BRIDGE_A


@pytest.mark.chaos
class TestDisruptionWithinTolerance:
    """Sessions on a disrupted bridge lose connectivity once."""

    def test_half_of_bridges_disrupted__run_passes(self, chaos_config, split_provider, cluster) -> None:
        """
        SCENARIO: 4 sessions on bridges A,A,B,B; disrupt 50% of bridges
        EXPECTED: Bridge A chosen, its sessions spend their one granted disconnect, run passes
        FAILURE MODE: Unaffected sessions granted tolerance, or affected sessions fail the run
        """
        provider = split_provider()
        injector = SimulatedFaultInjector(cluster)
        config = chaos_config(participants=4, max_disrupted_pct=50)

        verdict = RunSupervisor(provider, injector).run_once(config)

        assert verdict.success is True
        assert verdict.min_tolerance == 0
        assert verdict.disruption.disrupted_nodes == [BRIDGE_A]
        assert verdict.disruption.affected_sessions == [0, 1]
        assert injector.calls == [(frozenset({BRIDGE_A}), 1)]
        assert [s.disconnects for s in verdict.sessions] == [1, 1, 0, 0]
        assert [s.failure_tolerance for s in verdict.sessions] == [0, 0, 0, 0]

    def test_all_bridges_disrupted(self, chaos_config, split_provider, cluster) -> None:
        """
        SCENARIO: Disrupt 100% of bridges
        EXPECTED: Every session granted and spent exactly one disconnect
        FAILURE MODE: Grant lands after the first poll and sessions fail
        """
        verdict = RunSupervisor(split_provider(), SimulatedFaultInjector(cluster)).run_once(
            chaos_config(participants=4, max_disrupted_pct=100)
        )

        assert verdict.success is True
        assert verdict.disruption.affected_sessions == [0, 1, 2, 3]
        assert all(s.disconnects == 1 for s in verdict.sessions)


@pytest.mark.chaos
class TestDisruptionBeyondTolerance:
    """More lost connectivity than a session was granted."""

    def test_extra_disconnect__run_fails(self, chaos_config, split_provider, cluster) -> None:
        """
        SCENARIO: Session on the disrupted bridge also drops out once by itself
        EXPECTED: Its tolerance goes to -1 and the run fails with tolerance_exhausted
        FAILURE MODE: Second disconnect forgiven
        """
        provider = split_provider(p1={"connectivity": [ConnectivityState.DISCONNECTED]})

        verdict = RunSupervisor(provider, SimulatedFaultInjector(cluster)).run_once(
            chaos_config(participants=4, max_disrupted_pct=50)
        )

        assert verdict.success is False
        assert verdict.reason is FailureReason.TOLERANCE_EXHAUSTED
        assert verdict.sessions[0].kind is OutcomeKind.TOLERANCE_EXHAUSTED
        assert verdict.sessions[0].failure_tolerance == -1
        assert verdict.min_tolerance == -1
        assert all(s.ok for s in verdict.sessions[1:])

    def test_never_reconnects__run_fails(self, chaos_config, split_provider, cluster) -> None:
        """
        SCENARIO: Session on the disrupted bridge never comes back
        EXPECTED: The expired reconnect wait spends more tolerance and fails the session
        FAILURE MODE: Session blocks forever or counts as connected
        """
        provider = split_provider(p2={"reconnects": False})

        verdict = RunSupervisor(provider, SimulatedFaultInjector(cluster)).run_once(
            chaos_config(participants=4, max_disrupted_pct=50)
        )

        assert verdict.reason is FailureReason.TOLERANCE_EXHAUSTED
        assert verdict.sessions[1].kind is OutcomeKind.TOLERANCE_EXHAUSTED
        assert verdict.sessions[1].disconnects == 2
        assert provider.events_for("web.participant2")[-2:] == ["leave", "release"]

    def test_undisrupted_session_has_no_tolerance(self, chaos_config, split_provider, cluster) -> None:
        """
        SCENARIO: Session on the healthy bridge loses connectivity once
        EXPECTED: It was never granted tolerance, so it fails
        FAILURE MODE: Grant applied to every session
        """
        provider = split_provider(p3={"connectivity": [ConnectivityState.DISCONNECTED]})

        verdict = RunSupervisor(provider, SimulatedFaultInjector(cluster)).run_once(
            chaos_config(participants=4, max_disrupted_pct=50)
        )

        assert verdict.sessions[2].kind is OutcomeKind.TOLERANCE_EXHAUSTED
        assert verdict.sessions[2].failure_tolerance == -1


@pytest.mark.chaos
class TestEarlyFailuresUnderDisruption:
    """Early session failures while a disruption is configured."""

    def test_node_query_failure__coordinator_not_blocked(self, chaos_config, split_provider, cluster) -> None:
        """
        SCENARIO: One bridge-A session cannot report its node
        EXPECTED: Coordinator still proceeds, run fails with node_query_failed
        FAILURE MODE: Coordinator waits forever for the missing report
        """
        provider = split_provider(p1={"node_query_error": "stats unavailable"})

        verdict = RunSupervisor(provider, SimulatedFaultInjector(cluster)).run_once(
            chaos_config(participants=4, max_disrupted_pct=50)
        )

        assert verdict.reason is FailureReason.NODE_QUERY_FAILED
        assert verdict.disruption.reported_nodes[0] == BRIDGE_A
        assert verdict.min_tolerance == 0

    def test_injection_failure__run_fails(self, chaos_config, split_provider) -> None:
        """
        SCENARIO: Fault injector raises
        EXPECTED: Sessions complete normally, run fails with injection_failed
        FAILURE MODE: Injector error lost and run reported as passed
        """
        verdict = RunSupervisor(split_provider(), SimulatedFaultInjector(fail_with="no route to controller")).run_once(
            chaos_config(participants=4, max_disrupted_pct=50)
        )

        assert verdict.success is False
        assert verdict.reason is FailureReason.INJECTION_FAILED
        assert verdict.disruption.error == "InjectionError: no route to controller"
        assert all(s.kind is OutcomeKind.COMPLETED for s in verdict.sessions)
