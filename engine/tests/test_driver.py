"""
Tests for the session driver lifecycle.
"""

from concurrent.futures import ThreadPoolExecutor

from malleus_engine.domain import OutcomeKind
from malleus_engine.orchestration import SessionDriver
from malleus_engine.sessions import SessionScript, SimulatedSessionProvider


def _drivers(config, context, provider) -> list[SessionDriver]:
    return [SessionDriver(d, config, context, provider) for d in config.build_descriptors()]


class TestSingleSession:
    """One driver with the grant gate already open."""

    def test_happy_path(self, make_config, make_context, provider) -> None:
        config = make_config(participants=1)
        ctx = make_context(config)
        ctx.open_grants()
        (driver,) = _drivers(config, ctx, provider)

        outcome = driver.run()

        assert outcome.kind is OutcomeKind.COMPLETED
        assert outcome.ok
        assert outcome.identity == "web.participant1"
        assert outcome.backend_node == "bridge-a"
        assert outcome.failure_tolerance == 0
        assert outcome.ticks >= 1
        assert ctx.reported_nodes() == ["bridge-a"]
        assert ctx.node_reports.count == 0

        events = provider.events_for("web.participant1")
        assert events[:3] == ["create", "join", "node"]
        assert events[-2:] == ["leave", "release"]
        assert ctx.barrier.phase == 1

    def test_registers_on_construction(self, make_config, make_context, provider) -> None:
        config = make_config(participants=3)
        ctx = make_context(config)

        _drivers(config, ctx, provider)

        assert ctx.barrier.registered_parties == 3

    def test_room_url_fragments(self, make_config, make_context, provider) -> None:
        config = make_config(participants=2, senders=1, audio_senders=0, regions=("eu-west-1",))
        ctx = make_context(config)
        sender, receiver = _drivers(config, ctx, provider)

        assert "startWithVideoMuted" not in sender.room_url
        assert sender.room_url.endswith('config.startWithAudioMuted=true&config.deploymentInfo.userRegion="eu-west-1"')
        assert "config.startWithVideoMuted=true&config.startWithAudioMuted=true" in receiver.room_url

    def test_leave_error_still_releases(self, make_config, make_context, cluster) -> None:
        provider = SimulatedSessionProvider(cluster, {"web.participant1": SessionScript(leave_error="boom")})
        config = make_config(participants=1)
        ctx = make_context(config)
        ctx.open_grants()
        (driver,) = _drivers(config, ctx, provider)

        outcome = driver.run()

        assert outcome.kind is OutcomeKind.COMPLETED
        assert provider.events_for("web.participant1")[-1] == "release"

    def test_release_error_is_not_fatal(self, make_config, make_context, cluster) -> None:
        provider = SimulatedSessionProvider(cluster, {"web.participant1": SessionScript(release_error="gone")})
        config = make_config(participants=1)
        ctx = make_context(config)
        ctx.open_grants()
        (driver,) = _drivers(config, ctx, provider)

        assert driver.run().kind is OutcomeKind.COMPLETED


class TestEarlyFailures:
    """Join and node-query failures."""

    def test_join_failure(self, make_config, make_context, cluster) -> None:
        provider = SimulatedSessionProvider(cluster, {"web.participant1": SessionScript(join_error="room full")})
        config = make_config(participants=1)
        ctx = make_context(config)
        (driver,) = _drivers(config, ctx, provider)

        outcome = driver.run()

        assert outcome.kind is OutcomeKind.JOIN_FAILED
        assert outcome.error == "room full"
        assert outcome.backend_node is None
        assert ctx.barrier.registered_parties == 0
        assert ctx.node_reports.count == 0
        assert ctx.reported_nodes() == []
        assert provider.events_for("web.participant1") == ["create", "join", "release"]

    def test_create_failure_has_nothing_to_release(self, make_config, make_context, cluster) -> None:
        provider = SimulatedSessionProvider(cluster, {"web.participant1": SessionScript(create_error="no browser")})
        config = make_config(participants=1)
        ctx = make_context(config)
        (driver,) = _drivers(config, ctx, provider)

        outcome = driver.run()

        assert outcome.kind is OutcomeKind.JOIN_FAILED
        assert provider.events_for("web.participant1") == ["create"]
        assert ctx.node_reports.count == 0

    def test_node_query_failure(self, make_config, make_context, cluster) -> None:
        provider = SimulatedSessionProvider(
            cluster, {"web.participant1": SessionScript(node_query_error="stats unavailable")}
        )
        config = make_config(participants=1)
        ctx = make_context(config)
        (driver,) = _drivers(config, ctx, provider)

        outcome = driver.run()

        assert outcome.kind is OutcomeKind.NODE_QUERY_FAILED
        assert provider.events_for("web.participant1")[-1] == "release"
        assert "leave" not in provider.events_for("web.participant1")
        assert ctx.barrier.registered_parties == 0


class TestTeardownOrdering:
    """Nobody releases before everybody has finished."""

    def test_release_after_all_leaves(self, make_config, make_context, cluster) -> None:
        provider = SimulatedSessionProvider(
            cluster, {"web.participant3": SessionScript(join_delay_s=0.1)}
        )
        config = make_config(participants=3)
        ctx = make_context(config)
        ctx.open_grants()
        drivers = _drivers(config, ctx, provider)

        with ThreadPoolExecutor(max_workers=3) as pool:
            outcomes = list(pool.map(lambda d: d.run(), drivers))

        assert all(o.kind is OutcomeKind.COMPLETED for o in outcomes)
        names = provider.event_names()
        last_leave = max(i for i, e in enumerate(names) if e == "leave")
        first_release = min(i for i, e in enumerate(names) if e == "release")
        assert last_leave < first_release

    def test_failed_join_does_not_block_teardown(self, make_config, make_context, cluster) -> None:
        provider = SimulatedSessionProvider(
            cluster, {"web.participant2": SessionScript(join_error="rejected", join_delay_s=0.05)}
        )
        config = make_config(participants=2)
        ctx = make_context(config)
        ctx.open_grants()
        drivers = _drivers(config, ctx, provider)

        with ThreadPoolExecutor(max_workers=2) as pool:
            outcomes = list(pool.map(lambda d: d.run(), drivers))

        assert [o.kind for o in outcomes] == [OutcomeKind.COMPLETED, OutcomeKind.JOIN_FAILED]
        assert provider.events_for("web.participant1")[-1] == "release"
        # Survivor alone advanced the phase once after the failed party deregistered
        assert ctx.barrier.phase == 1
        assert ctx.barrier.registered_parties == 1
