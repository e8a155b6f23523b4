"""Tests for the Chaos Engine - decision pipeline, stats and logging."""

import asyncio
import logging
import time

import pytest

from chaos_claws.brain.actions import (
    CHAOS_MARKER,
    ActionKind,
    ActionStrategy,
    CorruptionAction,
    CorruptionStrategy,
    DelayAction,
    ErrorAction,
    RequestDescriptor,
    default_registry,
)
from chaos_claws.brain.chaos_engine import ChaosEngine, ChaosEvent
from chaos_claws.brain.random_source import SeededRandom
from chaos_claws.brain.stats import Stats, StatsCollector
from chaos_claws.paws.sink import BufferedResponse
from chaos_claws.utils.config import resolve_config

ORIGINAL_BODY = {"id": 7, "name": "Whiskers", "tags": ["cat", "orange"], "age": 4}


def assert_stats_invariant(stats: Stats) -> None:
    assert stats.chaos_count == stats.delay_count + stats.error_count + stats.corruption_count
    assert stats.chaos_count <= stats.total_requests


# ─── decide() ───


class TestDecide:
    def test_default_engine(self):
        engine = ChaosEngine()
        assert engine.config.probability == 0.10
        assert engine.get_stats() == Stats()

    def test_filtered_request_makes_no_draw(self, make_engine, scripted):
        source = scripted([0.0])
        engine = make_engine(probability=1.0, disabled_routes=["/health"], random_source=source)
        decision = engine.decide(RequestDescriptor("/health"))
        assert not decision.eligible
        assert not decision.applied
        assert source.calls == 0
        assert engine.get_stats().total_requests == 1

    def test_gate_above_probability_passes_through(self, make_engine, scripted):
        engine = make_engine(probability=0.5, random_source=scripted([0.5]))
        decision = engine.decide(RequestDescriptor("/api/users"))
        assert decision.eligible
        assert not decision.applied
        assert decision.action_kind is ActionKind.NONE

    def test_gate_then_selection_draws(self, make_engine, scripted):
        source = scripted([0.1, 0.5, 0.9])
        engine = make_engine(probability=0.5, error_codes=[500, 503], random_source=source)
        decision = engine.decide(RequestDescriptor("/api/users", "DELETE"))
        assert decision.action == ErrorAction(503)
        assert source.calls == 3
        assert engine.get_stats() == Stats(total_requests=1, chaos_count=1, error_count=1)

    def test_selection_fault_turns_into_pass_through(self, scripted, caplog):
        config = resolve_config(probability=1.0)
        registry = default_registry(config)

        def broken(cfg, src):
            raise RuntimeError("strategy bug")

        for kind in (ActionKind.DELAY, ActionKind.ERROR, ActionKind.CORRUPTION):
            registry.register(ActionStrategy(kind, 1.0, broken))
        engine = ChaosEngine(config, random_source=scripted([0.0]), registry=registry)

        with caplog.at_level(logging.ERROR):
            decision = engine.decide(RequestDescriptor("/api/users"))

        assert not decision.applied
        assert "selection failed" in caplog.text
        assert engine.get_stats() == Stats(total_requests=1)

    def test_same_seed_same_decisions(self):
        config = resolve_config("extreme", enabled_routes=["/api/"], disabled_routes=["/api/health"])
        paths = ["/api/users", "/api/health", "/static/app.js", "/api/orders/9"] * 50

        def run(seed):
            engine = ChaosEngine(config, random_source=SeededRandom(seed))
            return [engine.decide(RequestDescriptor(p)) for p in paths]

        first = run(1234)
        assert first == run(1234)
        assert any(d.applied for d in first)
        assert first != run(4321)

    def test_scripted_sequence_is_reproducible(self, make_engine, scripted):
        values = [0.05, 0.1, 0.5, 0.4, 0.05, 0.5, 0.3, 0.05, 0.9, 0.4]

        def run():
            engine = make_engine(probability=0.3, random_source=scripted(values))
            return [engine.decide(RequestDescriptor("/api/users")).action for _ in range(4)]

        actions = run()
        assert actions == run()
        assert actions == [
            DelayAction(1550.0),
            None,
            ErrorAction(502),
            CorruptionAction(CorruptionStrategy.SCRAMBLE_STRINGS),
        ]

    def test_independent_engines_do_not_share_stats(self, make_engine):
        a = make_engine(probability=1.0, random_source=SeededRandom(1))
        b = make_engine(probability=1.0, random_source=SeededRandom(1))
        for _ in range(10):
            a.decide(RequestDescriptor("/api/users"))
        assert a.get_stats().total_requests == 10
        assert b.get_stats() == Stats()

    def test_shared_stats_collector(self):
        shared = StatsCollector()
        config = resolve_config(probability=0.0)
        for _ in range(3):
            ChaosEngine(config, stats=shared).decide(RequestDescriptor("/"))
        assert shared.snapshot().total_requests == 3

    def test_reset_mid_decision_keeps_invariant(self):
        config = resolve_config(probability=1.0, delay_range=(10, 10), action_weights={"error": 0, "corruption": 0})

        class ResettingRandom:
            engine = None

            def random(self):
                self.engine.reset_stats()
                return 0.0

        source = ResettingRandom()
        engine = ChaosEngine(config, random_source=source)
        source.engine = engine

        decision = engine.decide(RequestDescriptor("/api/users"))

        assert decision.action == DelayAction(10.0)
        stats = engine.get_stats()
        assert stats == Stats(total_requests=1, chaos_count=1, delay_count=1)
        assert_stats_invariant(stats)

    def test_strategy_returning_garbage_turns_into_pass_through(self, scripted, caplog):
        config = resolve_config(probability=1.0, action_weights={"error": 0, "corruption": 0})
        registry = default_registry(config)
        registry.register(ActionStrategy(ActionKind.DELAY, 1.0, lambda cfg, src: object()))
        engine = ChaosEngine(config, random_source=scripted([0.0]), registry=registry)

        with caplog.at_level(logging.ERROR):
            decision = engine.decide(RequestDescriptor("/api/users"))

        assert not decision.applied
        assert decision.eligible
        assert "selection failed" in caplog.text
        assert engine.get_stats() == Stats(total_requests=1)

    def test_action_without_applier_turns_into_pass_through(self, make_engine, scripted):
        engine = make_engine(
            probability=1.0,
            action_weights={"delay": 0, "corruption": 0},
            random_source=scripted([0.0]),
        )
        del engine.appliers[ActionKind.ERROR]

        decision = engine.decide(RequestDescriptor("/api/users"))

        assert not decision.applied
        assert engine.get_stats() == Stats(total_requests=1)


# ─── Scenarios ───


@pytest.mark.asyncio
async def test_scenario_every_request_errors(make_engine, make_sink, json_handler):
    engine = make_engine(
        probability=1.0,
        error_codes=[500],
        action_weights={"delay": 0, "corruption": 0},
        random_source=SeededRandom(11),
    )
    handler_calls = []

    for _ in range(25):
        sink = make_sink()
        decision = await engine.handle(RequestDescriptor("/api/users"), sink, json_handler(sink, handler_calls))
        assert decision.action == ErrorAction(500)
        assert sink.status == 500
        assert sink.body["message"] == CHAOS_MARKER
        assert sink.body["chaos"] is True
        assert sink.ended

    assert handler_calls == []
    assert engine.get_stats() == Stats(total_requests=25, chaos_count=25, error_count=25)


@pytest.mark.asyncio
async def test_scenario_zero_probability_passes_everything(make_engine, make_sink, json_handler):
    engine = make_engine(probability=0.0, random_source=SeededRandom(3))

    for _ in range(50):
        sink = make_sink()
        decision = await engine.handle(RequestDescriptor("/api/users"), sink, json_handler(sink))
        assert not decision.applied
        assert sink.status == 200
        assert sink.body == ORIGINAL_BODY

    stats = engine.get_stats()
    assert stats.total_requests == 50
    assert stats.chaos_count == 0


@pytest.mark.asyncio
async def test_scenario_health_never_eligible(make_engine, make_sink, json_handler):
    engine = make_engine(
        probability=1.0,
        enabled_routes=["/api/"],
        disabled_routes=["/health"],
        random_source=SeededRandom(8),
    )

    sink = make_sink()
    health = await engine.handle(RequestDescriptor("/health"), sink, json_handler(sink))
    users = engine.decide(RequestDescriptor("/api/users"))

    assert not health.eligible
    assert sink.body == ORIGINAL_BODY
    assert users.eligible
    assert users.applied


@pytest.mark.asyncio
async def test_scenario_degenerate_delay(make_engine, make_sink, sleep_recorder, json_handler):
    engine = make_engine(
        probability=1.0,
        delay_range=[1000, 1000],
        action_weights={"error": 0, "corruption": 0},
        random_source=SeededRandom(2),
    )

    for _ in range(5):
        sink = make_sink()
        decision = await engine.handle(RequestDescriptor("/api/slow"), sink, json_handler(sink))
        assert decision.action == DelayAction(1000)
        assert sink.suspended_ms == 1000
        assert sink.body == ORIGINAL_BODY

    assert sleep_recorder.calls == [1.0] * 5


# ─── handle() ───


@pytest.mark.asyncio
async def test_corruption_mutates_handler_result(make_engine, make_sink, json_handler, scripted):
    engine = make_engine(
        probability=1.0,
        action_weights={"delay": 0, "error": 0},
        random_source=scripted([0.0, 0.0, 0.0]),
    )
    sink = make_sink()
    decision = await engine.handle(RequestDescriptor("/api/users"), sink, json_handler(sink))

    assert decision.action == CorruptionAction(CorruptionStrategy.NULL_BODY)
    assert sink.status == 200
    assert sink.body == "null"


@pytest.mark.asyncio
async def test_corruption_degradation_is_recorded(make_engine, make_sink, scripted):
    engine = make_engine(
        probability=1.0,
        action_weights={"delay": 0, "error": 0},
        random_source=scripted([0.0, 0.0, 0.0]),
    )
    sink = make_sink()

    async def call_next():
        sink.set_body("plain text, not JSON")

    decision = await engine.handle(RequestDescriptor("/api/report.txt"), sink, call_next)

    assert decision.action == CorruptionAction(CorruptionStrategy.INVALID_CONTENT, degraded=True)
    assert engine.get_stats().corruption_count == 1


@pytest.mark.asyncio
async def test_stats_invariant_over_mixed_traffic(make_engine, make_sink, json_handler):
    engine = make_engine(
        probability=0.5,
        enabled_routes=["/api/"],
        disabled_routes=["/api/health"],
        random_source=SeededRandom(99),
    )
    paths = ["/api/users", "/api/health", "/", "/api/orders"]

    for i in range(400):
        sink = make_sink()
        await engine.handle(RequestDescriptor(paths[i % len(paths)]), sink, json_handler(sink))
        assert_stats_invariant(engine.get_stats())

    stats = engine.get_stats()
    assert stats.total_requests == 400
    assert 0 < stats.chaos_count < 200
    assert stats.delay_count and stats.error_count and stats.corruption_count


@pytest.mark.asyncio
async def test_get_stats_idempotent_and_reset(make_engine, make_sink, json_handler):
    engine = make_engine("extreme", random_source=SeededRandom(5))
    for _ in range(20):
        sink = make_sink()
        await engine.handle(RequestDescriptor("/"), sink, json_handler(sink))

    assert engine.get_stats() == engine.get_stats()
    engine.reset_stats()
    assert engine.get_stats() == Stats()


@pytest.mark.asyncio
async def test_concurrent_delays_do_not_block_each_other(make_engine):
    engine = make_engine(
        probability=1.0,
        delay_range=[200, 200],
        action_weights={"error": 0, "corruption": 0},
        random_source=SeededRandom(4),
    )

    async def one_request():
        sink = BufferedResponse()

        async def call_next():
            sink.set_body({"ok": True})

        await engine.handle(RequestDescriptor("/api/slow"), sink, call_next)
        return sink

    start = time.perf_counter()
    sinks = await asyncio.gather(*(one_request() for _ in range(10)))
    elapsed = time.perf_counter() - start

    assert elapsed < 1.0
    assert all(s.body == {"ok": True} for s in sinks)
    assert engine.get_stats().delay_count == 10


@pytest.mark.asyncio
async def test_replacement_applier_is_used(make_sink, json_handler, scripted):
    class RecordingApplier:
        def __init__(self):
            self.actions = []

        async def apply(self, action, sink, call_next, source):
            self.actions.append(action)
            await call_next()
            sink.set_status(299)
            return action

    applier = RecordingApplier()
    config = resolve_config(probability=1.0, delay_range=(50, 50), action_weights={"error": 0, "corruption": 0})
    engine = ChaosEngine(config, random_source=scripted([0.0]), appliers={ActionKind.DELAY: applier})
    sink = make_sink()

    decision = await engine.handle(RequestDescriptor("/api/users"), sink, json_handler(sink))

    assert applier.actions == [DelayAction(50.0)]
    assert decision.action == DelayAction(50.0)
    assert sink.status == 299
    assert sink.suspended_ms == 0.0


@pytest.mark.asyncio
async def test_handler_errors_propagate_on_pass_through(make_engine, make_sink):
    engine = make_engine(probability=0.0)

    async def call_next():
        raise KeyError("handler bug")

    with pytest.raises(KeyError):
        await engine.handle(RequestDescriptor("/api/users"), make_sink(), call_next)


# ─── Logging sink ───


@pytest.mark.asyncio
async def test_log_sink_receives_structured_events(make_engine, make_sink, json_handler):
    events = []
    engine = make_engine(
        probability=1.0,
        error_codes=[502],
        action_weights={"delay": 0, "corruption": 0},
        logging_enabled=True,
        log_sink=events.append,
        random_source=SeededRandom(1),
    )
    sink = make_sink()
    await engine.handle(RequestDescriptor("/api/users", "POST"), sink, json_handler(sink))

    assert len(events) == 1
    event = events[0]
    assert isinstance(event, ChaosEvent)
    assert event.route == "/api/users"
    assert event.method == "POST"
    assert event.action_kind is ActionKind.ERROR
    assert event.action_detail == {"status_code": 502}
    assert event.timestamp.tzinfo is not None
    assert event.to_dict()["action_kind"] == "error"


@pytest.mark.asyncio
async def test_no_events_when_logging_disabled(make_engine, make_sink, json_handler):
    events = []
    engine = make_engine(probability=1.0, log_sink=events.append, random_source=SeededRandom(1))
    sink = make_sink()
    await engine.handle(RequestDescriptor("/api/users"), sink, json_handler(sink))
    assert events == []


@pytest.mark.asyncio
async def test_no_events_for_pass_through(make_engine, make_sink, json_handler):
    events = []
    engine = make_engine(probability=0.0, logging_enabled=True, log_sink=events.append)
    sink = make_sink()
    await engine.handle(RequestDescriptor("/api/users"), sink, json_handler(sink))
    assert events == []


@pytest.mark.asyncio
async def test_default_log_sink_uses_logging(make_engine, make_sink, json_handler, caplog):
    caplog.set_level(logging.INFO, logger="chaos_claws.brain.chaos_engine")
    engine = make_engine(
        probability=1.0,
        delay_range=[5, 5],
        action_weights={"error": 0, "corruption": 0},
        logging_enabled=True,
        random_source=SeededRandom(1),
    )
    sink = make_sink()
    await engine.handle(RequestDescriptor("/api/users"), sink, json_handler(sink))

    assert "[CHAOS] GET /api/users -> delay" in caplog.text


@pytest.mark.asyncio
async def test_failing_log_sink_never_reaches_host(make_engine, make_sink, json_handler, caplog):
    def broken_sink(event):
        raise IOError("disk full")

    engine = make_engine(
        probability=1.0,
        action_weights={"delay": 0, "error": 0},
        logging_enabled=True,
        log_sink=broken_sink,
        random_source=SeededRandom(1),
    )
    sink = make_sink()
    with caplog.at_level(logging.ERROR):
        decision = await engine.handle(RequestDescriptor("/api/users"), sink, json_handler(sink))

    assert decision.applied
    assert "Chaos log sink failed" in caplog.text
