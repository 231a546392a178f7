"""Simulation engine tests.

Properties tested:
1. Lifecycle: nothing runs before reset, reset builds a fresh market
2. The tape is ordered, numbered and capped at max_tape_rows, and trades
   within a step follow arbitrage-then-routing order
3. Edge is accounted for submission trades only and matches arbitrage profit
4. Reserves stay positive and finite for both strategy contracts
5. Strategy changes are staged until the next reset
6. Strategy failures are fatal for fee callbacks and diagnosed for swap curves
"""

import math

import pytest

from amm_replay.core.trade import FlowType, PoolRole
from amm_replay.errors import (
    ConfigurationError,
    EngineStateError,
    StrategyExecutionError,
    UnknownStrategyError,
)
from amm_replay.simulation.config import (
    INITIAL_RESERVE_X,
    INITIAL_RESERVE_Y,
    RESERVE_TRAIL_CAP,
    RegimeParameters,
    SimulationConfig,
)
from amm_replay.simulation.engine import EngineStatus, SimulationEngine
from amm_replay.simulation.events import DiagnosticKind
from amm_replay.strategies.runtime import StrategyRef
from tests.fixtures.pool_fixtures import (
    MalformedStorageStrategy,
    NanFeeStrategy,
    RaisingFeeStrategy,
    RaisingSwapStrategy,
    registry_with,
)


def _make_engine(strategy: str = "swap:starter-500bps", seed: int = 1337, **kwargs) -> SimulationEngine:
    config = SimulationConfig(seed=seed, strategy=StrategyRef.parse(strategy), **kwargs)
    engine = SimulationEngine(config)
    engine.reset()
    return engine


@pytest.fixture
def volatile_engine(monkeypatch) -> SimulationEngine:
    """Fee-callback engine pinned to a 0.7%/step regime so arbitrage fires often."""
    regime = RegimeParameters(
        volatility=0.007,
        arrival_rate=0.8,
        order_size_mean=20.0,
        normalizer_fee_bps=30,
        normalizer_liquidity_mult=1.0,
    )
    monkeypatch.setattr(RegimeParameters, "sample", classmethod(lambda cls, rng: regime))
    return _make_engine("fee:baseline30", seed=5)


class TestLifecycle:

    def test_step_before_reset_raises(self):
        engine = SimulationEngine()
        assert engine.status == EngineStatus.UNINITIALIZED
        with pytest.raises(EngineStateError):
            engine.step_one()
        with pytest.raises(EngineStateError):
            engine.to_ui_state()

    def test_reset_builds_initial_state(self, engine):
        snapshot = engine.snapshot
        regime = engine.regime

        assert engine.status == EngineStatus.READY
        assert snapshot.step == 0
        assert snapshot.fair_price == 100.0
        assert (snapshot.submission.x, snapshot.submission.y) == (INITIAL_RESERVE_X, INITIAL_RESERVE_Y)
        assert snapshot.normalizer.x == pytest.approx(INITIAL_RESERVE_X * regime.normalizer_liquidity_mult)
        assert snapshot.normalizer.bid_fee_bps == regime.normalizer_fee_bps
        assert 30 <= regime.normalizer_fee_bps <= 80
        assert 0.0001 <= regime.volatility <= 0.007
        assert engine.trade_count == 0
        assert engine.history == []

    def test_reset_emits_system_event(self, engine):
        event = engine.last_event
        assert event.id == 0
        assert event.flow == FlowType.SYSTEM
        assert event.trade is None
        assert event.summary.startswith("Simulation initialized.")

    def test_reset_clears_run_state(self, engine):
        for _ in range(10):
            engine.step_one()
        engine.reset()
        assert engine.trade_count == 0
        assert engine.step == 0
        assert engine.history == []
        assert len(engine.trail) == 1
        assert engine.snapshot.edge.total == 0.0

    def test_reset_with_explicit_seed(self, engine):
        engine.reset(seed=99)
        assert engine.seed == 99
        assert engine.config.seed == 1337


class TestTape:

    def test_step_one_produces_event(self, engine):
        assert engine.step_one()
        event = engine.last_event
        assert event.id == 1
        assert event.flow in (FlowType.ARBITRAGE, FlowType.RETAIL)
        assert event.trade is not None
        assert engine.trade_count == 1
        assert engine.history[0] is event

    def test_ids_are_consecutive(self, engine):
        events = list(engine.run(40))
        assert [e.id for e in events] == list(range(1, len(events) + 1))
        assert all(a.step <= b.step for a, b in zip(events, events[1:]))

    def test_history_newest_first_and_capped(self):
        engine = _make_engine(max_tape_rows=5)
        events = list(engine.run(12))
        assert len(engine.history) == 5
        assert [e.id for e in engine.history] == [e.id for e in reversed(events[-5:])]

    def test_set_config_trims_history(self, engine):
        list(engine.run(15))
        engine.set_config(max_tape_rows=3)
        assert len(engine.history) == 3
        assert engine.config.max_tape_rows == 3

    def test_event_price_move(self, engine):
        for event in engine.run(20):
            old, new = event.price_move
            assert new == event.fair_price
            assert math.isfinite(old) and old > 0

    def test_arbitrage_then_retail_within_a_step(self, engine):
        """Within one tick every arbitrage trade precedes the retail trades."""
        events = list(engine.run(60))
        for step in {e.step for e in events}:
            flows = [e.flow for e in events if e.step == step]
            if FlowType.RETAIL in flows:
                first_retail = flows.index(FlowType.RETAIL)
                assert FlowType.ARBITRAGE not in flows[first_retail:]

    def test_trade_order_within_a_step(self, volatile_engine):
        """Submission arb, normalizer arb, then each order's submission and normalizer legs."""
        ordered = (PoolRole.SUBMISSION, PoolRole.NORMALIZER)
        events = list(volatile_engine.run(120))
        both_arbs = split_orders = False

        for step in {e.step for e in events}:
            in_step = [e for e in events if e.step == step]
            arb_pools = tuple(e.pool for e in in_step if e.flow == FlowType.ARBITRAGE)
            assert arb_pools in ((), (PoolRole.SUBMISSION,), (PoolRole.NORMALIZER,), ordered)
            both_arbs = both_arbs or arb_pools == ordered

            runs = []
            for event in (e for e in in_step if e.flow == FlowType.RETAIL):
                if runs and runs[-1][0] is event.order:
                    runs[-1][1].append(event.pool)
                else:
                    runs.append((event.order, [event.pool]))
            orders = [order for order, _ in runs]
            assert len({id(order) for order in orders}) == len(orders)
            for _, pools in runs:
                assert tuple(pools) in ((PoolRole.SUBMISSION,), (PoolRole.NORMALIZER,), ordered)
                split_orders = split_orders or tuple(pools) == ordered

        assert both_arbs
        assert split_orders


class TestEdgeAccounting:

    @pytest.mark.parametrize("strategy", ["swap:starter-500bps", "fee:baseline30"])
    def test_edge_sums_submission_deltas(self, strategy):
        engine = _make_engine(strategy, seed=7)
        events = list(engine.run(60))
        edge = events[-1].snapshot.edge

        assert edge.total == pytest.approx(sum(e.edge_delta for e in events), abs=1e-9)
        assert edge.total == pytest.approx(edge.retail + edge.arb, abs=1e-9)
        assert all(e.edge_delta == 0.0 for e in events if e.pool == PoolRole.NORMALIZER)

    def test_arbitrage_edge_is_negative_profit(self, volatile_engine):
        events = [e for e in volatile_engine.run(80) if e.flow == FlowType.ARBITRAGE]
        assert any(e.pool == PoolRole.SUBMISSION for e in events)
        for event in events:
            assert event.arb_profit > 0
            if event.pool == PoolRole.SUBMISSION:
                assert event.edge_delta == pytest.approx(-event.arb_profit)

    def test_retail_orders_recorded(self, engine):
        retail = [e for e in engine.run(80) if e.flow == FlowType.RETAIL]
        assert retail
        for event in retail:
            assert event.order is not None
            assert event.arb_profit == 0.0


class TestInvariants:

    @pytest.mark.parametrize(
        "strategy",
        ["swap:starter-500bps", "swap:adaptive-storage", "fee:baseline30", "fee:widen-big-trades"],
    )
    def test_reserves_positive_and_finite(self, strategy):
        engine = _make_engine(strategy, seed=42)
        for _ in range(80):
            engine.step_one()
            for pool in (engine.submission, engine.normalizer):
                assert math.isfinite(pool.reserve_x) and pool.reserve_x > 0
                assert math.isfinite(pool.reserve_y) and pool.reserve_y > 0

    def test_submission_k_never_decreases(self, fee_engine):
        k = fee_engine.submission.k
        for event in fee_engine.run(60):
            if event.pool == PoolRole.SUBMISSION:
                assert event.snapshot.submission.k >= k * (1 - 1e-12)
                k = event.snapshot.submission.k

    def test_fee_engine_snapshot_fees(self, fee_engine):
        assert fee_engine.snapshot.submission.bid_fee_bps == 30
        assert fee_engine.snapshot.submission.ask_fee_bps == 30

    def test_swap_engine_reports_implied_fees(self, engine):
        """The 500 bps curve shows roughly 500 bps implied fees."""
        snap = engine.snapshot.submission
        assert abs(snap.bid_fee_bps - 500) <= 5
        assert abs(snap.ask_fee_bps - 500) <= 5

    def test_storage_strategy_reports_changes(self):
        engine = _make_engine("swap:adaptive-storage", seed=3)
        executions = [
            e.strategy_execution for e in engine.run(60) if e.pool == PoolRole.SUBMISSION
        ]
        assert executions
        assert any(ex.storage_changed_bytes > 0 for ex in executions)


class TestStrategySelection:

    def test_set_strategy_waits_for_reset(self, engine):
        engine.set_strategy("swap:baseline-30bps")
        assert str(engine.runtime.ref) == "swap:starter-500bps"
        assert str(engine.config.strategy) == "swap:baseline-30bps"

        engine.reset()
        assert str(engine.runtime.ref) == "swap:baseline-30bps"
        assert engine.submission.name == "Baseline (30 bps)"

    def test_set_strategy_before_reset_applies_immediately(self):
        engine = SimulationEngine()
        engine.set_strategy("fee:starter50")
        assert str(engine.runtime.ref) == "fee:starter50"

    def test_unknown_strategy(self, engine):
        with pytest.raises(UnknownStrategyError):
            engine.set_strategy("swap:nope")
        assert str(engine.config.strategy) == "swap:starter-500bps"

    def test_set_config_strategy_string(self, engine):
        engine.set_config(strategy="fee:baseline30")
        engine.reset()
        assert engine.runtime.constant_fee

    @pytest.mark.parametrize(
        "changes",
        [
            {"bogus": 1},
            {"playback_speed": 9},
            {"max_tape_rows": 0},
            {"max_tape_rows": "5"},
            {"max_tape_rows": 2.5},
            {"seed": "abc"},
        ],
    )
    def test_invalid_config(self, engine, changes):
        with pytest.raises(ConfigurationError):
            engine.set_config(**changes)

    def test_playback_interval(self):
        assert SimulationConfig(playback_speed=1).playback_interval_ms == 1000
        assert SimulationConfig(playback_speed=6).playback_interval_ms == 10


class TestStrategyFailures:

    def test_fee_callback_failure_stops_run(self):
        registry = registry_with(fee={"broken": RaisingFeeStrategy})
        engine = SimulationEngine(
            SimulationConfig(strategy=StrategyRef("fee", "broken")), registry
        )
        engine.reset()
        with pytest.raises(StrategyExecutionError):
            for _ in range(200):
                engine.step_one()

    def test_fee_callback_initialize_failure(self):
        registry = registry_with(fee={"broken": lambda: RaisingFeeStrategy(fail_initialize=True)})
        engine = SimulationEngine(
            SimulationConfig(strategy=StrategyRef("fee", "broken")), registry
        )
        with pytest.raises(StrategyExecutionError):
            engine.reset()

    def test_swap_failure_is_diagnosed(self):
        registry = registry_with(swap={"broken": RaisingSwapStrategy})
        engine = SimulationEngine(
            SimulationConfig(strategy=StrategyRef("swap", "broken")), registry
        )
        engine.reset()
        for _ in range(20):
            engine.step_one()

        kinds = {d.kind for d in engine.diagnostics}
        assert DiagnosticKind.STRATEGY_ERROR in kinds
        assert (engine.submission.reserve_x, engine.submission.reserve_y) == (
            INITIAL_RESERVE_X,
            INITIAL_RESERVE_Y,
        )
        assert all(e.pool == PoolRole.NORMALIZER for e in engine.history)

    def test_malformed_storage_is_diagnosed(self):
        registry = registry_with(swap={"malformed": lambda: MalformedStorageStrategy("not bytes")})
        engine = SimulationEngine(
            SimulationConfig(strategy=StrategyRef("swap", "malformed")), registry
        )
        engine.reset()
        for _ in range(30):
            engine.step_one()

        assert engine.submission.storage == bytes(1024)
        errors = [d for d in engine.diagnostics if d.kind == DiagnosticKind.STRATEGY_ERROR]
        assert errors
        assert all(d.message.startswith("after_swap:") for d in errors)

    def test_nan_fee_stops_run(self):
        registry = registry_with(fee={"nan": NanFeeStrategy})
        engine = SimulationEngine(SimulationConfig(strategy=StrategyRef("fee", "nan")), registry)
        engine.reset()
        with pytest.raises(StrategyExecutionError, match="invalid fees"):
            for _ in range(200):
                engine.step_one()


class TestUiState:

    def test_ui_state(self, engine):
        list(engine.run(25))
        state = engine.to_ui_state()

        assert state.trade_count == 25
        assert state.current_strategy.id == "starter-500bps"
        assert len(state.available_strategies) == 8
        assert len(state.history) == engine.config.max_tape_rows
        assert 1 <= len(state.reserve_trail) <= RESERVE_TRAIL_CAP
        assert state.normalizer_config.fee_bps == engine.regime.normalizer_fee_bps
        assert state.submission_depth.buy_depth_1 > 0
        assert "implied" in state.fee_badge

    def test_diagnostics_are_bounded(self, engine):
        list(engine.run(300))
        assert len(engine.diagnostics) <= 200
