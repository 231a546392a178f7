"""Deterministic, replayable two-pool simulation engine."""

import logging
from collections import deque
from enum import Enum
from typing import Iterator, Optional, Union

from amm_replay.core.amm import LiquidityPool, SideQuoteFn
from amm_replay.core.rng import SeededRng
from amm_replay.core.trade import FlowType, PoolRole, RetailOrder, SwapSide, Trade, TradeSide, implied_fee_bps
from amm_replay.errors import EngineStateError
from amm_replay.market.arbitrageur import Arbitrageur, arb_profit
from amm_replay.market.price_process import GBMPriceProcess
from amm_replay.market.retail import RetailTrader
from amm_replay.market.router import MIN_TRADE_SIZE, OrderRouter
from amm_replay.simulation.config import (
    GBM_DT,
    GBM_MU,
    INITIAL_PRICE,
    INITIAL_RESERVE_X,
    INITIAL_RESERVE_Y,
    MAX_DIAGNOSTICS,
    TICK_RETRY_GUARD,
    RegimeParameters,
    SimulationConfig,
)
from amm_replay.simulation.events import (
    Diagnostic,
    DiagnosticKind,
    EdgeTotals,
    PoolSnapshot,
    ReserveTrail,
    Snapshot,
    TradeEvent,
    UiState,
)
from amm_replay.strategies.runtime import (
    StrategyExecution,
    StrategyInfo,
    StrategyRef,
    StrategyRegistry,
    StrategyRuntime,
    default_registry,
)

logger = logging.getLogger(__name__)

# Input used to probe a swap curve for its implied fee, as a share of reserves
IMPLIED_FEE_PROBE_FRACTION = 0.001


class EngineStatus(Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"


def _format_num(value: float, digits: int) -> str:
    return f"{value:.{digits}f}"


class SimulationEngine:
    """Runs the submission and normalizer pools against one market.

    Each tick moves the fair price, lets the arbitrageur trade against the
    submission pool and then the normalizer, and routes any retail orders
    across both. Every executed trade becomes a TradeEvent on a pending
    queue; ``step_one`` releases them one at a time.

    All randomness comes from one SeededRng owned by the engine, so the
    tape is a pure function of the seed, the strategy and the config.
    """

    def __init__(
        self,
        config: Optional[SimulationConfig] = None,
        registry: Optional[StrategyRegistry] = None,
    ):
        self.config = config or SimulationConfig()
        self.registry = registry or default_registry()
        self._runtime: StrategyRuntime = self.registry.resolve(self.config.strategy)
        self._next_runtime: Optional[StrategyRuntime] = None

        self._rng = SeededRng(self.config.seed)
        self._arbitrageur = Arbitrageur()
        self._router = OrderRouter()

        self.status = EngineStatus.UNINITIALIZED
        self.seed = self.config.seed
        self.regime: Optional[RegimeParameters] = None
        self._price_process: Optional[GBMPriceProcess] = None
        self._retail: Optional[RetailTrader] = None
        self.submission: Optional[LiquidityPool] = None
        self.normalizer: Optional[LiquidityPool] = None

        self.step = 0
        self.trade_count = 0
        self._event_seq = 0
        self._edge = EdgeTotals()
        self._implied_fees = (0, 0)
        self._storage_changed_bytes = 0
        self._pending: deque[TradeEvent] = deque()
        self.history: list[TradeEvent] = []
        self.trail = ReserveTrail()
        self.diagnostics: deque[Diagnostic] = deque(maxlen=MAX_DIAGNOSTICS)
        self.snapshot: Optional[Snapshot] = None
        self.last_event: Optional[TradeEvent] = None

    @property
    def runtime(self) -> StrategyRuntime:
        return self._runtime

    @property
    def fair_price(self) -> float:
        self._require_ready()
        return self._price_process.current_price

    def _require_ready(self) -> None:
        if self.status != EngineStatus.READY:
            raise EngineStateError("Simulation is not initialized; call reset() first")

    # Public surface

    def set_config(self, **changes) -> SimulationConfig:
        """Apply a partial config update.

        A strategy change is resolved immediately and takes effect at the
        next reset. History is trimmed to the new ``max_tape_rows``.

        Raises:
            ConfigurationError: If a field is unknown or invalid
        """
        new_config = self.config.with_updates(**changes)
        if new_config.strategy != self.config.strategy:
            self._stage_runtime(new_config.strategy)
        self.config = new_config
        del self.history[self.config.max_tape_rows:]
        return self.config

    def set_strategy(self, ref: Union[StrategyRef, str]) -> None:
        """Select the submission strategy for the next reset.

        Raises:
            UnknownStrategyError: If ``ref`` is not registered
        """
        if isinstance(ref, str):
            ref = StrategyRef.parse(ref)
        self._stage_runtime(ref)
        self.config = self.config.with_updates(strategy=ref)

    def _stage_runtime(self, ref: StrategyRef) -> None:
        runtime = self.registry.resolve(ref)
        if self.status == EngineStatus.UNINITIALIZED:
            self._runtime = runtime
            self._next_runtime = None
        else:
            self._next_runtime = runtime

    def reset(self, seed: Optional[int] = None) -> Snapshot:
        """Start a new run from ``seed`` (defaults to ``config.seed``).

        Raises:
            StrategyExecutionError: If a fee-callback strategy fails to initialize
        """
        if self._next_runtime is not None:
            self._runtime, self._next_runtime = self._next_runtime, None

        self.seed = self.config.seed if seed is None else int(seed)
        self._rng.reset(self.seed)

        self.regime = RegimeParameters.sample(self._rng)
        self._price_process = GBMPriceProcess(
            initial_price=INITIAL_PRICE, mu=GBM_MU, sigma=self.regime.volatility, dt=GBM_DT,
        )
        self._retail = RetailTrader(
            arrival_rate=self.regime.arrival_rate, mean_size=self.regime.order_size_mean,
        )

        self.submission = LiquidityPool(
            name=self._runtime.name,
            role=PoolRole.SUBMISSION,
            reserve_x=INITIAL_RESERVE_X,
            reserve_y=INITIAL_RESERVE_Y,
        )
        fee = self.regime.normalizer_fee_bps
        mult = self.regime.normalizer_liquidity_mult
        self.normalizer = LiquidityPool(
            name=f"Normalizer ({fee} bps)",
            role=PoolRole.NORMALIZER,
            reserve_x=INITIAL_RESERVE_X * mult,
            reserve_y=INITIAL_RESERVE_Y * mult,
            bid_fee_bps=fee,
            ask_fee_bps=fee,
        )
        self._runtime.on_reset(self.submission)

        self.step = 0
        self.trade_count = 0
        self._event_seq = 0
        self._edge = EdgeTotals()
        self._storage_changed_bytes = 0
        self._implied_fees = self._probe_implied_fees()
        self._pending.clear()
        self.history = []
        self.trail.clear()
        self.trail.track(self.submission.reserve_x, self.submission.reserve_y)
        self.diagnostics.clear()
        self._runtime.drain_failures()

        self.status = EngineStatus.READY
        self.snapshot = self._snapshot()
        self.last_event = TradeEvent(
            id=0,
            step=0,
            flow=FlowType.SYSTEM,
            pool=None,
            pool_name=self.submission.name,
            trade=None,
            order=None,
            arb_profit=0.0,
            fair_price=INITIAL_PRICE,
            price_move=(INITIAL_PRICE, INITIAL_PRICE),
            edge_delta=0.0,
            summary=(
                f"Simulation initialized. Normalizer: {fee} bps @ {mult:.2f}x liquidity. "
                f"Volatility: {self.regime.volatility * 100:.3f}%/step."
            ),
            snapshot=self.snapshot,
            fee_badge=self._fee_badge(),
        )
        logger.info(
            "Reset seed=%d strategy=%s volatility=%.5f arrival_rate=%.3f normalizer=%d bps @ %.2fx",
            self.seed, self._runtime.ref, self.regime.volatility, self.regime.arrival_rate, fee, mult,
        )
        return self.snapshot

    def step_one(self) -> bool:
        """Release the next trade event, running ticks until one exists.

        Returns:
            True if an event was produced, False if the retry guard ran out

        Raises:
            EngineStateError: If called before reset()
            StrategyExecutionError: If a fee-callback strategy fails
        """
        self._require_ready()

        attempts = 0
        while not self._pending and attempts < TICK_RETRY_GUARD:
            self._tick()
            attempts += 1

        if not self._pending:
            return False

        event = self._pending.popleft()
        self.trade_count += 1
        self.last_event = event
        self.snapshot = event.snapshot
        self.trail.track(event.snapshot.submission.x, event.snapshot.submission.y)
        self.history.insert(0, event)
        del self.history[self.config.max_tape_rows:]
        return True

    def run(self, n_events: int) -> Iterator[TradeEvent]:
        """Yield up to ``n_events`` events, stopping early if none are produced."""
        for _ in range(n_events):
            if not self.step_one():
                return
            yield self.last_event

    def available_strategies(self) -> list[StrategyInfo]:
        return self.registry.available()

    def to_ui_state(self) -> UiState:
        self._require_ready()
        runtime = self._runtime
        return UiState(
            config=self.config,
            current_strategy=StrategyInfo(kind=runtime.kind, id=runtime.ref.id, name=runtime.name),
            trade_count=self.trade_count,
            snapshot=self.snapshot,
            last_event=self.last_event,
            history=list(self.history),
            reserve_trail=self.trail.points(),
            diagnostics=list(self.diagnostics),
            available_strategies=self.available_strategies(),
            normalizer_config=self.regime.normalizer,
            submission_depth=self.submission.depth_stats(self._submission_quote()),
            fee_badge=self._fee_badge(),
        )

    # Tick

    def _tick(self) -> None:
        self.step += 1
        old_price = self._price_process.current_price
        new_price = self._price_process.advance(self._rng)
        price_move = (old_price, new_price)

        self._run_arbitrage(PoolRole.SUBMISSION, price_move)
        self._run_arbitrage(PoolRole.NORMALIZER, price_move)

        orders = self._retail.generate_orders(self._rng)
        for order in orders:
            self._route_order(order, price_move)

        for message, count in self._runtime.drain_failures():
            suffix = f" (x{count})" if count > 1 else ""
            self._diagnose(DiagnosticKind.STRATEGY_ERROR, f"{message}{suffix}", PoolRole.SUBMISSION)

        logger.debug(
            "Tick %d fair=%.6f orders=%d pending=%d", self.step, new_price, len(orders), len(self._pending)
        )

    def _pool(self, role: PoolRole) -> LiquidityPool:
        return self.submission if role == PoolRole.SUBMISSION else self.normalizer

    def _submission_quote(self) -> SideQuoteFn:
        runtime, pool = self._runtime, self.submission
        return lambda side, amount: runtime.quote(pool, side, amount)

    def _quote(self, role: PoolRole) -> SideQuoteFn:
        if role == PoolRole.SUBMISSION:
            return self._submission_quote()
        return self.normalizer.quote

    def _diagnose(self, kind: DiagnosticKind, message: str, role: Optional[PoolRole] = None) -> None:
        self.diagnostics.append(Diagnostic(step=self.step, kind=kind, message=message, pool=role))

    def _execute(self, role: PoolRole, side: SwapSide, amount: float) -> Optional[Trade]:
        quote = self._quote(role)
        trade = self._pool(role).execute(side, lambda value: quote(side, value), amount, self.step)
        if trade is None:
            self._diagnose(
                DiagnosticKind.TRADE_REJECTED,
                f"{self._pool(role).name} rejected {side.name} input {amount:.6f}",
                role,
            )
        return trade

    def _run_arbitrage(self, role: PoolRole, price_move: tuple[float, float]) -> None:
        pool = self._pool(role)
        fair_price = price_move[1]
        constant_fee = role == PoolRole.NORMALIZER or self._runtime.constant_fee
        candidate = self._arbitrageur.find_arb_opportunity(
            pool, fair_price, self._quote(role), constant_fee
        )
        if candidate is None:
            self._diagnose(
                DiagnosticKind.NO_ARBITRAGE,
                f"{pool.name}: no arbitrage at fair {fair_price:.4f} (spot {pool.spot_price:.4f})",
                role,
            )
            return

        trade = self._execute(role, candidate.side, candidate.input_amount)
        if trade is None:
            return
        profit = arb_profit(trade.side, trade.input_amount, trade.output_amount, fair_price)
        self._enqueue(FlowType.ARBITRAGE, role, trade, None, profit, price_move)

    def _route_order(self, order: RetailOrder, price_move: tuple[float, float]) -> None:
        decision = self._router.route_order(
            order, price_move[1], self._quote(PoolRole.SUBMISSION), self._quote(PoolRole.NORMALIZER)
        )
        legs = (
            (PoolRole.SUBMISSION, decision.submission_input),
            (PoolRole.NORMALIZER, decision.normalizer_input),
        )
        for role, amount in legs:
            if amount <= MIN_TRADE_SIZE:
                if amount > 0:
                    self._diagnose(
                        DiagnosticKind.LEG_SKIPPED,
                        f"{self._pool(role).name} leg of {amount:.8f} below minimum trade size",
                        role,
                    )
                continue
            trade = self._execute(role, decision.side, amount)
            if trade is not None:
                self._enqueue(FlowType.RETAIL, role, trade, order, 0.0, price_move)

    def _enqueue(
        self,
        flow: FlowType,
        role: PoolRole,
        trade: Trade,
        order: Optional[RetailOrder],
        profit: float,
        price_move: tuple[float, float],
    ) -> None:
        fair_price = price_move[1]
        pool = self._pool(role)
        edge_delta = 0.0
        execution: Optional[StrategyExecution] = None

        if role == PoolRole.SUBMISSION:
            edge_delta = trade.value_edge(fair_price)
            self._edge = self._edge.add(flow, edge_delta)
            bid, ask = self._implied_fees
            if trade.amm_side == TradeSide.BUY:
                bid = trade.implied_fee_bps
            else:
                ask = trade.implied_fee_bps
            self._implied_fees = (bid, ask)

            execution = self._runtime.after_trade(
                pool, trade, self.step, flow, order.side if order else None, fair_price, edge_delta,
            )
            if execution.error is None:
                self._storage_changed_bytes = execution.storage_changed_bytes

        self._event_seq += 1
        self._pending.append(TradeEvent(
            id=self._event_seq,
            step=self.step,
            flow=flow,
            pool=role,
            pool_name=pool.name,
            trade=trade,
            order=order,
            arb_profit=profit,
            fair_price=fair_price,
            price_move=price_move,
            edge_delta=edge_delta,
            summary=self._describe_trade(flow, pool, trade, order, fair_price),
            snapshot=self._snapshot(),
            fee_badge=self._fee_badge(),
            strategy_execution=execution,
        ))

    # Reporting

    def _probe_implied_fees(self) -> tuple[int, int]:
        pool = self.submission
        if self._runtime.constant_fee:
            return pool.bid_fee_bps, pool.ask_fee_bps

        quote = self._submission_quote()
        fees = {}
        for side, reserve_in in ((SwapSide.SELL_X, pool.reserve_x), (SwapSide.BUY_X, pool.reserve_y)):
            amount = reserve_in * IMPLIED_FEE_PROBE_FRACTION
            fees[side] = implied_fee_bps(side, pool.reserve_x, pool.reserve_y, amount, quote(side, amount))
        return fees[SwapSide.SELL_X], fees[SwapSide.BUY_X]

    def _snapshot(self) -> Snapshot:
        if self._runtime.constant_fee:
            bid, ask = self.submission.bid_fee_bps, self.submission.ask_fee_bps
        else:
            bid, ask = self._implied_fees
        return Snapshot(
            step=self.step,
            fair_price=self._price_process.current_price,
            submission=PoolSnapshot.of(self.submission, bid, ask),
            normalizer=PoolSnapshot.of(
                self.normalizer, self.normalizer.bid_fee_bps, self.normalizer.ask_fee_bps
            ),
            edge=self._edge,
            regime=self.regime,
            storage_changed_bytes=self._storage_changed_bytes,
        )

    def _fee_badge(self) -> str:
        bid, ask = self._implied_fees
        norm = self.regime.normalizer
        return (
            f"{self._runtime.fee_badge(self.submission)} | implied: {bid}/{ask} bps"
            f" | norm: {norm.fee_bps} bps @ {norm.liquidity_mult:.2f}x"
        )

    @staticmethod
    def _describe_trade(
        flow: FlowType,
        pool: LiquidityPool,
        trade: Trade,
        order: Optional[RetailOrder],
        fair_price: float,
    ) -> str:
        move = "sold X (bought Y)" if trade.side == SwapSide.BUY_X else "bought X (sold Y)"
        base = (
            f"{pool.name}: {move} | in={_format_num(trade.input_amount, 4)}"
            f" | out={_format_num(trade.output_amount, 4)}"
        )
        if flow == FlowType.ARBITRAGE:
            return f"{base} | arb vs fair {_format_num(fair_price, 2)}"
        label = f"{order.side} {_format_num(order.size_y, 2)} Y" if order else "retail"
        return f"{base} | routed from {label}"
