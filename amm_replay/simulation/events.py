"""Tape records produced by the simulation engine."""

from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from amm_replay.core.amm import DepthStats, LiquidityPool
from amm_replay.core.trade import FlowType, PoolRole, RetailOrder, Trade
from amm_replay.simulation.config import (
    RESERVE_TRAIL_CAP,
    TRAIL_MIN_DX,
    TRAIL_MIN_DY,
    NormalizerConfig,
    RegimeParameters,
    SimulationConfig,
)
from amm_replay.strategies.runtime import StrategyExecution, StrategyInfo


@dataclass(frozen=True)
class PoolSnapshot:
    name: str
    x: float
    y: float
    k: float
    spot: float
    bid_fee_bps: int
    ask_fee_bps: int

    @classmethod
    def of(cls, pool: LiquidityPool, bid_fee_bps: int, ask_fee_bps: int) -> "PoolSnapshot":
        return cls(
            name=pool.name,
            x=pool.reserve_x,
            y=pool.reserve_y,
            k=pool.k,
            spot=pool.spot_price,
            bid_fee_bps=bid_fee_bps,
            ask_fee_bps=ask_fee_bps,
        )


@dataclass(frozen=True)
class EdgeTotals:
    """Submission pool edge, in Y at the fair price."""
    total: float = 0.0
    retail: float = 0.0
    arb: float = 0.0

    def add(self, flow: FlowType, delta: float) -> "EdgeTotals":
        if flow == FlowType.ARBITRAGE:
            return EdgeTotals(self.total + delta, self.retail, self.arb + delta)
        if flow == FlowType.RETAIL:
            return EdgeTotals(self.total + delta, self.retail + delta, self.arb)
        return self


@dataclass(frozen=True)
class Snapshot:
    step: int
    fair_price: float
    submission: PoolSnapshot
    normalizer: PoolSnapshot
    edge: EdgeTotals
    regime: RegimeParameters
    storage_changed_bytes: int = 0


@dataclass(frozen=True)
class TradeEvent:
    """One entry of the tape: a single trade, or the system event on reset."""
    id: int
    step: int
    flow: FlowType
    pool: Optional[PoolRole]
    pool_name: str
    trade: Optional[Trade]
    order: Optional[RetailOrder]
    arb_profit: float
    fair_price: float
    price_move: tuple[float, float]
    edge_delta: float
    summary: str
    snapshot: Snapshot
    fee_badge: str = ""
    strategy_execution: Optional[StrategyExecution] = None

    @property
    def is_submission_trade(self) -> bool:
        return self.pool == PoolRole.SUBMISSION


class DiagnosticKind(Enum):
    TRADE_REJECTED = "trade_rejected"
    NO_ARBITRAGE = "no_arbitrage"
    LEG_SKIPPED = "leg_skipped"
    STRATEGY_ERROR = "strategy_error"


@dataclass(frozen=True)
class Diagnostic:
    step: int
    kind: DiagnosticKind
    message: str
    pool: Optional[PoolRole] = None


class ReserveTrail:
    """Recent (x, y) points of the submission pool.

    A point is kept only if it moved noticeably from the last one; the
    oldest points fall off beyond ``cap``.
    """

    def __init__(self, cap: int = RESERVE_TRAIL_CAP):
        self._points: deque[tuple[float, float]] = deque(maxlen=cap)

    def __len__(self) -> int:
        return len(self._points)

    def __iter__(self):
        return iter(self._points)

    def clear(self) -> None:
        self._points.clear()

    def track(self, x: float, y: float) -> bool:
        """Append ``(x, y)`` if it moved past the thresholds. Returns whether it did."""
        if self._points:
            last_x, last_y = self._points[-1]
            if abs(x - last_x) <= TRAIL_MIN_DX and abs(y - last_y) <= TRAIL_MIN_DY:
                return False
        self._points.append((x, y))
        return True

    def points(self) -> list[tuple[float, float]]:
        return list(self._points)


@dataclass(frozen=True)
class UiState:
    """Everything a front end needs to render the current state."""
    config: SimulationConfig
    current_strategy: StrategyInfo
    trade_count: int
    snapshot: Snapshot
    last_event: TradeEvent
    history: list[TradeEvent]
    reserve_trail: list[tuple[float, float]]
    diagnostics: list[Diagnostic]
    available_strategies: list[StrategyInfo]
    normalizer_config: NormalizerConfig
    submission_depth: Optional[DepthStats] = None
    fee_badge: str = ""
