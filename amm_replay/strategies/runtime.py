"""Strategy references, runtimes and the registry that resolves them.

A strategy is referenced as ``KIND:ID`` where kind is ``fee`` (fee-callback
strategies priced by the pool as constant product) or ``swap`` (swap-output
strategies that quote every trade themselves).
"""

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Literal, Optional, Union

from amm_replay.core.amm import LiquidityPool
from amm_replay.core.interfaces import FeeStrategy, SwapContext, SwapStrategy
from amm_replay.core.nano import clamp_u64, diff_storage, ensure_storage_size, from_nano, to_nano
from amm_replay.core.trade import FeeQuote, FlowType, SwapSide, Trade, TradeSide
from amm_replay.errors import ConfigurationError, StrategyExecutionError, UnknownStrategyError
from amm_replay.strategies.builtins import builtin_fee_strategies, builtin_swap_strategies

logger = logging.getLogger(__name__)

StrategyKind = Literal["fee", "swap"]
STRATEGY_KINDS = ("fee", "swap")


@dataclass(frozen=True)
class StrategyRef:
    kind: StrategyKind
    id: str

    def __post_init__(self) -> None:
        if self.kind not in STRATEGY_KINDS:
            raise ConfigurationError(f"Strategy kind must be one of {STRATEGY_KINDS}, got {self.kind!r}")
        if not self.id:
            raise ConfigurationError("Strategy id must not be empty")

    @classmethod
    def parse(cls, text: str) -> "StrategyRef":
        """Parse ``KIND:ID``, e.g. ``swap:baseline-30bps``."""
        kind, sep, strategy_id = text.partition(":")
        if not sep:
            raise ConfigurationError(f"Strategy reference must look like KIND:ID, got {text!r}")
        return cls(kind=kind.strip(), id=strategy_id.strip())

    def __str__(self) -> str:
        return f"{self.kind}:{self.id}"


@dataclass(frozen=True)
class StrategyInfo:
    kind: StrategyKind
    id: str
    name: str


@dataclass(frozen=True)
class StorageChange:
    offset: int
    before: int
    after: int


@dataclass(frozen=True)
class StrategyExecution:
    """What the strategy did in response to one submission trade."""
    kind: StrategyKind
    fees_before: Optional[FeeQuote] = None
    fees_after: Optional[FeeQuote] = None
    storage_changes: tuple[StorageChange, ...] = ()
    slot_changes: tuple[tuple[str, float, float], ...] = ()
    error: Optional[str] = None

    @property
    def fee_changed(self) -> bool:
        return self.fees_before != self.fees_after

    @property
    def storage_changed_bytes(self) -> int:
        return len(self.storage_changes)


class StrategyRuntime(ABC):
    """A resolved strategy bound to the submission pool.

    Exactly two variants exist, one per strategy contract. The engine only
    talks to this interface; it never inspects the strategy itself.
    """

    kind: StrategyKind

    def __init__(self, ref: StrategyRef, name: str):
        self.ref = ref
        self.name = name
        self._failures: dict[str, int] = {}

    @property
    def constant_fee(self) -> bool:
        """Whether quotes are constant product with the pool's own fees."""
        return False

    @abstractmethod
    def on_reset(self, pool: LiquidityPool) -> None:
        """Prepare the freshly created submission pool."""

    @abstractmethod
    def quote(self, pool: LiquidityPool, side: SwapSide, input_amount: float) -> float:
        """Output amount the submission pool gives for ``input_amount``."""

    @abstractmethod
    def after_trade(
        self,
        pool: LiquidityPool,
        trade: Trade,
        step: int,
        flow: FlowType,
        order_side: Optional[str],
        fair_price: float,
        edge_delta: float,
    ) -> StrategyExecution:
        """Notify the strategy of an executed trade on ``pool``."""

    def fee_badge(self, pool: LiquidityPool) -> str:
        return f"fee: {pool.bid_fee_bps}/{pool.ask_fee_bps} bps"

    def _record_failure(self, message: str) -> None:
        if message not in self._failures:
            logger.warning("Strategy %s failed: %s", self.ref, message)
        self._failures[message] = self._failures.get(message, 0) + 1

    def drain_failures(self) -> list[tuple[str, int]]:
        """Return ``(message, count)`` for failures since the last drain."""
        failures = list(self._failures.items())
        self._failures.clear()
        return failures


class FeeCallbackRuntime(StrategyRuntime):
    """Runs a FeeStrategy: the pool is priced as constant product with its fees.

    Strategy errors are fatal and surface as StrategyExecutionError.
    """

    kind: StrategyKind = "fee"

    def __init__(self, ref: StrategyRef, strategy: FeeStrategy, name: Optional[str] = None):
        super().__init__(ref, name or strategy.get_name())
        self.strategy = strategy

    @property
    def constant_fee(self) -> bool:
        return True

    def on_reset(self, pool: LiquidityPool) -> None:
        try:
            quote = self.strategy.initialize(pool.reserve_x, pool.reserve_y)
        except Exception as e:
            raise StrategyExecutionError(f"Strategy {self.ref} initialize() failed: {e}") from e
        pool.set_fees(self._validate(quote, "initialize"))

    def quote(self, pool: LiquidityPool, side: SwapSide, input_amount: float) -> float:
        return pool.quote(side, input_amount)

    def after_trade(self, pool, trade, step, flow, order_side, fair_price, edge_delta):
        fees_before = pool.fees
        slots_before = self._slots()
        context = SwapContext(
            is_buy=trade.amm_side == TradeSide.BUY,
            amount_x=trade.amount_x,
            amount_y=trade.amount_y,
            timestamp=step,
            reserve_x=trade.reserve_x,
            reserve_y=trade.reserve_y,
            flow=flow,
            order_side=order_side,
            fair_price=fair_price,
            edge_delta=edge_delta,
        )
        try:
            quote = self.strategy.on_swap(context)
        except Exception as e:
            raise StrategyExecutionError(f"Strategy {self.ref} on_swap() failed: {e}") from e

        pool.set_fees(self._validate(quote, "on_swap"))
        slots_after = self._slots()
        slot_changes = tuple(
            (key, slots_before.get(key, 0.0), value)
            for key, value in sorted(slots_after.items())
            if slots_before.get(key) != value
        )
        return StrategyExecution(
            kind=self.kind,
            fees_before=fees_before,
            fees_after=pool.fees,
            slot_changes=slot_changes,
        )

    def _validate(self, quote: FeeQuote, method: str) -> FeeQuote:
        if not isinstance(quote, FeeQuote):
            raise StrategyExecutionError(
                f"Strategy {self.ref} {method}() returned {type(quote).__name__}, expected FeeQuote"
            )
        try:
            return quote.clamped()
        except (TypeError, ValueError, OverflowError) as e:
            raise StrategyExecutionError(
                f"Strategy {self.ref} {method}() returned invalid fees: {e}"
            ) from e

    def _slots(self) -> dict[str, float]:
        try:
            return dict(self.strategy.slots())
        except Exception as e:
            raise StrategyExecutionError(f"Strategy {self.ref} slots() failed: {e}") from e

    def fee_badge(self, pool: LiquidityPool) -> str:
        return f"fixed fee: {pool.bid_fee_bps}/{pool.ask_fee_bps} bps"


class SwapOutputRuntime(StrategyRuntime):
    """Runs a SwapStrategy against the pool's reserves and storage.

    Failures never stop the run: a failed quote prices the trade at zero
    (so it is rejected) and a failed ``after_swap`` leaves storage as is.
    """

    kind: StrategyKind = "swap"

    def __init__(self, ref: StrategyRef, strategy: SwapStrategy, name: Optional[str] = None):
        super().__init__(ref, name or strategy.get_name())
        self.strategy = strategy

    def on_reset(self, pool: LiquidityPool) -> None:
        pool.storage = ensure_storage_size(b"")

    def quote(self, pool: LiquidityPool, side: SwapSide, input_amount: float) -> float:
        if not math.isfinite(input_amount) or input_amount <= 0:
            return 0.0
        try:
            output = self.strategy.compute_swap(
                side,
                to_nano(input_amount),
                to_nano(pool.reserve_x),
                to_nano(pool.reserve_y),
                pool.storage,
            )
            return from_nano(clamp_u64(int(output)))
        except Exception as e:
            self._record_failure(f"compute_swap: {e}")
            return 0.0

    def after_trade(self, pool, trade, step, flow, order_side, fair_price, edge_delta):
        before = pool.storage
        try:
            result = self.strategy.after_swap(
                trade.side,
                trade.input_amount_nano,
                trade.output_amount_nano,
                to_nano(trade.reserve_x),
                to_nano(trade.reserve_y),
                step,
                before,
            )
            if result is not None:
                result = ensure_storage_size(result)
        except Exception as e:
            message = f"after_swap: {e}"
            self._record_failure(message)
            return StrategyExecution(kind=self.kind, error=message)

        if result is not None:
            pool.storage = result
        changes = tuple(
            StorageChange(offset, old, new)
            for offset, old, new in diff_storage(before, pool.storage)
        )
        return StrategyExecution(kind=self.kind, storage_changes=changes)

    def fee_badge(self, pool: LiquidityPool) -> str:
        return "custom swap curve"


FeeFactory = Callable[[], FeeStrategy]
SwapFactory = Callable[[], SwapStrategy]


class StrategyRegistry:
    """Maps strategy references to factories and resolves them to runtimes."""

    def __init__(self):
        self._entries: dict[tuple[str, str], tuple[str, Callable]] = {}

    def register_fee(self, strategy_id: str, name: str, factory: FeeFactory) -> None:
        self._entries[("fee", strategy_id)] = (name, factory)

    def register_swap(self, strategy_id: str, name: str, factory: SwapFactory) -> None:
        self._entries[("swap", strategy_id)] = (name, factory)

    def __contains__(self, ref: StrategyRef) -> bool:
        return (ref.kind, ref.id) in self._entries

    def available(self) -> list[StrategyInfo]:
        return [
            StrategyInfo(kind=kind, id=strategy_id, name=name)
            for (kind, strategy_id), (name, _) in self._entries.items()
        ]

    def resolve(self, ref: Union[StrategyRef, str]) -> StrategyRuntime:
        """Build a fresh runtime for ``ref``.

        Raises:
            UnknownStrategyError: If nothing is registered under ``ref``
        """
        if isinstance(ref, str):
            ref = StrategyRef.parse(ref)
        entry = self._entries.get((ref.kind, ref.id))
        if entry is None:
            raise UnknownStrategyError(ref.kind, ref.id)

        name, factory = entry
        strategy = factory()
        if ref.kind == "fee":
            if not isinstance(strategy, FeeStrategy):
                raise ConfigurationError(f"Strategy {ref} is not a FeeStrategy")
            return FeeCallbackRuntime(ref, strategy, name)
        if not isinstance(strategy, SwapStrategy):
            raise ConfigurationError(f"Strategy {ref} is not a SwapStrategy")
        return SwapOutputRuntime(ref, strategy, name)


def default_registry() -> StrategyRegistry:
    """Registry holding every builtin strategy."""
    registry = StrategyRegistry()
    for strategy_id, (name, cls, kwargs) in builtin_fee_strategies().items():
        registry.register_fee(strategy_id, name, lambda cls=cls, kwargs=kwargs: cls(**kwargs))
    for strategy_id, (name, cls, kwargs) in builtin_swap_strategies().items():
        registry.register_swap(strategy_id, name, lambda cls=cls, kwargs=kwargs: cls(**kwargs))
    return registry
