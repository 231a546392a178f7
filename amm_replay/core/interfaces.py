"""Strategy interfaces that pluggable pricing logic implements."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from amm_replay.core.trade import FeeQuote, FlowType, SwapSide


@dataclass(frozen=True)
class SwapContext:
    """What a fee-callback strategy sees after a trade on its pool."""
    is_buy: bool            # True if the pool bought X
    amount_x: float
    amount_y: float
    timestamp: int
    reserve_x: float        # Post-trade reserves
    reserve_y: float
    flow: FlowType
    order_side: Optional[str]
    fair_price: float
    edge_delta: float


class FeeStrategy(ABC):
    """Abstract base class for fee-callback strategies.

    The pool prices every trade as constant product with the last quoted
    bid/ask fees. Implementations must be deterministic functions of their
    inputs and their own state; they must not read clocks or global
    randomness.
    """

    @abstractmethod
    def initialize(self, reserve_x: float, reserve_y: float) -> FeeQuote:
        """Called once per reset with the initial reserves.

        Returns:
            FeeQuote with the fees for the first trade
        """

    @abstractmethod
    def on_swap(self, context: SwapContext) -> FeeQuote:
        """Called after each trade against the pool.

        Returns:
            FeeQuote with the fees for the next trade
        """

    def slots(self) -> dict[str, float]:
        """Named state values, diffed by the engine for diagnostics."""
        return {}

    def get_name(self) -> str:
        """Return the strategy name for display purposes."""
        return self.__class__.__name__


class SwapStrategy(ABC):
    """Abstract base class for swap-output strategies.

    The strategy quotes every trade itself. All amounts are nano fixed
    point integers and ``storage`` is an immutable 1024-byte snapshot of
    the pool's persistent storage. Implementations must be pure: the same
    arguments always give the same result.
    """

    @abstractmethod
    def compute_swap(
        self,
        side: SwapSide,
        input_amount: int,
        reserve_x: int,
        reserve_y: int,
        storage: bytes,
    ) -> int:
        """Return the output amount (nano) for a swap. 0 rejects the trade."""

    def after_swap(
        self,
        side: SwapSide,
        input_amount: int,
        output_amount: int,
        reserve_x: int,
        reserve_y: int,
        step: int,
        storage: bytes,
    ) -> Optional[bytes]:
        """Called after an executed trade with post-trade reserves.

        Returns the new storage contents, or None to leave storage as is.
        """
        return None

    def get_name(self) -> str:
        return self.__class__.__name__
