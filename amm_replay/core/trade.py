"""Trade data classes."""

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Literal

from amm_replay.core.nano import BPS_DENOMINATOR

MAX_FEE_BPS = 1000


class SwapSide(IntEnum):
    """Side of a swap from the trader's perspective.

    The integer values are the wire values passed to swap-output strategies.
    """
    BUY_X = 0   # Trader pays Y, receives X
    SELL_X = 1  # Trader pays X, receives Y


class TradeSide(Enum):
    """Side of a trade from the AMM's perspective."""
    BUY = "buy"    # AMM buys X (trader sells X)
    SELL = "sell"  # AMM sells X (trader buys X)


class FlowType(Enum):
    """Who generated an event on the tape."""
    SYSTEM = "system"
    ARBITRAGE = "arbitrage"
    RETAIL = "retail"


class PoolRole(Enum):
    SUBMISSION = "submission"
    NORMALIZER = "normalizer"


def clamp_bps(value: float) -> int:
    """Round and clamp a fee to [0, MAX_FEE_BPS] basis points."""
    return max(0, min(MAX_FEE_BPS, int(round(value))))


@dataclass(frozen=True)
class FeeQuote:
    """Fee quote returned by a fee-callback strategy.

    Fees are in basis points (30 = 0.30%). The bid fee applies when the AMM
    buys X, the ask fee when the AMM sells X.
    """
    bid_fee_bps: int
    ask_fee_bps: int

    def __post_init__(self) -> None:
        if self.bid_fee_bps < 0:
            raise ValueError(f"bid_fee_bps must be >= 0, got {self.bid_fee_bps}")
        if self.ask_fee_bps < 0:
            raise ValueError(f"ask_fee_bps must be >= 0, got {self.ask_fee_bps}")

    @classmethod
    def symmetric(cls, fee_bps: int) -> "FeeQuote":
        """Create a symmetric fee quote (same bid and ask)."""
        return cls(bid_fee_bps=fee_bps, ask_fee_bps=fee_bps)

    def clamped(self) -> "FeeQuote":
        return FeeQuote(clamp_bps(self.bid_fee_bps), clamp_bps(self.ask_fee_bps))

    def fee_for(self, side: SwapSide) -> int:
        """Fee charged on a trader's swap (ask when the trader buys X)."""
        return self.ask_fee_bps if side == SwapSide.BUY_X else self.bid_fee_bps


def implied_fee_bps(
    side: SwapSide, reserve_x: float, reserve_y: float, input_amount: float, output_amount: float
) -> int:
    """Fee implied by comparing an output to the zero-fee constant-product curve."""
    if side == SwapSide.BUY_X:
        no_fee = reserve_x * input_amount / (reserve_y + input_amount)
    else:
        no_fee = reserve_y * input_amount / (reserve_x + input_amount)
    if no_fee <= 0:
        return 0
    return max(0, int(round((1.0 - output_amount / no_fee) * BPS_DENOMINATOR)))


@dataclass(frozen=True)
class Trade:
    """One executed swap against a pool.

    Amounts are floats in token units; the ``*_nano`` fields carry the same
    amounts in fixed point as seen by swap-output strategies.
    """
    side: SwapSide
    input_amount: float
    output_amount: float
    input_amount_nano: int
    output_amount_nano: int
    timestamp: int
    before_x: float
    before_y: float
    reserve_x: float        # Post-trade
    reserve_y: float
    spot_before: float
    spot_after: float

    @property
    def amm_side(self) -> TradeSide:
        return TradeSide.SELL if self.side == SwapSide.BUY_X else TradeSide.BUY

    @property
    def amount_x(self) -> float:
        """X that changed hands."""
        return self.output_amount if self.side == SwapSide.BUY_X else self.input_amount

    @property
    def amount_y(self) -> float:
        """Y that changed hands."""
        return self.input_amount if self.side == SwapSide.BUY_X else self.output_amount

    @property
    def implied_fee_bps(self) -> int:
        return implied_fee_bps(
            self.side, self.before_x, self.before_y, self.input_amount, self.output_amount
        )

    def value_edge(self, fair_price: float) -> float:
        """Value the AMM gained on this trade, marked at ``fair_price``.

        Positive when the AMM received more than it paid out.
        """
        if self.side == SwapSide.BUY_X:
            return self.input_amount - self.output_amount * fair_price
        return self.input_amount * fair_price - self.output_amount


@dataclass(frozen=True)
class RetailOrder:
    """A retail order to be routed to AMMs."""
    side: Literal["buy", "sell"]  # From trader's perspective, re: X
    size_y: float                 # Notional in Y terms

    @property
    def swap_side(self) -> SwapSide:
        return SwapSide.BUY_X if self.side == "buy" else SwapSide.SELL_X
