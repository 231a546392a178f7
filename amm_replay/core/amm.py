"""Constant product liquidity pool with pluggable pricing."""

import math
from dataclasses import dataclass, field
from typing import Callable, Optional

from amm_replay.core.nano import (
    BPS_DENOMINATOR,
    clamp_u64,
    constant_product_output,
    empty_storage,
    ensure_storage_size,
    from_nano,
    to_nano,
)
from amm_replay.core.trade import FeeQuote, PoolRole, SwapSide, Trade

# Smallest input (in the input token) a pool will execute
MIN_INPUT = 1e-6

# quote(input_amount) -> output_amount; 0 or non-finite means "no trade"
QuoteFn = Callable[[float], float]
# side-aware variant used by search and depth helpers
SideQuoteFn = Callable[[SwapSide, float], float]

DEPTH_SEARCH_ITERATIONS = 30
DEPTH_IMPACT_TOLERANCE = 1e-3


@dataclass(frozen=True)
class DepthStats:
    """Liquidity around the current spot price.

    ``buy_depth_*`` is the X a trader receives while pushing the spot up by
    1%/5%; ``sell_depth_*`` is the X a trader sells while pushing it down.
    """
    buy_depth_1: float
    buy_depth_5: float
    sell_depth_1: float
    sell_depth_5: float
    buy_one_x_cost_y: float
    sell_one_x_payout_y: float


@dataclass
class LiquidityPool:
    """Two-asset pool holding X and Y reserves.

    The pool itself does not decide prices: every execution takes a quote
    function supplied by the caller. ``quote_buy_x``/``quote_sell_x`` are the
    constant-product quotes using the pool's own bid/ask fees, which is how
    the normalizer and fee-callback strategies are priced.
    """
    name: str
    role: PoolRole
    reserve_x: float
    reserve_y: float
    bid_fee_bps: int = 30
    ask_fee_bps: int = 30
    storage: bytes = field(default_factory=empty_storage)

    def __post_init__(self) -> None:
        if not (self.reserve_x > 0 and self.reserve_y > 0):
            raise ValueError(
                f"Reserves must be positive, got x={self.reserve_x} y={self.reserve_y}"
            )
        self.storage = ensure_storage_size(self.storage)

    @property
    def k(self) -> float:
        """The constant product invariant."""
        return self.reserve_x * self.reserve_y

    @property
    def spot_price(self) -> float:
        """Current spot price (Y per X) before fees."""
        if not (math.isfinite(self.reserve_x) and math.isfinite(self.reserve_y)):
            return math.nan
        if self.reserve_x <= 0:
            return math.nan
        return self.reserve_y / self.reserve_x

    @property
    def fees(self) -> FeeQuote:
        return FeeQuote(self.bid_fee_bps, self.ask_fee_bps)

    def set_fees(self, quote: FeeQuote) -> None:
        clamped = quote.clamped()
        self.bid_fee_bps = clamped.bid_fee_bps
        self.ask_fee_bps = clamped.ask_fee_bps

    def quote(self, side: SwapSide, input_amount: float) -> float:
        """Constant-product output for ``input_amount`` at the current fees.

        Runs in nano fixed point so results match the integer strategies.
        The ask fee applies when the trader buys X, the bid fee when the
        trader sells X.
        """
        if not math.isfinite(input_amount) or input_amount <= 0:
            return 0.0
        if not (self.reserve_x > 0 and self.reserve_y > 0):
            return 0.0
        if not (math.isfinite(self.reserve_x) and math.isfinite(self.reserve_y)):
            return 0.0

        fee_bps = self.fees.fee_for(side)
        gamma_numerator = max(0, BPS_DENOMINATOR - fee_bps)
        out = constant_product_output(
            int(side),
            to_nano(input_amount),
            to_nano(self.reserve_x),
            to_nano(self.reserve_y),
            gamma_numerator,
        )
        return from_nano(out)

    def quote_buy_x(self, input_y: float) -> float:
        """X received for paying ``input_y``."""
        return self.quote(SwapSide.BUY_X, input_y)

    def quote_sell_x(self, input_x: float) -> float:
        """Y received for selling ``input_x``."""
        return self.quote(SwapSide.SELL_X, input_x)

    def execute_buy_x(self, quote: QuoteFn, input_y: float, timestamp: int) -> Optional[Trade]:
        """Trader pays ``input_y`` and receives X priced by ``quote``."""
        return self._execute(SwapSide.BUY_X, quote, input_y, timestamp)

    def execute_sell_x(self, quote: QuoteFn, input_x: float, timestamp: int) -> Optional[Trade]:
        """Trader pays ``input_x`` and receives Y priced by ``quote``."""
        return self._execute(SwapSide.SELL_X, quote, input_x, timestamp)

    def execute(
        self, side: SwapSide, quote: QuoteFn, input_amount: float, timestamp: int
    ) -> Optional[Trade]:
        if side == SwapSide.BUY_X:
            return self.execute_buy_x(quote, input_amount, timestamp)
        return self.execute_sell_x(quote, input_amount, timestamp)

    def _execute(
        self, side: SwapSide, quote: QuoteFn, input_amount: float, timestamp: int
    ) -> Optional[Trade]:
        if not math.isfinite(input_amount) or input_amount < MIN_INPUT:
            return None

        output_amount = quote(input_amount)
        reserve_out = self.reserve_x if side == SwapSide.BUY_X else self.reserve_y
        if not math.isfinite(output_amount) or output_amount <= 0 or output_amount >= reserve_out:
            return None

        before_x, before_y = self.reserve_x, self.reserve_y
        # The full input stays in the pool, so k never decreases
        if side == SwapSide.BUY_X:
            next_x, next_y = before_x - output_amount, before_y + input_amount
        else:
            next_x, next_y = before_x + input_amount, before_y - output_amount

        if not (math.isfinite(next_x) and math.isfinite(next_y)) or next_x <= 0 or next_y <= 0:
            return None

        self.reserve_x, self.reserve_y = next_x, next_y
        return Trade(
            side=side,
            input_amount=input_amount,
            output_amount=output_amount,
            input_amount_nano=clamp_u64(to_nano(input_amount)),
            output_amount_nano=clamp_u64(to_nano(output_amount)),
            timestamp=timestamp,
            before_x=before_x,
            before_y=before_y,
            reserve_x=next_x,
            reserve_y=next_y,
            spot_before=before_y / max(before_x, 1e-12),
            spot_after=next_y / max(next_x, 1e-12),
        )

    def depth_stats(self, quote: Optional[SideQuoteFn] = None) -> DepthStats:
        """Measure depth by bisecting trade sizes against ``quote``.

        Defaults to the pool's own constant-fee quote.
        """
        quote = quote or self.quote
        return DepthStats(
            buy_depth_1=self._depth_for_impact(quote, 0.01, SwapSide.BUY_X),
            buy_depth_5=self._depth_for_impact(quote, 0.05, SwapSide.BUY_X),
            sell_depth_1=self._depth_for_impact(quote, 0.01, SwapSide.SELL_X),
            sell_depth_5=self._depth_for_impact(quote, 0.05, SwapSide.SELL_X),
            buy_one_x_cost_y=self._input_for_output(quote, SwapSide.BUY_X, 1.0),
            sell_one_x_payout_y=quote(SwapSide.SELL_X, 1.0),
        )

    def _depth_for_impact(self, quote: SideQuoteFn, impact: float, side: SwapSide) -> float:
        spot = self.spot_price
        lo = 0.0
        hi = (self.reserve_y if side == SwapSide.BUY_X else self.reserve_x) * 0.9

        for _ in range(DEPTH_SEARCH_ITERATIONS):
            mid = (lo + hi) / 2
            out = quote(side, mid)
            if side == SwapSide.BUY_X:
                if out <= 0 or out >= self.reserve_x:
                    hi = mid
                    continue
                new_spot = (self.reserve_y + mid) / (self.reserve_x - out)
            else:
                if out <= 0 or out >= self.reserve_y:
                    hi = mid
                    continue
                new_spot = (self.reserve_y - out) / (self.reserve_x + mid)

            achieved = abs(new_spot - spot) / spot
            if abs(achieved - impact) < DEPTH_IMPACT_TOLERANCE:
                return out if side == SwapSide.BUY_X else mid
            if achieved < impact:
                lo = mid
            else:
                hi = mid

        size = (lo + hi) / 2
        return quote(side, size) if side == SwapSide.BUY_X else size

    def _input_for_output(self, quote: SideQuoteFn, side: SwapSide, target: float) -> float:
        """Smallest input whose quoted output reaches ``target`` (bisection)."""
        lo, hi = 0.0, (self.reserve_y if side == SwapSide.BUY_X else self.reserve_x) * 0.5
        if quote(side, hi) < target:
            return math.inf
        for _ in range(DEPTH_SEARCH_ITERATIONS * 2):
            mid = (lo + hi) / 2
            if quote(side, mid) >= target:
                hi = mid
            else:
                lo = mid
        return hi
