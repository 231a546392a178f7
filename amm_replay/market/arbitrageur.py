"""Arbitrageur logic for extracting profit from mispriced pools."""

import logging
import math
from dataclasses import dataclass
from typing import Optional

from amm_replay.core.amm import MIN_INPUT, LiquidityPool, SideQuoteFn
from amm_replay.core.nano import BPS_DENOMINATOR
from amm_replay.core.trade import FeeQuote, SwapSide, Trade
from amm_replay.market.search import bracket_maximum, golden_section_max

logger = logging.getLogger(__name__)

NO_ARB_REL_EPS = 1e-4
MIN_ARB_PROFIT_Y = 0.01
MIN_ARB_NOTIONAL_Y = 0.01
MAX_INPUT_AMOUNT = 1e9
BRACKET_START_FRACTION = 0.001


@dataclass(frozen=True)
class ArbCandidate:
    """A profitable trade against one pool, sized before execution."""
    side: SwapSide          # Trader perspective
    input_amount: float
    expected_profit: float  # In Y, at the fair price


@dataclass(frozen=True)
class ArbResult:
    """Result of an executed arbitrage."""
    candidate: ArbCandidate
    trade: Trade
    profit: float           # Realised, in Y at the fair price


def arb_profit(side: SwapSide, input_amount: float, output_amount: float, fair_price: float) -> float:
    """Arbitrageur's profit in Y, valuing X at ``fair_price``."""
    if side == SwapSide.BUY_X:
        return output_amount * fair_price - input_amount
    return output_amount - input_amount * fair_price


def _pick_best(
    buy: Optional[ArbCandidate], sell: Optional[ArbCandidate]
) -> Optional[ArbCandidate]:
    if buy is not None and sell is not None:
        return sell if sell.expected_profit > buy.expected_profit else buy
    return buy if buy is not None else sell


class Arbitrageur:
    """Finds and executes the profit-maximising trade against a pool.

    Uses closed-form solutions for pools known to price as constant product
    with a fixed fee. For reserves (x, y), k=xy, fee f (fee-on-input),
    γ = 1 - f, and fair price p (Y per X):
    - Buy X (pay Y): reserves move to y' = sqrt(p·k·γ), input Δy = (y' - y)/γ
    - Sell X (pay X): reserves move to x' = sqrt(k·γ/p), input Δx = (x' - x)/γ

    Pools whose pricing is a black box are searched numerically instead:
    the profit curve is bracketed from a small start and refined by
    golden-section search.
    """

    def __init__(self, min_profit: float = MIN_ARB_PROFIT_Y):
        self.min_profit = min_profit

    @staticmethod
    def _min_inputs(fair_price: float) -> tuple[float, float]:
        min_buy = max(MIN_INPUT, MIN_ARB_NOTIONAL_Y)
        min_sell = max(MIN_INPUT, MIN_ARB_NOTIONAL_Y / max(fair_price, 1e-9))
        return min_buy, min_sell

    def _accept(
        self, side: SwapSide, input_amount: float, quote: SideQuoteFn, fair_price: float
    ) -> Optional[ArbCandidate]:
        output = quote(side, input_amount)
        if not math.isfinite(output) or output <= 0:
            return None
        profit = arb_profit(side, input_amount, output, fair_price)
        if profit < self.min_profit:
            return None
        return ArbCandidate(side=side, input_amount=input_amount, expected_profit=profit)

    def find_closed_form(
        self,
        pool: LiquidityPool,
        fair_price: float,
        quote: SideQuoteFn,
        fees: Optional[FeeQuote] = None,
    ) -> Optional[ArbCandidate]:
        """Optimal trade for a constant-product pool with fixed fees."""
        fees = fees or pool.fees
        x, y = pool.reserve_x, pool.reserve_y
        if x <= 0 or y <= 0:
            return None
        k = x * y
        min_buy, min_sell = self._min_inputs(fair_price)

        buy = None
        gamma_ask = (BPS_DENOMINATOR - fees.ask_fee_bps) / BPS_DENOMINATOR
        if gamma_ask > 0:
            target_y = math.sqrt(fair_price * k * gamma_ask)
            if math.isfinite(target_y) and target_y > y:
                input_y = min(MAX_INPUT_AMOUNT, max(min_buy, (target_y - y) / gamma_ask))
                buy = self._accept(SwapSide.BUY_X, input_y, quote, fair_price)

        sell = None
        gamma_bid = (BPS_DENOMINATOR - fees.bid_fee_bps) / BPS_DENOMINATOR
        if gamma_bid > 0:
            target_x = math.sqrt(k * gamma_bid / fair_price)
            if math.isfinite(target_x) and target_x > x:
                input_x = min(MAX_INPUT_AMOUNT, max(min_sell, (target_x - x) / gamma_bid))
                sell = self._accept(SwapSide.SELL_X, input_x, quote, fair_price)

        return _pick_best(buy, sell)

    def find_by_search(
        self, pool: LiquidityPool, fair_price: float, quote: SideQuoteFn
    ) -> Optional[ArbCandidate]:
        """Optimal trade for a pool whose pricing can only be queried."""
        min_buy, min_sell = self._min_inputs(fair_price)
        candidates = []

        for side, reserve_in, min_input in (
            (SwapSide.BUY_X, pool.reserve_y, min_buy),
            (SwapSide.SELL_X, pool.reserve_x, min_sell),
        ):
            def objective(amount: float, side: SwapSide = side) -> float:
                return arb_profit(side, amount, quote(side, amount), fair_price)

            start = min(MAX_INPUT_AMOUNT, max(min_input, reserve_in * BRACKET_START_FRACTION))
            lo, hi = bracket_maximum(start, min_input, MAX_INPUT_AMOUNT, objective)
            best = golden_section_max(lo, hi, objective)
            candidate = None
            if best.x >= min_input:
                candidate = self._accept(side, best.x, quote, fair_price)
            candidates.append(candidate)

        return _pick_best(*candidates)

    def find_arb_opportunity(
        self,
        pool: LiquidityPool,
        fair_price: float,
        quote: SideQuoteFn,
        constant_fee: bool,
    ) -> Optional[ArbCandidate]:
        """Find the optimal arbitrage trade for a pool.

        Args:
            pool: The pool to arbitrage
            fair_price: The fair market price (Y per X)
            quote: Side-aware quote for the pool's current pricing
            constant_fee: Whether ``pool`` prices as constant product with
                its own bid/ask fees, enabling the closed form

        Returns:
            ArbCandidate with the optimal trade, or None if no profitable arb
        """
        if not math.isfinite(fair_price) or fair_price <= 0:
            return None
        spot = pool.spot_price
        if not math.isfinite(spot):
            return None
        if abs(spot - fair_price) / fair_price < NO_ARB_REL_EPS:
            return None

        if constant_fee:
            return self.find_closed_form(pool, fair_price, quote)
        return self.find_by_search(pool, fair_price, quote)

    def execute_arb(
        self,
        pool: LiquidityPool,
        fair_price: float,
        quote: SideQuoteFn,
        timestamp: int,
        constant_fee: bool,
    ) -> Optional[ArbResult]:
        """Find and execute the optimal arbitrage trade.

        Returns:
            ArbResult if an arb was executed, None otherwise
        """
        candidate = self.find_arb_opportunity(pool, fair_price, quote, constant_fee)
        if candidate is None:
            logger.debug("No arbitrage on %s at fair price %.6f", pool.name, fair_price)
            return None

        side = candidate.side
        trade = pool.execute(side, lambda amount: quote(side, amount), candidate.input_amount, timestamp)
        if trade is None:
            logger.debug("Arbitrage on %s rejected by the pool", pool.name)
            return None

        profit = arb_profit(side, trade.input_amount, trade.output_amount, fair_price)
        return ArbResult(candidate=candidate, trade=trade, profit=profit)
