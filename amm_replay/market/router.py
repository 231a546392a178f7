"""Order router splitting retail flow between the two pools."""

import math
from dataclasses import dataclass
from typing import Callable

from amm_replay.core.amm import SideQuoteFn
from amm_replay.core.trade import RetailOrder, SwapSide
from amm_replay.market.search import GOLDEN_RATIO_CONJUGATE

MIN_TRADE_SIZE = 1e-4
ALPHA_TOL = 1e-4
AMOUNT_REL_TOL = 1e-4
SCORE_REL_GAP_TOL = 1e-9
ROUTER_MAX_ITERATIONS = 64


@dataclass(frozen=True)
class QuotePoint:
    """Quoted outputs of both legs for one split fraction."""
    alpha: float
    submission_input: float
    normalizer_input: float
    submission_output: float
    normalizer_output: float

    @property
    def score(self) -> float:
        total = self.submission_output + self.normalizer_output
        return total if math.isfinite(total) else -math.inf


@dataclass(frozen=True)
class RouterDecision:
    """How one retail order is split.

    ``alpha`` is the fraction of the order's input sent to the submission
    pool. Inputs are in Y for buy orders and in X for sell orders.
    """
    order_side: str
    side: SwapSide
    alpha: float
    total_input: float
    submission_input: float
    normalizer_input: float
    submission_output: float
    normalizer_output: float


def _best(a: QuotePoint, b: QuotePoint) -> QuotePoint:
    return b if b.score > a.score else a


def _within_rel_gap(a: float, b: float, rel_tol: float) -> bool:
    if not (math.isfinite(a) and math.isfinite(b)):
        return False
    return abs(a - b) <= rel_tol * max(1e-12, abs(a), abs(b))


def maximize_split(total_input: float, evaluate: Callable[[float], QuotePoint]) -> QuotePoint:
    """Golden-section search over alpha in [0, 1] for the best total output.

    Both endpoints and the final centre are evaluated as well, so a
    single-pool route wins whenever it beats every interior split.
    """
    left, right = 0.0, 1.0
    best = _best(evaluate(left), evaluate(right))

    x1 = right - GOLDEN_RATIO_CONJUGATE * (right - left)
    x2 = left + GOLDEN_RATIO_CONJUGATE * (right - left)
    q1, q2 = evaluate(x1), evaluate(x2)
    best = _best(_best(best, q1), q2)

    for _ in range(ROUTER_MAX_ITERATIONS):
        if right - left <= ALPHA_TOL:
            break
        amount_width = total_input * (right - left)
        amount_scale = max(MIN_TRADE_SIZE, abs(total_input * 0.5 * (left + right)))
        if amount_width <= AMOUNT_REL_TOL * amount_scale:
            break
        if _within_rel_gap(q1.score, q2.score, SCORE_REL_GAP_TOL):
            break

        if q1.score < q2.score:
            left, x1, q1 = x1, x2, q2
            x2 = left + GOLDEN_RATIO_CONJUGATE * (right - left)
            q2 = evaluate(x2)
            best = _best(best, q2)
        else:
            right, x2, q2 = x2, x1, q1
            x1 = right - GOLDEN_RATIO_CONJUGATE * (right - left)
            q1 = evaluate(x1)
            best = _best(best, q1)

    return _best(best, evaluate(0.5 * (left + right)))


class OrderRouter:
    """Routes retail orders across the submission and normalizer pools.

    The split maximises the trader's total output, which equalises marginal
    prices across the pools without assuming either pool's curve shape.
    Buy orders split their Y notional; sell orders are converted to X at
    the fair price first.
    """

    def route_order(
        self,
        order: RetailOrder,
        fair_price: float,
        quote_submission: SideQuoteFn,
        quote_normalizer: SideQuoteFn,
    ) -> RouterDecision:
        side = order.swap_side
        if side == SwapSide.BUY_X:
            total = max(0.0, order.size_y)
        else:
            total = max(0.0, order.size_y) / max(fair_price, 1e-9)

        def evaluate(alpha: float) -> QuotePoint:
            alpha = min(1.0, max(0.0, alpha))
            into_submission = total * alpha
            into_normalizer = total - into_submission
            out_submission = (
                quote_submission(side, into_submission) if into_submission > MIN_TRADE_SIZE else 0.0
            )
            out_normalizer = (
                quote_normalizer(side, into_normalizer) if into_normalizer > MIN_TRADE_SIZE else 0.0
            )
            return QuotePoint(alpha, into_submission, into_normalizer, out_submission, out_normalizer)

        best = maximize_split(total, evaluate)
        return RouterDecision(
            order_side=order.side,
            side=side,
            alpha=best.alpha,
            total_input=total,
            submission_input=best.submission_input,
            normalizer_input=best.normalizer_input,
            submission_output=best.submission_output,
            normalizer_output=best.normalizer_output,
        )
