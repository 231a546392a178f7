"""One-dimensional maximisation for black-box objectives."""

import math
from dataclasses import dataclass
from typing import Callable

GOLDEN_RATIO_CONJUGATE = 0.6180339887
BRACKET_GROWTH = 2.0
BRACKET_MAX_STEPS = 32
GOLDEN_MAX_ITERATIONS = 64
GOLDEN_REL_TOL = 1e-3
MIN_SEARCH_INPUT = 1e-6

Objective = Callable[[float], float]


@dataclass(frozen=True)
class SearchResult:
    x: float
    value: float


def sanitize_score(value: float) -> float:
    """Map non-finite objective values to -inf so they never win."""
    return value if math.isfinite(value) else -math.inf


def bracket_maximum(
    start: float,
    min_input: float,
    max_input: float,
    objective: Objective,
) -> tuple[float, float]:
    """Grow an interval geometrically from ``start`` until the objective turns down.

    Returns ``(lo, hi)`` containing the maximum of a unimodal objective. If
    the objective is not positive at ``start`` the bracket collapses to
    ``[min_input, start]``.
    """
    lo = max(MIN_SEARCH_INPUT, min_input)
    upper = max(lo, max_input)

    mid = min(upper, max(lo, start))
    mid_value = sanitize_score(objective(mid))
    if mid_value <= 0:
        return lo, mid

    hi = min(upper, mid * BRACKET_GROWTH)
    if hi <= mid:
        return lo, mid
    hi_value = sanitize_score(objective(hi))

    for _ in range(BRACKET_MAX_STEPS):
        if hi_value <= mid_value or hi >= upper:
            return lo, hi

        lo, mid, mid_value = mid, hi, hi_value
        next_hi = min(upper, hi * BRACKET_GROWTH)
        if next_hi <= hi:
            return lo, hi
        hi = next_hi
        hi_value = sanitize_score(objective(hi))

    return lo, hi


def golden_section_max(lo: float, hi: float, objective: Objective) -> SearchResult:
    """Golden-section search for the maximum of ``objective`` on ``[lo, hi]``.

    The endpoints are scored too and the best point ever evaluated is
    returned, so a monotone objective still yields its best endpoint.
    Stops when the interval is within ``GOLDEN_REL_TOL`` of its midpoint.
    """
    left = max(0.0, min(lo, hi))
    right = max(MIN_SEARCH_INPUT, max(lo, hi))

    if right <= left:
        return SearchResult(right, sanitize_score(objective(right)))

    best = SearchResult(left, sanitize_score(objective(left)))
    right_value = sanitize_score(objective(right))
    if right_value > best.value:
        best = SearchResult(right, right_value)

    x1 = right - GOLDEN_RATIO_CONJUGATE * (right - left)
    x2 = left + GOLDEN_RATIO_CONJUGATE * (right - left)
    f1 = sanitize_score(objective(x1))
    f2 = sanitize_score(objective(x2))
    if f1 > best.value:
        best = SearchResult(x1, f1)
    if f2 > best.value:
        best = SearchResult(x2, f2)

    for _ in range(GOLDEN_MAX_ITERATIONS):
        if f1 < f2:
            left, x1, f1 = x1, x2, f2
            x2 = left + GOLDEN_RATIO_CONJUGATE * (right - left)
            f2 = sanitize_score(objective(x2))
            if f2 > best.value:
                best = SearchResult(x2, f2)
        else:
            right, x2, f2 = x2, x1, f1
            x1 = right - GOLDEN_RATIO_CONJUGATE * (right - left)
            f1 = sanitize_score(objective(x1))
            if f1 > best.value:
                best = SearchResult(x1, f1)

        scale = max(MIN_SEARCH_INPUT, abs(0.5 * (left + right)))
        if right - left <= GOLDEN_REL_TOL * scale:
            break

    return best
