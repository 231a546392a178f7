"""Retail order flow with Poisson arrivals and log-normal sizes."""

import math

import numpy as np

from amm_replay.core.rng import SeededRng
from amm_replay.core.trade import RetailOrder

SIZE_SIGMA = 1.2
MIN_ORDER_SIZE_Y = 4.0
MAX_ORDER_SIZE_Y = 100.0
BUY_PROB = 0.5
MIN_ARRIVAL_RATE = 0.01
MIN_UNIFORM = 1e-12


def sample_poisson(arrival_rate: float, rng: SeededRng) -> int:
    """Knuth's multiply-until-below method using ``rng.next()`` uniforms."""
    threshold = math.exp(-max(MIN_ARRIVAL_RATE, arrival_rate))
    count = 0
    product = 1.0
    while product > threshold:
        count += 1
        product *= max(MIN_UNIFORM, rng.next())
    return count - 1


def sample_log_normal(mean: float, sigma: float, rng: SeededRng) -> float:
    """Log-normal draw whose arithmetic mean is ``mean``."""
    sigma = max(0.01, sigma)
    mu = float(np.log(max(0.01, mean)) - 0.5 * sigma * sigma)
    return float(np.exp(mu + sigma * rng.gaussian()))


class RetailTrader:
    """Generates uninformed retail flow.

    Retail traders arrive according to a Poisson process and submit
    orders of random size. They buy or sell with equal probability by
    default. All draws come from the shared engine RNG, in a fixed order
    per order: side first, then size.
    """

    def __init__(
        self,
        arrival_rate: float = 0.8,
        mean_size: float = 20.0,
        size_sigma: float = SIZE_SIGMA,
        buy_prob: float = BUY_PROB,
    ):
        """
        Args:
            arrival_rate: Expected number of orders per time step (lambda)
            mean_size: Mean order size (in Y terms)
            size_sigma: Lognormal sigma (log-space)
            buy_prob: Probability of a buy order
        """
        self.arrival_rate = arrival_rate
        self.mean_size = mean_size
        self.size_sigma = size_sigma
        self.buy_prob = buy_prob

    def generate_orders(self, rng: SeededRng) -> list[RetailOrder]:
        """Generate retail orders for one time step.

        Returns:
            List of retail orders (may be empty if no arrivals)
        """
        n_arrivals = sample_poisson(self.arrival_rate, rng)

        orders = []
        for _ in range(n_arrivals):
            side = "buy" if rng.next() < self.buy_prob else "sell"
            size = sample_log_normal(self.mean_size, self.size_sigma, rng)
            size = min(MAX_ORDER_SIZE_Y, max(MIN_ORDER_SIZE_Y, size))
            orders.append(RetailOrder(side=side, size_y=size))

        return orders
