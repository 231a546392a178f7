"""Geometric Brownian Motion fair price process."""

from dataclasses import dataclass, field

import numpy as np

from amm_replay.core.rng import SeededRng

MIN_PRICE = 1.0


@dataclass
class GBMPriceProcess:
    """Evolves the fair price using Geometric Brownian Motion.

    The GBM model: dS = mu * S * dt + sigma * S * dW
    where:
    - S is the price
    - mu is the drift
    - sigma is the per-step volatility
    - dW is a Wiener process increment

    The process owns no randomness; each step consumes one Gaussian shock
    supplied by the caller. The price never falls below ``MIN_PRICE``.
    """
    initial_price: float
    mu: float = 0.0           # Drift
    sigma: float = 0.001      # Per-step volatility
    dt: float = 1.0           # Time step
    _current_price: float = field(init=False)

    def __post_init__(self) -> None:
        if self.initial_price <= 0:
            raise ValueError(f"initial_price must be positive, got {self.initial_price}")
        if self.sigma < 0:
            raise ValueError(f"sigma must be >= 0, got {self.sigma}")
        self._current_price = float(self.initial_price)

    def reset(self) -> None:
        """Reset the price process to initial state."""
        self._current_price = float(self.initial_price)

    @property
    def current_price(self) -> float:
        return self._current_price

    def step(self, gaussian_shock: float) -> float:
        """Advance one time step with the given standard normal draw.

        Returns:
            The new fair price
        """
        # S(t+dt) = S(t) * exp((mu - 0.5*sigma^2)*dt + sigma*sqrt(dt)*Z)
        drift = (self.mu - 0.5 * self.sigma ** 2) * self.dt
        diffusion = self.sigma * np.sqrt(self.dt) * gaussian_shock
        next_price = float(self._current_price * np.exp(drift + diffusion))
        self._current_price = max(MIN_PRICE, next_price)
        return self._current_price

    def advance(self, rng: SeededRng) -> float:
        """Draw one Gaussian from ``rng`` and step."""
        return self.step(rng.gaussian())

    def generate_path(self, n_steps: int, rng: SeededRng) -> list[float]:
        """Generate a price path of ``n_steps`` prices, starting with the current one."""
        path = [self.current_price]
        for _ in range(n_steps - 1):
            path.append(self.advance(rng))
        return path
