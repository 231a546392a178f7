"""Simulation constants, sampled regimes and run configuration."""

import dataclasses
from dataclasses import dataclass

from amm_replay.core.rng import SeededRng
from amm_replay.errors import ConfigurationError
from amm_replay.strategies.runtime import StrategyRef

INITIAL_RESERVE_X = 100.0
INITIAL_RESERVE_Y = 10_000.0
INITIAL_PRICE = 100.0

GBM_MU = 0.0
GBM_DT = 1.0

# Ticks attempted per step_one before giving up on producing an event
TICK_RETRY_GUARD = 8
RESERVE_TRAIL_CAP = 180
TRAIL_MIN_DX = 1e-6
TRAIL_MIN_DY = 1e-3
MAX_DIAGNOSTICS = 200

# Playback speed -> (interval in ms, label)
SPEED_PROFILE = {
    1: (1000, "1x"),
    2: (500, "2x"),
    3: (250, "4x"),
    4: (100, "10x"),
    5: (50, "20x"),
    6: (10, "100x"),
}

DEFAULT_STRATEGY = StrategyRef(kind="swap", id="starter-500bps")


@dataclass(frozen=True)
class RegimeRanges:
    """Bounds each regime parameter is drawn from on reset."""
    volatility_min: float
    volatility_max: float
    arrival_rate_min: float
    arrival_rate_max: float
    order_size_mean_min: float
    order_size_mean_max: float
    normalizer_fee_min: float
    normalizer_fee_max: float
    normalizer_liquidity_min: float
    normalizer_liquidity_max: float


REGIME_RANGES = RegimeRanges(
    volatility_min=0.0001,     # 0.01% per step
    volatility_max=0.007,      # 0.70% per step
    arrival_rate_min=0.4,
    arrival_rate_max=1.2,
    order_size_mean_min=12.0,
    order_size_mean_max=28.0,
    normalizer_fee_min=30.0,   # bps
    normalizer_fee_max=80.0,
    normalizer_liquidity_min=0.4,
    normalizer_liquidity_max=2.0,
)


def _midpoint(min_val: float, max_val: float) -> float:
    return (min_val + max_val) / 2


@dataclass(frozen=True)
class NormalizerConfig:
    fee_bps: int
    liquidity_mult: float


@dataclass(frozen=True)
class RegimeParameters:
    """Market regime for one run, drawn once per reset."""
    volatility: float
    arrival_rate: float
    order_size_mean: float
    normalizer_fee_bps: int
    normalizer_liquidity_mult: float

    @classmethod
    def sample(cls, rng: SeededRng, ranges: RegimeRanges = REGIME_RANGES) -> "RegimeParameters":
        """Draw a regime. The draw order is part of the replay contract."""
        volatility = rng.between(ranges.volatility_min, ranges.volatility_max)
        arrival_rate = rng.between(ranges.arrival_rate_min, ranges.arrival_rate_max)
        order_size_mean = rng.between(ranges.order_size_mean_min, ranges.order_size_mean_max)
        normalizer_fee_bps = int(round(rng.between(ranges.normalizer_fee_min, ranges.normalizer_fee_max)))
        normalizer_liquidity_mult = rng.between(
            ranges.normalizer_liquidity_min, ranges.normalizer_liquidity_max
        )
        return cls(
            volatility=volatility,
            arrival_rate=arrival_rate,
            order_size_mean=order_size_mean,
            normalizer_fee_bps=normalizer_fee_bps,
            normalizer_liquidity_mult=normalizer_liquidity_mult,
        )

    @classmethod
    def nominal(cls, ranges: RegimeRanges = REGIME_RANGES) -> "RegimeParameters":
        """Midpoint of every range."""
        return cls(
            volatility=_midpoint(ranges.volatility_min, ranges.volatility_max),
            arrival_rate=_midpoint(ranges.arrival_rate_min, ranges.arrival_rate_max),
            order_size_mean=_midpoint(ranges.order_size_mean_min, ranges.order_size_mean_max),
            normalizer_fee_bps=int(round(_midpoint(ranges.normalizer_fee_min, ranges.normalizer_fee_max))),
            normalizer_liquidity_mult=_midpoint(
                ranges.normalizer_liquidity_min, ranges.normalizer_liquidity_max
            ),
        )

    @property
    def normalizer(self) -> NormalizerConfig:
        return NormalizerConfig(self.normalizer_fee_bps, self.normalizer_liquidity_mult)


@dataclass(frozen=True)
class SimulationConfig:
    seed: int = 1337
    strategy: StrategyRef = DEFAULT_STRATEGY
    playback_speed: int = 3
    max_tape_rows: int = 20

    def __post_init__(self) -> None:
        if isinstance(self.seed, bool) or not isinstance(self.seed, int):
            raise ConfigurationError(f"seed must be an integer, got {self.seed!r}")
        if not isinstance(self.strategy, StrategyRef):
            raise ConfigurationError(f"strategy must be a StrategyRef, got {self.strategy!r}")
        if self.playback_speed not in SPEED_PROFILE:
            raise ConfigurationError(
                f"playback_speed must be one of {sorted(SPEED_PROFILE)}, got {self.playback_speed}"
            )
        if isinstance(self.max_tape_rows, bool) or not isinstance(self.max_tape_rows, int):
            raise ConfigurationError(f"max_tape_rows must be an integer, got {self.max_tape_rows!r}")
        if self.max_tape_rows < 1:
            raise ConfigurationError(f"max_tape_rows must be >= 1, got {self.max_tape_rows}")

    @property
    def playback_interval_ms(self) -> int:
        return SPEED_PROFILE[self.playback_speed][0]

    def with_updates(self, **changes) -> "SimulationConfig":
        """Return a copy with ``changes`` applied and validated."""
        names = {f.name for f in dataclasses.fields(self)}
        unknown = sorted(set(changes) - names)
        if unknown:
            raise ConfigurationError(f"Unknown config fields: {', '.join(unknown)}")
        if isinstance(changes.get("strategy"), str):
            changes["strategy"] = StrategyRef.parse(changes["strategy"])
        return dataclasses.replace(self, **changes)
