"""Deterministic, replayable two-pool AMM simulator."""

from amm_replay.core.interfaces import FeeStrategy, SwapContext, SwapStrategy
from amm_replay.core.trade import FeeQuote, SwapSide, Trade, TradeSide
from amm_replay.errors import (
    ConfigurationError,
    EngineStateError,
    StrategyExecutionError,
    UnknownStrategyError,
)
from amm_replay.simulation.config import SimulationConfig
from amm_replay.simulation.engine import SimulationEngine
from amm_replay.strategies.runtime import StrategyRef, StrategyRegistry, default_registry

__all__ = [
    "FeeStrategy",
    "SwapContext",
    "SwapStrategy",
    "FeeQuote",
    "SwapSide",
    "Trade",
    "TradeSide",
    "ConfigurationError",
    "EngineStateError",
    "StrategyExecutionError",
    "UnknownStrategyError",
    "SimulationConfig",
    "SimulationEngine",
    "StrategyRef",
    "StrategyRegistry",
    "default_registry",
]
