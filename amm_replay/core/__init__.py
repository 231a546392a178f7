"""Core pool, trade and strategy components."""

from amm_replay.core.interfaces import FeeStrategy, SwapContext, SwapStrategy
from amm_replay.core.trade import FeeQuote, FlowType, PoolRole, RetailOrder, SwapSide, Trade, TradeSide
from amm_replay.core.amm import LiquidityPool
from amm_replay.core.rng import SeededRng

__all__ = [
    "FeeStrategy",
    "SwapContext",
    "SwapStrategy",
    "FeeQuote",
    "FlowType",
    "PoolRole",
    "RetailOrder",
    "SwapSide",
    "Trade",
    "TradeSide",
    "LiquidityPool",
    "SeededRng",
]
