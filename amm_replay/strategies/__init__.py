"""Builtin strategies and the runtime that drives them."""

from amm_replay.strategies.runtime import (
    FeeCallbackRuntime,
    StrategyExecution,
    StrategyInfo,
    StrategyRef,
    StrategyRegistry,
    StrategyRuntime,
    SwapOutputRuntime,
    default_registry,
)

__all__ = [
    "FeeCallbackRuntime",
    "StrategyExecution",
    "StrategyInfo",
    "StrategyRef",
    "StrategyRegistry",
    "StrategyRuntime",
    "SwapOutputRuntime",
    "default_registry",
]
