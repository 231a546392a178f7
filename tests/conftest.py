"""Pytest configuration and shared fixtures for the simulator tests.

This module provides:
- Pytest markers for test categorization
- Pool, RNG and engine fixtures for common scenarios
"""

import pytest

from amm_replay.core.amm import LiquidityPool
from amm_replay.core.rng import SeededRng
from amm_replay.core.trade import PoolRole
from amm_replay.simulation.config import SimulationConfig
from amm_replay.simulation.engine import SimulationEngine
from amm_replay.strategies.runtime import StrategyRef
from tests.fixtures.pool_fixtures import PoolProfile, create_pool


# ============================================================================
# Pytest Hooks
# ============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "determinism: Replay tests comparing runs from the same seed"
    )
    config.addinivalue_line(
        "markers", "evm: Tests that deploy bytecode into pyrevm"
    )
    config.addinivalue_line(
        "markers", "slow: Tests taking more than 5 seconds to run"
    )


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on location and name."""
    for item in items:
        if "determinism" in item.nodeid or "replay" in item.name:
            item.add_marker(pytest.mark.determinism)
        if "evm" in item.nodeid:
            item.add_marker(pytest.mark.evm)


# ============================================================================
# Pool Fixtures
# ============================================================================


@pytest.fixture
def standard_pool() -> LiquidityPool:
    """Submission pool at the engine's initial state.

    Returns:
        LiquidityPool with reserves (100, 10000), spot 100 and 30 bps fees
    """
    return create_pool(PoolProfile.STANDARD, fee_bps=30)


@pytest.fixture
def normalizer_pool() -> LiquidityPool:
    """Normalizer-style pool with twice the liquidity and 50 bps fees.

    Returns:
        LiquidityPool with reserves (200, 20000)
    """
    return LiquidityPool(
        name="Normalizer (50 bps)",
        role=PoolRole.NORMALIZER,
        reserve_x=200.0,
        reserve_y=20_000.0,
        bid_fee_bps=50,
        ask_fee_bps=50,
    )


@pytest.fixture
def rng() -> SeededRng:
    return SeededRng(1337)


# ============================================================================
# Engine Fixtures
# ============================================================================


@pytest.fixture
def engine() -> SimulationEngine:
    """Engine reset with the default config (seed 1337, starter-500bps).

    Returns:
        SimulationEngine ready for step_one()
    """
    engine = SimulationEngine(SimulationConfig())
    engine.reset()
    return engine


@pytest.fixture
def fee_engine() -> SimulationEngine:
    """Engine running the fixed 30 bps fee-callback strategy."""
    engine = SimulationEngine(SimulationConfig(seed=42, strategy=StrategyRef.parse("fee:baseline30")))
    engine.reset()
    return engine
