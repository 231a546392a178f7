"""Simulation engine, configuration and tape records."""

from amm_replay.simulation.config import NormalizerConfig, RegimeParameters, SimulationConfig
from amm_replay.simulation.events import (
    Diagnostic,
    DiagnosticKind,
    EdgeTotals,
    PoolSnapshot,
    ReserveTrail,
    Snapshot,
    TradeEvent,
    UiState,
)
from amm_replay.simulation.engine import EngineStatus, SimulationEngine

__all__ = [
    "NormalizerConfig",
    "RegimeParameters",
    "SimulationConfig",
    "Diagnostic",
    "DiagnosticKind",
    "EdgeTotals",
    "PoolSnapshot",
    "ReserveTrail",
    "Snapshot",
    "TradeEvent",
    "UiState",
    "EngineStatus",
    "SimulationEngine",
]
