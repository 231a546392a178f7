"""Exception types raised by the simulator.

Rejected trades, missing arbitrage and skipped router legs are not errors;
they surface as ``None`` results and engine diagnostics instead.
"""


class ConfigurationError(ValueError):
    """Invalid simulation configuration or strategy reference."""


class UnknownStrategyError(ConfigurationError):
    """A strategy reference did not resolve to a registered strategy."""

    def __init__(self, kind: str, strategy_id: str):
        super().__init__(f"Unknown strategy {kind}:{strategy_id}")
        self.kind = kind
        self.strategy_id = strategy_id


class StrategyExecutionError(RuntimeError):
    """A fee-callback strategy failed; the run cannot continue with it."""


class EngineStateError(RuntimeError):
    """The engine was used before ``reset()``."""
