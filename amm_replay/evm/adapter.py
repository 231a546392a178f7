"""Adapter exposing compiled EVM strategies as FeeStrategy objects."""

from pathlib import Path
from typing import Optional, Union

from amm_replay.core.interfaces import FeeStrategy, SwapContext
from amm_replay.core.nano import BPS_DENOMINATOR
from amm_replay.core.trade import FeeQuote
from amm_replay.errors import ConfigurationError
from amm_replay.evm.executor import EVMStrategyExecutor


def wad_to_bps(value: int) -> int:
    """Convert a WAD fee (0.003e18 = 30 bps) to whole basis points."""
    return value * BPS_DENOMINATOR // EVMStrategyExecutor.WAD


class EVMFeeStrategy(FeeStrategy):
    """Adapts compiled fee-callback bytecode to the FeeStrategy interface.

    ``initialize`` redeploys the contract, so every reset starts from the
    contract's constructor state.
    """

    def __init__(self, bytecode: bytes, name: Optional[str] = None):
        """
        Args:
            bytecode: Compiled contract deployment bytecode
            name: Override name for the strategy
        """
        self._bytecode = bytes(bytecode)
        self._name_override = name
        self._executor = EVMStrategyExecutor(self._bytecode)
        self._cached_name: Optional[str] = None
        self._deployed_fresh = True
        self.call_count = 0

    @classmethod
    def from_file(cls, path: Union[str, Path], name: Optional[str] = None) -> "EVMFeeStrategy":
        """Load bytecode from a raw binary or hex (optionally 0x-prefixed) file.

        Raises:
            ConfigurationError: If the bytecode is empty or fails to deploy
        """
        raw = Path(path).read_bytes()
        try:
            text = raw.decode("ascii").strip()
            bytecode = bytes.fromhex(text[2:] if text.startswith("0x") else text)
        except (UnicodeDecodeError, ValueError):
            bytecode = raw
        try:
            return cls(bytecode, name=name)
        except Exception as e:
            raise ConfigurationError(f"Could not deploy bytecode from {path}: {e}") from e

    def initialize(self, reserve_x: float, reserve_y: float) -> FeeQuote:
        """
        Raises:
            RuntimeError: If EVM execution fails
        """
        if not self._deployed_fresh:
            self._executor.reset()
        self._deployed_fresh = False
        self.call_count = 0

        result = self._executor.after_initialize(reserve_x, reserve_y)
        if not result.success:
            raise RuntimeError(f"Strategy afterInitialize() failed: {result.error}")
        self.call_count += 1
        return FeeQuote(wad_to_bps(result.bid_fee_wad), wad_to_bps(result.ask_fee_wad))

    def on_swap(self, context: SwapContext) -> FeeQuote:
        """
        Raises:
            RuntimeError: If EVM execution fails
        """
        bid_wad, ask_wad = self._executor.after_swap(context)
        self.call_count += 1
        return FeeQuote(wad_to_bps(bid_wad), wad_to_bps(ask_wad))

    def get_name(self) -> str:
        if self._name_override:
            return self._name_override
        if self._cached_name is None:
            self._cached_name = self._executor.get_name()
        return self._cached_name
