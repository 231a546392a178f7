"""EVM strategy executor using pyrevm."""

from dataclasses import dataclass
from typing import Optional, Tuple

from pyrevm import EVM

from amm_replay.core.interfaces import SwapContext


@dataclass
class EVMExecutionResult:
    """Result of an EVM strategy execution. Fees are WAD-scaled."""

    bid_fee_wad: int
    ask_fee_wad: int
    success: bool
    error: Optional[str] = None


_WAD = 10**18


class EVMStrategyExecutor:
    """Executes compiled fee-callback strategies using pyrevm.

    The contract ABI is the fee-callback one:
    - afterInitialize(uint256 initialX, uint256 initialY) -> (bidFee, askFee)
    - afterSwap((bool isBuy, uint256 amountX, uint256 amountY,
      uint256 timestamp, uint256 reserveX, uint256 reserveY)) -> (bidFee, askFee)
    - getName() -> string
    All amounts and fees are WAD (1e18) fixed point.
    """

    GAS_LIMIT_DEPLOY = 10_000_000
    GAS_LIMIT_INIT = 250_000
    GAS_LIMIT_TRADE = 250_000
    GAS_LIMIT_NAME = 50_000

    WAD = _WAD

    CALLER_ADDRESS = "0x2000000000000000000000000000000000000002"

    # afterInitialize(uint256,uint256) -> 0x837aef47
    # afterSwap((bool,uint256,uint256,uint256,uint256,uint256)) -> 0xc2babb57
    # getName() -> 0x17d7de7c
    SELECTOR_AFTER_INITIALIZE = bytes.fromhex("837aef47")
    SELECTOR_AFTER_SWAP = bytes.fromhex("c2babb57")
    SELECTOR_GET_NAME = bytes.fromhex("17d7de7c")

    def __init__(self, bytecode: bytes):
        """
        Args:
            bytecode: Compiled contract deployment bytecode
        """
        if not bytecode:
            raise ValueError("bytecode must not be empty")
        self.bytecode = bytes(bytecode)
        self.evm: Optional[EVM] = None
        self.deployed_address: Optional[str] = None

        # Reused across afterSwap calls
        self._trade_calldata = bytearray(196)
        self._trade_calldata[0:4] = self.SELECTOR_AFTER_SWAP

        self._deploy()

    def _deploy(self) -> None:
        """Deploy the strategy contract to a fresh EVM."""
        self.evm = EVM()
        self.deployed_address = self.evm.deploy(
            deployer=self.CALLER_ADDRESS,
            code=self.bytecode,
            value=0,
            gas=self.GAS_LIMIT_DEPLOY,
        )

    @staticmethod
    def _encode_uint256(value: int) -> bytes:
        return max(0, value).to_bytes(32, byteorder="big")

    @staticmethod
    def _decode_uint256(data: bytes, offset: int = 0) -> int:
        return int.from_bytes(data[offset : offset + 32], byteorder="big")

    def _to_wad(self, value: float) -> int:
        return max(0, int(value * self.WAD))

    def _call(self, calldata: bytes, gas: int) -> bytes:
        return bytes(
            self.evm.message_call(
                caller=self.CALLER_ADDRESS,
                to=self.deployed_address,
                calldata=calldata,
                value=0,
                gas=gas,
            )
        )

    def _decode_fees(self, result: bytes) -> Tuple[int, int]:
        if len(result) < 64:
            raise RuntimeError(f"Invalid return data length: {len(result)}")
        return self._decode_uint256(result, 0), self._decode_uint256(result, 32)

    def after_initialize(self, initial_x: float, initial_y: float) -> EVMExecutionResult:
        """Call the strategy's afterInitialize function."""
        calldata = (
            self.SELECTOR_AFTER_INITIALIZE
            + self._encode_uint256(self._to_wad(initial_x))
            + self._encode_uint256(self._to_wad(initial_y))
        )
        try:
            bid_wad, ask_wad = self._decode_fees(self._call(calldata, self.GAS_LIMIT_INIT))
        except Exception as e:
            return EVMExecutionResult(bid_fee_wad=0, ask_fee_wad=0, success=False, error=str(e))
        return EVMExecutionResult(bid_fee_wad=bid_wad, ask_fee_wad=ask_wad, success=True)

    def after_swap(self, context: SwapContext) -> Tuple[int, int]:
        """Call afterSwap and return raw WAD fees.

        Raises:
            RuntimeError: On EVM errors or malformed return data
        """
        calldata = self._trade_calldata
        calldata[4:36] = b"\x00" * 32
        if context.is_buy:
            calldata[35] = 1
        calldata[36:68] = self._encode_uint256(self._to_wad(context.amount_x))
        calldata[68:100] = self._encode_uint256(self._to_wad(context.amount_y))
        calldata[100:132] = self._encode_uint256(context.timestamp)
        calldata[132:164] = self._encode_uint256(self._to_wad(context.reserve_x))
        calldata[164:196] = self._encode_uint256(self._to_wad(context.reserve_y))

        try:
            return self._decode_fees(self._call(bytes(calldata), self.GAS_LIMIT_TRADE))
        except Exception as e:
            raise RuntimeError(f"afterSwap failed: {e}") from e

    def get_name(self) -> str:
        """Call the strategy's getName function, or "Unknown" if it has none."""
        try:
            result = self._call(self.SELECTOR_GET_NAME, self.GAS_LIMIT_NAME)
            if len(result) < 64:
                return "Unknown"
            # offset (32 bytes) + length (32 bytes) + data
            offset = self._decode_uint256(result, 0)
            length = self._decode_uint256(result, offset)
            name = result[offset + 32 : offset + 32 + length].decode("utf-8")
            return name or "Unknown"
        except Exception:
            return "Unknown"

    def reset(self) -> None:
        """Redeploy the contract so the next run starts from fresh state."""
        self._deploy()
