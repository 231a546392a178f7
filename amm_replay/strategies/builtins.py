"""Builtin pricing strategies for both strategy contracts."""

from typing import Optional

from amm_replay.core.interfaces import FeeStrategy, SwapContext, SwapStrategy
from amm_replay.core.nano import (
    BPS_DENOMINATOR,
    constant_product_output,
    read_u16_le,
    write_u16_le,
)
from amm_replay.core.trade import MAX_FEE_BPS, FeeQuote, SwapSide

BIG_TRADE_RATIO = 0.05
WIDEN_STEP_BPS = 10
DECAY_STEP_BPS = 1


class FixedFeeStrategy(FeeStrategy):
    """Quotes the same symmetric fee forever."""

    def __init__(self, fee_bps: int, name: Optional[str] = None):
        self.fee_bps = fee_bps
        self._name = name or f"Fixed {fee_bps} bps"

    def initialize(self, reserve_x: float, reserve_y: float) -> FeeQuote:
        return FeeQuote.symmetric(self.fee_bps)

    def on_swap(self, context: SwapContext) -> FeeQuote:
        return FeeQuote.symmetric(self.fee_bps)

    def get_name(self) -> str:
        return self._name


class WidenBigTradesStrategy(FeeStrategy):
    """Widens the fee after trades larger than 5% of the Y reserve.

    Each big trade adds 10 bps; every other trade decays the fee by 1 bps
    back toward the base fee. The current fee lives in slot ``fee``.
    """

    def __init__(self, base_fee_bps: int = 30):
        self.base_fee_bps = base_fee_bps
        self._slots: dict[str, float] = {"fee": float(base_fee_bps)}

    def initialize(self, reserve_x: float, reserve_y: float) -> FeeQuote:
        self._slots = {"fee": float(self.base_fee_bps)}
        return FeeQuote.symmetric(self.base_fee_bps)

    def on_swap(self, context: SwapContext) -> FeeQuote:
        fee = int(self._slots["fee"])
        ratio = context.amount_y / context.reserve_y if context.reserve_y > 0 else 0.0

        if ratio > BIG_TRADE_RATIO:
            fee = min(MAX_FEE_BPS, fee + WIDEN_STEP_BPS)
        elif fee > self.base_fee_bps:
            fee -= DECAY_STEP_BPS

        self._slots["fee"] = float(fee)
        return FeeQuote.symmetric(fee)

    def slots(self) -> dict[str, float]:
        return dict(self._slots)

    def get_name(self) -> str:
        return "Widen After Big Trades"


class ConstantProductSwapStrategy(SwapStrategy):
    """Integer constant product with a fixed fee-on-input.

    ``fee_numerator / fee_denominator`` is the share of the input that
    reaches the reserves (9970/10000 is a 30 bps fee).
    """

    def __init__(self, fee_numerator: int, fee_denominator: int, name: str):
        if not 0 < fee_numerator <= fee_denominator:
            raise ValueError(
                f"fee_numerator must be in (0, {fee_denominator}], got {fee_numerator}"
            )
        self.fee_numerator = fee_numerator
        self.fee_denominator = fee_denominator
        self._name = name

    @property
    def fee_bps(self) -> int:
        return BPS_DENOMINATOR - self.fee_numerator * BPS_DENOMINATOR // self.fee_denominator

    def compute_swap(
        self,
        side: SwapSide,
        input_amount: int,
        reserve_x: int,
        reserve_y: int,
        storage: bytes,
    ) -> int:
        return constant_product_output(
            int(side), input_amount, reserve_x, reserve_y,
            self.fee_numerator, self.fee_denominator,
        )

    def get_name(self) -> str:
        return self._name


class AdaptiveStorageStrategy(SwapStrategy):
    """Constant product whose fee is kept in persistent storage.

    Storage layout (little endian):
    - offset 0: u16 fee in bps (0 means the base fee)
    - offset 2: u16 count of big trades seen, saturating
    """

    FEE_OFFSET = 0
    BIG_TRADES_OFFSET = 2

    def __init__(self, base_fee_bps: int = 30, max_fee_bps: int = 200):
        self.base_fee_bps = base_fee_bps
        self.max_fee_bps = max_fee_bps

    def current_fee_bps(self, storage: bytes) -> int:
        raw = read_u16_le(storage, self.FEE_OFFSET)
        return raw if raw else self.base_fee_bps

    def compute_swap(
        self,
        side: SwapSide,
        input_amount: int,
        reserve_x: int,
        reserve_y: int,
        storage: bytes,
    ) -> int:
        fee_bps = min(self.current_fee_bps(storage), BPS_DENOMINATOR - 1)
        return constant_product_output(
            int(side), input_amount, reserve_x, reserve_y, BPS_DENOMINATOR - fee_bps
        )

    def after_swap(
        self,
        side: SwapSide,
        input_amount: int,
        output_amount: int,
        reserve_x: int,
        reserve_y: int,
        step: int,
        storage: bytes,
    ) -> Optional[bytes]:
        # Reserves are post-trade; the input side already includes the input
        reserve_in = reserve_y if side == SwapSide.BUY_X else reserve_x
        fee = self.current_fee_bps(storage)

        if reserve_in > 0 and input_amount * 20 > reserve_in:
            fee = min(self.max_fee_bps, fee + WIDEN_STEP_BPS)
            count = read_u16_le(storage, self.BIG_TRADES_OFFSET)
            storage = write_u16_le(storage, self.BIG_TRADES_OFFSET, min(0xFFFF, count + 1))
        elif fee > self.base_fee_bps:
            fee -= DECAY_STEP_BPS

        return write_u16_le(storage, self.FEE_OFFSET, fee)

    def get_name(self) -> str:
        return "Adaptive (storage fee)"


def builtin_fee_strategies() -> dict[str, tuple[str, type[FeeStrategy], dict]]:
    """Fee-callback builtins: id -> (display name, class, kwargs)."""
    return {
        "baseline30": ("Baseline 30 bps", FixedFeeStrategy, {"fee_bps": 30, "name": "Baseline 30 bps"}),
        "starter50": ("Starter 50 bps", FixedFeeStrategy, {"fee_bps": 50, "name": "Starter 50 bps"}),
        "widen-big-trades": ("Widen After Big Trades", WidenBigTradesStrategy, {}),
    }


def builtin_swap_strategies() -> dict[str, tuple[str, type[SwapStrategy], dict]]:
    """Swap-output builtins: id -> (display name, class, kwargs)."""
    def constant_product(numerator: int, denominator: int, name: str) -> dict:
        return {"fee_numerator": numerator, "fee_denominator": denominator, "name": name}

    return {
        "starter-500bps": (
            "Starter (500 bps)", ConstantProductSwapStrategy,
            constant_product(950, 1000, "Starter (500 bps)"),
        ),
        "baseline-30bps": (
            "Baseline (30 bps)", ConstantProductSwapStrategy,
            constant_product(9970, 10000, "Baseline (30 bps)"),
        ),
        "tight-10bps": (
            "Tight (10 bps)", ConstantProductSwapStrategy,
            constant_product(9990, 10000, "Tight (10 bps)"),
        ),
        "wide-100bps": (
            "Wide (100 bps)", ConstantProductSwapStrategy,
            constant_product(9900, 10000, "Wide (100 bps)"),
        ),
        "adaptive-storage": ("Adaptive (storage fee)", AdaptiveStorageStrategy, {}),
    }
