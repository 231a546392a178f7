"""Nano-scale fixed point helpers.

Amounts crossing the strategy boundary are unsigned integers scaled by 1e9
and saturated to the u64 range. Python integers are unbounded, so products
such as ``reserve_x * reserve_y`` never overflow before division.
"""

import math

NANO_SCALE = 1_000_000_000
NANO_SCALE_F64 = float(NANO_SCALE)
U64_MAX = 2**64 - 1
STORAGE_SIZE = 1024
BPS_DENOMINATOR = 10_000


def clamp_u64(value: int) -> int:
    if value <= 0:
        return 0
    if value >= U64_MAX:
        return U64_MAX
    return value


def to_nano(value: float) -> int:
    """Convert a float amount to nano units, flooring."""
    if math.isnan(value) or value <= 0:
        return 0
    if math.isinf(value):
        return U64_MAX

    scaled = value * NANO_SCALE_F64
    if scaled >= float(U64_MAX):
        return U64_MAX
    return int(math.floor(scaled))


def from_nano(value: int) -> float:
    return clamp_u64(value) / NANO_SCALE_F64


def ceil_div(numerator: int, denominator: int) -> int:
    if denominator <= 0:
        return 0
    return (numerator + denominator - 1) // denominator


def saturating_sub(a: int, b: int) -> int:
    return a - b if a > b else 0


def constant_product_output(
    side: int,
    input_nano: int,
    reserve_x_nano: int,
    reserve_y_nano: int,
    fee_numerator: int,
    fee_denominator: int = BPS_DENOMINATOR,
) -> int:
    """Output of a constant-product swap with fee-on-input, in nano units.

    Side 0 buys X with Y input, side 1 sells X for Y. ``fee_numerator /
    fee_denominator`` is gamma, the fraction of the input that reaches the
    reserves. The post-trade reserve is rounded up so the pool never pays
    out more than the exact curve allows.
    """
    if reserve_x_nano <= 0 or reserve_y_nano <= 0 or input_nano <= 0:
        return 0
    if fee_denominator <= 0 or fee_numerator <= 0:
        return 0

    k = reserve_x_nano * reserve_y_nano
    net_in = input_nano * fee_numerator // fee_denominator

    if side == 0:
        new_reserve_y = reserve_y_nano + net_in
        return clamp_u64(saturating_sub(reserve_x_nano, ceil_div(k, new_reserve_y)))
    if side == 1:
        new_reserve_x = reserve_x_nano + net_in
        return clamp_u64(saturating_sub(reserve_y_nano, ceil_div(k, new_reserve_x)))
    return 0


def encode_u16_le(value: int) -> bytes:
    normalized = max(0, min(0xFFFF, int(value)))
    return bytes((normalized & 0xFF, (normalized >> 8) & 0xFF))


def read_u16_le(storage: bytes, offset: int = 0) -> int:
    if offset < 0 or offset + 1 >= len(storage):
        return 0
    return storage[offset] | (storage[offset + 1] << 8)


def write_u16_le(storage: bytes, offset: int, value: int) -> bytes:
    """Return a copy of ``storage`` with a u16 written at ``offset``."""
    if offset < 0 or offset + 1 >= len(storage):
        return bytes(storage)
    buf = bytearray(storage)
    buf[offset:offset + 2] = encode_u16_le(value)
    return bytes(buf)


def empty_storage() -> bytes:
    return bytes(STORAGE_SIZE)


def ensure_storage_size(storage) -> bytes:
    """Pad or truncate a buffer to exactly STORAGE_SIZE bytes.

    Raises:
        TypeError: If ``storage`` is not a bytes-like buffer
    """
    if not isinstance(storage, (bytes, bytearray, memoryview)):
        raise TypeError(f"storage must be bytes, got {type(storage).__name__}")
    data = bytes(storage)
    if len(data) == STORAGE_SIZE:
        return data
    return data[:STORAGE_SIZE].ljust(STORAGE_SIZE, b"\x00")


def diff_storage(before: bytes, after: bytes) -> list[tuple[int, int, int]]:
    """List ``(offset, before, after)`` for every byte that changed."""
    return [
        (offset, old, new)
        for offset, (old, new) in enumerate(zip(before, after))
        if old != new
    ]
