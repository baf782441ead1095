"""
Fixed-width integer helpers

Python integers are unbounded; hardware registers are not. These helpers
reproduce the two's-complement wraparound of the INT8 operands and the INT32
accumulators exactly (no saturation, no overflow trap).
"""

import numpy as np

INT8_MIN, INT8_MAX = -128, 127
INT32_MIN, INT32_MAX = -(1 << 31), (1 << 31) - 1


def to_signed(val: int, width: int) -> int:
    """Interpret the low `width` bits of val as a signed value."""
    mask = (1 << width) - 1
    val = int(val) & mask
    if val & (1 << (width - 1)):
        val -= 1 << width
    return val


def to_unsigned(val: int, width: int) -> int:
    """Two's-complement bit pattern of val in `width` bits."""
    return int(val) & ((1 << width) - 1)


def wrap_i8(val: int) -> int:
    return to_signed(val, 8)


def wrap_i32(val: int) -> int:
    """Wrap to signed 32-bit, matching a 32-bit register overflow."""
    return to_signed(val, 32)


def wrap_i32_array(arr) -> np.ndarray:
    """Vectorized wrap_i32; returns an int32 array."""
    arr = np.asarray(arr, dtype=np.int64)
    wrapped = ((arr - INT32_MIN) & 0xFFFFFFFF) + INT32_MIN
    return wrapped.astype(np.int32)


def as_int8_array(data) -> np.ndarray:
    """Validate that every value fits INT8 and return an int8 array."""
    arr = np.asarray(data)
    if arr.dtype != np.int8:
        wide = arr.astype(np.int64)
        if wide.size and (wide.min() < INT8_MIN or wide.max() > INT8_MAX):
            raise ValueError(f"Values out of INT8 range [{INT8_MIN}, {INT8_MAX}]")
        arr = wide.astype(np.int8)
    return arr
