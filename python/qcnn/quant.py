"""Fixed-point narrowing helpers matching the device kernels exactly."""
import numpy as np

SHIFT_MAX = 31

def wrap_i8(x):
    """Truncate to signed 8-bit (two's complement, like a C cast)."""
    return np.asarray(x).astype(np.int64).astype(np.int8)

def wrap_i32(x):
    """Truncate to signed 32-bit, i.e. an int32 accumulator that overflowed."""
    return np.asarray(x).astype(np.int64).astype(np.int32)

def shift_in_range(shift):
    """True when every shift amount is a valid right shift of an int32."""
    shift = np.asarray(shift, dtype=np.int64)
    return bool(np.all((shift >= 0) & (shift <= SHIFT_MAX)))
