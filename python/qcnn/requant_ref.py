"""Reference per-channel requantization of int32 accumulators to int8."""
import numpy as np
from .quant import wrap_i8, wrap_i32

def requantize_int8(C, H, W, bias, shift, feature, dst=None):
    """
    out[c, h, w] = int8((feature[c, h, w] - bias[c]) >> shift[c])

    The subtraction is an int32 operation, the shift is arithmetic
    (sign-extending) and the narrowing to int8 truncates.

    bias:  int32 [C]
    shift: uint8 [C], each in [0, 31]
    feature: int32 [C, H, W]
    Returns: int8 [C, H, W]
    """
    x = np.asarray(feature).reshape(C, H, W).astype(np.int64)
    b = np.asarray(bias).reshape(C, 1, 1).astype(np.int64)
    s = np.asarray(shift).reshape(C, 1, 1).astype(np.int64)

    diff = wrap_i32(x - b).astype(np.int64)
    result = wrap_i8(diff >> s)
    if dst is not None:
        np.copyto(dst.reshape(C, H, W), result)
        return dst
    return result
