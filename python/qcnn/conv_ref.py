"""Reference 3x3 "same" convolution: u8 activations x i8 weights -> i32."""
import numpy as np
from .quant import wrap_i32

def conv_int8(CI, CO, H, W, weight, image, dst=None):
    """
    INT8 3x3 convolution, stride 1, zero padded.

    weight: int8 [CO, CI, 3, 3] (or flat, row-major)
    image:  uint8 [CI, H, W] (or flat)
    dst:    optional int32 buffer of CO*H*W elements written in place
    Returns: int32 [CO, H, W]

    out[co, h, w] = sum_{ci, dh, dw} weight[co, ci, dh+1, dw+1] * image[ci, h+dh, w+dw]
    with out-of-range positions skipped (equivalently: read as zero).
    """
    x = np.asarray(image).reshape(CI, H, W).astype(np.int64)
    k = np.asarray(weight).reshape(CO, CI, 3, 3).astype(np.int64)

    padded = np.zeros((CI, H + 2, W + 2), dtype=np.int64)
    padded[:, 1:H + 1, 1:W + 1] = x

    # Accumulate in int64, wrap once at the end: same bits as an int32 MAC
    acc = np.zeros((CO, H, W), dtype=np.int64)
    for kh in range(3):
        for kw in range(3):
            window = padded[:, kh:kh + H, kw:kw + W]
            acc += np.tensordot(k[:, :, kh, kw], window, axes=([1], [0]))

    result = wrap_i32(acc)
    if dst is not None:
        np.copyto(dst.reshape(CO, H, W), result)
        return dst
    return result
