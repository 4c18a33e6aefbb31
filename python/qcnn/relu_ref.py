"""Reference rectifier: int8 in, uint8 out."""
import numpy as np

def relu_i8_to_u8(C, H, W, feature, dst=None):
    """
    out = max(0, x), reinterpreted as unsigned for the next layer.

    feature: int8 [C, H, W]
    Returns: uint8 [C, H, W]
    """
    x = np.asarray(feature).reshape(C, H, W).astype(np.int8)
    result = np.maximum(x, np.int8(0)).astype(np.uint8)
    if dst is not None:
        np.copyto(dst.reshape(C, H, W), result)
        return dst
    return result
