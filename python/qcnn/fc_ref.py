"""Reference fully-connected layer: u8 features x i8 weights -> i32."""
import numpy as np
from .quant import wrap_i32

def fc_int8(CI, CO, weight, feature, dst=None):
    """
    INT8 dot product per output feature.

    weight:  int8 [CI, CO] (row-major: ci, co)
    feature: uint8 [CI] (any shape with CI elements, flattened C-order)
    Returns: int32 [CO]
    """
    x = np.asarray(feature).reshape(CI).astype(np.int64)
    w = np.asarray(weight).reshape(CI, CO).astype(np.int64)
    result = wrap_i32(x @ w)
    if dst is not None:
        np.copyto(dst.reshape(CO), result)
        return dst
    return result
