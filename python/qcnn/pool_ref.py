"""Reference 2x2 / stride 2 max pooling on uint8 feature maps."""
import numpy as np

def maxpool2x2_u8(C, H, W, feature, dst=None):
    """
    Max over each non-overlapping 2x2 window, no padding.

    feature: uint8 [C, H, W]
    Returns: uint8 [C, H // 2, W // 2]

    A trailing odd row/column is dropped. Every window position is in range
    (0 <= 2*ho + dh < H, 0 <= 2*wo + dw < W), row and column 0 included.
    """
    HO, WO = H >> 1, W >> 1
    x = np.asarray(feature).reshape(C, H, W)

    result = np.zeros((C, HO, WO), dtype=np.uint8)
    for dh in range(2):
        for dw in range(2):
            window = x[:, dh:dh + 2 * HO:2, dw:dw + 2 * WO:2]
            np.maximum(result, window, out=result)

    if dst is not None:
        np.copyto(dst.reshape(C, HO, WO), result)
        return dst
    return result
