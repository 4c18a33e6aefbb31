"""
Accelerator kernel source for the quantized CNN pipeline.

Compiled once per Context with numba (parallel=True). Each entry point takes
the 3-axis global work size (g0, g1, g2) first, then its layer arguments, and
runs one work-item per output element over the flattened index space:

  conv(g0, g1, g2, CI, CO, H, W, weight, in, out)        items (H, W, CO)
  fc  (g0, g1, g2, CI, CO, weight, in, out)              items (CO, 1, 1)
  quan(g0, g1, g2, C, H, W, bias, shift, in, out)        items (H, W, C)
  pool(g0, g1, g2, C, H, W, HO, WO, in, out)             items (HO, WO, C)
  relu(g0, g1, g2, C, H, W, in, out)                     items (H, W, C)

Buffers are flat C-contiguous arrays in (C, H, W) order. Accumulation is
done in int64 and truncated to int32 on store.
"""
import numpy as np
from numba import prange


def conv(g0, g1, g2, CI, CO, H, W, weight, inp, out):
    for i in prange(g0 * g1 * g2):
        gid = np.int64(i)
        h = gid // (g1 * g2)
        w = (gid // g2) % g1
        co = gid % g2
        acc = np.int64(0)
        for dh in range(-1, 2):
            hh = h + dh
            if hh < 0 or hh >= H:
                continue
            for dw in range(-1, 2):
                ww = w + dw
                if ww < 0 or ww >= W:
                    continue
                for ci in range(CI):
                    k = np.int64(weight[((co * CI + ci) * 3 + dh + 1) * 3 + dw + 1])
                    x = np.int64(inp[(ci * H + hh) * W + ww])
                    acc += k * x
        out[(co * H + h) * W + w] = np.int32(acc)


def fc(g0, g1, g2, CI, CO, weight, inp, out):
    for i in prange(g0 * g1 * g2):
        co = np.int64(i)
        acc = np.int64(0)
        for ci in range(CI):
            acc += np.int64(inp[ci]) * np.int64(weight[ci * CO + co])
        out[co] = np.int32(acc)


def quan(g0, g1, g2, C, H, W, bias, shift, inp, out):
    for i in prange(g0 * g1 * g2):
        gid = np.int64(i)
        h = gid // (g1 * g2)
        w = (gid // g2) % g1
        c = gid % g2
        pos = (c * H + h) * W + w
        diff = np.int32(np.int64(inp[pos]) - np.int64(bias[c]))
        out[pos] = np.int8(np.int64(diff) >> np.int64(shift[c]))


def pool(g0, g1, g2, C, H, W, HO, WO, inp, out):
    for i in prange(g0 * g1 * g2):
        gid = np.int64(i)
        ho = gid // (g1 * g2)
        wo = (gid // g2) % g1
        c = gid % g2
        result = np.uint8(0)
        for dh in range(2):
            for dw in range(2):
                h = ho * 2 + dh
                w = wo * 2 + dw
                if h >= 0 and h < H and w >= 0 and w < W:
                    v = inp[(c * H + h) * W + w]
                    if v > result:
                        result = v
        out[(c * HO + ho) * WO + wo] = result


def relu(g0, g1, g2, C, H, W, inp, out):
    for i in prange(g0 * g1 * g2):
        gid = np.int64(i)
        h = gid // (g1 * g2)
        w = (gid // g2) % g1
        c = gid % g2
        pos = (c * H + h) * W + w
        v = inp[pos]
        if v > 0:
            out[pos] = np.uint8(v)
        else:
            out[pos] = np.uint8(0)
