#!/usr/bin/env python3
"""Generate a seeded random model description with the MNIST input shape."""
import argparse, os, sys
import numpy as np

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'python'))
from qcnn.constants import IMAGE_C, IMAGE_H, IMAGE_W, N_CLASSES
from qcnn.layer_spec import LayerSpec
from qcnn.model_parser import write_model_file


def random_model(seed, conv_channels=4):
    rng = np.random.default_rng(seed)
    co = conv_channels
    ho, wo = IMAGE_H >> 1, IMAGE_W >> 1
    feat = co * ho * wo
    return [
        LayerSpec.conv(IMAGE_C, co, IMAGE_H, IMAGE_W, rng.integers(-8, 9, size=co * IMAGE_C * 9)),
        LayerSpec.requantize(co, IMAGE_H, IMAGE_W, rng.integers(-64, 64, size=co), [5] * co),
        LayerSpec.rectify(co, IMAGE_H, IMAGE_W),
        LayerSpec.pool(co, IMAGE_H, IMAGE_W),
        LayerSpec.fc(feat, N_CLASSES, rng.integers(-16, 17, size=feat * N_CLASSES)),
        LayerSpec.requantize(N_CLASSES, 1, 1, np.zeros(N_CLASSES, dtype=np.int32), [10] * N_CLASSES),
    ]


if __name__ == "__main__":
    ap = argparse.ArgumentParser()
    ap.add_argument("--seed", type=int, default=0)
    ap.add_argument("--channels", type=int, default=4, help="Conv output channels")
    ap.add_argument("-o", "--output", default=None)
    args = ap.parse_args()
    out = args.output or os.path.join(os.environ.get("DEMO_OUTDIR", "."), "model.txt")

    specs = random_model(args.seed, args.channels)
    write_model_file(out, specs)
    for s in specs:
        print(f"  {s}")
    print(f"Wrote {len(specs)} layers to {out}")
