#!/usr/bin/env python3
"""Classify MNIST digit images on both backends and report accuracy and timing."""
import argparse, os, sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))
from qcnn.constants import (ENV_IMAGE_DIR, ENV_KERNEL_FILE, ENV_MODEL_FILE,
                            IMAGE_C, IMAGE_H, IMAGE_W, N_CLASSES)
from qcnn.engine import Backend, Engine, ExecutionMode
from qcnn.errors import QCNNError
from qcnn.image_io import load_image, load_image_list


def run_batch(engine, images, backend):
    correct = 0
    for name, pixels, label in images:
        if engine.forward(pixels, backend) == label:
            correct += 1
    print(f"{backend.value}: CORRECT: {correct}/{len(images)}")
    return correct


def classify_one(engine, path):
    pixels, w, h = load_image(path)
    if (h, w) != (IMAGE_H, IMAGE_W):
        raise QCNNError(f"image {path} is {w}x{h}, expected {IMAGE_W}x{IMAGE_H}")
    acc = engine.forward(pixels, Backend.ACCELERATED)
    ref = engine.forward(pixels, Backend.SCALAR)
    print(f"{path}: accelerated={acc} scalar={ref}")
    return acc


def main(argv=None):
    ap = argparse.ArgumentParser(description="Quantized CNN digit classifier")
    ap.add_argument("--model", default=None, help="Model description file")
    ap.add_argument("--kernel", default=None, help="Accelerator kernel source")
    ap.add_argument("--list", default=None, help="File listing the test images")
    ap.add_argument("--image-dir", default=None, help="Directory holding the listed images")
    ap.add_argument("--image", default=None, help="Classify a single image file")
    ap.add_argument("--limit", type=int, default=None, help="Only use the first N images")
    ap.add_argument("--parity", action="store_true",
                    help="Compare scalar and accelerated outputs after every layer")
    args = ap.parse_args(argv)

    model = args.model or os.environ.get(ENV_MODEL_FILE)
    kernel = args.kernel or os.environ.get(ENV_KERNEL_FILE)
    image_dir = args.image_dir or os.environ.get(ENV_IMAGE_DIR, ".")
    if model is None:
        ap.error(f"no model given (--model or ${ENV_MODEL_FILE})")
    if args.image is None and args.list is None:
        ap.error("give --image or --list")

    mode = ExecutionMode.PARITY_CHECK if args.parity else ExecutionMode.NORMAL
    try:
        with Engine(IMAGE_C, IMAGE_H, IMAGE_W, N_CLASSES, kernel_file=kernel,
                    model_file=model, mode=mode) as engine:
            engine.pipeline.describe()
            if args.image is not None:
                classify_one(engine, args.image)
                return 0

            images = load_image_list(args.list, image_dir, IMAGE_H, IMAGE_W, args.limit)
            print(f"Loaded {len(images)} images from {args.list}")
            run_batch(engine, images, Backend.ACCELERATED)
            run_batch(engine, images, Backend.SCALAR)
            engine.report_accelerated_timing()
            engine.report_scalar_timing()
            if engine.parity_mismatches:
                print(f"[parity] {len(engine.parity_mismatches)} forward call(s) diverged")
    except QCNNError as e:
        print(f"ERROR: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
