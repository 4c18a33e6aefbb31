"""Shared defaults: image geometry, kernel entry points, environment knobs."""
import os

# ── Input image / classifier (MNIST digits) ──────────────────────────────
IMAGE_C    = 1
IMAGE_H    = 28
IMAGE_W    = 28
N_CLASSES  = 10

# ── Accelerator program ──────────────────────────────────────────────────
KERNEL_ENTRY_POINTS = ("conv", "fc", "quan", "pool", "relu")
DEFAULT_KERNEL_FILE = os.path.join(os.path.dirname(__file__), "device_kernels.py")

# ── Environment fallbacks used by the tools ──────────────────────────────
ENV_MODEL_FILE  = "QCNN_MODEL_FILE"
ENV_KERNEL_FILE = "QCNN_KERNEL_FILE"
ENV_IMAGE_DIR   = "QCNN_IMAGE_DIR"

# Label of an image-list entry is the character at this offset of its name,
# e.g. "test_7_00042.png" -> 7.
LABEL_CHAR_INDEX = 5
