"""Image ingestion: decode files to single-channel u8 buffers, read image lists."""
import os

import numpy as np
from PIL import Image

from .constants import LABEL_CHAR_INDEX
from .errors import ConfigParseError


def load_image(path):
    """
    Decode any Pillow-supported image to grayscale.

    Colour input is reduced to ITU-R 601 luma by Pillow's "L" conversion,
    not to a single colour channel; grayscale files come through unchanged.

    Returns (pixels, width, height); pixels is uint8 [H, W] with row 0 at
    the top of the picture.
    """
    with Image.open(path) as im:
        gray = im.convert("L")
        width, height = gray.size
        pixels = np.asarray(gray, dtype=np.uint8).copy()
    return pixels, width, height


def label_from_name(name):
    """Class label encoded as the digit at LABEL_CHAR_INDEX of the file name."""
    base = os.path.basename(name)
    if len(base) <= LABEL_CHAR_INDEX or not base[LABEL_CHAR_INDEX].isdigit():
        raise ConfigParseError(f"cannot read a label from image name '{name}'")
    return int(base[LABEL_CHAR_INDEX])


def load_image_list(list_file, image_dir, height, width, limit=None):
    """
    Load the images named in `list_file` (whitespace separated) from `image_dir`.

    Returns a list of (name, pixels, label). Every image must decode to
    height x width; anything else is a ConfigParseError.
    """
    try:
        with open(list_file, 'r') as f:
            names = f.read().split()
    except OSError as e:
        raise ConfigParseError(f"cannot read image list {list_file}: {e}") from e
    if limit is not None:
        names = names[:limit]

    out = []
    for name in names:
        path = os.path.join(image_dir, name)
        try:
            pixels, w, h = load_image(path)
        except OSError as e:
            raise ConfigParseError(f"cannot decode image {path}: {e}") from e
        if (h, w) != (height, width):
            raise ConfigParseError(f"image {path} is {w}x{h}, expected {width}x{height}")
        out.append((name, pixels, label_from_name(name)))
    return out
