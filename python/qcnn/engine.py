"""
Inference engine: runs one pipeline on the scalar or accelerated backend.

The accelerated path uploads the image, enqueues every layer's kernel back
to back and blocks only on the final read. In PARITY_CHECK mode each layer
is also run on the scalar path and its accelerated output is read back and
compared before the next layer is enqueued.
"""
import enum
import time

import numpy as np

from .device import Context
from .errors import (ConfigParseError, ParityMismatchError, PipelineShapeError,
                     ResourceInitError)
from .layer_spec import TensorDesc
from .model_parser import parse_model_file
from .pipeline import Pipeline
from .timing import TimingStats


class Backend(enum.Enum):
    SCALAR = "scalar"
    ACCELERATED = "accelerated"


class ExecutionMode(enum.Enum):
    NORMAL = "normal"
    PARITY_CHECK = "parity"


def argmax(values):
    """Index of the first maximum (strict > scan, so ties go to the lower index)."""
    best = 0
    for i in range(1, len(values)):
        if values[i] > values[best]:
            best = i
    return best


class Engine:
    """
    Owns the Execution Context, the Pipeline and the classification buffer.

    Either `model_file` or `layers` (a list of LayerSpec) describes the model.
    Forward calls overwrite per-layer output storage in place, so an Engine
    serves one forward call at a time.
    """

    def __init__(self, image_c, image_h, image_w, features, kernel_file=None,
                 model_file=None, mode=ExecutionMode.NORMAL, layers=None):
        if (model_file is None) == (layers is None):
            raise ConfigParseError("exactly one of model_file / layers must be given")
        self.image_desc = TensorDesc(image_c, image_h, image_w, np.uint8)
        self.features = features
        self.mode = ExecutionMode(mode)
        self.parity_mismatches = []
        self.scalar_timing = TimingStats("scalar")
        self.accelerated_timing = TimingStats("accelerated")

        specs = parse_model_file(model_file) if layers is None else list(layers)
        specs = Pipeline.validate(specs, self.image_desc)
        out = specs[-1].output_desc
        if np.dtype(out.dtype) != np.dtype(np.int8) or out.size != features:
            raise PipelineShapeError(
                f"last layer {specs[-1]} produces {out}, expected {features} int8 features")

        self.context = None
        self.pipeline = None
        self.device_in = None
        self._closed = False
        try:
            self.context = Context(kernel_file)
            self.pipeline = Pipeline.build(specs, self.context, self.image_desc)
            self.device_in = self.context.create_buffer(np.uint8, self.image_desc.size)
        except Exception:
            self.close()
            raise

        self.host_out = np.zeros(features, dtype=np.int8)
        # scratch for per-layer read-back in parity mode
        self._parity_scratch = [np.zeros(layer.output_desc.size, dtype=layer.output_desc.dtype)
                                for layer in self.pipeline] \
            if self.mode is ExecutionMode.PARITY_CHECK else None

    # ── forward ──────────────────────────────────────────────────────────
    def forward(self, image, backend=Backend.ACCELERATED):
        """Classify `image` on `backend`; returns the class index."""
        backend = Backend(backend)
        if backend is Backend.SCALAR:
            return self.forward_scalar(image)
        return self.forward_accelerated(image)

    def forward_scalar(self, image):
        x = self._check_image(image)
        for layer in self.pipeline:
            t0 = time.perf_counter()
            x = layer.compute_scalar(x)
            self.scalar_timing.record(layer.kind, time.perf_counter() - t0)
        self.host_out[:] = x
        return argmax(self.host_out)

    def forward_accelerated(self, image):
        x = self._check_image(image)
        queue = self.context.queue
        queue.enqueue_write_buffer(self.device_in, x, blocking=True)

        parity = self.mode is ExecutionMode.PARITY_CHECK
        reported = False
        handle = self.device_in
        host_x = x
        for layer in self.pipeline:
            handle = layer.compute_accelerated(handle)
            if parity:
                host_x = layer.compute_scalar(host_x)
                got = self._parity_scratch[layer.index]
                queue.enqueue_read_buffer(handle, got, blocking=True)
                if not reported:
                    reported = self._compare(layer, host_x, got)

        queue.enqueue_read_buffer(handle, self.host_out, blocking=True)
        for layer in self.pipeline:
            self.accelerated_timing.record(layer.kind, layer.last_event.duration)
        return argmax(self.host_out)

    def _compare(self, layer, expected, got):
        """Record the first mismatch of one layer; True if there was one."""
        diff = np.flatnonzero(expected.reshape(-1) != got)
        if diff.size == 0:
            return False
        i = int(diff[0])
        err = ParityMismatchError(layer.index, layer.kind.keyword, i,
                                  int(expected.reshape(-1)[i]), int(got[i]),
                                  count=int(diff.size))
        self.parity_mismatches.append(err)
        print(f"[parity] WARNING: {err}")
        return True

    def _check_image(self, image):
        if self._closed:
            raise ResourceInitError("engine has been closed")
        img = np.asarray(image)
        if img.size != self.image_desc.size:
            raise ValueError(f"image has {img.size} pixels, expected {self.image_desc}")
        if img.dtype != np.uint8:
            if img.min() < 0 or img.max() > 255:
                raise ValueError("image values must lie in [0, 255]")
            img = img.astype(np.uint8)
        return np.ascontiguousarray(img.reshape(-1))

    # ── timing ───────────────────────────────────────────────────────────
    def report_scalar_timing(self):
        return self.scalar_timing.report()

    def report_accelerated_timing(self):
        return self.accelerated_timing.report()

    def reset_timing(self):
        self.scalar_timing.reset()
        self.accelerated_timing.reset()

    # ── lifetime ─────────────────────────────────────────────────────────
    @property
    def closed(self):
        return self._closed

    def close(self):
        """Release pipeline buffers, the input buffer and the context (once)."""
        if self._closed:
            return
        self._closed = True
        if self.pipeline is not None:
            self.pipeline.release()
        if self.device_in is not None:
            self.device_in.release()
        if self.context is not None:
            self.context.release()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False
