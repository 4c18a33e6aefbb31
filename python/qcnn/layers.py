"""
Pipeline stages.

A Layer is one of a closed set of kinds (LayerKind). Everything that
differs between kinds lives in the tables below, keyed by kind, so the
scalar path, the kernel arguments and the work geometry are dispatched
exhaustively and checked at import time.
"""
import numpy as np

from .conv_ref import conv_int8
from .fc_ref import fc_int8
from .layer_spec import LayerKind
from .pool_ref import maxpool2x2_u8
from .relu_ref import relu_i8_to_u8
from .requant_ref import requantize_int8


def _conv_scalar(layer, x):
    s = layer.spec
    return conv_int8(s.channels, s.out_channels, s.height, s.width,
                     layer.weight, x, dst=layer.host_out)

def _fc_scalar(layer, x):
    s = layer.spec
    return fc_int8(s.channels, s.out_channels, layer.weight, x, dst=layer.host_out)

def _quan_scalar(layer, x):
    s = layer.spec
    return requantize_int8(s.channels, s.height, s.width, layer.bias, layer.shift, x,
                           dst=layer.host_out)

def _pool_scalar(layer, x):
    s = layer.spec
    return maxpool2x2_u8(s.channels, s.height, s.width, x, dst=layer.host_out)

def _relu_scalar(layer, x):
    s = layer.spec
    return relu_i8_to_u8(s.channels, s.height, s.width, x, dst=layer.host_out)


_SCALAR_KERNELS = {
    LayerKind.CONV: _conv_scalar,
    LayerKind.FC: _fc_scalar,
    LayerKind.REQUANTIZE: _quan_scalar,
    LayerKind.POOL: _pool_scalar,
    LayerKind.RECTIFY: _relu_scalar,
}

# Scalar kernel arguments, in kernel-source order
_DIM_ARGS = {
    LayerKind.CONV: lambda s: (s.channels, s.out_channels, s.height, s.width),
    LayerKind.FC: lambda s: (s.channels, s.out_channels),
    LayerKind.REQUANTIZE: lambda s: (s.channels, s.height, s.width),
    LayerKind.POOL: lambda s: (s.channels, s.height, s.width, s.height >> 1, s.width >> 1),
    LayerKind.RECTIFY: lambda s: (s.channels, s.height, s.width),
}

# One work-item per output element: (H, W, channel) or (CO, 1, 1) for FC
_WORK_GEOMETRY = {
    LayerKind.CONV: lambda s: (s.height, s.width, s.out_channels),
    LayerKind.FC: lambda s: (s.out_channels, 1, 1),
    LayerKind.REQUANTIZE: lambda s: (s.height, s.width, s.channels),
    LayerKind.POOL: lambda s: (s.height >> 1, s.width >> 1, s.channels),
    LayerKind.RECTIFY: lambda s: (s.height, s.width, s.channels),
}

# Names of the read-only parameter arrays bound before the input buffer
_PARAMS = {
    LayerKind.CONV: ("weight",),
    LayerKind.FC: ("weight",),
    LayerKind.REQUANTIZE: ("bias", "shift"),
    LayerKind.POOL: (),
    LayerKind.RECTIFY: (),
}

for _table in (_SCALAR_KERNELS, _DIM_ARGS, _WORK_GEOMETRY, _PARAMS):
    assert set(_table) == set(LayerKind), "layer dispatch table is not exhaustive"


class Layer:
    """
    One pipeline stage built from a LayerSpec.

    Owns private copies of its parameters, a host output array for the
    scalar path, device buffers (parameters + output) and a kernel handle.
    Outputs are overwritten in place on every call, so a Layer serves one
    forward pass at a time.
    """

    def __init__(self, spec, context, index=0):
        self.spec = spec
        self.kind = spec.kind
        self.index = index
        self.context = context
        self.input_desc = spec.input_desc
        self.output_desc = spec.output_desc
        self.work_size = tuple(int(n) for n in _WORK_GEOMETRY[self.kind](spec))
        self._dims = tuple(int(d) for d in _DIM_ARGS[self.kind](spec))
        self.last_event = None

        self.weight = None if spec.weight is None else spec.weight.copy()
        self.bias = None if spec.bias is None else spec.bias.copy()
        self.shift = None if spec.shift is None else spec.shift.copy()
        self.host_out = np.zeros(self.output_desc.size, dtype=self.output_desc.dtype)

        self.kernel = None
        self.device_out = None
        self._device_params = ()
        self._buffers = []
        self._released = False
        try:
            self.kernel = context.program.create_kernel(self.kind.value)
            self._device_params = tuple(
                self._own(context.create_buffer(getattr(self, name).dtype,
                                                 getattr(self, name).size,
                                                 hostbuf=getattr(self, name),
                                                 read_only=True))
                for name in _PARAMS[self.kind])
            self.device_out = self._own(
                context.create_buffer(self.output_desc.dtype, self.output_desc.size))
        except Exception:
            self.release()
            raise

    def _own(self, buf):
        self._buffers.append(buf)
        return buf

    def compute_scalar(self, x):
        """Run the sequential kernel on `x`; returns this layer's host output."""
        _SCALAR_KERNELS[self.kind](self, x)
        return self.host_out

    def compute_accelerated(self, x_buffer):
        """Enqueue this layer's kernel reading `x_buffer`; returns the device output.

        Does not wait for completion; the dispatch event is kept in last_event.
        """
        self.kernel.set_args(*self._dims, *self._device_params, x_buffer, self.device_out)
        self.last_event = self.context.queue.enqueue_nd_range_kernel(self.kernel, self.work_size)
        return self.device_out

    @property
    def released(self):
        return self._released

    def release(self):
        """Release device buffers and the kernel handle (once)."""
        if self._released:
            return
        self._released = True
        for buf in reversed(self._buffers):
            buf.release()
        self._buffers = []
        if self.kernel is not None:
            self.kernel.release()
        self.last_event = None

    def __repr__(self):
        return f"Layer({self.index}, {self.spec})"
