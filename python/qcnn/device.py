"""
Execution context for the accelerated backend.

A Context owns everything a kernel dispatch needs and that every layer
shares read-only: the compiled program and one in-order command queue.
Device buffers and kernel handles are created through it but owned by
whoever created them (normally a Layer), which must release them.

Kernels are compiled with numba from a kernel source file exposing the
entry points listed in KERNEL_ENTRY_POINTS.
"""
from __future__ import annotations

import importlib.util
import itertools
import os
import sys
import threading
import time
import traceback
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

import numba
import numpy as np
from numba.core.errors import NumbaError

from .constants import DEFAULT_KERNEL_FILE, KERNEL_ENTRY_POINTS
from .errors import CompileError, ResourceInitError

# Typed signatures of the kernel entry points: global size (3 x int64),
# scalar dimensions, then flat contiguous buffers.
KERNEL_SIGNATURES = {
    "conv": "void(int64, int64, int64, int64, int64, int64, int64, int8[::1], uint8[::1], int32[::1])",
    "fc":   "void(int64, int64, int64, int64, int64, int8[::1], uint8[::1], int32[::1])",
    "quan": "void(int64, int64, int64, int64, int64, int64, int32[::1], uint8[::1], int32[::1], int8[::1])",
    "pool": "void(int64, int64, int64, int64, int64, int64, int64, int64, uint8[::1], uint8[::1])",
    "relu": "void(int64, int64, int64, int64, int64, int64, int8[::1], uint8[::1])",
}
assert set(KERNEL_SIGNATURES) == set(KERNEL_ENTRY_POINTS)

_program_ids = itertools.count()


def _copy(dst, src):
    np.copyto(dst, src, casting="unsafe")


class Buffer:
    """Flat typed device allocation."""

    def __init__(self, context, dtype, size, hostbuf=None, read_only=False):
        size = int(size)
        if size <= 0:
            raise ResourceInitError(f"cannot create a buffer of {size} elements")
        self.context = context
        self.dtype = np.dtype(dtype)
        self.size = size
        self.read_only = read_only
        if hostbuf is None:
            self._data = np.zeros(size, dtype=self.dtype)
        else:
            src = np.asarray(hostbuf).reshape(-1)
            if src.size != size:
                raise ResourceInitError(f"host buffer has {src.size} elements, expected {size}")
            self._data = np.ascontiguousarray(src, dtype=self.dtype).copy()

    @property
    def nbytes(self):
        return self.size * self.dtype.itemsize

    @property
    def released(self):
        return self._data is None

    def array(self):
        """Backing array, for use by the command queue only."""
        if self._data is None:
            raise ResourceInitError("use of a released buffer")
        return self._data

    def release(self):
        if self._data is None:
            return
        self._data = None
        self.context._forget(self)

    def __repr__(self):
        state = "released" if self.released else f"{self.nbytes}B"
        return f"Buffer({self.dtype.name}[{self.size}], {state})"


class Event:
    """Completion handle for one enqueued command, with profiling timestamps (ns)."""

    def __init__(self, label):
        self.label = label
        self.profile_start: Optional[int] = None
        self.profile_end: Optional[int] = None
        self._future = None

    def wait(self):
        self._future.result()
        return self

    @property
    def done(self):
        return self._future is not None and self._future.done()

    @property
    def duration(self):
        """Device-side execution time in seconds; blocks until complete."""
        self.wait()
        return (self.profile_end - self.profile_start) / 1e9


class Kernel:
    """A compiled entry point plus the arguments bound to it."""

    def __init__(self, program, name, fn):
        self.program = program
        self.name = name
        self._fn = fn
        self.args = ()

    def set_args(self, *args):
        self.args = args

    @property
    def released(self):
        return self._fn is None

    def launcher(self):
        if self._fn is None:
            raise ResourceInitError(f"use of released kernel '{self.name}'")
        return self._fn

    def release(self):
        self._fn = None
        self.args = ()


class CommandQueue:
    """
    In-order asynchronous command queue.

    Commands run one after another on a single worker thread, so a kernel
    always sees the results of every command enqueued before it. Enqueue
    returns immediately with an Event; blocking reads/writes and finish()
    are the synchronisation points. After a command fails, every later
    command fails with the same error until the queue is released.
    """

    def __init__(self, name="qcnn-queue"):
        self._pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix=name)
        self._error = None
        self._last = None
        self._lock = threading.Lock()

    def _submit(self, label, fn, *args):
        if self._pool is None:
            raise ResourceInitError("command queue has been released")
        event = Event(label)

        def run():
            if self._error is not None:
                raise self._error
            event.profile_start = time.perf_counter_ns()
            try:
                fn(*args)
            except BaseException as e:
                self._error = e
                raise
            finally:
                event.profile_end = time.perf_counter_ns()

        with self._lock:
            event._future = self._pool.submit(run)
            self._last = event
        return event

    def enqueue_nd_range_kernel(self, kernel, global_size):
        """Launch `kernel` over a 3-axis index space with its bound arguments."""
        g = tuple(int(n) for n in global_size)
        if len(g) != 3 or min(g) <= 0:
            raise ValueError(f"global work size must be 3 positive extents, got {global_size}")
        fn = kernel.launcher()
        args = tuple(a.array() if isinstance(a, Buffer) else a for a in kernel.args)
        return self._submit(kernel.name, fn, *g, *args)

    def enqueue_write_buffer(self, buffer, host, blocking=True):
        dst = buffer.array()
        src = np.asarray(host).reshape(-1)
        if src.size != dst.size:
            raise ValueError(f"write of {src.size} elements into {buffer}")
        if not blocking:
            # the caller may reuse `host` as soon as we return
            src = src.copy()
        event = self._submit("write", _copy, dst, src)
        return event.wait() if blocking else event

    def enqueue_read_buffer(self, buffer, host, blocking=True):
        src = buffer.array()
        if host.size != src.size or not host.flags.c_contiguous:
            raise ValueError(f"read of {buffer} into host array of {host.size} elements")
        event = self._submit("read", _copy, host.reshape(-1), src)
        return event.wait() if blocking else event

    def finish(self):
        """Block until every enqueued command has completed."""
        with self._lock:
            last = self._last
        if last is not None:
            last.wait()
        if self._error is not None:
            raise self._error

    def release(self):
        if self._pool is None:
            return
        self._pool.shutdown(wait=True)
        self._pool = None


class Program:
    """Kernel source compiled for this device."""

    def __init__(self, source_path, kernels, module_name=None):
        self.source_path = source_path
        self.module_name = module_name
        self._kernels = kernels

    @classmethod
    def build(cls, source_path):
        if not os.path.isfile(source_path):
            raise ResourceInitError(f"kernel source not found: {source_path}")
        module = _load_source(source_path)

        kernels = {}
        try:
            for name in KERNEL_ENTRY_POINTS:
                kernels[name] = _compile_entry_point(module, name, source_path)
        except CompileError:
            sys.modules.pop(module.__name__, None)
            raise
        return cls(source_path, kernels, module.__name__)

    @property
    def entry_points(self):
        return tuple(self._kernels)

    def create_kernel(self, name):
        if self._kernels is None:
            raise ResourceInitError("program has been released")
        if name not in self._kernels:
            raise ResourceInitError(f"no kernel named '{name}' in {self.source_path}")
        return Kernel(self, name, self._kernels[name])

    def release(self):
        self._kernels = None
        if self.module_name is not None:
            sys.modules.pop(self.module_name, None)
            self.module_name = None


def _compile_entry_point(module, name, source_path):
    fn = getattr(module, name, None)
    if not callable(fn):
        raise CompileError(f"kernel source {source_path} has no entry point '{name}'",
                           build_log=f"missing entry point: {name}")
    try:
        return numba.njit(KERNEL_SIGNATURES[name], parallel=True, nogil=True)(fn)
    except NumbaError as e:
        raise CompileError(f"failed to build kernel '{name}' from {source_path}",
                           build_log=str(e)) from e


def _load_source(source_path):
    mod_name = f"qcnn_program_{next(_program_ids)}"
    spec = importlib.util.spec_from_file_location(mod_name, source_path)
    module = importlib.util.module_from_spec(spec)
    sys.modules[mod_name] = module
    try:
        spec.loader.exec_module(module)
    except Exception as e:
        sys.modules.pop(mod_name, None)
        raise CompileError(f"kernel source {source_path} failed to load",
                           build_log=traceback.format_exc()) from e
    return module


class Context:
    """Compiled program and command queue shared by every layer of an Engine."""

    def __init__(self, kernel_file=None):
        self.kernel_file = kernel_file or DEFAULT_KERNEL_FILE
        self.queue = None
        self.program = None
        self._live = 0
        self._lock = threading.Lock()
        try:
            self.queue = CommandQueue()
            self.program = Program.build(self.kernel_file)
        except Exception:
            self.release()
            raise
        print(f"[device] numba {numba.__version__} ({numba.config.NUMBA_NUM_THREADS} threads), "
              f"program {os.path.basename(self.kernel_file)}: {', '.join(self.program.entry_points)}")

    def create_buffer(self, dtype, size, hostbuf=None, read_only=False):
        if self.queue is None:
            raise ResourceInitError("context has been released")
        buf = Buffer(self, dtype, size, hostbuf=hostbuf, read_only=read_only)
        with self._lock:
            self._live += 1
        return buf

    def _forget(self, buffer):
        with self._lock:
            self._live -= 1

    @property
    def live_buffers(self):
        """Number of buffers created through this context and not yet released."""
        return self._live

    @property
    def released(self):
        return self.queue is None

    def release(self):
        if self.queue is not None:
            self.queue.release()
            self.queue = None
        if self.program is not None:
            self.program.release()
            self.program = None
        if self._live:
            print(f"[device] WARNING: context released with {self._live} live buffer(s)")

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.release()
        return False
