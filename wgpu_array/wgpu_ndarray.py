"""N-dimensional array with paired host (numpy) and device (wgpu) storage.

Each :class:`NDArray` keeps two copies of its data and two staleness flags:

    host_dirty    the numpy copy has writes the GPU buffer has not seen
    device_dirty  a kernel wrote the GPU buffer after the last read-back

``send()`` and ``load()`` copy in one direction and clear the matching flag;
both are no-ops when the flag is clear. Kernels submitted through the
backend call ``send()`` on their inputs and mark their outputs device-dirty.
"""

import asyncio
import logging
import operator
import weakref

import numpy as np
import wgpu

from wgpu_array.wgpu_broadcast import (
    DTYPES, check_dtype, contiguous_strides, element_count,
    normalize_shape, normalize_strides,
)
from wgpu_array.wgpu_errors import ShapeError, UnsupportedError

logger = logging.getLogger(__name__)

STORAGE_USAGE = (
    wgpu.BufferUsage.STORAGE | wgpu.BufferUsage.COPY_SRC | wgpu.BufferUsage.COPY_DST
)


def _padded(nbytes):
    """WebGPU copies move whole 4-byte words."""
    return (nbytes + 3) & ~3


class NDArray:
    """GPU array wrapper around a numpy host buffer and a wgpu storage buffer."""

    def __init__(self, backend, shape=None, dtype="f32", strides=None):
        """Allocate host and device storage.

        Args:
            backend: owning GPUBackend
            shape: int or sequence of positive ints (default [1])
            dtype: "i32", "u32", "f16" or "f32" (numpy dtypes accepted)
            strides: per-axis strides in elements; makes the array a view
                that cannot be reshaped
        """
        backend.assert_active()
        self.backend = backend
        self.dtype = check_dtype(dtype)
        if self.dtype == "f16" and not backend.has_f16:
            raise UnsupportedError("f16 arrays need a device with the shader-f16 feature")

        self._shape = normalize_shape(shape)
        if strides is None:
            self.custom_strides = False
            self._strides = contiguous_strides(self._shape)
            self.size = element_count(self._shape)
        else:
            self.custom_strides = True
            self._strides = normalize_strides(strides, self._shape)
            self.size = element_count(self._shape, self._strides)

        np_dtype = DTYPES[self.dtype]
        nbytes = _padded(self.size * np_dtype.itemsize)
        # Padding (f16 with an odd size) lives only in _storage
        self._storage = np.zeros(nbytes // np_dtype.itemsize, dtype=np_dtype)
        self.host = self._storage[:self.size]

        self.device = backend.create_buffer(nbytes, STORAGE_USAGE)

        self.host_dirty = False
        self.device_dirty = False
        self._device_version = 0
        self._pending_load = None

        self._finalizer = weakref.finalize(self, backend.defer_release, self.device)

    # ---- Properties ----
    @property
    def shape(self):
        return self._shape

    @property
    def strides(self):
        return self._strides

    @property
    def ndim(self):
        return len(self._shape)

    @property
    def length(self):
        """Number of logical elements (product of shape)."""
        return element_count(self._shape)

    @property
    def itemsize(self):
        return DTYPES[self.dtype].itemsize

    @property
    def nbytes(self):
        return self.device.size

    @property
    def released(self):
        return not self._finalizer.alive

    def __repr__(self):
        flags = []
        if self.host_dirty:
            flags.append("host_dirty")
        if self.device_dirty:
            flags.append("device_dirty")
        return (f"NDArray(shape={list(self._shape)}, dtype={self.dtype}, "
                f"strides={list(self._strides)}{', ' if flags else ''}{', '.join(flags)})")

    # ---- Staleness ----
    def mark_device_dirty(self):
        """Record that a kernel has written (or will write) the device buffer."""
        self.host_dirty = False
        self.device_dirty = True
        self._device_version += 1

    def send(self):
        """Copy the host buffer to the device if the host has newer data."""
        if not self.host_dirty:
            return
        self.backend.write_buffer(self.device, self._storage)
        self.host_dirty = False

    async def load(self):
        """Copy the device buffer to the host if the device has newer data.

        Concurrent callers share one read-back.
        """
        if self._pending_load is None:
            if not self.device_dirty:
                return
            self._pending_load = asyncio.ensure_future(self._read_back())
        await self._pending_load

    async def _read_back(self):
        try:
            version = self._device_version
            staging, serial = self.backend.copy_to_staging(self.device)
            # Mapping waits for all work submitted before the copy
            await staging.map_async(wgpu.MapMode.READ, 0, staging.size)
            self._finish_read(staging, serial, version)
        finally:
            self._pending_load = None

    def load_sync(self):
        """Blocking version of :meth:`load`."""
        if not self.device_dirty:
            return
        version = self._device_version
        staging, serial = self.backend.copy_to_staging(self.device)
        staging.map_sync(wgpu.MapMode.READ, 0, staging.size)
        self._finish_read(staging, serial, version)

    def _finish_read(self, staging, serial, version):
        data = staging.read_mapped()
        self._storage[:] = np.frombuffer(data, dtype=self._storage.dtype)
        staging.unmap()
        staging.destroy()
        self.backend.retire(serial)
        # A kernel submitted after the copy has dirtied the device again
        if version == self._device_version:
            self.device_dirty = False
        logger.debug(f"Loaded {self.device.size} bytes into {self!r}")

    # ---- Element Access ----
    def _offset(self, index):
        if len(index) > self.ndim:
            raise IndexError(f"Too many indices: {len(index)} > {self.ndim}")
        if len(index) < self.ndim:
            raise UnsupportedError(
                f"Partial indexing is not supported: {len(index)} < {self.ndim}"
            )
        offset = 0
        for axis, (i, extent, stride) in enumerate(zip(index, self._shape, self._strides)):
            i = operator.index(i)
            if i < 0:
                i += extent
            if not 0 <= i < extent:
                raise IndexError(
                    f"index {index[axis]} is out of bounds for axis {axis} with size {extent}"
                )
            offset += i * stride
        return offset

    def _view(self):
        """Logical numpy view of the host buffer (honours custom strides)."""
        return np.lib.stride_tricks.as_strided(
            self.host,
            shape=self._shape,
            strides=tuple(s * self.itemsize for s in self._strides),
        )

    async def get(self, *index):
        """Load if needed, then return the element at ``index``."""
        await self.load()
        return self.get_without_load(*index)

    def get_without_load(self, *index):
        return self.host[self._offset(index)].item()

    def set(self, value, *index):
        """Set one element, or every element when no index is given.

        Without an index, ``value`` is either a scalar fill value or an
        array-like holding all ``length`` elements in logical order.
        """
        if self.device_dirty:
            self.load_sync()

        if index:
            self.host[self._offset(index)] = value
        elif np.ndim(value) == 0:
            self.host[:] = value
        else:
            values = np.asarray(value, dtype=self.host.dtype)
            if values.size != self.length:
                raise ShapeError(
                    f"Cannot set {values.size} values into {self.length} elements"
                )
            self._view()[...] = values.reshape(self._shape)
        self.host_dirty = True

    def numpy(self):
        """Read back (blocking) and return a copy shaped like the array."""
        self.load_sync()
        return self._view().copy()

    # ---- Shape Manipulation ----
    def reshape(self, *shape):
        """Change the shape in place; the element count must not change."""
        new_shape = shape[0] if len(shape) == 1 and isinstance(shape[0], (tuple, list)) else shape
        if self.custom_strides:
            raise UnsupportedError("Cannot reshape an array with custom strides")
        new_shape = normalize_shape(new_shape)
        if element_count(new_shape) != self.length:
            raise ShapeError(f"Cannot reshape {self.length} elements to {list(new_shape)}")
        self._shape = new_shape
        self._strides = contiguous_strides(new_shape)
        return self

    def release(self):
        """Hand the device buffer to the backend for deferred destruction."""
        self._finalizer()

    # ---- Operators ----
    def __add__(self, other):
        return self.backend.add(self, other)

    def __radd__(self, other):
        return self.backend.add(other, self)

    def __sub__(self, other):
        return self.backend.sub(self, other)

    def __rsub__(self, other):
        return self.backend.sub(other, self)

    def __mul__(self, other):
        return self.backend.mul(self, other)

    def __rmul__(self, other):
        return self.backend.mul(other, self)

    def __truediv__(self, other):
        return self.backend.div(self, other)

    def __rtruediv__(self, other):
        return self.backend.div(other, self)
