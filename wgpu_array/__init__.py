"""
wgpu_array: N-dimensional arrays computed on the GPU via wgpu-py.

Arrays keep a numpy copy on the host and a storage buffer on the device,
with dirty flags deciding when data has to move. Operations are generated
as WGSL compute shaders for any of the i32/u32/f16/f32 element types, with
numpy-style broadcasting.

Modules:
    wgpu_shaders   - WGSL compute shader templates
    wgpu_broadcast - shape broadcasting and type promotion
    wgpu_ndarray   - NDArray with host/device staleness tracking
    wgpu_backend   - device wrapper, caches and execution engine
    wgpu_random    - xoshiro128++ generator and normal sampling
"""

from wgpu_array.wgpu_backend import (
    GPUBackend, OPERATIONS, DeviceState,
    request_backend, get_backend,
)
from wgpu_array.wgpu_broadcast import (
    DTYPES,
    broadcast_shapes, broadcast_strides, promote_types,
)
from wgpu_array.wgpu_config import BackendOptions
from wgpu_array.wgpu_errors import (
    GPUArrayError, ShapeError, DTypeError, UnsupportedError,
    DeviceLostError, ShaderCompilationError,
)
from wgpu_array.wgpu_ndarray import NDArray
from wgpu_array.wgpu_random import Xoshiro128pp

__version__ = "0.1.0"

__all__ = [
    # Backend
    "GPUBackend", "OPERATIONS", "DeviceState",
    "request_backend", "get_backend", "BackendOptions",
    # Arrays
    "NDArray", "DTYPES",
    "broadcast_shapes", "broadcast_strides", "promote_types",
    # Random
    "Xoshiro128pp",
    # Errors
    "GPUArrayError", "ShapeError", "DTypeError", "UnsupportedError",
    "DeviceLostError", "ShaderCompilationError",
]
