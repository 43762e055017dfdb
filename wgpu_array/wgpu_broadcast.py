"""Shape broadcasting, stride adjustment and element type promotion.

Pure functions, no device access. Shapes and strides are tuples of ints;
strides are counted in elements, not bytes.
"""

import numbers

import numpy as np

from wgpu_array.wgpu_errors import DTypeError, ShapeError

# WGSL element type -> numpy dtype of the host buffer
DTYPES = {
    "i32": np.dtype(np.int32),
    "u32": np.dtype(np.uint32),
    "f16": np.dtype(np.float16),
    "f32": np.dtype(np.float32),
}

FLOAT_TYPES = ("f16", "f32")

_NUMPY_NAMES = {dt: name for name, dt in DTYPES.items()}


def check_dtype(dtype):
    """Normalize a dtype given by WGSL name or numpy dtype to its WGSL name."""
    if dtype is None:
        return "f32"
    if isinstance(dtype, str) and dtype in DTYPES:
        return dtype
    try:
        return _NUMPY_NAMES[np.dtype(dtype)]
    except (TypeError, KeyError):
        raise DTypeError(f"Unknown dtype: {dtype!r}") from None


def is_float(dtype):
    return dtype in FLOAT_TYPES


# ============================================================================
# Shapes & Strides
# ============================================================================

def normalize_shape(shape):
    """None -> (1,), int -> (n,), sequence -> tuple; extents must be positive."""
    if shape is None:
        return (1,)
    if isinstance(shape, numbers.Integral):
        shape = (shape,)
    shape = tuple(int(s) for s in shape)
    if len(shape) == 0:
        raise ShapeError("shape must have at least one axis")
    if any(s <= 0 for s in shape):
        raise ShapeError(f"shape must be positive: {list(shape)}")
    return shape


def contiguous_strides(shape):
    """Row-major strides of a contiguous array."""
    strides = []
    step = 1
    for extent in reversed(shape):
        strides.append(step)
        step *= extent
    return tuple(reversed(strides))


def normalize_strides(strides, shape):
    if isinstance(strides, numbers.Integral):
        strides = (strides,)
    strides = tuple(int(s) for s in strides)
    if len(strides) != len(shape):
        raise ShapeError(f"strides must have same length: {len(strides)} != {len(shape)}")
    if any(s < 0 for s in strides):
        raise ShapeError(f"strides must not be negative: {list(strides)}")
    return strides


def element_count(shape, strides=None):
    """Number of host elements backing ``shape`` laid out with ``strides``.

    The product of the shape for contiguous arrays, else the largest
    reachable offset plus one.
    """
    if strides is None:
        return int(np.prod(shape, dtype=np.int64))
    return sum((extent - 1) * stride for extent, stride in zip(shape, strides)) + 1


def broadcast_shapes(*shapes):
    """Common shape of ``shapes`` aligned from the trailing axis.

    Missing leading axes count as 1 and extents of 1 stretch to match.
    """
    ndim = max(len(s) for s in shapes)
    padded = [(1,) * (ndim - len(s)) + tuple(s) for s in shapes]

    out = []
    for axis in range(ndim):
        extents = {s[axis] for s in padded if s[axis] != 1}
        if len(extents) > 1:
            raise ShapeError(
                f"Incompatible shapes for broadcast: {', '.join(str(list(s)) for s in shapes)}"
            )
        out.append(extents.pop() if extents else 1)
    return tuple(out)


def broadcast_strides(shape, strides, out_shape):
    """Strides reading an array of ``shape`` as if it had ``out_shape``.

    Left-pads with zero strides, and zeroes the stride of every stretched
    axis so each output position along it reads the same element.
    """
    pad = len(out_shape) - len(shape)
    if pad < 0:
        raise ShapeError(f"Cannot broadcast {list(shape)} to {list(out_shape)}")
    shape = (1,) * pad + tuple(shape)
    strides = [0] * pad + list(strides)

    for axis, (extent, target) in enumerate(zip(shape, out_shape)):
        if extent == target:
            continue
        if extent != 1:
            raise ShapeError(
                f"Cannot broadcast {list(shape)} to {list(out_shape)} at axis {axis}"
            )
        strides[axis] = 0
    return tuple(strides)


# ============================================================================
# Type Promotion
# ============================================================================

def promote_types(a, b):
    """Result element type of a binary operation on ``a`` and ``b``."""
    if a == b:
        return a
    if "f32" in (a, b):
        return "f32"
    if "f16" in (a, b):
        return "f16"
    raise DTypeError(f"Incompatible types: {a} and {b}")


def scalar_dtype(value, other):
    """Element type a Python scalar takes when combined with ``other``.

    Scalars follow the array they are combined with, except that a
    non-integral value lifts an integer array to f32.
    """
    if isinstance(value, bool):
        value = int(value)
    if not isinstance(value, numbers.Real):
        raise DTypeError(f"Unsupported scalar: {value!r}")
    if other is None:
        return "i32" if isinstance(value, numbers.Integral) else "f32"
    if is_float(other):
        return other
    if not float(value).is_integer():
        return "f32"
    if other == "u32" and value < 0:
        raise DTypeError(f"Negative scalar {value} combined with u32")
    return other


def result_type(*dtypes):
    """Fold :func:`promote_types` over any number of element types."""
    out = dtypes[0]
    for dtype in dtypes[1:]:
        out = promote_types(out, dtype)
    return out
