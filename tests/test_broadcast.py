"""Shape broadcasting, strides and type promotion (no device needed)."""

import numpy as np
import pytest

from wgpu_array.wgpu_broadcast import (
    broadcast_shapes, broadcast_strides, check_dtype, contiguous_strides,
    element_count, normalize_shape, normalize_strides, promote_types,
    result_type, scalar_dtype,
)
from wgpu_array.wgpu_errors import DTypeError, ShapeError


def test_normalize_shape():
    assert normalize_shape(None) == (1,)
    assert normalize_shape(5) == (5,)
    assert normalize_shape([2, 3]) == (2, 3)
    with pytest.raises(ShapeError):
        normalize_shape([2, 0])
    with pytest.raises(ShapeError):
        normalize_shape([-1])
    with pytest.raises(ShapeError):
        normalize_shape([])


def test_contiguous_strides():
    assert contiguous_strides((2, 3, 4)) == (12, 4, 1)
    assert contiguous_strides((5,)) == (1,)


def test_normalize_strides():
    assert normalize_strides(2, (3,)) == (2,)
    with pytest.raises(ShapeError, match="same length"):
        normalize_strides((1,), (2, 2))
    with pytest.raises(ShapeError):
        normalize_strides((-1, 1), (2, 2))


def test_element_count():
    assert element_count((2, 3)) == 6
    # Transposed view of a 3x2 buffer
    assert element_count((2, 3), (1, 2)) == 6
    # Every other element
    assert element_count((4,), (2,)) == 7
    # Broadcast view reads one element
    assert element_count((3, 3), (0, 0)) == 1


def test_broadcast_shapes():
    assert broadcast_shapes((2, 3), (1,)) == (2, 3)
    assert broadcast_shapes((2, 3), (3,)) == (2, 3)
    assert broadcast_shapes((2, 1), (1, 4)) == (2, 4)
    assert broadcast_shapes((5, 1, 3), (4, 1)) == (5, 4, 3)
    assert broadcast_shapes((2, 3), (2, 3), (1, 3)) == (2, 3)
    for a, b in [((2, 3), (1,)), ((2, 1), (1, 4)), ((5, 1, 3), (4, 1))]:
        assert broadcast_shapes(a, b) == np.broadcast_shapes(a, b)


def test_broadcast_shapes_incompatible():
    with pytest.raises(ShapeError, match="Incompatible"):
        broadcast_shapes((2, 3), (2,))
    with pytest.raises(ValueError):
        broadcast_shapes((4,), (3,))


def test_broadcast_strides():
    # [3] against [2, 3]: new leading axis reads the same row
    assert broadcast_strides((3,), (1,), (2, 3)) == (0, 1)
    # [1] against [2, 3]: every position reads element 0
    assert broadcast_strides((1,), (1,), (2, 3)) == (0, 0)
    # [2, 1] against [2, 4]
    assert broadcast_strides((2, 1), (1, 1), (2, 4)) == (1, 0)
    # Unchanged
    assert broadcast_strides((2, 3), (3, 1), (2, 3)) == (3, 1)


def test_broadcast_strides_incompatible():
    with pytest.raises(ShapeError):
        broadcast_strides((2,), (1,), (2, 3))
    with pytest.raises(ShapeError):
        broadcast_strides((2, 3, 4), (12, 4, 1), (3, 4))


def test_promote_types():
    assert promote_types("i32", "i32") == "i32"
    assert promote_types("u32", "f32") == "f32"
    assert promote_types("f16", "f32") == "f32"
    assert promote_types("i32", "f16") == "f16"
    assert promote_types("f16", "u32") == "f16"
    with pytest.raises(DTypeError, match="Incompatible types"):
        promote_types("i32", "u32")
    with pytest.raises(TypeError):
        promote_types("u32", "i32")


def test_result_type():
    assert result_type("f32") == "f32"
    assert result_type("u32", "u32", "f16") == "f16"


def test_scalar_dtype():
    assert scalar_dtype(2, "u32") == "u32"
    assert scalar_dtype(2, "f16") == "f16"
    assert scalar_dtype(2.0, "i32") == "i32"
    assert scalar_dtype(2.5, "i32") == "f32"
    assert scalar_dtype(True, "i32") == "i32"
    assert scalar_dtype(1, None) == "i32"
    assert scalar_dtype(0.5, None) == "f32"
    with pytest.raises(DTypeError):
        scalar_dtype(-1, "u32")
    with pytest.raises(DTypeError):
        scalar_dtype("1", "f32")


def test_check_dtype():
    assert check_dtype(None) == "f32"
    assert check_dtype("u32") == "u32"
    assert check_dtype(np.float16) == "f16"
    assert check_dtype("float32") == "f32"
    assert check_dtype(np.dtype(np.int32)) == "i32"
    with pytest.raises(DTypeError, match="Unknown dtype"):
        check_dtype("f64")
    with pytest.raises(DTypeError):
        check_dtype("nonsense")
