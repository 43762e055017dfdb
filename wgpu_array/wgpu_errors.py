"""Exception types raised by wgpu_array.

Validation errors derive from the builtin exception a numpy user would expect
(ValueError for shapes, TypeError for dtypes), so ``except ValueError`` keeps
working for callers that do not know about this package.
"""


class GPUArrayError(Exception):
    """Base class for all wgpu_array errors."""


class ShapeError(GPUArrayError, ValueError):
    """Non-positive extents, incompatible broadcast/reshape, bad strides."""


class DTypeError(GPUArrayError, TypeError):
    """Unknown element type or an incompatible promotion pairing."""


class UnsupportedError(GPUArrayError, NotImplementedError):
    """Valid request that the engine does not implement (e.g. strided outputs)."""


class DeviceLostError(GPUArrayError, RuntimeError):
    """The GPU device is gone; the backend must be recreated."""

    def __init__(self, reason, message=""):
        self.reason = reason
        self.message = message
        super().__init__(f"GPU has been lost: {{ message: {message}, reason: {reason} }}")


class ShaderCompilationError(GPUArrayError, RuntimeError):
    """WGSL generated by wgpu_shaders failed to compile."""

    def __init__(self, message, code=""):
        self.code = code
        super().__init__(message)
