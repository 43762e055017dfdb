"""wgpu device wrapper, layout/shader caches and the execution engine.

A :class:`GPUBackend` owns one wgpu device and everything derived from it:

    - bind group / pipeline layouts cached by read/write mode signature
    - shader modules cached by their generated WGSL source
    - compute pipelines cached by (source, modes), plus a bounded LRU of
      pipelines that carry override constants
    - a deferred-release queue for buffers still referenced by queued work,
      drained after read-backs, synchronize() and whenever it grows too long

All operations (arithmetic, math functions, reductions, where) go through
:meth:`GPUBackend.elementwise` or :meth:`GPUBackend.reduce`, which resolve
shapes and types, generate WGSL with :mod:`wgpu_array.wgpu_shaders` and
submit every dispatch of the call as one command buffer.
"""

import atexit
import enum
import logging
from collections import OrderedDict, deque
from typing import NamedTuple

import numpy as np
import wgpu

from wgpu_array import wgpu_shaders as shaders
from wgpu_array.wgpu_broadcast import (
    DTYPES, broadcast_shapes, broadcast_strides, check_dtype, contiguous_strides,
    is_float, result_type, scalar_dtype,
)
from wgpu_array.wgpu_config import BackendOptions
from wgpu_array.wgpu_errors import (
    DeviceLostError, ShaderCompilationError, ShapeError, UnsupportedError,
)
from wgpu_array.wgpu_ndarray import NDArray

logger = logging.getLogger(__name__)

STAGING_USAGE = wgpu.BufferUsage.MAP_READ | wgpu.BufferUsage.COPY_DST
STRIDES_USAGE = wgpu.BufferUsage.STORAGE | wgpu.BufferUsage.COPY_DST

# Deferred releases held before submit() waits for the queue and drains them
PENDING_RELEASE_LIMIT = 256
# Pipelines kept for distinct override-constant values
CONSTANT_PIPELINE_LIMIT = 512


# ============================================================================
# Operation Registry
# ============================================================================

class Operation(NamedTuple):
    """Static description of a builtin operation.

    Args:
        template: "operator", "func1", "func2", "reduce_op" or "reduce_func"
        symbol: WGSL operator or builtin function name
        arity: number of operands
        commutative: operands may be swapped without changing the result
        float_only: integer inputs are computed (and returned) as f32
    """

    template: str
    symbol: str
    arity: int
    commutative: bool = False
    float_only: bool = False


def _math(symbol):
    return Operation("func1", symbol, 1, float_only=True)


OPERATIONS = {
    # Vector operators
    "add": Operation("operator", "+", 2, commutative=True),
    "sub": Operation("operator", "-", 2),
    "mul": Operation("operator", "*", 2, commutative=True),
    "div": Operation("operator", "/", 2),
    # Functions with 1 argument
    "abs": Operation("func1", "abs", 1),
    "acos": _math("acos"),
    "acosh": _math("acosh"),
    "asin": _math("asin"),
    "asinh": _math("asinh"),
    "atan": _math("atan"),
    "atanh": _math("atanh"),
    "ceil": _math("ceil"),
    "cos": _math("cos"),
    "cosh": _math("cosh"),
    "degrees": _math("degrees"),
    "exp": _math("exp"),
    "exp2": _math("exp2"),
    "floor": _math("floor"),
    "fract": _math("fract"),
    "inverse_sqrt": _math("inverseSqrt"),
    "log": _math("log"),
    "log2": _math("log2"),
    "radians": _math("radians"),
    "round": _math("round"),
    "sign": _math("sign"),
    "sin": _math("sin"),
    "sinh": _math("sinh"),
    "sqrt": _math("sqrt"),
    "tan": _math("tan"),
    "tanh": _math("tanh"),
    "trunc": _math("trunc"),
    # Functions with 2 arguments
    "max": Operation("func2", "max", 2, commutative=True),
    "min": Operation("func2", "min", 2, commutative=True),
    "pow": Operation("func2", "pow", 2, float_only=True),
    "atan2": Operation("func2", "atan2", 2, float_only=True),
    # Reductions
    "sum": Operation("reduce_op", "+", 1, commutative=True),
    "prod": Operation("reduce_op", "*", 1, commutative=True),
    "amin": Operation("reduce_func", "min", 1, commutative=True),
    "amax": Operation("reduce_func", "max", 1, commutative=True),
}

_INPUT_NAMES = {
    "operator": ("lhs", "rhs"),
    "func1": ("arg",),
    "func2": ("arg0", "arg1"),
    "where": ("cond", "x", "y"),
}


def _build(op, size, operands, out, strides):
    if op.template == "operator":
        return shaders.vector_op(op.symbol, size, *operands, out, strides=strides)
    if op.template == "func1":
        return shaders.func1(op.symbol, size, *operands, out, strides=strides)
    if op.template == "func2":
        return shaders.func2(op.symbol, size, operands, out, strides=strides)
    if op.template == "where":
        return shaders.where(size, *operands, out, strides=strides)
    raise ValueError(f"Not an elementwise template: {op.template}")


_WHERE = Operation("where", "select", 3)


# ============================================================================
# Device State & Dispatch Records
# ============================================================================

class DeviceState(enum.Enum):
    ACTIVE = "active"
    LOST = "lost"


class LostInfo(NamedTuple):
    reason: str
    message: str


class Layout(NamedTuple):
    key: str
    bind_group_layout: object
    pipeline_layout: object


class Dispatch(NamedTuple):
    """One compute pass.

    Args:
        code: WGSL source
        bindings: list of (NDArray or wgpu.GPUBuffer, "read"|"write"|"read_write"),
            slot i is bindings[i]
        lanes: number of lanes to cover
        constants: override constants ({} for none)
    """

    code: str
    bindings: list
    lanes: int
    constants: dict


def _buffer_of(resource):
    return resource.device if isinstance(resource, NDArray) else resource


# ============================================================================
# Backend
# ============================================================================

class GPUBackend:
    """Array factory and execution engine bound to one wgpu device."""

    def __init__(self, device, options=None):
        """
        Args:
            device: wgpu.GPUDevice
            options: BackendOptions (defaults are used when None)
        """
        self.device = device
        self.options = options or BackendOptions()
        self.state = DeviceState.ACTIVE
        self.lost_info = None

        self.has_f16 = "shader-f16" in device.features
        limits = device.limits
        self.workgroup_size = min(
            self.options.workgroup_size,
            limits["max-compute-workgroup-size-x"],
            limits["max-compute-invocations-per-workgroup"],
        )
        self.max_workgroups = limits["max-compute-workgroups-per-dimension"]

        self._layouts = {}
        self._shaders = {}
        self._pipelines = {}
        self._constant_pipelines = OrderedDict()

        self._serial = 0
        self._pending_release = deque()

    def __repr__(self):
        return (f"GPUBackend(state={self.state.value}, workgroup_size={self.workgroup_size}, "
                f"f16={self.has_f16})")

    # ---- Device State ----
    def assert_active(self):
        """Raise DeviceLostError once the device has been lost."""
        if self.state is DeviceState.LOST:
            raise DeviceLostError(self.lost_info.reason, self.lost_info.message)

    def mark_lost(self, reason, message=""):
        """Move the backend to the terminal Lost state."""
        if self.state is DeviceState.LOST:
            return
        if reason == "destroyed":
            logger.info("GPU device destroyed")
        else:
            logger.error(f"GPU device lost: reason={reason} message={message}")
        self.state = DeviceState.LOST
        self.lost_info = LostInfo(reason, message)
        self._pending_release.clear()

    def destroy(self):
        """Destroy the device; every later call raises DeviceLostError."""
        if self.state is DeviceState.LOST:
            return
        self.device.destroy()
        self.mark_lost("destroyed", "device destroyed by destroy()")

    # ---- Buffers ----
    def create_buffer(self, size, usage):
        self.assert_active()
        return self.device.create_buffer(size=size, usage=usage)

    def write_buffer(self, buffer, data):
        self.assert_active()
        self.device.queue.write_buffer(buffer, 0, data)

    def _submit(self, command_buffers):
        self.device.queue.submit(command_buffers)
        self._serial += 1
        return self._serial

    def copy_to_staging(self, buffer):
        """Queue a copy of ``buffer`` into a new map-readable buffer.

        Returns:
            (staging buffer, submission serial of the copy)
        """
        self.assert_active()
        staging = self.device.create_buffer(size=buffer.size, usage=STAGING_USAGE)
        encoder = self.device.create_command_encoder()
        encoder.copy_buffer_to_buffer(buffer, 0, staging, 0, buffer.size)
        return staging, self._submit([encoder.finish()])

    def defer_release(self, buffer):
        """Destroy ``buffer`` once the work submitted so far has completed."""
        if self.state is DeviceState.LOST:
            return
        self._pending_release.append((self._serial, buffer))

    def retire(self, serial):
        """All submissions up to ``serial`` are complete: drain the release queue."""
        count = 0
        while self._pending_release and self._pending_release[0][0] <= serial:
            _, buffer = self._pending_release.popleft()
            buffer.destroy()
            count += 1
        if count:
            logger.debug(f"Released {count} buffers (serial <= {serial})")

    async def synchronize(self):
        """Wait for all submitted work, then release deferred buffers."""
        self.assert_active()
        serial = self._serial
        await self.device.queue.on_submitted_work_done_async()
        self.retire(serial)

    def synchronize_sync(self):
        """Blocking version of :meth:`synchronize`."""
        self.assert_active()
        serial = self._serial
        self.device.queue.on_submitted_work_done_sync()
        self.retire(serial)

    # ---- Layout & Program Cache ----
    def create_layout(self, modes):
        """Bind group + pipeline layout for a list of binding modes."""
        self.assert_active()

        key = "".join("r" if m == "read" else "w" for m in modes)
        if key in self._layouts:
            return self._layouts[key]

        entries = []
        for i, mode in enumerate(modes):
            entries.append({
                "binding": i,
                "visibility": wgpu.ShaderStage.COMPUTE,
                "buffer": {
                    "type": "read-only-storage" if mode == "read" else "storage",
                    "has_dynamic_offset": False,
                },
            })
        bind_group_layout = self.device.create_bind_group_layout(
            entries=entries, label=f"BindGroupLayout-{key}",
        )
        pipeline_layout = self.device.create_pipeline_layout(
            bind_group_layouts=[bind_group_layout]
        )
        layout = Layout(key, bind_group_layout, pipeline_layout)
        self._layouts[key] = layout
        logger.debug(f"New layout {key}")
        return layout

    def create_shader(self, code):
        """Compile (or fetch the cached) shader module for ``code``."""
        self.assert_active()

        if code in self._shaders:
            return self._shaders[code]

        try:
            module = self.device.create_shader_module(code=code)
        except wgpu.GPUError as e:
            raise ShaderCompilationError(f"WGSL compilation failed: {e}", code) from e

        for message in module.get_compilation_info_sync():
            if message["type"] == "error":
                raise ShaderCompilationError(
                    f"WGSL compilation failed: {message['message']}", code
                )
            logger.warning(f"WGSL {message['type']}: {message['message']}")

        self._shaders[code] = module
        logger.debug(f"Compiled shader #{len(self._shaders)}")
        return module

    def create_pipeline(self, code, modes, constants=None):
        """Compute pipeline for ``code`` with bindings in ``modes``.

        Override constants are baked into the pipeline, so pipelines that
        carry them are cached per constant values, keeping only the most
        recently used CONSTANT_PIPELINE_LIMIT.
        """
        layout = self.create_layout(modes)
        if constants:
            key = (code, layout.key, tuple(sorted(constants.items())))
            cache = self._constant_pipelines
        else:
            key = (code, layout.key)
            cache = self._pipelines
        if key in cache:
            if constants:
                cache.move_to_end(key)
            return cache[key], layout

        compute = {"module": self.create_shader(code), "entry_point": "main"}
        if constants:
            compute["constants"] = constants
        pipeline = self.device.create_compute_pipeline(
            layout=layout.pipeline_layout, compute=compute,
        )
        cache[key] = pipeline
        if constants and len(cache) > CONSTANT_PIPELINE_LIMIT:
            cache.popitem(last=False)
        return pipeline, layout

    # ---- Execution ----
    def workgroups(self, lanes):
        """Workgroup counts covering ``lanes``, spilling into y past the limit."""
        groups = max(1, -(-lanes // self.workgroup_size))
        if groups <= self.max_workgroups:
            return (groups, 1, 1)
        return (self.max_workgroups, -(-groups // self.max_workgroups), 1)

    def submit(self, dispatches, release=(), copies=()):
        """Encode ``dispatches`` (then ``copies``) and submit them at once.

        When more than PENDING_RELEASE_LIMIT buffers are waiting to be
        released, waits for the queue and drains them so loops without
        read-back do not hold device memory indefinitely.

        Args:
            dispatches: list of Dispatch
            release: buffers to destroy after this submission has completed
            copies: (source NDArray, destination NDArray) pairs copied after
                the last pass
        Returns:
            submission serial
        """
        self.assert_active()

        # Reads first: an array both read and written must reach the device
        for d in dispatches:
            for resource, mode in d.bindings:
                if mode != "write" and isinstance(resource, NDArray):
                    resource.send()

        encoder = self.device.create_command_encoder()
        for d in dispatches:
            pipeline, layout = self.create_pipeline(
                d.code, [mode for _, mode in d.bindings], d.constants,
            )
            entries = []
            for i, (resource, _) in enumerate(d.bindings):
                buffer = _buffer_of(resource)
                entries.append({
                    "binding": i,
                    "resource": {"buffer": buffer, "offset": 0, "size": buffer.size},
                })
            bind_group = self.device.create_bind_group(
                layout=layout.bind_group_layout, entries=entries,
            )

            groups = self.workgroups(d.lanes)
            logger.debug(f"Dispatch {groups} for {d.lanes} lanes")
            compute_pass = encoder.begin_compute_pass()
            compute_pass.set_pipeline(pipeline)
            compute_pass.set_bind_group(0, bind_group)
            compute_pass.dispatch_workgroups(*groups)
            compute_pass.end()

        for src, dst in copies:
            dst.send()
            encoder.copy_buffer_to_buffer(src.device, 0, dst.device, 0, dst.device.size)

        for d in dispatches:
            for resource, mode in d.bindings:
                if mode != "read" and isinstance(resource, NDArray):
                    resource.mark_device_dirty()
        for _, dst in copies:
            dst.mark_device_dirty()

        serial = self._submit([encoder.finish()])
        for buffer in release:
            self._pending_release.append((serial, buffer))
        if len(self._pending_release) > PENDING_RELEASE_LIMIT:
            self.device.queue.on_submitted_work_done_sync()
            self.retire(serial)
        return serial

    def _strides_buffer(self, strides):
        data = np.asarray(strides, dtype=np.uint32)
        self.assert_active()
        return self.device.create_buffer_with_data(data=data, usage=STRIDES_USAGE)

    def _output(self, out, shape, dtype, inputs):
        """Validate or allocate the output; returns (target, alias).

        When ``out`` is also an input, the kernel writes a temporary that is
        copied into ``out`` afterwards (``alias`` is then ``out``).
        """
        if out is None:
            return self.array(shape, dtype=dtype), None
        if out.custom_strides:
            raise UnsupportedError("Custom strides are not supported on the output")
        if out.shape != tuple(shape):
            raise ShapeError(f"Output shape {list(out.shape)} != {list(shape)}")
        if any(out is a for a in inputs):
            return self.array(shape, dtype=out.dtype), out
        return out, None

    def elementwise(self, tag, *operands, out=None):
        """Run the elementwise operation ``tag`` over arrays and/or scalars.

        Args:
            tag: key of OPERATIONS ("add", "sin", "max", ...)
            operands: NDArray or Python scalars (at least one NDArray)
            out: optional pre-allocated contiguous output
        Returns:
            output NDArray
        """
        try:
            op = OPERATIONS[tag]
        except KeyError:
            raise ValueError(f"Unknown operation: {tag}") from None
        if op.template not in _INPUT_NAMES:
            raise ValueError(f"{tag} is a reduction")
        if len(operands) != op.arity:
            raise TypeError(f"{tag} takes {op.arity} operands, got {len(operands)}")

        if op.commutative and not isinstance(operands[0], NDArray):
            operands = operands[::-1]

        ctype = self._common_type(operands)
        if op.float_only and not is_float(ctype):
            ctype = "f32"
        targets = [ctype] * len(operands)
        return self._launch(op, operands, targets, ctype, out)

    def where(self, cond, x, y, out=None):
        """``out[i] = x[i] if cond[i] != 0 else y[i]`` with broadcasting."""
        if not isinstance(cond, NDArray):
            raise TypeError("where: cond must be an NDArray")
        ctype = self._common_type((x, y))
        return self._launch(_WHERE, (cond, x, y), [cond.dtype, ctype, ctype], ctype, out)

    def _common_type(self, operands):
        arrays = [o.dtype for o in operands if isinstance(o, NDArray)]
        if not arrays:
            raise TypeError("At least one operand must be an NDArray")
        ctype = result_type(*arrays)
        types = [o.dtype if isinstance(o, NDArray) else scalar_dtype(o, ctype)
                 for o in operands]
        return result_type(*types)

    def _launch(self, op, operands, targets, rtype, out):
        arrays = [o for o in operands if isinstance(o, NDArray)]
        shape = broadcast_shapes(*(a.shape for a in arrays))
        target, alias = self._output(out, shape, rtype, arrays)

        strided = any(a.custom_strides or a.shape != shape for a in arrays)

        names = _INPUT_NAMES[op.template]
        bindings = []
        constants = {}
        kernel_operands = []
        for name, value, ttype in zip(names, operands, targets):
            if isinstance(value, NDArray):
                conv = ttype if value.dtype != ttype else ""
                kernel_operands.append(shaders.Operand(len(bindings), value.dtype, conv))
                bindings.append((value, "read"))
            elif ttype == "f16":
                # f16 overrides are declared as f32 and converted in the kernel
                kernel_operands.append(shaders.Operand(None, "f32", "f16"))
                constants[name] = float(value)
            else:
                kernel_operands.append(shaders.Operand(None, ttype))
                constants[name] = float(value) if is_float(ttype) else int(value)

        out_conv = target.dtype if target.dtype != rtype else ""
        out_operand = shaders.Operand(len(bindings), target.dtype, out_conv)
        bindings.append((target, "write"))

        stride_slots = None
        helpers = []
        if strided:
            stride_slots = {}
            for name, value in zip(names, operands):
                if isinstance(value, NDArray):
                    helpers.append(self._strides_buffer(
                        broadcast_strides(value.shape, value.strides, shape)
                    ))
                    stride_slots[name] = len(bindings)
                    bindings.append((helpers[-1], "read"))
            helpers.append(self._strides_buffer(contiguous_strides(shape)))
            stride_slots["out"] = len(bindings)
            bindings.append((helpers[-1], "read"))

        code = _build(op, self.workgroup_size, kernel_operands, out_operand, stride_slots)
        copies = [(target, alias)] if alias is not None else []
        self.submit(
            [Dispatch(code, bindings, target.length, constants)],
            release=helpers, copies=copies,
        )
        if alias is not None:
            target.release()
            return alias
        return target

    def reduce(self, tag, arg, out=None):
        """Reduce all elements of ``arg`` to a single-element array.

        Each pass folds the active elements into at most ``workgroup_size``
        (and at least one) lanes, roughly halving them, until one remains.
        All passes go out in one submission.
        """
        op = OPERATIONS[tag]
        if op.template not in ("reduce_op", "reduce_func"):
            raise ValueError(f"{tag} is not a reduction")
        if arg.custom_strides:
            raise UnsupportedError("Custom strides are not supported on reduction inputs")

        dtype = arg.dtype
        target, alias = self._output(out, out.shape if out is not None else (1,), dtype, [arg])
        if target.length != 1:
            raise ShapeError(f"Reduction output must hold one element: {list(target.shape)}")

        template = shaders.reduce_op if op.template == "reduce_op" else shaders.reduce_func
        dispatches = []
        temps = []
        src, n = arg, arg.length
        while True:
            lanes = min(self.workgroup_size, max(1, n // 2))
            if lanes == 1:
                dst = target
            else:
                dst = self.array((lanes,), dtype=dtype)
                temps.append(dst)
            code = template(
                op.symbol, self.workgroup_size,
                shaders.Operand(0, src.dtype),
                shaders.Operand(1, dst.dtype, dst.dtype if dst.dtype != dtype else ""),
            )
            dispatches.append(Dispatch(
                code, [(src, "read"), (dst, "write")], lanes, {"n": n, "lanes": lanes},
            ))
            if lanes == 1:
                break
            src, n = dst, lanes

        copies = [(target, alias)] if alias is not None else []
        self.submit(dispatches, copies=copies)
        for temp in temps:
            temp.release()
        if alias is not None:
            target.release()
            return alias
        return target

    # ========================================================================
    # Array Constructors
    # ========================================================================

    def array(self, shape=None, dtype="f32", strides=None):
        """Allocate a zero-filled array (host and device)."""
        return NDArray(self, shape=shape, dtype=dtype, strides=strides)

    def zeros(self, shape=None, dtype="f32"):
        return self.array(shape, dtype=dtype)

    def ones(self, shape=None, dtype="f32"):
        return self.full(1, shape=shape, dtype=dtype)

    def full(self, value, shape=None, dtype="f32"):
        """Array of ``shape`` with every element set to ``value``."""
        a = self.array(shape, dtype=dtype)
        a.set(value)
        return a

    def arange(self, start, stop=None, step=1, shape=None, dtype="f32"):
        """Evenly spaced values in [start, stop), like numpy.arange."""
        if stop is None:
            start, stop = 0, start
        dtype = check_dtype(dtype)
        values = np.arange(start, stop, step, dtype=DTYPES[dtype])
        if values.size == 0:
            raise ShapeError(f"arange({start}, {stop}, {step}) is empty")
        a = self.array(values.size if shape is None else shape, dtype=dtype)
        if a.length != values.size:
            raise ShapeError(f"Cannot reshape {values.size} elements to {list(a.shape)}")
        a.set(values)
        return a

    def from_numpy(self, arr):
        """Array holding a copy of ``arr``; float64 -> f32, int64 -> i32."""
        arr = np.asarray(arr)
        if arr.dtype == np.float64:
            arr = arr.astype(np.float32)
        elif arr.dtype in (np.int64, np.bool_):
            arr = arr.astype(np.int32)
        elif arr.dtype == np.uint64:
            arr = arr.astype(np.uint32)
        a = self.array(arr.shape or (1,), dtype=arr.dtype)
        a.set(arr.reshape(a.shape))
        return a

    # ========================================================================
    # Vector Operators
    # ========================================================================

    def add(self, lhs, rhs, out=None):
        """Element-wise addition: lhs + rhs."""
        return self.elementwise("add", lhs, rhs, out=out)

    def sub(self, lhs, rhs, out=None):
        """Element-wise subtraction: lhs - rhs."""
        return self.elementwise("sub", lhs, rhs, out=out)

    def mul(self, lhs, rhs, out=None):
        """Element-wise multiplication: lhs * rhs."""
        return self.elementwise("mul", lhs, rhs, out=out)

    def div(self, lhs, rhs, out=None):
        """Element-wise division: lhs / rhs."""
        return self.elementwise("div", lhs, rhs, out=out)

    # ========================================================================
    # Functions with 1 Argument
    # ========================================================================

    def abs(self, arg, out=None):
        return self.elementwise("abs", arg, out=out)

    def acos(self, arg, out=None):
        return self.elementwise("acos", arg, out=out)

    def acosh(self, arg, out=None):
        return self.elementwise("acosh", arg, out=out)

    def asin(self, arg, out=None):
        return self.elementwise("asin", arg, out=out)

    def asinh(self, arg, out=None):
        return self.elementwise("asinh", arg, out=out)

    def atan(self, arg, out=None):
        return self.elementwise("atan", arg, out=out)

    def atanh(self, arg, out=None):
        return self.elementwise("atanh", arg, out=out)

    def ceil(self, arg, out=None):
        return self.elementwise("ceil", arg, out=out)

    def cos(self, arg, out=None):
        return self.elementwise("cos", arg, out=out)

    def cosh(self, arg, out=None):
        return self.elementwise("cosh", arg, out=out)

    def degrees(self, arg, out=None):
        return self.elementwise("degrees", arg, out=out)

    def exp(self, arg, out=None):
        return self.elementwise("exp", arg, out=out)

    def exp2(self, arg, out=None):
        return self.elementwise("exp2", arg, out=out)

    def floor(self, arg, out=None):
        return self.elementwise("floor", arg, out=out)

    def fract(self, arg, out=None):
        return self.elementwise("fract", arg, out=out)

    def inverse_sqrt(self, arg, out=None):
        """1 / sqrt(arg)."""
        return self.elementwise("inverse_sqrt", arg, out=out)

    def log(self, arg, out=None):
        return self.elementwise("log", arg, out=out)

    def log2(self, arg, out=None):
        return self.elementwise("log2", arg, out=out)

    def radians(self, arg, out=None):
        return self.elementwise("radians", arg, out=out)

    def round(self, arg, out=None):
        """Round half to even (WGSL ``round``)."""
        return self.elementwise("round", arg, out=out)

    def sign(self, arg, out=None):
        return self.elementwise("sign", arg, out=out)

    def sin(self, arg, out=None):
        return self.elementwise("sin", arg, out=out)

    def sinh(self, arg, out=None):
        return self.elementwise("sinh", arg, out=out)

    def sqrt(self, arg, out=None):
        return self.elementwise("sqrt", arg, out=out)

    def tan(self, arg, out=None):
        return self.elementwise("tan", arg, out=out)

    def tanh(self, arg, out=None):
        return self.elementwise("tanh", arg, out=out)

    def trunc(self, arg, out=None):
        return self.elementwise("trunc", arg, out=out)

    # ========================================================================
    # Functions with 2 Arguments
    # ========================================================================

    def max(self, arg0, arg1, out=None):
        """Element-wise maximum."""
        return self.elementwise("max", arg0, arg1, out=out)

    def min(self, arg0, arg1, out=None):
        """Element-wise minimum."""
        return self.elementwise("min", arg0, arg1, out=out)

    def pow(self, arg0, arg1, out=None):
        """Element-wise arg0 ** arg1 (computed in floating point)."""
        return self.elementwise("pow", arg0, arg1, out=out)

    def atan2(self, arg0, arg1, out=None):
        """Element-wise atan2(y=arg0, x=arg1)."""
        return self.elementwise("atan2", arg0, arg1, out=out)

    # ========================================================================
    # Reductions
    # ========================================================================

    def sum(self, arg, out=None):
        return self.reduce("sum", arg, out=out)

    def prod(self, arg, out=None):
        return self.reduce("prod", arg, out=out)

    def amin(self, arg, out=None):
        return self.reduce("amin", arg, out=out)

    def amax(self, arg, out=None):
        return self.reduce("amax", arg, out=out)


# ============================================================================
# Device Acquisition & Default Backend
# ============================================================================

_backend = None


def request_backend(options=None):
    """Request an adapter and device and wrap them in a GPUBackend.

    Args:
        options: BackendOptions; read from the environment when None
    """
    options = options or BackendOptions.from_env()
    adapter = wgpu.gpu.request_adapter_sync(power_preference=options.power_preference)
    if adapter is None:
        raise DeviceLostError("unavailable", "No available GPU adapter")

    features = []
    if options.enable_f16:
        if "shader-f16" in adapter.features:
            features.append("shader-f16")
        else:
            logger.warning("shader-f16 is not supported by the adapter; f16 arrays disabled")

    device = adapter.request_device_sync(required_features=features, label=options.label)
    backend = GPUBackend(device, options)
    logger.info(f"Using {adapter.summary}: {backend!r}")
    return backend


def get_backend():
    """Get or create the process-wide default backend."""
    global _backend
    if _backend is None or _backend.state is DeviceState.LOST:
        _backend = request_backend()
    return _backend


def _cleanup():
    """Destroy the default backend's device on exit."""
    global _backend
    if _backend is not None:
        try:
            _backend.destroy()
        except wgpu.GPUError as e:
            logger.debug(f"Ignoring error while destroying device at exit: {e}")
        _backend = None


atexit.register(_cleanup)

__all__ = [
    "GPUBackend", "Operation", "OPERATIONS", "Dispatch", "DeviceState", "LostInfo",
    "request_backend", "get_backend",
]
