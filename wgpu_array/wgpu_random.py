"""xoshiro128++ pseudo random numbers generated on the GPU.

One generator holds ``size`` independent streams, each a 4 x u32 state
vector stored in a device-resident ``(size, 4)`` u32 array. Stream 0 is
seeded on the host with SplitMix64; streams 1..size-1 are derived on the
device by repeatedly applying the xoshiro128++ jump (2^64 steps), so all
streams come from one sequence without overlapping.

The host functions below mirror the WGSL kernels and are used by the tests.
"""

import logging
import secrets

import numpy as np

from wgpu_array import wgpu_shaders as shaders
from wgpu_array.wgpu_backend import Dispatch
from wgpu_array.wgpu_broadcast import check_dtype, is_float
from wgpu_array.wgpu_errors import DTypeError

logger = logging.getLogger(__name__)

MASK32 = 0xFFFFFFFF
MASK64 = 0xFFFFFFFFFFFFFFFF

JUMP = (0x8764000B, 0xF542D2D3, 0x6FA035C3, 0x77F2DB5B)

# Streams derived per init pass; bounds the serial work of one invocation
INIT_CHUNK = 16
INIT_PASSES_PER_SUBMIT = 256


# ============================================================================
# Host Reference
# ============================================================================

def splitmix64(x):
    """One SplitMix64 step.

    Returns:
        (next state, 64-bit output)
    """
    x = (x + 0x9E3779B97F4A7C15) & MASK64
    z = x
    z = ((z ^ (z >> 30)) * 0xBF58476D1CE4E5B9) & MASK64
    z = ((z ^ (z >> 27)) * 0x94D049BB133111EB) & MASK64
    return x, z ^ (z >> 31)


def seed_state(seed):
    """Four 32-bit state words (low word first) from a 64-bit seed."""
    x = seed & MASK64
    x, a = splitmix64(x)
    x, b = splitmix64(x)
    state = (a & MASK32, a >> 32, b & MASK32, b >> 32)
    if not any(state):
        raise ValueError(f"seed {seed} expands to an all-zero state")
    return state


def _rotl(x, k):
    return ((x << k) | (x >> (32 - k))) & MASK32


def xoshiro128pp_next(state):
    """Advance one stream.

    Returns:
        (32-bit output, next state)
    """
    s0, s1, s2, s3 = state
    result = (_rotl((s0 + s3) & MASK32, 7) + s0) & MASK32
    t = (s1 << 9) & MASK32

    s2 ^= s0
    s3 ^= s1
    s1 ^= s2
    s0 ^= s3

    s2 ^= t
    s3 = _rotl(s3, 11)
    return result, (s0, s1, s2, s3)


def xoshiro128pp_jump(state):
    """Equivalent to 2^64 calls of :func:`xoshiro128pp_next`."""
    acc = [0, 0, 0, 0]
    for word in JUMP:
        for b in range(32):
            if word & (1 << b):
                acc = [a ^ s for a, s in zip(acc, state)]
            _, state = xoshiro128pp_next(state)
    return tuple(acc)


def to_float(x):
    """Float in [0, 1) from the top 23 bits of a 32-bit output."""
    bits = np.asarray((np.asarray(x, dtype=np.uint32) >> 9) | 0x3F800000, dtype=np.uint32)
    return bits.view(np.float32) - np.float32(1.0)


def to_half(x):
    """Half float in [0, 1) from the top 10 bits of a 32-bit output."""
    bits = np.asarray((np.asarray(x, dtype=np.uint32) >> 22) | 0x3C00, dtype=np.uint16)
    return bits.view(np.float16) - np.float16(1.0)


# ============================================================================
# Device Generator
# ============================================================================

class Xoshiro128pp:
    """GPU xoshiro128++ generator with ``size`` parallel streams."""

    def __init__(self, backend, size=1, seed=None):
        """
        Args:
            backend: GPUBackend
            size: number of streams, i.e. values per draw
            seed: 64-bit integer seed; drawn from ``secrets`` when None
        """
        self.backend = backend
        self.size = int(size)
        self.seed = secrets.randbits(64) if seed is None else int(seed)

        self.state = backend.array((self.size, 4), dtype="u32")
        initial = np.zeros((self.size, 4), dtype=np.uint32)
        initial[0] = seed_state(self.seed)
        self.state.set(initial)

        self._state_operand = shaders.Operand(0, "u32")
        self._normal_cache = None

        if self.size > 1:
            self._derive_streams()
        logger.debug(f"Seeded {self.size} xoshiro128++ streams")

    def _derive_streams(self):
        """Fill streams 1..size-1 by jumping, INIT_CHUNK streams per pass."""
        cursor = self.backend.array(1, dtype="u32")
        cursor.set(1)
        code = shaders.xoshiro128pp_init(
            self._state_operand, shaders.Operand(1, "u32"), INIT_CHUNK,
        )
        bindings = [(self.state, "read_write"), (cursor, "read_write")]
        passes = -(-(self.size - 1) // INIT_CHUNK)
        for start in range(0, passes, INIT_PASSES_PER_SUBMIT):
            count = min(INIT_PASSES_PER_SUBMIT, passes - start)
            self.backend.submit([Dispatch(code, bindings, 1, {})] * count)
        cursor.release()
        logger.debug(f"Derived {self.size - 1} streams in {passes} passes")

    def __repr__(self):
        return f"Xoshiro128pp(size={self.size}, seed={self.seed:#x})"

    def next(self, dtype="u32"):
        """Advance every stream once and return one value per stream.

        Args:
            dtype: "u32" for raw words, "f32"/"f16" for floats in [0, 1)
        """
        dtype = check_dtype(dtype)
        if dtype == "i32":
            raise DTypeError("next() produces u32, f32 or f16 values")
        out = self.backend.array(self.size, dtype=dtype)
        code = shaders.xoshiro128pp(
            self.backend.workgroup_size, self._state_operand, shaders.Operand(1, dtype),
        )
        self.backend.submit([Dispatch(
            code, [(self.state, "read_write"), (out, "write")], self.size, {},
        )])
        return out

    def skip(self):
        """Advance every stream once without producing output."""
        code = shaders.xoshiro128pp(self.backend.workgroup_size, self._state_operand)
        self.backend.submit([Dispatch(code, [(self.state, "read_write")], self.size, {})])

    def normal(self, dtype="f32"):
        """Standard normal samples, one per stream (Box-Muller).

        Each transform yields two samples; the second is kept for the next
        call with the same dtype.
        """
        dtype = check_dtype(dtype)
        if not is_float(dtype):
            raise DTypeError(f"normal() needs a float dtype, got {dtype}")

        if self._normal_cache is not None:
            cached_dtype, cached = self._normal_cache
            self._normal_cache = None
            if cached_dtype == dtype:
                return cached
            cached.release()

        out0 = self.backend.array(self.size, dtype=dtype)
        out1 = self.backend.array(self.size, dtype=dtype)
        code = shaders.box_muller(
            self.backend.workgroup_size, self._state_operand,
            shaders.Operand(1, dtype), shaders.Operand(2, dtype),
        )
        self.backend.submit([Dispatch(
            code,
            [(self.state, "read_write"), (out0, "write"), (out1, "write")],
            self.size, {},
        )])
        self._normal_cache = (dtype, out1)
        return out0
