"""WGSL compute shader templates for wgpu_array.

Every template is a pure function returning WGSL source. Operands are
described by :class:`Operand` (binding slot, element type, optional
conversion), so one template serves all four element types and both the
direct and the strided/broadcast case.

Conventions shared by all kernels:
    - entry point is ``main``; the linear lane index is
      ``id.x + id.y * groups.x * workgroup_size`` so that dispatches larger
      than the per-dimension workgroup limit can be split over ``y``
    - array inputs are ``read`` storage bindings, outputs ``read_write``
    - scalar operands (``binding is None``) become ``override`` constants
    - ``enable f16;`` is emitted whenever a bound operand is ``f16``
"""

from typing import NamedTuple, Optional


class Operand(NamedTuple):
    """Kernel operand descriptor.

    Args:
        binding: bind group slot, or None for a scalar override constant
        type: WGSL element type ("i32", "u32", "f16", "f32")
        conv: WGSL type to convert to when read/written ("" for none)
    """

    binding: Optional[int]
    type: str
    conv: str = ""

    @property
    def scalar(self):
        return self.binding is None


# ============================================================================
# Shared Fragments
# ============================================================================

def _f16(*operands):
    if any(o is not None and o.type == "f16" for o in operands):
        return "enable f16;"
    return ""


def _declare(name, operand, access="read"):
    if operand.scalar:
        return f"override {name}: {operand.type};"
    return (
        f"@group(0) @binding({operand.binding})\n"
        f"var<storage, {access}> {name}: array<{operand.type}>;"
    )


def _declare_strides(name, binding):
    return (
        f"@group(0) @binding({binding})\n"
        f"var<storage, read> {name}_strides: array<u32>;"
    )


def _value(name, operand, index):
    v = name if operand.scalar else f"{name}[{index}]"
    return f"{operand.conv}({v})"


def _entry(size):
    return f"""@compute @workgroup_size({size})
fn main(
    @builtin(global_invocation_id) id: vec3<u32>,
    @builtin(num_workgroups) groups: vec3<u32>,
){{
    let i: u32 = id.x + id.y * groups.x * {size}u;"""


def _decompose(names):
    """Per-operand source offsets from the output lane index.

    The output is contiguous, so walking its strides from the last axis to
    the first recovers the multi-index one axis at a time.
    """
    init = "\n".join(f"    var {n}_at: u32 = 0u;" for n in names)
    step = "\n".join(f"        {n}_at += k * {n}_strides[s];" for n in names)
    last = "\n".join(f"    {n}_at += k0 * {n}_strides[0];" for n in names)
    return f"""
    var rest: u32 = i;
{init}
    for(var s: u32 = arrayLength(&out_strides) - 1u; s > 0u; s = s - 1u){{
        let r: u32 = rest % out_strides[s - 1u];
        let k: u32 = r / out_strides[s];
{step}
        rest -= r;
    }}
    let k0: u32 = rest / out_strides[0];
{last}
"""


def _elementwise(size, inputs, out, expression, strides=None):
    """Build an elementwise kernel.

    Args:
        size: workgroup size
        inputs: list of (name, Operand)
        out: Operand of the output
        expression: callable taking the per-input value expressions as
            keyword arguments and returning the WGSL result expression
        strides: None for the direct variant, else {name: binding} for every
            array input plus "out"
    """
    decls = [_declare(name, op) for name, op in inputs]
    decls.append(_declare("out", out, "read_write"))

    body = ""
    index = {}
    if strides is not None:
        arrays = [name for name, op in inputs if not op.scalar]
        for name in arrays + ["out"]:
            decls.append(_declare_strides(name, strides[name]))
        body = _decompose(arrays)
        index = {name: f"{name}_at" for name in arrays}

    decls = "\n".join(decls)
    values = {name: _value(name, op, index.get(name, "i")) for name, op in inputs}
    bound = [op for _, op in inputs if not op.scalar] + [out]

    return f"""{_f16(*bound)}
{decls}

{_entry(size)}
    if(i >= arrayLength(&out)){{ return; }}
{body}
    out[i] = {out.conv}({expression(**values)});
}}
"""


# ============================================================================
# Elementwise Templates
# ============================================================================

def vector_op(op, size, lhs, rhs, out, strides=None):
    """``out = lhs <op> rhs`` for an arithmetic operator (+ - * /)."""
    return _elementwise(
        size, [("lhs", lhs), ("rhs", rhs)], out,
        lambda lhs, rhs: f"{lhs} {op} {rhs}",
        strides,
    )


def func1(f, size, arg, out, strides=None):
    """``out = f(arg)`` for a WGSL builtin function of one argument."""
    return _elementwise(
        size, [("arg", arg)], out,
        lambda arg: f"{f}({arg})",
        strides,
    )


def func2(f, size, args, out, strides=None):
    """``out = f(arg0, arg1)`` for a WGSL builtin function of two arguments."""
    return _elementwise(
        size, [("arg0", args[0]), ("arg1", args[1])], out,
        lambda arg0, arg1: f"{f}({arg0}, {arg1})",
        strides,
    )


def where(size, cond, x, y, out, strides=None):
    """``out = cond != 0 ? x : y``."""
    zero = f"{cond.conv or cond.type}(0)"
    return _elementwise(
        size, [("cond", cond), ("x", x), ("y", y)], out,
        lambda cond, x, y: f"select({y}, {x}, {cond} != {zero})",
        strides,
    )


# ============================================================================
# Reduction Templates
# ============================================================================

def _reduce(size, arg, out, combine):
    return f"""{_f16(arg, out)}
{_declare("arg", arg)}
{_declare("out", out, "read_write")}

override n: u32;
override lanes: u32;

{_entry(size)}
    if(i >= lanes){{ return; }}

    var acc = {arg.conv}(arg[i]);
    for(var j: u32 = i + lanes; j < n; j = j + lanes){{
        acc = {combine("acc", f"{arg.conv}(arg[j])")};
    }}
    out[i] = {out.conv}(acc);
}}
"""


def reduce_op(op, size, arg, out):
    """One reduction pass with an associative operator.

    Lane ``i`` folds ``arg[i], arg[i + lanes], ...`` below ``n``; the
    ``n`` and ``lanes`` override constants are set per pass.
    """
    return _reduce(size, arg, out, lambda acc, x: f"{acc} {op} {x}")


def reduce_func(f, size, arg, out):
    """One reduction pass with an associative builtin function (min, max)."""
    return _reduce(size, arg, out, lambda acc, x: f"{f}({acc}, {x})")


# ============================================================================
# xoshiro128++ PRNG
# ============================================================================

_XOSHIRO_FUNCTIONS = """
fn rotl(x: u32, k: u32) -> u32 {
    return (x << k) | (x >> (32u - k));
}

fn to_float(x: u32) -> f32 {
    return bitcast<f32>((x >> 9u) | 0x3f800000u) - 1.0;
}

fn advance(i: u32) -> u32 {
    var s: vec4<u32> = state[i];
    let result: u32 = rotl(s.x + s.w, 7u) + s.x;
    let t: u32 = s.y << 9u;

    s.z ^= s.x;
    s.w ^= s.y;
    s.y ^= s.z;
    s.x ^= s.w;

    s.z ^= t;
    s.w = rotl(s.w, 11u);

    state[i] = s;
    return result;
}
"""


_HALF_FUNCTION = """
fn to_half(x: u32) -> f16 {
    return bitcast<vec2<f16>>((x >> 22u) | 0x3c00u).x - 1.0h;
}
"""


def _declare_state(state):
    return (
        f"@group(0) @binding({state.binding})\n"
        f"var<storage, read_write> state: array<vec4<u32>>;"
    )


def xoshiro128pp(size, state, out=None):
    """Advance every stream by one step, optionally writing its output.

    ``out`` of type "u32" receives the raw word; a float output receives
    the top 23 (f32) or 10 (f16) bits transplanted into [0, 1), so the
    conversion never rounds up to 1.0.
    """
    half = ""
    if out is None:
        decl = ""
        guard = "i >= arrayLength(&state)"
        emit = "_ = advance(i);"
    else:
        decl = _declare("out", out, "read_write")
        guard = "i >= arrayLength(&state) || i >= arrayLength(&out)"
        if out.type == "u32":
            emit = "out[i] = advance(i);"
        elif out.type == "f16":
            half = _HALF_FUNCTION
            emit = "out[i] = to_half(advance(i));"
        else:
            emit = f"out[i] = {out.type}(to_float(advance(i)));"

    return f"""{_f16(out)}
{_declare_state(state)}
{decl}
{_XOSHIRO_FUNCTIONS}
{half}
{_entry(size)}
    if({guard}){{ return; }}

    {emit}
}}
"""


def xoshiro128pp_init(state, cursor, chunk):
    """Derive up to ``chunk`` more streams from the ones already seeded.

    Runs as a single lane: stream ``i`` is stream ``i - 1`` advanced by
    2^64 steps (the jump polynomial, 128 single steps per jump).
    ``cursor[0]`` holds the first stream still to derive and is moved past
    the streams done here, so repeated dispatches of the same pipeline
    cover all streams while each invocation does a bounded amount of work.
    """
    return f"""
{_declare_state(state)}
@group(0) @binding({cursor.binding})
var<storage, read_write> cursor: array<u32>;
{_XOSHIRO_FUNCTIONS}
fn jump(i: u32){{
    let poly = vec4<u32>(0x8764000bu, 0xf542d2d3u, 0x6fa035c3u, 0x77f2db5bu);
    var acc = vec4<u32>(0u, 0u, 0u, 0u);
    for(var w: u32 = 0u; w < 4u; w = w + 1u){{
        for(var b: u32 = 0u; b < 32u; b = b + 1u){{
            if((poly[w] & (1u << b)) != 0u){{
                acc ^= state[i];
            }}
            _ = advance(i);
        }}
    }}
    state[i] = acc;
}}

@compute @workgroup_size(1)
fn main(){{
    let n: u32 = arrayLength(&state);
    let first: u32 = cursor[0];
    let last: u32 = min(first + {chunk}u, n);
    for(var i: u32 = first; i < last; i = i + 1u){{
        state[i] = state[i - 1u];
        jump(i);
    }}
    cursor[0] = last;
}}
"""


def box_muller(size, state, out0, out1):
    """Pair of standard normal samples per stream from two uniform draws."""
    return f"""{_f16(out0, out1)}
{_declare_state(state)}
{_declare("out0", out0, "read_write")}
{_declare("out1", out1, "read_write")}
{_XOSHIRO_FUNCTIONS}
const TAU: f32 = 6.283185307179586;

{_entry(size)}
    if(i >= arrayLength(&state) || i >= arrayLength(&out0)){{ return; }}

    let u1: f32 = to_float(advance(i));
    let u2: f32 = to_float(advance(i));
    let r: f32 = sqrt(-2.0 * log(1.0 - u1));
    let theta: f32 = TAU * u2;

    out0[i] = {out0.type}(r * cos(theta));
    out1[i] = {out1.type}(r * sin(theta));
}}
"""
