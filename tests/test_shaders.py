"""WGSL generation (no device needed)."""

from wgpu_array import wgpu_shaders as shaders
from wgpu_array.wgpu_shaders import Operand


def test_vector_op_direct():
    code = shaders.vector_op(
        "+", 256, Operand(0, "f32"), Operand(1, "f32"), Operand(2, "f32"),
    )
    assert "enable f16;" not in code
    assert "var<storage, read> lhs: array<f32>;" in code
    assert "var<storage, read> rhs: array<f32>;" in code
    assert "var<storage, read_write> out: array<f32>;" in code
    assert "@workgroup_size(256)" in code
    assert "out[i] = ((lhs[i]) + (rhs[i]));" in code
    assert "_strides" not in code


def test_vector_op_conversion():
    code = shaders.vector_op(
        "*", 64, Operand(0, "f32"), Operand(1, "u32", "f32"), Operand(2, "f32"),
    )
    assert "var<storage, read> rhs: array<u32>;" in code
    assert "(lhs[i]) * f32(rhs[i])" in code


def test_output_conversion():
    code = shaders.func1("sqrt", 64, Operand(0, "i32", "f32"), Operand(1, "i32", "i32"))
    assert "out[i] = i32(sqrt(f32(arg[i])));" in code


def test_f16_directive():
    code = shaders.func1("abs", 64, Operand(0, "f16"), Operand(1, "f16"))
    assert code.lstrip().startswith("enable f16;")

    code = shaders.func1("abs", 64, Operand(0, "f32"), Operand(1, "f32"))
    assert "enable f16;" not in code


def test_scalar_operand_is_override():
    code = shaders.vector_op(
        "-", 64, Operand(0, "i32"), Operand(None, "i32"), Operand(1, "i32"),
    )
    assert "override rhs: i32;" in code
    assert "@binding(1)\nvar<storage, read_write> out" in code
    assert "(lhs[i]) - (rhs)" in code


def test_strided_variant():
    strides = {"lhs": 3, "rhs": 4, "out": 5}
    code = shaders.vector_op(
        "+", 64, Operand(0, "f32"), Operand(1, "f32"), Operand(2, "f32"),
        strides=strides,
    )
    assert "@binding(3)\nvar<storage, read> lhs_strides: array<u32>;" in code
    assert "@binding(4)\nvar<storage, read> rhs_strides: array<u32>;" in code
    assert "@binding(5)\nvar<storage, read> out_strides: array<u32>;" in code
    assert "arrayLength(&out_strides) - 1u" in code
    assert "(lhs[lhs_at]) + (rhs[rhs_at])" in code


def test_strided_variant_skips_scalars():
    code = shaders.vector_op(
        "+", 64, Operand(0, "f32"), Operand(None, "f32"), Operand(1, "f32"),
        strides={"lhs": 2, "out": 3},
    )
    assert "rhs_strides" not in code
    assert "override rhs: f32;" in code
    assert "(lhs[lhs_at]) + (rhs)" in code


def test_func2_and_where():
    code = shaders.func2("pow", 64, [Operand(0, "f32"), Operand(1, "f32")], Operand(2, "f32"))
    assert "pow((arg0[i]), (arg1[i]))" in code

    code = shaders.where(
        64, Operand(0, "u32"), Operand(1, "f32"), Operand(None, "f32"), Operand(2, "f32"),
    )
    assert "select((y), (x[i]), (cond[i]) != u32(0))" in code
    assert "override y: f32;" in code


def test_reduction_templates():
    code = shaders.reduce_op("+", 128, Operand(0, "f32"), Operand(1, "f32"))
    assert "override n: u32;" in code
    assert "override lanes: u32;" in code
    assert "acc = acc + (arg[j]);" in code

    code = shaders.reduce_func("max", 128, Operand(0, "i32"), Operand(1, "f32", "f32"))
    assert "acc = max(acc, (arg[j]));" in code
    assert "out[i] = f32(acc);" in code


def test_xoshiro_templates():
    state = Operand(0, "u32")
    code = shaders.xoshiro128pp(64, state, Operand(1, "u32"))
    assert "var<storage, read_write> state: array<vec4<u32>>;" in code
    assert "out[i] = advance(i);" in code

    code = shaders.xoshiro128pp(64, state, Operand(1, "f32"))
    assert "out[i] = f32(to_float(advance(i)));" in code

    code = shaders.xoshiro128pp(64, state)
    assert "_ = advance(i);" in code
    assert "out" not in code.split("fn main")[1]


def test_xoshiro_init_uses_jump_polynomial():
    code = shaders.xoshiro128pp_init(Operand(0, "u32"), Operand(1, "u32"), 16)
    assert "0x8764000bu, 0xf542d2d3u, 0x6fa035c3u, 0x77f2db5bu" in code
    assert "@workgroup_size(1)" in code
    assert "state[i] = state[i - 1u];" in code
    assert "@binding(1)\nvar<storage, read_write> cursor: array<u32>;" in code
    assert "let last: u32 = min(first + 16u, n);" in code
    assert "cursor[0] = last;" in code


def test_xoshiro_f16_output_is_transplanted():
    code = shaders.xoshiro128pp(64, Operand(0, "u32"), Operand(1, "f16"))
    assert code.lstrip().startswith("enable f16;")
    assert "out[i] = to_half(advance(i));" in code
    assert "bitcast<vec2<f16>>((x >> 22u) | 0x3c00u).x - 1.0h" in code

    code = shaders.xoshiro128pp(64, Operand(0, "u32"), Operand(1, "f32"))
    assert "to_half" not in code


def test_box_muller():
    code = shaders.box_muller(64, Operand(0, "u32"), Operand(1, "f16"), Operand(2, "f16"))
    assert code.lstrip().startswith("enable f16;")
    assert "log(1.0 - u1)" in code
    assert "out0[i] = f16(r * cos(theta));" in code
    assert "out1[i] = f16(r * sin(theta));" in code


def test_same_inputs_same_source():
    a = shaders.vector_op("+", 64, Operand(0, "f32"), Operand(1, "f32"), Operand(2, "f32"))
    b = shaders.vector_op("+", 64, Operand(0, "f32"), Operand(1, "f32"), Operand(2, "f32"))
    c = shaders.vector_op("-", 64, Operand(0, "f32"), Operand(1, "f32"), Operand(2, "f32"))
    assert a == b
    assert a != c
