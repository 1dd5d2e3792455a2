import pytest

from nngraph.arg import Arg, ArgKind
from nngraph.dim import Dim, make_eq


def test_int_to_int():
    assert Arg.int(3).to_int() == 3


def test_negative_int_rejected():
    with pytest.raises(ValueError):
        Arg.int(-2)


def test_constant_dim_to_int():
    assert Arg.dim(9).to_int() == 9


def test_symbolic_dim_to_int_raises():
    with pytest.raises(ValueError):
        Arg.dim("n").to_int()


def test_bool_to_int_raises():
    with pytest.raises(TypeError):
        Arg.bool(True).to_int()


def test_substitute_dim_becomes_int():
    assert Arg.dim("n").substitute({"n": 5}) == Arg.int(5)


def test_substitute_leaves_primitives():
    for arg in (Arg.bool(False), Arg.float(1e-5), Arg.str("sum"), Arg.int(4)):
        assert arg.substitute({"n": 1}) == arg


def test_arr_coerces_values():
    arr = Arg.arr([1, Dim("a"), True, "x", 0.5])
    assert [a.kind for a in arr.value] == [
        ArgKind.INT,
        ArgKind.DIM,
        ArgKind.BOOL,
        ArgKind.STR,
        ArgKind.FLOAT,
    ]


def test_nested_substitute():
    arg = Arg.dict([("axis", Arg.int(1)), ("parts", Arg.arr([Dim("a"), Dim("b")]))])
    result = arg.substitute({"a": 2, "b": 6})
    assert result["axis"] == Arg.int(1)
    assert result["parts"] == Arg.arr([Arg.int(2), Arg.int(6)])


def test_dict_accepts_mapping():
    arg = Arg.dict({"perm": [0, 2]})
    assert arg["perm"][1].to_int() == 2


def test_unsatisfied_constraint_raises():
    merged = make_eq([Dim("a"), Dim("b")])
    with pytest.raises(ValueError):
        Arg.dim(merged).substitute({"a": 1, "b": 2})


def test_primitive_cannot_be_indexed():
    with pytest.raises(TypeError):
        Arg.int(1)[0]