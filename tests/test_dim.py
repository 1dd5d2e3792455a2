import pytest

from nngraph.dim import Dim, make_eq


def test_documented_example():
    a = Dim("a")
    b = Dim("b")
    one = Dim(1)
    expr = (a + one - 2) * 3 / (b + 1)
    assert expr.substitute({"a": 8, "b": 6}) == 3


def test_constant_to_int():
    assert Dim(7).to_int() == 7


def test_symbolic_to_int_raises():
    with pytest.raises(ValueError):
        Dim("n").to_int()


def test_variables():
    expr = Dim("a") * Dim("b") + Dim("c")
    assert expr.variables() == {"a", "b", "c"}
    assert Dim(3).variables() == set()


def test_substitute_variable():
    assert Dim("n").substitute({"n": 11}) == 11


def test_missing_variable_raises():
    with pytest.raises(KeyError):
        (Dim("a") + Dim("b")).substitute({"a": 1})


def test_division_by_zero_raises():
    with pytest.raises(ZeroDivisionError):
        (Dim(4) / Dim("z")).substitute({"z": 0})


def test_negative_result_raises():
    with pytest.raises(ValueError):
        (Dim("a") - 5).substitute({"a": 2})


def test_negative_constant_rejected():
    with pytest.raises(ValueError):
        Dim(-1)


def test_commutative_equality_and_hash():
    left = Dim("a") + Dim("b")
    right = Dim("b") + Dim("a")
    assert left == right
    assert hash(left) == hash(right)


def test_different_variables_differ():
    assert not (Dim("a") == Dim("b"))
    assert Dim("a") == Dim("a")


def test_division_cancels_with_multiplication():
    x = Dim("x")
    s = Dim("p") + Dim("q")
    assert (x / s) * s == x


def test_int_operands():
    a = Dim("a")
    assert a + 0 == a
    assert 2 * a == a + a
    assert a * 1 == a


def test_floor_division_on_substitution():
    assert (Dim("a") / 2).substitute({"a": 7}) == 3


def test_make_eq_identical():
    merged = make_eq([Dim("n"), Dim("n")])
    assert merged == Dim("n")
    assert merged.substitute({"n": 4}) == 4


def test_make_eq_constants_never_equal():
    assert make_eq([Dim(2), Dim(3)]) is None


def test_make_eq_adds_constraint():
    merged = make_eq([Dim("a"), Dim("b")])
    assert merged.substitute({"a": 5, "b": 5}) == 5
    assert merged.substitute({"a": 5, "b": 6}) is None


def test_make_eq_requires_two():
    with pytest.raises(ValueError):
        make_eq([Dim("a")])


def test_arithmetic_drops_constraints():
    merged = make_eq([Dim("a"), Dim("b")])
    assert (merged + 0).substitute({"a": 1, "b": 2}) == 1