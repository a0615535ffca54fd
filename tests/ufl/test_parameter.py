import gc

import numpy as np
import pytest
import sympy as sp

from pyharmfem.core import ComponentRangeError, DimensionError, UndefinedLookupError
from pyharmfem.ufl import Constant, Field, OpParameter, Parameter, normal, x_coord, y_coord
from pyharmfem.ufl.analytic import x, y
from pyharmfem.utils.meshgen import structured_quad

PTS = np.array([[-0.5, -0.5], [0.3, 0.1], [0.9, -0.8]])


def test_constant_on_one_region_and_harmonic_one(quad_mesh):
    p = Parameter(name="sigma")
    p.set_value(0, 7.0, harmonic=1)
    leaf = p.op(0, 0)
    assert leaf.is_harmonic_one([0])
    sel = quad_mesh.select("quad", 0)
    vals = leaf.interpolate(sel, PTS)
    assert list(vals) == [1]
    assert vals[1].shape == (sel.count(), len(PTS))
    assert np.all(vals[1] == 7.0)


def test_undefined_region_fails_explicitly(quad_mesh):
    p = Parameter(name="sigma")
    p.set_value(0, 7.0)
    with pytest.raises(UndefinedLookupError):
        p.op().interpolate(quad_mesh.select("quad"), PTS)
    with pytest.raises(UndefinedLookupError):
        p.get_pointer().lookup(1)
    with pytest.raises(UndefinedLookupError):
        p.op().get_harmonics([0, 1])


def test_undefined_harmonic_fails_explicitly():
    p = Parameter()
    p.set_value(0, 1.0, harmonic=1)
    p.set_value(0, 2.0, harmonic=3)
    raw = p.get_pointer()
    assert raw.lookup(0, 3)[0, 0].value == 2.0
    with pytest.raises(UndefinedLookupError):
        raw.lookup(0, 5)
    # a whole-expression value covers every harmonic
    p.set_value(0, x_coord)
    assert raw.lookup(0, 5)[0, 0] is x_coord


def test_component_range():
    p = Parameter(2, 3, name="k")
    assert p.op(1, 2).row == 1
    for row, col in [(2, 0), (0, 3), (-1, 0)]:
        with pytest.raises(ComponentRangeError):
            p.op(row, col)
    with pytest.raises(ComponentRangeError):
        OpParameter(p.get_pointer(), 5, 5)
    # ComponentRangeError is an IndexError
    with pytest.raises(IndexError):
        p[3]


def test_tensor_values(quad_mesh):
    k = Parameter(2, 2, name="k")
    k.set_value([0, 1], [[1.0, 2.0], [3.0, x * y]])
    sel = quad_mesh.select("quad")
    vals = k.interpolate(sel, PTS)
    assert vals[1].shape == (sel.count(), len(PTS), 2, 2)
    assert np.allclose(vals[1][..., 0, 1], 2.0)
    expected = (x_coord * y_coord).interpolate(sel, PTS)[1]
    assert np.allclose(vals[1][..., 1, 1], expected)
    assert np.allclose(k[1, 1].interpolate(sel, PTS)[1], expected)
    assert k.is_harmonic_one([0, 1])


def test_value_shape_checked():
    v = Parameter(2, 1)
    v.set_value(0, [1.0, 2.0])
    assert v.op(1, 0).get_parameter().lookup(0)[None][1, 0].value == 2.0
    with pytest.raises(DimensionError):
        v.set_value(0, [1.0, 2.0, 3.0])
    with pytest.raises(DimensionError):
        Parameter(2, 2).set_value(0, [[1.0, 2.0]])
    with pytest.raises(TypeError):
        Parameter().set_value(0, "abc")
    with pytest.raises(DimensionError):
        Parameter(0, 1)


def test_values_per_region(quad_mesh):
    p = Parameter()
    p.set_value(0, 1.0)
    p.set_value(1, lambda x, y, z: 10.0 + x)
    sel = quad_mesh.select("quad")
    vals = p.op().interpolate(sel, PTS)[1]
    xs = x_coord.interpolate(sel, PTS)[1]
    left = sel.disjoint_regions == 0
    assert np.all(vals[left] == 1.0)
    assert np.allclose(vals[~left], 10.0 + xs[~left])


def test_per_harmonic_values(quad_mesh):
    p = Parameter()
    p.set_value(0, 1.0, harmonic=1)
    p.set_value(0, sp.Integer(2) * x, harmonic=3)
    leaf = p.op()
    assert leaf.get_harmonics([0]) == [1, 3]
    assert not leaf.is_harmonic_one([0])
    sel = quad_mesh.select("quad", 0)
    vals = leaf.interpolate(sel, PTS)
    assert sorted(vals) == [1, 3]
    assert np.allclose(vals[3], 2.0 * x_coord.interpolate(sel, PTS)[1])


def test_per_harmonic_value_must_be_static(quad_mesh):
    u = Field(quad_mesh, harmonics=(1, 2))
    u.set_value(2, 1.0)
    p = Parameter()
    p.set_value(0, u.value(), harmonic=3)
    with pytest.raises(ValueError):
        p.op().interpolate(quad_mesh.select("quad", 0), PTS)


def test_whole_value_harmonics_pass_through(quad_mesh):
    u = Field(quad_mesh, harmonics=(1, 2))
    u.set_value(2, 3.0)
    p = Parameter()
    p.set_value([0, 1], u.value())
    assert p.op().get_harmonics([0, 1]) == [1, 2]
    vals = p.op().interpolate(quad_mesh.select("quad"), PTS)
    assert np.allclose(vals[2], 3.0)
    assert np.allclose(vals[1], 0.0)


def test_orientation_dependence():
    p = Parameter()
    p.set_value(0, 1.0)
    p.set_value(5, normal(0))
    assert not p.op().is_value_orientation_dependent([0])
    assert p.op().is_value_orientation_dependent([0, 5])


def test_determinism_without_reuse(quad_mesh):
    p = Parameter()
    p.set_value([0, 1], x * x + 1)
    leaf = p.op()
    sel = quad_mesh.select("quad")
    a = leaf.interpolate(sel, PTS)
    b = leaf.interpolate(sel, PTS)
    assert a.keys() == b.keys()
    assert np.array_equal(a[1], b[1])
    assert a[1] is not b[1]


def _counting_parameter():
    calls = []

    def f(x, y, z):
        calls.append(1)
        return x + y

    p = Parameter()
    p.set_value([0, 1], f)
    return p, calls


def test_reuse_returns_cached_values(quad_mesh):
    p, calls = _counting_parameter()
    leaf = p.op()
    leaf.reuse_it(True)
    sel = quad_mesh.select("quad", 0)
    first = leaf.interpolate(sel, PTS)
    n = len(calls)
    second = leaf.interpolate(quad_mesh.select("quad", 0), PTS)
    assert len(calls) == n
    assert np.array_equal(first[1], second[1])


def test_reuse_recomputes_for_new_batch_points_or_table(quad_mesh):
    p, calls = _counting_parameter()
    leaf = p.op()
    leaf.reuse_it(True)
    leaf.interpolate(quad_mesh.select("quad", 0), PTS)
    n = len(calls)
    leaf.interpolate(quad_mesh.select("quad", 1), PTS)
    assert len(calls) > n
    n = len(calls)
    leaf.interpolate(quad_mesh.select("quad", 1), PTS[:2])
    assert len(calls) > n
    # redefining the table invalidates the cached values
    p.set_value([0, 1], 4.0)
    assert np.all(leaf.interpolate(quad_mesh.select("quad", 1), PTS[:2])[1] == 4.0)


def test_reuse_ignores_mesh_deformation(quad_mesh):
    """The deformation is not part of the reuse key: callers must not change it while reuse is on."""
    p = Parameter()
    p.set_value([0, 1], x_coord)
    leaf = p.op()
    sel = quad_mesh.select("quad")
    shift = [Constant(1.0)]
    plain = leaf.interpolate(sel, PTS)[1]
    assert np.allclose(leaf.interpolate(sel, PTS, shift)[1], plain + 1.0)

    leaf.reuse_it(True)
    leaf.interpolate(sel, PTS)
    stale = leaf.interpolate(sel, PTS, shift)[1]
    assert np.allclose(stale, plain)

    leaf.reuse_it(False)
    assert np.allclose(leaf.interpolate(sel, PTS, shift)[1], plain + 1.0)


def test_reuse_flag_reaches_leaves_and_is_not_copied():
    p = Parameter()
    p.set_value(0, 2.0)
    leaf = p.op()
    expr = 3.0 * leaf + x_coord
    expr.reuse_it(True)
    assert leaf.reuse
    clone = expr.copy()
    cloned_leaf = clone.find_first(lambda n: isinstance(n, OpParameter))
    assert cloned_leaf is not leaf
    assert cloned_leaf.get_parameter() is leaf.get_parameter()
    assert not cloned_leaf.reuse
    assert leaf.reuse


def test_simplify_collapses_common_constant():
    p = Parameter()
    p.set_value([0, 1], 7.0)
    p.set_value(2, 8.0)
    leaf = p.op()
    s = leaf.simplify([0, 1])
    assert isinstance(s, Constant) and s.value == 7.0
    s = leaf.simplify([0, 1, 2])
    assert isinstance(s, OpParameter) and s is not leaf
    p.set_value(3, 7.0, harmonic=3)
    assert isinstance(leaf.simplify([3]), OpParameter)
    p.set_value(4, sp.Integer(7))
    assert isinstance(leaf.simplify([0, 4]), Constant)


def test_shared_table_between_leaves(quad_mesh):
    k = Parameter(1, 2, name="k")
    k.set_value([0, 1], [1.0, 2.0])
    a, b = k[0, 0], k[0, 1]
    assert a.get_parameter() is b.get_parameter()
    sel = quad_mesh.select("quad")
    assert np.all((a + b).interpolate(sel, PTS)[1] == 3.0)
    assert repr(b) == "k[0,1]"


def test_print(capsys):
    p = Parameter(name="mu")
    p.set_value(0, 4.0)
    p.set_value(1, 1.0, harmonic=2)
    p.print()
    out = capsys.readouterr().out
    assert "mu" in out and "harmonic 2" in out and "all harmonics" in out


def test_reuse_recomputes_on_new_mesh_after_old_one_is_collected():
    p = Parameter()
    p.set_value(0, x_coord)
    leaf = p.op()
    leaf.reuse_it(True)
    stale = 0
    for i in range(50):
        m = structured_quad(1.0, 1.0, nx=2, ny=2, offset=(float(i), 0.0))
        sel = m.select("quad")
        got = leaf.interpolate(sel, PTS)[1]
        if not np.allclose(got, x_coord.interpolate(sel, PTS)[1]):
            stale += 1
        del m, sel
        gc.collect()
    assert stale == 0


def test_meshes_get_distinct_batch_tokens():
    a = structured_quad(1.0, 1.0, nx=1, ny=1)
    b = structured_quad(1.0, 1.0, nx=1, ny=1)
    assert a.serial != b.serial
    assert a.select("quad").cache_token != b.select("quad").cache_token


def test_reused_values_are_not_aliased(quad_mesh):
    p = Parameter()
    p.set_value([0, 1], 3.0)
    leaf = p.op()
    leaf.reuse_it(True)
    sel = quad_mesh.select("quad")
    first = leaf.interpolate(sel, PTS)
    first[1] *= 10
    second = leaf.interpolate(sel, PTS)
    assert np.all(second[1] == 3.0)
    second[1] *= 10
    assert np.all(leaf.interpolate(sel, PTS)[1] == 3.0)


def test_undefined_data_fails_next_to_a_zero_factor(quad_mesh):
    u = Field(quad_mesh, harmonics=(1,))
    p = Parameter()
    p.set_value(0, 2.0)
    sel = quad_mesh.select("quad")
    with pytest.raises(UndefinedLookupError):
        (u.value().harmonic(3) * p.op()).interpolate(sel, PTS)
    with pytest.raises(UndefinedLookupError):
        (p.op() * u.value().harmonic(3)).interpolate(sel, PTS)
