import numpy as np
import pytest

from pyharmfem.ufl import Field, x_coord, y_coord
from pyharmfem.ufl.analytic import x, y
from pyharmfem.utils.meshgen import structured_quad

PTS = np.array([[0.2, -0.3], [0.0, 0.0]])


def test_field_reproduces_linear_function(quad_mesh, tri_mesh):
    for mesh, et in ((quad_mesh, "quad"), (tri_mesh, "tri")):
        pts = PTS if et == "quad" else np.array([[0.2, 0.3], [0.1, 0.1]])
        u = Field(mesh)
        u.set_from(lambda x, y, z: 1.0 + 2.0 * x - y)
        sel = mesh.select(et)
        exact = (1.0 + 2.0 * x_coord - y_coord).interpolate(sel, pts)[1]
        assert np.allclose(u.value().interpolate(sel, pts)[1], exact)


def test_set_from_sympy_and_operation(quad_mesh):
    u = Field(quad_mesh, harmonics=(1, 3))
    u.set_from(x * y, harmonic=3)
    u.set_from(2 * x_coord)
    nodes = quad_mesh.nodes_xyz
    assert np.allclose(u.get_value(3), nodes[:, 0] * nodes[:, 1])
    assert np.allclose(u.get_value(1), 2 * nodes[:, 0])


def test_set_value_checks(quad_mesh):
    u = Field(quad_mesh, harmonics=(2,))
    with pytest.raises(KeyError):
        u.set_value(1, 0.0)
    with pytest.raises(ValueError):
        u.set_value(2, np.ones(3))
    with pytest.raises(ValueError):
        Field(quad_mesh, harmonics=(0,))
    with pytest.raises(KeyError):
        u.harmonic(4)


def test_field_harmonic_restriction(quad_mesh):
    u = Field(quad_mesh, harmonics=(1, 2, 3))
    u.set_value(2, 5.0)
    sel = quad_mesh.select("quad")
    v = u.harmonic(2)
    assert v.get_harmonics([0]) == [2]
    assert sorted(v.interpolate(sel, PTS)) == [2]
    assert repr(v) == "u.harmonic([2])"
    assert sorted(u.value().interpolate(sel, PTS)) == [1, 2, 3]


def test_field_on_other_mesh(quad_mesh):
    u = Field(structured_quad(1.0, 1.0, nx=1, ny=1))
    with pytest.raises(ValueError):
        u.value().interpolate(quad_mesh.select("quad"), PTS)


def test_field_in_expressions(quad_mesh):
    u = Field(quad_mesh)
    u.set_value(1, 3.0)
    sel = quad_mesh.select("quad")
    assert np.allclose((2 * u.as_operation() + 1).interpolate(sel, PTS)[1], 7.0)
    assert np.allclose((x_coord * u).interpolate(sel, PTS)[1],
                       3.0 * x_coord.interpolate(sel, PTS)[1])
